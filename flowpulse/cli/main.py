"""
flowpulse command line

``flowpulse serve`` runs the ping API; ``flowpulse checks`` and
``flowpulse owners`` edit the same JSON store the server reads.
"""

import logging
from typing import Annotated

import structlog
import typer
from rich.console import Console

from flowpulse import __version__

logger = structlog.get_logger(__name__)
console = Console()

app = typer.Typer(
    name="flowpulse",
    help="Heartbeat monitoring for N8N, Make and Zapier workflows",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def configure_logging(verbose: bool) -> None:
    """Route structlog through stdlib logging with a console renderer."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=console.is_terminal),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _print_version(value: bool) -> None:
    if value:
        console.print(f"flowpulse [bold cyan]{__version__}[/bold cyan]")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Print the version and exit.",
            callback=_print_version,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log at DEBUG level."),
    ] = False,
) -> None:
    """
    Each monitored workflow pings its own URL after every run. A failed,
    pending or missing ping marks the check down and alerts its owner.
    """
    configure_logging(verbose)


from flowpulse.cli.checks import app as checks_app
from flowpulse.cli.checks import owners_app

app.add_typer(checks_app, name="checks")
app.add_typer(owners_app, name="owners")


@app.command()
def serve(
    host: Annotated[str | None, typer.Option("--host", help="Bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Bind port")] = None,
    sweep: Annotated[
        bool,
        typer.Option("--sweep/--no-sweep", help="Mark checks down when they miss their window"),
    ] = False,
) -> None:
    """
    Run the ping ingestion API.

    Example: flowpulse serve --port 8080 --sweep
    """
    import uvicorn

    from flowpulse.api.main import create_app
    from flowpulse.cli.checks import resolve_settings

    settings = resolve_settings()
    overrides = {"sweeper_enabled": sweep or settings.sweeper_enabled}
    if host:
        overrides["host"] = host
    if port:
        overrides["port"] = port
    settings = settings.model_copy(update=overrides)

    logger.info("Starting API", host=settings.host, port=settings.port, store=settings.store_path)
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    app()
