"""FlowPulse Configuration."""

from enum import Enum

from pydantic_settings import BaseSettings, SettingsConfigDict


class NotifyPolicy(str, Enum):
    """When a down-producing ping should trigger notifications."""

    EVERY_PING = "every_ping"  # Remind on every failing ping
    ON_TRANSITION = "on_transition"  # Only on the up -> down edge


class Settings(BaseSettings):
    """Settings for the FlowPulse service."""

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # CORS
    cors_origins: list[str] = ["*"]
    cors_headers: list[str] = [
        "authorization",
        "x-client-info",
        "apikey",
        "content-type",
    ]

    # API
    api_prefix: str = ""
    title: str = "FlowPulse"
    description: str = "Heartbeat monitoring for workflow automations"
    version: str = "0.1.0"
    base_url: str = "http://localhost:8000"

    # Ingestion limits
    rate_limit_seconds: int = 30
    max_body_bytes: int = 10_240
    max_error_message_length: int = 1000
    max_duration_ms: int = 3_600_000

    # Notifications
    notify_policy: NotifyPolicy = NotifyPolicy.EVERY_PING
    notification_worker_enabled: bool = True
    notification_queue_size: int = 1000
    notification_timeout_seconds: float = 10.0
    resend_api_key: str | None = None
    resend_api_url: str = "https://api.resend.com/emails"
    email_from: str = "Health Check Alerts <onboarding@resend.dev>"

    # Storage
    store_path: str | None = None
    run_retention_days: int = 90

    # Missed-ping sweeper
    sweeper_enabled: bool = False
    sweeper_interval_seconds: int = 60

    model_config = SettingsConfigDict(
        env_prefix="FLOWPULSE_",
        env_file=".env",
        extra="ignore",
    )

    def ping_url(self, heartbeat_token: str) -> str:
        """Build the public ping URL for a heartbeat token."""
        return f"{self.base_url.rstrip('/')}{self.api_prefix}/ping-handler?uuid={heartbeat_token}"


settings = Settings()


def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return settings
