"""
Check Store

Persistence layer for checks, runs, and owner contact details.
Uses in-memory storage with optional JSON file persistence.

The JSON file may be shared by several processes (the API server and the
CLI). Every mutation is a read-modify-write of the file under an
exclusive lock, and reads reload the file whenever it has changed on disk.
"""

from __future__ import annotations

import asyncio
import fcntl
import json
import secrets
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

import structlog
from pydantic import ValidationError

from flowpulse.heartbeat.models import Check, CheckRun, CheckStatus

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TOKEN_BYTES = 24

# Never equal to a file signature; forces the next refresh to reload
_STALE = object()


class StoreError(Exception):
    """A read or write against the store failed."""


def generate_heartbeat_token() -> str:
    """Generate an unguessable heartbeat token for a ping URL."""
    return secrets.token_urlsafe(TOKEN_BYTES)


class CheckStore:
    """
    Stores checks, their runs, and owner emails.

    Every operation goes through the lock. With a persist path, file I/O
    runs in a worker thread; a failed write discards the unsaved change and
    raises StoreError. A file that cannot be parsed is never overwritten.
    """

    def __init__(
        self,
        persist_path: Path | str | None = None,
        run_retention_days: int = 90,
    ) -> None:
        """
        Initialize the store.

        Args:
            persist_path: Path to persist state (None for memory-only)
            run_retention_days: How long to keep runs, measured back from
                the newest run of the same check

        Raises:
            StoreError: The persist file exists but cannot be loaded
        """
        self._persist_path = Path(persist_path) if persist_path else None
        self._run_retention = timedelta(days=run_retention_days)

        self._checks: dict[str, Check] = {}
        self._tokens: dict[str, str] = {}  # heartbeat_token -> check_id
        self._runs: dict[str, list[CheckRun]] = {}  # check_id -> runs
        self._owners: dict[str, str] = {}  # owner_id -> email
        self._lock = asyncio.Lock()
        self._loaded_signature: Any = _STALE

        if self._persist_path:
            self._refresh()

    # File handling

    def _signature(self) -> tuple[int, int, int] | None:
        """Identity of the file on disk; changes on every replace."""
        assert self._persist_path is not None
        try:
            stat = self._persist_path.stat()
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as e:
            raise StoreError(f"Cannot stat store file: {e}") from e
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)

    def _refresh(self) -> None:
        """Reload from the file if it changed since it was last read or written."""
        if not self._persist_path:
            return

        signature = self._signature()
        if signature == self._loaded_signature:
            return

        if signature is None:
            self._checks, self._tokens, self._runs, self._owners = {}, {}, {}, {}
        else:
            self._load_from_file()
        self._loaded_signature = signature

    def _load_from_file(self) -> None:
        """Replace in-memory state with the file's contents."""
        assert self._persist_path is not None

        try:
            with open(self._persist_path, "r") as f:
                data = json.load(f)

            checks: dict[str, Check] = {}
            tokens: dict[str, str] = {}
            for check_data in data.get("checks", []):
                check = Check.model_validate(check_data)
                checks[check.id] = check
                tokens[check.heartbeat_token] = check.id

            runs: dict[str, list[CheckRun]] = {}
            for run_data in data.get("runs", []):
                run = CheckRun.model_validate(run_data)
                runs.setdefault(run.check_id, []).append(run)

            owners = dict(data.get("owners", {}))

        except (OSError, ValueError, AttributeError, ValidationError) as e:
            logger.error("Failed to load store from file", path=str(self._persist_path), error=str(e))
            raise StoreError(f"Cannot load store file {self._persist_path}: {e}") from e

        self._checks, self._tokens, self._runs, self._owners = checks, tokens, runs, owners
        logger.debug(
            "Loaded store from file",
            checks=len(checks),
            runs=sum(len(r) for r in runs.values()),
        )

    def _save_to_file(self) -> None:
        """Write the full store to the persistence file."""
        assert self._persist_path is not None

        data = {
            "checks": [c.model_dump(mode="json") for c in self._checks.values()],
            "runs": [
                r.model_dump(mode="json")
                for runs in self._runs.values()
                for r in runs
            ],
            "owners": self._owners,
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            tmp_path = self._persist_path.with_suffix(".tmp")
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2, default=str)
            tmp_path.replace(self._persist_path)
        except OSError as e:
            logger.error("Failed to save store to file", error=str(e))
            raise StoreError(f"Failed to persist store: {e}") from e

        self._loaded_signature = self._signature()

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        """Exclusive lock shared with other processes using the same file."""
        assert self._persist_path is not None
        lock_path = self._persist_path.with_name(self._persist_path.name + ".lock")
        try:
            lock_path.parent.mkdir(parents=True, exist_ok=True)
            handle = open(lock_path, "a")
        except OSError as e:
            raise StoreError(f"Failed to lock store: {e}") from e

        with handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _write(self, mutate: Callable[[], T]) -> T:
        """Refresh, apply a mutation, and save, all under the file lock."""
        with self._file_lock():
            self._refresh()
            try:
                result = mutate()
                self._save_to_file()
            except StoreError:
                self._discard_unsaved()
                raise
            return result

    def _discard_unsaved(self) -> None:
        """Drop in-memory changes that did not reach the file."""
        self._loaded_signature = _STALE
        try:
            self._refresh()
        except StoreError as e:
            # Stays stale; the next operation retries the reload
            logger.error("Failed to reload store after write error", error=str(e))

    async def _transact(self, mutate: Callable[[], T]) -> T:
        async with self._lock:
            if self._persist_path is None:
                return mutate()
            return await asyncio.to_thread(self._write, mutate)

    async def _read(self, query: Callable[[], T]) -> T:
        async with self._lock:
            if self._persist_path is not None:
                await asyncio.to_thread(self._refresh)
            return query()

    # Check operations

    async def create_check(
        self,
        name: str,
        owner_id: str,
        interval_minutes: int = 5,
        grace_period_minutes: int = 0,
        slack_webhook_url: str | None = None,
    ) -> Check:
        """Create a check with a fresh heartbeat token."""

        def mutate() -> Check:
            token = generate_heartbeat_token()
            while token in self._tokens:
                token = generate_heartbeat_token()

            check = Check(
                heartbeat_token=token,
                name=name,
                owner_id=owner_id,
                interval_minutes=interval_minutes,
                grace_period_minutes=grace_period_minutes,
                slack_webhook_url=slack_webhook_url,
            )
            self._checks[check.id] = check
            self._tokens[token] = check.id
            return check

        check = await self._transact(mutate)
        logger.info("Check created", check_id=check.id, check_name=name)
        return check

    async def get_by_token(self, heartbeat_token: str) -> Check | None:
        """Resolve a check by its heartbeat token."""

        def query() -> Check | None:
            check_id = self._tokens.get(heartbeat_token)
            return self._checks.get(check_id) if check_id else None

        return await self._read(query)

    async def get_check(self, check_id: str) -> Check | None:
        """Get a check by ID."""
        return await self._read(lambda: self._checks.get(check_id))

    async def list_checks(self, owner_id: str | None = None) -> list[Check]:
        """List checks, optionally for one owner, ordered by name."""

        def query() -> list[Check]:
            checks = list(self._checks.values())
            if owner_id:
                checks = [c for c in checks if c.owner_id == owner_id]
            return sorted(checks, key=lambda c: c.name)

        return await self._read(query)

    async def delete_check(self, check_id: str) -> bool:
        """Delete a check and its runs."""

        def mutate() -> bool:
            check = self._checks.pop(check_id, None)
            if check is None:
                return False
            self._tokens.pop(check.heartbeat_token, None)
            self._runs.pop(check_id, None)
            return True

        return await self._transact(mutate)

    async def update_status(
        self,
        heartbeat_token: str,
        status: CheckStatus,
        pinged_at: datetime,
    ) -> Check:
        """
        Set status and last_pinged_at for the check owning a token.

        Raises:
            StoreError: If the token no longer resolves or the write fails
        """

        def mutate() -> Check:
            check_id = self._tokens.get(heartbeat_token)
            current = self._checks.get(check_id) if check_id else None
            if current is None:
                raise StoreError("Check disappeared before status update")

            updated = current.model_copy(
                update={"status": status, "last_pinged_at": pinged_at}
            )
            self._checks[current.id] = updated
            return updated

        return await self._transact(mutate)

    async def mark_status(
        self,
        check_id: str,
        status: CheckStatus,
        if_last_pinged_at: datetime | None = None,
    ) -> Check | None:
        """
        Set status without touching last_pinged_at.

        With if_last_pinged_at, the write only happens if the check has not
        been pinged since; otherwise None is returned.
        """

        def mutate() -> Check | None:
            current = self._checks.get(check_id)
            if current is None:
                raise StoreError(f"Check {check_id} not found")
            if if_last_pinged_at is not None and current.last_pinged_at != if_last_pinged_at:
                return None

            updated = current.model_copy(update={"status": status})
            self._checks[check_id] = updated
            return updated

        return await self._transact(mutate)

    # Run operations

    async def insert_run(self, run: CheckRun) -> CheckRun:
        """Append a run record and drop runs older than the retention window."""

        def mutate() -> CheckRun:
            if run.check_id not in self._checks:
                raise StoreError(f"Check {run.check_id} not found")

            cutoff = run.created_at - self._run_retention
            runs = [r for r in self._runs.get(run.check_id, []) if r.created_at >= cutoff]
            runs.append(run)
            self._runs[run.check_id] = runs
            return run

        return await self._transact(mutate)

    async def list_runs(
        self,
        check_id: str,
        since: datetime | None = None,
    ) -> list[CheckRun]:
        """Get runs for a check, oldest first."""

        def query() -> list[CheckRun]:
            runs = list(self._runs.get(check_id, []))
            if since:
                runs = [r for r in runs if r.created_at >= since]
            runs.sort(key=lambda r: r.created_at)
            return runs

        return await self._read(query)

    # Owner operations

    async def register_owner(self, owner_id: str, email: str) -> None:
        """Record the notification email for an owner."""

        def mutate() -> None:
            self._owners[owner_id] = email

        await self._transact(mutate)

    async def get_owner_email(self, owner_id: str) -> str | None:
        """Look up the notification email for an owner."""
        return await self._read(lambda: self._owners.get(owner_id))


# Global store instance
_store: CheckStore | None = None


def get_store(
    persist_path: Path | str | None = None,
    run_retention_days: int = 90,
) -> CheckStore:
    """Get the process-wide store instance."""
    global _store
    if _store is None:
        _store = CheckStore(persist_path=persist_path, run_retention_days=run_retention_days)
    return _store
