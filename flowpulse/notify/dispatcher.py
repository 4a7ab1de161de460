"""
Notification Dispatcher

Queues notification jobs off the ingestion path and delivers them to
email and Slack. Channels are independent: a failure on one is logged
and never affects the other or the ping response.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, Callable, Protocol

import structlog

from flowpulse.config import Settings
from flowpulse.notify.email import EmailNotConfiguredError, EmailNotifier
from flowpulse.notify.models import NotificationChannel, NotificationJob
from flowpulse.notify.slack import SlackNotifier

logger = structlog.get_logger(__name__)

# Resolves an owner id to an email address
OwnerLookup = Callable[[str], Awaitable[str | None]]


class EmailSender(Protocol):
    async def send(self, job: NotificationJob, recipient: str) -> object: ...


class SlackSender(Protocol):
    async def send(self, job: NotificationJob) -> None: ...


class NotificationDispatcher:
    """
    Delivers notification jobs.

    Once started, submit() only enqueues and a background worker does the
    delivery. When not started, submit() delivers inline.
    """

    def __init__(
        self,
        owner_lookup: OwnerLookup,
        email_notifier: EmailSender | None = None,
        slack_notifier: SlackSender | None = None,
        max_queue_size: int = 1000,
    ) -> None:
        self._owner_lookup = owner_lookup
        self.email_notifier = email_notifier
        self.slack_notifier = slack_notifier
        self._max_queue_size = max_queue_size
        self._queue: asyncio.Queue[NotificationJob] | None = None
        self._worker: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        """Start the background delivery worker."""
        if self.is_running:
            logger.warning("Notification dispatcher already running")
            return

        self._queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._worker = asyncio.create_task(self._run(), name="notification-dispatcher")
        logger.info("Notification dispatcher started")

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Drain pending jobs (bounded by drain_timeout) and stop the worker."""
        if self._worker is None:
            await self._close_notifiers()
            return

        if self._queue is not None:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Dropping undelivered notifications",
                    pending=self._queue.qsize(),
                )

        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        self._queue = None

        await self._close_notifiers()
        logger.info("Notification dispatcher stopped")

    async def _close_notifiers(self) -> None:
        for notifier in (self.email_notifier, self.slack_notifier):
            close = getattr(notifier, "close", None)
            if close is not None:
                await close()

    async def submit(self, job: NotificationJob) -> bool:
        """
        Hand a job to the dispatcher.

        Returns:
            True if the job was queued or delivered, False if it was dropped
        """
        if not self.is_running or self._queue is None:
            await self.deliver(job)
            return True

        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            logger.warning("Notification queue full, dropping job", check_id=job.check_id)
            return False
        return True

    async def drain(self) -> None:
        """Wait until every queued job has been delivered."""
        if self._queue is not None:
            await self._queue.join()

    async def deliver(self, job: NotificationJob) -> NotificationJob:
        """Deliver a job to every applicable channel."""
        tasks = [self._send_email(job)]
        if job.slack_webhook_url:
            tasks.append(self._send_slack(job))

        await asyncio.gather(*tasks)
        return job

    async def _run(self) -> None:
        """Worker loop."""
        assert self._queue is not None
        while True:
            job = await self._queue.get()
            try:
                await self.deliver(job)
            except Exception as e:
                logger.error("Notification delivery crashed", check_id=job.check_id, error=str(e))
            finally:
                self._queue.task_done()

    async def _send_email(self, job: NotificationJob) -> None:
        if self.email_notifier is None:
            return

        try:
            recipient = await self._owner_lookup(job.owner_id)
            if not recipient:
                logger.warning("No email on file for check owner", check_id=job.check_id)
                return

            await self.email_notifier.send(job, recipient)
            job.mark_delivered(NotificationChannel.EMAIL)

        except EmailNotConfiguredError as e:
            logger.warning("Email notifications disabled", check_id=job.check_id, error=str(e))
            job.mark_delivery_failed(NotificationChannel.EMAIL, str(e))
        except Exception as e:
            logger.error(
                "Failed to send email notification",
                check_id=job.check_id,
                error=str(e),
            )
            job.mark_delivery_failed(NotificationChannel.EMAIL, str(e))

    async def _send_slack(self, job: NotificationJob) -> None:
        if self.slack_notifier is None:
            return

        try:
            await self.slack_notifier.send(job)
            job.mark_delivered(NotificationChannel.SLACK)
        except Exception as e:
            logger.error(
                "Failed to send Slack notification",
                check_id=job.check_id,
                error=str(e),
            )
            job.mark_delivery_failed(NotificationChannel.SLACK, str(e))


def build_dispatcher(owner_lookup: OwnerLookup, settings: Settings) -> NotificationDispatcher:
    """Create a dispatcher with the Resend and Slack senders from settings."""
    return NotificationDispatcher(
        owner_lookup=owner_lookup,
        email_notifier=EmailNotifier(
            api_key=settings.resend_api_key,
            from_address=settings.email_from,
            api_url=settings.resend_api_url,
            timeout_seconds=settings.notification_timeout_seconds,
        ),
        slack_notifier=SlackNotifier(timeout_seconds=settings.notification_timeout_seconds),
        max_queue_size=settings.notification_queue_size,
    )
