# fleetgate/services/notifier.py
"""
Notifier — fire-and-forget email through the MailerSend API.

  POST {MAILERSEND_URL}   Authorization: Bearer <key>
  202 Accepted, X-Message-Id: <id>

send() never raises: every outcome is a NotificationResult {ok, id, error},
and each attempt is written to the notification_log table when a session
factory is given. dispatch() schedules send() as a background task so gate
decisions and registration steps never wait on email delivery.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError

from fleetgate.config import settings
from fleetgate.models.notification_log import NotificationLog
from fleetgate.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class NotificationResult:
    ok: bool
    id: Optional[str] = None
    error: Optional[str] = None


class Notifier:
    def __init__(
        self,
        session_factory: Optional[Callable] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        enabled: Optional[bool] = None,
    ):
        self.session_factory = session_factory
        self.transport = transport
        self.enabled = settings.ENABLE_EMAIL if enabled is None else enabled
        self._pending: set[asyncio.Task] = set()

    def _record(self, to: str, subject: str, result: NotificationResult):
        if self.session_factory is None:
            return
        db = self.session_factory()
        try:
            db.add(NotificationLog(
                recipient=to,
                subject=subject[:300],
                ok=1 if result.ok else 0,
                provider_id=result.id,
                error=result.error,
                attempted_at=datetime.now(timezone.utc),
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"[NOTIFY] Could not record attempt to {to}: {e}")
        finally:
            db.close()

    async def _post(self, to: str, subject: str, body_markup: str) -> NotificationResult:
        if not settings.MAILERSEND_API_KEY or not settings.MAILERSEND_FROM:
            return NotificationResult(False, error="MAILERSEND_API_KEY or MAILERSEND_FROM not configured")

        payload = {
            "from": {"email": settings.MAILERSEND_FROM},
            "to": [{"email": to}],
            "subject": subject,
            "html": body_markup,
        }
        headers = {"Authorization": f"Bearer {settings.MAILERSEND_API_KEY}"}
        try:
            async with httpx.AsyncClient(timeout=settings.NOTIFY_TIMEOUT_SECONDS,
                                         transport=self.transport) as client:
                response = await client.post(settings.MAILERSEND_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            return NotificationResult(False, error=f"{type(e).__name__}: {e}")

        if response.status_code >= 400:
            return NotificationResult(False, error=f"HTTP {response.status_code}: {response.text[:200]}")
        return NotificationResult(True, id=response.headers.get("X-Message-Id"))

    async def send(self, to: Optional[str], subject: str, body_markup: str) -> NotificationResult:
        if not to:
            return NotificationResult(False, error="no recipient")
        if not self.enabled:
            logger.debug(f"[NOTIFY] Email disabled, skipped '{subject}' to {to}")
            return NotificationResult(False, error="email disabled")

        result = await self._post(to, subject, body_markup)
        if result.ok:
            logger.info(f"[NOTIFY] Sent '{subject}' to {to} (id={result.id})")
        else:
            logger.warning(f"[NOTIFY] Failed '{subject}' to {to}: {result.error}")
        self._record(to, subject, result)
        return result

    def dispatch(self, to: Optional[str], subject: str, body_markup: str) -> Optional[asyncio.Task]:
        """Schedule send() on the running loop and return immediately."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"[NOTIFY] No running event loop, dropped '{subject}' to {to}")
            return None
        task = loop.create_task(self.send(to, subject, body_markup))
        self._pending.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task):
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[NOTIFY] Background send crashed: {task.exception()}")

    async def drain(self):
        """Wait for every dispatched notification (tests, shutdown)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
