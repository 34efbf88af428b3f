from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional, Set

from .config import Settings
from .utils import mask_contact_value

logger = logging.getLogger("wishchat.notifier")


class EmailNotifier:
    """Fire-and-forget confirmation mail over SMTP."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._pending: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self._settings.smtp_host and self._settings.mail_from)

    def notify_by_email(self, to_address: str, subject: str, body: str) -> Optional[asyncio.Task]:
        """Purpose: Schedule a confirmation e-mail without blocking the turn.
        Inputs/Outputs: Inputs are recipient, subject and body; returns the scheduled task or None.
        Side Effects / State: Starts an SMTP send on a worker thread.
        Dependencies: Uses smtplib via asyncio.to_thread; needs a running event loop.
        Failure Modes: SMTP errors are logged inside the task and never reach the caller.
        If Removed: Users get no mail confirming their complaint or feedback.
        Testing Notes: With SMTP_HOST unset the call returns None and logs the skip.
        """
        # Skip quietly when mail is not configured.
        if not self.enabled:
            logger.info("email to=%s status=skipped reason=smtp_not_configured", mask_contact_value(to_address))
            return None
        task = asyncio.get_running_loop().create_task(self._deliver(to_address, subject, body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for mails still in flight (used at shutdown)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, to_address: str, subject: str, body: str) -> None:
        try:
            await asyncio.to_thread(self._send, to_address, subject, body)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("email to=%s status=failed error=%s", mask_contact_value(to_address), exc)
            return
        logger.info("email to=%s status=sent", mask_contact_value(to_address))

    def _send(self, to_address: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self._settings.mail_from
        message["To"] = to_address
        message["Subject"] = subject
        message.set_content(body)
        with smtplib.SMTP(self._settings.smtp_host, self._settings.smtp_port, timeout=30) as smtp:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                smtp.starttls()
                smtp.ehlo()
            if self._settings.smtp_user:
                smtp.login(self._settings.smtp_user, self._settings.smtp_password)
            smtp.send_message(message)
