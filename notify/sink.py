"""
notify/sink.py -- Email delivery behind a small boolean contract.

Contract:
    await sink.send(to, subject, body) -> bool

    True   the message was accepted for delivery
    False  the server rejected the recipient (bad address)
    raises NotificationError when the transport itself failed (connection
           refused, auth failure, timeout)

Callers decide what a failure means. Signup and password recovery treat
False or NotificationError as a failed request; approval and denial notices
go through deliver_quietly(), which logs and moves on.

smtplib is blocking, so SmtpNotificationSink runs it in the worker thread
pool. In dev mode with no SMTP_HOST, build_sink() returns a
LoggingNotificationSink that logs recipient and subject and sends nothing.
Production without SMTP_HOST is a startup error.
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.text import MIMEText
from typing import Protocol

from starlette.concurrency import run_in_threadpool

from auth.errors import NotificationError
from core.config import Settings

logger = logging.getLogger("memberauth.notify")


class NotificationSink(Protocol):
    async def send(self, to: str, subject: str, body: str) -> bool: ...


class SmtpNotificationSink:
    """Send plain-text email through an SMTP relay (STARTTLS by default)."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        user: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
        from_email: str = "noreply@localhost",
        from_name: str = "",
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.from_email = from_email
        self.from_name = from_name

    def _create_message(self, to: str, subject: str, body: str) -> MIMEText:
        msg = MIMEText(body, "plain", "utf-8")
        msg["From"] = f"{self.from_name} <{self.from_email}>" if self.from_name else self.from_email
        msg["To"] = to
        msg["Subject"] = subject
        return msg

    def _send_sync(self, to: str, subject: str, body: str) -> bool:
        msg = self._create_message(to, subject, body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.user:
                    server.login(self.user, self.password)
                refused = server.send_message(msg)
        except smtplib.SMTPRecipientsRefused as exc:
            logger.warning("Recipient rejected by SMTP server: %s (%s)", to, exc.recipients)
            return False
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP delivery to %s failed: %s", to, exc)
            raise NotificationError() from exc
        if refused:
            logger.warning("Recipient rejected by SMTP server: %s (%s)", to, refused)
            return False
        logger.info("Email sent to %s: %s", to, subject)
        return True

    async def send(self, to: str, subject: str, body: str) -> bool:
        return await run_in_threadpool(self._send_sync, to, subject, body)


class LoggingNotificationSink:
    """Development sink: log recipient and subject, report success.

    Bodies carry verification links and temporary passwords and are never logged.
    """

    async def send(self, to: str, subject: str, body: str) -> bool:
        logger.info("Email (not sent, no SMTP_HOST) to=%s subject=%r (%d chars)", to, subject, len(body))
        return True


def build_sink(settings: Settings) -> NotificationSink:
    if not settings.smtp_host:
        if not settings.debug:
            raise ValueError("SMTP_HOST is required in production mode.")
        logger.warning("SMTP_HOST not configured -- emails will not be sent")
        return LoggingNotificationSink()
    return SmtpNotificationSink(
        host=settings.smtp_host,
        port=settings.smtp_port,
        user=settings.smtp_user,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        timeout=settings.smtp_timeout,
        from_email=settings.mail_from,
        from_name=settings.mail_from_name,
    )


async def deliver(sink: NotificationSink, to: str, subject: str, body: str) -> bool:
    """Send and fold transport failures into False. Used where failure aborts the request."""
    try:
        return await sink.send(to, subject, body)
    except NotificationError:
        return False


async def deliver_quietly(sink: NotificationSink, to: str, subject: str, body: str) -> None:
    """Fire-and-forget delivery for background tasks. Failures are logged only."""
    if not await deliver(sink, to, subject, body):
        logger.warning("Notification to %s was not delivered: %s", to, subject)
