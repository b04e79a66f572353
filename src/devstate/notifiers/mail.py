"""SMTP mail notifier."""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage

from devstate.config import MailerSettings
from devstate.exceptions import NotifierError

_logger = logging.getLogger(__name__)


class MailNotifier:
    """Sends plain-text mail through SMTP.

    ``smtplib`` is blocking, so each send runs in the default executor.
    Failures are not retried.
    """

    name = "mail"

    def __init__(self, settings: MailerSettings) -> None:
        self._settings = settings

    def build_message(self, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._settings.sender or ""
        message["To"] = ", ".join(self._settings.recipients)
        message["Subject"] = subject
        message.set_content(body)
        return message

    async def send(self, subject: str, body: str) -> None:
        message = self.build_message(subject, body)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._send_sync, message)
        _logger.debug("Mail sent to %s subject=%r", message["To"], subject)

    async def aclose(self) -> None:
        return None

    def _send_sync(self, message: EmailMessage) -> None:
        settings = self._settings
        host = settings.host or "localhost"
        try:
            if settings.secure:
                smtp: smtplib.SMTP = smtplib.SMTP_SSL(
                    host,
                    settings.port,
                    timeout=settings.timeout,
                    context=ssl.create_default_context(),
                )
            else:
                smtp = smtplib.SMTP(host, settings.port, timeout=settings.timeout)
            with smtp:
                if not settings.secure:
                    smtp.ehlo()
                    if smtp.has_extn("starttls"):
                        smtp.starttls(context=ssl.create_default_context())
                        smtp.ehlo()
                if settings.username:
                    smtp.login(settings.username, settings.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotifierError(f"Mail to {host}:{settings.port} failed: {exc}", channel=self.name) from exc
