"""E-mail notifications.

Messages are built with :class:`email.message.EmailMessage` and handed to a
:class:`MailTransport`. The SMTP transport runs the blocking ``smtplib`` calls
in a worker thread so the event loop is never blocked.
"""

import asyncio
import secrets
import smtplib
from email.message import EmailMessage
from html import escape
from typing import List, Optional, Protocol

from tasky.core.exceptions import DeliveryError
from tasky.core.logging import get_logger
from tasky.core.settings import TaskySettings, get_tasky_config

logger = get_logger("services.notifications")


def generate_verification_code() -> str:
    """Return a uniformly random 5-digit code (10000-99999)."""
    return str(10000 + secrets.randbelow(90000))


def generate_reset_token() -> str:
    """Return 32 random bytes as 64 hex characters."""
    return secrets.token_hex(32)


class MailTransport(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class SmtpTransport:
    """Deliver messages through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _send_sync(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(message)

    async def send(self, message: EmailMessage) -> None:
        await asyncio.to_thread(self._send_sync, message)


class LogTransport:
    """Transport used when no SMTP host is configured: messages are only logged."""

    def __init__(self):
        self.sent: List[EmailMessage] = []

    async def send(self, message: EmailMessage) -> None:
        self.sent.append(message)
        logger.info("email_logged", to=message["To"], subject=message["Subject"])


def transport_from_settings(settings: TaskySettings) -> MailTransport:
    if not settings.MAIL_HOST:
        logger.warning("mail_transport_disabled", reason="TASKY__MAIL_HOST is not set")
        return LogTransport()
    return SmtpTransport(
        host=settings.MAIL_HOST,
        port=settings.MAIL_PORT,
        username=settings.MAIL_USERNAME,
        password=settings.MAIL_PASSWORD.get_secret_value() if settings.MAIL_PASSWORD else None,
        use_tls=settings.MAIL_USE_TLS,
        timeout=settings.MAIL_TIMEOUT,
    )


class NotificationService:
    def __init__(self, transport: Optional[MailTransport] = None, settings: Optional[TaskySettings] = None):
        self.settings = settings or get_tasky_config()
        self.transport = transport if transport is not None else transport_from_settings(self.settings)

    def build_message(self, to: str, subject: str, text: str, html: Optional[str] = None) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.settings.MAIL_FROM
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html or f"<p>{escape(text)}</p>", subtype="html")
        return message

    async def _deliver(self, message: EmailMessage, failure: str) -> None:
        try:
            await self.transport.send(message)
        except Exception as e:
            logger.error("email_failed", to=message["To"], subject=message["Subject"], error=str(e))
            raise DeliveryError(failure) from e
        logger.info("email_sent", to=message["To"], subject=message["Subject"])

    async def send_verification_email(self, address: str, code: str) -> None:
        minutes = self.settings.VERIFICATION_CODE_TTL // 60
        text = (
            f"Your Tasky verification code is: {code}\n\n"
            f"The code expires in {minutes} minutes. "
            "If you did not request it, you can ignore this email."
        )
        html = (
            "<h2>Verify your email</h2>"
            f"<p>Your Tasky verification code is: <strong>{escape(code)}</strong></p>"
            f"<p>The code expires in {minutes} minutes.</p>"
        )
        message = self.build_message(address, "Tasky - Email Verification", text, html)
        await self._deliver(message, "Failed to send verification email")

    async def send_password_reset_email(self, address: str, token: str) -> None:
        link = f"{self.settings.PASSWORD_RESET_URL}?token={token}"
        text = (
            "A password reset was requested for your Tasky account.\n\n"
            f"Reset your password here: {link}\n\n"
            "If you did not request it, you can ignore this email."
        )
        html = (
            "<h2>Reset your password</h2>"
            f'<p><a href="{escape(link)}">Click here to reset your password</a></p>'
            "<p>If you did not request it, you can ignore this email.</p>"
        )
        message = self.build_message(address, "Tasky - Password Reset", text, html)
        await self._deliver(message, "Failed to send password reset email")

    async def send_raw_email(self, to: str, subject: str, text: str, html: Optional[str] = None) -> None:
        message = self.build_message(to, subject, text, html)
        await self._deliver(message, "Failed to send email")
