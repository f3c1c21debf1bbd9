import smtplib
from email.message import EmailMessage
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tasky.core.exceptions import DeliveryError
from tasky.services import (
    LogTransport,
    NotificationService,
    SmtpTransport,
    generate_reset_token,
    generate_verification_code,
)
from tasky.services.notification_service import transport_from_settings


def test_verification_code_is_five_digits():
    codes = {generate_verification_code() for _ in range(200)}

    assert all(len(code) == 5 and code.isdigit() for code in codes)
    assert all(10000 <= int(code) <= 99999 for code in codes)
    assert len(codes) > 1


def test_reset_token_is_64_hex_chars():
    token = generate_reset_token()

    assert len(token) == 64
    int(token, 16)
    assert generate_reset_token() != token


class TestNotificationService:
    @pytest.mark.asyncio
    async def test_verification_email(self, transport, settings):
        service = NotificationService(transport, settings)

        await service.send_verification_email("ann@x.com", "12345")

        message = transport.sent[0]
        assert message["To"] == "ann@x.com"
        assert message["From"] == settings.MAIL_FROM
        assert "Verification" in message["Subject"]
        assert "12345" in transport.last_text()
        html = message.get_body(preferencelist=("html",)).get_content()
        assert "<strong>12345</strong>" in html

    @pytest.mark.asyncio
    async def test_raw_email_html_falls_back_to_text(self, transport, settings):
        service = NotificationService(transport, settings)

        await service.send_raw_email("bob@x.com", "Hello", "Hi <Bob>")

        html = transport.sent[0].get_body(preferencelist=("html",)).get_content()
        assert "Hi &lt;Bob&gt;" in html

    @pytest.mark.asyncio
    async def test_transport_failure_raises_delivery_error(self, settings):
        transport = MagicMock()
        transport.send = AsyncMock(side_effect=smtplib.SMTPException("boom"))
        service = NotificationService(transport, settings)

        with pytest.raises(DeliveryError) as exc:
            await service.send_password_reset_email("ann@x.com", "abc")

        assert exc.value.status_code == 500
        assert exc.value.message == "Failed to send password reset email"
        transport.send.assert_awaited_once()


class TestTransports:
    def test_log_transport_without_mail_host(self, settings):
        assert isinstance(transport_from_settings(settings), LogTransport)

    def test_smtp_transport_from_settings(self, settings_factory):
        cfg = settings_factory(MAIL_HOST="smtp.example.com", MAIL_USERNAME="bot", MAIL_PASSWORD="pw")

        transport = transport_from_settings(cfg)

        assert isinstance(transport, SmtpTransport)
        assert transport.host == "smtp.example.com"
        assert transport.password == "pw"

    @pytest.mark.asyncio
    async def test_log_transport_keeps_messages(self):
        transport = LogTransport()
        message = EmailMessage()
        message["To"] = "ann@x.com"
        message["Subject"] = "Hi"

        await transport.send(message)

        assert transport.sent == [message]

    @pytest.mark.asyncio
    async def test_smtp_transport_uses_starttls_and_login(self):
        transport = SmtpTransport("smtp.example.com", 587, username="bot", password="pw", timeout=5)
        message = EmailMessage()

        with patch("tasky.services.notification_service.smtplib.SMTP") as smtp_cls:
            await transport.send(message)

        smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=5)
        smtp = smtp_cls.return_value.__enter__.return_value
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("bot", "pw")
        smtp.send_message.assert_called_once_with(message)
