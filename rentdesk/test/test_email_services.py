import smtplib
from unittest.mock import MagicMock, patch

import pytest

from rentdesk.core.config import SMTPConfig
from rentdesk.core.exceptions import EmailConfigurationError
from rentdesk.services.email_services import EmailMessage, EmailService, MailAttachment


@pytest.fixture
def smtp_config():
    return SMTPConfig(
        host="smtp.example.com",
        port=587,
        username="reports@example.com",
        password="app-password",
        from_name="Property Management",
    )


@pytest.fixture
def message():
    return EmailMessage(
        to_email="owner@example.com",
        subject="Monthly Report: 2024-02-01 to 2024-02-29",
        html="<p>Hello</p>",
        attachments=[MailAttachment(filename="payments-2024-02.csv", content="Unit Number,Tenant Name\n101,Asha")],
    )


class TestBuildMessage:

    def test_headers_and_parts(self, smtp_config, message):
        msg = EmailService(smtp_config).build_message(message, "abc", smtp_config)

        assert msg["From"] == "Property Management <reports@example.com>"
        assert msg["To"] == "owner@example.com"
        assert msg["Message-ID"] == "<abc@example.com>"

        parts = msg.get_payload()
        assert parts[0].get_content_type() == "text/html"
        assert parts[1].get_content_type() == "text/csv"
        assert parts[1].get_filename() == "payments-2024-02.csv"
        assert "101,Asha" in parts[1].get_payload(decode=True).decode("utf-8")


class TestSendEmail:

    @pytest.mark.asyncio
    async def test_missing_credentials(self, message):
        service = EmailService(SMTPConfig(username="", password=""))

        with pytest.raises(EmailConfigurationError):
            await service.send_email(message)

    @pytest.mark.asyncio
    async def test_credentials_read_from_environment(self, monkeypatch, message):
        monkeypatch.setenv("SMTP_USERNAME", "")
        monkeypatch.setenv("SMTP_PASSWORD", "")

        with pytest.raises(EmailConfigurationError):
            await EmailService().send_email(message)

    @pytest.mark.asyncio
    async def test_successful_send(self, smtp_config, message):
        service = EmailService(smtp_config)

        with patch.object(service, "_send_via_smtp") as send:
            result = await service.send_email(message)

        send.assert_called_once()
        assert result.status == "sent"
        assert result.to_email == "owner@example.com"

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(self, smtp_config, message):
        service = EmailService(smtp_config)

        with patch.object(service, "_send_via_smtp", side_effect=smtplib.SMTPAuthenticationError(535, b"bad")):
            with pytest.raises(smtplib.SMTPAuthenticationError):
                await service.send_email(message)


class TestSmtpTransport:

    def test_starttls(self, smtp_config):
        service = EmailService(smtp_config)
        msg = MagicMock()

        with patch("rentdesk.services.email_services.smtplib.SMTP") as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            service._send_via_smtp(msg, smtp_config)

        smtp_cls.assert_called_once_with("smtp.example.com", 587)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("reports@example.com", "app-password")
        server.send_message.assert_called_once_with(msg)

    def test_implicit_ssl(self, smtp_config):
        smtp_config.use_ssl = True
        smtp_config.port = 465
        msg = MagicMock()

        with patch("rentdesk.services.email_services.smtplib.SMTP_SSL") as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            EmailService(smtp_config)._send_via_smtp(msg, smtp_config)

        assert smtp_cls.call_args.args == ("smtp.example.com", 465)
        server.starttls.assert_not_called()
        server.send_message.assert_called_once_with(msg)
