# email_services.py - SMTP transport for HTML report emails

import asyncio
import logging
import smtplib
import ssl
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

import certifi

from rentdesk.core.config import SMTPConfig
from rentdesk.core.exceptions import EmailConfigurationError
from rentdesk.utils.formatters import mask_email

logger = logging.getLogger(__name__)


@dataclass
class MailAttachment:
    filename: str
    content: str
    mime_type: str = "text/csv"


@dataclass
class EmailResult:
    status: str  # 'sent' or 'failed'
    email_id: str
    sent_at: str
    to_email: str
    error: Optional[str] = None


@dataclass
class EmailMessage:
    to_email: str
    subject: str
    html: str
    attachments: List[MailAttachment] = field(default_factory=list)


class EmailService:
    """
    Sends HTML emails with optional attachments over SMTP.

    The account is read from the environment on every send so a credential
    rotation takes effect on the next run without a restart.
    """

    def __init__(self, config: Optional[SMTPConfig] = None):
        self._config = config

    @property
    def config(self) -> SMTPConfig:
        return self._config or SMTPConfig.from_env()

    def build_message(self, message: EmailMessage, email_id: str, config: SMTPConfig) -> MIMEMultipart:
        msg = MIMEMultipart("mixed")
        msg["Subject"] = message.subject
        msg["From"] = f"{config.from_name} <{config.username}>"
        msg["To"] = message.to_email
        domain = config.username.split("@")[-1] if "@" in config.username else "localhost"
        msg["Message-ID"] = f"<{email_id}@{domain}>"

        msg.attach(MIMEText(message.html, "html", "utf-8"))
        for attachment in message.attachments:
            maintype, _, subtype = attachment.mime_type.partition("/")
            if maintype == "text":
                part = MIMEText(attachment.content, subtype or "plain", "utf-8")
            else:
                part = MIMEApplication(attachment.content.encode("utf-8"), _subtype=subtype or "octet-stream")
            part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
            msg.attach(part)
        return msg

    async def send_email(self, message: EmailMessage) -> EmailResult:
        """
        Send one message.

        Raises:
            EmailConfigurationError: SMTP account or password missing
            smtplib.SMTPException / OSError: transport failures
        """
        config = self.config
        if not config.is_configured:
            raise EmailConfigurationError("Missing SMTP_USERNAME or SMTP_PASSWORD in environment")

        email_id = str(uuid.uuid4())
        msg = self.build_message(message, email_id, config)

        await asyncio.to_thread(self._send_via_smtp, msg, config)

        logger.info(f"Email sent: {email_id} to {mask_email(message.to_email)}")
        return EmailResult(
            status="sent",
            email_id=email_id,
            sent_at=datetime.now(timezone.utc).isoformat(),
            to_email=message.to_email,
        )

    def _send_via_smtp(self, msg: MIMEMultipart, config: SMTPConfig) -> None:
        """Blocking SMTP delivery; runs in a worker thread"""
        context = ssl.create_default_context(cafile=certifi.where())

        if config.use_ssl:
            with smtplib.SMTP_SSL(config.host, config.port, context=context) as server:
                server.login(config.username, config.password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(config.host, config.port) as server:
                if config.use_tls:
                    server.starttls(context=context)
                server.login(config.username, config.password)
                server.send_message(msg)
