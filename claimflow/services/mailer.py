"""Outbound email delivery."""

import logging
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional, Protocol

import aiosmtplib

from claimflow.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class Attachment:
    filename: str
    content: bytes
    mime_subtype: str = "octet-stream"


class Mailer(Protocol):
    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> bool: ...


class SmtpMailer:
    """Delivers mail over SMTP. Raises on delivery failure."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def build_message(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> MIMEMultipart:
        override = self.settings.notify_override_email
        final_to = override or to
        if override:
            subject = f"[OVERRIDDEN to {final_to}] {subject} (orig: {to})"

        msg = MIMEMultipart("mixed")
        msg["From"] = f"{self.settings.smtp_from_name} <{self.settings.smtp_from_email}>"
        msg["To"] = final_to
        msg["Subject"] = subject

        body = MIMEMultipart("alternative")
        body.attach(MIMEText(text, "plain"))
        body.attach(MIMEText(html, "html"))
        msg.attach(body)

        for attachment in attachments or []:
            part = MIMEApplication(attachment.content, _subtype=attachment.mime_subtype)
            part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
            msg.attach(part)

        return msg

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> bool:
        """
        Send one message.

        Returns:
            False when no SMTP host is configured and nothing was sent
        """
        if not self.settings.smtp_host:
            logger.debug("SMTP not configured, not sending email to %s", to)
            return False

        msg = self.build_message(to, subject, html, text, attachments)
        await aiosmtplib.send(
            msg,
            hostname=self.settings.smtp_host,
            port=self.settings.smtp_port,
            username=self.settings.smtp_user,
            password=self.settings.smtp_password,
            use_tls=self.settings.smtp_use_tls,
            start_tls=self.settings.smtp_start_tls and not self.settings.smtp_use_tls,
        )
        return True
