"""Email delivery through Amazon SES."""

import asyncio
import logging
import uuid
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from officemate.aws.clients import get_client
from officemate.config import get_settings
from officemate.errors import ExternalServiceError

logger = logging.getLogger(__name__)


def _mask(email: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local[:2]}****@{domain}"


class EmailSender:
    """Sends HTML or text mail with SES ``send_email``."""

    def __init__(self, client=None, dry_run: Optional[bool] = None):
        settings = get_settings()
        self._client = client
        self.dry_run = settings.notifications_dry_run if dry_run is None else dry_run
        self.source = f"{settings.ses_from_name} <{settings.ses_from_email}>"
        self.configuration_set = settings.ses_configuration_set

    @property
    def client(self):
        if self._client is None:
            self._client = get_client("ses")
        return self._client

    async def send_email(self, to_email: str, subject: str, body: str, html: bool = True) -> str:
        """Send one email and return the SES message id."""
        if self.dry_run:
            message_id = f"dryrun-{uuid.uuid4()}"
            logger.info(f"[DRY RUN] Email to {_mask(to_email)}: {subject!r} ({message_id})")
            return message_id

        body_key = "Html" if html else "Text"
        request = {
            "Source": self.source,
            "Destination": {"ToAddresses": [to_email]},
            "Message": {
                "Subject": {"Data": subject, "Charset": "UTF-8"},
                "Body": {body_key: {"Data": body, "Charset": "UTF-8"}},
            },
        }
        if self.configuration_set:
            request["ConfigurationSetName"] = self.configuration_set

        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(None, lambda: self.client.send_email(**request))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to send email to {_mask(to_email)}: {e}")
            raise ExternalServiceError("SES", f"Failed to send email: {e}")

        message_id = response["MessageId"]
        logger.info(f"Email sent to {_mask(to_email)} ({message_id})")
        return message_id

    async def send_otp_email(self, to_email: str, otp: str) -> str:
        minutes = get_settings().email_otp_expiration_minutes
        body = (
            "<html><body>"
            "<h2>Verify your corporate email</h2>"
            f"<p>Your OfficeMate verification code is: <strong>{otp}</strong></p>"
            f"<p>This code expires in {minutes} minutes. "
            "If you did not request it, you can ignore this email.</p>"
            "</body></html>"
        )
        return await self.send_email(to_email, "OfficeMate - Email Verification Code", body)

    async def send_email_change_notification(self, to_email: str, change: str) -> str:
        """Tell the account holder their corporate email changed."""
        body = (
            "<html><body>"
            "<h2>Your corporate email was changed</h2>"
            f"<p>{change}</p>"
            "<p>If you did not make this change, contact support immediately.</p>"
            "</body></html>"
        )
        return await self.send_email(to_email, "OfficeMate - Corporate Email Updated", body)


# Singleton sender instance
_sender: Optional[EmailSender] = None


def get_email_sender() -> EmailSender:
    """Get or create the shared email sender."""
    global _sender
    if _sender is None:
        _sender = EmailSender()
    return _sender


def set_email_sender(sender: Optional[EmailSender]) -> None:
    """Replace the shared sender (useful for testing)."""
    global _sender
    _sender = sender
