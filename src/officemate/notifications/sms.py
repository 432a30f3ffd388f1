"""SMS delivery through Amazon SNS.

Uses a singleton sender shared by OTP, SOS and location-sharing flows.
With NOTIFICATIONS_DRY_RUN the message is only logged.
"""

import asyncio
import logging
import uuid
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from officemate.aws.clients import get_client
from officemate.config import get_settings
from officemate.errors import ExternalServiceError

logger = logging.getLogger(__name__)

OTP_MESSAGE = "Your OfficeMate verification code is: {otp}. Valid for {minutes} minutes."


def _mask(phone_number: str) -> str:
    return "****" + phone_number[-4:] if len(phone_number) >= 4 else "****"


class SmsSender:
    """Sends text messages with SNS ``publish``."""

    def __init__(self, client=None, dry_run: Optional[bool] = None):
        settings = get_settings()
        self._client = client
        self.dry_run = settings.notifications_dry_run if dry_run is None else dry_run
        self.sender_id = settings.sns_sender_id
        self.sms_type = settings.sns_sms_type
        self.max_price = settings.sns_max_price

    @property
    def client(self):
        if self._client is None:
            self._client = get_client("sns")
        return self._client

    def _message_attributes(self) -> dict:
        return {
            "AWS.SNS.SMS.SMSType": {"DataType": "String", "StringValue": self.sms_type},
            "AWS.SNS.SMS.SenderID": {"DataType": "String", "StringValue": self.sender_id},
            "AWS.SNS.SMS.MaxPrice": {"DataType": "Number", "StringValue": self.max_price},
        }

    async def send_sms(self, phone_number: str, message: str) -> str:
        """Send an SMS.

        Args:
            phone_number: Recipient in E.164 format
            message: Text body

        Returns:
            SNS message id (``dryrun-...`` in dry-run mode)

        Raises:
            ExternalServiceError: If SNS rejects the request
        """
        if self.dry_run:
            message_id = f"dryrun-{uuid.uuid4()}"
            logger.info(f"[DRY RUN] SMS to {_mask(phone_number)}: {len(message)} chars ({message_id})")
            return message_id

        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self.client.publish(
                    PhoneNumber=phone_number,
                    Message=message,
                    MessageAttributes=self._message_attributes(),
                ),
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to send SMS to {_mask(phone_number)}: {e}")
            raise ExternalServiceError("SNS", f"Failed to send SMS: {e}")

        message_id = response["MessageId"]
        logger.info(f"SMS sent to {_mask(phone_number)} ({message_id})")
        return message_id

    async def send_otp_sms(self, phone_number: str, otp: str) -> str:
        minutes = get_settings().otp_expiration_minutes
        return await self.send_sms(phone_number, OTP_MESSAGE.format(otp=otp, minutes=minutes))


# Singleton sender instance
_sender: Optional[SmsSender] = None


def get_sms_sender() -> SmsSender:
    """Get or create the shared SMS sender."""
    global _sender
    if _sender is None:
        _sender = SmsSender()
    return _sender


def set_sms_sender(sender: Optional[SmsSender]) -> None:
    """Replace the shared sender (useful for testing)."""
    global _sender
    _sender = sender
