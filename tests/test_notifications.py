"""Tests for SNS and SES delivery."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from officemate.errors import ExternalServiceError
from officemate.notifications.email import EmailSender
from officemate.notifications.sms import SmsSender


def failing(operation: str) -> ClientError:
    return ClientError({"Error": {"Code": "Throttling", "Message": "Rate exceeded"}}, operation)


class TestSmsSender:
    @pytest.mark.asyncio
    async def test_dry_run_skips_sns(self):
        client = MagicMock()
        sender = SmsSender(client=client, dry_run=True)

        message_id = await sender.send_sms("+919876543210", "hello")
        assert message_id.startswith("dryrun-")
        client.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_publish(self):
        client = MagicMock()
        client.publish.return_value = {"MessageId": "sns-1"}
        sender = SmsSender(client=client, dry_run=False)

        assert await sender.send_otp_sms("+919876543210", "123456") == "sns-1"
        kwargs = client.publish.call_args.kwargs
        assert kwargs["PhoneNumber"] == "+919876543210"
        assert "123456" in kwargs["Message"]
        assert kwargs["MessageAttributes"]["AWS.SNS.SMS.SMSType"]["StringValue"] == sender.sms_type

    @pytest.mark.asyncio
    async def test_failure_wrapped(self):
        client = MagicMock()
        client.publish.side_effect = failing("Publish")
        sender = SmsSender(client=client, dry_run=False)

        with pytest.raises(ExternalServiceError) as exc_info:
            await sender.send_sms("+919876543210", "hello")
        assert exc_info.value.service == "SNS"
        assert exc_info.value.status_code == 502


class TestEmailSender:
    @pytest.mark.asyncio
    async def test_dry_run_skips_ses(self):
        client = MagicMock()
        sender = EmailSender(client=client, dry_run=True)

        assert (await sender.send_otp_email("jane.doe@acme.com", "123456")).startswith("dryrun-")
        client.send_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_html(self):
        client = MagicMock()
        client.send_email.return_value = {"MessageId": "ses-1"}
        sender = EmailSender(client=client, dry_run=False)

        assert await sender.send_otp_email("jane.doe@acme.com", "654321") == "ses-1"
        request = client.send_email.call_args.kwargs
        assert request["Destination"] == {"ToAddresses": ["jane.doe@acme.com"]}
        assert "654321" in request["Message"]["Body"]["Html"]["Data"]
        assert request["Source"] == sender.source

    @pytest.mark.asyncio
    async def test_send_text(self):
        client = MagicMock()
        client.send_email.return_value = {"MessageId": "ses-2"}
        sender = EmailSender(client=client, dry_run=False)

        await sender.send_email("jane.doe@acme.com", "Hi", "plain body", html=False)
        assert "Text" in client.send_email.call_args.kwargs["Message"]["Body"]

    @pytest.mark.asyncio
    async def test_failure_wrapped(self):
        client = MagicMock()
        client.send_email.side_effect = failing("SendEmail")
        sender = EmailSender(client=client, dry_run=False)

        with pytest.raises(ExternalServiceError) as exc_info:
            await sender.send_email_change_notification("jane.doe@acme.com", "Changed")
        assert exc_info.value.service == "SES"
