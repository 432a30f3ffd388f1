"""Notification delivery (SMS via SNS, email via SES)."""

from officemate.notifications.email import EmailSender, get_email_sender
from officemate.notifications.sms import SmsSender, get_sms_sender

__all__ = ["SmsSender", "EmailSender", "get_sms_sender", "get_email_sender"]
