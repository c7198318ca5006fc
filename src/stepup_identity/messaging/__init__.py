"""Outbound messaging for one-time codes (email via SMTP, SMS via Twilio)."""

from __future__ import annotations

from .delivery import DeliveryReceipt, OtpMessage
from .exceptions import (
    DeliveryNotConfiguredError,
    NotificationDeliveryError,
    NotificationError,
)
from .memory import RecordingSender
from .otp import NotificationOtpDelivery, OtpMessageRenderer
from .ports import IMessageSender
from .smtp import SmtpEmailSender
from .twilio import TwilioSMSSender

__all__: list[str] = [
    "OtpMessage",
    "DeliveryReceipt",
    "NotificationError",
    "NotificationDeliveryError",
    "DeliveryNotConfiguredError",
    "IMessageSender",
    "RecordingSender",
    "OtpMessageRenderer",
    "NotificationOtpDelivery",
    "SmtpEmailSender",
    "TwilioSMSSender",
]
