"""Rendered OTP messages and the receipts senders return for them."""

from __future__ import annotations

from dataclasses import dataclass

from ..models import OtpChannel


@dataclass(frozen=True)
class OtpMessage:
    """A one-time code message ready for a provider.

    `subject` and `html` are only used by email senders.
    """

    text: str
    subject: str | None = None
    html: str | None = None


@dataclass(frozen=True)
class DeliveryReceipt:
    """Outcome of handing one message to a provider.

    Attributes:
        destination: Email address or phone number.
        channel: Channel the sender serves.
        accepted: Whether the provider took the message.
        provider_ref: Provider message id, such as a Twilio SID.
        error: Provider error text when the message was refused.
    """

    destination: str
    channel: OtpChannel
    accepted: bool
    provider_ref: str | None = None
    error: str | None = None


def accepted(
    destination: str, channel: OtpChannel, provider_ref: str | None = None
) -> DeliveryReceipt:
    return DeliveryReceipt(
        destination=destination,
        channel=channel,
        accepted=True,
        provider_ref=provider_ref,
    )


def refused(destination: str, channel: OtpChannel, error: str) -> DeliveryReceipt:
    return DeliveryReceipt(
        destination=destination, channel=channel, accepted=False, error=error
    )


__all__: list[str] = ["OtpMessage", "DeliveryReceipt", "accepted", "refused"]
