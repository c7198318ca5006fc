"""Recording sender for tests and local development."""

from __future__ import annotations

import logging

from ..models import OtpChannel
from .delivery import DeliveryReceipt, OtpMessage, accepted, refused
from .ports import IMessageSender

logger = logging.getLogger(__name__)


class RecordingSender(IMessageSender):
    """Keeps every accepted message in `outbox` instead of sending it.

    Set `fail_with` to an error text to make the following sends come back
    refused.

    Example:
        ```python
        sender = RecordingSender(OtpChannel.PHONE)
        delivery = NotificationOtpDelivery(sms_sender=sender)

        await delivery.send_sms_otp("+15551234567", "123456")
        assert "123456" in sender.last.text
        ```
    """

    def __init__(self, channel: OtpChannel = OtpChannel.EMAIL) -> None:
        self.channel = channel
        self.outbox: list[tuple[str, OtpMessage]] = []
        self.fail_with: str | None = None

    async def deliver(self, destination: str, message: OtpMessage) -> DeliveryReceipt:
        if self.fail_with is not None:
            logger.debug("Refusing %s message as configured", self.channel.value)
            return refused(destination, self.channel, self.fail_with)
        self.outbox.append((destination, message))
        return accepted(
            destination, self.channel, provider_ref=f"local-{len(self.outbox)}"
        )

    def messages_to(self, destination: str) -> list[OtpMessage]:
        return [m for d, m in self.outbox if d == destination]

    @property
    def last(self) -> OtpMessage:
        if not self.outbox:
            raise AssertionError(f"No {self.channel.value} message was sent")
        return self.outbox[-1][1]


__all__: list[str] = ["RecordingSender"]
