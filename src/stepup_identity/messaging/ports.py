"""Message sender port."""

from __future__ import annotations

from typing import Protocol

from ..models import OtpChannel
from .delivery import DeliveryReceipt, OtpMessage


class IMessageSender(Protocol):
    """Sends messages over exactly one channel.

    Provider failures come back as a refused `DeliveryReceipt`; only
    misconfiguration raises.
    """

    channel: OtpChannel

    async def deliver(self, destination: str, message: OtpMessage) -> DeliveryReceipt:
        ...


__all__: list[str] = ["IMessageSender"]
