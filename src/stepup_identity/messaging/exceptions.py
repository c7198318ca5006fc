"""Exception hierarchy for outbound messaging."""

from __future__ import annotations

from ..primitives.exceptions import InfrastructureError


class NotificationError(InfrastructureError):
    """Base exception for messaging infrastructure failures."""


class NotificationDeliveryError(NotificationError):
    """Raised when delivery fails (network, provider error, etc.).

    Delivery errors are transient from the caller's point of view: the
    user may simply request another code.
    """

    def __init__(self, channel: str, recipient: str, reason: str) -> None:
        self.channel = channel
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"Failed to deliver via {channel} to {recipient}: {reason}")


class DeliveryNotConfiguredError(NotificationError):
    """Raised when no sender is configured for the requested channel."""

    def __init__(self, channel: str) -> None:
        self.channel = channel
        super().__init__(f"No sender configured for channel '{channel}'")


__all__: list[str] = [
    "NotificationError",
    "NotificationDeliveryError",
    "DeliveryNotConfiguredError",
]
