"""Auth-state change stream.

The credential store publishes every sign-in, renewal, step-up and
sign-out here. Components subscribe once and get a `Subscription` handle
they must release on teardown.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Session

logger = logging.getLogger(__name__)


class AuthChangeEvent(Enum):
    """Kinds of auth-state change."""

    INITIAL_SESSION = "initial_session"
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    TOKEN_REFRESHED = "token_refreshed"  # noqa: S105
    MFA_CHALLENGE_VERIFIED = "mfa_challenge_verified"
    USER_UPDATED = "user_updated"


@dataclass(frozen=True)
class AuthStateChange:
    """A single auth-state change.

    Attributes:
        event: What happened.
        session: Session after the change (None after sign-out).
    """

    event: AuthChangeEvent
    session: Session | None = None


AuthStateListener = Callable[[AuthStateChange], Awaitable[None]]


class Subscription:
    """Handle returned by `AuthEventStream.subscribe`."""

    def __init__(self, stream: AuthEventStream, listener: AuthStateListener) -> None:
        self._stream = stream
        self._listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Stop receiving changes. Calling it twice is harmless."""
        if not self._active:
            return
        self._active = False
        self._stream._remove(self._listener)


class AuthEventStream:
    """Fan-out of auth-state changes to async listeners.

    Listeners are awaited in subscription order. A failing listener is
    logged and does not prevent the others from being notified.

    Example:
        ```python
        stream = AuthEventStream()

        async def on_change(change: AuthStateChange) -> None:
            print(change.event)

        subscription = stream.subscribe(on_change)
        await stream.publish(AuthStateChange(AuthChangeEvent.SIGNED_OUT))
        subscription.unsubscribe()
        ```
    """

    def __init__(self) -> None:
        self._listeners: list[AuthStateListener] = []

    def subscribe(self, listener: AuthStateListener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove(self, listener: AuthStateListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            logger.debug("Listener already removed from auth event stream")

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def publish(self, change: AuthStateChange) -> None:
        """Deliver a change to every current listener."""
        for listener in list(self._listeners):
            try:
                await listener(change)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Auth state listener failed for event %s", change.event.value
                )


__all__: list[str] = [
    "AuthChangeEvent",
    "AuthStateChange",
    "AuthStateListener",
    "Subscription",
    "AuthEventStream",
]
