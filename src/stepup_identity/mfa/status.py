"""MFA status tracking.

Keeps a derived view of the subject's second-factor state (is TOTP
enabled, is the session already multi-factor) and re-derives it on every
auth-state change instead of polling.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..events import AuthChangeEvent
from ..models import AssuranceLevel
from ..primitives.exceptions import StepUpError

if TYPE_CHECKING:
    from ..events import AuthStateChange, Subscription
    from ..ports import ICredentialStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MfaStatus:
    """Derived second-factor state of the current subject.

    Attributes:
        is_enabled: A verified TOTP factor exists.
        is_verified: The session is already at the highest level (aal2).
        current_level: Assurance level of the session.
        next_level: Highest level reachable with enrolled factors.
    """

    is_enabled: bool = False
    is_verified: bool = False
    current_level: AssuranceLevel | None = None
    next_level: AssuranceLevel | None = None


class MfaStatusTracker:
    """Derives `MfaStatus` from the credential store.

    Example:
        ```python
        tracker = MfaStatusTracker(credential_store)
        tracker.attach()

        status = await tracker.check_status()
        if status.is_enabled and not status.is_verified:
            ...  # route to TOTP challenge
        ```
    """

    def __init__(self, credential_store: ICredentialStore) -> None:
        self.credential_store = credential_store
        self._status = MfaStatus()
        self._subscription: Subscription | None = None

    @property
    def status(self) -> MfaStatus:
        """Last derived status."""
        return self._status

    async def check_status(self) -> MfaStatus:
        """Re-derive the status.

        Without a session the status is not-enabled / not-verified. A
        credential-store failure is logged and the previous status kept.
        """
        try:
            session = await self.credential_store.get_session()
            if session is None:
                self._status = MfaStatus()
                return self._status

            levels = await self.credential_store.get_assurance_levels()
            factors = await self.credential_store.list_factors()
        except StepUpError as exc:
            logger.warning("Could not check MFA status: %s", exc)
            return self._status

        self._status = MfaStatus(
            is_enabled=any(factor.is_verified for factor in factors),
            is_verified=levels.current is AssuranceLevel.AAL2,
            current_level=levels.current,
            next_level=levels.next,
        )
        return self._status

    async def handle_auth_change(self, change: AuthStateChange) -> None:
        if change.event is AuthChangeEvent.SIGNED_OUT:
            self._status = MfaStatus()
            return
        await self.check_status()

    def attach(self) -> None:
        """Subscribe to auth-state changes (once)."""
        if self._subscription is None:
            self._subscription = self.credential_store.on_auth_state_change(
                self.handle_auth_change
            )

    def close(self) -> None:
        """Unsubscribe and forget the derived status."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._status = MfaStatus()


__all__: list[str] = ["MfaStatus", "MfaStatusTracker"]
