"""Brute-force guard for code verification.

Counts failed OTP submissions per subject within a sliding window and
locks verification for a while once the limit is reached. A successful
verification clears the counter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from .audit.events import AuthAuditEvent, AuthEventType
from .audit.recorder import record_audit_event
from .exceptions import VerificationLockedError
from .observability.metrics import AuthMetrics
from .ports import ILockoutStore
from .primitives.clock import utcnow

if TYPE_CHECKING:
    from .ports import IAuthAuditStore
    from .primitives.clock import Clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationLimitConfig:
    """Verification attempt limits.

    Attributes:
        max_attempts: Failures allowed within the window.
        window_seconds: Sliding window for counting failures.
        lockout_seconds: Lock duration once the limit is reached.
    """

    max_attempts: int = 5
    window_seconds: int = 60
    lockout_seconds: int = 900  # 15 minutes


class VerificationLimiter:
    """Applies `VerificationLimitConfig` on top of an `ILockoutStore`.

    Example:
        ```python
        limiter = VerificationLimiter(InMemoryLockoutStore())

        await limiter.ensure_allowed(user_id)   # raises while locked
        if not valid:
            await limiter.record_failure(user_id)
        else:
            await limiter.reset(user_id)
        ```
    """

    def __init__(
        self,
        lockout_store: ILockoutStore,
        *,
        config: VerificationLimitConfig | None = None,
        audit_store: IAuthAuditStore | None = None,
    ) -> None:
        self.lockout_store = lockout_store
        self.config = config or VerificationLimitConfig()
        self._audit_store = audit_store

    async def ensure_allowed(self, identifier: str) -> None:
        """Raise if the subject is currently locked out.

        Raises:
            VerificationLockedError: With the seconds left on the lock.
        """
        remaining = await self.lockout_store.lockout_remaining(identifier)
        if remaining > 0:
            raise VerificationLockedError(remaining)

    async def record_failure(self, identifier: str) -> int:
        """Count a failed attempt, locking the subject at the limit.

        Returns:
            Failures within the current window.
        """
        failures = await self.lockout_store.record_failure(
            identifier, self.config.window_seconds
        )
        if failures >= self.config.max_attempts:
            await self.lockout_store.set_lockout(
                identifier, self.config.lockout_seconds
            )
            logger.warning(
                "Verification locked for %s after %d failed attempts",
                identifier,
                failures,
            )
            AuthMetrics.record_lockout()
            await record_audit_event(
                self._audit_store,
                AuthAuditEvent(
                    event_type=AuthEventType.VERIFICATION_LOCKED,
                    subject_id=identifier,
                    source="otp",
                    success=False,
                    error_code="TOO_MANY_ATTEMPTS",
                    metadata={"failures": failures},
                ),
            )
        return failures

    async def reset(self, identifier: str) -> None:
        await self.lockout_store.clear(identifier)


class InMemoryLockoutStore(ILockoutStore):
    """In-memory lockout store for TESTING ONLY.

    Use a shared store (database, Redis) when several processes verify
    codes for the same subjects.
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock or utcnow
        self._failures: dict[str, list[datetime]] = {}
        self._locked_until: dict[str, datetime] = {}

    def _prune(self, identifier: str, window_seconds: int) -> list[datetime]:
        cutoff = self._clock() - timedelta(seconds=window_seconds)
        recent = [t for t in self._failures.get(identifier, []) if t > cutoff]
        self._failures[identifier] = recent
        return recent

    async def record_failure(self, identifier: str, window_seconds: int) -> int:
        recent = self._prune(identifier, window_seconds)
        recent.append(self._clock())
        return len(recent)

    async def get_failure_count(self, identifier: str, window_seconds: int) -> int:
        return len(self._prune(identifier, window_seconds))

    async def lockout_remaining(self, identifier: str) -> float:
        until = self._locked_until.get(identifier)
        if until is None:
            return 0.0
        remaining = (until - self._clock()).total_seconds()
        if remaining <= 0:
            del self._locked_until[identifier]
            self._failures.pop(identifier, None)
            return 0.0
        return remaining

    async def clear(self, identifier: str) -> None:
        self._failures.pop(identifier, None)
        self._locked_until.pop(identifier, None)

    async def set_lockout(self, identifier: str, duration_seconds: int) -> None:
        self._locked_until[identifier] = self._clock() + timedelta(
            seconds=duration_seconds
        )


__all__: list[str] = [
    "VerificationLimitConfig",
    "VerificationLimiter",
    "InMemoryLockoutStore",
]
