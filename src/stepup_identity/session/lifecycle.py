"""Proactive session renewal.

Keeps exactly one pending refresh timer per held session, firing a fixed
margin before expiry, and renews through the credential store. A failed
renewal keeps the current session; the user is never logged out by the
refresh path.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from ..audit.events import token_refreshed_event
from ..audit.recorder import record_audit_event
from ..events import AuthChangeEvent
from ..observability.metrics import AuthMetrics
from ..primitives.clock import utcnow

if TYPE_CHECKING:
    from ..events import AuthStateChange, Subscription
    from ..models import Session
    from ..ports import IAuthAuditStore, ICredentialStore
    from ..primitives.clock import Clock, MonotonicClock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionRefreshConfig:
    """Configuration for proactive refresh.

    Attributes:
        refresh_margin_seconds: Seconds before expiry to refresh.
        min_refresh_interval_seconds: Floor for the timer delay and the
            debounce window between two refresh attempts.
    """

    refresh_margin_seconds: int = 300  # 5 minutes before expiry
    min_refresh_interval_seconds: int = 60


class SessionLifecycleManager:
    """Schedules and performs session renewal.

    Example:
        ```python
        manager = SessionLifecycleManager(credential_store)
        manager.attach()           # follow sign-in / refresh / sign-out
        await manager.start()      # pick up an existing session

        ...
        manager.close()
        ```
    """

    def __init__(
        self,
        credential_store: ICredentialStore,
        *,
        config: SessionRefreshConfig | None = None,
        audit_store: IAuthAuditStore | None = None,
        clock: Clock | None = None,
        monotonic: MonotonicClock | None = None,
    ) -> None:
        """Initialize the lifecycle manager.

        Args:
            credential_store: Store that issues and renews sessions.
            config: Refresh timing configuration.
            audit_store: Optional audit sink.
            clock: Wall-clock source used against session expiry.
            monotonic: Monotonic source used for refresh debouncing.
        """
        self.credential_store = credential_store
        self.config = config or SessionRefreshConfig()
        self._audit_store = audit_store
        self._clock = clock or utcnow
        self._monotonic = monotonic or time.monotonic

        self._session: Session | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._refresh_at: datetime | None = None
        self._refresh_task: asyncio.Task[bool] | None = None
        self._last_attempt: float | None = None
        self._subscription: Subscription | None = None

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def refresh_at(self) -> datetime | None:
        """Wall-clock time the pending refresh fires, if one is scheduled."""
        return self._refresh_at

    @property
    def has_pending_refresh(self) -> bool:
        return self._timer is not None

    def compute_refresh_delay(self, session: Session, now: datetime) -> float | None:
        """Seconds until refresh: ``max(expiry - margin, min interval)``.

        Returns:
            None for an already-expired session.
        """
        until_expiry = session.seconds_until_expiry(now)
        if until_expiry <= 0:
            return None
        return max(
            until_expiry - self.config.refresh_margin_seconds,
            float(self.config.min_refresh_interval_seconds),
        )

    def cancel(self) -> None:
        """Cancel the pending timer, if any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._refresh_at = None

    def schedule_refresh(self, session: Session | None) -> datetime | None:
        """Replace any pending timer with one for `session`.

        Args:
            session: Session to follow. Absent or expired sessions leave
                nothing scheduled.

        Returns:
            Wall-clock time the refresh fires, or None.
        """
        self.cancel()
        self._session = session
        if session is None:
            return None

        now = self._clock()
        delay = self.compute_refresh_delay(session, now)
        if delay is None:
            logger.debug(
                "Session for %s already expired, no refresh scheduled", session.user_id
            )
            return None

        self._arm(delay, now)
        logger.debug("Session refresh scheduled in %.0f seconds", delay)
        return self._refresh_at

    def _arm(self, delay: float, now: datetime) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._on_timer)
        self._refresh_at = now + timedelta(seconds=delay)

    def _debounce_remaining(self) -> float:
        if self._last_attempt is None:
            return 0.0
        elapsed = self._monotonic() - self._last_attempt
        return self.config.min_refresh_interval_seconds - elapsed

    def _on_timer(self) -> None:
        self._timer = None
        self._refresh_at = None
        wait = self._debounce_remaining()
        if wait > 0:
            # Too soon after the last attempt; fire again once the window ends
            self._arm(wait, self._clock())
            return
        self._refresh_task = asyncio.get_running_loop().create_task(self.refresh())

    async def refresh(self) -> bool:
        """Renew the session now.

        Calls within the minimum interval of the previous attempt are
        ignored. Failures are logged and the current session is kept.

        Returns:
            True if a new session was obtained.
        """
        if self._debounce_remaining() > 0:
            logger.debug("Skipping session refresh, last attempt was too recent")
            return False
        self._last_attempt = self._monotonic()

        user_id = self._session.user_id if self._session else ""
        try:
            with AuthMetrics.operation("refresh", method="session"):
                session = await self.credential_store.refresh_session()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Session refresh failed, keeping current session: %s", exc)
            await record_audit_event(
                self._audit_store,
                token_refreshed_event(user_id, success=False, detail=str(exc)),
            )
            return False

        self.schedule_refresh(session)
        await record_audit_event(
            self._audit_store, token_refreshed_event(session.user_id)
        )
        return True

    async def start(self) -> Session | None:
        """Pick up the store's current session and schedule its refresh."""
        session = await self.credential_store.get_session()
        self.schedule_refresh(session)
        return session

    async def handle_auth_change(self, change: AuthStateChange) -> None:
        if change.event is AuthChangeEvent.SIGNED_OUT:
            self.schedule_refresh(None)
            return
        if change.session is not None:
            self.schedule_refresh(change.session)

    def attach(self) -> None:
        """Subscribe to auth-state changes (once)."""
        if self._subscription is None:
            self._subscription = self.credential_store.on_auth_state_change(
                self.handle_auth_change
            )

    def close(self) -> None:
        """Unsubscribe, cancel the timer and any refresh in flight."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self.cancel()
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = None
        self._session = None


__all__: list[str] = ["SessionRefreshConfig", "SessionLifecycleManager"]
