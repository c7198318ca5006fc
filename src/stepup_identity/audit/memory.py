"""In-memory audit trail."""

from __future__ import annotations

from datetime import timedelta
from itertools import islice
from typing import TYPE_CHECKING

from ..ports import IAuthAuditStore
from ..primitives.clock import utcnow

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ..primitives.clock import Clock
    from .events import AuthAuditEvent, AuthEventType


class InMemoryAuthAuditStore(IAuthAuditStore):
    """Audit trail kept in a list. Lost on restart; meant for tests and demos.

    Example:
        ```python
        audit = InMemoryAuthAuditStore()
        context = create_auth_context(credential_store, audit_store=audit, ...)
        ...
        assert AuthEventType.MFA_VERIFIED in audit.event_types()
        ```
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock or utcnow
        self._events: list[AuthAuditEvent] = []

    async def record(self, event: AuthAuditEvent) -> None:
        self._events.append(event)

    def _newest_first(self, subject_id: str | None) -> Iterable[AuthAuditEvent]:
        for event in reversed(self._events):
            if subject_id is None or event.subject_id == subject_id:
                yield event

    async def get_events(
        self,
        subject_id: str,
        *,
        event_types: list[AuthEventType] | None = None,
        limit: int = 100,
    ) -> list[AuthAuditEvent]:
        matching = (
            e
            for e in self._newest_first(subject_id)
            if not event_types or e.event_type in event_types
        )
        return list(islice(matching, limit))

    async def get_recent_failures(
        self,
        *,
        subject_id: str | None = None,
        minutes: int = 15,
        limit: int = 100,
    ) -> list[AuthAuditEvent]:
        since = self._clock() - timedelta(minutes=minutes)
        failures = (
            e
            for e in self._newest_first(subject_id)
            if not e.success and e.occurred_at >= since
        )
        return list(islice(failures, limit))

    @property
    def events(self) -> list[AuthAuditEvent]:
        """All recorded events, oldest first."""
        return list(self._events)

    def event_types(self) -> list[AuthEventType]:
        return [event.event_type for event in self._events]

    def clear(self) -> None:
        self._events.clear()

    def count(self) -> int:
        return len(self._events)


__all__: list[str] = ["InMemoryAuthAuditStore"]
