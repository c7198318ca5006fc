"""Single entry point services use to emit audit events."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..observability.metrics import AuthMetrics

if TYPE_CHECKING:
    from ..ports import IAuthAuditStore
    from .events import AuthAuditEvent


async def record_audit_event(
    store: IAuthAuditStore | None,
    event: AuthAuditEvent,
) -> None:
    """Count the event in metrics and persist it when a store is configured."""
    AuthMetrics.record_event(event)
    if store is not None:
        await store.record(event)


__all__: list[str] = ["record_audit_event"]
