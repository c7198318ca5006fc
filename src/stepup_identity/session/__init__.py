"""Session lifecycle (proactive refresh)."""

from __future__ import annotations

from .lifecycle import SessionLifecycleManager, SessionRefreshConfig

__all__: list[str] = ["SessionLifecycleManager", "SessionRefreshConfig"]
