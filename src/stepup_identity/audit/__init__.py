"""Audit module for authentication events.

This module provides audit event types, the in-memory store and the
recording helper every service goes through.
"""

from __future__ import annotations

from .events import (
    AuditMetadata,
    AuditValue,
    AuthAuditEvent,
    AuthEventType,
    login_failed_event,
    login_success_event,
    logout_event,
    mfa_failed_event,
    mfa_verified_event,
    otp_sent_event,
    recovery_code_event,
    role_changed_event,
    token_refreshed_event,
)
from .memory import InMemoryAuthAuditStore
from .recorder import record_audit_event

__all__: list[str] = [
    # Event types and classes
    "AuditValue",
    "AuditMetadata",
    "AuthEventType",
    "AuthAuditEvent",
    # Event factory functions
    "login_success_event",
    "login_failed_event",
    "logout_event",
    "token_refreshed_event",
    "mfa_verified_event",
    "mfa_failed_event",
    "otp_sent_event",
    "recovery_code_event",
    "role_changed_event",
    # Store implementations
    "InMemoryAuthAuditStore",
    "record_audit_event",
]
