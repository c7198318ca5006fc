"""Login flow: credentials, step-up method choice and challenges."""

from __future__ import annotations

from .machine import (
    AuthorizationSource,
    LoginStateMachine,
    LoginStep,
    Notification,
    NotificationLevel,
    Notifier,
    VerificationMethod,
)

__all__: list[str] = [
    "AuthorizationSource",
    "LoginStateMachine",
    "LoginStep",
    "Notification",
    "NotificationLevel",
    "Notifier",
    "VerificationMethod",
]
