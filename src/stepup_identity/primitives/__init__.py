"""Shared primitives: exception roots and clocks."""

from __future__ import annotations

from .clock import Clock, MonotonicClock, utcnow
from .exceptions import (
    DomainError,
    InfrastructureError,
    PersistenceError,
    StepUpError,
    ValidationError,
)

__all__: list[str] = [
    "Clock",
    "MonotonicClock",
    "utcnow",
    "StepUpError",
    "DomainError",
    "ValidationError",
    "InfrastructureError",
    "PersistenceError",
]
