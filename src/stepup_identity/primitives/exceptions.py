"""Domain and infrastructure exceptions for stepup-identity."""

from __future__ import annotations


class StepUpError(Exception):
    """Root exception for the entire stepup-identity package."""


class DomainError(StepUpError):
    """Base class for all domain-related errors."""


class ValidationError(StepUpError):
    """Raised when user input fails validation.

    Carries structured errors: ``{field: [messages]}``.
    """

    def __init__(self, errors: dict[str, list[str]] | str | None = None) -> None:
        if isinstance(errors, str):
            self.errors: dict[str, list[str]] = {"__root__": [errors]}
        elif errors is None:
            self.errors = {}
        else:
            self.errors = errors
        super().__init__(str(self.errors))

    def first_message(self) -> str:
        """Return the first message in field order, or a generic fallback."""
        for messages in self.errors.values():
            if messages:
                return messages[0]
        return "Invalid input"


class InfrastructureError(StepUpError):
    """Base class for all infrastructure-related errors."""


class PersistenceError(InfrastructureError):
    """Base class for all persistence-related errors."""


__all__: list[str] = [
    "StepUpError",
    "DomainError",
    "ValidationError",
    "InfrastructureError",
    "PersistenceError",
]
