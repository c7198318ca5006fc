"""Errors raised by sign-in, session and step-up operations.

All identity errors inherit from IdentityError which extends DomainError,
keeping authentication failures separate from infrastructure failures
(delivery, persistence) that callers may want to retry.
"""

from __future__ import annotations

import math

from .primitives.exceptions import DomainError

# ═══════════════════════════════════════════════════════════════
# BASE IDENTITY ERROR
# ═══════════════════════════════════════════════════════════════


class IdentityError(DomainError):
    """Root of every error this package raises for a user-facing reason."""


# ═══════════════════════════════════════════════════════════════
# AUTHENTICATION ERRORS
# ═══════════════════════════════════════════════════════════════


class AuthenticationError(IdentityError):
    """The credential store refused a sign-in, sign-up or reset request."""


class InvalidCredentialsError(AuthenticationError):
    """Raised when email/password credentials are invalid.

    The message is deliberately generic so it never reveals whether the
    account exists.
    """

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(message)


class IdentityPermissionError(IdentityError):
    """Raised when the subject does not hold the role an operation requires."""


class RoleAssignmentError(IdentityError):
    """Raised when a role grant or ownership transfer cannot be applied.

    Examples:
        - Target user already holds the admin role
        - Actor tries to transfer ownership to themselves
    """


class InvalidTransitionError(IdentityError):
    """Raised when a login-flow operation is invoked from the wrong step.

    This signals a programming error in the caller (a button that should
    have been disabled), not a user mistake, so it is never turned into a
    user-facing notification.

    Attributes:
        operation: Name of the rejected operation.
        state: The state the flow was in when it was called.
    """

    def __init__(self, operation: str, state: str) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while in state '{state}'")


# ═══════════════════════════════════════════════════════════════
# MFA ERRORS
# ═══════════════════════════════════════════════════════════════


class MfaError(IdentityError):
    """A second factor could not be enrolled, challenged or verified."""


class MfaRequiredError(MfaError):
    """Raised when a privileged operation needs a completed second factor.

    Attributes:
        available_methods: Verification methods the subject can use.
    """

    def __init__(
        self,
        message: str = "Additional verification required",
        available_methods: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.available_methods = available_methods or ["totp", "otp"]


class MfaInvalidError(MfaError):
    """Raised when a TOTP, OTP or recovery code is invalid.

    Wrong, already-used and unknown codes all map to this error so the
    caller cannot probe which case applied.
    """

    def __init__(self, message: str = "Invalid code") -> None:
        super().__init__(message)


class MfaSetupError(MfaError):
    """Raised when MFA enrollment or configuration fails.

    Examples:
        - Regenerating recovery codes without a verified factor
        - Enrolling a factor fails at the credential store
    """


class OtpExpiredError(MfaError):
    """Raised when the submitted one-time code has passed its expiry."""

    def __init__(self, message: str = "Code has expired. Request a new one.") -> None:
        super().__init__(message)


class OtpCooldownError(MfaError):
    """Raised when a new code is requested before the resend cooldown ends.

    Attributes:
        retry_after: Whole seconds until a new code may be requested.
    """

    def __init__(self, retry_after: float) -> None:
        self.retry_after = max(1, math.ceil(retry_after))
        super().__init__(
            f"Please wait {self.retry_after} seconds before requesting a new code"
        )


class VerificationLockedError(MfaError):
    """Raised when too many failed verification attempts locked the subject.

    Attributes:
        retry_after: Whole seconds until verification is allowed again.
    """

    def __init__(self, retry_after: float) -> None:
        self.retry_after = max(1, math.ceil(retry_after))
        minutes = max(1, math.ceil(self.retry_after / 60))
        super().__init__(
            f"Too many failed attempts. Try again in {minutes} minute"
            f"{'' if minutes == 1 else 's'}"
        )


# ═══════════════════════════════════════════════════════════════
# SESSION ERRORS
# ═══════════════════════════════════════════════════════════════


class SessionError(IdentityError):
    """No usable session, or the session could not be refreshed."""


class SessionExpiredError(SessionError):
    """Raised when the session has expired or no session is held."""


__all__: list[str] = [
    # Base
    "IdentityError",
    # Authentication
    "AuthenticationError",
    "InvalidCredentialsError",
    "IdentityPermissionError",
    "RoleAssignmentError",
    "InvalidTransitionError",
    # MFA
    "MfaError",
    "MfaRequiredError",
    "MfaInvalidError",
    "MfaSetupError",
    "OtpExpiredError",
    "OtpCooldownError",
    "VerificationLockedError",
    # Session
    "SessionError",
    "SessionExpiredError",
]
