"""Core identity ports (protocols).

These protocols define the collaborators the step-up core consumes:
the credential store (users, passwords, sessions, TOTP factors), role
storage, failed-attempt tracking and audit storage. All ports use
@runtime_checkable for isinstance checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .audit.events import AuthAuditEvent, AuthEventType
    from .events import AuthStateListener, Subscription
    from .models import (
        AssuranceLevels,
        MfaFactor,
        Role,
        Session,
        TotpEnrollment,
    )


# ═══════════════════════════════════════════════════════════════
# CREDENTIAL STORE PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class ICredentialStore(Protocol):
    """Protocol for the external credential store.

    The credential store owns user records, password verification,
    sessions and TOTP factor primitives. The step-up core only asks it
    for sessions and factor operations; it never sees password hashes or
    TOTP secrets after enrollment.

    Every operation that changes the session publishes an
    `AuthStateChange` to listeners registered via `on_auth_state_change`.
    """

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        """Authenticate with email and password.

        Returns:
            A single-factor (aal1) session.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password.
        """
        ...

    async def sign_up(self, email: str, password: str) -> str:
        """Create an account.

        Returns:
            The new user's ID.

        Raises:
            AuthenticationError: The account cannot be created.
        """
        ...

    async def sign_out(self) -> None:
        """End the current session."""
        ...

    async def get_session(self) -> Session | None:
        """Return the current session, or None when signed out."""
        ...

    async def refresh_session(self) -> Session:
        """Exchange the refresh token for a renewed session.

        Raises:
            SessionError: No session is held or renewal was refused.
        """
        ...

    async def request_password_reset(self, email: str) -> None:
        """Send a password reset link. Unknown addresses are not reported."""
        ...

    async def get_assurance_levels(self) -> AssuranceLevels:
        """Current and reachable assurance levels of the active session.

        Raises:
            SessionError: No session is held.
        """
        ...

    async def list_factors(self) -> list[MfaFactor]:
        """TOTP factors of the current subject (pending and verified)."""
        ...

    async def enroll_totp(self, friendly_name: str) -> TotpEnrollment:
        """Create a pending TOTP factor for the current subject."""
        ...

    async def challenge(self, factor_id: str) -> str:
        """Open a verification challenge for a factor.

        Returns:
            Challenge ID to pass to `verify`.
        """
        ...

    async def verify(self, factor_id: str, challenge_id: str, code: str) -> Session:
        """Verify a TOTP code against an open challenge.

        On success a pending factor becomes verified and the session is
        upgraded to aal2.

        Raises:
            MfaInvalidError: The code is wrong or the challenge is unknown.
        """
        ...

    async def unenroll(self, factor_id: str) -> None:
        """Remove a factor of the current subject."""
        ...

    def on_auth_state_change(self, listener: AuthStateListener) -> Subscription:
        """Register a listener for auth-state changes."""
        ...


# ═══════════════════════════════════════════════════════════════
# ROLE STORE PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IRoleStore(Protocol):
    """Protocol for the ``user_roles`` table."""

    async def has_role(self, user_id: str, role: Role) -> bool:
        """Check whether a user holds a role."""
        ...

    async def list_roles(self, user_id: str) -> list[Role]:
        """All roles held by a user."""
        ...

    async def grant(self, user_id: str, role: Role) -> None:
        """Grant a role. Granting a held role is a no-op."""
        ...

    async def revoke(self, user_id: str, role: Role) -> None:
        """Revoke a role. Revoking a missing role is a no-op."""
        ...


# ═══════════════════════════════════════════════════════════════
# LOCKOUT PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class ILockoutStore(Protocol):
    """Protocol for failed verification tracking.

    Used to count failed code submissions within a sliding window and to
    lock a subject out after too many failures.

    Implementations should use a shared store for multi-process setups.
    """

    async def record_failure(self, identifier: str, window_seconds: int) -> int:
        """Record a failed attempt.

        Args:
            identifier: Subject identifier.
            window_seconds: Only failures within this many seconds count.

        Returns:
            Failures recorded within the window, including this one.
        """
        ...

    async def get_failure_count(self, identifier: str, window_seconds: int) -> int:
        """Failures recorded within the window."""
        ...

    async def lockout_remaining(self, identifier: str) -> float:
        """Seconds until the lockout ends (0 when not locked)."""
        ...

    async def clear(self, identifier: str) -> None:
        """Clear lockout and failure count."""
        ...

    async def set_lockout(self, identifier: str, duration_seconds: int) -> None:
        """Set explicit lockout for a duration."""
        ...


# ═══════════════════════════════════════════════════════════════
# AUDIT PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IAuthAuditStore(Protocol):
    """Protocol for authentication audit event storage."""

    async def record(self, event: AuthAuditEvent) -> None:
        """Record an audit event."""
        ...

    async def get_events(
        self,
        subject_id: str,
        *,
        event_types: list[AuthEventType] | None = None,
        limit: int = 100,
    ) -> list[AuthAuditEvent]:
        """Get audit events for a user.

        Args:
            subject_id: User ID to query.
            event_types: Optional filter by event types.
            limit: Maximum number of events to return.

        Returns:
            List of audit events, most recent first.
        """
        ...

    async def get_recent_failures(
        self,
        *,
        subject_id: str | None = None,
        minutes: int = 15,
        limit: int = 100,
    ) -> list[AuthAuditEvent]:
        """Get recent failed events, most recent first."""
        ...


__all__: list[str] = [
    "ICredentialStore",
    "IRoleStore",
    "ILockoutStore",
    "IAuthAuditStore",
]
