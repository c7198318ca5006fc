"""Auth context.

One object owns the current session, its refresh timer, the derived MFA
status, the login flow and the admin flag. Consumers receive it through
dependency injection instead of reading process-global auth state.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import IdentityPermissionError, MfaRequiredError, SessionExpiredError
from .login.machine import AuthorizationSource

if TYPE_CHECKING:
    from .events import AuthStateChange, Subscription
    from .login.machine import LoginStateMachine
    from .mfa.status import MfaStatus, MfaStatusTracker
    from .models import Session
    from .ports import ICredentialStore
    from .roles import RoleService
    from .session.lifecycle import SessionLifecycleManager

logger = logging.getLogger(__name__)


class AuthContext:
    """Explicitly passed auth state for one client.

    Example:
        ```python
        context = create_auth_context(credential_store, role_store=role_store)
        await context.init()

        await context.login.submit_credentials(email, password)
        ...
        await context.require_admin()
        ```
    """

    def __init__(
        self,
        credential_store: ICredentialStore,
        *,
        lifecycle: SessionLifecycleManager,
        status_tracker: MfaStatusTracker,
        login: LoginStateMachine,
        roles: RoleService,
    ) -> None:
        self.credential_store = credential_store
        self.lifecycle = lifecycle
        self.status_tracker = status_tracker
        self.login = login
        self.roles = roles
        self._is_admin = False
        self._subscription: Subscription | None = None

    # ── state ────────────────────────────────────────────────────

    @property
    def session(self) -> Session | None:
        return self.lifecycle.session

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    @property
    def is_admin(self) -> bool:
        return self._is_admin

    @property
    def mfa_status(self) -> MfaStatus:
        return self.status_tracker.status

    @property
    def is_step_up_satisfied(self) -> bool:
        """Whether the current session has passed a second factor.

        Satisfied by an aal2 session, or by an email/SMS code or recovery
        code verified by the login flow for the same user. The local flags
        survive token refreshes and clear on sign-out.
        """
        session = self.session
        if session is None:
            return False
        if session.is_multi_factor:
            return True
        if self.login.authorization not in (
            AuthorizationSource.OTP,
            AuthorizationSource.RECOVERY_CODE,
        ):
            return False
        verified = self.login.session
        return verified is not None and verified.user_id == session.user_id

    # ── lifecycle ────────────────────────────────────────────────

    async def init(self) -> Session | None:
        """Subscribe to auth changes (once) and load the current session."""
        if self._subscription is None:
            self._subscription = self.credential_store.on_auth_state_change(
                self.handle_auth_change
            )
        session = await self.lifecycle.start()
        await self.status_tracker.check_status()
        await self._refresh_admin_flag()
        return session

    async def handle_auth_change(self, change: AuthStateChange) -> None:
        await self.lifecycle.handle_auth_change(change)
        await self.status_tracker.handle_auth_change(change)
        await self.login.handle_auth_change(change)
        await self._refresh_admin_flag()

    async def _refresh_admin_flag(self) -> None:
        session = self.session
        self._is_admin = (
            await self.roles.is_admin(session.user_id) if session is not None else False
        )

    async def require_admin(self) -> Session:
        """Gate for administrative operations.

        Raises:
            SessionExpiredError: Nobody is signed in.
            MfaRequiredError: Second factor not yet verified.
            IdentityPermissionError: The user lacks the admin role.
        """
        session = self.session
        if session is None:
            raise SessionExpiredError("Sign in required")
        if not self.is_step_up_satisfied:
            methods = [m.value for m in self.login.available_methods()]
            raise MfaRequiredError(
                "Second-factor verification required", available_methods=methods
            )
        if not await self.roles.is_admin(session.user_id):
            logger.info("Admin access denied for %s", session.user_id)
            raise IdentityPermissionError("Admin role required")
        return session

    async def sign_out(self) -> None:
        """Sign out and clear every derived flag."""
        await self.login.cancel()
        self.lifecycle.cancel()
        self._is_admin = False

    def close(self) -> None:
        """Unsubscribe and cancel timers. Safe to call twice."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self.lifecycle.close()
        self.status_tracker.close()
        self.login.close()
        self._is_admin = False


__all__: list[str] = ["AuthContext"]
