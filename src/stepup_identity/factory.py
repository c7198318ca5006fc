"""Wiring helper that assembles an `AuthContext`."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .config import StepUpSettings, build_otp_delivery
from .context import AuthContext
from .login.machine import LoginStateMachine
from .mfa.otp import InMemoryOtpCodeStore, OtpChannelManager
from .mfa.recovery_codes import InMemoryRecoveryCodeStore, RecoveryCodeManager
from .mfa.status import MfaStatusTracker
from .mfa.two_factor import TwoFactorService
from .rate_limit import InMemoryLockoutStore, VerificationLimiter
from .roles import RoleService
from .session.lifecycle import SessionLifecycleManager

if TYPE_CHECKING:
    from .login.machine import Notifier
    from .mfa.ports import IOtpCodeStore, IOtpDelivery, IRecoveryCodeStore
    from .ports import IAuthAuditStore, ICredentialStore, ILockoutStore, IRoleStore
    from .primitives.clock import Clock


def create_auth_context(
    credential_store: ICredentialStore,
    *,
    role_store: IRoleStore,
    otp_code_store: IOtpCodeStore | None = None,
    recovery_code_store: IRecoveryCodeStore | None = None,
    lockout_store: ILockoutStore | None = None,
    delivery: IOtpDelivery | None = None,
    settings: StepUpSettings | None = None,
    audit_store: IAuthAuditStore | None = None,
    notifier: Notifier | None = None,
    clock: Clock | None = None,
) -> AuthContext:
    """Build every component and the context that owns them.

    Stores default to in-memory implementations, which suit tests and
    single-process development only. Delivery defaults to the channels
    configured in ``settings.delivery``.

    Args:
        credential_store: Hosted auth adapter.
        role_store: Role table access.
        otp_code_store: Issued OTP storage.
        recovery_code_store: Recovery code hash storage.
        lockout_store: Failed-attempt counters.
        delivery: Email/SMS hook for OTP codes.
        settings: Tunables.
        audit_store: Optional audit sink shared by all components.
        notifier: Receives login-flow notifications.
        clock: Time source shared by all components.

    Returns:
        AuthContext, not yet initialized. Call ``await context.init()``.
    """
    settings = settings or StepUpSettings()

    recovery_codes = RecoveryCodeManager(
        code_store=recovery_code_store or InMemoryRecoveryCodeStore(),
        config=settings.recovery_codes,
        audit_store=audit_store,
        clock=clock,
    )
    limiter = VerificationLimiter(
        lockout_store or InMemoryLockoutStore(clock=clock),
        config=settings.verification_limit,
        audit_store=audit_store,
    )
    otp_manager = OtpChannelManager(
        code_store=otp_code_store or InMemoryOtpCodeStore(),
        delivery=delivery or build_otp_delivery(settings),
        config=settings.otp,
        limiter=limiter,
        audit_store=audit_store,
        clock=clock,
    )
    status_tracker = MfaStatusTracker(credential_store)
    two_factor = TwoFactorService(
        credential_store=credential_store,
        recovery_codes=recovery_codes,
        audit_store=audit_store,
    )
    login = LoginStateMachine(
        credential_store=credential_store,
        status_tracker=status_tracker,
        otp_manager=otp_manager,
        recovery_codes=recovery_codes,
        two_factor=two_factor,
        notifier=notifier,
        audit_store=audit_store,
        low_recovery_code_threshold=settings.low_recovery_code_threshold,
    )
    lifecycle = SessionLifecycleManager(
        credential_store,
        config=settings.session,
        audit_store=audit_store,
        clock=clock,
    )
    return AuthContext(
        credential_store,
        lifecycle=lifecycle,
        status_tracker=status_tracker,
        login=login,
        roles=RoleService(role_store, audit_store=audit_store),
    )


__all__: list[str] = ["create_auth_context"]
