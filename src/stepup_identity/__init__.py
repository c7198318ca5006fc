"""Stepup Identity Package

Authentication and step-up verification for an admin area.

A password sign-in yields an aal1 session. Before administrative work the
subject proves a second factor: an authenticator (TOTP) code, a one-time
code sent by email or SMS, or a single-use recovery code.

Usage:
    ```python
    from stepup_identity import (
        InMemoryCredentialStore,
        InMemoryRoleStore,
        LoginStep,
        VerificationMethod,
        create_auth_context,
    )

    context = create_auth_context(credential_store, role_store=role_store)
    await context.init()

    login = context.login
    await login.submit_credentials("admin@example.com", "s3cret-pass")
    if login.step is LoginStep.METHOD_CHOICE:
        await login.choose_method(VerificationMethod.EMAIL_OTP)
        await login.send_otp()
    ```

Submodules:
    - `session`: proactive session refresh
    - `mfa`: TOTP, email/SMS codes, recovery codes, MFA status
    - `login`: login state machine
    - `messaging`: SMTP / Twilio delivery of one-time codes
    - `persistence`: SQLAlchemy stores
    - `audit`: auth audit events
"""

from __future__ import annotations

# Audit
from .audit import AuthAuditEvent, AuthEventType, InMemoryAuthAuditStore

# Configuration and wiring
from .config import DeliverySettings, StepUpSettings, build_otp_delivery
from .context import AuthContext

# Reference credential store
from .credentials import InMemoryCredentialStore, PasswordHasher

# Auth-state events
from .events import AuthChangeEvent, AuthEventStream, AuthStateChange, Subscription

# Exceptions
from .exceptions import (
    AuthenticationError,
    IdentityError,
    IdentityPermissionError,
    InvalidCredentialsError,
    InvalidTransitionError,
    MfaError,
    MfaInvalidError,
    MfaRequiredError,
    MfaSetupError,
    OtpCooldownError,
    OtpExpiredError,
    RoleAssignmentError,
    SessionError,
    SessionExpiredError,
    VerificationLockedError,
)
from .factory import create_auth_context

# Login flow
from .login import (
    AuthorizationSource,
    LoginStateMachine,
    LoginStep,
    Notification,
    NotificationLevel,
    VerificationMethod,
)

# MFA
from .mfa import (
    MfaStatus,
    MfaStatusTracker,
    OtpChannelManager,
    OtpConfig,
    RecoveryCodeManager,
    TotpService,
    TwoFactorService,
)

# Models
from .models import (
    AssuranceLevel,
    AssuranceLevels,
    MfaFactor,
    OtpChannel,
    Role,
    Session,
    TotpEnrollment,
)

# Ports
from .ports import IAuthAuditStore, ICredentialStore, ILockoutStore, IRoleStore
from .primitives.exceptions import StepUpError, ValidationError
from .rate_limit import InMemoryLockoutStore, VerificationLimiter

# Roles
from .roles import InMemoryRoleStore, RoleService

# Session lifecycle
from .session import SessionLifecycleManager, SessionRefreshConfig

__all__: list[str] = [
    # Audit
    "AuthAuditEvent",
    "AuthEventType",
    "InMemoryAuthAuditStore",
    # Configuration and wiring
    "AuthContext",
    "DeliverySettings",
    "StepUpSettings",
    "build_otp_delivery",
    "create_auth_context",
    # Credentials
    "InMemoryCredentialStore",
    "PasswordHasher",
    # Events
    "AuthChangeEvent",
    "AuthEventStream",
    "AuthStateChange",
    "Subscription",
    # Exceptions
    "StepUpError",
    "ValidationError",
    "IdentityError",
    "AuthenticationError",
    "InvalidCredentialsError",
    "IdentityPermissionError",
    "RoleAssignmentError",
    "InvalidTransitionError",
    "MfaError",
    "MfaRequiredError",
    "MfaInvalidError",
    "MfaSetupError",
    "OtpExpiredError",
    "OtpCooldownError",
    "VerificationLockedError",
    "SessionError",
    "SessionExpiredError",
    # Login
    "AuthorizationSource",
    "LoginStateMachine",
    "LoginStep",
    "Notification",
    "NotificationLevel",
    "VerificationMethod",
    # MFA
    "MfaStatus",
    "MfaStatusTracker",
    "OtpChannelManager",
    "OtpConfig",
    "RecoveryCodeManager",
    "TotpService",
    "TwoFactorService",
    # Models
    "AssuranceLevel",
    "AssuranceLevels",
    "MfaFactor",
    "OtpChannel",
    "Role",
    "Session",
    "TotpEnrollment",
    # Ports
    "IAuthAuditStore",
    "ICredentialStore",
    "ILockoutStore",
    "IRoleStore",
    # Rate limiting
    "InMemoryLockoutStore",
    "VerificationLimiter",
    # Roles
    "InMemoryRoleStore",
    "RoleService",
    # Session
    "SessionLifecycleManager",
    "SessionRefreshConfig",
]
