"""MFA module for stepup-identity.

Supports:
- TOTP (Google Authenticator, Microsoft Authenticator, Authy, etc.)
- Recovery codes (single-use, hashed at rest)
- Email/SMS one-time codes with resend cooldown
- Derived MFA status for routing the login flow
"""

from .otp import (
    InMemoryOtpCodeStore,
    OtpChannelManager,
    OtpConfig,
    OtpFlowState,
    OtpTicket,
)
from .ports import (
    IOtpCodeStore,
    IOtpDelivery,
    IRecoveryCodeStore,
    OtpConsumeResult,
)
from .recovery_codes import (
    InMemoryRecoveryCodeStore,
    RecoveryCodeConfig,
    RecoveryCodeManager,
)
from .status import MfaStatus, MfaStatusTracker
from .totp import TotpService
from .two_factor import TwoFactorService

__all__: list[str] = [
    # Ports
    "OtpConsumeResult",
    "IOtpCodeStore",
    "IRecoveryCodeStore",
    "IOtpDelivery",
    # TOTP
    "TotpService",
    "TwoFactorService",
    # Recovery codes
    "RecoveryCodeConfig",
    "RecoveryCodeManager",
    "InMemoryRecoveryCodeStore",
    # Email/SMS OTP
    "OtpConfig",
    "OtpFlowState",
    "OtpTicket",
    "OtpChannelManager",
    "InMemoryOtpCodeStore",
    # Status
    "MfaStatus",
    "MfaStatusTracker",
]
