"""Session, factor and code records shared by every component.

Records are immutable. Services replace them rather than mutating in place,
so a reference held by one component never changes under another.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator


class AssuranceLevel(str, Enum):
    """Authenticator assurance level of a session.

    ``AAL1`` means one factor (password) was verified, ``AAL2`` means a
    second factor was verified on top of it.
    """

    AAL1 = "aal1"
    AAL2 = "aal2"


class Session(BaseModel):
    """Authenticated session issued by the credential store.

    Attributes:
        user_id: Subject the session belongs to.
        email: Subject's email address.
        access_token: Bearer token for API calls.
        refresh_token: Token exchanged for a renewed session.
        issued_at: When the session (or its last renewal) was issued.
        expires_at: When the access token stops being accepted.
        assurance_level: Factors verified for this session.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    access_token: str
    refresh_token: str
    issued_at: datetime
    expires_at: datetime
    assurance_level: AssuranceLevel = AssuranceLevel.AAL1

    @field_validator("issued_at", "expires_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        # Treat naive datetime as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def seconds_until_expiry(self, now: datetime) -> float:
        """Seconds left before expiry (negative once expired)."""
        return (self.expires_at - now).total_seconds()

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    @property
    def is_multi_factor(self) -> bool:
        return self.assurance_level is AssuranceLevel.AAL2


@dataclass(frozen=True)
class AssuranceLevels:
    """Assurance levels reported by the credential store.

    Attributes:
        current: Level of the active session.
        next: Highest level the subject can reach with enrolled factors.
    """

    current: AssuranceLevel
    next: AssuranceLevel


class FactorStatus(str, Enum):
    """Lifecycle of an enrolled factor."""

    PENDING = "pending"
    VERIFIED = "verified"


@dataclass(frozen=True)
class MfaFactor:
    """A TOTP factor enrolled for a subject."""

    id: str
    user_id: str
    friendly_name: str
    status: FactorStatus = FactorStatus.PENDING
    factor_type: str = "totp"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_verified(self) -> bool:
        return self.status is FactorStatus.VERIFIED


@dataclass(frozen=True)
class TotpEnrollment:
    """Enrollment data shown once so the subject can configure an app.

    Attributes:
        factor_id: Pending factor to verify with the first code.
        secret: Base32-encoded TOTP secret.
        qr_uri: otpauth:// URI for QR code rendering.
        manual_key: Secret grouped by four characters for manual entry.
    """

    factor_id: str
    secret: str
    qr_uri: str
    manual_key: str


class OtpChannel(str, Enum):
    """Destination type of a one-time code."""

    EMAIL = "email"
    PHONE = "phone"


@dataclass(frozen=True)
class OtpRecord:
    """Row of the ``otp_codes`` table.

    At most one active record exists per subject; issuing a new code
    deletes every earlier record of that subject.
    """

    id: str
    user_id: str
    code: str
    type: OtpChannel
    destination: str
    created_at: datetime
    expires_at: datetime
    used: bool = False
    used_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def is_active(self, now: datetime) -> bool:
        return not self.used and not self.is_expired(now)


@dataclass(frozen=True)
class RecoveryCodeRecord:
    """Row of the ``recovery_codes`` table. Only the SHA-256 hash is kept."""

    id: str
    user_id: str
    code_hash: str
    created_at: datetime
    used: bool = False
    used_at: datetime | None = None


class Role(str, Enum):
    """Application roles."""

    ADMIN = "admin"
    USER = "user"


@dataclass(frozen=True)
class RoleAssignment:
    """Row of the ``user_roles`` table."""

    id: str
    user_id: str
    role: Role
    created_at: datetime


__all__: list[str] = [
    "AssuranceLevel",
    "Session",
    "AssuranceLevels",
    "FactorStatus",
    "MfaFactor",
    "TotpEnrollment",
    "OtpChannel",
    "OtpRecord",
    "RecoveryCodeRecord",
    "Role",
    "RoleAssignment",
]
