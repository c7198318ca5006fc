"""Audit events for authentication and step-up operations.

Events are frozen pydantic models. Metadata accepts only scalar values,
so a code list or a nested object can never end up in the audit trail.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
    model_validator,
)

from ..primitives.clock import utcnow

AuditValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr]
AuditMetadata = dict[str, AuditValue]


class AuthEventType(Enum):
    """What happened, as ``<area>.<action>``."""

    LOGIN_SUCCESS = "login.succeeded"
    LOGIN_FAILED = "login.failed"
    LOGOUT = "login.signed_out"
    SIGN_UP = "account.created"
    PASSWORD_RESET_REQUESTED = "account.password_reset_requested"  # noqa: S105

    TOKEN_REFRESHED = "session.refreshed"  # noqa: S105
    TOKEN_REFRESH_FAILED = "session.refresh_failed"  # noqa: S105

    MFA_ENABLED = "mfa.enabled"
    MFA_DISABLED = "mfa.disabled"
    MFA_VERIFIED = "mfa.verified"
    MFA_FAILED = "mfa.failed"
    VERIFICATION_LOCKED = "mfa.locked"

    OTP_SENT = "otp.sent"
    OTP_SEND_FAILED = "otp.send_failed"

    RECOVERY_CODES_GENERATED = "recovery.generated"
    RECOVERY_CODE_USED = "recovery.used"
    RECOVERY_CODES_REVOKED = "recovery.revoked"

    ROLE_GRANTED = "role.granted"
    ROLE_REVOKED = "role.revoked"


class AuthAuditEvent(BaseModel):
    """One entry of the audit trail.

    Attributes:
        event_type: What happened.
        subject_id: User the event concerns, if known.
        source: Component that emitted the event.
        occurred_at: Timezone-aware UTC time.
        success: Outcome of the operation.
        error_code: Machine-readable failure reason. Failures without one
            get ``UNKNOWN_ERROR``.
        detail: Free-form failure text for operators.
        metadata: Scalar context. Never codes, hashes or destinations.
    """

    model_config = ConfigDict(frozen=True)

    event_type: AuthEventType
    subject_id: str | None = None
    source: str = "stepup"
    occurred_at: datetime = Field(default_factory=utcnow)
    success: bool = True
    error_code: str | None = None
    detail: str | None = None
    metadata: AuditMetadata = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _default_error_code(cls, data: Any) -> Any:
        if (
            isinstance(data, dict)
            and data.get("success") is False
            and not data.get("error_code")
        ):
            return {**data, "error_code": "UNKNOWN_ERROR"}
        return data

    @field_validator("occurred_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form, the inverse of `from_dict`."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthAuditEvent:
        """Rebuild an event from `to_dict` output.

        Raises:
            pydantic.ValidationError: A field is missing or invalid.
        """
        return cls.model_validate(data)


def _failure(
    event_type: AuthEventType,
    subject_id: str | None,
    source: str,
    error_code: str,
    detail: str | None = None,
    metadata: AuditMetadata | None = None,
) -> AuthAuditEvent:
    return AuthAuditEvent(
        event_type=event_type,
        subject_id=subject_id,
        source=source,
        success=False,
        error_code=error_code,
        detail=detail,
        metadata=metadata or {},
    )


def login_success_event(subject_id: str, *, method: str = "password") -> AuthAuditEvent:
    return AuthAuditEvent(
        event_type=AuthEventType.LOGIN_SUCCESS,
        subject_id=subject_id,
        source="login",
        metadata={"method": method},
    )


def login_failed_event(
    *, subject_id: str | None = None, error_code: str = "INVALID_CREDENTIALS"
) -> AuthAuditEvent:
    """Failed password sign-in. The submitted email is not recorded."""
    return _failure(AuthEventType.LOGIN_FAILED, subject_id, "login", error_code)


def logout_event(subject_id: str | None) -> AuthAuditEvent:
    return AuthAuditEvent(
        event_type=AuthEventType.LOGOUT, subject_id=subject_id, source="login"
    )


def token_refreshed_event(
    subject_id: str, *, success: bool = True, detail: str | None = None
) -> AuthAuditEvent:
    if not success:
        return _failure(
            AuthEventType.TOKEN_REFRESH_FAILED,
            subject_id,
            "session",
            "REFRESH_FAILED",
            detail,
        )
    return AuthAuditEvent(
        event_type=AuthEventType.TOKEN_REFRESHED,
        subject_id=subject_id,
        source="session",
    )


def mfa_verified_event(subject_id: str, *, method: str = "totp") -> AuthAuditEvent:
    return AuthAuditEvent(
        event_type=AuthEventType.MFA_VERIFIED,
        subject_id=subject_id,
        source="mfa",
        metadata={"method": method},
    )


def mfa_failed_event(
    subject_id: str, *, method: str = "totp", error_code: str = "INVALID_CODE"
) -> AuthAuditEvent:
    return _failure(
        AuthEventType.MFA_FAILED,
        subject_id,
        "mfa",
        error_code,
        metadata={"method": method},
    )


def otp_sent_event(
    subject_id: str,
    *,
    channel: str,
    success: bool = True,
    detail: str | None = None,
) -> AuthAuditEvent:
    """OTP dispatch outcome. Only the channel is kept, never the destination."""
    if not success:
        return _failure(
            AuthEventType.OTP_SEND_FAILED,
            subject_id,
            "otp",
            "DELIVERY_FAILED",
            detail,
            {"channel": channel},
        )
    return AuthAuditEvent(
        event_type=AuthEventType.OTP_SENT,
        subject_id=subject_id,
        source="otp",
        metadata={"channel": channel},
    )


def recovery_code_event(
    event_type: AuthEventType, subject_id: str, *, count: int | None = None
) -> AuthAuditEvent:
    return AuthAuditEvent(
        event_type=event_type,
        subject_id=subject_id,
        source="recovery",
        metadata={} if count is None else {"count": count},
    )


def role_changed_event(
    subject_id: str, *, role: str, actor_id: str, granted: bool = True
) -> AuthAuditEvent:
    return AuthAuditEvent(
        event_type=(
            AuthEventType.ROLE_GRANTED if granted else AuthEventType.ROLE_REVOKED
        ),
        subject_id=subject_id,
        source="roles",
        metadata={"role": role, "actor_id": actor_id},
    )


__all__: list[str] = [
    "AuditValue",
    "AuditMetadata",
    "AuthEventType",
    "AuthAuditEvent",
    "login_success_event",
    "login_failed_event",
    "logout_event",
    "token_refreshed_event",
    "mfa_verified_event",
    "mfa_failed_event",
    "otp_sent_event",
    "recovery_code_event",
    "role_changed_event",
]
