"""Settings for wiring the step-up components.

Tunables live in frozen dataclasses next to each service; `StepUpSettings`
groups them. Delivery credentials are pydantic settings read from the
``SMTP_*`` and ``TWILIO_*`` environment variables.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import ClassVar, TypeVar

import pydantic
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .messaging.otp import NotificationOtpDelivery, OtpMessageRenderer
from .messaging.smtp import SmtpEmailSender
from .messaging.twilio import TwilioSMSSender
from .mfa.otp import OtpConfig
from .mfa.recovery_codes import RecoveryCodeConfig
from .primitives.exceptions import ValidationError
from .rate_limit import VerificationLimitConfig
from .session.lifecycle import SessionRefreshConfig

logger = logging.getLogger(__name__)

_ChannelT = TypeVar("_ChannelT", bound="_ChannelSettings")


class _ChannelSettings(BaseSettings):
    """Credentials of one delivery channel: all required values or none."""

    model_config = SettingsConfigDict(
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    channel_label: ClassVar[str]
    required_fields: ClassVar[tuple[str, ...]]

    @property
    def configured(self) -> bool:
        return any(getattr(self, name) for name in self.required_fields)

    @classmethod
    def env_name(cls, name: str) -> str:
        """Environment variable a field, or an error location, maps to."""
        prefix = str(cls.model_config.get("env_prefix", ""))
        info = cls.model_fields.get(name)
        if info is not None and isinstance(info.validation_alias, str):
            return info.validation_alias
        upper = name.upper()
        return upper if upper.startswith(prefix) else f"{prefix}{upper}"

    @model_validator(mode="after")
    def _all_or_nothing(self: _ChannelT) -> _ChannelT:
        missing = [name for name in self.required_fields if not getattr(self, name)]
        if self.configured and missing:
            names = ", ".join(self.env_name(name) for name in missing)
            raise ValueError(
                f"{names} required when {self.channel_label} is configured"
            )
        return self


class SmtpSettings(_ChannelSettings):
    model_config = SettingsConfigDict(env_prefix="SMTP_")

    channel_label: ClassVar[str] = "SMTP"
    required_fields: ClassVar[tuple[str, ...]] = ("host", "from_email")

    host: str = ""
    from_email: str = Field("", validation_alias="SMTP_FROM")
    port: int = 587
    username: str | None = None
    password: str | None = None
    use_tls: bool = True
    timeout: float = 10.0

    @field_validator("username", "password", mode="before")
    @classmethod
    def _blank_is_none(cls, value: object) -> object:
        return value or None


class TwilioSettings(_ChannelSettings):
    model_config = SettingsConfigDict(env_prefix="TWILIO_")

    channel_label: ClassVar[str] = "Twilio"
    required_fields: ClassVar[tuple[str, ...]] = (
        "account_sid",
        "auth_token",
        "from_number",
    )

    account_sid: str = ""
    auth_token: str = ""
    from_number: str = Field("", validation_alias="TWILIO_PHONE_NUMBER")
    timeout: float = 10.0


def _load_channel(
    settings_cls: type[_ChannelT], errors: dict[str, list[str]]
) -> _ChannelT | None:
    try:
        settings = settings_cls()
    except pydantic.ValidationError as exc:
        for error in exc.errors():
            loc = error["loc"]
            key = (
                settings_cls.env_name(str(loc[0]))
                if loc
                else settings_cls.channel_label.upper()
            )
            errors.setdefault(key, []).append(error["msg"])
        return None
    return settings if settings.configured else None


@dataclass(frozen=True)
class DeliverySettings:
    """Outbound OTP channels. A missing channel rejects sends to it."""

    smtp: SmtpSettings | None = None
    twilio: TwilioSettings | None = None

    @classmethod
    def from_env(cls) -> DeliverySettings:
        """Read ``SMTP_*`` and ``TWILIO_*`` variables.

        A channel is configured only when its required variables are set.
        Setting some but not all of them is an error rather than a silently
        disabled channel.

        Raises:
            ValidationError: A channel is partially configured or a value
                does not parse. Keys are variable names, or ``SMTP`` /
                ``TWILIO`` for a partially configured channel.
        """
        errors: dict[str, list[str]] = {}
        smtp = _load_channel(SmtpSettings, errors)
        twilio = _load_channel(TwilioSettings, errors)
        if errors:
            raise ValidationError(errors)
        return cls(smtp=smtp, twilio=twilio)


@dataclass(frozen=True)
class StepUpSettings:
    """All tunables of the step-up components in one place."""

    otp: OtpConfig = field(default_factory=OtpConfig)
    session: SessionRefreshConfig = field(default_factory=SessionRefreshConfig)
    recovery_codes: RecoveryCodeConfig = field(default_factory=RecoveryCodeConfig)
    verification_limit: VerificationLimitConfig = field(
        default_factory=VerificationLimitConfig
    )
    delivery: DeliverySettings = field(default_factory=DeliverySettings)
    low_recovery_code_threshold: int = 2


def build_otp_delivery(settings: StepUpSettings) -> NotificationOtpDelivery:
    """Create the OTP delivery hook for the configured channels."""
    delivery = settings.delivery
    email_sender = None
    if delivery.smtp is not None:
        smtp = delivery.smtp
        email_sender = SmtpEmailSender(
            host=smtp.host,
            port=smtp.port,
            username=smtp.username,
            password=smtp.password,
            start_tls=smtp.use_tls,
            timeout=smtp.timeout,
            from_email=smtp.from_email,
        )
    sms_sender = None
    if delivery.twilio is not None:
        twilio = delivery.twilio
        sms_sender = TwilioSMSSender(
            account_sid=twilio.account_sid,
            auth_token=twilio.auth_token,
            from_number=twilio.from_number,
            timeout=twilio.timeout,
        )
    if email_sender is None and sms_sender is None:
        logger.warning("No OTP delivery channel configured")
    return NotificationOtpDelivery(
        email_sender=email_sender,
        sms_sender=sms_sender,
        renderer=OtpMessageRenderer(ttl_seconds=settings.otp.ttl_seconds),
    )


__all__: list[str] = [
    "SmtpSettings",
    "TwilioSettings",
    "DeliverySettings",
    "StepUpSettings",
    "build_otp_delivery",
]
