"""Tests for settings and delivery wiring."""

from __future__ import annotations

import logging
import os

import pytest

from stepup_identity.config import (
    DeliverySettings,
    SmtpSettings,
    StepUpSettings,
    TwilioSettings,
    build_otp_delivery,
)
from stepup_identity.messaging import SmtpEmailSender, TwilioSMSSender
from stepup_identity.mfa import OtpConfig
from stepup_identity.primitives.exceptions import ValidationError

SMTP_ENV = {
    "SMTP_HOST": "smtp.example.com",
    "SMTP_FROM": "no-reply@example.com",
}
TWILIO_ENV = {
    "TWILIO_ACCOUNT_SID": "AC123",
    "TWILIO_AUTH_TOKEN": "token",
    "TWILIO_PHONE_NUMBER": "+15550000000",
}


@pytest.fixture
def env(monkeypatch):
    """Environment without any delivery variables; returns a setter."""
    for key in list(os.environ):
        if key.upper().startswith(("SMTP_", "TWILIO_")):
            monkeypatch.delenv(key)

    def _set(**values: str) -> None:
        for key, value in values.items():
            monkeypatch.setenv(key, value)

    return _set


class TestDeliverySettingsFromEnv:
    def test_empty_environment(self, env) -> None:
        settings = DeliverySettings.from_env()

        assert settings.smtp is None
        assert settings.twilio is None

    def test_smtp(self, env) -> None:
        env(
            **SMTP_ENV,
            SMTP_PORT="2525",
            SMTP_USERNAME="mailer",
            SMTP_PASSWORD="secret",
            SMTP_USE_TLS="false",
        )

        settings = DeliverySettings.from_env()

        assert settings.smtp == SmtpSettings(
            host="smtp.example.com",
            from_email="no-reply@example.com",
            port=2525,
            username="mailer",
            password="secret",
            use_tls=False,
        )
        assert settings.twilio is None

    def test_blank_optional_values_are_none(self, env) -> None:
        env(**SMTP_ENV, SMTP_USERNAME="", SMTP_PASSWORD="")

        smtp = DeliverySettings.from_env().smtp

        assert smtp is not None
        assert smtp.username is None and smtp.password is None
        assert smtp.port == 587 and smtp.use_tls

    def test_twilio(self, env) -> None:
        env(**TWILIO_ENV)

        settings = DeliverySettings.from_env()

        assert settings.twilio == TwilioSettings(
            account_sid="AC123", auth_token="token", from_number="+15550000000"
        )

    def test_partial_smtp_is_an_error(self, env) -> None:
        env(SMTP_HOST="smtp.example.com")

        with pytest.raises(ValidationError) as exc:
            DeliverySettings.from_env()

        assert set(exc.value.errors) == {"SMTP"}
        assert "SMTP_FROM" in exc.value.errors["SMTP"][0]

    def test_partial_twilio_is_an_error(self, env) -> None:
        env(**dict(TWILIO_ENV, TWILIO_AUTH_TOKEN=""))

        with pytest.raises(ValidationError) as exc:
            DeliverySettings.from_env()

        assert set(exc.value.errors) == {"TWILIO"}
        assert "TWILIO_AUTH_TOKEN" in exc.value.errors["TWILIO"][0]

    def test_bad_port(self, env) -> None:
        env(**SMTP_ENV, SMTP_PORT="smtp")

        with pytest.raises(ValidationError) as exc:
            DeliverySettings.from_env()

        assert "SMTP_PORT" in exc.value.errors

    def test_errors_from_both_channels_are_collected(self, env) -> None:
        env(SMTP_FROM="no-reply@example.com", TWILIO_ACCOUNT_SID="AC123")

        with pytest.raises(ValidationError) as exc:
            DeliverySettings.from_env()

        assert set(exc.value.errors) == {"SMTP", "TWILIO"}


class TestChannelSettings:
    def test_constructed_directly_by_field_name(self, env) -> None:
        smtp = SmtpSettings(host="smtp.example.com", from_email="a@example.com")

        assert smtp.configured
        assert not TwilioSettings().configured

    def test_env_names(self) -> None:
        assert SmtpSettings.env_name("from_email") == "SMTP_FROM"
        assert SmtpSettings.env_name("port") == "SMTP_PORT"
        assert TwilioSettings.env_name("from_number") == "TWILIO_PHONE_NUMBER"


class TestBuildOtpDelivery:
    def test_configured_channels(self, env) -> None:
        settings = StepUpSettings(
            otp=OtpConfig(ttl_seconds=600),
            delivery=DeliverySettings(
                smtp=SmtpSettings(host="smtp.example.com", from_email="a@example.com"),
                twilio=TwilioSettings(
                    account_sid="AC123", auth_token="token", from_number="+1555"
                ),
            ),
        )

        delivery = build_otp_delivery(settings)

        assert isinstance(delivery.email_sender, SmtpEmailSender)
        assert delivery.email_sender.from_email == "a@example.com"
        assert isinstance(delivery.sms_sender, TwilioSMSSender)
        assert delivery.renderer.validity_text == "10 minutes"

    def test_warns_without_channels(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="stepup_identity.config"):
            delivery = build_otp_delivery(StepUpSettings())

        assert delivery.email_sender is None
        assert delivery.sms_sender is None
        assert "No OTP delivery channel configured" in caplog.text
