"""Tests for the login state machine."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from stepup_identity.audit import AuthEventType
from stepup_identity.exceptions import InvalidTransitionError, SessionError
from stepup_identity.login import (
    AuthorizationSource,
    LoginStateMachine,
    LoginStep,
    NotificationLevel,
    VerificationMethod,
)
from stepup_identity.messaging import NotificationDeliveryError
from stepup_identity.mfa import MfaStatus
from stepup_identity.models import AssuranceLevel
from stepup_identity.primitives.exceptions import ValidationError

EMAIL = "admin@example.com"
PASSWORD = "correct-horse"


@pytest.fixture
def machine(
    credential_store,
    status_tracker,
    otp_manager,
    recovery_codes,
    two_factor,
    audit_store,
) -> LoginStateMachine:
    return LoginStateMachine(
        credential_store=credential_store,
        status_tracker=status_tracker,
        otp_manager=otp_manager,
        recovery_codes=recovery_codes,
        two_factor=two_factor,
        audit_store=audit_store,
    )


@pytest_asyncio.fixture
async def two_factor_user(credential_store, admin_id, enable_two_factor):
    """Admin with TOTP enabled, signed out again."""
    factor_id, codes = await enable_two_factor()
    await credential_store.sign_out()
    return factor_id, codes


async def at_method_choice(machine: LoginStateMachine) -> None:
    assert await machine.submit_credentials(EMAIL, PASSWORD) is LoginStep.METHOD_CHOICE
    machine.notifications.clear()


class TestCredentials:
    @pytest.mark.asyncio
    async def test_malformed_form_raises(self, machine: LoginStateMachine) -> None:
        with pytest.raises(ValidationError) as exc:
            await machine.submit_credentials("not-an-email", "123")

        assert set(exc.value.errors) == {"email", "password"}
        assert machine.step is LoginStep.CREDENTIALS
        assert machine.notifications == []

    @pytest.mark.asyncio
    async def test_wrong_password(
        self, machine: LoginStateMachine, admin_id, audit_store
    ) -> None:
        step = await machine.submit_credentials(EMAIL, "wrong-horse")

        assert step is LoginStep.CREDENTIALS
        (notification,) = machine.notifications
        assert notification.level is NotificationLevel.ERROR
        assert notification.message == "Invalid email or password"
        assert AuthEventType.LOGIN_FAILED in audit_store.event_types()

    @pytest.mark.asyncio
    async def test_store_failure_is_generic(
        self, machine: LoginStateMachine, credential_store, admin_id
    ) -> None:
        credential_store.sign_in_with_password = AsyncMock(
            side_effect=SessionError("upstream 503")
        )

        await machine.submit_credentials(EMAIL, PASSWORD)

        (notification,) = machine.notifications
        assert "upstream" not in notification.message
        assert machine.step is LoginStep.CREDENTIALS

    @pytest.mark.asyncio
    async def test_password_only_user_chooses_method(
        self, machine: LoginStateMachine, admin_id
    ) -> None:
        await at_method_choice(machine)

        assert machine.session is not None
        assert machine.available_methods() == [
            VerificationMethod.EMAIL_OTP,
            VerificationMethod.PHONE_OTP,
            VerificationMethod.ENROLL_TOTP,
        ]

    @pytest.mark.asyncio
    async def test_two_factor_user_is_offered_totp(
        self, machine: LoginStateMachine, two_factor_user
    ) -> None:
        await at_method_choice(machine)

        assert machine.mfa_status.is_enabled
        assert machine.available_methods() == [
            VerificationMethod.TOTP,
            VerificationMethod.EMAIL_OTP,
            VerificationMethod.PHONE_OTP,
        ]

    @pytest.mark.asyncio
    async def test_already_multi_factor_session_is_authorized(
        self, machine: LoginStateMachine, admin_id, status_tracker, audit_store
    ) -> None:
        status_tracker.check_status = AsyncMock(
            return_value=MfaStatus(
                is_enabled=True,
                is_verified=True,
                current_level=AssuranceLevel.AAL2,
                next_level=AssuranceLevel.AAL2,
            )
        )

        step = await machine.submit_credentials(EMAIL, PASSWORD)

        assert step is LoginStep.AUTHORIZED
        assert machine.authorization is AuthorizationSource.SESSION
        assert AuthEventType.LOGIN_SUCCESS in audit_store.event_types()

    @pytest.mark.asyncio
    async def test_result_after_cancel_is_ignored(
        self, machine: LoginStateMachine, credential_store, admin_id
    ) -> None:
        sign_in = credential_store.sign_in_with_password
        gate = asyncio.Event()

        async def slow_sign_in(email: str, password: str):
            await gate.wait()
            return await sign_in(email, password)

        credential_store.sign_in_with_password = slow_sign_in
        task = asyncio.create_task(machine.submit_credentials(EMAIL, PASSWORD))
        await asyncio.sleep(0)
        await machine.cancel()
        gate.set()

        assert await task is LoginStep.CREDENTIALS
        assert machine.session is None

    @pytest.mark.asyncio
    async def test_wrong_step(self, machine: LoginStateMachine, admin_id) -> None:
        await at_method_choice(machine)

        with pytest.raises(InvalidTransitionError):
            await machine.submit_credentials(EMAIL, PASSWORD)


class TestSignUp:
    @pytest.mark.asyncio
    async def test_creates_account(
        self, machine: LoginStateMachine, audit_store
    ) -> None:
        assert await machine.sign_up("new@example.com", "long-enough")

        assert machine.notifications[-1].level is NotificationLevel.SUCCESS
        assert AuthEventType.SIGN_UP in audit_store.event_types()

    @pytest.mark.asyncio
    async def test_duplicate_email(self, machine: LoginStateMachine, admin_id) -> None:
        assert not await machine.sign_up(EMAIL, "long-enough")

        assert machine.notifications[-1].level is NotificationLevel.ERROR


class TestForgotPassword:
    @pytest.mark.asyncio
    async def test_request_returns_to_credentials(
        self, machine: LoginStateMachine, credential_store, admin_id, audit_store
    ) -> None:
        machine.forgot_password()
        assert machine.step is LoginStep.FORGOT_PASSWORD

        assert await machine.submit_password_reset(EMAIL) is LoginStep.CREDENTIALS
        assert credential_store.password_reset_requests == [EMAIL]
        assert AuthEventType.PASSWORD_RESET_REQUESTED in audit_store.event_types()

    @pytest.mark.asyncio
    async def test_unknown_email_looks_the_same(
        self, machine: LoginStateMachine, credential_store
    ) -> None:
        machine.forgot_password()
        await machine.submit_password_reset("nobody@example.com")

        assert credential_store.password_reset_requests == []
        assert machine.notifications[-1].level is NotificationLevel.SUCCESS

    @pytest.mark.asyncio
    async def test_malformed_email(self, machine: LoginStateMachine) -> None:
        machine.forgot_password()

        with pytest.raises(ValidationError):
            await machine.submit_password_reset("nope")
        assert machine.step is LoginStep.FORGOT_PASSWORD

    @pytest.mark.asyncio
    async def test_back(self, machine: LoginStateMachine) -> None:
        machine.forgot_password()

        assert await machine.back() is LoginStep.CREDENTIALS


class TestTotpChallenge:
    @pytest_asyncio.fixture
    async def at_totp(self, machine: LoginStateMachine, two_factor_user):
        await at_method_choice(machine)
        await machine.choose_method(VerificationMethod.TOTP)
        return two_factor_user

    @pytest.mark.asyncio
    async def test_valid_code_upgrades_session(
        self, machine: LoginStateMachine, at_totp, totp_code, audit_store
    ) -> None:
        factor_id, _ = at_totp

        assert await machine.submit_totp(totp_code(factor_id))

        assert machine.step is LoginStep.AUTHORIZED
        assert machine.authorization is AuthorizationSource.SESSION
        assert machine.session.assurance_level is AssuranceLevel.AAL2
        assert machine.mfa_status.is_verified
        assert AuthEventType.LOGIN_SUCCESS in audit_store.event_types()

    @pytest.mark.asyncio
    async def test_malformed_code(self, machine: LoginStateMachine, at_totp) -> None:
        assert not await machine.submit_totp("12ab")

        assert machine.notifications[-1].message == "Please enter a 6-digit code."
        assert machine.step is LoginStep.TOTP_CHALLENGE

    @pytest.mark.asyncio
    async def test_wrong_code(
        self, machine: LoginStateMachine, at_totp, totp_code, audit_store
    ) -> None:
        factor_id, _ = at_totp
        wrong = "111111" if totp_code(factor_id) != "111111" else "222222"

        assert not await machine.submit_totp(wrong)

        assert machine.notifications[-1].level is NotificationLevel.ERROR
        assert machine.step is LoginStep.TOTP_CHALLENGE
        assert AuthEventType.MFA_FAILED in audit_store.event_types()

    @pytest.mark.asyncio
    async def test_back_to_method_choice(
        self, machine: LoginStateMachine, at_totp
    ) -> None:
        assert await machine.back() is LoginStep.METHOD_CHOICE
        assert machine.method is None


class TestRecoveryChallenge:
    @pytest_asyncio.fixture
    async def codes(self, machine: LoginStateMachine, two_factor_user):
        await at_method_choice(machine)
        await machine.choose_method(VerificationMethod.TOTP)
        machine.use_recovery_code()
        return two_factor_user[1]

    @pytest.mark.asyncio
    async def test_valid_code_authorizes_without_upgrade(
        self, machine: LoginStateMachine, codes
    ) -> None:
        assert await machine.submit_recovery_code(codes[0])

        assert machine.verified_via_recovery
        assert machine.session.assurance_level is AssuranceLevel.AAL1
        (notification,) = machine.notifications
        assert notification.level is NotificationLevel.SUCCESS
        assert notification.message == "You have 9 recovery codes left."

    @pytest.mark.asyncio
    async def test_invalid_code(self, machine: LoginStateMachine, codes) -> None:
        assert not await machine.submit_recovery_code("AAAAA-BBBBB")

        assert machine.step is LoginStep.RECOVERY_CHALLENGE
        assert machine.notifications[-1].level is NotificationLevel.ERROR

    @pytest.mark.asyncio
    async def test_warns_when_running_low(
        self, machine: LoginStateMachine, codes, recovery_codes, admin_id
    ) -> None:
        for code in codes[:8]:
            await recovery_codes.verify_code(admin_id, code)

        assert await machine.submit_recovery_code(codes[8])

        (notification,) = machine.notifications
        assert notification.level is NotificationLevel.WARNING
        assert "1 recovery code left" in notification.message

    @pytest.mark.asyncio
    async def test_back_to_totp(self, machine: LoginStateMachine, codes) -> None:
        assert await machine.back() is LoginStep.TOTP_CHALLENGE


class TestOtpChallenge:
    @pytest_asyncio.fixture
    async def at_email_otp(self, machine: LoginStateMachine, admin_id) -> None:
        await at_method_choice(machine)
        await machine.choose_method(VerificationMethod.EMAIL_OTP)

    @pytest.mark.asyncio
    async def test_email_code_authorizes(
        self, machine: LoginStateMachine, at_email_otp, delivery
    ) -> None:
        ticket = await machine.send_otp()

        assert ticket is not None
        assert ticket.destination == EMAIL
        assert machine.notifications[-1].title == "Code sent"

        assert await machine.submit_otp(delivery.last_code)
        assert machine.verified_via_otp
        assert machine.session.assurance_level is AssuranceLevel.AAL1

    @pytest.mark.asyncio
    async def test_wrong_code(
        self, machine: LoginStateMachine, at_email_otp, delivery
    ) -> None:
        await machine.send_otp()
        wrong = "100000" if delivery.last_code != "100000" else "100001"

        assert not await machine.submit_otp(wrong)
        assert machine.notifications[-1].title == "Invalid code"
        assert machine.step is LoginStep.OTP_CHALLENGE

    @pytest.mark.asyncio
    async def test_expired_code(
        self, machine: LoginStateMachine, at_email_otp, delivery, clock
    ) -> None:
        await machine.send_otp()
        clock.advance(301)

        assert not await machine.submit_otp(delivery.last_code)
        assert machine.notifications[-1].title == "Code expired"

    @pytest.mark.asyncio
    async def test_lockout(
        self, machine: LoginStateMachine, at_email_otp, delivery
    ) -> None:
        await machine.send_otp()
        wrong = "100000" if delivery.last_code != "100000" else "100001"
        for _ in range(5):
            await machine.submit_otp(wrong)

        assert not await machine.submit_otp(delivery.last_code)
        assert machine.notifications[-1].title == "Too many attempts"

    @pytest.mark.asyncio
    async def test_resend_during_cooldown(
        self, machine: LoginStateMachine, at_email_otp
    ) -> None:
        await machine.send_otp()

        assert await machine.send_otp() is None
        assert machine.notifications[-1].level is NotificationLevel.WARNING
        assert machine.notifications[-1].title == "Please wait"

    @pytest.mark.asyncio
    async def test_delivery_failure(
        self, machine: LoginStateMachine, at_email_otp, delivery
    ) -> None:
        delivery.fail_with = NotificationDeliveryError("email", EMAIL, "smtp down")

        assert await machine.send_otp() is None
        notification = machine.notifications[-1]
        assert notification.title == "Failed to send code"
        assert "smtp" not in notification.message

    @pytest.mark.asyncio
    async def test_phone_requires_destination(
        self, machine: LoginStateMachine, admin_id, delivery
    ) -> None:
        await at_method_choice(machine)
        await machine.choose_method(VerificationMethod.PHONE_OTP)

        with pytest.raises(ValidationError):
            await machine.send_otp()

        assert await machine.send_otp("+15551234567") is not None
        assert delivery.sms_sent[0][0] == "+15551234567"

    @pytest.mark.asyncio
    async def test_malformed_phone(
        self, machine: LoginStateMachine, admin_id, delivery
    ) -> None:
        await at_method_choice(machine)
        await machine.choose_method(VerificationMethod.PHONE_OTP)

        assert await machine.send_otp("555-1234") is None
        assert machine.notifications[-1].title == "Invalid destination"
        assert delivery.sms_sent == []

    @pytest.mark.asyncio
    async def test_send_result_after_back_is_ignored(
        self, machine: LoginStateMachine, at_email_otp, delivery
    ) -> None:
        gate = asyncio.Event()
        send_email = delivery.send_email_otp

        async def slow_send(email: str, code: str) -> None:
            await gate.wait()
            await send_email(email, code)

        delivery.send_email_otp = slow_send
        task = asyncio.create_task(machine.send_otp())
        await asyncio.sleep(0)
        await machine.back()
        gate.set()

        assert await task is None
        assert machine.step is LoginStep.METHOD_CHOICE
        assert all(n.title != "Code sent" for n in machine.notifications)


class TestEnrollment:
    @pytest_asyncio.fixture
    async def enrolling(self, machine: LoginStateMachine, admin_id):
        await at_method_choice(machine)
        await machine.choose_method(VerificationMethod.ENROLL_TOTP)
        return machine.pending_enrollment

    @pytest.mark.asyncio
    async def test_shows_setup_data(
        self, machine: LoginStateMachine, enrolling
    ) -> None:
        assert machine.step is LoginStep.TOTP_ENROLLMENT
        assert enrolling is not None
        assert enrolling.qr_uri.startswith("otpauth://")

    @pytest.mark.asyncio
    async def test_confirm_issues_codes_once(
        self, machine: LoginStateMachine, enrolling, totp_code
    ) -> None:
        codes = await machine.submit_enrollment_code(totp_code(enrolling.factor_id))

        assert codes is not None and len(codes) == 10
        assert machine.step is LoginStep.AUTHORIZED
        assert machine.session.assurance_level is AssuranceLevel.AAL2
        assert machine.pending_enrollment is None
        assert machine.take_recovery_codes() == codes
        assert machine.take_recovery_codes() is None

    @pytest.mark.asyncio
    async def test_wrong_code(
        self, machine: LoginStateMachine, enrolling, totp_code
    ) -> None:
        wrong = "111111" if totp_code(enrolling.factor_id) != "111111" else "222222"

        assert await machine.submit_enrollment_code(wrong) is None
        assert machine.step is LoginStep.TOTP_ENROLLMENT
        assert machine.notifications[-1].title == "Verification failed"

    @pytest.mark.asyncio
    async def test_skip_removes_pending_factor(
        self, machine: LoginStateMachine, enrolling, credential_store
    ) -> None:
        assert await machine.skip_enrollment() is LoginStep.METHOD_CHOICE

        assert await credential_store.list_factors() == []
        assert machine.pending_enrollment is None

    @pytest.mark.asyncio
    async def test_back_skips(
        self, machine: LoginStateMachine, enrolling, credential_store
    ) -> None:
        assert await machine.back() is LoginStep.METHOD_CHOICE
        assert await credential_store.list_factors() == []


class TestNavigation:
    @pytest.mark.asyncio
    async def test_choose_before_sign_in(self, machine: LoginStateMachine) -> None:
        with pytest.raises(InvalidTransitionError):
            await machine.choose_method(VerificationMethod.EMAIL_OTP)

    @pytest.mark.asyncio
    async def test_totp_not_offered_without_factor(
        self, machine: LoginStateMachine, admin_id
    ) -> None:
        await at_method_choice(machine)

        with pytest.raises(InvalidTransitionError):
            await machine.choose_method(VerificationMethod.TOTP)

    @pytest.mark.asyncio
    async def test_back_from_credentials(self, machine: LoginStateMachine) -> None:
        with pytest.raises(InvalidTransitionError):
            await machine.back()

    @pytest.mark.asyncio
    async def test_submit_outside_challenge(
        self, machine: LoginStateMachine, admin_id
    ) -> None:
        await at_method_choice(machine)

        with pytest.raises(InvalidTransitionError):
            await machine.submit_otp("123456")
        with pytest.raises(InvalidTransitionError):
            machine.use_recovery_code()

    @pytest.mark.asyncio
    async def test_cancel_signs_out(
        self, machine: LoginStateMachine, credential_store, admin_id, audit_store
    ) -> None:
        await at_method_choice(machine)

        assert await machine.cancel() is LoginStep.CREDENTIALS
        assert machine.session is None
        assert machine.mfa_status.current_level is None
        assert await credential_store.get_session() is None
        (event,) = await audit_store.get_events(
            admin_id, event_types=[AuthEventType.LOGOUT]
        )
        assert event.subject_id == admin_id


class TestAuthChanges:
    @pytest.mark.asyncio
    async def test_external_sign_out_resets_flow(
        self, machine: LoginStateMachine, credential_store, admin_id
    ) -> None:
        machine.attach()
        await at_method_choice(machine)

        await credential_store.sign_out()

        assert machine.step is LoginStep.CREDENTIALS
        assert machine.session is None
        machine.close()

    @pytest.mark.asyncio
    async def test_refresh_updates_session(
        self, machine: LoginStateMachine, credential_store, admin_id
    ) -> None:
        machine.attach()
        await at_method_choice(machine)
        before = machine.session

        renewed = await credential_store.refresh_session()

        assert machine.session == renewed
        assert machine.session != before
        assert machine.step is LoginStep.METHOD_CHOICE
        machine.close()
        assert credential_store.events.listener_count == 0
