"""Shared fixtures for stepup-identity tests."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

import pytest

from stepup_identity.audit import InMemoryAuthAuditStore
from stepup_identity.credentials import InMemoryCredentialStore, PasswordHasher
from stepup_identity.mfa import (
    InMemoryOtpCodeStore,
    InMemoryRecoveryCodeStore,
    MfaStatusTracker,
    OtpChannelManager,
    RecoveryCodeManager,
    TwoFactorService,
)
from stepup_identity.rate_limit import InMemoryLockoutStore, VerificationLimiter

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "correct-horse"


class FakeClock:
    """Settable UTC clock. Call it to read, `advance` to move forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class MockDeliveryHook:
    """Mock delivery hook for testing."""

    def __init__(self) -> None:
        self.emails_sent: list[tuple[str, str]] = []
        self.sms_sent: list[tuple[str, str]] = []
        self.fail_with: Exception | None = None

    async def send_email_otp(self, email: str, code: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.emails_sent.append((email, code))

    async def send_sms_otp(self, phone: str, code: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sms_sent.append((phone, code))

    @property
    def last_code(self) -> str:
        sent = self.emails_sent + self.sms_sent
        return sent[-1][1]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def audit_store(clock: FakeClock) -> InMemoryAuthAuditStore:
    return InMemoryAuthAuditStore(clock=clock)


@pytest.fixture
def credential_store(clock: FakeClock) -> InMemoryCredentialStore:
    # Low bcrypt cost keeps the suite fast
    return InMemoryCredentialStore(hasher=PasswordHasher(rounds=4), clock=clock)


@pytest.fixture
def admin_id(credential_store: InMemoryCredentialStore) -> str:
    return credential_store.add_user(ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def delivery() -> MockDeliveryHook:
    return MockDeliveryHook()


@pytest.fixture
def otp_store() -> InMemoryOtpCodeStore:
    return InMemoryOtpCodeStore()


@pytest.fixture
def recovery_store() -> InMemoryRecoveryCodeStore:
    return InMemoryRecoveryCodeStore()


@pytest.fixture
def lockout_store(clock: FakeClock) -> InMemoryLockoutStore:
    return InMemoryLockoutStore(clock=clock)


@pytest.fixture
def limiter(
    lockout_store: InMemoryLockoutStore, audit_store: InMemoryAuthAuditStore
) -> VerificationLimiter:
    return VerificationLimiter(lockout_store, audit_store=audit_store)


@pytest.fixture
def otp_manager(
    otp_store: InMemoryOtpCodeStore,
    delivery: MockDeliveryHook,
    limiter: VerificationLimiter,
    audit_store: InMemoryAuthAuditStore,
    clock: FakeClock,
) -> OtpChannelManager:
    return OtpChannelManager(
        code_store=otp_store,
        delivery=delivery,
        limiter=limiter,
        audit_store=audit_store,
        clock=clock,
    )


@pytest.fixture
def recovery_codes(
    recovery_store: InMemoryRecoveryCodeStore,
    audit_store: InMemoryAuthAuditStore,
    clock: FakeClock,
) -> RecoveryCodeManager:
    return RecoveryCodeManager(
        code_store=recovery_store, audit_store=audit_store, clock=clock
    )


@pytest.fixture
def status_tracker(credential_store: InMemoryCredentialStore) -> MfaStatusTracker:
    return MfaStatusTracker(credential_store)


@pytest.fixture
def two_factor(
    credential_store: InMemoryCredentialStore,
    recovery_codes: RecoveryCodeManager,
    audit_store: InMemoryAuthAuditStore,
) -> TwoFactorService:
    return TwoFactorService(
        credential_store=credential_store,
        recovery_codes=recovery_codes,
        audit_store=audit_store,
    )


@pytest.fixture
def totp_code(
    credential_store: InMemoryCredentialStore, clock: FakeClock
) -> Callable[[str], str]:
    """Current authenticator code of a factor."""

    def _code(factor_id: str) -> str:
        secret = credential_store.factor_secret(factor_id)
        return credential_store.totp.code_at(secret, clock())

    return _code


@pytest.fixture
def enable_two_factor(
    credential_store: InMemoryCredentialStore,
    two_factor: TwoFactorService,
    totp_code: Callable[[str], str],
) -> Callable[[], Awaitable[tuple[str, list[str]]]]:
    """Sign the admin in and finish TOTP enrollment.

    Returns the verified factor id and the issued recovery codes. The
    session is left at aal2.
    """

    async def _enable() -> tuple[str, list[str]]:
        session = await credential_store.sign_in_with_password(
            ADMIN_EMAIL, ADMIN_PASSWORD
        )
        enrollment = await two_factor.start_enrollment()
        codes = await two_factor.confirm_enrollment(
            session.user_id, enrollment.factor_id, totp_code(enrollment.factor_id)
        )
        return enrollment.factor_id, codes

    return _enable
