"""In-memory credential store.

A complete `ICredentialStore` for tests and local development: bcrypt
password checks, opaque session tokens, TOTP factors backed by pyotp and
auth-state events. Production deployments plug in an adapter for their
hosted auth service instead.
"""

from __future__ import annotations

import logging
import re
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from ..events import AuthChangeEvent, AuthEventStream, AuthStateChange
from ..exceptions import (
    AuthenticationError,
    InvalidCredentialsError,
    MfaInvalidError,
    MfaSetupError,
    SessionError,
    SessionExpiredError,
)
from ..mfa.totp import TotpService
from ..models import (
    AssuranceLevel,
    AssuranceLevels,
    FactorStatus,
    MfaFactor,
    Session,
    TotpEnrollment,
)
from ..ports import ICredentialStore
from ..primitives.clock import utcnow
from .hasher import PasswordHasher

if TYPE_CHECKING:
    from ..events import AuthStateListener, Subscription
    from ..primitives.clock import Clock

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class _UserRecord:
    id: str
    email: str
    password_hash: str


@dataclass
class _FactorRecord:
    factor: MfaFactor
    secret: str


@dataclass
class _Challenge:
    factor_id: str
    expires_at: datetime


@dataclass
class _State:
    users: dict[str, _UserRecord] = field(default_factory=dict)
    factors: dict[str, _FactorRecord] = field(default_factory=dict)
    challenges: dict[str, _Challenge] = field(default_factory=dict)


class InMemoryCredentialStore(ICredentialStore):
    """In-memory credential store for TESTING and local development.

    ⚠️ WARNING: TOTP secrets are kept in plain text in memory.

    Example:
        ```python
        store = InMemoryCredentialStore()
        user_id = store.add_user("admin@example.com", "s3cret-pass")

        session = await store.sign_in_with_password("admin@example.com", "s3cret-pass")
        enrollment = await store.enroll_totp("Admin 2FA")
        ```
    """

    def __init__(
        self,
        *,
        hasher: PasswordHasher | None = None,
        totp: TotpService | None = None,
        session_ttl_seconds: int = 3600,
        challenge_ttl_seconds: int = 300,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            hasher: Password hasher (default bcrypt).
            totp: TOTP primitives for factors.
            session_ttl_seconds: Session lifetime (default 1 hour).
            challenge_ttl_seconds: Lifetime of an open TOTP challenge.
            clock: Time source (defaults to UTC now).
        """
        self.hasher = hasher or PasswordHasher()
        self.totp = totp or TotpService()
        self.session_ttl_seconds = session_ttl_seconds
        self.challenge_ttl_seconds = challenge_ttl_seconds
        self._clock = clock or utcnow
        self._state = _State()
        self._session: Session | None = None
        self._events = AuthEventStream()
        self.password_reset_requests: list[str] = []

    # ── users ────────────────────────────────────────────────────

    def add_user(self, email: str, password: str) -> str:
        """Create a user synchronously (fixture helper)."""
        email = email.strip().lower()
        if self._find_user(email) is not None:
            raise AuthenticationError("User already registered")
        user = _UserRecord(
            id=str(uuid.uuid4()), email=email, password_hash=self.hasher.hash(password)
        )
        self._state.users[user.id] = user
        return user.id

    def _find_user(self, email: str) -> _UserRecord | None:
        email = email.strip().lower()
        for user in self._state.users.values():
            if user.email == email:
                return user
        return None

    async def sign_up(self, email: str, password: str) -> str:
        if not _EMAIL_PATTERN.match(email.strip()):
            raise AuthenticationError("Invalid email address")
        try:
            user_id = self.add_user(email, password)
        except ValueError as exc:
            raise AuthenticationError(str(exc)) from exc
        logger.info("User %s signed up", user_id)
        return user_id

    # ── sessions ─────────────────────────────────────────────────

    def _issue_session(self, user: _UserRecord, level: AssuranceLevel) -> Session:
        now = self._clock()
        return Session(
            user_id=user.id,
            email=user.email,
            access_token=secrets.token_urlsafe(32),
            refresh_token=secrets.token_urlsafe(32),
            issued_at=now,
            expires_at=now + timedelta(seconds=self.session_ttl_seconds),
            assurance_level=level,
        )

    def _require_session(self) -> Session:
        if self._session is None:
            raise SessionExpiredError("No active session")
        return self._session

    def _current_user(self) -> _UserRecord:
        return self._state.users[self._require_session().user_id]

    async def _publish(self, event: AuthChangeEvent) -> None:
        await self._events.publish(AuthStateChange(event, self._session))

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        user = self._find_user(email)
        if user is None or not self.hasher.verify(user.password_hash, password):
            raise InvalidCredentialsError()
        self._session = self._issue_session(user, AssuranceLevel.AAL1)
        await self._publish(AuthChangeEvent.SIGNED_IN)
        return self._session

    async def sign_out(self) -> None:
        self._session = None
        self._state.challenges.clear()
        await self._publish(AuthChangeEvent.SIGNED_OUT)

    async def get_session(self) -> Session | None:
        return self._session

    async def refresh_session(self) -> Session:
        current = self._session
        if current is None:
            raise SessionError("No session to refresh")
        user = self._state.users.get(current.user_id)
        if user is None:
            raise SessionError("User no longer exists")
        self._session = self._issue_session(user, current.assurance_level)
        await self._publish(AuthChangeEvent.TOKEN_REFRESHED)
        return self._session

    async def request_password_reset(self, email: str) -> None:
        user = self._find_user(email)
        if user is not None:
            self.password_reset_requests.append(user.email)
        logger.info("Password reset requested")

    # ── factors ──────────────────────────────────────────────────

    def _user_factors(self, user_id: str) -> list[_FactorRecord]:
        return [r for r in self._state.factors.values() if r.factor.user_id == user_id]

    async def get_assurance_levels(self) -> AssuranceLevels:
        session = self._require_session()
        has_verified = any(
            r.factor.is_verified for r in self._user_factors(session.user_id)
        )
        return AssuranceLevels(
            current=session.assurance_level,
            next=AssuranceLevel.AAL2 if has_verified else AssuranceLevel.AAL1,
        )

    async def list_factors(self) -> list[MfaFactor]:
        session = self._require_session()
        return [r.factor for r in self._user_factors(session.user_id)]

    async def enroll_totp(self, friendly_name: str) -> TotpEnrollment:
        user = self._current_user()
        verified_names = {
            r.factor.friendly_name
            for r in self._user_factors(user.id)
            if r.factor.is_verified
        }
        if friendly_name in verified_names:
            raise MfaSetupError(f"A factor named '{friendly_name}' already exists")

        secret = self.totp.new_secret()
        factor = MfaFactor(
            id=str(uuid.uuid4()),
            user_id=user.id,
            friendly_name=friendly_name,
            created_at=self._clock(),
        )
        self._state.factors[factor.id] = _FactorRecord(factor=factor, secret=secret)
        return TotpEnrollment(
            factor_id=factor.id,
            secret=secret,
            qr_uri=self.totp.provisioning_uri(secret, user.email),
            manual_key=self.totp.format_secret(secret),
        )

    def _owned_factor(self, factor_id: str) -> _FactorRecord:
        session = self._require_session()
        record = self._state.factors.get(factor_id)
        if record is None or record.factor.user_id != session.user_id:
            raise MfaSetupError("Unknown factor")
        return record

    async def challenge(self, factor_id: str) -> str:
        self._owned_factor(factor_id)
        challenge_id = str(uuid.uuid4())
        self._state.challenges[challenge_id] = _Challenge(
            factor_id=factor_id,
            expires_at=self._clock() + timedelta(seconds=self.challenge_ttl_seconds),
        )
        return challenge_id

    async def verify(self, factor_id: str, challenge_id: str, code: str) -> Session:
        record = self._owned_factor(factor_id)
        challenge = self._state.challenges.pop(challenge_id, None)
        now = self._clock()
        if (
            challenge is None
            or challenge.factor_id != factor_id
            or challenge.expires_at < now
        ):
            raise MfaInvalidError("Invalid TOTP code")
        if not self.totp.verify(record.secret, code, at=now):
            raise MfaInvalidError("Invalid TOTP code")

        if not record.factor.is_verified:
            record.factor = MfaFactor(
                id=record.factor.id,
                user_id=record.factor.user_id,
                friendly_name=record.factor.friendly_name,
                status=FactorStatus.VERIFIED,
                factor_type=record.factor.factor_type,
                created_at=record.factor.created_at,
            )
        self._session = self._issue_session(self._current_user(), AssuranceLevel.AAL2)
        await self._publish(AuthChangeEvent.MFA_CHALLENGE_VERIFIED)
        return self._session

    async def unenroll(self, factor_id: str) -> None:
        self._owned_factor(factor_id)
        del self._state.factors[factor_id]
        logger.info("Factor %s removed", factor_id)

    def factor_secret(self, factor_id: str) -> str:
        """Secret of a factor (fixture helper for producing valid codes)."""
        return self._state.factors[factor_id].secret

    # ── events ───────────────────────────────────────────────────

    def on_auth_state_change(self, listener: AuthStateListener) -> Subscription:
        return self._events.subscribe(listener)

    @property
    def events(self) -> AuthEventStream:
        return self._events


__all__: list[str] = ["InMemoryCredentialStore"]
