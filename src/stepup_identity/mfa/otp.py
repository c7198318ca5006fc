"""Email/SMS one-time code flow.

The manager issues six-digit codes, stores them through `IOtpCodeStore`,
delegates sending to `IOtpDelivery` and verifies submissions. It also
owns the per-flow state (idle, sending, sent, verifying) and the resend
cooldown the UI counts down from.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import secrets
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from ..audit.events import mfa_failed_event, mfa_verified_event, otp_sent_event
from ..audit.recorder import record_audit_event
from ..exceptions import (
    InvalidTransitionError,
    MfaInvalidError,
    OtpCooldownError,
    OtpExpiredError,
)
from ..messaging.exceptions import NotificationError
from ..models import OtpChannel, OtpRecord
from ..observability.metrics import AuthMetrics
from ..primitives.clock import utcnow
from ..primitives.exceptions import ValidationError
from .ports import IOtpCodeStore, IOtpDelivery, OtpConsumeResult

if TYPE_CHECKING:
    from ..ports import IAuthAuditStore
    from ..primitives.clock import Clock
    from ..rate_limit import VerificationLimiter

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_PATTERN = re.compile(r"^\+[1-9]\d{6,14}$")


@dataclass(frozen=True)
class OtpConfig:
    """OTP configuration.

    Attributes:
        code_length: Number of digits in OTP code.
        ttl_seconds: Time-to-live in seconds.
        cooldown_seconds: Minimum seconds between sends.
    """

    code_length: int = 6
    ttl_seconds: int = 300  # 5 minutes
    cooldown_seconds: int = 60  # 1 minute between resends


class OtpFlowState(Enum):
    """State of one OTP verification flow."""

    IDLE = "idle"
    SENDING = "sending"
    SENT = "sent"
    VERIFYING = "verifying"


@dataclass(frozen=True)
class OtpTicket:
    """What the caller learns about a sent code. The code itself is never returned.

    Attributes:
        channel: Channel the code went out on.
        destination: Address or phone number it was sent to.
        expires_at: When the code stops being accepted.
        resend_available_at: When a new code may be requested.
    """

    channel: OtpChannel
    destination: str
    expires_at: datetime
    resend_available_at: datetime


class OtpChannelManager:
    """One-time code flow over email or SMS.

    Example:
        ```python
        manager = OtpChannelManager(
            code_store=InMemoryOtpCodeStore(),
            delivery=NotificationOtpDelivery(email_sender=smtp_sender),
        )

        ticket = await manager.send(OtpChannel.EMAIL, "admin@example.com", user_id)
        await manager.verify(user_id, "123456")
        ```
    """

    def __init__(
        self,
        *,
        code_store: IOtpCodeStore,
        delivery: IOtpDelivery,
        config: OtpConfig | None = None,
        limiter: VerificationLimiter | None = None,
        audit_store: IAuthAuditStore | None = None,
        clock: Clock | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize the OTP channel manager.

        Args:
            code_store: Storage for issued codes.
            delivery: Hook that sends the code by email or SMS.
            config: OTP configuration.
            limiter: Optional failed-attempt limiter for `verify`.
            audit_store: Optional audit sink.
            clock: Time source (defaults to UTC now).
            sleep: Awaitable used between cooldown ticks.
        """
        self.code_store = code_store
        self.delivery = delivery
        self.config = config or OtpConfig()
        self.limiter = limiter
        self._audit_store = audit_store
        self._clock = clock or utcnow
        self._sleep = sleep or asyncio.sleep

        self._state = OtpFlowState.IDLE
        self._channel: OtpChannel | None = None
        self._destination: str | None = None
        self._last_sent_at: datetime | None = None
        self._generation = 0

    # ── state ────────────────────────────────────────────────────

    @property
    def state(self) -> OtpFlowState:
        return self._state

    @property
    def channel(self) -> OtpChannel | None:
        """Channel of the last successful send in this flow."""
        return self._channel

    @property
    def destination(self) -> str | None:
        return self._destination

    def remaining_cooldown(self) -> int:
        """Whole seconds until another code may be sent (0 when allowed)."""
        if self._last_sent_at is None:
            return 0
        elapsed = (self._clock() - self._last_sent_at).total_seconds()
        return max(0, math.ceil(self.config.cooldown_seconds - elapsed))

    @property
    def can_resend(self) -> bool:
        return (
            self._state is not OtpFlowState.SENDING and self.remaining_cooldown() == 0
        )

    async def cooldown_ticks(self, interval: float = 1.0) -> AsyncIterator[int]:
        """Yield the remaining cooldown once per `interval`, ending with 0."""
        remaining = self.remaining_cooldown()
        while remaining > 0:
            yield remaining
            await self._sleep(interval)
            remaining = self.remaining_cooldown()
        yield 0

    def reset(self) -> None:
        """Return the flow to idle and drop results of calls still in flight."""
        self._generation += 1
        self._state = OtpFlowState.IDLE
        self._channel = None
        self._destination = None
        self._last_sent_at = None

    # ── send ─────────────────────────────────────────────────────

    def _generate_code(self) -> str:
        """Generate a code uniformly over the full N-digit range (no leading zero)."""
        low = 10 ** (self.config.code_length - 1)
        return str(low + secrets.randbelow(9 * low))

    def _validate_destination(self, channel: OtpChannel, destination: str) -> None:
        if channel is OtpChannel.EMAIL and not _EMAIL_PATTERN.match(destination):
            raise ValidationError({"destination": ["Enter a valid email address"]})
        if channel is OtpChannel.PHONE and not _PHONE_PATTERN.match(destination):
            raise ValidationError(
                {"destination": ["Enter a phone number in international format"]}
            )

    async def _ensure_store_cooldown(self, user_id: str, now: datetime) -> None:
        last_issued = await self.code_store.last_issued_at(user_id)
        if last_issued is None:
            return
        elapsed = (now - last_issued).total_seconds()
        if elapsed < self.config.cooldown_seconds:
            raise OtpCooldownError(self.config.cooldown_seconds - elapsed)

    async def _dispatch(self, channel: OtpChannel, destination: str, code: str) -> None:
        if channel is OtpChannel.EMAIL:
            await self.delivery.send_email_otp(destination, code)
        else:
            await self.delivery.send_sms_otp(destination, code)

    async def send(
        self,
        channel: OtpChannel,
        destination: str,
        user_id: str,
    ) -> OtpTicket:
        """Issue a new code and send it.

        Args:
            channel: Email or phone.
            destination: Email address or E.164 phone number.
            user_id: Subject the code is bound to.

        Returns:
            OtpTicket describing the sent code.

        Raises:
            InvalidTransitionError: A send or verify is already in flight.
            ValidationError: The destination is malformed.
            OtpCooldownError: A code was sent less than the cooldown ago.
            NotificationError: The message was not accepted for delivery.
        """
        if self._state in (OtpFlowState.SENDING, OtpFlowState.VERIFYING):
            raise InvalidTransitionError("send a code", self._state.value)
        if not user_id:
            raise ValidationError({"user_id": ["User ID is required"]})
        destination = destination.strip()
        self._validate_destination(channel, destination)

        remaining = self.remaining_cooldown()
        if remaining > 0:
            raise OtpCooldownError(remaining)

        generation = self._generation
        previous_state = self._state
        self._state = OtpFlowState.SENDING

        now = self._clock()
        try:
            await self._ensure_store_cooldown(user_id, now)
        except Exception:
            if generation == self._generation:
                self._state = previous_state
            raise

        code = self._generate_code()
        record = OtpRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            code=code,
            type=channel,
            destination=destination,
            created_at=now,
            expires_at=now + timedelta(seconds=self.config.ttl_seconds),
        )

        try:
            with AuthMetrics.operation("send", method=channel.value):
                await self.code_store.replace(record)
                await self._dispatch(channel, destination, code)
        except NotificationError as exc:
            # The stored row stays; a resend after the cooldown replaces it
            if generation == self._generation:
                self._state = previous_state
            logger.warning(
                "OTP delivery via %s failed (%s)", channel.value, type(exc).__name__
            )
            await record_audit_event(
                self._audit_store,
                otp_sent_event(
                    user_id,
                    channel=channel.value,
                    success=False,
                    detail=type(exc).__name__,
                ),
            )
            raise
        except Exception:
            if generation == self._generation:
                self._state = previous_state
            raise

        ticket = OtpTicket(
            channel=channel,
            destination=destination,
            expires_at=record.expires_at,
            resend_available_at=now + timedelta(seconds=self.config.cooldown_seconds),
        )
        await record_audit_event(
            self._audit_store, otp_sent_event(user_id, channel=channel.value)
        )

        if generation != self._generation:
            logger.debug("Discarding OTP send result after flow reset")
            return ticket

        self._state = OtpFlowState.SENT
        self._channel = channel
        self._destination = destination
        self._last_sent_at = now
        logger.info("OTP sent via %s for %s", channel.value, user_id)
        return ticket

    # ── verify ───────────────────────────────────────────────────

    def _is_well_formed(self, code: str) -> bool:
        return (
            len(code) == self.config.code_length and code.isascii() and code.isdigit()
        )

    async def verify(self, user_id: str, code: str) -> bool:
        """Verify and consume the subject's current code.

        Args:
            user_id: Subject the code was issued to.
            code: Submitted code.

        Returns:
            True if the code was valid. It is consumed afterwards.

        Raises:
            InvalidTransitionError: A send or verify is already in flight.
            VerificationLockedError: Too many recent failures.
            OtpExpiredError: The code passed its expiry.
            MfaInvalidError: The code is malformed, wrong or already used.
        """
        if self._state in (OtpFlowState.SENDING, OtpFlowState.VERIFYING):
            raise InvalidTransitionError("verify a code", self._state.value)

        code = code.strip()
        if not self._is_well_formed(code):
            raise MfaInvalidError()

        if self.limiter is not None:
            await self.limiter.ensure_allowed(user_id)

        generation = self._generation
        previous_state = self._state
        self._state = OtpFlowState.VERIFYING
        try:
            with AuthMetrics.operation("verify", method="otp"):
                result = await self.code_store.consume(user_id, code, self._clock())
        finally:
            if generation == self._generation:
                self._state = previous_state

        if result is OtpConsumeResult.CONSUMED:
            if self.limiter is not None:
                await self.limiter.reset(user_id)
            if generation == self._generation:
                self._state = OtpFlowState.IDLE
                self._last_sent_at = None
            logger.info("OTP verified for %s", user_id)
            await record_audit_event(
                self._audit_store, mfa_verified_event(user_id, method="otp")
            )
            return True

        if self.limiter is not None:
            await self.limiter.record_failure(user_id)

        if result is OtpConsumeResult.EXPIRED:
            await record_audit_event(
                self._audit_store,
                mfa_failed_event(user_id, method="otp", error_code="CODE_EXPIRED"),
            )
            raise OtpExpiredError()

        await record_audit_event(
            self._audit_store, mfa_failed_event(user_id, method="otp")
        )
        raise MfaInvalidError()


class InMemoryOtpCodeStore(IOtpCodeStore):
    """In-memory OTP code store for TESTING ONLY.

    ⚠️ WARNING: Codes are stored in plain text in memory.
    Do NOT use in production!
    """

    def __init__(self) -> None:
        self._records: dict[str, list[OtpRecord]] = {}

    async def replace(self, record: OtpRecord) -> None:
        self._records[record.user_id] = [record]

    async def consume(self, user_id: str, code: str, now: datetime) -> OtpConsumeResult:
        records = self._records.get(user_id, [])
        unused = [r for r in records if not r.used]
        if not unused:
            return OtpConsumeResult.INVALID

        record = max(unused, key=lambda r: r.created_at)
        if record.is_expired(now):
            return OtpConsumeResult.EXPIRED
        if not secrets.compare_digest(record.code, code):
            return OtpConsumeResult.INVALID

        self._records[user_id] = [
            OtpRecord(
                id=r.id,
                user_id=r.user_id,
                code=r.code,
                type=r.type,
                destination=r.destination,
                created_at=r.created_at,
                expires_at=r.expires_at,
                used=True,
                used_at=now,
            )
            if r.id == record.id
            else r
            for r in records
        ]
        return OtpConsumeResult.CONSUMED

    async def last_issued_at(self, user_id: str) -> datetime | None:
        records = self._records.get(user_id)
        if not records:
            return None
        return max(r.created_at for r in records)

    async def active_count(self, user_id: str, now: datetime) -> int:
        return sum(1 for r in self._records.get(user_id, []) if r.is_active(now))

    async def delete_for_user(self, user_id: str) -> None:
        self._records.pop(user_id, None)

    def records(self, user_id: str) -> list[OtpRecord]:
        """Stored rows of a subject (for assertions)."""
        return list(self._records.get(user_id, []))


__all__: list[str] = [
    "OtpConfig",
    "OtpFlowState",
    "OtpTicket",
    "OtpChannelManager",
    "InMemoryOtpCodeStore",
]
