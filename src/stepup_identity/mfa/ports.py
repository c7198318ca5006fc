"""MFA ports (protocols) for step-up verification.

Defines the storage contracts for one-time codes and recovery codes, and
the delivery hook used to send one-time codes by email or SMS.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime

    from ..models import OtpRecord


class OtpConsumeResult(Enum):
    """Outcome of an atomic one-time code consumption."""

    CONSUMED = "consumed"
    EXPIRED = "expired"
    INVALID = "invalid"


@runtime_checkable
class IOtpCodeStore(Protocol):
    """Protocol for the ``otp_codes`` table.

    Implementations must make `replace` a single unit (delete then insert)
    and `consume` a conditional single-row update, so two concurrent
    submissions of one code cannot both succeed.
    """

    async def replace(self, record: OtpRecord) -> None:
        """Delete every earlier code of the subject and insert `record`.

        Args:
            record: The freshly issued code.
        """
        ...

    async def consume(self, user_id: str, code: str, now: datetime) -> OtpConsumeResult:
        """Mark the subject's unused code as used if it matches.

        Args:
            user_id: Subject identifier.
            code: Submitted six-digit code.
            now: Verification time.

        Returns:
            ``EXPIRED`` when the unused code has passed its expiry,
            ``INVALID`` when there is no unused code or it does not match
            (including losing a race), ``CONSUMED`` otherwise.
        """
        ...

    async def last_issued_at(self, user_id: str) -> datetime | None:
        """Creation time of the subject's most recent code, if any."""
        ...

    async def active_count(self, user_id: str, now: datetime) -> int:
        """Unused, unexpired codes of the subject."""
        ...

    async def delete_for_user(self, user_id: str) -> None:
        """Delete every code of the subject."""
        ...


@runtime_checkable
class IRecoveryCodeStore(Protocol):
    """Protocol for the ``recovery_codes`` table. Only hashes are stored."""

    async def replace_all(
        self,
        user_id: str,
        code_hashes: list[str],
        created_at: datetime,
    ) -> None:
        """Delete all prior codes of the subject and store a new batch."""
        ...

    async def consume(self, user_id: str, code_hash: str, now: datetime) -> bool:
        """Atomically mark one matching unused code as used.

        Returns:
            True if a code was consumed by this call.
        """
        ...

    async def count_unused(self, user_id: str) -> int:
        """Unused codes of the subject."""
        ...

    async def delete_for_user(self, user_id: str) -> None:
        """Delete every code of the subject."""
        ...


@runtime_checkable
class IOtpDelivery(Protocol):
    """Protocol for OTP delivery hooks.

    Implementations send the code by email or SMS and raise a
    `NotificationError` subtype when the message was not accepted.
    """

    async def send_email_otp(self, email: str, code: str) -> None:
        """Send OTP code via email.

        Args:
            email: Recipient email address.
            code: The OTP code.
        """
        ...

    async def send_sms_otp(self, phone: str, code: str) -> None:
        """Send OTP code via SMS.

        Args:
            phone: Recipient phone number (E.164).
            code: The OTP code.
        """
        ...


__all__: list[str] = [
    "OtpConsumeResult",
    "IOtpCodeStore",
    "IRecoveryCodeStore",
    "IOtpDelivery",
]
