"""Recovery codes for MFA.

Generates and validates single-use recovery codes that let an admin
complete step-up verification after losing the authenticator device.
"""

from __future__ import annotations

import hashlib
import logging
import re
import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from ..audit.events import AuthEventType, recovery_code_event
from ..audit.recorder import record_audit_event
from ..models import RecoveryCodeRecord
from ..primitives.clock import utcnow
from .ports import IRecoveryCodeStore

if TYPE_CHECKING:
    from ..ports import IAuthAuditStore
    from ..primitives.clock import Clock

logger = logging.getLogger(__name__)

_NON_ALPHANUMERIC = re.compile(r"[^A-Z0-9]")


@dataclass(frozen=True)
class RecoveryCodeConfig:
    """Recovery code configuration.

    Attributes:
        count: Codes per batch.
        group_length: Characters per dash-separated group.
        groups: Number of groups in a code.
    """

    count: int = 10
    group_length: int = 5
    groups: int = 2


class RecoveryCodeManager:
    """Recovery code lifecycle: generate, verify, count and revoke.

    Codes look like ``K7MPQ-3XW9R``. Only SHA-256 hashes of the
    normalized form are stored, and plaintext is returned exactly once
    from `generate_codes`.

    Example:
        ```python
        manager = RecoveryCodeManager(code_store=InMemoryRecoveryCodeStore())

        codes = await manager.generate_codes("user-123")
        print(f"Save these codes: {codes}")

        # Later, after losing the authenticator
        if await manager.verify_code("user-123", "k7mpq 3xw9r"):
            ...
        ```
    """

    # Characters used in recovery codes (exclude ambiguous: 0, O, 1, I)
    ALPHABET = string.ascii_uppercase.replace("O", "").replace(
        "I", ""
    ) + string.digits.replace("0", "").replace("1", "")

    def __init__(
        self,
        *,
        code_store: IRecoveryCodeStore,
        config: RecoveryCodeConfig | None = None,
        audit_store: IAuthAuditStore | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the recovery code manager.

        Args:
            code_store: Storage for hashed codes.
            config: Batch size and code shape.
            audit_store: Optional audit sink.
            clock: Time source (defaults to UTC now).
        """
        self.code_store = code_store
        self.config = config or RecoveryCodeConfig()
        self._audit_store = audit_store
        self._clock = clock or utcnow

    def _generate_code(self) -> str:
        length = self.config.group_length * self.config.groups
        raw = "".join(secrets.choice(self.ALPHABET) for _ in range(length))
        return self._format(raw)

    def _format(self, raw: str) -> str:
        size = self.config.group_length
        return "-".join(raw[i : i + size] for i in range(0, len(raw), size))

    def normalize(self, code: str) -> str:
        """Normalize user input to the stored format.

        Uppercases, strips everything that is not a letter or digit
        (spaces, dashes, punctuation) and re-inserts the group dashes.
        """
        return self._format(_NON_ALPHANUMERIC.sub("", code.upper()))

    def hash_code(self, code: str) -> str:
        """SHA-256 hex digest of the normalized code."""
        return hashlib.sha256(self.normalize(code).encode()).hexdigest()

    async def generate_codes(self, user_id: str) -> list[str]:
        """Replace the subject's codes with a fresh batch.

        Args:
            user_id: Subject identifier.

        Returns:
            Plaintext codes. They are not retrievable afterwards.
        """
        codes: list[str] = []
        seen: set[str] = set()
        while len(codes) < self.config.count:
            code = self._generate_code()
            if code in seen:
                continue
            seen.add(code)
            codes.append(code)

        await self.code_store.replace_all(
            user_id,
            [self.hash_code(code) for code in codes],
            self._clock(),
        )
        logger.info("Generated %d recovery codes for %s", len(codes), user_id)
        await record_audit_event(
            self._audit_store,
            recovery_code_event(
                AuthEventType.RECOVERY_CODES_GENERATED, user_id, count=len(codes)
            ),
        )
        return codes

    async def verify_code(self, user_id: str, code: str) -> bool:
        """Consume a recovery code (single-use).

        Args:
            user_id: Subject identifier.
            code: Code as typed by the user, any case or separators.

        Returns:
            True if the code was valid and unused. It is used afterwards.
        """
        expected_length = self.config.group_length * self.config.groups
        if len(_NON_ALPHANUMERIC.sub("", code.upper())) != expected_length:
            return False

        consumed = await self.code_store.consume(
            user_id, self.hash_code(code), self._clock()
        )
        if consumed:
            logger.info("Recovery code used by %s", user_id)
            await record_audit_event(
                self._audit_store,
                recovery_code_event(AuthEventType.RECOVERY_CODE_USED, user_id),
            )
        return consumed

    async def remaining_count(self, user_id: str) -> int:
        """Number of unused codes of the subject."""
        return await self.code_store.count_unused(user_id)

    async def revoke(self, user_id: str) -> None:
        """Delete every code of the subject."""
        await self.code_store.delete_for_user(user_id)
        await record_audit_event(
            self._audit_store,
            recovery_code_event(AuthEventType.RECOVERY_CODES_REVOKED, user_id),
        )


class InMemoryRecoveryCodeStore(IRecoveryCodeStore):
    """In-memory recovery code store for TESTING ONLY."""

    def __init__(self) -> None:
        self._records: dict[str, list[RecoveryCodeRecord]] = {}

    async def replace_all(
        self,
        user_id: str,
        code_hashes: list[str],
        created_at: datetime,
    ) -> None:
        self._records[user_id] = [
            RecoveryCodeRecord(
                id=str(uuid.uuid4()),
                user_id=user_id,
                code_hash=code_hash,
                created_at=created_at,
            )
            for code_hash in code_hashes
        ]

    async def consume(self, user_id: str, code_hash: str, now: datetime) -> bool:
        records = self._records.get(user_id, [])
        for index, record in enumerate(records):
            if not record.used and secrets.compare_digest(record.code_hash, code_hash):
                records[index] = RecoveryCodeRecord(
                    id=record.id,
                    user_id=record.user_id,
                    code_hash=record.code_hash,
                    created_at=record.created_at,
                    used=True,
                    used_at=now,
                )
                return True
        return False

    async def count_unused(self, user_id: str) -> int:
        return sum(1 for record in self._records.get(user_id, []) if not record.used)

    async def delete_for_user(self, user_id: str) -> None:
        self._records.pop(user_id, None)

    def records(self, user_id: str) -> list[RecoveryCodeRecord]:
        """Stored rows of a subject (for assertions)."""
        return list(self._records.get(user_id, []))


__all__: list[str] = [
    "RecoveryCodeConfig",
    "RecoveryCodeManager",
    "InMemoryRecoveryCodeStore",
]
