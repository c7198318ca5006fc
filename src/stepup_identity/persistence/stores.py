"""SQLAlchemy implementations of the OTP, recovery code and role stores.

Each operation runs in its own transaction on a session from the given
``async_sessionmaker``. Consumption is a conditional ``UPDATE ... WHERE
used = false`` checked by row count, so of two concurrent submissions of
the same code only one succeeds.
"""

from __future__ import annotations

import contextlib
import logging
import secrets
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..mfa.ports import IOtpCodeStore, IRecoveryCodeStore, OtpConsumeResult
from ..models import OtpRecord, Role
from ..ports import IRoleStore
from ..primitives.clock import utcnow
from .exceptions import RepositoryError
from .models import OtpCodeModel, RecoveryCodeModel, UserRoleModel

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from ..primitives.clock import Clock

logger = logging.getLogger(__name__)


class _SQLAlchemyStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    @contextlib.asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as e:
            logger.error("%s failed: %s", operation, e)
            raise RepositoryError(f"{operation} failed: {e}") from e


class SQLAlchemyOtpCodeStore(_SQLAlchemyStore, IOtpCodeStore):
    """``otp_codes`` table access.

    Example:
        ```python
        engine = create_async_engine("postgresql+asyncpg://...")
        store = SQLAlchemyOtpCodeStore(async_sessionmaker(engine))
        ```
    """

    async def replace(self, record: OtpRecord) -> None:
        async with self._transaction("Replace OTP code") as session:
            await session.execute(
                delete(OtpCodeModel).where(OtpCodeModel.user_id == record.user_id)
            )
            session.add(
                OtpCodeModel(
                    id=record.id,
                    user_id=record.user_id,
                    code=record.code,
                    type=record.type.value,
                    destination=record.destination,
                    created_at=record.created_at,
                    expires_at=record.expires_at,
                    used=record.used,
                    used_at=record.used_at,
                )
            )

    async def consume(self, user_id: str, code: str, now: datetime) -> OtpConsumeResult:
        async with self._transaction("Consume OTP code") as session:
            result = await session.execute(
                select(OtpCodeModel)
                .where(OtpCodeModel.user_id == user_id, OtpCodeModel.used.is_(False))
                .order_by(OtpCodeModel.created_at.desc())
                .limit(1)
            )
            row = result.scalars().first()
            if row is None:
                return OtpConsumeResult.INVALID
            if now > row.expires_at:
                return OtpConsumeResult.EXPIRED
            if not secrets.compare_digest(row.code, code):
                return OtpConsumeResult.INVALID

            updated = await session.execute(
                update(OtpCodeModel)
                .where(OtpCodeModel.id == row.id, OtpCodeModel.used.is_(False))
                .values(used=True, used_at=now)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount != 1:
                return OtpConsumeResult.INVALID
            return OtpConsumeResult.CONSUMED

    async def last_issued_at(self, user_id: str) -> datetime | None:
        async with self._transaction("Read OTP issue time") as session:
            result = await session.execute(
                select(func.max(OtpCodeModel.created_at)).where(
                    OtpCodeModel.user_id == user_id
                )
            )
            return result.scalar_one_or_none()

    async def active_count(self, user_id: str, now: datetime) -> int:
        async with self._transaction("Count OTP codes") as session:
            result = await session.execute(
                select(func.count())
                .select_from(OtpCodeModel)
                .where(
                    OtpCodeModel.user_id == user_id,
                    OtpCodeModel.used.is_(False),
                    OtpCodeModel.expires_at >= now,
                )
            )
            return int(result.scalar_one())

    async def delete_for_user(self, user_id: str) -> None:
        async with self._transaction("Delete OTP codes") as session:
            await session.execute(
                delete(OtpCodeModel).where(OtpCodeModel.user_id == user_id)
            )


class SQLAlchemyRecoveryCodeStore(_SQLAlchemyStore, IRecoveryCodeStore):
    """``recovery_codes`` table access. Only SHA-256 hashes are stored."""

    async def replace_all(
        self,
        user_id: str,
        code_hashes: list[str],
        created_at: datetime,
    ) -> None:
        async with self._transaction("Replace recovery codes") as session:
            await session.execute(
                delete(RecoveryCodeModel).where(RecoveryCodeModel.user_id == user_id)
            )
            session.add_all(
                RecoveryCodeModel(
                    id=str(uuid.uuid4()),
                    user_id=user_id,
                    code_hash=code_hash,
                    created_at=created_at,
                )
                for code_hash in code_hashes
            )

    async def consume(self, user_id: str, code_hash: str, now: datetime) -> bool:
        async with self._transaction("Consume recovery code") as session:
            result = await session.execute(
                select(RecoveryCodeModel.id)
                .where(
                    RecoveryCodeModel.user_id == user_id,
                    RecoveryCodeModel.code_hash == code_hash,
                    RecoveryCodeModel.used.is_(False),
                )
                .limit(1)
            )
            code_id = result.scalar_one_or_none()
            if code_id is None:
                return False

            updated = await session.execute(
                update(RecoveryCodeModel)
                .where(
                    RecoveryCodeModel.id == code_id,
                    RecoveryCodeModel.used.is_(False),
                )
                .values(used=True, used_at=now)
                .execution_options(synchronize_session=False)
            )
            return updated.rowcount == 1

    async def count_unused(self, user_id: str) -> int:
        async with self._transaction("Count recovery codes") as session:
            result = await session.execute(
                select(func.count())
                .select_from(RecoveryCodeModel)
                .where(
                    RecoveryCodeModel.user_id == user_id,
                    RecoveryCodeModel.used.is_(False),
                )
            )
            return int(result.scalar_one())

    async def delete_for_user(self, user_id: str) -> None:
        async with self._transaction("Delete recovery codes") as session:
            await session.execute(
                delete(RecoveryCodeModel).where(RecoveryCodeModel.user_id == user_id)
            )


class SQLAlchemyRoleStore(_SQLAlchemyStore, IRoleStore):
    """``user_roles`` table access."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(session_factory)
        self._clock = clock or utcnow

    async def has_role(self, user_id: str, role: Role) -> bool:
        async with self._transaction("Check role") as session:
            result = await session.execute(
                select(UserRoleModel.id)
                .where(
                    UserRoleModel.user_id == user_id,
                    UserRoleModel.role == role.value,
                )
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    async def list_roles(self, user_id: str) -> list[Role]:
        async with self._transaction("List roles") as session:
            result = await session.execute(
                select(UserRoleModel.role)
                .where(UserRoleModel.user_id == user_id)
                .order_by(UserRoleModel.created_at)
            )
            return [Role(value) for value in result.scalars().all()]

    async def grant(self, user_id: str, role: Role) -> None:
        if await self.has_role(user_id, role):
            return
        try:
            async with self.session_factory() as session, session.begin():
                session.add(
                    UserRoleModel(
                        id=str(uuid.uuid4()),
                        user_id=user_id,
                        role=role.value,
                        created_at=self._clock(),
                    )
                )
        except IntegrityError:
            # Concurrent grant of the same role won the unique constraint
            logger.debug("Role %s already granted to %s", role.value, user_id)
        except SQLAlchemyError as e:
            raise RepositoryError(f"Grant role failed: {e}") from e

    async def revoke(self, user_id: str, role: Role) -> None:
        async with self._transaction("Revoke role") as session:
            await session.execute(
                delete(UserRoleModel).where(
                    UserRoleModel.user_id == user_id, UserRoleModel.role == role.value
                )
            )


__all__: list[str] = [
    "SQLAlchemyOtpCodeStore",
    "SQLAlchemyRecoveryCodeStore",
    "SQLAlchemyRoleStore",
]
