"""SQLAlchemy persistence for one-time codes, recovery codes and roles."""

from __future__ import annotations

from .exceptions import RepositoryError, SQLAlchemyPersistenceError
from .models import (
    Base,
    OtpCodeModel,
    RecoveryCodeModel,
    UserRoleModel,
    UTCDateTime,
    create_schema,
)
from .stores import (
    SQLAlchemyOtpCodeStore,
    SQLAlchemyRecoveryCodeStore,
    SQLAlchemyRoleStore,
)

__all__: list[str] = [
    "Base",
    "OtpCodeModel",
    "RecoveryCodeModel",
    "RepositoryError",
    "SQLAlchemyOtpCodeStore",
    "SQLAlchemyPersistenceError",
    "SQLAlchemyRecoveryCodeStore",
    "SQLAlchemyRoleStore",
    "UTCDateTime",
    "UserRoleModel",
    "create_schema",
]
