"""Exceptions for the SQLAlchemy persistence layer."""

from __future__ import annotations

from ..primitives.exceptions import PersistenceError


class SQLAlchemyPersistenceError(PersistenceError):
    """Base exception for all SQLAlchemy-specific persistence errors."""


class RepositoryError(SQLAlchemyPersistenceError):
    """Raised when a store operation fails at the database."""


__all__: list[str] = ["SQLAlchemyPersistenceError", "RepositoryError"]
