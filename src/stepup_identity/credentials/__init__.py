"""Reference credential store and password hashing."""

from __future__ import annotations

from .hasher import PasswordHasher
from .memory import InMemoryCredentialStore

__all__: list[str] = ["PasswordHasher", "InMemoryCredentialStore"]
