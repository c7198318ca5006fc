"""bcrypt password hashing for the in-memory credential store."""

from __future__ import annotations

import bcrypt

# bcrypt ignores (or, since 5.0, rejects) input past this length
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Hashes and checks account passwords with bcrypt.

    Example:
        ```python
        hasher = PasswordHasher(rounds=12)
        stored = hasher.hash("s3cret-pass")

        if hasher.verify(stored, "s3cret-pass") and hasher.needs_rehash(stored):
            stored = hasher.hash("s3cret-pass")
        ```
    """

    def __init__(self, *, rounds: int = 12) -> None:
        self.rounds = rounds

    @staticmethod
    def _encode(password: str) -> bytes:
        raw = password.encode()
        if len(raw) > MAX_PASSWORD_BYTES:
            raise ValueError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes when encoded"
            )
        return raw

    def hash(self, password: str) -> str:
        """Return a salted bcrypt hash of `password`.

        Raises:
            ValueError: The password is longer than bcrypt accepts.
        """
        digest = bcrypt.hashpw(self._encode(password), bcrypt.gensalt(self.rounds))
        return digest.decode()

    def verify(self, hashed_password: str, password: str) -> bool:
        """Check `password` against a stored hash. Malformed hashes never match."""
        try:
            return bcrypt.checkpw(self._encode(password), hashed_password.encode())
        except ValueError:
            return False

    def needs_rehash(self, hashed_password: str) -> bool:
        """True when the hash was made with fewer rounds than configured."""
        parts = hashed_password.split("$")
        if len(parts) < 4 or not parts[2].isdigit():
            return True
        return int(parts[2]) < self.rounds


__all__: list[str] = ["MAX_PASSWORD_BYTES", "PasswordHasher"]
