"""TOTP (Time-based One-Time Password) primitives.

Works with any RFC 6238 authenticator app (Google Authenticator,
Microsoft Authenticator, Authy, 1Password). Credential stores use this to
issue secrets at enrollment and to check codes at challenge time.

Code arithmetic is delegated to pyotp.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any


class TotpService:
    """TOTP secret generation and verification.

    Example:
        ```python
        totp = TotpService(issuer="Portfolio Admin")

        secret = totp.new_secret()
        print(f"Scan this QR: {totp.provisioning_uri(secret, 'admin@example.com')}")
        print(f"Or enter manually: {totp.format_secret(secret)}")

        if totp.verify(secret, "123456"):
            print("Valid!")
        ```
    """

    def __init__(
        self,
        *,
        issuer: str = "Portfolio Admin",
        digits: int = 6,
        interval: int = 30,
        valid_window: int = 1,
    ) -> None:
        """
        Args:
            issuer: Label the authenticator app shows next to the code.
            digits: Code length.
            interval: Seconds each code stays current.
            valid_window: Neighbouring intervals also accepted, for clock skew.
        """
        self.issuer = issuer
        self.digits = digits
        self.interval = interval
        self.valid_window = valid_window

    def _get_pyotp(self) -> Any:
        """Import pyotp on first use."""
        try:
            import pyotp

            return pyotp
        except ImportError as e:
            raise ImportError(
                "TOTP needs the pyotp package. "
                "Install with: pip install stepup-identity"
            ) from e

    def _totp(self, secret: str) -> Any:
        pyotp = self._get_pyotp()
        return pyotp.TOTP(
            secret,
            digits=self.digits,
            interval=self.interval,
            issuer=self.issuer,
        )

    def new_secret(self) -> str:
        """Generate a random Base32 secret."""
        return str(self._get_pyotp().random_base32())

    def provisioning_uri(self, secret: str, account_name: str) -> str:
        """otpauth:// URI for QR code generation."""
        return str(
            self._totp(secret).provisioning_uri(
                name=account_name,
                issuer_name=self.issuer,
            )
        )

    def format_secret(self, secret: str) -> str:
        """Split a secret into blocks of four for typing it in by hand."""
        secret = secret.rstrip("=")
        return " ".join(secret[i : i + 4] for i in range(0, len(secret), 4))

    def code_at(self, secret: str, at: datetime) -> str:
        """The code an authenticator app shows at `at`."""
        return str(self._totp(secret).at(at))

    def verify(self, secret: str, code: str, *, at: datetime | None = None) -> bool:
        """Verify a code, accepting ±valid_window intervals for clock drift.

        Args:
            secret: Base32 secret of the factor.
            code: Code from the authenticator app.
            at: Verification time (defaults to now).

        Returns:
            True if code is valid.
        """
        code = code.strip()
        if len(code) != self.digits or not code.isdigit():
            return False
        return bool(
            self._totp(secret).verify(
                code, for_time=at, valid_window=self.valid_window
            )
        )


__all__: list[str] = ["TotpService"]
