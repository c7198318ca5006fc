"""Authenticator enrollment and two-factor disable.

Recovery codes follow the factor: they are generated when TOTP is first
verified and deleted in the same operation that disables it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..audit.events import AuthAuditEvent, AuthEventType
from ..audit.recorder import record_audit_event
from ..exceptions import MfaSetupError

if TYPE_CHECKING:
    from ..models import MfaFactor, TotpEnrollment
    from ..ports import IAuthAuditStore, ICredentialStore
    from .recovery_codes import RecoveryCodeManager

logger = logging.getLogger(__name__)


class TwoFactorService:
    """TOTP enrollment, confirmation, disable and code regeneration.

    Example:
        ```python
        service = TwoFactorService(
            credential_store=store,
            recovery_codes=RecoveryCodeManager(code_store=recovery_store),
        )

        enrollment = await service.start_enrollment()
        # user scans enrollment.qr_uri, then types the first code
        codes = await service.confirm_enrollment(
            user_id, enrollment.factor_id, "123456"
        )
        ```
    """

    def __init__(
        self,
        *,
        credential_store: ICredentialStore,
        recovery_codes: RecoveryCodeManager,
        audit_store: IAuthAuditStore | None = None,
        friendly_name: str = "Admin 2FA",
    ) -> None:
        self.credential_store = credential_store
        self.recovery_codes = recovery_codes
        self.friendly_name = friendly_name
        self._audit_store = audit_store

    async def verified_factors(self) -> list[MfaFactor]:
        factors = await self.credential_store.list_factors()
        return [factor for factor in factors if factor.is_verified]

    async def is_enabled(self) -> bool:
        return bool(await self.verified_factors())

    async def start_enrollment(
        self, friendly_name: str | None = None
    ) -> TotpEnrollment:
        """Create a pending TOTP factor.

        Stale pending factors from abandoned attempts are removed first so
        the subject never accumulates unverified factors.
        """
        for factor in await self.credential_store.list_factors():
            if not factor.is_verified:
                await self.credential_store.unenroll(factor.id)
        return await self.credential_store.enroll_totp(
            friendly_name or self.friendly_name
        )

    async def confirm_enrollment(
        self,
        user_id: str,
        factor_id: str,
        code: str,
    ) -> list[str]:
        """Verify the first code of a pending factor and issue recovery codes.

        Returns:
            Plaintext recovery codes, shown once.

        Raises:
            MfaInvalidError: The code did not verify.
        """
        challenge_id = await self.credential_store.challenge(factor_id)
        await self.credential_store.verify(factor_id, challenge_id, code)
        codes = await self.recovery_codes.generate_codes(user_id)
        logger.info("Two-factor authentication enabled for %s", user_id)
        await record_audit_event(
            self._audit_store,
            AuthAuditEvent(
                event_type=AuthEventType.MFA_ENABLED,
                subject_id=user_id,
                source="mfa",
                metadata={"method": "totp"},
            ),
        )
        return codes

    async def cancel_enrollment(self, factor_id: str) -> None:
        """Drop a pending factor the subject decided not to finish."""
        for factor in await self.credential_store.list_factors():
            if factor.id == factor_id and not factor.is_verified:
                await self.credential_store.unenroll(factor_id)

    async def disable(self, user_id: str) -> bool:
        """Remove every verified factor and all recovery codes.

        Returns:
            False when two-factor was not enabled (nothing changed).
        """
        verified = await self.verified_factors()
        if not verified:
            return False

        for factor in verified:
            await self.credential_store.unenroll(factor.id)
        await self.recovery_codes.revoke(user_id)

        logger.info("Two-factor authentication disabled for %s", user_id)
        await record_audit_event(
            self._audit_store,
            AuthAuditEvent(
                event_type=AuthEventType.MFA_DISABLED,
                subject_id=user_id,
                source="mfa",
                metadata={"method": "totp"},
            ),
        )
        return True

    async def regenerate_recovery_codes(self, user_id: str) -> list[str]:
        """Replace the recovery codes of a subject with TOTP enabled.

        Raises:
            MfaSetupError: Two-factor authentication is not enabled.
        """
        if not await self.is_enabled():
            raise MfaSetupError("Two-factor authentication is not enabled")
        return await self.recovery_codes.generate_codes(user_id)


__all__: list[str] = ["TwoFactorService"]
