"""Login state machine.

Sequences credential entry, verification-method choice, TOTP / OTP /
recovery-code challenges and authenticator enrollment until the subject
is authorized::

    credentials ──> method_choice ──> totp_challenge ──> authorized
        │  ^              │  ^   │          │ ^
        v  │              │  │   │          v │
    forgot_password       │  │   │    recovery_challenge ──> authorized
                          │  │   └──> otp_challenge ──────> authorized
                          │  └──────── totp_enrollment ───> authorized
                          └── cancel (sign out) ──> credentials

Every user-facing failure produces exactly one `Notification`; calling an
operation from the wrong step raises `InvalidTransitionError`.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ..audit.events import (
    AuthAuditEvent,
    AuthEventType,
    login_failed_event,
    login_success_event,
    logout_event,
    mfa_failed_event,
    mfa_verified_event,
)
from ..audit.recorder import record_audit_event
from ..events import AuthChangeEvent
from ..exceptions import (
    AuthenticationError,
    InvalidTransitionError,
    MfaError,
    MfaInvalidError,
    OtpCooldownError,
    OtpExpiredError,
    VerificationLockedError,
)
from ..messaging.exceptions import NotificationError
from ..mfa.status import MfaStatus
from ..models import OtpChannel
from ..observability.metrics import AuthMetrics
from ..primitives.exceptions import StepUpError, ValidationError

if TYPE_CHECKING:
    from ..events import AuthStateChange, Subscription
    from ..mfa.otp import OtpChannelManager, OtpTicket
    from ..mfa.recovery_codes import RecoveryCodeManager
    from ..mfa.status import MfaStatusTracker
    from ..mfa.two_factor import TwoFactorService
    from ..models import Session, TotpEnrollment
    from ..ports import IAuthAuditStore, ICredentialStore

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_TOTP_PATTERN = re.compile(r"^\d{6}$")
MIN_PASSWORD_LENGTH = 6


class LoginStep(Enum):
    """Steps of the login flow."""

    CREDENTIALS = "credentials"
    FORGOT_PASSWORD = "forgot_password"  # noqa: S105
    METHOD_CHOICE = "method_choice"
    TOTP_ENROLLMENT = "totp_enrollment"
    TOTP_CHALLENGE = "totp_challenge"
    OTP_CHALLENGE = "otp_challenge"
    RECOVERY_CHALLENGE = "recovery_challenge"
    AUTHORIZED = "authorized"


class VerificationMethod(Enum):
    """Second-factor options offered at method choice."""

    TOTP = "totp"
    EMAIL_OTP = "email_otp"
    PHONE_OTP = "phone_otp"
    ENROLL_TOTP = "enroll_totp"


class AuthorizationSource(Enum):
    """How the subject reached the authorized step.

    ``SESSION`` means the credential store upgraded the session to aal2.
    ``OTP`` and ``RECOVERY_CODE`` are local verifications that leave the
    session at aal1.
    """

    SESSION = "session"
    OTP = "otp"
    RECOVERY_CODE = "recovery_code"


class NotificationLevel(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """User-facing message. Never carries stack traces or identifiers."""

    level: NotificationLevel
    title: str
    message: str


Notifier = Callable[[Notification], None]

_OTP_CHANNELS = {
    VerificationMethod.EMAIL_OTP: OtpChannel.EMAIL,
    VerificationMethod.PHONE_OTP: OtpChannel.PHONE,
}


class LoginStateMachine:
    """Drives one login attempt from credentials to authorized.

    Example:
        ```python
        machine = LoginStateMachine(
            credential_store=store,
            status_tracker=MfaStatusTracker(store),
            otp_manager=otp_manager,
            recovery_codes=recovery_codes,
            two_factor=two_factor,
        )

        await machine.submit_credentials("admin@example.com", "s3cret-pass")
        if machine.step is LoginStep.METHOD_CHOICE:
            await machine.choose_method(VerificationMethod.EMAIL_OTP)
            await machine.send_otp()
            await machine.submit_otp("123456")
        ```
    """

    def __init__(
        self,
        *,
        credential_store: ICredentialStore,
        status_tracker: MfaStatusTracker,
        otp_manager: OtpChannelManager,
        recovery_codes: RecoveryCodeManager,
        two_factor: TwoFactorService,
        notifier: Notifier | None = None,
        audit_store: IAuthAuditStore | None = None,
        low_recovery_code_threshold: int = 2,
    ) -> None:
        """Initialize the login state machine.

        Args:
            credential_store: Store that signs users in and verifies TOTP.
            status_tracker: Derives TOTP enabled / aal2 state.
            otp_manager: Email/SMS one-time code flow.
            recovery_codes: Recovery code verification.
            two_factor: Authenticator enrollment.
            notifier: Receives user-facing notifications. When omitted
                they are collected in `notifications`.
            audit_store: Optional audit sink.
            low_recovery_code_threshold: Warn when this many or fewer
                recovery codes remain.
        """
        self.credential_store = credential_store
        self.status_tracker = status_tracker
        self.otp_manager = otp_manager
        self.recovery_codes = recovery_codes
        self.two_factor = two_factor
        self.low_recovery_code_threshold = low_recovery_code_threshold
        self._audit_store = audit_store
        self.notifications: list[Notification] = []
        self._notifier = notifier or self.notifications.append

        self._step = LoginStep.CREDENTIALS
        self._session: Session | None = None
        self._status = MfaStatus()
        self._method: VerificationMethod | None = None
        self._authorization: AuthorizationSource | None = None
        self._enrollment: TotpEnrollment | None = None
        self._recovery_codes: list[str] | None = None
        self._generation = 0
        self._subscription: Subscription | None = None

    # ── state ────────────────────────────────────────────────────

    @property
    def step(self) -> LoginStep:
        return self._step

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def mfa_status(self) -> MfaStatus:
        return self._status

    @property
    def method(self) -> VerificationMethod | None:
        return self._method

    @property
    def authorization(self) -> AuthorizationSource | None:
        return self._authorization

    @property
    def is_authorized(self) -> bool:
        return self._step is LoginStep.AUTHORIZED

    @property
    def verified_via_otp(self) -> bool:
        return self._authorization is AuthorizationSource.OTP

    @property
    def verified_via_recovery(self) -> bool:
        return self._authorization is AuthorizationSource.RECOVERY_CODE

    @property
    def pending_enrollment(self) -> TotpEnrollment | None:
        """Secret and QR URI to show during enrollment."""
        return self._enrollment

    def take_recovery_codes(self) -> list[str] | None:
        """Recovery codes issued at enrollment. Returned once, then dropped."""
        codes, self._recovery_codes = self._recovery_codes, None
        return codes

    def _require(self, operation: str, *steps: LoginStep) -> None:
        if self._step not in steps:
            raise InvalidTransitionError(operation, self._step.value)

    def _require_session(self, operation: str) -> Session:
        if self._session is None:
            raise InvalidTransitionError(operation, self._step.value)
        return self._session

    def _notify(self, level: NotificationLevel, title: str, message: str) -> None:
        self._notifier(Notification(level=level, title=title, message=message))

    def _clear(self) -> None:
        self._generation += 1
        self._step = LoginStep.CREDENTIALS
        self._session = None
        self._status = MfaStatus()
        self._method = None
        self._authorization = None
        self._enrollment = None
        self._recovery_codes = None
        self.otp_manager.reset()

    async def _authorize(self, source: AuthorizationSource, method: str) -> None:
        self._step = LoginStep.AUTHORIZED
        self._authorization = source
        self._enrollment = None
        if self._session is not None:
            await record_audit_event(
                self._audit_store,
                login_success_event(self._session.user_id, method=method),
            )

    # ── credentials ──────────────────────────────────────────────

    @staticmethod
    def _validate_credentials(email: str, password: str) -> None:
        errors: dict[str, list[str]] = {}
        if not _EMAIL_PATTERN.match(email.strip()):
            errors["email"] = ["Please enter a valid email address"]
        if len(password) < MIN_PASSWORD_LENGTH:
            errors["password"] = [
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            ]
        if errors:
            raise ValidationError(errors)

    async def submit_credentials(self, email: str, password: str) -> LoginStep:
        """Sign in with email and password.

        Raises:
            ValidationError: The form is malformed.
        """
        self._require("submit credentials", LoginStep.CREDENTIALS)
        self._validate_credentials(email, password)

        generation = self._generation
        try:
            with AuthMetrics.operation("sign_in", method="password"):
                session = await self.credential_store.sign_in_with_password(
                    email.strip(), password
                )
        except AuthenticationError:
            self._notify(
                NotificationLevel.ERROR, "Login failed", "Invalid email or password"
            )
            await record_audit_event(self._audit_store, login_failed_event())
            return self._step
        except StepUpError as exc:
            logger.warning("Sign-in failed: %s", exc)
            self._notify(
                NotificationLevel.ERROR,
                "Login failed",
                "Something went wrong. Please try again.",
            )
            return self._step

        if generation != self._generation:
            return self._step

        self._session = session
        self._status = await self.status_tracker.check_status()
        if generation != self._generation:
            return self._step

        if self._status.is_verified:
            await self._authorize(AuthorizationSource.SESSION, "session")
        else:
            self._step = LoginStep.METHOD_CHOICE
        return self._step

    async def sign_up(self, email: str, password: str) -> bool:
        """Create an account from the credentials step.

        Raises:
            ValidationError: The form is malformed.
        """
        self._require("sign up", LoginStep.CREDENTIALS)
        self._validate_credentials(email, password)
        try:
            user_id = await self.credential_store.sign_up(email.strip(), password)
        except AuthenticationError as exc:
            self._notify(NotificationLevel.ERROR, "Sign up failed", str(exc))
            return False

        await record_audit_event(
            self._audit_store,
            AuthAuditEvent(
                event_type=AuthEventType.SIGN_UP, subject_id=user_id, source="login"
            ),
        )
        self._notify(
            NotificationLevel.SUCCESS,
            "Account created",
            "Check your email to confirm your account.",
        )
        return True

    def forgot_password(self) -> None:
        self._require("reset password", LoginStep.CREDENTIALS)
        self._step = LoginStep.FORGOT_PASSWORD

    async def submit_password_reset(self, email: str) -> LoginStep:
        """Request a reset link. Always returns to the credentials step.

        Raises:
            ValidationError: The email is malformed.
        """
        self._require("submit password reset", LoginStep.FORGOT_PASSWORD)
        if not _EMAIL_PATTERN.match(email.strip()):
            raise ValidationError({"email": ["Please enter a valid email address"]})

        try:
            await self.credential_store.request_password_reset(email.strip())
        except StepUpError as exc:
            logger.warning("Password reset request failed: %s", exc)
            self._notify(
                NotificationLevel.ERROR,
                "Reset failed",
                "Could not send the reset email. Please try again.",
            )
        else:
            await record_audit_event(
                self._audit_store,
                AuthAuditEvent(
                    event_type=AuthEventType.PASSWORD_RESET_REQUESTED, source="login"
                ),
            )
            self._notify(
                NotificationLevel.SUCCESS,
                "Check your email",
                "If an account exists, a password reset link has been sent.",
            )
        self._step = LoginStep.CREDENTIALS
        return self._step

    # ── method choice ────────────────────────────────────────────

    def available_methods(self) -> list[VerificationMethod]:
        """Methods offered at method choice for the current subject."""
        methods: list[VerificationMethod] = []
        if self._status.is_enabled:
            methods.append(VerificationMethod.TOTP)
        methods.extend([VerificationMethod.EMAIL_OTP, VerificationMethod.PHONE_OTP])
        if not self._status.is_enabled:
            methods.append(VerificationMethod.ENROLL_TOTP)
        return methods

    async def choose_method(self, method: VerificationMethod) -> LoginStep:
        """Pick exactly one verification method."""
        self._require("choose a method", LoginStep.METHOD_CHOICE)
        if method not in self.available_methods():
            raise InvalidTransitionError(f"choose {method.value}", self._step.value)

        self._method = method
        if method is VerificationMethod.TOTP:
            self._step = LoginStep.TOTP_CHALLENGE
        elif method is VerificationMethod.ENROLL_TOTP:
            await self._start_enrollment()
        else:
            self.otp_manager.reset()
            self._step = LoginStep.OTP_CHALLENGE
        return self._step

    # ── TOTP ─────────────────────────────────────────────────────

    async def submit_totp(self, code: str) -> bool:
        """Verify an authenticator code. The session becomes aal2 on success."""
        self._require("submit a TOTP code", LoginStep.TOTP_CHALLENGE)
        session = self._require_session("submit a TOTP code")
        code = code.strip()
        if not _TOTP_PATTERN.match(code):
            self._notify(
                NotificationLevel.ERROR, "Invalid code", "Please enter a 6-digit code."
            )
            return False

        generation = self._generation
        try:
            factors = await self.two_factor.verified_factors()
            if not factors:
                self._notify(
                    NotificationLevel.ERROR,
                    "Verification failed",
                    "No authenticator is set up for this account.",
                )
                return False
            factor = factors[0]
            with AuthMetrics.operation("verify", method="totp"):
                challenge_id = await self.credential_store.challenge(factor.id)
                upgraded = await self.credential_store.verify(
                    factor.id, challenge_id, code
                )
        except MfaError:
            self._notify(
                NotificationLevel.ERROR,
                "Verification failed",
                "Invalid code. Please try again.",
            )
            await record_audit_event(
                self._audit_store, mfa_failed_event(session.user_id, method="totp")
            )
            return False

        if generation != self._generation:
            return False
        self._session = upgraded
        self._status = await self.status_tracker.check_status()
        await record_audit_event(
            self._audit_store, mfa_verified_event(session.user_id, method="totp")
        )
        await self._authorize(AuthorizationSource.SESSION, "totp")
        return True

    def use_recovery_code(self) -> None:
        """Fall back from the TOTP challenge to a recovery code."""
        self._require("use a recovery code", LoginStep.TOTP_CHALLENGE)
        self._step = LoginStep.RECOVERY_CHALLENGE

    async def submit_recovery_code(self, code: str) -> bool:
        """Verify a recovery code. The session stays aal1."""
        self._require("submit a recovery code", LoginStep.RECOVERY_CHALLENGE)
        session = self._require_session("submit a recovery code")

        generation = self._generation
        if not await self.recovery_codes.verify_code(session.user_id, code):
            self._notify(
                NotificationLevel.ERROR,
                "Invalid recovery code",
                "The code is invalid or has already been used.",
            )
            await record_audit_event(
                self._audit_store, mfa_failed_event(session.user_id, method="recovery")
            )
            return False
        if generation != self._generation:
            return False

        remaining = await self.recovery_codes.remaining_count(session.user_id)
        if remaining <= self.low_recovery_code_threshold:
            self._notify(
                NotificationLevel.WARNING,
                "Running low on recovery codes",
                f"You have {remaining} recovery code{'' if remaining == 1 else 's'} "
                "left. Generate new ones from your security settings.",
            )
        else:
            self._notify(
                NotificationLevel.SUCCESS,
                "Recovery code accepted",
                f"You have {remaining} recovery codes left.",
            )
        await self._authorize(AuthorizationSource.RECOVERY_CODE, "recovery")
        return True

    # ── OTP ──────────────────────────────────────────────────────

    async def send_otp(self, destination: str | None = None) -> OtpTicket | None:
        """Send a one-time code over the chosen channel.

        Args:
            destination: Phone number for SMS. Email defaults to the
                session's address.

        Returns:
            The ticket, or None when the send was refused or failed (a
            notification explains why).
        """
        self._require("send a code", LoginStep.OTP_CHALLENGE)
        session = self._require_session("send a code")
        channel = _OTP_CHANNELS[self._method or VerificationMethod.EMAIL_OTP]
        if destination is None:
            if channel is OtpChannel.PHONE:
                raise ValidationError({"destination": ["Phone number is required"]})
            destination = session.email

        generation = self._generation
        try:
            ticket = await self.otp_manager.send(channel, destination, session.user_id)
        except OtpCooldownError as exc:
            self._notify(NotificationLevel.WARNING, "Please wait", str(exc))
            return None
        except ValidationError as exc:
            self._notify(
                NotificationLevel.ERROR, "Invalid destination", exc.first_message()
            )
            return None
        except NotificationError:
            self._notify(
                NotificationLevel.ERROR,
                "Failed to send code",
                "We couldn't deliver your code. Please try again.",
            )
            return None

        if generation != self._generation:
            logger.debug("Ignoring OTP send result for an abandoned challenge")
            return None
        where = "email" if channel is OtpChannel.EMAIL else "phone"
        self._notify(
            NotificationLevel.SUCCESS,
            "Code sent",
            f"A verification code was sent to your {where}.",
        )
        return ticket

    async def submit_otp(self, code: str) -> bool:
        """Verify a one-time code. The session stays aal1."""
        self._require("submit a code", LoginStep.OTP_CHALLENGE)
        session = self._require_session("submit a code")

        generation = self._generation
        try:
            await self.otp_manager.verify(session.user_id, code)
        except OtpExpiredError:
            self._notify(
                NotificationLevel.ERROR,
                "Code expired",
                "This code has expired. Request a new one.",
            )
            return False
        except VerificationLockedError as exc:
            self._notify(NotificationLevel.ERROR, "Too many attempts", str(exc))
            return False
        except MfaInvalidError:
            self._notify(
                NotificationLevel.ERROR,
                "Invalid code",
                "The code is incorrect. Please try again.",
            )
            return False

        if generation != self._generation:
            return False
        await self._authorize(AuthorizationSource.OTP, "otp")
        return True

    # ── enrollment ───────────────────────────────────────────────

    async def _start_enrollment(self) -> None:
        try:
            self._enrollment = await self.two_factor.start_enrollment()
        except StepUpError as exc:
            logger.warning("TOTP enrollment could not start: %s", exc)
            self._notify(
                NotificationLevel.ERROR,
                "Setup failed",
                "Could not start authenticator setup. Please try again.",
            )
            self._method = None
            return
        self._step = LoginStep.TOTP_ENROLLMENT

    async def submit_enrollment_code(self, code: str) -> list[str] | None:
        """Confirm enrollment with the first authenticator code.

        Returns:
            Recovery codes to show once, or None when the code failed.
        """
        self._require("confirm enrollment", LoginStep.TOTP_ENROLLMENT)
        session = self._require_session("confirm enrollment")
        enrollment = self._enrollment
        if enrollment is None:
            raise InvalidTransitionError("confirm enrollment", self._step.value)

        generation = self._generation
        try:
            codes = await self.two_factor.confirm_enrollment(
                session.user_id, enrollment.factor_id, code.strip()
            )
        except MfaError:
            self._notify(
                NotificationLevel.ERROR,
                "Verification failed",
                "Invalid code. Check your authenticator app and try again.",
            )
            return None

        if generation != self._generation:
            return None
        self._session = await self.credential_store.get_session() or session
        self._status = await self.status_tracker.check_status()
        self._recovery_codes = codes
        self._notify(
            NotificationLevel.SUCCESS,
            "Two-factor authentication enabled",
            "Save your recovery codes somewhere safe.",
        )
        await self._authorize(AuthorizationSource.SESSION, "totp")
        return codes

    async def skip_enrollment(self) -> LoginStep:
        """Abandon enrollment and return to method choice."""
        self._require("skip enrollment", LoginStep.TOTP_ENROLLMENT)
        enrollment, self._enrollment = self._enrollment, None
        self._generation += 1
        self._method = None
        self._step = LoginStep.METHOD_CHOICE
        if enrollment is not None:
            await self.two_factor.cancel_enrollment(enrollment.factor_id)
        return self._step

    # ── navigation ───────────────────────────────────────────────

    async def back(self) -> LoginStep:
        """Leave the current challenge for the previous step."""
        if self._step is LoginStep.TOTP_ENROLLMENT:
            return await self.skip_enrollment()
        if self._step is LoginStep.RECOVERY_CHALLENGE:
            self._generation += 1
            self._step = LoginStep.TOTP_CHALLENGE
        elif self._step in (LoginStep.TOTP_CHALLENGE, LoginStep.OTP_CHALLENGE):
            self._generation += 1
            self.otp_manager.reset()
            self._method = None
            self._step = LoginStep.METHOD_CHOICE
        elif self._step is LoginStep.FORGOT_PASSWORD:
            self._step = LoginStep.CREDENTIALS
        else:
            raise InvalidTransitionError("go back", self._step.value)
        return self._step

    async def cancel(self) -> LoginStep:
        """Sign out and return to the credentials step."""
        user_id = self._session.user_id if self._session else None
        self._clear()
        try:
            await self.credential_store.sign_out()
        except StepUpError as exc:
            logger.warning("Sign-out during cancel failed: %s", exc)
        await record_audit_event(self._audit_store, logout_event(user_id))
        return self._step

    async def handle_auth_change(self, change: AuthStateChange) -> None:
        """Follow sign-outs and session renewals made elsewhere."""
        if change.event is AuthChangeEvent.SIGNED_OUT:
            if self._step is not LoginStep.CREDENTIALS or self._session is not None:
                logger.debug("Session ended externally, resetting login flow")
                self._clear()
            return
        if (
            change.session is not None
            and self._session is not None
            and change.session.user_id == self._session.user_id
        ):
            self._session = change.session

    def attach(self) -> None:
        """Subscribe to auth-state changes (once)."""
        if self._subscription is None:
            self._subscription = self.credential_store.on_auth_state_change(
                self.handle_auth_change
            )

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._clear()


__all__: list[str] = [
    "LoginStep",
    "VerificationMethod",
    "AuthorizationSource",
    "NotificationLevel",
    "Notification",
    "Notifier",
    "LoginStateMachine",
]
