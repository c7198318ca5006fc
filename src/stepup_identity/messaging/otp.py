"""OTP message rendering and the sender-backed delivery hook."""

from __future__ import annotations

import html
import logging

from ..mfa.ports import IOtpDelivery
from ..models import OtpChannel
from .delivery import OtpMessage
from .exceptions import DeliveryNotConfiguredError, NotificationDeliveryError
from .ports import IMessageSender

logger = logging.getLogger(__name__)


class OtpMessageRenderer:
    """Renders the email and SMS bodies for a one-time code.

    Both bodies state how long the code stays valid.
    """

    def __init__(
        self,
        *,
        ttl_seconds: int = 300,
        subject: str = "Your Admin Login OTP Code",
        product_name: str = "Admin",
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.subject = subject
        self.product_name = product_name

    @property
    def validity_text(self) -> str:
        minutes = max(1, self.ttl_seconds // 60)
        return f"{minutes} minute{'' if minutes == 1 else 's'}"

    def render_email(self, code: str) -> OtpMessage:
        text = (
            f"Your {self.product_name} login verification code is: {code}\n\n"
            f"This code expires in {self.validity_text}.\n"
            "If you did not request this code, you can ignore this email."
        )
        markup = (
            f"<h2>{html.escape(self.product_name)} Login Verification</h2>"
            "<p>Your verification code is:</p>"
            f'<p style="font-size:32px;letter-spacing:8px;font-weight:bold">'
            f"{html.escape(code)}</p>"
            f"<p>This code expires in {self.validity_text}.</p>"
            "<p>If you did not request this code, you can ignore this email.</p>"
        )
        return OtpMessage(text=text, subject=self.subject, html=markup)

    def render_sms(self, code: str) -> OtpMessage:
        return OtpMessage(
            text=(
                f"Your {self.product_name} Login OTP is: {code}. "
                f"This code expires in {self.validity_text}."
            )
        )


class NotificationOtpDelivery(IOtpDelivery):
    """`IOtpDelivery` that renders the code and hands it to channel senders.

    Example:
        ```python
        delivery = NotificationOtpDelivery(
            email_sender=SmtpEmailSender(
                "smtp.example.com", from_email="no-reply@example.com"
            ),
            sms_sender=TwilioSMSSender(account_sid, auth_token, "+15550000000"),
        )
        await delivery.send_email_otp("admin@example.com", "123456")
        ```

    Raises:
        ValueError: A sender is registered for the wrong channel.
    """

    def __init__(
        self,
        *,
        email_sender: IMessageSender | None = None,
        sms_sender: IMessageSender | None = None,
        renderer: OtpMessageRenderer | None = None,
    ) -> None:
        for sender, expected in (
            (email_sender, OtpChannel.EMAIL),
            (sms_sender, OtpChannel.PHONE),
        ):
            if sender is not None and sender.channel is not expected:
                raise ValueError(
                    f"{type(sender).__name__} sends {sender.channel.value}, "
                    f"not {expected.value}"
                )
        self.email_sender = email_sender
        self.sms_sender = sms_sender
        self.renderer = renderer or OtpMessageRenderer()

    async def _deliver(
        self,
        sender: IMessageSender | None,
        channel: OtpChannel,
        destination: str,
        message: OtpMessage,
    ) -> None:
        if sender is None:
            raise DeliveryNotConfiguredError(channel.value)
        receipt = await sender.deliver(destination, message)
        if not receipt.accepted:
            raise NotificationDeliveryError(
                channel.value, destination, receipt.error or "unknown error"
            )
        logger.debug("OTP message accepted by %s sender", channel.value)

    async def send_email_otp(self, email: str, code: str) -> None:
        await self._deliver(
            self.email_sender,
            OtpChannel.EMAIL,
            email,
            self.renderer.render_email(code),
        )

    async def send_sms_otp(self, phone: str, code: str) -> None:
        await self._deliver(
            self.sms_sender,
            OtpChannel.PHONE,
            phone,
            self.renderer.render_sms(code),
        )


__all__: list[str] = ["OtpMessageRenderer", "NotificationOtpDelivery"]
