"""Email sender over SMTP."""

from __future__ import annotations

import email.message
import email.policy
import logging

from ..models import OtpChannel
from .delivery import DeliveryReceipt, OtpMessage, accepted, refused
from .ports import IMessageSender

logger = logging.getLogger(__name__)


class SmtpEmailSender(IMessageSender):
    """Sends OTP emails with aiosmtplib.

    One connection is opened per message; codes are sent rarely enough
    that pooling buys nothing.

    Args:
        host: SMTP server.
        from_email: Envelope and header sender.
        port: Submission port.
        username: Login name, if the server requires auth.
        password: Login password.
        start_tls: Upgrade the connection with STARTTLS.
        timeout: Socket timeout in seconds.
    """

    channel = OtpChannel.EMAIL

    def __init__(
        self,
        host: str,
        *,
        from_email: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        start_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        if not from_email:
            raise ValueError("from_email is required for SmtpEmailSender")
        self.host = host
        self.from_email = from_email
        self.port = port
        self.username = username
        self.password = password
        self.start_tls = start_tls
        self.timeout = timeout

    def _compose(
        self, destination: str, message: OtpMessage
    ) -> email.message.EmailMessage:
        mail = email.message.EmailMessage(policy=email.policy.default)
        mail["From"] = self.from_email
        mail["To"] = destination
        mail["Subject"] = message.subject or "Your verification code"
        mail.set_content(message.text)
        if message.html:
            mail.add_alternative(message.html, subtype="html")
        return mail

    async def deliver(self, destination: str, message: OtpMessage) -> DeliveryReceipt:
        try:
            import aiosmtplib
        except ImportError as e:
            raise ImportError(
                "aiosmtplib is required for SmtpEmailSender. "
                "Install with: pip install 'stepup-identity[smtp]'"
            ) from e

        mail = self._compose(destination, message)
        try:
            async with aiosmtplib.SMTP(
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=self.start_tls,
                timeout=self.timeout,
            ) as smtp:
                await smtp.send_message(mail)
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery to %s failed: %s", destination, e)
            return refused(destination, self.channel, str(e))

        logger.info("OTP email handed to %s for %s", self.host, destination)
        return accepted(destination, self.channel)


__all__: list[str] = ["SmtpEmailSender"]
