"""SMS sender over Twilio."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..models import OtpChannel
from .delivery import DeliveryReceipt, OtpMessage, accepted, refused
from .ports import IMessageSender

logger = logging.getLogger(__name__)


class TwilioSMSSender(IMessageSender):
    """Sends OTP text messages from a Twilio number.

    The Twilio REST client blocks, so each send runs in a worker thread.
    The client is created on first use.
    """

    channel = OtpChannel.PHONE

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        *,
        timeout: float = 10.0,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            try:
                from twilio.http.http_client import TwilioHttpClient
                from twilio.rest import Client
            except ImportError as e:
                raise ImportError(
                    "twilio is required for TwilioSMSSender. "
                    "Install with: pip install 'stepup-identity[twilio]'"
                ) from e
            self._client = Client(
                self.account_sid,
                self.auth_token,
                http_client=TwilioHttpClient(timeout=self.timeout),
            )
        return self._client

    async def deliver(self, destination: str, message: OtpMessage) -> DeliveryReceipt:
        client = self._get_client()
        from twilio.base.exceptions import TwilioException

        try:
            sent = await asyncio.to_thread(
                client.messages.create,
                to=destination,
                from_=self.from_number,
                body=message.text,
            )
        except (TwilioException, OSError) as e:
            logger.error("Twilio refused SMS to %s: %s", destination, e)
            return refused(destination, self.channel, str(e))

        logger.info("OTP SMS queued for %s (sid %s)", destination, sent.sid)
        return accepted(destination, self.channel, provider_ref=sent.sid)


__all__: list[str] = ["TwilioSMSSender"]
