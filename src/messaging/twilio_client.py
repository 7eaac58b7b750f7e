"""
Twilio WhatsApp sender.
Delivers outbound reminder messages.
"""

import asyncio
from typing import Optional

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from config.logging_config import get_logger
from src.reminder.errors import DeliveryError

logger = get_logger(__name__)


def normalize_whatsapp_address(number: str) -> str:
    """
    Turn a phone number into a Twilio WhatsApp address.

    "+15551234567" and "15551234567" -> "whatsapp:+15551234567".
    Returns "" for blank input.
    """
    trimmed = (number or "").strip()
    if not trimmed:
        return ""
    if trimmed.startswith("whatsapp:"):
        return trimmed
    if trimmed.startswith("+"):
        return "whatsapp:" + trimmed
    return "whatsapp:+" + trimmed


class TwilioSender:
    """
    Sends WhatsApp messages through the Twilio REST API.
    """

    def __init__(self, account_sid: str = "", auth_token: str = "",
                 from_number: str = "", client: Optional[Client] = None):
        """
        Initialize sender.

        Args:
            account_sid: Twilio account SID
            auth_token: Twilio auth token
            from_number: WhatsApp-enabled sender number
            client: Preconfigured Twilio client
        """
        if client is None and account_sid and auth_token:
            client = Client(account_sid, auth_token)

        self.client = client
        self.from_number = from_number

        if self.client is None:
            logger.warning("Twilio credentials missing, outbound reminders will fail")
        else:
            logger.info(f"TwilioSender initialized: from {self.from_number or '(not set)'}")

    async def send(self, user_id: str, text: str) -> None:
        """
        Send a WhatsApp message.

        Args:
            user_id: Recipient phone number
            text: Message body

        Raises:
            DeliveryError: When the client is not configured or Twilio rejects the message
        """
        if self.client is None:
            raise DeliveryError("twilio client not initialised")

        sender = normalize_whatsapp_address(self.from_number)
        if not sender:
            raise DeliveryError("twilio sender WhatsApp number is not configured")

        recipient = normalize_whatsapp_address(user_id)
        if not recipient:
            raise DeliveryError("recipient number missing or invalid")

        logger.debug(f"Sending WhatsApp message to {recipient} via {sender}")

        try:
            message = await asyncio.get_running_loop().run_in_executor(
                None,
                lambda: self.client.messages.create(to=recipient, from_=sender, body=text)
            )

        except TwilioException as e:
            raise DeliveryError(f"twilio send message error: {e}") from e

        logger.info(f"Twilio message sent to {recipient}, SID: {message.sid}")
