from types import SimpleNamespace

import pytest
from twilio.base.exceptions import TwilioException

from src.messaging.twilio_client import TwilioSender, normalize_whatsapp_address
from src.reminder.errors import DeliveryError


class FakeMessages:
    def __init__(self, error=None):
        self.error = error
        self.created = []

    def create(self, to, from_, body):
        if self.error:
            raise self.error
        self.created.append({'to': to, 'from_': from_, 'body': body})
        return SimpleNamespace(sid="SM123")


def fake_client(error=None):
    return SimpleNamespace(messages=FakeMessages(error))


@pytest.mark.parametrize("number, expected", [
    ("+15551234567", "whatsapp:+15551234567"),
    ("15551234567", "whatsapp:+15551234567"),
    ("whatsapp:+15551234567", "whatsapp:+15551234567"),
    ("  ", ""),
    ("", ""),
])
def test_normalize_whatsapp_address(number, expected):
    assert normalize_whatsapp_address(number) == expected


@pytest.mark.asyncio
async def test_send_uses_whatsapp_addresses():
    client = fake_client()
    sender = TwilioSender(from_number="+14155238886", client=client)

    await sender.send("+15551234567", "Reminder: buy milk (priority 3)")

    assert client.messages.created == [{
        'to': "whatsapp:+15551234567",
        'from_': "whatsapp:+14155238886",
        'body': "Reminder: buy milk (priority 3)",
    }]


@pytest.mark.asyncio
async def test_send_without_credentials_fails():
    sender = TwilioSender()

    with pytest.raises(DeliveryError):
        await sender.send("+15551234567", "hello")


@pytest.mark.asyncio
async def test_send_without_sender_number_fails():
    sender = TwilioSender(client=fake_client())

    with pytest.raises(DeliveryError):
        await sender.send("+15551234567", "hello")


@pytest.mark.asyncio
async def test_twilio_errors_become_delivery_errors():
    sender = TwilioSender(from_number="+14155238886", client=fake_client(TwilioException("rejected")))

    with pytest.raises(DeliveryError, match="rejected"):
        await sender.send("+15551234567", "hello")
