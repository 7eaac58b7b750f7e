"""
Inbound Twilio webhook.
Decodes WhatsApp form posts and answers with TwiML.
"""

from fastapi import FastAPI, Form
from fastapi.responses import Response
from twilio.twiml.messaging_response import MessagingResponse

from config.logging_config import get_logger
from config import settings
from src.core.coordinator import EMPTY_MESSAGE, ConversationEngine

logger = get_logger(__name__)

ERROR_REPLY = "Sorry, something went wrong. Please try again."


def sanitize_whatsapp_number(sender: str) -> str:
    """Twilio prefixes WhatsApp senders with "whatsapp:"."""
    return sender.strip().removeprefix("whatsapp:")


def twiml_reply(message: str) -> Response:
    """Wrap a reply in a TwiML <Message>."""
    twiml = MessagingResponse()
    twiml.message(message)
    return Response(content=str(twiml), media_type="application/xml")


def create_app(engine: ConversationEngine) -> FastAPI:
    """
    Build the webhook application.

    Args:
        engine: Conversation engine answering messages

    Returns:
        FastAPI app
    """
    app = FastAPI(title="Memo WhatsApp Reminder Bot")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post(settings.WEBHOOK_PATH)
    async def twilio_webhook(sender: str = Form("", alias="From"),
                             body: str = Form("", alias="Body")):
        user_id = sanitize_whatsapp_number(sender)
        body = body.strip()

        if not user_id or not body:
            return twiml_reply(EMPTY_MESSAGE)

        logger.info(f"Message from {user_id}: {body!r}")

        try:
            reply = await engine.handle_message(user_id, body)

        except Exception as e:
            logger.error(f"Unhandled error for {user_id}: {e}", exc_info=True)
            reply = ERROR_REPLY

        return twiml_reply(reply)

    return app
