"""
Ollama text model service.
Classifies free-form messages and summarizes reminder text. When no model is
configured the fallback service is used instead.
"""

import asyncio
from typing import Optional

import ollama

from config.logging_config import get_logger
from config import settings
from config.settings import IntentType

logger = get_logger(__name__)


class CapabilityNotConfiguredError(Exception):
    """Raised when the text model is not configured."""


class TextService:
    """
    Interface of the text-intelligence capability.
    """

    async def classify_intent(self, text: str) -> IntentType:
        raise NotImplementedError

    async def summarize(self, text: str) -> str:
        raise NotImplementedError


class FallbackTextService(TextService):
    """
    Used when no text model is configured.
    """

    def __init__(self, max_length: int = None):
        self.max_length = max_length or settings.SUMMARY_FALLBACK_LENGTH

    async def classify_intent(self, text: str) -> IntentType:
        raise CapabilityNotConfiguredError("text model not configured")

    async def summarize(self, text: str) -> str:
        """Truncate to max_length characters with an ellipsis."""
        if not text or not text.strip():
            raise ValueError("content cannot be empty")
        if len(text) > self.max_length:
            return text[:self.max_length] + "..."
        return text


class LLMService(TextService):
    """
    Ollama-backed text service.
    """

    CLASSIFY_PROMPT = (
        "Classify the user's request for a reminder bot. Reply with exactly one label: "
        "add_reminder, list_reminders, delete_reminder, clear_reminders, help, or unknown."
    )

    SUMMARY_PROMPT = "You summarise reminder texts in one short sentence."

    def __init__(self, model: str, host: str = None,
                 classify_timeout: float = None, summary_timeout: float = None,
                 client: Optional[ollama.Client] = None):
        """
        Initialize LLM service.

        Args:
            model: Model name
            host: Ollama API host (default from settings)
            classify_timeout: Seconds allowed for classification
            summary_timeout: Seconds allowed for summarization
            client: Preconfigured ollama client
        """
        if not model:
            raise ValueError("model is required")

        self.model = model
        self.host = host or settings.OLLAMA_HOST
        self.classify_timeout = classify_timeout or settings.LLM_CLASSIFY_TIMEOUT
        self.summary_timeout = summary_timeout or settings.LLM_SUMMARY_TIMEOUT
        self.client = client or ollama.Client(host=self.host)

        logger.info(f"LLMService initialized: host={self.host}, model={self.model}")

    async def classify_intent(self, text: str) -> IntentType:
        """
        Ask the model for the intent label of a message.

        Args:
            text: Raw user message

        Returns:
            IntentType (UNKNOWN for labels outside the known set)

        Raises:
            ValueError: On empty input
            asyncio.TimeoutError: When the model does not answer in time
        """
        if not text or not text.strip():
            raise ValueError("content cannot be empty")

        response = await asyncio.wait_for(
            self._call_ollama(self.CLASSIFY_PROMPT, text, settings.LLM_CLASSIFY_TEMPERATURE),
            timeout=self.classify_timeout
        )

        label = response.strip().strip('."\'').lower()
        try:
            intent = IntentType(label)
        except ValueError:
            logger.debug(f"Unrecognised intent label: {label!r}")
            intent = IntentType.UNKNOWN

        logger.info(f"LLM classified message as {intent.value}")
        return intent

    async def summarize(self, text: str) -> str:
        """
        Summarize reminder text in one short sentence.

        Raises:
            ValueError: On empty input or an empty completion
            asyncio.TimeoutError: When the model does not answer in time
        """
        if not text or not text.strip():
            raise ValueError("content cannot be empty")

        prompt = f"Summarise the following reminder in one sentence: {text}"
        response = await asyncio.wait_for(
            self._call_ollama(self.SUMMARY_PROMPT, prompt, settings.LLM_SUMMARY_TEMPERATURE),
            timeout=self.summary_timeout
        )

        summary = response.strip().strip('"').strip()
        if not summary:
            raise ValueError("no completion received")

        logger.debug(f"Summarized reminder as '{summary}'")
        return summary

    async def _call_ollama(self, system_prompt: str, user_prompt: str,
                           temperature: float) -> str:
        """
        Call Ollama API.

        Returns:
            Response text
        """
        response = await asyncio.get_running_loop().run_in_executor(
            None,
            lambda: self.client.chat(
                model=self.model,
                messages=[
                    {
                        'role': 'system',
                        'content': system_prompt
                    },
                    {
                        'role': 'user',
                        'content': user_prompt
                    }
                ],
                options={
                    'temperature': temperature,
                }
            )
        )

        return response['message']['content']


def create_text_service(model: str = None, host: str = None) -> TextService:
    """
    Pick the text service from configuration.

    Args:
        model: Ollama model name (default from settings; empty = not configured)
        host: Ollama API host

    Returns:
        LLMService when a model is configured, FallbackTextService otherwise
    """
    model = settings.OLLAMA_MODEL if model is None else model

    if not model:
        logger.info("No text model configured, using fallback summaries and rule-based intents")
        return FallbackTextService()

    return LLMService(model=model, host=host)
