"""
Shared fixtures and fakes.

Environment is pinned before any project module is imported so settings do
not touch the working tree or pick up a developer's .env model.
"""

import asyncio
import os
import tempfile

_TEST_ROOT = tempfile.mkdtemp(prefix="memo-tests-")
os.environ["DATA_DIR"] = os.path.join(_TEST_ROOT, "data")
os.environ["LOGS_DIR"] = os.path.join(_TEST_ROOT, "logs")
os.environ["OLLAMA_MODEL"] = ""
os.environ["PENDING_TTL_SECONDS"] = "0"

import pytest

from config.settings import IntentType
from src.core.coordinator import ConversationEngine
from src.core.state_machine import ConversationStore
from src.nlp.intent_parser import IntentParser
from src.nlp.llm_service import FallbackTextService, TextService
from src.reminder.errors import DeliveryError
from src.reminder.repository import ReminderRepository


class FakeTextService(TextService):
    """Scripted text model."""

    def __init__(self, label=IntentType.ADD_REMINDER, summary=None,
                 classify_error=None, summary_error=None):
        self.label = label
        self.summary = summary
        self.classify_error = classify_error
        self.summary_error = summary_error
        self.classified = []
        self.summarized = []

    async def classify_intent(self, text):
        self.classified.append(text)
        if self.classify_error:
            raise self.classify_error
        return self.label

    async def summarize(self, text):
        self.summarized.append(text)
        if self.summary_error:
            raise self.summary_error
        return self.summary if self.summary is not None else text


class FakeSender:
    """Records sends with the loop time they happened at."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.sent = []
        self.failures = 0

    async def send(self, user_id, text):
        if any(marker in text for marker in self.fail_on):
            self.failures += 1
            raise DeliveryError(f"cannot deliver to {user_id}")
        self.sent.append((user_id, text, asyncio.get_running_loop().time()))


async def wait_until(predicate, timeout=2.0):
    """Poll predicate until true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def repository(tmp_path):
    return ReminderRepository(str(tmp_path / "reminders.db"))


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def make_engine(repository, store):
    """Engine factory; defaults to running without a text model."""

    def _make(text_service=None):
        text_service = text_service or FallbackTextService()
        return ConversationEngine(repository, store, IntentParser(text_service), text_service)

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()
