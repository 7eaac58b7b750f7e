"""
Rule-based intent parser.
Deterministic keyword rules first, the optional text model only for messages
the rules do not recognise.
"""

import re
from dataclasses import dataclass
from typing import List

from config.logging_config import get_logger
from config.settings import IntentType
from src.nlp.llm_service import CapabilityNotConfiguredError, TextService

logger = get_logger(__name__)

CLEAR_ALL_PHRASES = frozenset([
    "clear all reminders",
    "clear reminders",
    "delete all reminders",
])

DELETE_KEYWORD_PATTERN = re.compile(
    r'^\s*delete(?:\s+reminders?(?:\s+about)?)?\b\s*(.*)$',
    re.IGNORECASE | re.DOTALL
)

INDEX_LIST_PATTERN = re.compile(r'^\s*\d+(?:[\s,]+\d+)*\s*$')


def normalize(text: str) -> str:
    """Lower-case, trim and collapse whitespace."""
    return " ".join(text.lower().split())


def is_clear_all_request(text: str) -> bool:
    """True for the clear-all phrases, ignoring case, spacing and end punctuation."""
    return normalize(text).rstrip(".!") in CLEAR_ALL_PHRASES


def is_list_request(text: str) -> bool:
    """True when the message mentions list/show together with reminder(s)."""
    body = normalize(text)
    return ("list" in body or "show" in body) and "reminder" in body


def extract_delete_keyword(message: str) -> str:
    """
    Extract the target of a delete request.

    "delete reminders about rent" -> "rent", "delete 1,2" -> "1,2".

    Returns:
        Trailing text after the delete phrase, "" when the message is not a
        delete request or names no target
    """
    match = DELETE_KEYWORD_PATTERN.match(message)
    if not match:
        return ""
    return match.group(1).strip()


def parse_indices(text: str) -> List[int]:
    """
    Parse a list of 1-based positions such as "1, 3 4".

    Returns:
        Positive integers in first-seen order without duplicates, or [] if
        the whole input is not such a list
    """
    if not INDEX_LIST_PATTERN.match(text):
        return []

    indices = []
    seen = set()
    for part in re.split(r'[\s,]+', text.strip()):
        if not part:
            continue
        number = int(part)
        if number <= 0:
            return []
        if number in seen:
            continue
        seen.add(number)
        indices.append(number)

    return indices


def format_indices(indices: List[int]) -> str:
    """Render indices as "1, 2, 3"."""
    return ", ".join(str(index) for index in indices)


@dataclass
class IntentResult:
    """Classified intent of one message."""
    intent: IntentType
    keyword: str = ""
    source: str = "rules"


class IntentParser:
    """
    Resolves a message to add / list / delete / clear / help.
    """

    def __init__(self, text_service: TextService):
        """
        Initialize intent parser.

        Args:
            text_service: Text model used for messages the rules do not match
        """
        self.text_service = text_service
        logger.info("Intent parser initialized")

    async def classify(self, message: str) -> IntentResult:
        """
        Classify a message.

        Rules always win over the text model. Anything the model cannot
        settle becomes a new reminder.
        """
        if is_clear_all_request(message):
            return IntentResult(IntentType.CLEAR_REMINDERS)

        if is_list_request(message):
            return IntentResult(IntentType.LIST_REMINDERS)

        keyword = extract_delete_keyword(message)
        if keyword:
            return IntentResult(IntentType.DELETE_REMINDER, keyword)

        try:
            intent = await self.text_service.classify_intent(message)

        except CapabilityNotConfiguredError:
            return IntentResult(IntentType.ADD_REMINDER, source="default")

        except Exception as e:
            logger.warning(f"Intent classification failed, treating as new reminder: {e!r}")
            return IntentResult(IntentType.ADD_REMINDER, source="default")

        if intent == IntentType.DELETE_REMINDER:
            return IntentResult(intent, extract_delete_keyword(message), source="llm")

        if intent in (IntentType.LIST_REMINDERS, IntentType.CLEAR_REMINDERS,
                      IntentType.HELP, IntentType.ADD_REMINDER):
            return IntentResult(intent, source="llm")

        return IntentResult(IntentType.ADD_REMINDER, source="default")
