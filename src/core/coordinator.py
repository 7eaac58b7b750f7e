"""
Main application coordinator.
Holds the conversation engine that answers inbound messages and wires up the
components the bot needs at runtime.
"""

import asyncio
import functools
import re
from typing import Optional

from config.logging_config import get_logger
from config import settings
from config.settings import IntentType
from src.core.state_machine import ConversationStore
from src.messaging.twilio_client import TwilioSender
from src.nlp.intent_parser import IntentParser, format_indices, parse_indices
from src.nlp.llm_service import FallbackTextService, TextService, create_text_service
from src.reminder.errors import RepositoryError, UserFacingError
from src.reminder.repository import ReminderRepository
from src.reminder.scheduler import ReminderDispatcher, ReminderScheduler

logger = get_logger(__name__)

PRIORITY_PATTERN = re.compile(r'^[0-9]+$')

EMPTY_MESSAGE = "I need a message to work with. Please try again."
PRIORITY_PROMPT = "What priority should I set? Reply with a number between 1 (low) and 5 (high)."
INVALID_PRIORITY = "Please send a priority between 1 (lowest) and 5 (highest)."
LOST_TRACK = "I lost track of that reminder. Please send it again."
NO_REMINDERS = "You have no reminders yet. Send me one to get started!"
NOTHING_TO_CLEAR = "You don't have any reminders to clear."
ALL_CLEARED = "All reminders cleared."
DELETE_PROMPT = "Tell me which reminder to delete, e.g. 'delete reminder about milk'."
NOT_FOUND = "I couldn't find any reminders matching that description."
NO_REMINDERS_TO_DELETE = "You don't have any reminders yet."

HELP_TEXT = (
    "You can say things like:\n"
    "- \"Remind me to pay rent\" to add a reminder\n"
    "- \"List reminders\" to see everything saved\n"
    "- \"Delete reminder about rent\" to remove one\n"
    "- \"Delete 1, 3\" to remove reminders by their number in the list\n"
    "- \"Clear all reminders\" to wipe everything"
)

# Replies when storage fails; the user has to resend
RETRY_MESSAGES = {
    IntentType.ADD_REMINDER: "I couldn't save the reminder. Please try again.",
    IntentType.LIST_REMINDERS: "I couldn't look up your reminders right now. Please try again later.",
    IntentType.DELETE_REMINDER: "I couldn't delete that reminder. Please try again later.",
    IntentType.CLEAR_REMINDERS: "I couldn't clear your reminders. Please try again later.",
}


def parse_priority(text: str) -> Optional[int]:
    """
    Parse a priority reply.

    Returns:
        Integer between MIN_PRIORITY and MAX_PRIORITY, or None
    """
    text = text.strip()
    if not PRIORITY_PATTERN.match(text):
        return None

    priority = int(text)
    if settings.MIN_PRIORITY <= priority <= settings.MAX_PRIORITY:
        return priority
    return None


class ConversationEngine:
    """
    Turns one inbound message into one reply.

    Users are either idle or awaiting a priority for the reminder text they
    sent last. Idle messages are classified and dispatched to a handler.
    """

    def __init__(self, repository: ReminderRepository, state_store: ConversationStore,
                 intent_parser: IntentParser, text_service: TextService):
        """
        Initialize conversation engine.

        Args:
            repository: Reminder storage
            state_store: Per-user pending reminder state
            intent_parser: Message classifier
            text_service: Summarizer for new reminders
        """
        self.repository = repository
        self.state_store = state_store
        self.intent_parser = intent_parser
        self.text_service = text_service
        self.summary_fallback = FallbackTextService()

        logger.info("ConversationEngine initialized")

    async def handle_message(self, user_id: str, body: str) -> str:
        """
        Handle an inbound message.

        Args:
            user_id: Sender identifier
            body: Message text

        Returns:
            Reply text
        """
        body = (body or "").strip()
        if not user_id or not body:
            return EMPTY_MESSAGE

        if self.state_store.is_awaiting_priority(user_id):
            return await self._handle_priority_response(user_id, body)

        result = await self.intent_parser.classify(body)
        logger.info(f"Intent for {user_id}: {result.intent.value} (via {result.source})")

        try:
            if result.intent == IntentType.LIST_REMINDERS:
                return await self._handle_list_reminders(user_id)

            if result.intent == IntentType.CLEAR_REMINDERS:
                return await self._handle_clear_reminders(user_id)

            if result.intent == IntentType.DELETE_REMINDER:
                return await self._handle_delete_reminder(user_id, result.keyword)

            if result.intent == IntentType.HELP:
                return HELP_TEXT

        except UserFacingError as e:
            return e.message

        except RepositoryError as e:
            logger.error(f"{result.intent.value} failed for {user_id}: {e}", exc_info=True)
            return RETRY_MESSAGES[result.intent]

        self.state_store.set_pending_message(user_id, body)
        return PRIORITY_PROMPT

    async def _handle_priority_response(self, user_id: str, text: str) -> str:
        """Second turn of the add flow."""
        priority = parse_priority(text)
        if priority is None:
            # Pending text stays stored, the user only resends the number
            return INVALID_PRIORITY

        content, found = self.state_store.pop_pending_message(user_id)
        if not found:
            return LOST_TRACK

        summary = await self._summarize(content)

        try:
            await self._run_blocking(self.repository.create, user_id, content, priority, summary)

        except RepositoryError as e:
            logger.error(f"Saving reminder failed for {user_id}: {e}", exc_info=True)
            return RETRY_MESSAGES[IntentType.ADD_REMINDER]

        return f"Got it! I'll remind you: {summary} (priority {priority})."

    async def _handle_list_reminders(self, user_id: str) -> str:
        """Numbered list in dispatch order."""
        reminders = await self._run_blocking(self.repository.list_by_user, user_id)
        if not reminders:
            return NO_REMINDERS

        lines = ["Here are your reminders:"]
        for index, reminder in enumerate(reminders, start=1):
            saved = reminder.created_at.strftime("%b %d %H:%M")
            lines.append(f"{index}. [{reminder.priority}] {reminder.display_text} - saved {saved}")

        return "\n".join(lines)

    async def _handle_clear_reminders(self, user_id: str) -> str:
        deleted = await self._run_blocking(self.repository.delete_all_by_user, user_id)
        if deleted == 0:
            raise UserFacingError(NOTHING_TO_CLEAR)
        return ALL_CLEARED

    async def _handle_delete_reminder(self, user_id: str, keyword: str) -> str:
        """
        Delete by list positions ("1, 3") or by text contained in the reminder.
        """
        target = (keyword or "").strip()
        if not target:
            return DELETE_PROMPT

        indices = parse_indices(target)
        if indices:
            deleted = await self._delete_by_indices(user_id, indices)
            if deleted < len(indices):
                return (
                    f"Deleted {deleted} of reminder(s) {format_indices(indices)}. "
                    f"The others were already removed."
                )
            return f"Deleted reminder(s): {format_indices(indices)}."

        deleted = await self._run_blocking(
            self.repository.delete_by_user_and_content_substring, user_id, target
        )
        if deleted == 0:
            raise UserFacingError(NOT_FOUND)

        return f"Deleted reminders matching '{target}'."

    async def _delete_by_indices(self, user_id: str, indices) -> int:
        """
        Resolve 1-based positions against the current list and delete them.

        Every index is checked before anything is deleted.
        """
        reminders = await self._run_blocking(self.repository.list_by_user, user_id)
        if not reminders:
            raise UserFacingError(NO_REMINDERS_TO_DELETE)

        ids = []
        for index in indices:
            if index < 1 or index > len(reminders):
                raise UserFacingError(
                    f"Reminder {index} doesn't exist. Choose between 1 and {len(reminders)}."
                )
            ids.append(reminders[index - 1].id)

        deleted = await self._run_blocking(self.repository.delete_by_user_and_ids, user_id, ids)
        if deleted == 0:
            raise UserFacingError("Those reminders were already removed.")
        return deleted

    async def _summarize(self, content: str) -> str:
        """Summary from the text service, truncated content if it fails."""
        try:
            return await self.text_service.summarize(content)

        except Exception as e:
            logger.warning(f"Summarization failed, truncating instead: {e!r}")
            return await self.summary_fallback.summarize(content)

    async def _run_blocking(self, func, *args):
        """Run a blocking repository call in the default executor."""
        return await asyncio.get_running_loop().run_in_executor(
            None, functools.partial(func, *args)
        )


class Coordinator:
    """
    Main application coordinator.
    Initializes components and manages the scheduler lifecycle.
    """

    def __init__(self):
        """Initialize coordinator."""
        logger.info("Initializing Coordinator")

        self.reminder_repo: Optional[ReminderRepository] = None
        self.state_store: Optional[ConversationStore] = None
        self.text_service: Optional[TextService] = None
        self.intent_parser: Optional[IntentParser] = None
        self.engine: Optional[ConversationEngine] = None
        self.sender: Optional[TwilioSender] = None
        self.dispatcher: Optional[ReminderDispatcher] = None
        self.scheduler: Optional[ReminderScheduler] = None

        self.running = False

    def initialize(self, db_path: str = None) -> bool:
        """
        Initialize all components in dependency order.

        Args:
            db_path: SQLite database path (default from settings)

        Returns:
            True if all components initialized successfully
        """
        try:
            logger.info("Initializing components...")

            # 1. Reminder repository
            self.reminder_repo = ReminderRepository(db_path)

            # 2. Conversation state
            self.state_store = ConversationStore(ttl_seconds=settings.PENDING_TTL_SECONDS)

            # 3. Text model (fallback when not configured)
            self.text_service = create_text_service()

            # 4. Intent parser and conversation engine
            self.intent_parser = IntentParser(self.text_service)
            self.engine = ConversationEngine(
                self.reminder_repo, self.state_store, self.intent_parser, self.text_service
            )

            # 5. Outbound messaging
            self.sender = TwilioSender(
                settings.TWILIO_ACCOUNT_SID,
                settings.TWILIO_AUTH_TOKEN,
                settings.TWILIO_WHATSAPP_NUMBER
            )

            # 6. Dispatcher and daily scheduler
            self.dispatcher = ReminderDispatcher(self.reminder_repo, self.sender.send)
            self.scheduler = ReminderScheduler(self.dispatcher)

            logger.info("All components initialized successfully")
            return True

        except Exception as e:
            logger.error(f"Initialization failed: {e}", exc_info=True)
            return False

    async def start(self, dispatch_now: bool = False) -> None:
        """
        Start the daily scheduler.

        Args:
            dispatch_now: Also run one dispatch cycle immediately
        """
        if self.running:
            logger.warning("Coordinator already running")
            return

        self.running = True
        self.scheduler.start()

        if dispatch_now:
            await self.scheduler.trigger_now()

        logger.info("Coordinator started")

    async def stop(self, drain: bool = False) -> None:
        """
        Stop the coordinator.

        Args:
            drain: Wait for delayed reminder sends instead of abandoning them
        """
        if not self.running:
            return

        logger.info("Stopping coordinator...")
        self.running = False

        # No new dispatch cycles first, then deal with pending sends
        self.scheduler.shutdown()
        await asyncio.sleep(0)  # let AsyncIOScheduler finish stopping
        await self.dispatcher.shutdown(drain=drain, timeout=settings.SHUTDOWN_TIMEOUT)

        logger.info("Coordinator stopped")
