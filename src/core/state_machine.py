"""
Per-user conversation state.
Tracks which users owe a priority for a reminder they just sent.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from config.logging_config import get_logger
from config.settings import ConversationState

logger = get_logger(__name__)


@dataclass
class PendingReminder:
    """Reminder text captured in the first turn of the add flow."""
    message: str
    awaiting_priority: bool = True
    created_at: float = field(default_factory=time.monotonic)


class ConversationStore:
    """
    Lock-protected map of user ID -> pending reminder.

    A user has an entry only while an add flow is incomplete. Every
    operation takes the same lock, so concurrent callers for different
    users never corrupt the map and same-user calls are serialized.
    Nothing slow happens while the lock is held.
    """

    def __init__(self, ttl_seconds: Optional[float] = None):
        """
        Initialize conversation store.

        Args:
            ttl_seconds: Drop pending reminders older than this. None keeps
                them until the user answers.
        """
        self.ttl_seconds = ttl_seconds or None
        self.lock = threading.Lock()
        self._state: Dict[str, PendingReminder] = {}

        if self.ttl_seconds:
            logger.info(f"ConversationStore initialized (pending TTL {self.ttl_seconds}s)")
        else:
            logger.info("ConversationStore initialized (pending reminders never expire)")

    def set_pending_message(self, user_id: str, message: str) -> None:
        """
        Store reminder text and mark the user as awaiting a priority.
        Replaces anything already pending for that user.
        """
        with self.lock:
            self._evict_expired()
            replaced = user_id in self._state
            self._state[user_id] = PendingReminder(message=message, created_at=time.monotonic())

        if replaced:
            logger.debug(f"Replaced pending reminder for {user_id}")
        logger.info(f"State transition for {user_id}: -> {ConversationState.AWAITING_PRIORITY.value}")

    def pop_pending_message(self, user_id: str) -> Tuple[str, bool]:
        """
        Remove and return the pending reminder text.

        Returns:
            (message, True) if one was pending, ("", False) otherwise
        """
        with self.lock:
            entry = self._state.pop(user_id, None)
            if entry is not None and self._is_expired(entry):
                logger.info(f"Pending reminder for {user_id} expired")
                entry = None

        if entry is None:
            return "", False

        logger.info(f"State transition for {user_id}: -> {ConversationState.IDLE.value}")
        return entry.message, True

    def is_awaiting_priority(self, user_id: str) -> bool:
        """Check whether the user's next message should be a priority."""
        with self.lock:
            entry = self._state.get(user_id)
            if entry is not None and self._is_expired(entry):
                del self._state[user_id]
                entry = None

        if entry is None:
            return False
        return entry.awaiting_priority

    def discard(self, user_id: str) -> bool:
        """
        Drop any pending state for a user.

        Returns:
            True if something was pending
        """
        with self.lock:
            removed = self._state.pop(user_id, None) is not None

        if removed:
            logger.info(f"Discarded pending reminder for {user_id}")
        return removed

    def get_state(self, user_id: str) -> ConversationState:
        """Get the user's current conversation state."""
        if self.is_awaiting_priority(user_id):
            return ConversationState.AWAITING_PRIORITY
        return ConversationState.IDLE

    def pending_count(self) -> int:
        """Number of users in the middle of an add flow."""
        with self.lock:
            self._evict_expired()
            return len(self._state)

    def _evict_expired(self) -> None:
        """Drop expired pending reminders. Caller must hold the lock."""
        if not self.ttl_seconds:
            return

        expired = [user_id for user_id, entry in self._state.items() if self._is_expired(entry)]
        for user_id in expired:
            del self._state[user_id]

        if expired:
            logger.info(f"Evicted {len(expired)} expired pending reminder(s)")

    def _is_expired(self, entry: PendingReminder) -> bool:
        """Caller must hold the lock."""
        if not self.ttl_seconds:
            return False
        return time.monotonic() - entry.created_at > self.ttl_seconds
