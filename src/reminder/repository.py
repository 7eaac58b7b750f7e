"""
Database repository for reminders.
Uses SQLite with repository pattern for thread-safe CRUD operations.
"""

import sqlite3
import threading
from typing import Iterable, List
from datetime import datetime
from contextlib import contextmanager

from config.logging_config import get_logger
from config import settings
from src.reminder.errors import RepositoryError
from src.reminder.models import Reminder

logger = get_logger(__name__)


class ReminderRepository:
    """
    Thread-safe SQLite repository for reminders, scoped by user.
    """

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS reminders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        content TEXT NOT NULL,
        priority INTEGER NOT NULL CHECK (priority BETWEEN 1 AND 5),
        summary TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_reminders_user_id ON reminders(user_id);
    """

    # Listing order shared by list, index deletes and dispatch
    ORDER_BY = "priority DESC, created_at ASC, id ASC"

    def __init__(self, db_path: str = None):
        """
        Initialize repository.

        Args:
            db_path: Path to SQLite database (default from settings)
        """
        self.db_path = str(db_path or settings.DB_PATH)
        self.lock = threading.Lock()

        logger.info(f"ReminderRepository initialized: {self.db_path}")
        self._initialize_database()

    def _initialize_database(self) -> None:
        """Create database schema if it doesn't exist."""
        try:
            with self._get_connection() as conn:
                conn.executescript(self.SCHEMA)
                conn.commit()
            logger.info("Database schema initialized")

        except RepositoryError as e:
            logger.error(f"Failed to initialize database: {e}", exc_info=True)
            raise

    @contextmanager
    def _get_connection(self):
        """
        Get database connection (context manager).

        sqlite3 errors raised while the connection is in use surface as
        RepositoryError.

        Yields:
            SQLite connection
        """
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise RepositoryError(f"Cannot open database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row  # Access columns by name
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise RepositoryError(f"Database operation failed: {e}") from e
        finally:
            conn.close()

    def create(self, user_id: str, content: str, priority: int,
               summary: str = "") -> Reminder:
        """
        Create a new reminder.

        Args:
            user_id: Owning user
            content: Reminder text (must not be blank)
            priority: 1 (lowest) to 5 (highest)
            summary: Optional short summary

        Returns:
            Created Reminder object

        Raises:
            ValueError: On blank content or out-of-range priority
            RepositoryError: On storage failure
        """
        if not content or not content.strip():
            raise ValueError("Reminder content cannot be empty")
        if not settings.MIN_PRIORITY <= priority <= settings.MAX_PRIORITY:
            raise ValueError(f"Priority must be between {settings.MIN_PRIORITY} and {settings.MAX_PRIORITY}")

        created_at = datetime.now()

        with self.lock:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO reminders (user_id, content, priority, summary, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (user_id, content, priority, summary or "", created_at.isoformat())
                )
                conn.commit()

                reminder = Reminder(
                    id=cursor.lastrowid,
                    user_id=user_id,
                    content=content,
                    priority=priority,
                    created_at=created_at,
                    summary=summary or ""
                )

        logger.info(f"Created reminder {reminder.id}: {reminder}")
        return reminder

    def list_by_user(self, user_id: str) -> List[Reminder]:
        """
        Get a user's reminders, highest priority first, oldest first within a priority.

        Args:
            user_id: Owning user

        Returns:
            List of Reminder objects
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT * FROM reminders WHERE user_id = ? ORDER BY {self.ORDER_BY}",
                (user_id,)
            )
            rows = cursor.fetchall()

            return [self._row_to_reminder(row) for row in rows]

    def count_by_user(self, user_id: str) -> int:
        """Number of reminders stored for a user."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT COUNT(*) FROM reminders WHERE user_id = ?",
                (user_id,)
            )
            return cursor.fetchone()[0]

    def delete_by_user_and_ids(self, user_id: str, ids: Iterable[int]) -> int:
        """
        Delete specific reminders of a user in one transaction.

        Args:
            user_id: Owning user
            ids: Reminder IDs

        Returns:
            Number of reminders deleted
        """
        ids = list(ids)
        if not ids:
            return 0

        placeholders = ", ".join("?" for _ in ids)

        with self.lock:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    f"DELETE FROM reminders WHERE user_id = ? AND id IN ({placeholders})",
                    (user_id, *ids)
                )
                conn.commit()

                deleted_count = cursor.rowcount

        logger.info(f"Deleted {deleted_count} reminder(s) by id for {user_id}")
        return deleted_count

    def delete_by_user_and_content_substring(self, user_id: str, substring: str) -> int:
        """
        Delete a user's reminders whose content contains substring (case-insensitive).

        Args:
            user_id: Owning user
            substring: Text to look for

        Returns:
            Number of reminders deleted
        """
        with self.lock:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    DELETE FROM reminders
                    WHERE user_id = ? AND instr(lower(content), lower(?)) > 0
                    """,
                    (user_id, substring)
                )
                conn.commit()

                deleted_count = cursor.rowcount

        logger.info(f"Deleted {deleted_count} reminder(s) matching '{substring}' for {user_id}")
        return deleted_count

    def delete_all_by_user(self, user_id: str) -> int:
        """
        Delete every reminder of a user.

        Args:
            user_id: Owning user

        Returns:
            Number of reminders deleted
        """
        with self.lock:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "DELETE FROM reminders WHERE user_id = ?",
                    (user_id,)
                )
                conn.commit()

                deleted_count = cursor.rowcount

        logger.info(f"Cleared {deleted_count} reminder(s) for {user_id}")
        return deleted_count

    def distinct_user_ids(self) -> List[str]:
        """
        Get every user that has at least one reminder.

        Returns:
            List of user IDs
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT DISTINCT user_id FROM reminders ORDER BY user_id"
            )
            return [row['user_id'] for row in cursor.fetchall()]

    def _row_to_reminder(self, row: sqlite3.Row) -> Reminder:
        """
        Convert database row to Reminder object.

        Args:
            row: SQLite row

        Returns:
            Reminder object
        """
        return Reminder(
            id=row['id'],
            user_id=row['user_id'],
            content=row['content'],
            priority=row['priority'],
            created_at=datetime.fromisoformat(row['created_at']),
            summary=row['summary'] or ""
        )
