"""
Configuration settings for Memo WhatsApp Reminder Bot.
All constants and configuration values centralized here.
"""

from enum import Enum
from pathlib import Path
import logging
import os

from dotenv import load_dotenv

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
ENV_PATH = PROJECT_ROOT / ".env"

# Environment file is optional; real environment variables win
load_dotenv(ENV_PATH)


def get_int_env(key: str, default: int) -> int:
    """
    Read an integer environment variable.

    Args:
        key: Variable name
        default: Value used when unset or unparsable

    Returns:
        Parsed integer or default
    """
    value = os.getenv(key, "").strip()
    if not value:
        return default

    try:
        return int(value)
    except ValueError:
        # Logging is not configured yet at import time
        logging.getLogger("memo.config").warning(
            f"Unable to parse {key}={value!r} as int, using {default}"
        )
        return default


def get_bool_env(key: str, default: bool = False) -> bool:
    """Read a boolean environment variable ("1", "true", "yes", "on")."""
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


DATA_DIR = Path(os.getenv("DATA_DIR", str(PROJECT_ROOT / "data")))
LOGS_DIR = Path(os.getenv("LOGS_DIR", str(PROJECT_ROOT / "logs")))
DB_PATH = Path(os.getenv("DB_PATH", str(DATA_DIR / "reminders.db")))

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# HTTP Server Configuration
HOST = os.getenv("HOST", "0.0.0.0")
PORT = get_int_env("PORT", 8080)
WEBHOOK_PATH = "/twilio/webhook"
SHUTDOWN_TIMEOUT = get_int_env("SHUTDOWN_TIMEOUT", 10)  # Seconds for in-flight requests

# Twilio Configuration
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
TWILIO_WHATSAPP_NUMBER = os.getenv("TWILIO_WHATSAPP_NUMBER", "")

# LLM Configuration (empty model = run without the text model)
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "")
LLM_CLASSIFY_TIMEOUT = float(get_int_env("LLM_CLASSIFY_TIMEOUT", 10))  # Seconds
LLM_SUMMARY_TIMEOUT = float(get_int_env("LLM_SUMMARY_TIMEOUT", 15))  # Seconds
LLM_CLASSIFY_TEMPERATURE = 0.0
LLM_SUMMARY_TEMPERATURE = 0.3
SUMMARY_FALLBACK_LENGTH = 80  # Characters kept when truncating

# Conversation Configuration
PENDING_TTL_SECONDS = get_int_env("PENDING_TTL_SECONDS", 0)  # 0 = pending reminders never expire
MIN_PRIORITY = 1
MAX_PRIORITY = 5

# Scheduler Configuration
DISPATCH_TIME = os.getenv("DISPATCH_TIME", "08:00")  # Local time of day
LOCAL_TIMEZONE = os.getenv("LOCAL_TIMEZONE", "")  # Empty = system local
DISPATCH_DELAY_SECONDS = get_int_env("DISPATCH_DELAY_SECONDS", 3600)  # Spacing between a user's reminders
SCHEDULER_MISFIRE_GRACE_TIME = 300  # Seconds (5 minutes)
SCHEDULER_COALESCE = True  # Merge multiple pending executions
SCHEDULER_MAX_INSTANCES = 1  # One dispatch cycle at a time

# System Configuration
DEBUG_MODE = get_bool_env("DEBUG")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


# Enums for type safety
class ConversationState(Enum):
    """Per-user conversation states."""
    IDLE = "idle"
    AWAITING_PRIORITY = "awaiting_priority"


class IntentType(Enum):
    """Intent classification types (values are the text model's labels)."""
    ADD_REMINDER = "add_reminder"
    LIST_REMINDERS = "list_reminders"
    DELETE_REMINDER = "delete_reminder"
    CLEAR_REMINDERS = "clear_reminders"
    HELP = "help"
    UNKNOWN = "unknown"
