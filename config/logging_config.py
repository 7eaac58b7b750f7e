"""
Logging for Memo.
Colored console output for operators, a rotating file with full DEBUG detail.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

import colorlog

from config.settings import LOGS_DIR, DEBUG_MODE, LOG_LEVEL

ROOT_LOGGER = "memo"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}

# Third-party loggers that drown out the bot's own messages
QUIET_LOGGERS = {
    "apscheduler": logging.INFO,
    "twilio.http_client": logging.WARNING,
    "httpx": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def _default_level() -> int:
    if DEBUG_MODE:
        return logging.DEBUG
    level = logging.getLevelName(LOG_LEVEL.upper())
    return level if isinstance(level, int) else logging.INFO


def _console_handler(level: int) -> logging.Handler:
    handler = colorlog.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(colorlog.ColoredFormatter(
        "%(log_color)s" + LOG_FORMAT,
        datefmt=DATE_FORMAT,
        log_colors=LOG_COLORS
    ))
    return handler


def _file_handler(log_file: Path) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding="utf-8"
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(name: str = ROOT_LOGGER, level: Optional[int] = None,
                  log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure the application logger once.

    Args:
        name: Logger to configure
        level: Console level (DEBUG when DEBUG is set, else LOG_LEVEL, else INFO)
        log_file: Rotating log file (default logs/memo.log)

    Returns:
        Configured logger
    """
    if level is None:
        level = _default_level()

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    if logger.handlers:
        return logger

    logger.addHandler(_console_handler(level))
    logger.addHandler(_file_handler(log_file or LOGS_DIR / "memo.log"))

    for noisy, noisy_level in QUIET_LOGGERS.items():
        logging.getLogger(noisy).setLevel(noisy_level)

    return logger


def set_console_level(level: int, name: str = ROOT_LOGGER) -> None:
    """Change console verbosity; the log file keeps DEBUG."""
    for handler in logging.getLogger(name).handlers:
        if not isinstance(handler, logging.handlers.RotatingFileHandler):
            handler.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """
    Module logger under the "memo" hierarchy, configuring it on first use.

    Args:
        name: Usually __name__

    Returns:
        Logger instance
    """
    if not logging.getLogger(ROOT_LOGGER).handlers:
        setup_logging(ROOT_LOGGER)

    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
