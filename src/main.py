"""
Main entry point for Memo WhatsApp Reminder Bot.
Handles CLI arguments, environment setup, and application lifecycle.
"""

import asyncio
import logging
import sys
import argparse

import uvicorn

from config.logging_config import set_console_level, setup_logging
from config import settings
from src.core.coordinator import Coordinator
from src.web.webhook import create_app

# Setup logging first
logger = setup_logging("memo")


def parse_arguments():
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Memo - WhatsApp reminder bot with daily priority-ordered reminders"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    parser.add_argument(
        "--host",
        default=settings.HOST,
        help=f"Interface to bind (default {settings.HOST})"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help=f"Port to listen on (default {settings.PORT})"
    )

    parser.add_argument(
        "--dispatch-now",
        action="store_true",
        help="Run one reminder dispatch cycle at start-up"
    )

    return parser.parse_args()


def check_environment() -> None:
    """Log which optional integrations are configured."""
    if settings.ENV_PATH.exists():
        logger.info(f"Loaded environment from {settings.ENV_PATH}")
    else:
        logger.warning(f".env file not found at {settings.ENV_PATH}")

    if not (settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN):
        logger.warning("TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN not set, daily reminders cannot be delivered")
    if not settings.TWILIO_WHATSAPP_NUMBER:
        logger.warning("TWILIO_WHATSAPP_NUMBER not set")
    if not settings.OLLAMA_MODEL:
        logger.info("OLLAMA_MODEL not set, running without the text model")


async def main():
    """Main application entry point."""
    args = parse_arguments()

    # Enable debug logging if requested
    if args.debug:
        set_console_level(logging.DEBUG)
        logger.info("Debug logging enabled")

    logger.info("=" * 60)
    logger.info("Memo WhatsApp Reminder Bot")
    logger.info("=" * 60)

    check_environment()

    coordinator = Coordinator()
    if not coordinator.initialize():
        logger.error("Failed to initialize application")
        return 1

    app = create_app(coordinator.engine)

    # uvicorn handles SIGINT/SIGTERM: stops accepting, drains in-flight requests
    server = uvicorn.Server(uvicorn.Config(
        app,
        host=args.host,
        port=args.port,
        timeout_graceful_shutdown=settings.SHUTDOWN_TIMEOUT,
        log_config=None
    ))

    try:
        await coordinator.start(dispatch_now=args.dispatch_now)

        logger.info(f"Webhook listening on http://{args.host}:{args.port}{settings.WEBHOOK_PATH}")
        await server.serve()

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1

    finally:
        logger.info("Shutting down...")
        await coordinator.stop()

    logger.info("Application stopped")
    return 0


if __name__ == "__main__":
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)

    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        sys.exit(0)
