#!/usr/bin/env python
import logging
import sys

from loguru import logger
from telegram.ext import Application, ApplicationBuilder

from volumebot.config import BOT_TOKEN, LOG_LEVEL, require_env
from volumebot.events.event_system import Event, event_system
from volumebot.handlers.volume_handler import register_volume_handler

TRADE_EVENT_TYPES = ("trade_confirmed", "trade_failed", "trade_skipped")


def setup_logging(level: str = LOG_LEVEL, log_file: bool = True):
    """Configure structured logging with loguru."""
    logger.remove()  # Remove default handler
    if log_file:
        logger.add(
            "logs/bot_{time}.log",
            rotation="1 day",
            retention="14 days",
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message} | {extra}",
            serialize=True,  # JSON formatting for structured logs
        )

    # Also send logs to stdout
    logger.add(
        sys.stdout,
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}"
    )

    # Redirect telegram, httpx and websockets loggers to loguru
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to loguru."""
    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


async def log_trade_event(event: Event):
    """Record per-pass trade diagnostics."""
    logger.bind(**event.data).info(f"Trade event {event.event_type}")


async def post_init(application: Application):
    await event_system.start()
    for event_type in TRADE_EVENT_TYPES:
        await event_system.subscribe(event_type, log_trade_event)


async def post_shutdown(application: Application):
    await event_system.stop()


async def error_handler(update, context):
    """Log errors and send a user-friendly message."""
    logger.bind(update_id=getattr(update, "update_id", None)).error(
        f"Update {update} caused error {context.error}"
    )

    # Send message to the user
    if update is not None and getattr(update, "effective_chat", None):
        await context.bot.send_message(
            chat_id=update.effective_chat.id,
            text="Sorry, something went wrong. Please try again or restart with /begin."
        )


def main():
    """Initialize and start the bot."""
    # Setup logging first for observability
    setup_logging()

    logger.info("Starting Solana Volume Telegram Bot")

    token = BOT_TOKEN or require_env("TG_BOT_TOKEN")
    application = (
        ApplicationBuilder()
        .token(token)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )

    register_volume_handler(application)

    # Add error handler for graceful fallbacks
    application.add_error_handler(error_handler)

    # Blocks until Ctrl-C or SIGINT, SIGTERM or SIGABRT
    logger.info("Bot is starting polling")
    application.run_polling()


if __name__ == '__main__':
    main()
