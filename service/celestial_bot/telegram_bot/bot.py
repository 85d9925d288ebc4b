"""
Main Telegram bot handler.

Uses python-telegram-bot's Update model to read webhook payloads.
Replies go out through the Bot API client in telegram_api.
"""

from typing import Optional

from telegram import Update

from celestial_bot.logging_config import get_logger
from .handlers import COMMAND_HANDLERS, IncomingMessage, handle_text_message, parse_command

logger = get_logger("telegram_bot")


def parse_update(update_data: dict) -> Optional[IncomingMessage]:
    """
    Extract chat id and text from a Telegram update.

    Returns None for updates without a text message (edits, stickers, etc.).
    """
    update = Update.de_json(update_data, None)
    if update is None or update.message is None:
        return None

    message = update.message
    if not message.text:
        return None

    user = message.from_user
    return IncomingMessage(
        chat_id=message.chat.id,
        text=message.text,
        user_id=user.id if user else None,
        username=user.username if user else None,
    )


async def handle_telegram_update(update_data: dict) -> dict:
    """
    Process incoming webhook update from Telegram.

    This is called by the FastAPI webhook endpoint and blocks until the
    reply has been sent (or the workflow has failed).
    """
    try:
        message = parse_update(update_data)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"[BOT] Received invalid update data: {e}")
        return {"ok": False, "error": "invalid update"}

    if message is None:
        logger.debug("[BOT] Ignoring update without text message")
        return {"ok": True, "ignored": True}

    command = parse_command(message.text)
    if command in COMMAND_HANDLERS:
        return await COMMAND_HANDLERS[command](message)

    return await handle_text_message(message)
