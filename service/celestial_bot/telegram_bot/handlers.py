"""
Telegram message and command handlers.

ARCHITECTURE: Thin routing layer.
- Commands (/start, /help, /reset) are answered directly
- Every other text message runs the celestial workflow
  (agent -> Telegram reply)
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from celestial_bot.agents.prompts import RESET_TEXT, WELCOME_TEXT
from celestial_bot.config import ConfigurationError
from celestial_bot.logging_config import get_logger
from celestial_bot.services.memory import get_conversation_store
from celestial_bot.workflows.celestial_workflow import (
    AGENT_STEP_ID,
    WorkflowStepError,
    run_celestial_workflow,
)
from .telegram_api import TelegramAPIError, send_chat_action, send_message

logger = get_logger("telegram_bot")

ERROR_TEXT = "❌ Sorry, I couldn't work that out right now. Please try again in a moment."


@dataclass(frozen=True)
class IncomingMessage:
    """The parts of a Telegram update the bot uses."""
    chat_id: int
    text: str
    user_id: Optional[int] = None
    username: Optional[str] = None


def thread_id_for_chat(chat_id: int) -> str:
    """One memory thread per Telegram chat."""
    return f"telegram-{chat_id}"


def parse_command(text: str) -> Optional[str]:
    """'/start@MyBot arg' -> 'start'; None for non-commands."""
    if not text.startswith("/"):
        return None
    command = text[1:].split(maxsplit=1)[0] if len(text) > 1 else ""
    return command.split("@", 1)[0].lower() or None


async def _reply(chat_id: int, text: str, parse_mode: Optional[str]) -> Optional[str]:
    """Send a command reply. Returns the error text if it could not be delivered."""
    try:
        await send_message(chat_id, text, parse_mode=parse_mode)
    except (ConfigurationError, TelegramAPIError, httpx.HTTPError) as e:
        logger.error(f"[BOT] Could not reply to chat={chat_id}: {e}")
        return str(e)
    return None


async def handle_start_command(message: IncomingMessage) -> dict:
    """Handle /start and /help commands."""
    error = await _reply(message.chat_id, WELCOME_TEXT, "Markdown")
    if error:
        return {"ok": False, "command": "start", "error": error}
    return {"ok": True, "command": "start"}


async def handle_reset_command(message: IncomingMessage) -> dict:
    """Handle /reset command - clear conversation memory."""
    removed = get_conversation_store().clear_thread(thread_id_for_chat(message.chat_id))
    logger.info(f"[BOT] Memory cleared for chat={message.chat_id} ({removed} messages)")

    error = await _reply(message.chat_id, RESET_TEXT, None)
    if error:
        return {"ok": False, "command": "reset", "error": error}
    return {"ok": True, "command": "reset"}


async def handle_text_message(message: IncomingMessage) -> dict:
    """
    Handle incoming text message.

    Runs the workflow and blocks until the reply is sent. Failures are
    logged and reported in the returned status, never re-raised, so the
    webhook still answers 200 and Telegram does not redeliver the update.
    """
    logger.info(f"[BOT] Message from chat={message.chat_id}, user={message.username}, text_len={len(message.text)}")

    await send_chat_action(message.chat_id, "typing")

    try:
        result = await run_celestial_workflow(
            message.text,
            thread_id=thread_id_for_chat(message.chat_id),
            chat_id=message.chat_id,
        )
    except WorkflowStepError as e:
        logger.error(f"[BOT] Workflow failed at {e.step_id}: {e.cause}")

        # The agent failed but Telegram may still be reachable
        if e.step_id == AGENT_STEP_ID:
            try:
                await send_message(message.chat_id, ERROR_TEXT, parse_mode=None)
            except Exception as send_error:
                logger.warning(f"[BOT] Could not send error notice: {send_error}")

        return {"ok": False, "step": e.step_id, "error": str(e.cause)}

    return {"ok": True, "sent": result.sent, "messageId": result.message_id}


COMMAND_HANDLERS = {
    "start": handle_start_command,
    "help": handle_start_command,
    "reset": handle_reset_command,
}
