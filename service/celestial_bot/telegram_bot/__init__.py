"""
Telegram Bot module for the celestial bot.

ARCHITECTURE: Thin routing layer - NO astronomy logic here!
- bot.py: receives webhook updates, extracts chat id and message text
- handlers.py: answers /start, /help, /reset and hands every other
  message to the celestial workflow
- telegram_api.py: Bot API client used for replies

Import handle_telegram_update from .bot directly; the workflow imports
telegram_api, so this package must not import the handlers eagerly.
"""

from .telegram_api import send_message, send_chat_action, TelegramAPIError

__all__ = [
    "send_message",
    "send_chat_action",
    "TelegramAPIError",
]
