"""
Telegram Bot API client for sending messages.

Simple wrapper for sending the agent's replies back to Telegram.
"""

import httpx
from typing import Optional

from celestial_bot.config import ConfigurationError, get_settings, require_setting
from celestial_bot.logging_config import get_logger

logger = get_logger("telegram_api")

TELEGRAM_API_BASE = "https://api.telegram.org"
MAX_MESSAGE_LENGTH = 4096


class TelegramAPIError(RuntimeError):
    """Telegram answered sendMessage with a non-2xx status."""

    def __init__(self, status_code: int, body):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Failed to send Telegram message: HTTP {status_code}: {body}")


def _api_url(method: str) -> str:
    token = require_setting(get_settings(), "telegram_bot_token")
    return f"{TELEGRAM_API_BASE}/bot{token}/{method}"


def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """
    Split text into chunks Telegram accepts, preferring line breaks.

    Args:
        text: Message text
        limit: Max characters per chunk

    Returns:
        Non-empty list of chunks
    """
    if len(text) <= limit:
        return [text]

    chunks = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    if remaining:
        chunks.append(remaining)
    return chunks


async def send_message(
    chat_id: int,
    text: str,
    parse_mode: Optional[str] = "Markdown",
    client: Optional[httpx.AsyncClient] = None
) -> dict:
    """
    Send message to Telegram user.

    Long texts are sent as several messages; the result of the last one is returned.

    Args:
        chat_id: Telegram chat ID
        text: Message text
        parse_mode: Optional parse mode (Markdown, HTML)
        client: Optional HTTP client (a new one is created if omitted)

    Returns:
        Telegram response JSON ({"ok": true, "result": {...}})

    Raises:
        ConfigurationError: TELEGRAM_BOT_TOKEN is not set
        TelegramAPIError: Telegram returned a non-2xx status
    """
    url = _api_url("sendMessage")

    async def _send(http: httpx.AsyncClient) -> dict:
        result = {}
        for chunk in split_message(text):
            payload = {
                "chat_id": chat_id,
                "text": chunk
            }
            if parse_mode:
                payload["parse_mode"] = parse_mode

            response = await http.post(url, json=payload)
            try:
                result = response.json()
            except ValueError:
                result = {"raw": response.text}

            if not response.is_success:
                logger.error(f"[TELEGRAM] sendMessage failed: status={response.status_code}, result={result}")
                raise TelegramAPIError(response.status_code, result)
        return result

    if client is not None:
        return await _send(client)

    async with httpx.AsyncClient(timeout=30.0) as http:
        return await _send(http)


async def send_chat_action(
    chat_id: int,
    action: str = "typing",
    client: Optional[httpx.AsyncClient] = None
) -> None:
    """
    Send chat action (typing indicator). Best effort: a missing token or an
    HTTP error is logged, never raised.

    Args:
        chat_id: Telegram chat ID
        action: Action type (typing, upload_photo, etc.)
        client: Optional HTTP client
    """
    payload = {"chat_id": chat_id, "action": action}

    try:
        url = _api_url("sendChatAction")
        if client is not None:
            await client.post(url, json=payload)
            return
        async with httpx.AsyncClient(timeout=10.0) as http:
            await http.post(url, json=payload)
    except (ConfigurationError, httpx.HTTPError) as e:
        logger.warning(f"[TELEGRAM] sendChatAction failed: {e}")
