# path: src/runtime/chat.py

from __future__ import annotations

import logging
from typing import Any

from bot_core.net.client import Transport

logger = logging.getLogger(__name__)


MAX_CHAT_LENGTH = 256


def clean_chat_message(message: Any, max_length: int = MAX_CHAT_LENGTH) -> str:
    """Trim and cap a chat line; returns "" for anything unsendable."""
    if not isinstance(message, str):
        return ""
    cleaned = message.strip()
    if len(cleaned) > max_length:
        cleaned = cleaned[: max_length - 3] + "..."
    return cleaned


async def safe_send_chat(transport: Transport, message: Any) -> bool:
    """
    Send one chat line; never raises.

    Returns False when the message was empty/invalid or the transport failed.
    """
    final = clean_chat_message(message)
    if not final:
        logger.warning("Refusing to send invalid chat message: %r", message)
        return False
    try:
        await transport.send_chat(final)
    except Exception as exc:
        logger.warning("Failed to send chat message %r: %r", final, exc)
        return False
    return True
