"""
Plain-text notification sink backed by the Telegram Bot API.

Lifecycle milestones and transcript lines are posted to a chat as they
happen. Messages longer than Telegram's limit are split into consecutive
chunks, preferring line boundaries.
"""

import logging
from typing import List, Optional

import httpx

from callbridge.config.constants import LOGGER_NAME, MAX_NOTIFICATION_LENGTH, TELEGRAM_API_URL
from callbridge.services.background import BackgroundTasks

logger = logging.getLogger(LOGGER_NAME)


def split_message(text: str, limit: int = MAX_NOTIFICATION_LENGTH) -> List[str]:
    """Split ``text`` into chunks of at most ``limit`` characters."""
    if limit <= 0:
        raise ValueError("limit must be positive")
    if len(text) <= limit:
        return [text] if text else []

    chunks: List[str] = []
    current = ""
    for line in text.split("\n"):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


class TelegramNotifier:
    """Best-effort line notifications to a Telegram chat."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        api_url: str = TELEGRAM_API_URL,
    ):
        self.chat_id = chat_id
        self._url = f"{api_url}/bot{bot_token}/sendMessage"
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._tasks = BackgroundTasks("notification")

    def notify(self, text: str) -> None:
        """Queue ``text`` for delivery without waiting for it."""
        for chunk in split_message(text):
            self._tasks.spawn(self._send(chunk))

    async def _send(self, text: str) -> None:
        try:
            response = await self._client.post(
                self._url, json={"chat_id": self.chat_id, "text": text}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Notification delivery failed: {e}")

    async def drain(self) -> None:
        await self._tasks.drain()

    async def aclose(self) -> None:
        await self.drain()
        await self._client.aclose()
