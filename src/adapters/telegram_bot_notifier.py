"""Telegram Bot API delivery adapter.

Posts rendered notifications to the destination group through the Bot API
``sendMessage`` method. Failures are raised as ``BotApiError`` carrying the
API's error code, description and ``retry_after`` so the core classifier
can tell rate limits and formatting rejections apart.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from core.models import RenderedMessage

LOGGER = logging.getLogger(__name__)

API_BASE_URL = "https://api.telegram.org"
PARSE_MODES = {"html": "HTML", "markdown_v2": "MarkdownV2"}


class BotApiError(RuntimeError):
    """A non-OK Bot API response."""

    def __init__(self, error_code: int, description: str, retry_after: Optional[int] = None) -> None:
        super().__init__(f"Bot API error {error_code}: {description}")
        self.error_code = error_code
        self.description = description
        self.retry_after = retry_after


class TelegramBotSender:
    """Sender adapter that posts to a group (and optional topic) as a bot."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        topic_id: Optional[int] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._chat_id = chat_id
        self._topic_id = topic_id
        self._client = httpx.AsyncClient(
            base_url=f"{API_BASE_URL}/bot{bot_token}",
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    def _payload(self, rendered: RenderedMessage) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "chat_id": self._chat_id,
            "text": rendered.text,
            "parse_mode": PARSE_MODES[rendered.parse_mode],
            "disable_web_page_preview": True,
        }
        if self._topic_id is not None:
            payload["message_thread_id"] = self._topic_id
        if rendered.link_url:
            payload["reply_markup"] = {
                "inline_keyboard": [[{"text": rendered.link_label or rendered.link_url, "url": rendered.link_url}]]
            }
        return payload

    async def send(self, rendered: RenderedMessage) -> None:
        """Send one message; raise BotApiError or httpx errors on failure."""

        response = await self._client.post("/sendMessage", json=self._payload(rendered))
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.is_success and body.get("ok", False):
            LOGGER.debug("Bot API accepted message for chat %s", self._chat_id)
            return

        parameters = body.get("parameters") or {}
        raise BotApiError(
            error_code=int(body.get("error_code") or response.status_code),
            description=str(body.get("description") or response.text),
            retry_after=parameters.get("retry_after"),
        )
