"""Telegram MTProto delivery adapter.

Sends rendered notifications through a Telethon client logged in as a bot.
Telethon errors (``FloodWaitError`` with ``seconds``, RPC errors with a raw
``message``) are left untouched for the core classifier.
"""

from __future__ import annotations

from typing import Optional

from telethon import Button

from core.models import RenderedMessage


class TelethonGroupSender:
    """Sender adapter that posts to a group (and optional topic) via Telethon."""

    def __init__(self, client, chat_id: int, topic_id: Optional[int] = None) -> None:
        self._client = client
        self._chat_id = chat_id
        self._topic_id = topic_id

    async def send(self, rendered: RenderedMessage) -> None:
        """Send the rendered notification to the destination group."""

        # Telethon has no MarkdownV2 parser, so this adapter is html-only.
        if rendered.parse_mode != "html":
            raise ValueError(f"Telethon delivery needs html notifications, got {rendered.parse_mode}")

        buttons = None
        if rendered.link_url:
            buttons = [Button.url(rendered.link_label or rendered.link_url, rendered.link_url)]
        await self._client.send_message(
            self._chat_id,
            rendered.text,
            parse_mode="html",
            link_preview=False,
            reply_to=self._topic_id,
            buttons=buttons,
        )
