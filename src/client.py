"""Telegram client factory for intergram.

Only used when ``destination.method`` is ``telethon``. We explicitly manage
the client's lifecycle (connect, bot login, disconnect) in the app so it is
obvious when the session is created and when it ends.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient


def build_client() -> TelegramClient:
    """Create a Telethon client from environment variables.

    We read API_ID/API_HASH via python-dotenv to keep secrets out of the repo.
    The session name defaults to "intergram" to create a local .session file.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "intergram")

    # Fail fast on missing credentials; MTProto needs them even for bots.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    logging.getLogger(__name__).info("Initializing Telegram client")

    return TelegramClient(session_name, int(api_id), api_hash)


async def start_bot(client: TelegramClient, bot_token: str) -> TelegramClient:
    """Log the client in as a bot and return it."""

    await client.start(bot_token=bot_token)
    me = await client.get_me()
    logging.getLogger(__name__).info("Logged in as bot @%s", getattr(me, "username", None))
    return client
