"""Static configuration for intergram.

User-editable settings (destination, queue pacing, dedup retention, webhook,
logging) live in a single JSON file for quick edits without touching Python.
Secrets stay in the environment (.env). Every setting has a default, so a
missing config.json only means "use the defaults".
"""

import json
import os

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.getenv("INTERGRAM_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        return {}

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _optional_int(value) -> "int | None":
    if value is None or value == "":
        return None
    return int(value)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Destination group. The group id may also come from the environment so
# deployments can keep all Telegram identifiers next to the bot token.
# - DESTINATION_METHOD: "bot_api" (HTTPS Bot API) or "telethon" (MTProto bot)
# - PARSE_MODE: "html" or "markdown_v2" (bot_api only)
_destination = _CONFIG.get("destination", {})
GROUP_ID = str(_destination.get("group_id") or os.getenv("TELEGRAM_GROUP_ID") or "")
TOPIC_ID = _optional_int(_destination.get("topic_id") or os.getenv("TELEGRAM_TOPIC_ID"))
DESTINATION_METHOD = _destination.get("method", "bot_api")
PARSE_MODE = _destination.get("parse_mode", "html")
ANNOUNCE_STARTUP = bool(_destination.get("announce_startup", True))

# Queue pacing keeps us under Telegram's burst limits.
_queue = _CONFIG.get("queue", {})
MAX_RETRIES = int(_queue.get("max_retries", 3))
INTER_MESSAGE_DELAY = float(_queue.get("inter_message_delay", 1.0))
TICK_INTERVAL = float(_queue.get("tick_interval", 1.0))

# Delivered-message records expire after the retention window.
_dedup = _CONFIG.get("dedup", {})
RETENTION_DAYS = int(_dedup.get("retention_days", 7))
SWEEP_INTERVAL_HOURS = float(_dedup.get("sweep_interval_hours", 24))
DB_PATH = _dedup.get("db_path") or os.path.join(PROJECT_ROOT, "messages.db")

_webhook = _CONFIG.get("webhook", {})
WEBHOOK_HOST = _webhook.get("host", "0.0.0.0")
WEBHOOK_PORT = int(_webhook.get("port") or os.getenv("WEBHOOK_PORT") or 3000)

_intercom = _CONFIG.get("intercom", {})
INBOX_URL_TEMPLATE = _intercom.get(
    "inbox_url_template",
    "https://app.intercom.com/a/inbox/_/inbox/conversation/{conversation_id}",
)

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {"enabled": True})
