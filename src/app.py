"""Application entry point for the intergram relay."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from functools import partial
from logging.handlers import RotatingFileHandler
from typing import Optional

import uvicorn
from art import tprint

import settings
from adapters.intercom_mapper import normalize
from adapters.notification_formatting import PARSE_MODES, format_notification
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_bot_notifier import TelegramBotSender
from adapters.telegram_notifier import TelethonGroupSender
from adapters.webhook_server import create_webhook_app
from client import build_client, start_bot
from core.config import DedupConfig, QueueConfig
from core.dedup import RetentionSweeper
from core.delivery_queue import DeliveryQueue
from core.processor import EventProcessor

NAME = "INTERGRAM"
FONT = "tarty-1"

DEFAULT_REDACT_PATTERNS = ["TELEGRAM_BOT_TOKEN", "INTERCOM_WEBHOOK_SECRET", "API_HASH"]


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    values = []
    for name in redact_cfg.get("patterns", DEFAULT_REDACT_PATTERNS):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", True):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/intergram.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _open_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    return storage


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"{name} is required")
    return value


def _validate_destination() -> None:
    # Fail fast on anything that would only surface on the first delivery.
    if not settings.GROUP_ID:
        raise RuntimeError("destination.group_id (or TELEGRAM_GROUP_ID) is required")
    if settings.DESTINATION_METHOD not in {"bot_api", "telethon"}:
        raise RuntimeError("destination.method must be 'bot_api' or 'telethon'")
    if settings.PARSE_MODE not in PARSE_MODES:
        raise RuntimeError(f"destination.parse_mode must be one of {', '.join(PARSE_MODES)}")
    if settings.DESTINATION_METHOD == "telethon" and settings.PARSE_MODE != "html":
        raise RuntimeError("destination.parse_mode must be 'html' when method=telethon")


async def _serve() -> None:
    logger = logging.getLogger(__name__)
    logger.info("Starting intergram")

    _validate_destination()
    bot_token = _require_env("TELEGRAM_BOT_TOKEN")
    webhook_secret = _require_env("INTERCOM_WEBHOOK_SECRET")

    storage = _open_storage()
    dedup_config = DedupConfig(
        retention_days=settings.RETENTION_DAYS,
        sweep_interval_hours=settings.SWEEP_INTERVAL_HOURS,
    )
    sweeper = RetentionSweeper(storage, dedup_config.retention, dedup_config.sweep_interval_seconds)
    sweeper.run_once()

    # Select the delivery adapter based on configuration to keep the core
    # queue independent from delivery details.
    telethon_client = None
    if settings.DESTINATION_METHOD == "telethon":
        telethon_client = await start_bot(build_client(), bot_token)
        sender = TelethonGroupSender(telethon_client, int(settings.GROUP_ID), settings.TOPIC_ID)
    else:
        sender = TelegramBotSender(bot_token, settings.GROUP_ID, settings.TOPIC_ID)
    logger.info("Selected delivery method - %s", settings.DESTINATION_METHOD)

    queue = DeliveryQueue(
        store=storage,
        sender=sender,
        renderer=partial(
            format_notification,
            mode=settings.PARSE_MODE,
            inbox_url_template=settings.INBOX_URL_TEMPLATE,
        ),
        config=QueueConfig(
            max_retries=settings.MAX_RETRIES,
            inter_message_delay=settings.INTER_MESSAGE_DELAY,
            tick_interval=settings.TICK_INTERVAL,
        ),
        preferences=storage,
    )
    processor = EventProcessor(normalize, queue)
    webhook_app = create_webhook_app(processor, webhook_secret, queue_depth=lambda: len(queue))

    try:
        queue.start()
        sweeper.start()
        if settings.ANNOUNCE_STARTUP:
            # Queued like any other notice so it shares pacing and rate limits.
            queue.enqueue_system("intergram connected")
        server = uvicorn.Server(
            uvicorn.Config(
                webhook_app,
                host=settings.WEBHOOK_HOST,
                port=settings.WEBHOOK_PORT,
                log_config=None,
            )
        )
        logger.info("Listening for Intercom webhooks on %s:%s", settings.WEBHOOK_HOST, settings.WEBHOOK_PORT)
        # uvicorn handles SIGINT/SIGTERM and returns from serve() on shutdown.
        await server.serve()
    finally:
        logger.info("Shutting down services...")
        await queue.stop()
        await sweeper.stop()
        if telethon_client is not None:
            await telethon_client.disconnect()
        else:
            await sender.close()


def _run() -> None:
    _print_banner()
    _configure_logging()
    asyncio.run(_serve())


def _recent(limit: int) -> None:
    storage = _open_storage()
    records = storage.recent_records(limit)
    if not records:
        print("No delivered messages recorded.")
        return
    for record in records:
        sent_at = record.sent_at.astimezone().strftime("%H:%M:%S %d-%m-%Y")
        print(f"{sent_at} | {record.notification_kind} | {record.message_id} | {record.conversation_id or '-'}")


def _on_off(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return value == "on"


def _prefs(user_id: str, new_messages: Optional[str], new_conversations: Optional[str]) -> None:
    storage = _open_storage()
    if new_messages is None and new_conversations is None:
        prefs = storage.get_preferences(user_id)
        if prefs is None:
            print(f"{user_id}: no preferences stored (all notifications on)")
            return
    else:
        prefs = storage.update_preferences(
            user_id,
            show_new_messages=_on_off(new_messages),
            show_new_conversations=_on_off(new_conversations),
        )
    print(
        f"{user_id}: new messages {'on' if prefs.show_new_messages else 'off'}, "
        f"new conversations {'on' if prefs.show_new_conversations else 'off'}"
    )


def _sweep() -> None:
    _configure_logging()
    storage = _open_storage()
    sweeper = RetentionSweeper(storage, DedupConfig(retention_days=settings.RETENTION_DAYS).retention, 0)
    removed = sweeper.run_once()
    print(f"Removed {removed} records older than {settings.RETENTION_DAYS} days.")


def _clear() -> None:
    storage = _open_storage()
    removed = storage.clear()
    print(f"Cleared {removed} records.")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="intergram")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the relay")

    recent = subparsers.add_parser("recent", help="Show the most recently delivered messages")
    recent.add_argument("--limit", type=int, default=3)

    prefs = subparsers.add_parser("prefs", help="Show or change notification preferences of a source user")
    prefs.add_argument("user_id")
    prefs.add_argument("--new-messages", choices=["on", "off"])
    prefs.add_argument("--new-conversations", choices=["on", "off"])

    subparsers.add_parser("sweep", help="Delete delivery records older than the retention window")
    subparsers.add_parser("clear", help="Delete all delivery records and preferences")

    args = parser.parse_args(argv)
    if args.command == "recent":
        _recent(args.limit)
        return
    if args.command == "prefs":
        _prefs(args.user_id, args.new_messages, args.new_conversations)
        return
    if args.command == "sweep":
        _sweep()
        return
    if args.command == "clear":
        _clear()
        return
    _run()


if __name__ == "__main__":
    main()
