from __future__ import annotations

import asyncio
from functools import partial

from adapters.intercom_mapper import normalize
from adapters.notification_formatting import format_notification
from adapters.sqlite_storage import SQLiteStorage
from core.config import QueueConfig
from core.delivery_queue import DeliveryQueue
from core.models import RenderedMessage
from core.processor import EventProcessor, ProcessResult


class RecordingSender:
    def __init__(self) -> None:
        self.sent: list[RenderedMessage] = []

    async def send(self, rendered: RenderedMessage) -> None:
        self.sent.append(rendered)


async def _no_sleep(seconds: float) -> None:
    return None


def _event(part_id: str, body: str = "<p>Where is my order?</p>", author_type: str = "user") -> dict:
    return {
        "type": "notification_event",
        "topic": "conversation.user.replied",
        "data": {
            "item": {
                "type": "conversation",
                "id": "conv-1",
                "conversation_parts": {
                    "conversation_parts": [
                        {
                            "id": part_id,
                            "body": body,
                            "created_at": 1704067200,
                            "author": {"type": author_type, "id": "user-1", "name": "Ada"},
                        }
                    ]
                },
            }
        },
    }


def _pipeline(tmp_path) -> tuple[EventProcessor, DeliveryQueue, SQLiteStorage, RecordingSender]:
    storage = SQLiteStorage(str(tmp_path / "messages.db"))
    storage.init_db()
    sender = RecordingSender()
    queue = DeliveryQueue(
        store=storage,
        sender=sender,
        renderer=partial(format_notification, mode="html"),
        config=QueueConfig(max_retries=3, inter_message_delay=0.0),
        preferences=storage,
        sleep=_no_sleep,
    )
    return EventProcessor(normalize, queue), queue, storage, sender


def test_duplicate_webhook_is_sent_once(tmp_path) -> None:
    processor, queue, storage, sender = _pipeline(tmp_path)

    assert processor.handle(_event("part-1")) is ProcessResult.QUEUED
    assert processor.handle(_event("part-1")) is ProcessResult.IGNORED
    asyncio.run(queue.drain())

    assert len(sender.sent) == 1
    assert "Where is my order?" in sender.sent[0].text
    assert storage.has_delivered("part-1")

    # Intercom redelivers after the send.
    assert processor.handle(_event("part-1")) is ProcessResult.IGNORED
    asyncio.run(queue.drain())
    assert len(sender.sent) == 1


def test_distinct_parts_of_one_conversation_are_both_sent(tmp_path) -> None:
    processor, queue, _, sender = _pipeline(tmp_path)

    processor.handle(_event("part-1", "<p>first</p>"))
    processor.handle(_event("part-2", "<p>second</p>"))
    asyncio.run(queue.drain())

    assert [rendered.text.splitlines()[-1] for rendered in sender.sent] == ["first", "second"]


def test_malformed_event_is_invalid(tmp_path) -> None:
    processor, queue, _, _ = _pipeline(tmp_path)

    assert processor.handle(_event("part-1", author_type="robot")) is ProcessResult.INVALID
    assert processor.handle("not an object") is ProcessResult.INVALID
    assert len(queue) == 0


def test_non_actionable_event_is_skipped(tmp_path) -> None:
    processor, queue, _, _ = _pipeline(tmp_path)

    assert processor.handle({"type": "ping"}) is ProcessResult.SKIPPED
    assert len(queue) == 0


def test_muted_user_is_ignored(tmp_path) -> None:
    processor, queue, storage, _ = _pipeline(tmp_path)
    storage.update_preferences("user-1", show_new_messages=False)

    assert processor.handle(_event("part-1")) is ProcessResult.IGNORED
    assert len(queue) == 0


def test_malformed_parts_list_is_invalid_not_an_error(tmp_path) -> None:
    processor, queue, _, _ = _pipeline(tmp_path)
    payload = _event("part-1")
    payload["data"]["item"]["conversation_parts"]["conversation_parts"] = 5

    assert processor.handle(payload) is ProcessResult.INVALID
    assert len(queue) == 0


def test_system_notice_is_rendered_and_recorded(tmp_path) -> None:
    _, queue, storage, sender = _pipeline(tmp_path)

    assert queue.enqueue_system("intergram connected")
    asyncio.run(queue.drain())

    assert sender.sent[0].text == "🤖 <b>System:</b> intergram connected"
    assert storage.recent_records(1)[0].notification_kind == "system"
