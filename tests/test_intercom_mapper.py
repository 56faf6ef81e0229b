from __future__ import annotations

from datetime import datetime, timezone

import pytest

from adapters.intercom_mapper import MAX_BODY_CHARS, normalize, strip_markup
from core.errors import ValidationError
from core.models import AuthorKind


def _author(author_type: str = "user", **extra) -> dict:
    author = {"type": author_type, "id": "author-1", "name": "Ada Lovelace", "email": "ada@example.com"}
    author.update(extra)
    return author


def _reply_event(parts: list, topic: str = "conversation.user.replied") -> dict:
    return {
        "type": "notification_event",
        "topic": topic,
        "created_at": 1704067200,
        "data": {
            "item": {
                "type": "conversation",
                "id": "conv-42",
                "conversation_parts": {"type": "conversation_part.list", "conversation_parts": parts},
            }
        },
    }


def _part(part_id: str, body: str, created_at: int = 1704067300, author: "dict | None" = None) -> dict:
    return {
        "type": "conversation_part",
        "id": part_id,
        "body": body,
        "created_at": created_at,
        "author": author if author is not None else _author(),
    }


def test_reply_uses_part_id_not_conversation_id() -> None:
    message = normalize(_reply_event([_part("part-1", "<p>Hello <b>there</b></p>")]))

    assert message is not None
    assert message.id == "part-1"
    assert message.conversation_id == "conv-42"
    assert message.body == "Hello there"
    assert message.author_kind is AuthorKind.PRIMARY_USER
    assert message.author_contact == "ada@example.com"
    assert message.author_id == "author-1"
    assert message.created_at == datetime.fromtimestamp(1704067300, tz=timezone.utc)
    assert not message.opens_thread


def test_reply_picks_most_recent_part() -> None:
    parts = [_part("old", "first", created_at=100), _part("new", "second", created_at=200)]
    message = normalize(_reply_event(parts))

    assert message is not None
    assert message.id == "new"
    assert message.body == "second"


def test_conversation_created_uses_source() -> None:
    payload = {
        "type": "notification_event",
        "topic": "conversation.user.created",
        "data": {
            "item": {
                "type": "conversation",
                "id": "conv-7",
                "created_at": 1704067200,
                "source": {"id": "src-7", "body": "Hi, I need help", "author": _author("lead", email=None)},
            }
        },
    }
    message = normalize(payload)

    assert message is not None
    assert message.id == "src-7"
    assert message.opens_thread
    assert message.author_kind is AuthorKind.LEAD
    assert message.author_contact is None


def test_non_notification_event_is_skipped() -> None:
    assert normalize({"type": "ping", "data": {}}) is None


def test_event_without_parts_is_skipped() -> None:
    assert normalize(_reply_event([])) is None


def test_event_with_empty_body_is_skipped() -> None:
    assert normalize(_reply_event([_part("part-1", "<p> </p>")])) is None


def test_missing_author_is_validation_error() -> None:
    part = _part("part-1", "hello")
    del part["author"]
    with pytest.raises(ValidationError):
        normalize(_reply_event([part]))


def test_unknown_author_type_is_validation_error() -> None:
    with pytest.raises(ValidationError):
        normalize(_reply_event([_part("part-1", "hello", author=_author("robot"))]))


def test_missing_item_is_validation_error() -> None:
    with pytest.raises(ValidationError):
        normalize({"type": "notification_event", "topic": "conversation.user.replied", "data": {}})


def test_long_body_is_truncated_with_marker() -> None:
    message = normalize(_reply_event([_part("part-1", "x" * (MAX_BODY_CHARS + 50))]))

    assert message is not None
    assert len(message.body) == MAX_BODY_CHARS + 3
    assert message.body.endswith("...")


def test_anonymous_author_name() -> None:
    message = normalize(_reply_event([_part("part-1", "hello", author=_author("admin", name=None))]))

    assert message is not None
    assert message.author_name == "Anonymous (admin)"
    assert message.author_kind is AuthorKind.STAFF


def test_strip_markup_keeps_line_breaks_and_entities() -> None:
    assert strip_markup("<p>Tom &amp; Jerry</p><p>line<br>two</p>") == "Tom & Jerry\nline\ntwo"


def test_strip_markup_handles_attributes_containing_angle_brackets() -> None:
    assert strip_markup('<p><a title="a>b" href="https://x">link</a></p>') == "link"


def test_strip_markup_keeps_literal_less_than() -> None:
    assert strip_markup("<p>1 &lt; 2 and 3 > 2</p>") == "1 < 2 and 3 > 2"


def test_parts_container_not_a_list_is_validation_error() -> None:
    payload = _reply_event([])
    payload["data"]["item"]["conversation_parts"]["conversation_parts"] = 5

    with pytest.raises(ValidationError):
        normalize(payload)


def test_parts_container_not_an_object_is_validation_error() -> None:
    payload = _reply_event([])
    payload["data"]["item"]["conversation_parts"] = "parts"

    with pytest.raises(ValidationError):
        normalize(payload)


def test_non_numeric_created_at_sorts_as_oldest() -> None:
    parts = [
        _part("text-stamp", "first", created_at="1700000000"),  # type: ignore[arg-type]
        _part("int-stamp", "second", created_at=1700000001),
    ]
    message = normalize(_reply_event(parts))

    assert message is not None
    assert message.id == "int-stamp"
