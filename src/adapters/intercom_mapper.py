"""Intercom-to-core message mapping adapter.

This keeps Intercom webhook shapes out of the core pipeline. Only
``notification_event`` payloads carrying a conversation message produce a
CanonicalMessage; everything else is skipped with ``None``.
"""

from __future__ import annotations

from datetime import datetime, timezone
import html
import logging
import re
from typing import Any, Mapping, Optional

import bleach

from core.errors import ValidationError
from core.models import AuthorKind, CanonicalMessage

LOGGER = logging.getLogger(__name__)

MAX_BODY_CHARS = 3000
TRUNCATION_MARKER = "..."

NOTIFICATION_EVENT = "notification_event"
NEW_THREAD_TOPICS = {"conversation.user.created"}

AUTHOR_KINDS = {
    "user": AuthorKind.PRIMARY_USER,
    "contact": AuthorKind.LEAD,
    "lead": AuthorKind.LEAD,
    "admin": AuthorKind.STAFF,
    "team": AuthorKind.STAFF,
    "bot": AuthorKind.SYSTEM,
}

_LINE_BREAK_TAGS = re.compile(r"<\s*br\s*/?\s*>|</\s*(p|div|li|h[1-6])\s*>", re.IGNORECASE)
_SPACES = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES = re.compile(r"\n{3,}")


def strip_markup(body: str) -> str:
    """Convert an Intercom HTML body into plain text."""

    if not body:
        return ""
    text = _LINE_BREAK_TAGS.sub("\n", body)
    # bleach escapes the text it keeps, so unescape afterwards.
    text = bleach.clean(text, tags=[], strip=True)
    text = html.unescape(text)
    text = _SPACES.sub(" ", text)
    lines = [line.strip() for line in text.split("\n")]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


def truncate_body(text: str, limit: int = MAX_BODY_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def _timestamp(*candidates: Any) -> datetime:
    for value in candidates:
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            try:
                return datetime.fromtimestamp(value, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                continue
    return datetime.now(timezone.utc)


def _latest_part(item: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    container = item.get("conversation_parts")
    if container is None:
        return None
    if not isinstance(container, Mapping):
        raise ValidationError("conversation_parts is not an object")
    listed = container.get("conversation_parts")
    if listed is None:
        return None
    if not isinstance(listed, list):
        raise ValidationError("conversation_parts.conversation_parts is not a list")
    parts = [part for part in listed if isinstance(part, Mapping)]
    if not parts:
        return None
    # max() keeps the first of equal keys, so scan in reverse to prefer the
    # last part in list order on ties.
    return max(reversed(parts), key=_part_created_at)


def _part_created_at(part: Mapping[str, Any]) -> float:
    value = part.get("created_at")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return 0


def _author_fields(author: Any) -> tuple[AuthorKind, str, Optional[str], Optional[str]]:
    if not isinstance(author, Mapping):
        raise ValidationError("message has no author")
    author_type = author.get("type")
    if not author_type:
        raise ValidationError("author has no type")
    kind = AUTHOR_KINDS.get(str(author_type))
    if kind is None:
        raise ValidationError(f"unknown author type: {author_type}")

    name = author.get("name") or f"Anonymous ({author_type})"
    contact = author.get("email") or author.get("external_id") or None
    author_id = author.get("user_id") or author.get("id")
    return kind, str(name), contact, str(author_id) if author_id is not None else None


def normalize(payload: Any) -> Optional[CanonicalMessage]:
    """Build a CanonicalMessage from an Intercom webhook payload.

    Returns None for non-actionable events. Raises ValidationError when an
    actionable event is missing required fields.
    """

    if not isinstance(payload, Mapping):
        raise ValidationError("payload is not an object")
    if payload.get("type") != NOTIFICATION_EVENT:
        return None

    topic = str(payload.get("topic") or "")
    data = payload.get("data")
    item = data.get("item") if isinstance(data, Mapping) else None
    if not isinstance(item, Mapping):
        raise ValidationError(f"event {topic!r} has no data.item")

    conversation_id = item.get("id") if item.get("type", "conversation") == "conversation" else None
    opens_thread = topic in NEW_THREAD_TOPICS

    source = item.get("source")
    if opens_thread and isinstance(source, Mapping):
        part: Optional[Mapping[str, Any]] = source
        # The first message of a conversation has no part id of its own in
        # older payloads; the conversation id identifies it uniquely.
        message_id = source.get("id") or conversation_id
    else:
        part = _latest_part(item)
        message_id = part.get("id") if part is not None else None

    if part is None:
        LOGGER.debug("Event %s carries no conversation message", topic)
        return None

    body = truncate_body(strip_markup(str(part.get("body") or "")))
    if not body:
        LOGGER.debug("Event %s has an empty message body", topic)
        return None

    if not message_id:
        raise ValidationError(f"event {topic!r} has no message id")

    author_kind, author_name, author_contact, author_id = _author_fields(part.get("author"))

    return CanonicalMessage(
        id=str(message_id),
        conversation_id=str(conversation_id) if conversation_id else None,
        author_kind=author_kind,
        author_name=author_name,
        author_contact=author_contact,
        author_id=author_id,
        body=body,
        created_at=_timestamp(part.get("created_at"), item.get("created_at"), payload.get("created_at")),
        opens_thread=opens_thread,
    )
