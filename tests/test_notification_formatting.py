from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import pytest

from adapters.notification_formatting import (
    LINK_LABEL,
    escape_markdown_v2,
    format_notification,
    format_system_message,
)
from core.models import AuthorKind, CanonicalMessage, NotificationKind


def _message(
    *,
    body: str = "Hello",
    conversation_id: Optional[str] = "123",
    contact: Optional[str] = "ada@example.com",
) -> CanonicalMessage:
    return CanonicalMessage(
        id="part-1",
        conversation_id=conversation_id,
        author_kind=AuthorKind.PRIMARY_USER,
        author_name="Ada <admin>",
        author_contact=contact,
        author_id="user-1",
        body=body,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_html_escapes_user_content_and_links_inbox() -> None:
    rendered = format_notification(
        _message(body="1 < 2 & 3"),
        NotificationKind.NEW_MESSAGE,
        mode="html",
        inbox_url_template="https://inbox.test/{conversation_id}",
    )

    assert rendered.parse_mode == "html"
    assert rendered.text.startswith("💬 <b>New message</b>")
    assert "Ada &lt;admin&gt; (ada@example.com)" in rendered.text
    assert "1 &lt; 2 &amp; 3" in rendered.text
    assert rendered.link_url == "https://inbox.test/123"
    assert rendered.link_label == LINK_LABEL


def test_markdown_v2_escapes_reserved_characters() -> None:
    rendered = format_notification(_message(body="Price: 5.00 (approx)!"), NotificationKind.NEW_THREAD, mode="markdown_v2")

    assert rendered.text.startswith("🆕 *New conversation*")
    assert "Price: 5\\.00 \\(approx\\)\\!" in rendered.text


def test_no_link_without_conversation() -> None:
    rendered = format_notification(_message(conversation_id=None), NotificationKind.NEW_MESSAGE)

    assert rendered.link_url is None
    assert rendered.link_label is None


def test_system_kind_uses_system_format() -> None:
    message = _message(body="relay restarted")
    rendered = format_notification(message, NotificationKind.SYSTEM)

    assert rendered == format_system_message("relay restarted")
    assert rendered.text == "🤖 <b>System:</b> relay restarted"


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        format_notification(_message(), NotificationKind.NEW_MESSAGE, mode="rtf")


def test_escape_markdown_v2_escapes_backslash() -> None:
    assert escape_markdown_v2("a\\b_c") == "a\\\\b\\_c"
