"""Shared notification formatting helpers.

Keeping formatting here prevents drift between sender adapters and keeps
messages consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
import re
from typing import Optional

from core.models import CanonicalMessage, NotificationKind, RenderedMessage

DEFAULT_INBOX_URL_TEMPLATE = "https://app.intercom.com/a/inbox/_/inbox/conversation/{conversation_id}"
LINK_LABEL = "View in Intercom"

ICONS = {
    NotificationKind.NEW_THREAD: "🆕",
    NotificationKind.NEW_MESSAGE: "💬",
    NotificationKind.SYSTEM: "🤖",
}
TITLES = {
    NotificationKind.NEW_THREAD: "New conversation",
    NotificationKind.NEW_MESSAGE: "New message",
    NotificationKind.SYSTEM: "System",
}

PARSE_MODES = ("html", "markdown_v2")

_MARKDOWN_V2_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")


def escape_markdown_v2(value: str) -> str:
    """Escape every character Telegram's MarkdownV2 treats as markup."""

    return _MARKDOWN_V2_SPECIAL.sub(r"\\\1", value)


def _author_label(message: CanonicalMessage) -> str:
    if message.author_contact:
        return f"{message.author_name} ({message.author_contact})"
    return message.author_name


def inbox_url(message: CanonicalMessage, template: str) -> Optional[str]:
    if not message.conversation_id:
        return None
    return template.format(conversation_id=message.conversation_id)


def _format_html(message: CanonicalMessage, kind: NotificationKind) -> str:
    header = f"{ICONS[kind]} <b>{html.escape(TITLES[kind])}</b>"
    return "\n".join(
        [
            header,
            f"<b>From:</b> {html.escape(_author_label(message))}",
            "",
            html.escape(message.body),
        ]
    )


def _format_markdown_v2(message: CanonicalMessage, kind: NotificationKind) -> str:
    header = f"{ICONS[kind]} *{escape_markdown_v2(TITLES[kind])}*"
    return "\n".join(
        [
            header,
            f"*From:* {escape_markdown_v2(_author_label(message))}",
            "",
            escape_markdown_v2(message.body),
        ]
    )


def format_notification(
    message: CanonicalMessage,
    kind: NotificationKind,
    mode: str = "html",
    inbox_url_template: str = DEFAULT_INBOX_URL_TEMPLATE,
) -> RenderedMessage:
    """Return the notification rendered for the requested parse mode."""

    if kind is NotificationKind.SYSTEM:
        return format_system_message(message.body, mode)
    if mode == "html":
        text = _format_html(message, kind)
    elif mode == "markdown_v2":
        text = _format_markdown_v2(message, kind)
    else:
        raise ValueError(f"Unsupported notification format: {mode}")

    link_url = inbox_url(message, inbox_url_template)
    return RenderedMessage(
        text=text,
        parse_mode=mode,
        link_url=link_url,
        link_label=LINK_LABEL if link_url else None,
    )


def format_system_message(text: str, mode: str = "html") -> RenderedMessage:
    """Render a bare system notice, e.g. the startup announcement."""

    icon = ICONS[NotificationKind.SYSTEM]
    if mode == "html":
        body = f"{icon} <b>System:</b> {html.escape(text)}"
    elif mode == "markdown_v2":
        body = f"{icon} *System:* {escape_markdown_v2(text)}"
    else:
        raise ValueError(f"Unsupported notification format: {mode}")
    return RenderedMessage(text=body, parse_mode=mode)
