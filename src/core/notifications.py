"""Notification classification and per-user suppression (core domain)."""

from __future__ import annotations

from typing import Optional

from core.models import AuthorKind, CanonicalMessage, NotificationKind, UserPreferences


def classify_notification(message: CanonicalMessage) -> NotificationKind:
    """Return the notification category for a message.

    Leads only ever write when starting a conversation with the team, so
    their messages are announced as new threads even on reply events.
    """

    if message.author_kind is AuthorKind.SYSTEM:
        return NotificationKind.SYSTEM
    if message.opens_thread or message.author_kind is AuthorKind.LEAD:
        return NotificationKind.NEW_THREAD
    return NotificationKind.NEW_MESSAGE


def allows_notification(preferences: Optional[UserPreferences], kind: NotificationKind) -> bool:
    """Check a notification class against stored preferences.

    Missing preferences mean "notify"; system notices are never suppressed.
    """

    if preferences is None:
        return True
    if kind is NotificationKind.NEW_MESSAGE:
        return preferences.show_new_messages
    if kind is NotificationKind.NEW_THREAD:
        return preferences.show_new_conversations
    return True
