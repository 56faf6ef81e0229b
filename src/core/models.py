"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class AuthorKind(str, Enum):
    """Who wrote the message, as far as notifications are concerned."""

    PRIMARY_USER = "primary-user"
    LEAD = "lead"
    STAFF = "staff"
    SYSTEM = "system"


class NotificationKind(str, Enum):
    """Notification category shown to the destination group."""

    NEW_THREAD = "new-thread"
    NEW_MESSAGE = "new-message"
    SYSTEM = "system"


class DeliveryState(str, Enum):
    PENDING = "pending"
    SENDING = "sending"
    DELIVERED = "delivered"
    RATE_LIMITED = "rate-limited"
    DROPPED_FORMAT = "dropped-format"
    DROPPED_RETRY_EXHAUSTED = "dropped-retry-exhausted"


@dataclass(frozen=True)
class CanonicalMessage:
    """Provider-agnostic representation of one chat event."""

    id: str
    conversation_id: Optional[str]
    author_kind: AuthorKind
    author_name: str
    author_contact: Optional[str]
    author_id: Optional[str]
    body: str
    created_at: datetime
    opens_thread: bool = False


@dataclass
class QueueEntry:
    """A pending delivery with its retry/backoff state.

    Entries live only in memory and are mutated in place by the queue.
    """

    message: CanonicalMessage
    classification: NotificationKind
    retry_count: int = 0
    # Monotonic clock value; the entry is not eligible before this time.
    retry_not_before: Optional[float] = None
    state: DeliveryState = DeliveryState.PENDING


@dataclass(frozen=True)
class DedupRecord:
    """Persisted proof that a message id has already been delivered."""

    message_id: str
    sent_at: datetime
    conversation_id: Optional[str]
    notification_kind: str


@dataclass(frozen=True)
class UserPreferences:
    user_id: str
    show_new_messages: bool = True
    show_new_conversations: bool = True


@dataclass(frozen=True)
class RenderedMessage:
    """Destination-ready text plus optional link metadata."""

    text: str
    parse_mode: str
    link_url: Optional[str] = None
    link_label: Optional[str] = None
