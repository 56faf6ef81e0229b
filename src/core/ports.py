"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage and delivery adapters so
that the core can be reused with different backends.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Protocol

from core.models import DedupRecord, RenderedMessage, UserPreferences


class DedupStorePort(Protocol):
    """Record of delivered message ids.

    Implementations raise ``StorageFailure`` when the backing store fails.
    """

    def has_delivered(self, message_id: str) -> bool:
        ...

    def mark_delivered(
        self,
        message_id: str,
        conversation_id: Optional[str],
        notification_kind: str,
        sent_at: Optional[datetime] = None,
    ) -> None:
        ...

    def sweep_expired(self, retention: timedelta) -> int:
        ...

    def recent_records(self, limit: int = 3) -> list[DedupRecord]:
        ...


class PreferencesPort(Protocol):
    """Per-source-user notification preferences."""

    def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        ...


class SenderPort(Protocol):
    """Destination send capability.

    ``send`` returns on success and raises the provider's own error on
    failure; the queue hands that error to the classifier.
    """

    async def send(self, rendered: RenderedMessage) -> None:
        ...
