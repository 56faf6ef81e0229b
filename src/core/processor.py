"""Core event processing.

This module is integration-agnostic. The provider-specific normalizer is
injected, and the result is passed explicitly to the delivery queue.
"""

from __future__ import annotations

from enum import Enum
import logging
from typing import Any, Callable, Optional

from core.delivery_queue import DeliveryQueue
from core.errors import ValidationError
from core.models import CanonicalMessage

LOGGER = logging.getLogger(__name__)

Normalizer = Callable[[Any], Optional[CanonicalMessage]]


class ProcessResult(str, Enum):
    QUEUED = "queued"
    IGNORED = "ignored"
    SKIPPED = "skipped"
    INVALID = "invalid"


class EventProcessor:
    """Normalizes one inbound payload and forwards it to the queue."""

    def __init__(self, normalizer: Normalizer, queue: DeliveryQueue) -> None:
        self._normalize = normalizer
        self._queue = queue

    def handle(self, payload: Any) -> ProcessResult:
        """Process one decoded provider payload.

        Malformed payloads are logged and dropped; they never raise. Storage
        failures during the dedup check do raise, so the transport can let
        the provider retry the webhook.
        """

        try:
            message = self._normalize(payload)
        except ValidationError as exc:
            LOGGER.error("Dropping malformed event: %s", exc)
            return ProcessResult.INVALID

        if message is None:
            return ProcessResult.SKIPPED

        if self._queue.enqueue(message):
            return ProcessResult.QUEUED
        return ProcessResult.IGNORED
