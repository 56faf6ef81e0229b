"""Ordered, rate-limited, retrying delivery queue (core domain).

Entry lifecycle:

    pending -> sending -> delivered
                       -> rate-limited -> pending  (head paused, retry_count kept)
                       -> dropped-format           (non-retryable rejection)
                       -> pending / dropped-retry-exhausted  (transient failure)

The queue is strictly FIFO and only ever looks at its head: Telegram rate
limits apply to the whole destination, so a paused head pauses everything
behind it. At most one drain runs at a time.
"""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime, timezone
import logging
import time
import uuid
from typing import Awaitable, Callable, Deque, Optional

from core.classifier import FormatRejected, RateLimited, TransientFailure, classify_error
from core.config import QueueConfig
from core.errors import StorageFailure
from core.models import (
    AuthorKind,
    CanonicalMessage,
    DeliveryState,
    NotificationKind,
    QueueEntry,
    RenderedMessage,
)
from core.notifications import allows_notification, classify_notification
from core.ports import DedupStorePort, PreferencesPort, SenderPort

LOGGER = logging.getLogger(__name__)

PREVIEW_CHARS = 100

Renderer = Callable[[CanonicalMessage, NotificationKind], RenderedMessage]


def _preview(text: str) -> str:
    if len(text) <= PREVIEW_CHARS:
        return text
    return text[:PREVIEW_CHARS] + "..."


class DeliveryQueue:
    """Single-flight sequential drain of pending messages to the destination."""

    def __init__(
        self,
        store: DedupStorePort,
        sender: SenderPort,
        renderer: Renderer,
        config: QueueConfig,
        preferences: Optional[PreferencesPort] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._sender = sender
        self._render = renderer
        self._config = config
        self._preferences = preferences
        self._clock = clock
        self._sleep = sleep

        self._entries: Deque[QueueEntry] = deque()
        self._pending_ids: set[str] = set()
        self._draining = False
        self._running = False
        self._tick_task: Optional[asyncio.Task] = None
        self._wake_handle: Optional[asyncio.TimerHandle] = None
        self._drain_tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def draining(self) -> bool:
        return self._draining

    def pending(self) -> list[QueueEntry]:
        """Snapshot of the queue, head first."""

        return list(self._entries)

    # -- enqueue ---------------------------------------------------------

    def enqueue(self, message: CanonicalMessage) -> bool:
        """Append a message at the tail unless it was already delivered.

        Returns True when the message was queued. ``StorageFailure`` from the
        dedup check propagates so the caller can ask the source to retry.
        """

        if message.id in self._pending_ids:
            LOGGER.debug("Message %s is already queued", message.id)
            return False
        if self._store.has_delivered(message.id):
            LOGGER.debug("Message %s was already delivered, skipping", message.id)
            return False

        classification = classify_notification(message)
        if not self._notification_allowed(message, classification):
            LOGGER.info(
                "Notification %s suppressed by preferences of user %s",
                classification.value,
                message.author_id,
            )
            return False

        self._entries.append(QueueEntry(message=message, classification=classification))
        self._pending_ids.add(message.id)
        LOGGER.info(
            "Message queued: id=%s kind=%s queue_length=%s",
            message.id,
            classification.value,
            len(self._entries),
        )
        self._trigger_drain()
        return True

    def enqueue_system(self, text: str) -> bool:
        """Queue an operator-facing system notice."""

        message = CanonicalMessage(
            id=f"system:{uuid.uuid4().hex}",
            conversation_id=None,
            author_kind=AuthorKind.SYSTEM,
            author_name="System",
            author_contact=None,
            author_id=None,
            body=text,
            created_at=datetime.now(timezone.utc),
        )
        return self.enqueue(message)

    def _notification_allowed(self, message: CanonicalMessage, kind: NotificationKind) -> bool:
        if self._preferences is None or not message.author_id:
            return True
        try:
            preferences = self._preferences.get_preferences(message.author_id)
        except StorageFailure:
            # Preferences are advisory; default to notifying.
            LOGGER.warning("Could not read preferences for user %s, notifying", message.author_id)
            return True
        return allows_notification(preferences, kind)

    # -- lifecycle -------------------------------------------------------

    def start(self) -> None:
        """Start the periodic drain tick on the running event loop."""

        if self._running:
            return
        self._running = True
        self._tick_task = asyncio.get_running_loop().create_task(self._tick_loop())
        self._trigger_drain()

    async def stop(self) -> None:
        """Stop draining; pending entries are abandoned in memory."""

        self._running = False
        if self._wake_handle is not None:
            self._wake_handle.cancel()
            self._wake_handle = None
        tasks = list(self._drain_tasks)
        if self._tick_task is not None:
            tasks.append(self._tick_task)
            self._tick_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._entries:
            LOGGER.info("Queue stopped with %s undelivered entries", len(self._entries))

    async def _tick_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._config.tick_interval)
            self._trigger_drain()

    def _trigger_drain(self) -> None:
        if not self._running or self._draining or self._drain_tasks or not self._entries:
            return
        task = asyncio.get_running_loop().create_task(self.drain())
        self._drain_tasks.add(task)
        task.add_done_callback(self._drain_tasks.discard)

    def _schedule_wake(self, delay: float) -> None:
        if not self._running:
            return
        if self._wake_handle is not None:
            self._wake_handle.cancel()
        self._wake_handle = asyncio.get_running_loop().call_later(delay, self._trigger_drain)

    # -- drain -----------------------------------------------------------

    async def drain(self) -> None:
        """Send from the head until the queue is empty or the head is paused."""

        if self._draining:
            return
        self._draining = True
        try:
            while self._entries:
                entry = self._entries[0]
                now = self._clock()
                if entry.retry_not_before is not None and entry.retry_not_before > now:
                    self._schedule_wake(entry.retry_not_before - now)
                    return

                if not await self._attempt(entry):
                    return
                if self._entries:
                    await self._sleep(self._config.inter_message_delay)
        finally:
            self._draining = False
            task = asyncio.current_task()
            if task is not None:
                self._drain_tasks.discard(task)

    def _pop_head(self, entry: QueueEntry, state: DeliveryState) -> None:
        self._entries.popleft()
        self._pending_ids.discard(entry.message.id)
        entry.state = state

    async def _attempt(self, entry: QueueEntry) -> bool:
        """Try to deliver the head entry.

        Returns False when draining must stop (the head is rate limited).
        """

        message = entry.message
        entry.state = DeliveryState.SENDING

        try:
            already_delivered = self._store.has_delivered(message.id)
        except StorageFailure as exc:
            self._on_transient(entry, TransientFailure(reason=f"dedup check failed: {exc}"))
            return True
        if already_delivered:
            LOGGER.info("Message %s was delivered meanwhile, dropping from queue", message.id)
            self._pop_head(entry, DeliveryState.DELIVERED)
            return True

        try:
            rendered = self._render(message, entry.classification)
        except Exception as exc:
            LOGGER.exception("Failed to render message %s", message.id)
            self._on_format_rejected(entry, FormatRejected(reason=str(exc)), _preview(message.body))
            return True

        LOGGER.info(
            "Sending message %s (kind=%s, attempt=%s)",
            message.id,
            entry.classification.value,
            entry.retry_count + 1,
        )
        try:
            await self._sender.send(rendered)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            decision = classify_error(exc)
            if isinstance(decision, RateLimited):
                self._on_rate_limited(entry, decision)
                return False
            if isinstance(decision, FormatRejected):
                self._on_format_rejected(entry, decision, _preview(rendered.text))
                return True
            self._on_transient(entry, decision)
            return True

        try:
            self._store.mark_delivered(message.id, message.conversation_id, entry.classification.value)
        except StorageFailure as exc:
            # The send went out but is unconfirmed; the retry may duplicate it.
            LOGGER.error(
                "Message %s was sent but could not be recorded, it will be retried "
                "and may be delivered twice: %s",
                message.id,
                exc,
            )
            self._on_transient(entry, TransientFailure(reason=f"dedup write failed: {exc}"))
            return True

        self._pop_head(entry, DeliveryState.DELIVERED)
        LOGGER.info(
            "Message %s delivered (kind=%s, queue_length=%s)",
            message.id,
            entry.classification.value,
            len(self._entries),
        )
        return True

    def _on_rate_limited(self, entry: QueueEntry, decision: RateLimited) -> None:
        entry.state = DeliveryState.RATE_LIMITED
        entry.retry_not_before = self._clock() + decision.seconds
        LOGGER.info(
            "Rate limited by destination: wait=%ss queue_length=%s kind=%s",
            decision.seconds,
            len(self._entries),
            entry.classification.value,
        )
        self._schedule_wake(decision.seconds)

    def _on_format_rejected(self, entry: QueueEntry, decision: FormatRejected, preview: str) -> None:
        LOGGER.error(
            "Message %s rejected by destination, dropping: %s (kind=%s, preview=%r)",
            entry.message.id,
            decision.reason,
            entry.classification.value,
            preview,
        )
        self._pop_head(entry, DeliveryState.DROPPED_FORMAT)

    def _on_transient(self, entry: QueueEntry, decision: TransientFailure) -> None:
        entry.retry_count += 1
        if entry.retry_count >= self._config.max_retries:
            LOGGER.error(
                "Failed to send message %s after %s retries, dropping: %s (kind=%s)",
                entry.message.id,
                entry.retry_count,
                decision.reason,
                entry.classification.value,
            )
            self._pop_head(entry, DeliveryState.DROPPED_RETRY_EXHAUSTED)
            return
        LOGGER.warning(
            "Retrying message %s: %s (retry_count=%s, kind=%s)",
            entry.message.id,
            decision.reason,
            entry.retry_count,
            entry.classification.value,
        )
        entry.state = DeliveryState.PENDING
