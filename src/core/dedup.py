"""Retention maintenance for the dedup record (core domain)."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from core.errors import StorageFailure
from core.ports import DedupStorePort

LOGGER = logging.getLogger(__name__)


class RetentionSweeper:
    """Periodically deletes dedup records older than the retention window.

    Runs as a background task on the event loop, independent of webhook
    handling and queue draining.
    """

    def __init__(self, store: DedupStorePort, retention: timedelta, interval_seconds: float) -> None:
        self._store = store
        self._retention = retention
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None

    def run_once(self) -> int:
        """Sweep now and return the number of removed records.

        Storage failures are logged; the next interval tries again.
        """

        try:
            removed = self._store.sweep_expired(self._retention)
        except StorageFailure:
            LOGGER.exception("Dedup retention sweep failed")
            return 0
        if removed:
            LOGGER.info("Dedup sweep removed %s records older than %s", removed, self._retention)
        return removed

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.run_once()

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
