"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class QueueConfig:
    """Delivery queue pacing and retry settings."""

    max_retries: int = 3
    inter_message_delay: float = 1.0
    tick_interval: float = 1.0


@dataclass(frozen=True)
class DedupConfig:
    """Retention settings for delivered-message records."""

    retention_days: int = 7
    sweep_interval_hours: float = 24.0

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)

    @property
    def sweep_interval_seconds(self) -> float:
        return self.sweep_interval_hours * 3600
