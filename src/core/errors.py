"""Error types raised across the core boundary."""

from __future__ import annotations


class ValidationError(ValueError):
    """An inbound payload is malformed and cannot be normalized."""


class StorageFailure(RuntimeError):
    """The dedup store could not complete a read or write."""
