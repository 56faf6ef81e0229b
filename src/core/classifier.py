"""Destination error classification (core domain).

Errors come from different Telegram clients (Bot API over HTTPS, MTProto via
Telethon). Classification is duck-typed on attributes and message text so
the core never imports a client library.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Optional, Union

RATE_LIMIT_CODES = {420, 429}

_RATE_LIMIT_TEXT = re.compile(r"too many requests|flood_wait|a wait of", re.IGNORECASE)
_RETRY_AFTER_PATTERNS = (
    re.compile(r"retry after (\d+)", re.IGNORECASE),
    re.compile(r"FLOOD_WAIT_(\d+)"),
    re.compile(r"wait of (\d+) seconds", re.IGNORECASE),
)
_FORMAT_TEXT = re.compile(
    r"can't parse entities"
    r"|entity_bounds_invalid"
    r"|entities_too_long"
    r"|message_empty"
    r"|message_too_long"
    r"|message is too long",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RateLimited:
    """Destination backpressure; the whole queue pauses for ``seconds``."""

    seconds: int


@dataclass(frozen=True)
class FormatRejected:
    """The destination cannot render the payload; retrying will not help."""

    reason: str


@dataclass(frozen=True)
class TransientFailure:
    reason: str


SendDecision = Union[RateLimited, FormatRejected, TransientFailure]


def _error_text(error: BaseException) -> str:
    parts = [str(error)]
    for attr in ("message", "description"):
        value = getattr(error, attr, None)
        if isinstance(value, str) and value not in parts:
            parts.append(value)
    return " | ".join(part for part in parts if part) or type(error).__name__


def _error_code(error: BaseException) -> Optional[int]:
    for attr in ("error_code", "code", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _retry_after_seconds(error: BaseException, text: str) -> Optional[int]:
    for attr in ("retry_after", "seconds"):
        value = getattr(error, attr, None)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            return int(value)
    for pattern in _RETRY_AFTER_PATTERNS:
        found = pattern.search(text)
        if found and int(found.group(1)) > 0:
            return int(found.group(1))
    return None


def is_rate_limit_signal(error: BaseException, text: str) -> bool:
    if _error_code(error) in RATE_LIMIT_CODES:
        return True
    return bool(_RATE_LIMIT_TEXT.search(text))


def classify_error(error: BaseException) -> SendDecision:
    """Map a destination send error onto a queue decision.

    - Rate limit with a parsable positive duration -> RateLimited.
      Without a duration it degrades to TransientFailure so retries stay
      bounded instead of waiting forever.
    - Rendering/entity rejections -> FormatRejected.
    - Anything else -> TransientFailure.
    """

    text = _error_text(error)

    if is_rate_limit_signal(error, text):
        seconds = _retry_after_seconds(error, text)
        if seconds is not None:
            return RateLimited(seconds=seconds)
        return TransientFailure(reason=text)

    if _FORMAT_TEXT.search(text):
        return FormatRejected(reason=text)

    return TransientFailure(reason=text)
