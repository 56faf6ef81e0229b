from __future__ import annotations

from adapters.telegram_bot_notifier import BotApiError
from core.classifier import FormatRejected, RateLimited, TransientFailure, classify_error


class FloodWaitError(Exception):
    """Shaped like Telethon's FloodWaitError."""

    code = 420

    def __init__(self, seconds: int) -> None:
        super().__init__(f"A wait of {seconds} seconds is required (caused by SendMessageRequest)")
        self.seconds = seconds
        self.message = f"FLOOD_WAIT_{seconds}"


class EntityBoundsInvalidError(Exception):
    code = 400
    message = "ENTITY_BOUNDS_INVALID"


def test_bot_api_429_with_retry_after() -> None:
    error = BotApiError(429, "Too Many Requests: retry after 12", retry_after=12)
    assert classify_error(error) == RateLimited(seconds=12)


def test_retry_after_parsed_from_text() -> None:
    error = RuntimeError("ETELEGRAM: 429 Too Many Requests: retry after 7")
    assert classify_error(error) == RateLimited(seconds=7)


def test_telethon_flood_wait() -> None:
    assert classify_error(FloodWaitError(30)) == RateLimited(seconds=30)


def test_rate_limit_without_duration_is_transient() -> None:
    error = BotApiError(429, "Too Many Requests")
    assert isinstance(classify_error(error), TransientFailure)


def test_parse_entities_is_format_rejection() -> None:
    error = BotApiError(400, "Bad Request: can't parse entities: Character '.' is reserved")
    assert isinstance(classify_error(error), FormatRejected)


def test_telethon_entity_error_is_format_rejection() -> None:
    assert isinstance(classify_error(EntityBoundsInvalidError("bad bounds")), FormatRejected)


def test_other_errors_are_transient() -> None:
    assert isinstance(classify_error(BotApiError(502, "Bad Gateway")), TransientFailure)
    assert isinstance(classify_error(ConnectionResetError()), TransientFailure)
