from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from loguru import logger

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    FETCH = "fetch_error"
    PARSE = "parse_error"


class ScrapeError(Exception):
    """Base class for failures surfaced by the scrape service."""

    kind: ErrorKind = ErrorKind.FETCH
    default_status = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code or self.default_status


class ScrapeValidationError(ScrapeError):
    """Missing or malformed URL in an extraction request. Never retried."""

    kind = ErrorKind.VALIDATION
    default_status = 400


class FetchError(ScrapeError):
    """The target URL could not be retrieved."""

    kind = ErrorKind.FETCH
    default_status = 502


class ParseError(ScrapeError):
    """The fetched payload could not be parsed as HTML."""

    kind = ErrorKind.PARSE
    default_status = 500


def safe_execute(default: T):
    """Decorator to catch exceptions and return a default value."""
    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return fn(*args, **kwargs)
            except Exception as exc:  # noqa: BLE001
                name = getattr(fn, "__name__", repr(fn))
                logger.error("safe_execute caught error in {}: {}", name, exc)
                return default
        return wrapper
    return decorator
