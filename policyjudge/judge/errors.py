"""
Error categorization for evaluation provider calls.

Typed exceptions are matched first (our own JudgeProviderError,
asyncio/OS timeouts and connection errors, litellm's exception
classes). Anything else falls back to HTTP status and message
heuristics.
"""

import asyncio
import json
import logging
import re
import socket
from typing import Optional

from policyjudge.judge.models import ErrorType

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_MS = 60000.0

_RETRY_AFTER_RE = re.compile(r"retry.?after[:\s]+(\d+(?:\.\d+)?)", re.IGNORECASE)


class JudgeProviderError(Exception):
    """Failure raised by an EvaluationProvider.

    Providers raise this when they already know the category of the
    failure. ``force_open`` asks the client to trip its circuit breaker
    immediately (used by mock failure injection).
    """

    def __init__(
        self,
        message: str,
        error_type: Optional[ErrorType] = None,
        status_code: Optional[int] = None,
        retry_after_ms: Optional[float] = None,
        force_open: bool = False,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.status_code = status_code
        self.retry_after_ms = retry_after_ms
        self.force_open = force_open


def _status_of(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _litellm_error_type(error: BaseException) -> Optional[ErrorType]:
    """Map litellm's exception hierarchy onto ErrorType."""
    import litellm

    if isinstance(error, litellm.Timeout):
        return ErrorType.TIMEOUT
    if isinstance(error, litellm.RateLimitError):
        return ErrorType.RATE_LIMIT
    if isinstance(error, (litellm.AuthenticationError, litellm.PermissionDeniedError)):
        return ErrorType.AUTH_ERROR
    if isinstance(error, litellm.APIConnectionError):
        return ErrorType.NETWORK_ERROR
    if isinstance(error, (litellm.ServiceUnavailableError, litellm.InternalServerError)):
        return ErrorType.SERVER_ERROR
    return None


def categorize_error(error: BaseException) -> ErrorType:
    """Categorize a provider failure for retry and circuit decisions."""
    if isinstance(error, JudgeProviderError) and error.error_type is not None:
        return error.error_type

    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionResetError)):
        return ErrorType.TIMEOUT
    if isinstance(error, (ConnectionRefusedError, socket.gaierror)):
        return ErrorType.NETWORK_ERROR
    if isinstance(error, json.JSONDecodeError):
        return ErrorType.PARSE_ERROR

    typed = _litellm_error_type(error)
    if typed is not None:
        return typed

    message = str(error).lower()
    status = _status_of(error)
    code = str(getattr(error, "code", "") or "").upper()

    if (
        "timeout" in message
        or "timed out" in message
        or "etimedout" in message
        or "econnreset" in message
        or code in ("ETIMEDOUT", "ECONNRESET")
    ):
        return ErrorType.TIMEOUT

    if (
        status == 429
        or "rate limit" in message
        or "too many requests" in message
        or "quota" in message
    ):
        return ErrorType.RATE_LIMIT

    if status is not None and 500 <= status < 600:
        return ErrorType.SERVER_ERROR

    if (
        status in (401, 403)
        or "unauthorized" in message
        or "invalid api key" in message
    ):
        return ErrorType.AUTH_ERROR

    if (
        "enotfound" in message
        or "econnrefused" in message
        or "connection refused" in message
        or "name or service not known" in message
        or "network" in message
        or code in ("ENOTFOUND", "ECONNREFUSED")
    ):
        return ErrorType.NETWORK_ERROR

    if "json" in message or "parse" in message:
        return ErrorType.PARSE_ERROR

    return ErrorType.UNKNOWN


def parse_retry_after_ms(error: BaseException) -> float:
    """Extract a retry-after duration (ms) from a rate-limit failure.

    Checks, in order: an explicit ``retry_after_ms`` attribute, a
    ``Retry-After`` response header, and "retry after N" (seconds) in
    the message. Defaults to 60 seconds.
    """
    explicit = getattr(error, "retry_after_ms", None)
    if isinstance(explicit, (int, float)) and explicit > 0:
        return float(explicit)

    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if headers:
        header = headers.get("retry-after") or headers.get("Retry-After")
        try:
            if header is not None:
                return float(header) * 1000
        except (TypeError, ValueError):
            logger.debug(f"Ignoring non-numeric Retry-After header: {header!r}")

    match = _RETRY_AFTER_RE.search(str(error))
    if match:
        return float(match.group(1)) * 1000

    return DEFAULT_RETRY_AFTER_MS
