"""Failure classification for remote publishing calls.

Two concerns live here:

* **Rate-limit detection** — :func:`is_rate_limit` and
  :func:`extract_retry_after_seconds` decide whether a failure is a throttle
  and whether the platform said how long to wait.  An explicit wait always
  beats the local exponential guess.
* **Error classification** — :func:`classify_error` maps any raw failure to
  one of the closed :class:`~carouselpub.core.exceptions.PublishError`
  subclasses:

  ======================================  ===========================  =========
  Provider signal                         Classified as                Retried
  ======================================  ===========================  =========
  error code 190                          ExpiredAuthError             no
  error code 9                            PermissionDeniedError        no
  error code 4, HTTP 429, throttle text   RateLimitedError             yes
  transport error, timeout, HTTP 5xx      TransientError               yes
  anything else                           UnknownPublishError          yes
  ======================================  ===========================  =========

Codes come from :attr:`GraphApiError.code` when available, otherwise they are
parsed from the error text (``"code":190`` or ``code 190``).
"""

from __future__ import annotations

import logging
import math
import re
from typing import Final

import httpx

from carouselpub.core.exceptions import (
    ExpiredAuthError,
    GraphApiError,
    PermissionDeniedError,
    PublishError,
    RateLimitedError,
    TransientError,
    UnknownPublishError,
)

__all__ = [
    "EXPIRED_AUTH_CODE",
    "PERMISSION_DENIED_CODE",
    "RATE_LIMIT_CODE",
    "classify_error",
    "extract_retry_after_seconds",
    "is_rate_limit",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Provider error codes
# ---------------------------------------------------------------------------

EXPIRED_AUTH_CODE: Final[int] = 190
PERMISSION_DENIED_CODE: Final[int] = 9
RATE_LIMIT_CODE: Final[int] = 4

_RATE_LIMIT_RE: Final[re.Pattern[str]] = re.compile(
    r"rate[\s_-]?limit|too many|request limit|throttl|\b429\b",
    re.IGNORECASE,
)
_RETRY_AFTER_RE: Final[re.Pattern[str]] = re.compile(
    r"retry[\s_-]?after[\s:=]+(\d+)",
    re.IGNORECASE,
)
_CODE_RE: Final[re.Pattern[str]] = re.compile(
    r"\"code\"\s*:\s*(\d+)|\bcode[\s=:]+(\d+)",
    re.IGNORECASE,
)

_TRANSIENT_TYPES: Final[tuple[type[BaseException], ...]] = (
    httpx.TransportError,
    TimeoutError,
    ConnectionError,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error_code(error: BaseException) -> int | None:
    """Return the provider error code carried by *error*, if any."""
    if isinstance(error, GraphApiError) and error.code is not None:
        return error.code
    match = _CODE_RE.search(str(error))
    if match is None:
        return None
    return int(match.group(1) or match.group(2))


def _is_transient(error: BaseException) -> bool:
    if isinstance(error, _TRANSIENT_TYPES):
        return True
    return (
        isinstance(error, GraphApiError)
        and error.status_code is not None
        and error.status_code >= 500
    )


# ---------------------------------------------------------------------------
# Rate limits
# ---------------------------------------------------------------------------


def is_rate_limit(error: BaseException) -> bool:
    """Return ``True`` if *error* signals that the account is being throttled."""
    if isinstance(error, RateLimitedError):
        return True
    if isinstance(error, GraphApiError) and error.status_code == 429:
        return True
    if _error_code(error) == RATE_LIMIT_CODE:
        return True
    return _RATE_LIMIT_RE.search(str(error)) is not None


def extract_retry_after_seconds(error: BaseException) -> int | None:
    """Return the provider's explicit wait hint in whole seconds, if present.

    Looks at, in order: a classified :class:`RateLimitedError`, the
    ``retry_after`` parsed by the HTTP client from the response, and finally
    ``retry after N`` / ``retry_after: N`` in the error text.  Fractional
    hints are rounded up.  Non-positive hints count as absent.
    """
    if isinstance(error, RateLimitedError) and error.retry_after_seconds:
        return error.retry_after_seconds
    if isinstance(error, GraphApiError) and error.retry_after is not None and error.retry_after > 0:
        return math.ceil(error.retry_after)
    match = _RETRY_AFTER_RE.search(str(error))
    if match is not None:
        seconds = int(match.group(1))
        return seconds if seconds > 0 else None
    return None


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_error(error: BaseException) -> PublishError:
    """Map *error* to a classified :class:`PublishError`.

    Already-classified errors are returned unchanged, so the function is
    safe to apply more than once.
    """
    if isinstance(error, PublishError):
        return error

    message = str(error) or type(error).__name__
    code = _error_code(error)

    if code == EXPIRED_AUTH_CODE:
        return ExpiredAuthError(message)
    if code == PERMISSION_DENIED_CODE:
        return PermissionDeniedError(message)
    if is_rate_limit(error):
        return RateLimitedError(message, retry_after_seconds=extract_retry_after_seconds(error))
    if _is_transient(error):
        return TransientError(message)

    raw = error.payload if isinstance(error, GraphApiError) and error.payload is not None else message
    return UnknownPublishError(message, raw=raw)
