"""carouselpub exception taxonomy.

Every custom exception inherits from :class:`CarouselPubError`.  Exceptions
are organised by layer so callers can catch at the right granularity:

    Layer hierarchy
    ---------------
    CarouselPubError
    ├── ConfigError
    ├── GraphApiError
    ├── SagaStateError
    └── PublishError
        ├── CarouselValidationError
        ├── TransientError
        ├── RateLimitedError
        ├── ExpiredAuthError
        ├── PermissionDeniedError
        └── UnknownPublishError

:class:`GraphApiError` is the *raw* provider failure raised by the HTTP
client.  :class:`PublishError` subclasses are the *classified* failures the
retry executor and the saga hand to callers; each one carries a
human-readable :attr:`~PublishError.remediation` hint and, once the saga has
seen it, the orphan report of the attempt.

Usage:

    from carouselpub.core.exceptions import ExpiredAuthError

    try:
        result = await saga.publish(account, items, caption)
    except ExpiredAuthError as exc:
        notify_user(exc.remediation)
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from carouselpub.core.models import PublishAttemptState, SagaStage

__all__ = [
    "CarouselPubError",
    "ConfigError",
    "GraphApiError",
    "SagaStateError",
    # Classified publish errors
    "ErrorKind",
    "PublishError",
    "CarouselValidationError",
    "TransientError",
    "RateLimitedError",
    "ExpiredAuthError",
    "PermissionDeniedError",
    "UnknownPublishError",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class CarouselPubError(Exception):
    """Root exception for all carouselpub errors."""


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(CarouselPubError):
    """Raised when the application configuration is invalid or incomplete.

    Examples:
        - The account id or access token is not configured.
        - A backoff profile has ``max_delay_ms < base_delay_ms``.
    """


# ---------------------------------------------------------------------------
# Transport layer
# ---------------------------------------------------------------------------


class GraphApiError(CarouselPubError):
    """Raised by the Graph API client when the platform reports a failure.

    Args:
        message: Provider error message (or a synthetic one for non-JSON
            responses).
        status_code: HTTP status code of the response.
        code: Provider error code (``error.code``), if present.
        subcode: Provider error sub-code (``error.error_subcode``), if present.
        retry_after: Explicit wait hint in seconds, if the response carried one.
        payload: Decoded ``error`` object (or raw text) for diagnostics.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: int | None = None,
        subcode: int | None = None,
        retry_after: float | None = None,
        payload: Any = None,
    ) -> None:
        self.status_code = status_code
        self.code = code
        self.subcode = subcode
        self.retry_after = retry_after
        self.payload = payload
        parts = []
        if status_code is not None:
            parts.append(f"HTTP {status_code}")
        if code is not None:
            parts.append(f"code {code}")
        detail = f" ({', '.join(parts)})" if parts else ""
        super().__init__(f"Graph API error{detail}: {message}")


# ---------------------------------------------------------------------------
# Saga bookkeeping
# ---------------------------------------------------------------------------


class SagaStateError(CarouselPubError):
    """Raised when a publish attempt state would break its ordering invariants.

    Signals a programming error in the orchestrator, never a remote failure.
    """


# ---------------------------------------------------------------------------
# Classified publish errors
# ---------------------------------------------------------------------------


class ErrorKind(StrEnum):
    """Closed set of actionable failure kinds."""

    VALIDATION = "validation"
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    EXPIRED_AUTH = "expired_auth"
    PERMISSION_DENIED = "permission_denied"
    UNKNOWN = "unknown"


class PublishError(CarouselPubError):
    """Base class for classified publish failures.

    Subclasses fix :attr:`kind`, :attr:`retryable` and a default
    :attr:`remediation`.  The saga calls :meth:`attach` before re-raising so
    that callers can read where the run stopped and which remote resources
    it left behind.

    Attributes:
        stage: Saga stage in which the failure surfaced (``None`` outside a saga).
        state: The attempt state at the time of failure, i.e. the orphan report.
        item_index: 1-based index of the carousel item whose container
            creation failed, when applicable.
    """

    kind: ClassVar[ErrorKind]
    retryable: ClassVar[bool] = False
    default_remediation: ClassVar[str] = "Publishing failed. Try again later."

    def __init__(self, message: str, *, remediation: str | None = None) -> None:
        self.remediation = remediation or self.default_remediation
        self.stage: SagaStage | None = None
        self.state: PublishAttemptState | None = None
        self.item_index: int | None = None
        super().__init__(message)

    def attach(self, *, stage: SagaStage, state: PublishAttemptState) -> None:
        """Record the saga stage and orphan report on this error."""
        self.stage = stage
        self.state = state

    @property
    def orphan_ids(self) -> list[str]:
        """Remote ids created before the failure (empty outside a saga)."""
        if self.state is None:
            return []
        return self.state.orphan_ids


class CarouselValidationError(PublishError):
    """Input rejected before any remote call was issued."""

    kind = ErrorKind.VALIDATION
    default_remediation = "Carousels need between 2 and 10 items with public media URLs."


class TransientError(PublishError):
    """Network failure, timeout, or 5xx that outlived its retry budget."""

    kind = ErrorKind.TRANSIENT
    retryable = True
    default_remediation = "The platform is temporarily unreachable. Try again in a few minutes."


class RateLimitedError(PublishError):
    """The platform throttled the account.

    Args:
        message: Human-readable error description.
        retry_after_seconds: Provider-supplied wait hint, if any.
    """

    kind = ErrorKind.RATE_LIMITED
    retryable = True
    default_remediation = "Too many API calls. Please try again in a few minutes."

    def __init__(
        self,
        message: str,
        *,
        retry_after_seconds: int | None = None,
        remediation: str | None = None,
    ) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message, remediation=remediation)


class ExpiredAuthError(PublishError):
    """The access token is expired or revoked (provider code 190)."""

    kind = ErrorKind.EXPIRED_AUTH
    default_remediation = "Access token expired. Please reconnect the account."


class PermissionDeniedError(PublishError):
    """The account lacks publishing permission (provider code 9)."""

    kind = ErrorKind.PERMISSION_DENIED
    default_remediation = "Permission denied. Please check the account's publishing permissions."


class UnknownPublishError(PublishError):
    """Unrecognised provider failure, surfaced verbatim.

    Args:
        message: Human-readable error description.
        raw: The provider payload (or error text) for diagnosis.
    """

    kind = ErrorKind.UNKNOWN
    retryable = True

    def __init__(self, message: str, *, raw: Any = None, remediation: str | None = None) -> None:
        self.raw = raw
        super().__init__(message, remediation=remediation or f"Publishing failed: {message}")
