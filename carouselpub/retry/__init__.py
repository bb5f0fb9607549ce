"""Backoff policy, failure classification, and the shared retry executor."""

from carouselpub.retry.backoff import compute_delay
from carouselpub.retry.classifier import (
    classify_error,
    extract_retry_after_seconds,
    is_rate_limit,
)
from carouselpub.retry.executor import RetryExecutor, SleepFn, with_retries

__all__ = [
    "RetryExecutor",
    "SleepFn",
    "classify_error",
    "compute_delay",
    "extract_retry_after_seconds",
    "is_rate_limit",
    "with_retries",
]
