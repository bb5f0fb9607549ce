"""Exponential backoff with additive jitter.

The delay for zero-based *attempt* is::

    exponential = min(base_delay_ms * 2 ** attempt, max_delay_ms)
    delay       = floor(exponential + exponential * jitter_factor * rng())

Jitter is non-negative, so the result always lies in
``[exponential, exponential * (1 + jitter_factor)]``.  With a fixed ``rng`` the
delay is non-decreasing in ``attempt`` and plateaus once the exponential part
reaches ``max_delay_ms``.
"""

from __future__ import annotations

import math
import random
from collections.abc import Callable

from carouselpub.core.profiles import BackoffConfig

__all__ = ["compute_delay"]


def compute_delay(
    attempt: int,
    config: BackoffConfig,
    *,
    rng: Callable[[], float] = random.random,
) -> int:
    """Return the backoff delay in milliseconds for *attempt*.

    Args:
        attempt: Zero-based retry number.
        config: Backoff profile of the step being retried.
        rng: Source of uniform values in ``[0, 1)``.  Tests pass a constant.

    Raises:
        ValueError: If *attempt* is negative.
    """
    if attempt < 0:
        raise ValueError(f"attempt must be ≥ 0, got {attempt!r}.")
    # Clamp the exponent so huge attempt numbers cannot overflow the float.
    exponential = min(config.base_delay_ms * 2.0 ** min(attempt, 64), config.max_delay_ms)
    jitter = exponential * config.jitter_factor * rng()
    return math.floor(exponential + jitter)
