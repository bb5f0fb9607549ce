"""Timing profiles for the carousel publishing saga.

Defines :class:`BackoffConfig` (one retry profile per remote step) and the
pacing / processing-wait parameters, bundled together in :class:`SagaConfig`.
Profiles are loaded once (from settings or defaults) and passed to the saga.
They are **not** mutated at runtime.

The three steps get distinct profiles:

* **container** — called once per carousel item, so moderate retries and a
  moderate ceiling keep a large carousel from stalling on one item.
* **assembly** — a single call; a higher base delay is affordable.
* **publish** — the most generous budget and the most jitter.  A publish
  failure throws away every container already created, and publish is the
  step most likely to hit the account's rate limit.

Typical usage::

    from carouselpub.core.profiles import SagaConfig, BackoffConfig

    config = SagaConfig(
        publish_backoff=BackoffConfig(
            base_delay_ms=2000, max_delay_ms=60000, max_retries=8, jitter_factor=0.2
        ),
    )
"""

from __future__ import annotations

import logging
from typing import Final

from pydantic import BaseModel, Field, model_validator

__all__ = [
    "BackoffConfig",
    "PacingConfig",
    "ProcessingWaitConfig",
    "SagaConfig",
    "CONTAINER_BACKOFF",
    "ASSEMBLY_BACKOFF",
    "PUBLISH_BACKOFF",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Backoff
# ---------------------------------------------------------------------------


class BackoffConfig(BaseModel):
    """Exponential backoff profile for one remote step.

    Attributes:
        base_delay_ms: Delay before the first retry, before jitter.
        max_delay_ms: Ceiling of the exponential part of the delay.
        max_retries: Retries after the initial attempt (total attempts is
            ``max_retries + 1``).
        jitter_factor: Fraction of the exponential delay added as random,
            non-negative jitter.  ``0`` disables jitter.
    """

    model_config = {"frozen": True}

    base_delay_ms: int = Field(1000, ge=0, description="Base delay in milliseconds.")
    max_delay_ms: int = Field(30000, ge=0, description="Exponential delay ceiling in milliseconds.")
    max_retries: int = Field(3, ge=0, description="Retries after the first attempt.")
    jitter_factor: float = Field(0.1, ge=0.0, le=1.0, description="Additive jitter fraction.")

    @model_validator(mode="after")
    def _check_ceiling(self) -> BackoffConfig:
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) < base_delay_ms ({self.base_delay_ms})"
            )
        return self

    @property
    def max_attempts(self) -> int:
        """Total attempts including the first one."""
        return self.max_retries + 1


#: Per-item container creation.
CONTAINER_BACKOFF: Final[BackoffConfig] = BackoffConfig(
    base_delay_ms=1000, max_delay_ms=15000, max_retries=3, jitter_factor=0.1
)

#: Carousel container assembly.
ASSEMBLY_BACKOFF: Final[BackoffConfig] = BackoffConfig(
    base_delay_ms=2000, max_delay_ms=20000, max_retries=3, jitter_factor=0.1
)

#: Publish call.
PUBLISH_BACKOFF: Final[BackoffConfig] = BackoffConfig(
    base_delay_ms=2000, max_delay_ms=30000, max_retries=5, jitter_factor=0.15
)


# ---------------------------------------------------------------------------
# Pacing and processing wait
# ---------------------------------------------------------------------------


class PacingConfig(BaseModel):
    """Delay inserted between consecutive container creations.

    The delay after item ``i`` (zero-based) is ``base_ms + i * increment_ms``;
    there is no delay after the last item.
    """

    model_config = {"frozen": True}

    base_ms: int = Field(500, ge=0)
    increment_ms: int = Field(100, ge=0)

    def delay_ms(self, index: int) -> int:
        """Return the pacing delay that follows item *index* (zero-based)."""
        return self.base_ms + index * self.increment_ms


class ProcessingWaitConfig(BaseModel):
    """Mandatory wait between assembly and publish, scaled by carousel size."""

    model_config = {"frozen": True}

    base_ms: int = Field(3000, ge=0)
    per_item_ms: int = Field(500, ge=0)
    cap_ms: int = Field(10000, ge=0)

    def delay_ms(self, item_count: int) -> int:
        """Return ``min(base + item_count * per_item, cap)``."""
        return min(self.base_ms + item_count * self.per_item_ms, self.cap_ms)


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


class SagaConfig(BaseModel):
    """Complete timing configuration of one :class:`~carouselpub.saga.PublishSaga`."""

    model_config = {"frozen": True}

    container_backoff: BackoffConfig = CONTAINER_BACKOFF
    assembly_backoff: BackoffConfig = ASSEMBLY_BACKOFF
    publish_backoff: BackoffConfig = PUBLISH_BACKOFF
    pacing: PacingConfig = Field(default_factory=PacingConfig)
    processing_wait: ProcessingWaitConfig = Field(default_factory=ProcessingWaitConfig)
