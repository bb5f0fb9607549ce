"""The single retry primitive shared by every remote step of the saga.

:class:`RetryExecutor` runs an async operation under :mod:`tenacity`:

* **Budget** — ``config.max_retries + 1`` attempts in total.
* **Terminal errors** — expired auth, permission denied and validation
  failures stop immediately without consuming further attempts.
* **Provider wait hints** — a rate limit carrying an explicit wait sleeps
  exactly that long.  The attempt still counts against the budget, but the
  exponential schedule does not advance.
* **Exponential backoff** — every other retryable failure sleeps
  :func:`~carouselpub.retry.backoff.compute_delay` for the current exponent,
  which then advances by one.
* **Classified output** — whatever finally escapes is a
  :class:`~carouselpub.core.exceptions.PublishError`, chained to the raw
  provider failure.  Task cancellation is never retried or classified.

Sleep and randomness are injected so tests run without real delays::

    delays: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    executor = RetryExecutor(sleep=fake_sleep, rng=lambda: 0.0)
    ref = await executor.run(lambda: api.create_container(...), CONTAINER_BACKOFF,
                             label="container 1/5")
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from carouselpub.core import events
from carouselpub.core.profiles import BackoffConfig
from carouselpub.retry.backoff import compute_delay
from carouselpub.retry.classifier import (
    classify_error,
    extract_retry_after_seconds,
    is_rate_limit,
)

__all__ = ["RetryExecutor", "SleepFn", "with_retries"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Signature of an injectable sleep function (seconds).
SleepFn = Callable[[float], Awaitable[None]]


def _is_retryable(exc: BaseException) -> bool:
    # CancelledError is a BaseException and must always propagate untouched.
    return isinstance(exc, Exception) and classify_error(exc).retryable


class _StepWait:
    """Stateful tenacity wait strategy for one :meth:`RetryExecutor.run` call.

    Keeps its own exponent instead of deriving it from the attempt number so
    that provider-dictated waits do not grow the exponential schedule.
    """

    def __init__(self, config: BackoffConfig, rng: Callable[[], float]) -> None:
        self._config = config
        self._rng = rng
        self._exponent = 0

    def __call__(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if exc is not None and is_rate_limit(exc):
            hint = extract_retry_after_seconds(exc)
            if hint is not None:
                logger.debug("Honouring provider wait hint of %d s", hint)
                return float(hint)

        delay_ms = compute_delay(self._exponent, self._config, rng=self._rng)
        self._exponent += 1
        return delay_ms / 1000.0


class RetryExecutor:
    """Run remote operations with classified, budgeted retries.

    One executor can be shared by every step; the backoff profile is passed
    per call.

    Args:
        sleep: Coroutine function used for every wait.  Defaults to
            :func:`asyncio.sleep`.
        rng: Uniform ``[0, 1)`` source for jitter.  Defaults to
            :func:`random.random`.
    """

    def __init__(
        self,
        *,
        sleep: SleepFn = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._sleep = sleep
        self._rng = rng

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        config: BackoffConfig,
        *,
        label: str = "remote call",
    ) -> T:
        """Call *operation* until it succeeds, fails terminally, or runs out of budget.

        Args:
            operation: Zero-argument coroutine function performing one
                remote call.  It is invoked afresh on every attempt.
            config: Backoff profile of this step.
            label: Short description used in log lines.

        Returns:
            Whatever *operation* returns on its first successful attempt.

        Raises:
            PublishError: The classified failure of the last attempt.
            asyncio.CancelledError: If the enclosing task is cancelled.
        """
        max_attempts = config.max_attempts

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            wait = rs.next_action.sleep if rs.next_action else 0.0
            kind = classify_error(exc).kind if isinstance(exc, Exception) else "?"
            logger.warning(
                "%s — attempt %d/%d failed (%s: %s). Retrying in %.2f s…",
                label,
                rs.attempt_number,
                max_attempts,
                kind,
                exc,
                wait,
                extra={"event": events.STEP_RETRY},
            )

        try:
            async for attempt in AsyncRetrying(
                sleep=self._sleep,
                wait=_StepWait(config, self._rng),
                stop=stop_after_attempt(max_attempts),
                retry=retry_if_exception(_is_retryable),
                reraise=True,
                before_sleep=_before_sleep,
            ):
                with attempt:
                    return await operation()
        except Exception as exc:
            classified = classify_error(exc)
            logger.error(
                "%s — giving up (%s): %s",
                label,
                classified.kind,
                exc,
                extra={"event": events.STEP_GAVE_UP},
            )
            if classified is exc:
                raise
            raise classified from exc

        raise AssertionError("tenacity exited without a result or exception")  # pragma: no cover


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    config: BackoffConfig,
    *,
    label: str = "remote call",
    sleep: SleepFn = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """Functional shortcut for ``RetryExecutor(sleep=..., rng=...).run(...)``."""
    return await RetryExecutor(sleep=sleep, rng=rng).run(operation, config, label=label)
