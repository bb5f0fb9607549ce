"""Unit tests for the retry layer.

Covers:
* :func:`~carouselpub.retry.backoff.compute_delay` — exponential growth,
  ceiling, jitter bounds, and monotonicity.
* :mod:`~carouselpub.retry.classifier` — rate-limit detection, wait-hint
  extraction, and the error-code → class mapping.
* :class:`~carouselpub.retry.executor.RetryExecutor` — attempt budget,
  terminal errors, wait hints, classified output and cancellation.

Every wait goes through an injected fake sleep; no test sleeps for real.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from carouselpub.core import events
from carouselpub.core.exceptions import (
    ExpiredAuthError,
    GraphApiError,
    PermissionDeniedError,
    RateLimitedError,
    TransientError,
    UnknownPublishError,
)
from carouselpub.core.profiles import CONTAINER_BACKOFF, PUBLISH_BACKOFF, BackoffConfig
from carouselpub.retry import (
    RetryExecutor,
    classify_error,
    compute_delay,
    extract_retry_after_seconds,
    is_rate_limit,
    with_retries,
)

__all__: list[str] = []

logger = logging.getLogger(__name__)

_NO_JITTER = BackoffConfig(base_delay_ms=1000, max_delay_ms=15000, max_retries=3, jitter_factor=0.0)


def _zero() -> float:
    return 0.0


def _executor(fake_sleep: Any) -> RetryExecutor:
    return RetryExecutor(sleep=fake_sleep, rng=_zero)


# ===========================================================================
# Backoff
# ===========================================================================


class TestComputeDelay:
    def test_doubles_per_attempt(self) -> None:
        assert [compute_delay(a, _NO_JITTER) for a in range(4)] == [1000, 2000, 4000, 8000]

    def test_capped_at_max(self) -> None:
        assert compute_delay(4, _NO_JITTER) == 15000
        assert compute_delay(30, _NO_JITTER) == 15000

    def test_huge_attempt_does_not_overflow(self) -> None:
        assert compute_delay(10_000, _NO_JITTER) == 15000

    def test_jitter_is_additive_and_bounded(self) -> None:
        config = PUBLISH_BACKOFF
        assert compute_delay(0, config, rng=_zero) == 2000
        assert compute_delay(0, config, rng=lambda: 0.999999) == 2299
        assert compute_delay(20, config, rng=lambda: 0.999999) <= 30000 * 1.15

    def test_result_is_floored(self) -> None:
        config = BackoffConfig(base_delay_ms=1000, max_delay_ms=1000, jitter_factor=0.1)
        assert compute_delay(0, config, rng=lambda: 0.55) == 1055

    def test_non_decreasing_for_fixed_rng(self) -> None:
        delays = [compute_delay(a, CONTAINER_BACKOFF, rng=lambda: 0.5) for a in range(12)]
        assert delays == sorted(delays)

    def test_negative_attempt_rejected(self) -> None:
        with pytest.raises(ValueError, match="attempt"):
            compute_delay(-1, _NO_JITTER)


# ===========================================================================
# Rate-limit classifier
# ===========================================================================


class TestRateLimitDetection:
    @pytest.mark.parametrize(
        "error",
        [
            GraphApiError("slow down", status_code=429),
            GraphApiError("(#4) Application request limit reached", status_code=400, code=4),
            RuntimeError("Rate limit exceeded"),
            RuntimeError("rate_limit hit"),
            RuntimeError("Too many calls to this endpoint"),
            RuntimeError("upstream returned 429"),
            RateLimitedError("x"),
        ],
    )
    def test_detected(self, error: BaseException) -> None:
        assert is_rate_limit(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            GraphApiError("Invalid parameter", status_code=400, code=100),
            RuntimeError("connection reset"),
            httpx.ReadTimeout("timed out"),
        ],
    )
    def test_not_detected(self, error: BaseException) -> None:
        assert is_rate_limit(error) is False

    def test_hint_from_graph_error(self) -> None:
        assert extract_retry_after_seconds(GraphApiError("x", status_code=429, retry_after=30)) == 30

    def test_fractional_hint_rounded_up(self) -> None:
        assert extract_retry_after_seconds(GraphApiError("x", retry_after=2.2)) == 3

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Too many requests, retry after: 45", 45),
            ("rate limited; retry_after=12", 12),
            ("Retry-After 7", 7),
            ("rate limited", None),
            ("retry after 0", None),
        ],
    )
    def test_hint_from_text(self, text: str, expected: int | None) -> None:
        assert extract_retry_after_seconds(RuntimeError(text)) == expected

    def test_hint_from_classified_error(self) -> None:
        assert extract_retry_after_seconds(RateLimitedError("x", retry_after_seconds=9)) == 9


# ===========================================================================
# Error classifier
# ===========================================================================


class TestClassifyError:
    def test_code_190_is_expired_auth(self) -> None:
        result = classify_error(GraphApiError("Invalid OAuth access token.", code=190))
        assert isinstance(result, ExpiredAuthError)
        assert result.retryable is False
        assert "reconnect" in result.remediation.lower()

    def test_code_9_is_permission_denied(self) -> None:
        result = classify_error(GraphApiError("Not allowed", code=9))
        assert isinstance(result, PermissionDeniedError)
        assert result.retryable is False

    def test_code_parsed_from_json_text(self) -> None:
        result = classify_error(RuntimeError('{"error":{"message":"bad token","code":190}}'))
        assert isinstance(result, ExpiredAuthError)

    def test_code_parsed_from_plain_text(self) -> None:
        assert isinstance(classify_error(RuntimeError("failed with code 9")), PermissionDeniedError)

    def test_code_4_is_rate_limited_with_hint(self) -> None:
        result = classify_error(GraphApiError("limit", code=4, retry_after=60))
        assert isinstance(result, RateLimitedError)
        assert result.retry_after_seconds == 60
        assert result.retryable is True

    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectError("refused"),
            httpx.ReadTimeout("slow"),
            asyncio.TimeoutError(),
            GraphApiError("Service unavailable", status_code=503),
        ],
    )
    def test_transient(self, error: BaseException) -> None:
        result = classify_error(error)
        assert isinstance(result, TransientError)
        assert result.retryable is True

    def test_unknown_keeps_raw_payload(self) -> None:
        payload = {"message": "Media ID is not available", "code": 9007}
        result = classify_error(
            GraphApiError("Media ID is not available", status_code=400, code=9007, payload=payload)
        )
        assert isinstance(result, UnknownPublishError)
        assert result.raw == payload
        assert result.retryable is True

    def test_classified_error_returned_unchanged(self) -> None:
        exc = PermissionDeniedError("x")
        assert classify_error(exc) is exc


# ===========================================================================
# Retry executor
# ===========================================================================


class TestRetryExecutor:
    async def test_success_first_attempt_never_sleeps(self, fake_sleep: Any) -> None:
        op = AsyncMock(return_value="ok")
        assert await _executor(fake_sleep).run(op, _NO_JITTER) == "ok"
        assert op.await_count == 1
        assert fake_sleep.calls == []

    async def test_retries_transient_with_exponential_delays(self, fake_sleep: Any) -> None:
        op = AsyncMock(side_effect=[httpx.ConnectError("a"), httpx.ConnectError("b"), "ok"])
        assert await _executor(fake_sleep).run(op, _NO_JITTER) == "ok"
        assert op.await_count == 3
        assert fake_sleep.calls == [1.0, 2.0]

    async def test_budget_is_max_retries_plus_one(self, fake_sleep: Any) -> None:
        op = AsyncMock(side_effect=httpx.ConnectError("down"))
        with pytest.raises(TransientError) as exc_info:
            await _executor(fake_sleep).run(op, _NO_JITTER)
        assert op.await_count == 4
        assert fake_sleep.calls == [1.0, 2.0, 4.0]
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    async def test_zero_retries_means_single_attempt(self, fake_sleep: Any) -> None:
        op = AsyncMock(side_effect=httpx.ConnectError("down"))
        with pytest.raises(TransientError):
            await _executor(fake_sleep).run(op, BackoffConfig(max_retries=0))
        assert op.await_count == 1

    @pytest.mark.parametrize(
        ("code", "expected"),
        [(190, ExpiredAuthError), (9, PermissionDeniedError)],
    )
    async def test_terminal_codes_not_retried(
        self, fake_sleep: Any, code: int, expected: type[Exception]
    ) -> None:
        op = AsyncMock(side_effect=GraphApiError("nope", status_code=400, code=code))
        with pytest.raises(expected) as exc_info:
            await _executor(fake_sleep).run(op, PUBLISH_BACKOFF)
        assert op.await_count == 1
        assert fake_sleep.calls == []
        assert isinstance(exc_info.value.__cause__, GraphApiError)

    async def test_wait_hint_overrides_backoff_without_advancing(self, fake_sleep: Any) -> None:
        op = AsyncMock(
            side_effect=[
                GraphApiError("limit", status_code=429, code=4, retry_after=7),
                httpx.ReadTimeout("slow"),
                "ok",
            ]
        )
        assert await _executor(fake_sleep).run(op, _NO_JITTER) == "ok"
        # The hint is slept verbatim and the exponential schedule starts at base.
        assert fake_sleep.calls == [7.0, 1.0]

    async def test_wait_hint_consumes_an_attempt(self, fake_sleep: Any) -> None:
        op = AsyncMock(side_effect=GraphApiError("limit", status_code=429, retry_after=5))
        with pytest.raises(RateLimitedError) as exc_info:
            await _executor(fake_sleep).run(op, BackoffConfig(max_retries=2))
        assert op.await_count == 3
        assert fake_sleep.calls == [5.0, 5.0]
        assert exc_info.value.retry_after_seconds == 5

    async def test_rate_limit_without_hint_uses_backoff(self, fake_sleep: Any) -> None:
        op = AsyncMock(side_effect=[RuntimeError("Too many calls"), "ok"])
        assert await _executor(fake_sleep).run(op, _NO_JITTER) == "ok"
        assert fake_sleep.calls == [1.0]

    async def test_unknown_errors_are_retried(self, fake_sleep: Any) -> None:
        op = AsyncMock(side_effect=[GraphApiError("weird", status_code=400, code=100), "ok"])
        assert await _executor(fake_sleep).run(op, _NO_JITTER) == "ok"
        assert op.await_count == 2

    async def test_cancellation_propagates_unclassified(self, fake_sleep: Any) -> None:
        op = AsyncMock(side_effect=asyncio.CancelledError())
        with pytest.raises(asyncio.CancelledError):
            await _executor(fake_sleep).run(op, _NO_JITTER)
        assert op.await_count == 1
        assert fake_sleep.calls == []

    async def test_retry_and_give_up_are_logged(
        self, fake_sleep: Any, caplog: pytest.LogCaptureFixture
    ) -> None:
        op = AsyncMock(side_effect=httpx.ConnectError("down"))
        with caplog.at_level(logging.DEBUG), pytest.raises(TransientError):
            await _executor(fake_sleep).run(op, BackoffConfig(max_retries=1), label="publish")
        emitted = [getattr(r, "event", None) for r in caplog.records]
        assert events.STEP_RETRY in emitted
        assert events.STEP_GAVE_UP in emitted

    async def test_with_retries_shortcut(self, fake_sleep: Any) -> None:
        op = AsyncMock(side_effect=[httpx.ConnectError("a"), 42])
        result = await with_retries(op, _NO_JITTER, sleep=fake_sleep, rng=_zero)
        assert result == 42
        assert fake_sleep.calls == [1.0]
