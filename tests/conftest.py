"""Shared pytest fixtures and configuration for the carouselpub test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across unit and integration tests.
"""

from __future__ import annotations

import logging
import os

import pytest
from pydantic_settings import SettingsConfigDict

from carouselpub.core import configure_logging
from carouselpub.core.settings import Settings

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test.

    ``force=True`` applies the configuration even when pytest's own
    ``log_cli`` handler is already present.
    """
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove all carouselpub-related env vars for the duration of a test.

    Also disables pydantic-settings ``.env`` loading so credentials in a local
    ``.env`` file do not leak into Settings isolation tests.
    """
    prefixes = (
        "INSTAGRAM_",
        "GRAPH_API_",
        "HTTP_CONNECT_",
        "HTTP_READ_",
        "HTTP_WRITE_",
        "CONTAINER_BACKOFF",
        "ASSEMBLY_BACKOFF",
        "PUBLISH_BACKOFF",
        "PACING_",
        "PROCESSING_WAIT_",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if key.upper().startswith(prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            env_nested_delimiter="__",
            extra="ignore",
        ),
    )


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------


class FakeSleep:
    """Async stand-in for :func:`asyncio.sleep` that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


@pytest.fixture()
def fake_sleep() -> FakeSleep:
    return FakeSleep()


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to the running test."""
    return logging.getLogger("tests")
