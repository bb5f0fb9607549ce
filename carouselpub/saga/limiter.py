"""Per-account concurrency limiter for publish sagas.

Two sagas publishing to the same account at the same time compete for the
account's rate-limit budget and make the provider's throttling far more
likely.  :class:`AccountLimiter` keeps one :class:`asyncio.Semaphore` per
account id so that sagas for the same account queue up while sagas for
different accounts proceed in parallel.

The registry is a plain in-process object.  It is safe for single-loop
``asyncio`` usage but is **not** thread-safe, and it is not a module-level
singleton: whoever builds the sagas owns one limiter and injects it.

Typical usage::

    limiter = AccountLimiter()
    saga_a = PublishSaga(api, limiter=limiter)
    saga_b = PublishSaga(api, limiter=limiter)   # same account → serialised
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Final

__all__ = ["AccountLimiter"]

logger = logging.getLogger(__name__)

#: Concurrent sagas allowed per account by default.
_DEFAULT_WIDTH: Final[int] = 1


class AccountLimiter:
    """Registry of per-account semaphores.

    Args:
        width: Maximum number of sagas allowed to run concurrently for one
            account.  Must be at least 1.
    """

    def __init__(self, width: int = _DEFAULT_WIDTH) -> None:
        if width < 1:
            raise ValueError(f"width must be >= 1, got {width}")
        self._width = width
        self._semaphores: dict[str, asyncio.Semaphore] = {}

    @property
    def width(self) -> int:
        return self._width

    def _semaphore(self, account_id: str) -> asyncio.Semaphore:
        sem = self._semaphores.get(account_id)
        if sem is None:
            sem = asyncio.Semaphore(self._width)
            self._semaphores[account_id] = sem
        return sem

    def in_use(self, account_id: str) -> bool:
        """Return ``True`` if no slot is currently free for *account_id*."""
        sem = self._semaphores.get(account_id)
        return sem is not None and sem.locked()

    @asynccontextmanager
    async def hold(self, account_id: str) -> AsyncIterator[None]:
        """Hold one slot of *account_id* for the duration of the block."""
        sem = self._semaphore(account_id)
        if sem.locked():
            logger.info("Account %s busy — waiting for the running saga to finish.", account_id)
        async with sem:
            yield
