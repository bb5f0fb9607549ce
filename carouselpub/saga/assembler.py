"""Carousel container assembly."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from carouselpub.core.models import AccountCredentials, RemoteContainerRef
from carouselpub.core.profiles import BackoffConfig
from carouselpub.graph.base import PublishingApi
from carouselpub.retry.executor import RetryExecutor

__all__ = ["CarouselAssembler"]

logger = logging.getLogger(__name__)


class CarouselAssembler:
    """Combine item containers into one carousel container.

    One remote call under the assembly backoff profile.  The caller records
    the returned ref on the attempt state so that it shows up in the orphan
    report if publishing fails later.
    """

    def __init__(self, api: PublishingApi, executor: RetryExecutor, backoff: BackoffConfig) -> None:
        self._api = api
        self._executor = executor
        self._backoff = backoff

    async def assemble(
        self,
        account: AccountCredentials,
        child_ids: Sequence[RemoteContainerRef],
        caption: str | None = None,
    ) -> RemoteContainerRef:
        ids = [ref.id for ref in child_ids]
        logger.debug("Assembling carousel from %d containers.", len(ids))
        return await self._executor.run(
            lambda: self._api.create_carousel_container(
                account.account_id,
                account.access_token,
                ids,
                caption,
            ),
            self._backoff,
            label="assemble carousel",
        )
