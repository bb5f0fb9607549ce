"""Per-item container creation.

:class:`ContainerFactory` turns each :class:`~carouselpub.core.models.CarouselItem`
into a remote carousel-item container, one at a time and in item order.
Each creation is a single remote call wrapped in the container backoff
profile.  Between consecutive items the factory sleeps a pacing delay that
grows with the item index, spreading the burst of N calls over a few seconds
instead of hitting the provider all at once.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from carouselpub.core import events
from carouselpub.core.exceptions import PublishError
from carouselpub.core.models import (
    AccountCredentials,
    CarouselItem,
    PublishAttemptState,
    RemoteContainerRef,
)
from carouselpub.core.profiles import BackoffConfig, PacingConfig
from carouselpub.graph.base import PublishingApi
from carouselpub.retry.executor import RetryExecutor, SleepFn

__all__ = ["ContainerFactory"]

logger = logging.getLogger(__name__)


class ContainerFactory:
    """Create carousel-item containers with retries and pacing.

    Args:
        api: Remote publishing API.
        executor: Shared retry executor.
        backoff: Backoff profile for one container creation.
        pacing: Inter-item delay parameters.
        sleep: Coroutine function used for pacing delays (seconds).
    """

    def __init__(
        self,
        api: PublishingApi,
        executor: RetryExecutor,
        backoff: BackoffConfig,
        pacing: PacingConfig,
        sleep: SleepFn,
    ) -> None:
        self._api = api
        self._executor = executor
        self._backoff = backoff
        self._pacing = pacing
        self._sleep = sleep

    async def create_item_container(
        self,
        account: AccountCredentials,
        item: CarouselItem,
        *,
        label: str = "create container",
    ) -> RemoteContainerRef:
        """Create one carousel-item container, retrying per the container profile.

        Raises:
            PublishError: Classified failure once retries are exhausted or a
                terminal error occurs.
        """
        return await self._executor.run(
            lambda: self._api.create_container(
                account.account_id,
                account.access_token,
                item.image_url,
                is_carousel_item=True,
                is_video=item.is_video,
            ),
            self._backoff,
            label=label,
        )

    async def create_all(
        self,
        account: AccountCredentials,
        items: Sequence[CarouselItem],
        state: PublishAttemptState,
    ) -> list[RemoteContainerRef]:
        """Create containers for *items* sequentially, recording each in *state*.

        The pacing delay after item ``i`` is ``pacing.delay_ms(i)``; nothing is
        slept after the last item.

        Returns:
            The container refs, in item order.

        Raises:
            PublishError: On the first item that fails.  Its
                :attr:`~carouselpub.core.exceptions.PublishError.item_index` is
                the 1-based index of that item; containers created before it
                remain in *state*.
        """
        total = len(items)
        refs: list[RemoteContainerRef] = []

        for index, item in enumerate(items):
            label = f"container {index + 1}/{total}"
            try:
                ref = await self.create_item_container(account, item, label=label)
            except PublishError as exc:
                exc.item_index = index + 1
                logger.error(
                    "Container creation failed for item %d/%d (%s).",
                    index + 1,
                    total,
                    item.image_url,
                )
                raise

            state.record_child(ref)
            refs.append(ref)
            logger.info(
                "Created container %s for item %d/%d.",
                ref.id,
                index + 1,
                total,
                extra={"event": events.CONTAINER_CREATED},
            )

            if index < total - 1:
                delay_ms = self._pacing.delay_ms(index)
                logger.debug("Pacing %d ms before the next item.", delay_ms)
                await self._sleep(delay_ms / 1000.0)

        return refs
