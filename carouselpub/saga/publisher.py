"""Processing wait, publish call, and best-effort permalink lookup.

The provider processes a freshly assembled carousel asynchronously; publishing
too early fails with a "media not ready" error.  :class:`PublishExecutor`
therefore sleeps a fixed, size-scaled delay before publishing.  The wait is
unconditional and is *not* a retry: it is always slept exactly once.

After a successful publish the permalink is looked up exactly once.  The post
is already live at that point, so a failed lookup must never turn a
successful run into a failed one.
"""

from __future__ import annotations

import logging

from carouselpub.core import events
from carouselpub.core.models import AccountCredentials, PublishedMedia, RemoteContainerRef
from carouselpub.core.profiles import BackoffConfig, ProcessingWaitConfig
from carouselpub.graph.base import PublishingApi
from carouselpub.retry.executor import RetryExecutor, SleepFn

__all__ = ["PublishExecutor"]

logger = logging.getLogger(__name__)


class PublishExecutor:
    """Final stage of the saga.

    Args:
        api: Remote publishing API.
        executor: Shared retry executor.
        backoff: Backoff profile for the publish call.
        processing_wait: Parameters of the pre-publish wait.
        sleep: Coroutine function used for the processing wait (seconds).
    """

    def __init__(
        self,
        api: PublishingApi,
        executor: RetryExecutor,
        backoff: BackoffConfig,
        processing_wait: ProcessingWaitConfig,
        sleep: SleepFn,
    ) -> None:
        self._api = api
        self._executor = executor
        self._backoff = backoff
        self._processing_wait = processing_wait
        self._sleep = sleep

    def processing_delay_ms(self, item_count: int) -> int:
        """Return the pre-publish wait for a carousel of *item_count* items."""
        return self._processing_wait.delay_ms(item_count)

    async def wait_for_processing(self, item_count: int) -> None:
        delay_ms = self.processing_delay_ms(item_count)
        logger.info(
            "Waiting %d ms for the provider to process %d items.",
            delay_ms,
            item_count,
            extra={"event": events.PROCESSING_WAIT},
        )
        await self._sleep(delay_ms / 1000.0)

    async def publish(
        self,
        account: AccountCredentials,
        container: RemoteContainerRef,
    ) -> PublishedMedia:
        """Publish *container* under the publish backoff profile.

        Raises:
            PublishError: Classified failure once retries are exhausted or a
                terminal error occurs.
        """
        return await self._executor.run(
            lambda: self._api.publish(account.account_id, account.access_token, container.id),
            self._backoff,
            label="publish carousel",
        )

    async def resolve_permalink(self, media_id: str, access_token: str) -> str | None:
        """Look up the permalink of *media_id* once; ``None`` on any failure."""
        try:
            permalink = await self._api.get_permalink(media_id, access_token)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Could not resolve permalink for media %s: %s",
                media_id,
                exc,
                extra={"event": events.PERMALINK_UNRESOLVED},
            )
            return None

        if not permalink:
            logger.warning(
                "Provider returned no permalink for media %s.",
                media_id,
                extra={"event": events.PERMALINK_UNRESOLVED},
            )
            return None
        return permalink
