"""Carousel publishing saga.

:class:`PublishSaga` drives one publish attempt through its stages::

    VALIDATING
        │  2 <= len(items) <= 10, else CarouselValidationError (no remote call)
        ▼
    CREATING_CONTAINERS      one container per item, paced, container profile
        ▼
    ASSEMBLING_CAROUSEL      one carousel container, assembly profile
        ▼
    WAITING_FOR_PROCESSING   fixed size-scaled sleep
        ▼
    PUBLISHING               publish profile
        ▼
    RESOLVING_PERMALINK      single best-effort lookup
        ▼
    DONE

Any step may end the run in ``FAILED``.  The saga then annotates the
classified :class:`~carouselpub.core.exceptions.PublishError` with the stage
and the :class:`~carouselpub.core.models.PublishAttemptState` (the orphan
report), logs the orphaned container ids and re-raises.  Orphans are not
deleted: the provider expires unpublished containers after 24 hours.

Each run tags its log lines with a short correlation id through
:data:`~carouselpub.core.logging_config.SAGA_ID_CTX`.

Typical usage::

    async with GraphApiClient.from_settings(settings) as api:
        saga = PublishSaga(api, settings.to_saga_config())
        result = await saga.publish(settings.credentials(), items, caption="Hello")
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import uuid
from collections.abc import Callable, Sequence

from carouselpub.core import events
from carouselpub.core.exceptions import CarouselValidationError, PublishError
from carouselpub.core.logging_config import SAGA_ID_CTX
from carouselpub.core.models import (
    MAX_CAROUSEL_ITEMS,
    MIN_CAROUSEL_ITEMS,
    AccountCredentials,
    CarouselItem,
    PublishAttemptState,
    PublishResult,
    SagaStage,
)
from carouselpub.core.profiles import SagaConfig
from carouselpub.graph.base import PublishingApi
from carouselpub.retry.executor import RetryExecutor, SleepFn
from carouselpub.saga.assembler import CarouselAssembler
from carouselpub.saga.containers import ContainerFactory
from carouselpub.saga.limiter import AccountLimiter
from carouselpub.saga.publisher import PublishExecutor

__all__ = ["PublishSaga", "validate_items"]

logger = logging.getLogger(__name__)


def validate_items(items: Sequence[CarouselItem]) -> None:
    """Raise :class:`CarouselValidationError` unless the item count is publishable."""
    count = len(items)
    if count < MIN_CAROUSEL_ITEMS:
        raise CarouselValidationError(
            f"A carousel needs at least {MIN_CAROUSEL_ITEMS} items, got {count}."
        )
    if count > MAX_CAROUSEL_ITEMS:
        raise CarouselValidationError(
            f"A carousel accepts at most {MAX_CAROUSEL_ITEMS} items, got {count}."
        )


class PublishSaga:
    """Publish a carousel through the container → assemble → publish flow.

    A saga object holds no per-run state and may be reused for any number of
    runs; every :meth:`publish` call gets a fresh
    :class:`~carouselpub.core.models.PublishAttemptState`.

    Args:
        api: Remote publishing API (e.g. :class:`~carouselpub.graph.GraphApiClient`).
        config: Timing profiles.  Defaults to the built-in profiles.
        sleep: Coroutine function used for every wait (retries, pacing,
            processing).  Defaults to :func:`asyncio.sleep`.
        rng: Uniform ``[0, 1)`` source for backoff jitter.
        limiter: Optional :class:`AccountLimiter` serialising runs that
            target the same account.
    """

    def __init__(
        self,
        api: PublishingApi,
        config: SagaConfig | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        rng: Callable[[], float] = random.random,
        limiter: AccountLimiter | None = None,
    ) -> None:
        self._config = config or SagaConfig()
        self._limiter = limiter
        executor = RetryExecutor(sleep=sleep, rng=rng)
        self._containers = ContainerFactory(
            api, executor, self._config.container_backoff, self._config.pacing, sleep
        )
        self._assembler = CarouselAssembler(api, executor, self._config.assembly_backoff)
        self._publisher = PublishExecutor(
            api, executor, self._config.publish_backoff, self._config.processing_wait, sleep
        )

    @property
    def config(self) -> SagaConfig:
        return self._config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def publish(
        self,
        account: AccountCredentials,
        items: Sequence[CarouselItem],
        caption: str | None = None,
    ) -> PublishResult:
        """Run one publish attempt.

        Args:
            account: Target account and its access token.
            items: 2 to 10 carousel items, published in the given order.
            caption: Optional caption attached to the carousel.

        Returns:
            The published media id and, when resolvable, its permalink.

        Raises:
            CarouselValidationError: Item count out of range.  No remote call
                was issued.
            PublishError: A later step failed.  ``exc.stage`` names the step
                and ``exc.orphan_ids`` lists the remote containers left behind.
            asyncio.CancelledError: The enclosing task was cancelled; orphans
                are logged before it propagates.
        """
        token = SAGA_ID_CTX.set(uuid.uuid4().hex[:8])
        state = PublishAttemptState(expected_items=len(items))
        try:
            validate_items(items)
            hold = (
                self._limiter.hold(account.account_id)
                if self._limiter is not None
                else contextlib.nullcontext()
            )
            async with hold:
                return await self._run(account, items, caption, state)
        except PublishError as exc:
            failed_at = state.stage
            state.stage = SagaStage.FAILED
            exc.attach(stage=failed_at, state=state)
            logger.error(
                "Publish failed during %s (%s): %s — %s",
                failed_at,
                exc.kind,
                exc,
                exc.remediation,
                extra={"event": events.SAGA_FAILED},
            )
            self._log_orphans(state)
            raise
        except asyncio.CancelledError:
            logger.warning(
                "Publish cancelled during %s.",
                state.stage,
                extra={"event": events.SAGA_CANCELLED},
            )
            self._log_orphans(state)
            raise
        finally:
            SAGA_ID_CTX.reset(token)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(
        self,
        account: AccountCredentials,
        items: Sequence[CarouselItem],
        caption: str | None,
        state: PublishAttemptState,
    ) -> PublishResult:
        logger.info(
            "Publishing carousel of %d items to account %s.",
            len(items),
            account.account_id,
            extra={"event": events.SAGA_START},
        )

        state.stage = SagaStage.CREATING_CONTAINERS
        await self._containers.create_all(account, items, state)

        state.stage = SagaStage.ASSEMBLING_CAROUSEL
        carousel = await self._assembler.assemble(account, state.child_container_ids, caption)
        state.record_carousel(carousel)
        logger.info(
            "Assembled carousel container %s.",
            carousel.id,
            extra={"event": events.CAROUSEL_ASSEMBLED},
        )

        state.stage = SagaStage.WAITING_FOR_PROCESSING
        await self._publisher.wait_for_processing(len(items))

        state.stage = SagaStage.PUBLISHING
        media = await self._publisher.publish(account, carousel)
        state.record_published(media.id)
        logger.info(
            "Published media %s.",
            media.id,
            extra={"event": events.MEDIA_PUBLISHED},
        )

        state.stage = SagaStage.RESOLVING_PERMALINK
        permalink = media.permalink or await self._publisher.resolve_permalink(
            media.id, account.access_token
        )

        state.stage = SagaStage.DONE
        result = PublishResult(
            media_id=media.id,
            permalink=permalink,
            carousel_container_id=carousel.id,
            child_container_ids=tuple(ref.id for ref in state.child_container_ids),
        )
        logger.info(
            "Carousel published: media=%s permalink=%s",
            result.media_id,
            result.permalink or "-",
            extra={"event": events.SAGA_DONE},
        )
        return result

    @staticmethod
    def _log_orphans(state: PublishAttemptState) -> None:
        orphans = state.orphan_ids
        if not orphans:
            return
        logger.error(
            "%d container(s) left unpublished: %s. The provider expires them after 24 h.",
            len(orphans),
            ", ".join(orphans),
            extra={"event": events.SAGA_ORPHANS},
        )
