"""Contract of the remote publishing API consumed by the saga.

The saga only needs four logical operations of a container → assemble →
publish platform.  They are expressed as a :class:`typing.Protocol` so the
saga never depends on a concrete transport: production code passes a
:class:`~carouselpub.graph.client.GraphApiClient`, tests pass an
:class:`~unittest.mock.AsyncMock`-backed double.

Every method performs **exactly one** remote call and raises on failure;
retrying is the caller's job (see :mod:`carouselpub.retry.executor`).
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from carouselpub.core.models import PublishedMedia, RemoteContainerRef

__all__ = ["PublishingApi"]


@runtime_checkable
class PublishingApi(Protocol):
    """Remote operations used by :class:`~carouselpub.saga.PublishSaga`."""

    async def create_container(
        self,
        account_id: str,
        access_token: str,
        media_url: str,
        *,
        is_carousel_item: bool = False,
        is_video: bool = False,
        caption: str | None = None,
    ) -> RemoteContainerRef:
        """Stage one media item; returns the new container id."""
        ...

    async def create_carousel_container(
        self,
        account_id: str,
        access_token: str,
        child_ids: Sequence[str],
        caption: str | None = None,
    ) -> RemoteContainerRef:
        """Combine item containers into one carousel container."""
        ...

    async def publish(
        self,
        account_id: str,
        access_token: str,
        container_id: str,
    ) -> PublishedMedia:
        """Publish a container; returns the published media."""
        ...

    async def get_permalink(self, media_id: str, access_token: str) -> str | None:
        """Return the public URL of a published media, if the platform has one."""
        ...
