"""carouselpub core domain models.

Input models (:class:`CarouselItem`, :class:`AccountCredentials`) are frozen
pydantic models validated at construction.  :class:`PublishAttemptState` is
the one mutable object in the system: the saga creates a fresh instance per
run, advances it step by step, and hands it to callers as the orphan report
when a run fails.

Typical usage::

    from carouselpub.core.models import AccountCredentials, CarouselItem

    account = AccountCredentials(account_id="17841400000000000", access_token="EAAG...")
    items = [
        CarouselItem(image_url="https://cdn.example.com/a.jpg"),
        CarouselItem(image_url="https://cdn.example.com/b.mp4", is_video=True),
    ]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from carouselpub.core.exceptions import SagaStateError

__all__ = [
    "MIN_CAROUSEL_ITEMS",
    "MAX_CAROUSEL_ITEMS",
    "AccountCredentials",
    "CarouselItem",
    "ContainerStatus",
    "PublishAttemptState",
    "PublishResult",
    "PublishedMedia",
    "RemoteContainerRef",
    "SagaStage",
]

logger = logging.getLogger(__name__)

#: Smallest carousel the platform accepts.
MIN_CAROUSEL_ITEMS: Final[int] = 2

#: Largest carousel the platform accepts.
MAX_CAROUSEL_ITEMS: Final[int] = 10


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class CarouselItem(BaseModel):
    """One image or video of a carousel.

    Attributes:
        image_url: Publicly reachable ``http(s)`` URL of the media file.  The
            platform downloads it server-side, so it must be absolute.
        is_video: ``True`` when the URL points to a video.
    """

    model_config = {"frozen": True}

    image_url: str = Field(..., min_length=1, description="Public media URL.")
    is_video: bool = Field(False, description="Whether the media is a video.")

    @field_validator("image_url", mode="before")
    @classmethod
    def _absolute_http_url(cls, v: object) -> object:
        """Require an absolute http/https URL."""
        if isinstance(v, str):
            v = v.strip()
            parsed = urlparse(v)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValueError(f"image_url must be an absolute http(s) URL, got {v!r}")
        return v


class AccountCredentials(BaseModel):
    """Target account and the bearer token the auth provider issued for it.

    The token is excluded from ``repr`` so credentials never end up in logs.
    """

    model_config = {"frozen": True}

    account_id: str = Field(..., min_length=1)
    access_token: str = Field(..., min_length=1, repr=False)


# ---------------------------------------------------------------------------
# Remote references
# ---------------------------------------------------------------------------


class RemoteContainerRef(BaseModel):
    """Opaque id of a provider-side media container."""

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)

    def __str__(self) -> str:
        return self.id


class PublishedMedia(BaseModel):
    """A published post as returned by the publish call."""

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    permalink: str | None = None


class ContainerStatus(BaseModel):
    """Processing status of a container as reported by the platform.

    ``status_code`` is one of ``IN_PROGRESS``, ``FINISHED``, ``ERROR``,
    ``EXPIRED`` or ``PUBLISHED``; ``status`` is free-form detail text.
    """

    model_config = {"frozen": True}

    id: str
    status_code: str = ""
    status: str = ""

    @property
    def is_ready(self) -> bool:
        return self.status_code.upper() == "FINISHED"


# ---------------------------------------------------------------------------
# Saga state
# ---------------------------------------------------------------------------


class SagaStage(StrEnum):
    """Stages of one publish attempt, in execution order."""

    VALIDATING = "validating"
    CREATING_CONTAINERS = "creating_containers"
    ASSEMBLING_CAROUSEL = "assembling_carousel"
    WAITING_FOR_PROCESSING = "waiting_for_processing"
    PUBLISHING = "publishing"
    RESOLVING_PERMALINK = "resolving_permalink"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PublishAttemptState:
    """Progress of a single publish attempt; the orphan report on failure.

    Mutate only through :meth:`record_child`, :meth:`record_carousel` and
    :meth:`record_published`, which enforce the ordering invariants:

    * the carousel id may be recorded only once every item has a container;
    * the published media id may be recorded only once the carousel id is set.

    Attributes:
        expected_items: Number of carousel items in this attempt.
        child_container_ids: Item containers created so far, in item order.
        carousel_container_id: Assembled carousel container, once created.
        published_media_id: Id of the published post, once published.
        stage: Current :class:`SagaStage`.
    """

    expected_items: int
    child_container_ids: list[RemoteContainerRef] = field(default_factory=list)
    carousel_container_id: RemoteContainerRef | None = None
    published_media_id: str | None = None
    stage: SagaStage = SagaStage.VALIDATING

    def record_child(self, ref: RemoteContainerRef) -> None:
        if self.carousel_container_id is not None:
            raise SagaStateError("cannot add item containers after assembly")
        if len(self.child_container_ids) >= self.expected_items:
            raise SagaStateError(
                f"already holds {self.expected_items} item containers"
            )
        self.child_container_ids.append(ref)

    def record_carousel(self, ref: RemoteContainerRef) -> None:
        if len(self.child_container_ids) != self.expected_items:
            raise SagaStateError(
                f"carousel recorded with {len(self.child_container_ids)} of "
                f"{self.expected_items} item containers"
            )
        self.carousel_container_id = ref

    def record_published(self, media_id: str) -> None:
        if self.carousel_container_id is None:
            raise SagaStateError("media published without a carousel container")
        self.published_media_id = media_id

    @property
    def orphan_ids(self) -> list[str]:
        """Remote ids left unpublished: item containers, then the carousel."""
        ids = [ref.id for ref in self.child_container_ids]
        if self.carousel_container_id is not None:
            ids.append(self.carousel_container_id.id)
        return ids


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PublishResult:
    """Outcome of a successful saga run.

    Attributes:
        media_id: Id of the published post.
        permalink: Public URL of the post, or ``None`` when it could not be
            resolved (the post is published either way).
        carousel_container_id: The container that was published.
        child_container_ids: Item containers, in item order.
    """

    media_id: str
    permalink: str | None
    carousel_container_id: str
    child_container_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "media_id": self.media_id,
            "permalink": self.permalink,
            "carousel_container_id": self.carousel_container_id,
            "child_container_ids": list(self.child_container_ids),
        }
