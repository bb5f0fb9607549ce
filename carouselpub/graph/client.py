"""Instagram Graph API client for content publishing.

Provides :class:`GraphApiClient`, a thin async wrapper around the Graph API
content-publishing endpoints.  It handles:

* A keep-alive :class:`httpx.AsyncClient` with an explicit timeout budget.
* Bearer-token authentication via the ``Authorization`` header, so tokens
  never appear in request URLs or access logs.
* Structured error mapping: every platform failure becomes a
  :class:`~carouselpub.core.exceptions.GraphApiError` carrying the HTTP
  status, the Graph ``code`` / ``error_subcode`` and any explicit wait hint
  (``Retry-After`` or ``X-Business-Use-Case-Usage``).

This module owns *transport* concerns only.  It performs exactly one HTTP
request per call and never retries: retry policy and failure classification
live in :mod:`carouselpub.retry`, sequencing in :mod:`carouselpub.saga`.
Network-level :class:`httpx.TransportError` propagates unchanged.

Typical usage::

    async with GraphApiClient(base_url="https://graph.facebook.com/v18.0") as api:
        ref = await api.create_container(account_id, token, "https://cdn/x.jpg",
                                         is_carousel_item=True)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any, Final

import httpx

from carouselpub.core.exceptions import GraphApiError
from carouselpub.core.models import ContainerStatus, PublishedMedia, RemoteContainerRef
from carouselpub.core.settings import Settings

__all__ = ["GraphApiClient"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_DEFAULT_BASE_URL: Final[str] = "https://graph.facebook.com/v18.0"

_DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0

#: Container creation makes the platform fetch the media; allow it time.
_DEFAULT_READ_TIMEOUT: Final[float] = 30.0

_DEFAULT_WRITE_TIMEOUT: Final[float] = 30.0

#: Longest error text kept in exception messages.
_MAX_DETAIL_CHARS: Final[int] = 240


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class GraphApiClient:
    """Async Graph API client implementing :class:`~carouselpub.graph.PublishingApi`.

    Manages a single :class:`httpx.AsyncClient` for the object lifetime.  Use
    as an ``async with`` context manager (preferred), or call :meth:`close`
    explicitly when done.

    Args:
        base_url: Versioned API root, e.g. ``https://graph.facebook.com/v18.0``.
        connect_timeout: Seconds to establish a TCP connection.
        read_timeout: Seconds to wait for the response.
        write_timeout: Seconds to upload the request body.
        transport: Optional :class:`httpx.AsyncBaseTransport`; tests pass an
            :class:`httpx.MockTransport`.
    """

    def __init__(
        self,
        *,
        base_url: str = _DEFAULT_BASE_URL,
        connect_timeout: float = _DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = _DEFAULT_READ_TIMEOUT,
        write_timeout: float = _DEFAULT_WRITE_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url.strip():
            raise ValueError("GraphApiClient requires a non-empty base_url.")
        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=write_timeout,
            pool=5.0,
        )
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> GraphApiClient:
        """Build a client from the transport fields of *settings*."""
        return cls(
            base_url=settings.graph_api_url,
            connect_timeout=settings.http_connect_timeout,
            read_timeout=settings.http_read_timeout,
            write_timeout=settings.http_write_timeout,
        )

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> GraphApiClient:
        await self._ensure_http_client()
        return self

    async def __aexit__(self, *_args: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client.  Safe to call more than once."""
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("GraphApiClient HTTP session closed.")
        self._http = None

    # ------------------------------------------------------------------
    # Publishing operations
    # ------------------------------------------------------------------

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
        """Create a media container for one image or video.

        Carousel items never carry a caption; the caption belongs to the
        carousel container.

        Raises:
            GraphApiError: If the platform rejects the request.
            httpx.TransportError: On network-level failures.
        """
        data: dict[str, str] = {}
        if is_video:
            data["media_type"] = "VIDEO"
            data["video_url"] = media_url
        else:
            data["image_url"] = media_url
        if is_carousel_item:
            data["is_carousel_item"] = "true"
        elif caption:
            data["caption"] = caption

        body = await self._request("POST", f"/{account_id}/media", access_token, data=data)
        return RemoteContainerRef(id=_require_id(body, "create container"))

    async def create_carousel_container(
        self,
        account_id: str,
        access_token: str,
        child_ids: Sequence[str],
        caption: str | None = None,
    ) -> RemoteContainerRef:
        """Create a ``CAROUSEL`` container referencing *child_ids* in order."""
        data = {
            "media_type": "CAROUSEL",
            "children": ",".join(child_ids),
        }
        if caption:
            data["caption"] = caption

        body = await self._request("POST", f"/{account_id}/media", access_token, data=data)
        return RemoteContainerRef(id=_require_id(body, "create carousel container"))

    async def publish(
        self,
        account_id: str,
        access_token: str,
        container_id: str,
    ) -> PublishedMedia:
        """Publish *container_id* and return the new media id."""
        body = await self._request(
            "POST",
            f"/{account_id}/media_publish",
            access_token,
            data={"creation_id": container_id},
        )
        permalink = body.get("permalink")
        return PublishedMedia(
            id=_require_id(body, "publish"),
            permalink=str(permalink) if permalink else None,
        )

    async def get_permalink(self, media_id: str, access_token: str) -> str | None:
        """Return the permalink of *media_id*, or ``None`` if the platform omits it."""
        body = await self._request(
            "GET", f"/{media_id}", access_token, params={"fields": "permalink"}
        )
        permalink = body.get("permalink")
        return str(permalink) if permalink else None

    async def get_container_status(self, container_id: str, access_token: str) -> ContainerStatus:
        """Return the asynchronous processing status of a container."""
        body = await self._request(
            "GET", f"/{container_id}", access_token, params={"fields": "status,status_code"}
        )
        return ContainerStatus(
            id=str(body.get("id") or container_id),
            status_code=str(body.get("status_code") or ""),
            status=str(body.get("status") or ""),
        )

    async def check_publishing_permissions(self, account_id: str, access_token: str) -> bool:
        """Return ``True`` if the token can read the account.

        Only platform rejections map to ``False``; network failures raise.
        """
        try:
            await self._request("GET", f"/{account_id}", access_token, params={"fields": "id"})
        except GraphApiError as exc:
            logger.info("Account %s is not accessible: %s", account_id, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_http_client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
            logger.debug("GraphApiClient session opened (base_url=%r).", self._base_url)
        return self._http

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str,
        *,
        params: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Perform exactly one Graph API request and return the decoded body.

        Raises:
            GraphApiError: Non-2xx status, a 2xx body carrying ``error``, or a
                body that is not a JSON object.
            httpx.TransportError: Network-level failure, propagated as-is.
        """
        if not access_token:
            raise GraphApiError("access token missing", code=190)

        client = await self._ensure_http_client()
        logger.debug("Graph %s %s (fields=%s)", method, path, sorted((data or params or {}).keys()))

        try:
            response = await client.request(
                method,
                path,
                params=params,
                data=data,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.TransportError:
            logger.debug("Transport error on Graph %s %s.", method, path, exc_info=True)
            raise

        logger.debug("Graph %s %s → HTTP %d", method, path, response.status_code)
        body = _decode_json(response)

        if response.is_success and isinstance(body, dict) and "error" not in body:
            return body

        raise _to_graph_error(response, body)


# ---------------------------------------------------------------------------
# Response parsing helpers
# ---------------------------------------------------------------------------


def _decode_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _truncate(text: str) -> str:
    text = text.strip()
    if len(text) > _MAX_DETAIL_CHARS:
        return text[:_MAX_DETAIL_CHARS] + "..."
    return text


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_graph_error(response: httpx.Response, body: Any) -> GraphApiError:
    """Build a :class:`GraphApiError` from a failed response.

    Graph errors look like::

        {"error": {"message": "...", "type": "OAuthException",
                   "code": 190, "error_subcode": 463, "fbtrace_id": "..."}}
    """
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        message = str(error.get("message") or f"HTTP {response.status_code}")
        code = _as_int(error.get("code"))
        subcode = _as_int(error.get("error_subcode"))
        payload: Any = error
    elif response.is_success:
        message = "response body is not a JSON object"
        code = subcode = None
        payload = _truncate(response.text)
    else:
        message = _truncate(response.text) or f"HTTP {response.status_code}"
        code = subcode = None
        payload = message

    return GraphApiError(
        message,
        status_code=response.status_code,
        code=code,
        subcode=subcode,
        retry_after=_parse_retry_after(response),
        payload=payload,
    )


def _parse_retry_after(response: httpx.Response) -> float | None:
    """Extract an explicit wait hint in seconds, if the response carries one.

    Checks the standard ``Retry-After`` header first, then the
    ``estimated_time_to_regain_access`` field (minutes) of Meta's
    ``X-Business-Use-Case-Usage`` header.
    """
    header = response.headers.get("retry-after", "")
    if header:
        try:
            seconds = float(header)
        except ValueError:
            logger.debug("Could not parse Retry-After header %r.", header)
        else:
            if seconds > 0:
                return seconds

    usage = response.headers.get("x-business-use-case-usage", "")
    if usage:
        try:
            decoded = json.loads(usage)
        except ValueError:
            logger.debug("Could not parse X-Business-Use-Case-Usage header %r.", usage)
            return None
        minutes = [
            entry.get("estimated_time_to_regain_access") or 0
            for entries in (decoded.values() if isinstance(decoded, dict) else [])
            if isinstance(entries, list)
            for entry in entries
            if isinstance(entry, dict)
        ]
        longest = max((m for m in minutes if isinstance(m, int | float)), default=0)
        if longest > 0:
            return float(longest) * 60.0

    return None


def _require_id(body: dict[str, Any], operation: str) -> str:
    value = str(body.get("id") or "").strip()
    if not value:
        raise GraphApiError(f"{operation} response has no id", payload=body)
    return value
