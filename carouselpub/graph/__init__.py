"""Remote publishing API contract and its Graph API implementation."""

from carouselpub.graph.base import PublishingApi
from carouselpub.graph.client import GraphApiClient

__all__ = ["GraphApiClient", "PublishingApi"]
