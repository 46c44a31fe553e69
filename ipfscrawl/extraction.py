"""Metadata extractors and the helpers they share."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx

from .resources import AnnotatedResource, RequestError, UnexpectedResponseError


class FileTooLargeError(Exception):
    """The file is larger than an extractor accepts."""

    def __init__(self, size: int | None = None) -> None:
        self.size = size
        message = "file too large" if size is None else f"file too large: {size}"
        super().__init__(message)


class Extractor(ABC):
    """Extracts metadata from a resource into a metadata object."""

    @abstractmethod
    async def extract(self, resource: AnnotatedResource, metadata: Any) -> None:
        """Update metadata for resource, or raise."""


class BodyGetter:
    """Fetches the body of a URL, requiring a given status code."""

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url)
        async with httpx.AsyncClient(timeout=None) as client:
            return await client.get(url)

    async def get_body(self, url: str, expected_status: int = 200) -> bytes:
        """Return the body of url; raise RequestError or UnexpectedResponseError."""
        try:
            response = await self._get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise RequestError(f"{url}: {exc}") from exc

        if response.status_code != expected_status:
            raise UnexpectedResponseError(
                f"status {response.status_code} from {url}, expected {expected_status}"
            )
        return response.content


def validate_max_size(resource: AnnotatedResource, max_size: int) -> None:
    """Raise FileTooLargeError when the resource is larger than max_size."""
    if resource.size > max_size:
        raise FileTooLargeError(resource.size)