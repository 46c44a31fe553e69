"""Metadata extraction through an ipfs-tika server."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol as TypingProtocol
from urllib.parse import quote_plus

from .documents import apply_json
from .extraction import BodyGetter, Extractor, validate_max_size
from .resources import AnnotatedResource, UnexpectedResponseError

log = logging.getLogger(__name__)


class _Gateway(TypingProtocol):
    def gateway_url(self, resource: AnnotatedResource) -> str: ...


@dataclass
class TikaConfig:
    """Where the ipfs-tika server lives and what it is asked to handle."""

    tika_extractor_url: str = "http://localhost:8081"
    request_timeout: float | None = 300.0
    max_file_size: int = 4 * 1024 * 1024 * 1024


class TikaExtractor(Extractor):
    """Extracts file metadata with the ipfs-tika server."""

    def __init__(self, config: TikaConfig, getter: BodyGetter, protocol: _Gateway) -> None:
        self.config = config
        self._getter = getter
        self._protocol = protocol

    def extract_url(self, resource: AnnotatedResource) -> str:
        """Return the extraction URL for the resource's gateway URL."""
        gateway_url = self._protocol.gateway_url(resource)
        return f"{self.config.tika_extractor_url}/extract?url={quote_plus(gateway_url)}"

    async def extract(self, resource: AnnotatedResource, metadata: Any) -> None:
        """Fetch metadata for resource and decode it into metadata."""
        validate_max_size(resource, self.config.max_file_size)

        body = await asyncio.wait_for(
            self._getter.get_body(self.extract_url(resource), 200),
            self.config.request_timeout,
        )

        try:
            apply_json(metadata, body)
        except ValueError as exc:
            raise UnexpectedResponseError(exc) from exc

        log.info("Got tika metadata for '%s'", resource)