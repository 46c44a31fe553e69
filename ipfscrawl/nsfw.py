"""NSFW classification of images through an nsfw-server."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any

from .documents import NSFW, File, apply_json
from .extraction import BodyGetter, Extractor, validate_max_size
from .resources import AnnotatedResource, Protocol, UnexpectedResponseError

log = logging.getLogger(__name__)

_COMPATIBLE_MIMES = (
    re.compile(r"^image/jpeg"),
    re.compile(r"^image/png"),
    re.compile(r"^image/gif"),
    re.compile(r"^image/bmp"),
)


@dataclass
class NSFWConfig:
    """Where the nsfw-server lives and what it is asked to handle."""

    nsfw_server_url: str = "http://localhost:3000"
    request_timeout: float | None = 300.0
    max_file_size: int = 1 << 30


def _file_string_field(file: File, name: str) -> str:
    value = file.metadata.get(name)
    if value is None:
        return ""
    if isinstance(value, list):
        if not value or not isinstance(value[0], str):
            raise TypeError(f"invalid value {value!r} for field {name} of metadata")
        return value[0]
    if isinstance(value, str):
        return value
    raise TypeError(f"invalid type {type(value).__name__} for field {name} of metadata")


def is_compatible(resource: AnnotatedResource, file: File) -> bool:
    """Return whether the nsfw-server can classify this file."""
    if resource.protocol != Protocol.IPFS:
        return False

    content_type = _file_string_field(file, "Content-Type")
    if not content_type:
        return False

    return any(pattern.match(content_type) for pattern in _COMPATIBLE_MIMES)


class NSFWExtractor(Extractor):
    """Adds nsfw-server classification to image files."""

    def __init__(self, config: NSFWConfig, getter: BodyGetter) -> None:
        self.config = config
        self._getter = getter

    def extract_url(self, resource: AnnotatedResource) -> str:
        """Return the classification URL for the resource."""
        return f"{self.config.nsfw_server_url}/classify/{resource.id}"

    async def extract(self, resource: AnnotatedResource, metadata: Any) -> None:
        """Classify a compatible file, setting its nsfw field."""
        validate_max_size(resource, self.config.max_file_size)

        if not isinstance(metadata, File):
            raise TypeError(f"expected File, got {type(metadata).__name__}")

        if not is_compatible(resource, metadata):
            return

        body = await asyncio.wait_for(
            self._getter.get_body(self.extract_url(resource), 200),
            self.config.request_timeout,
        )

        try:
            classification = apply_json(NSFW(), body)
        except ValueError as exc:
            raise UnexpectedResponseError(f"decoding error {exc}") from exc

        metadata.nsfw = classification
        log.info("Got nsfw metadata for '%s'", resource)