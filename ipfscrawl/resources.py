"""Resources handed to the crawler, and the errors raised about them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Protocol(Enum):
    """Protocol by which a resource is addressed."""

    INVALID = "invalid"
    IPFS = "ipfs"

    def __str__(self) -> str:
        return self.value


class ResourceType(Enum):
    """Kind of a resource, as far as it is known."""

    UNDEFINED = "undefined"
    FILE = "file"
    DIRECTORY = "directory"
    UNSUPPORTED = "unsupported"
    PARTIAL = "partial"

    def __str__(self) -> str:
        return self.value


class SourceType(Enum):
    """Where a resource was found."""

    UNKNOWN = "unknown"
    SNIFFER = "sniffer"
    DIRECTORY = "directory"
    MANUAL = "manual"
    USER = "user"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Resource:
    """A resource identified by protocol and id."""

    protocol: Protocol
    id: str

    def __str__(self) -> str:
        return f"{self.protocol}://{self.id}"


@dataclass
class Reference:
    """A named reference from a parent resource."""

    parent: Resource | None = None
    name: str = ""

    def __str__(self) -> str:
        if self.parent is None:
            return self.name
        return f"{self.parent}/{self.name}"


@dataclass
class AnnotatedResource:
    """A resource together with what is known about it."""

    resource: Resource
    source: SourceType = SourceType.UNKNOWN
    reference: Reference = field(default_factory=Reference)
    type: ResourceType = ResourceType.UNDEFINED
    size: int = 0

    @property
    def id(self) -> str:
        return self.resource.id

    @property
    def protocol(self) -> Protocol:
        return self.resource.protocol

    @property
    def parent(self) -> Resource | None:
        return self.reference.parent

    def __str__(self) -> str:
        text = str(self.resource)
        if self.reference.parent is not None:
            text = f"{text} ({self.reference})"
        return text


class _DetailedError(Exception):
    base_message = "error"

    def __init__(self, detail: object = None) -> None:
        self.detail = detail
        if detail is None:
            message = self.base_message
        else:
            message = f"{self.base_message}: {detail}"
        super().__init__(message)


class InvalidResourceError(_DetailedError):
    """The resource cannot be indexed; it is stored as invalid."""

    base_message = "resource invalid"


class UnsupportedTypeError(InvalidResourceError):
    """The resource is of a type the crawler does not handle."""

    base_message = "unsupported type"


class UnexpectedResponseError(_DetailedError):
    """A remote service answered with something unexpected."""

    base_message = "unexpected response"


class RequestError(_DetailedError):
    """A request to a remote service could not be made."""

    base_message = "request error"