"""Documents stored in indexes, with JSON and binary encodings."""

import json
import re
import types
import typing
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Union

import cbor2
import lz4.frame


def _field(name: str, *, omitempty: bool = False, redis: str | None = None, **kwargs: Any) -> Any:
    metadata: dict[str, Any] = {"json": name, "omitempty": omitempty}
    if redis is not None:
        metadata["redis"] = redis
    return field(metadata=metadata, **kwargs)


_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


class LinkType(Enum):
    """Type of a link from a directory."""

    DIRECTORY = "Directory"
    FILE = "File"
    UNKNOWN = "Unknown"
    UNSUPPORTED = "Unsupported"

    def __str__(self) -> str:
        return self.value


@dataclass
class Link:
    """Link from a document to another document."""

    hash: str = _field("Hash", default="")
    name: str = _field("Name", default="")
    size: int = _field("Size", default=0)
    type: LinkType = _field("Type", default=LinkType.UNKNOWN)


@dataclass
class DocumentReference:
    """Named reference to a document from a parent."""

    parent_hash: str = _field("parent_hash", default="")
    name: str = _field("name", default="")


@dataclass
class Document:
    """Properties common to all indexed resources."""

    first_seen: datetime = _field("first-seen", default=_ZERO_TIME)
    last_seen: datetime = _field("last-seen", default=_ZERO_TIME)
    references: list[DocumentReference] = _field("references", default_factory=list)
    size: int = _field("size", default=0)


@dataclass
class Directory(Document):
    """A directory in an index."""

    links: list[Link] = _field("links", default_factory=list)


@dataclass
class Language:
    """Detected language of a file."""

    confidence: str = _field("confidence", default="")
    language: str = _field("language", default="")
    raw_score: float = _field("rawScore", default=0.0)


@dataclass
class NSFWClassification:
    """Classification scores from the NSFW server."""

    neutral: float = _field("neutral", default=0.0)
    drawing: float = _field("drawing", default=0.0)
    porn: float = _field("porn", default=0.0)
    hentai: float = _field("hentai", default=0.0)
    sexy: float = _field("sexy", default=0.0)


@dataclass
class NSFW:
    """Classification result of the NSFW server."""

    classification: NSFWClassification = _field("classification", default_factory=NSFWClassification)
    nsfw_server_version: str = _field("nsfwServerVersion", default="")
    model_cid: str = _field("modelCid", default="")


@dataclass
class File(Document):
    """A file in an index."""

    content: str = _field("content", default="")
    ipfs_tika_version: str = _field("ipfs_tika_version", default="")
    language: Language = _field("language", default_factory=Language)
    metadata: dict[str, Any] = _field("metadata", default_factory=dict)
    urls: list[str] = _field("urls", default_factory=list)
    nsfw: NSFW | None = _field("nfsw", omitempty=True, default=None)


@dataclass
class Invalid:
    """A resource that cannot be indexed."""

    error: str = _field("error", default="")


@dataclass
class Partial:
    """An unreferenced partial block."""


@dataclass
class Update:
    """The updatable part of a document."""

    last_seen: datetime | None = _field("last-seen", omitempty=True, redis="l", default=None)
    references: list[DocumentReference] = _field(
        "references", omitempty=True, redis="r", default_factory=list
    )


def encode_references(references: list[DocumentReference]) -> bytes:
    """Encode references as LZ4-framed CBOR arrays."""
    data = cbor2.dumps([[r.parent_hash, r.name] for r in references])
    return lz4.frame.compress(data)


def decode_references(data: bytes) -> list[DocumentReference]:
    """Decode references written by encode_references."""
    try:
        raw = cbor2.loads(lz4.frame.decompress(data))
    except (RuntimeError, ValueError, cbor2.CBORDecodeError) as exc:
        raise ValueError(f"cannot decode references: {exc}") from exc

    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError("references must be an array")

    result = []
    for item in raw:
        if not (isinstance(item, list) and len(item) == 2 and all(isinstance(v, str) for v in item)):
            raise ValueError(f"invalid reference entry: {item!r}")
        result.append(DocumentReference(parent_hash=item[0], name=item[1]))
    return result


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if value.microsecond:
        text += f".{value.microsecond:06d}".rstrip("0")
    offset = value.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


_TIME_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


def _parse_time(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"cannot decode {value!r} as time")
    match = _TIME_RE.match(value)
    if match is None:
        raise ValueError(f"cannot parse time {value!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction or "0")[:6].ljust(6, "0"))
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), micro, tzinfo=tz
    )


def _json_name(f: Any) -> str:
    return f.metadata.get("json", f.name)


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    if isinstance(value, (str, bytes, list, tuple, dict)):
        return len(value) == 0
    return False


def to_json(value: Any) -> Any:
    """Return a JSON-ready structure for a document or plain value."""
    if is_dataclass(value) and not isinstance(value, type):
        out: dict[str, Any] = {}
        for f in fields(value):
            item = getattr(value, f.name)
            if f.metadata.get("omitempty") and _is_empty(item):
                continue
            out[_json_name(f)] = to_json(item)
        return out
    if isinstance(value, Enum):
        return to_json(value.value)
    if isinstance(value, datetime):
        return _format_time(value)
    if isinstance(value, dict):
        return {str(k): to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    return value


def _type_hints(cls: type) -> dict[str, Any]:
    # Field types given as strings are decoded as plain JSON values.
    return {f.name: f.type for f in fields(cls)}


def _decode(tp: Any, value: Any, current: Any) -> Any:
    if tp is Any or isinstance(tp, str):
        return value

    origin = typing.get_origin(tp)
    if origin in (Union, types.UnionType):
        if value is None:
            return None
        options = [a for a in typing.get_args(tp) if a is not type(None)]
        return _decode(options[0], value, current) if len(options) == 1 else value

    if value is None:
        # A JSON null leaves non-optional values untouched.
        return current

    if origin is list or tp is list:
        if not isinstance(value, list):
            raise ValueError(f"expected array, got {value!r}")
        args = typing.get_args(tp)
        item_type = args[0] if args else Any
        return [_decode(item_type, v, None) for v in value]

    if origin is dict or tp is dict:
        if not isinstance(value, dict):
            raise ValueError(f"expected object, got {value!r}")
        merged = dict(current) if isinstance(current, dict) else {}
        merged.update(value)
        return merged

    if isinstance(tp, type):
        if is_dataclass(tp):
            target = current if isinstance(current, tp) else tp()
            return apply_json(target, value)
        if issubclass(tp, Enum):
            return tp(value)
        if tp is datetime:
            return _parse_time(value)
        if tp is bool:
            if not isinstance(value, bool):
                raise ValueError(f"expected boolean, got {value!r}")
            return value
        if tp is int:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"expected integer, got {value!r}")
            return value
        if tp is float:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"expected number, got {value!r}")
            return float(value)
        if tp is str:
            if not isinstance(value, str):
                raise ValueError(f"expected string, got {value!r}")
            return value
    return value


def apply_json(target: Any, data: Any) -> Any:
    """Decode JSON data into target, a dataclass or dict, in place; return target."""
    if isinstance(data, (str, bytes, bytearray)):
        data = json.loads(data)

    if isinstance(target, dict):
        if data is None:
            return target
        if not isinstance(data, dict):
            raise ValueError(f"expected object, got {data!r}")
        target.update(data)
        return target

    if not is_dataclass(target) or isinstance(target, type):
        raise TypeError(f"cannot decode into {type(target).__name__}")
    if data is None:
        return target
    if not isinstance(data, dict):
        raise ValueError(f"expected object, got {data!r}")

    hints = _type_hints(type(target))
    by_name = {_json_name(f): f for f in fields(target)}
    by_lower = {name.lower(): f for name, f in by_name.items()}

    for key, value in data.items():
        f = by_name.get(key) or by_lower.get(key.lower())
        if f is None:
            continue
        decoded = _decode(hints.get(f.name, Any), value, getattr(target, f.name))
        setattr(target, f.name, decoded)
    return target