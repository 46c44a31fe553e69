"""Indexes stored in Redis: hashes of document fields, and sets of ids."""

from __future__ import annotations

import logging
import re
import types
import typing
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Union

from redis.asyncio import Redis
from redis.asyncio.cluster import ClusterNode, RedisCluster
from redis.exceptions import RedisClusterException, RedisError

from .documents import DocumentReference, decode_references, encode_references, to_json
from .indexing import Index

log = logging.getLogger(__name__)

_DEFAULT_PORT = 6379


@dataclass
class RedisClientConfig:
    """Addresses of a Redis node or cluster and a prefix for all keys."""

    addrs: list[str] = field(default_factory=list)
    prefix: str = ""


@dataclass
class RedisIndexConfig:
    """Name of an index and its key prefix."""

    name: str = ""
    prefix: str = ""


def _split_addr(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep:
        return addr, _DEFAULT_PORT
    return host, int(port)


def _is_cluster_not_supported(exc: BaseException) -> bool:
    text = str(exc).lower()
    return any(
        needle in text
        for needle in ("cluster support disabled", "unknown command", "cluster mode is not enabled")
    )


class RedisClient:
    """A Redis connection shared by indexes, clustered where possible."""

    def __init__(self, config: RedisClientConfig, connection: Any = None) -> None:
        if not config.addrs:
            raise ValueError("no Redis addresses specified")
        self.config = config
        self._redis = connection

    async def start(self) -> None:
        """Connect to the cluster, or to a single node that is not clustered."""
        nodes = [ClusterNode(*_split_addr(addr)) for addr in self.config.addrs]
        try:
            cluster = RedisCluster(startup_nodes=nodes)
            await cluster.initialize()
            self._redis = cluster
        except (RedisError, RedisClusterException) as exc:
            if not (_is_cluster_not_supported(exc) and len(self.config.addrs) == 1):
                raise
            log.info("Redis not a cluster, attempting single connection.")
            host, port = _split_addr(self.config.addrs[0])
            self._redis = Redis(host=host, port=port)

    async def close(self) -> None:
        """Close the connection."""
        if self._redis is None:
            return
        closer = getattr(self._redis, "aclose", None) or self._redis.close
        await closer()
        self._redis = None

    async def execute(self, *args: Any) -> Any:
        if self._redis is None:
            raise RuntimeError("Redis client not started")
        return await self._redis.execute_command(*args)

    def new_index(self, name: str, prefix: str, exists_index: bool = False) -> Index:
        """Return a hash index, or a set-based ExistsIndex when exists_index is true."""
        config = RedisIndexConfig(name=name, prefix=prefix)
        if exists_index:
            return ExistsIndex(self, config)
        return RedisIndex(self, config)


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    if isinstance(value, (str, bytes, list, tuple, dict)):
        return len(value) == 0
    return False


def _redis_name(f: Any) -> str:
    return f.metadata.get("redis", f.name)


def _flatten_value(value: Any) -> list[str | bytes]:
    if isinstance(value, (bytes, str)):
        return [value]
    if isinstance(value, bool):
        return ["1" if value else "0"]
    if isinstance(value, Enum):
        return _flatten_value(value.value)
    if isinstance(value, datetime):
        return [to_json(value)]
    if isinstance(value, (int, float)):
        return [str(value)]
    if isinstance(value, list) and all(isinstance(v, DocumentReference) for v in value):
        return [encode_references(value)]
    if is_dataclass(value) and not isinstance(value, type):
        return flatten(value)
    if isinstance(value, dict):
        return flatten(value)
    if isinstance(value, (list, tuple)):
        return [item for v in value for item in _flatten_value(v)]
    raise TypeError(f"cannot store {type(value).__name__} in Redis")


def flatten(properties: Any) -> list[str | bytes]:
    """Flatten properties into alternating field names and values for HSET.

    Dataclass fields use their ``redis`` name where one is given; empty
    values of omitempty fields and None values are left out.
    """
    out: list[str | bytes] = []
    if is_dataclass(properties) and not isinstance(properties, type):
        for f in fields(properties):
            value = getattr(properties, f.name)
            if value is None or (f.metadata.get("omitempty") and _is_empty(value)):
                continue
            out.append(_redis_name(f))
            out.extend(_flatten_value(value))
        return out
    if isinstance(properties, dict):
        for key, value in properties.items():
            if value is None:
                continue
            out.append(str(key))
            out.extend(_flatten_value(value))
        return out
    raise TypeError(f"cannot flatten {type(properties).__name__}")


def _as_bytes(raw: Any) -> bytes:
    return raw.encode() if isinstance(raw, str) else bytes(raw)


def _as_text(raw: Any) -> str:
    return raw.decode() if isinstance(raw, (bytes, bytearray)) else str(raw)


_TIME_RE = re.compile(r"^(.*?)(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$")


def _parse_time(text: str) -> datetime:
    match = _TIME_RE.match(text)
    if match is None:
        raise ValueError(f"cannot parse time {text!r}")
    main, fraction, zone = match.groups()
    if zone in ("Z", "z"):
        zone = "+00:00"
    frac = f".{fraction[:6].ljust(6, '0')}" if fraction else ""
    return datetime.fromisoformat(f"{main}{frac}{zone}")


def _decode_field(hint: Any, raw: Any) -> Any:
    origin = typing.get_origin(hint)
    if origin in (Union, types.UnionType):
        options = [a for a in typing.get_args(hint) if a is not type(None)]
        hint = options[0] if len(options) == 1 else Any
        origin = typing.get_origin(hint)

    if origin is list and typing.get_args(hint)[:1] == (DocumentReference,):
        return decode_references(_as_bytes(raw))

    text = _as_text(raw)
    if hint is datetime:
        return _parse_time(text)
    if hint is bool:
        return text.lower() in ("1", "true")
    if hint is int:
        return int(text)
    if hint is float:
        return float(text)
    if isinstance(hint, type) and issubclass(hint, Enum):
        return hint(text)
    return text


def _reply_pairs(reply: Any) -> dict[str, Any]:
    if not reply:
        return {}
    if isinstance(reply, dict):
        items = reply.items()
    else:
        it = iter(reply)
        items = zip(it, it)
    return {_as_text(k): v for k, v in items}


def _apply_hash(dst: Any, values: dict[str, Any]) -> None:
    if isinstance(dst, dict):
        dst.update({k: _as_text(v) for k, v in values.items()})
        return
    if not is_dataclass(dst) or isinstance(dst, type):
        raise TypeError(f"cannot decode into {type(dst).__name__}")
    for f in fields(dst):
        raw = values.get(_redis_name(f))
        if raw is not None:
            setattr(dst, f.name, _decode_field(f.type, raw))


class RedisIndex(Index):
    """Stores document properties as Redis hashes."""

    def __init__(self, client: RedisClient, config: RedisIndexConfig) -> None:
        if not config.name:
            raise ValueError("name cannot be empty")
        if not config.prefix:
            raise ValueError("prefix cannot be empty")
        self._client = client
        self._config = config

    def key(self, id: str) -> str:
        """Return the Redis key for a document id."""
        return f"{self._client.config.prefix}{self._config.prefix}:{id}"

    def __str__(self) -> str:
        return self._config.name

    async def _set(self, id: str, properties: Any) -> None:
        key = self.key(id)
        flattened = flatten(properties)
        if not flattened:
            raise ValueError("Redis cannot index without properties")
        log.debug("redis %s: writing to %s", self, key)
        await self._client.execute("HSET", key, *flattened)

    async def index(self, id: str, properties: Any) -> None:
        await self._set(id, properties)

    async def update(self, id: str, properties: Any) -> None:
        await self._set(id, properties)

    async def delete(self, id: str) -> None:
        key = self.key(id)
        log.debug("redis %s: delete %s", self, key)
        await self._client.execute("UNLINK", key)

    async def get(self, id: str, dst: Any, *fields: str) -> bool:
        """Read all fields of id into dst, ignoring the requested fields."""
        key = self.key(id)
        values = _reply_pairs(await self._client.execute("HGETALL", key))
        log.debug("redis %s: get %s from %s, found: %s", self, id, key, bool(values))
        if not values:
            return False
        _apply_hash(dst, values)
        return True


class ExistsIndex(Index):
    """Records only whether ids exist, as members of a Redis set."""

    def __init__(self, client: RedisClient, config: RedisIndexConfig) -> None:
        self._client = client
        self._config = config
        self.key = f"{client.config.prefix}e:{config.prefix}"

    def __str__(self) -> str:
        return self._config.name

    async def _add(self, id: str) -> None:
        log.debug("redis exists %s: add %s to %s", self, id, self.key)
        await self._client.execute("SADD", self.key, id)

    async def index(self, id: str, properties: Any) -> None:
        await self._add(id)

    async def update(self, id: str, properties: Any) -> None:
        await self._add(id)

    async def delete(self, id: str) -> None:
        log.debug("redis exists %s: delete %s from %s", self, id, self.key)
        await self._client.execute("SREM", self.key, id)

    async def get(self, id: str, dst: Any, *fields: str) -> bool:
        """Return whether id is present; dst is left untouched."""
        reply = await self._client.execute("SISMEMBER", self.key, id)
        return bool(int(reply or 0))