"""Indexes stored in OpenSearch, written in bulk and read in batches."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from dataclasses import dataclass
from typing import Any

import httpx

from .bulkgetter import AsyncGetter, BulkGetter, BulkGetterConfig, GetRequest, HTTPError
from .documents import to_json
from .indexing import Index
from .resources import RequestError

log = logging.getLogger(__name__)

_DEFAULT_URL = "http://localhost:9200"
_DEFAULT_FLUSH_BYTES = 5_000_000
_DEFAULT_FLUSH_INTERVAL = 30.0
_RETRY_STATUSES = frozenset({429, 502, 503, 504})
_MAX_RETRIES = 3
_BACKOFF_MIN = 0.1
_BACKOFF_MAX = 10.0


@dataclass
class SearchClientConfig:
    """Configuration of a search client.

    Zero values for the bulk settings select their defaults. In debug mode
    every indexed item is flushed at once and requests are not retried.
    """

    url: str = _DEFAULT_URL
    transport: httpx.AsyncBaseTransport | None = None
    debug: bool = False

    bulk_indexer_workers: int = 1
    bulk_indexer_flush_bytes: int = 0
    bulk_indexer_flush_timeout: float = 0.0

    bulk_getter_batch_size: int = 0
    bulk_getter_batch_timeout: float = 0.0


@dataclass
class SearchIndexConfig:
    """Configuration of a single search index."""

    name: str


def _dumps(value: Any) -> bytes:
    text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    for char, escaped in (
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("&", "\\u0026"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(char, escaped)
    return text.encode()


def _backoff(attempt: int) -> float:
    duration = min(_BACKOFF_MAX, _BACKOFF_MIN * 2**attempt)
    return random.uniform(_BACKOFF_MIN, duration)


class BulkIndexer:
    """Buffers index actions as NDJSON and sends them to the bulk endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        flush_bytes: int = _DEFAULT_FLUSH_BYTES,
        flush_interval: float = _DEFAULT_FLUSH_INTERVAL,
        workers: int = 1,
        retry: bool = True,
    ) -> None:
        self._client = client
        self.flush_bytes = flush_bytes
        self.flush_interval = flush_interval
        self._retry = retry
        self._buffer = bytearray()
        self._lock = asyncio.Lock()
        self._workers = asyncio.Semaphore(max(1, workers))

    async def add(self, action: str, index: str, id: str, body: bytes | None) -> None:
        """Queue an action; flush when the buffer reaches flush_bytes."""
        meta: dict[str, Any] = {"_index": index}
        if id:
            meta["_id"] = id
        item = _dumps({action: meta}) + b"\n"
        if body is not None:
            item += body + b"\n"

        async with self._lock:
            self._buffer += item
            full = len(self._buffer) >= self.flush_bytes

        if full:
            try:
                await self.flush()
            except Exception as exc:
                log.error("Error flushing index buffer: %s", exc)

    async def _post(self, payload: bytes) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = await self._client.post(
                    "/_bulk",
                    content=payload,
                    headers={"Content-Type": "application/x-ndjson"},
                )
            except httpx.TimeoutException as exc:
                if self._retry and attempt < _MAX_RETRIES:
                    attempt += 1
                    await asyncio.sleep(_backoff(attempt))
                    continue
                raise RequestError(f"error flushing: {exc}") from exc
            except httpx.HTTPError as exc:
                raise RequestError(f"error flushing: {exc}") from exc

            if self._retry and response.status_code in _RETRY_STATUSES and attempt < _MAX_RETRIES:
                attempt += 1
                await asyncio.sleep(_backoff(attempt))
                continue

            if response.status_code > 299:
                raise HTTPError(response.status_code, response.text)
            return response

    @staticmethod
    def _report(response: httpx.Response) -> None:
        try:
            data = response.json()
        except ValueError:
            log.error("Error decoding bulk response: %s", response.text)
            return
        if not isinstance(data, dict) or not data.get("errors"):
            return
        for item in data.get("items") or []:
            for result in item.values():
                if isinstance(result, dict) and result.get("status", 0) > 299:
                    log.error("Error flushing: %s (%s)", result, result.get("_id"))

    async def flush(self) -> None:
        """Send everything buffered so far."""
        async with self._lock:
            if not self._buffer:
                return
            payload = bytes(self._buffer)
            self._buffer.clear()

        async with self._workers:
            response = await self._post(payload)
        self._report(response)
        log.info("Flushed index buffer")

    async def _flush_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval)
            try:
                await self.flush()
            except Exception as exc:
                log.error("Error flushing index buffer: %s", exc)

    async def close(self) -> None:
        """Flush what remains."""
        await self.flush()


class SearchClient:
    """Connection to the search server shared by its indexes."""

    def __init__(self, config: SearchClientConfig | None = None, getter: AsyncGetter | None = None) -> None:
        config = config or SearchClientConfig()
        self.config = config
        self.http = httpx.AsyncClient(base_url=config.url or _DEFAULT_URL, transport=config.transport)

        if config.debug:
            flush_bytes, flush_interval = 1, 0.0
        else:
            flush_bytes = config.bulk_indexer_flush_bytes or _DEFAULT_FLUSH_BYTES
            flush_interval = config.bulk_indexer_flush_timeout or _DEFAULT_FLUSH_INTERVAL

        self.indexer = BulkIndexer(
            self.http,
            flush_bytes=flush_bytes,
            flush_interval=flush_interval,
            workers=config.bulk_indexer_workers,
            retry=not config.debug,
        )
        self.getter = getter or BulkGetter(
            BulkGetterConfig(
                client=self.http,
                url=config.url or _DEFAULT_URL,
                batch_size=config.bulk_getter_batch_size,
                batch_timeout=config.bulk_getter_batch_timeout,
            )
        )

    async def work(self) -> None:
        """Serve gets until the getter stops, then flush the index buffer."""
        periodic = None
        if self.indexer.flush_interval:
            periodic = asyncio.ensure_future(self.indexer._flush_periodically())
        try:
            await self.getter.work()
        finally:
            if periodic is not None:
                periodic.cancel()
                await asyncio.gather(periodic, return_exceptions=True)
            try:
                await self.indexer.close()
            except Exception as exc:
                log.error("Error flushing index buffer: %s", exc)

    def new_index(self, name: str) -> SearchIndex:
        """Return the index with the given name."""
        return SearchIndex(self, SearchIndexConfig(name=name))


class SearchIndex(Index):
    """An OpenSearch index holding document properties."""

    def __init__(self, client: SearchClient, config: SearchIndexConfig) -> None:
        if client is None:
            raise ValueError("client cannot be None")
        if config is None:
            raise ValueError("config cannot be None")
        self._client = client
        self._config = config

    def __str__(self) -> str:
        return self._config.name

    async def _add(self, action: str, id: str, properties: Any) -> None:
        body = None
        if properties is not None:
            document = to_json(properties)
            if action == "update":
                # Updated fields are wrapped in a `doc` field.
                document = {"doc": document}
            body = _dumps(document)
        await self._client.indexer.add(action, self._config.name, id, body)

    async def index(self, id: str, properties: Any) -> None:
        await self._add("create", id, properties)

    async def update(self, id: str, properties: Any) -> None:
        await self._add("update", id, properties)

    async def delete(self, id: str) -> None:
        await self._add("delete", id, None)

    async def get(self, id: str, dst: Any, *fields: str) -> bool:
        """Read fields of id into dst; return whether it was found."""
        request = GetRequest(index=self._config.name, document_id=id, fields=list(fields))
        response = await self._client.getter.get(request, dst)
        if response.error is not None:
            log.debug("opensearch: error getting %s in %s: %s", id, self, response.error)
            raise response.error
        return response.found