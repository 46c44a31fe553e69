"""Batched document lookups against an OpenSearch multi-get endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any
from urllib.parse import quote

import httpx

from .documents import apply_json
from .resources import RequestError, UnexpectedResponseError

log = logging.getLogger(__name__)

_DEFAULT_BATCH_SIZE = 100
_DEFAULT_BATCH_TIMEOUT = 0.1


class HTTPError(Exception):
    """The search server answered with an error status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP Error: [{status_code}] {body}".rstrip())


@dataclass
class GetRequest:
    """A document to fetch: index (or alias), id and the fields to include."""

    index: str = ""
    document_id: str = ""
    fields: list[str] | None = None

    def __str__(self) -> str:
        return f"index: {self.index}, id: {self.document_id}"


@dataclass
class GetResponse:
    """Outcome of a GetRequest."""

    found: bool = False
    error: BaseException | None = None


@dataclass
class BulkGetterConfig:
    """Configuration of a BulkGetter.

    A given client must have its base URL set to the search server. Zero
    values for batch_size and batch_timeout (seconds) select the defaults.
    """

    client: httpx.AsyncClient | None = None
    url: str = "http://localhost:9200"
    batch_size: int = _DEFAULT_BATCH_SIZE
    batch_timeout: float = _DEFAULT_BATCH_TIMEOUT


class AsyncGetter(ABC):
    """Fetches documents asynchronously, served by a running worker."""

    @abstractmethod
    async def get(self, request: GetRequest, dst: Any) -> GetResponse:
        """Fetch request into dst once a worker processes it."""

    @abstractmethod
    async def work(self) -> None:
        """Process requests until an error occurs."""


@dataclass
class _Entry:
    request: GetRequest
    dst: Any
    future: asyncio.Future

    def __str__(self) -> str:
        return f"reqresp: {self.request}"


def _respond(future: asyncio.Future, found: bool, error: BaseException | None) -> None:
    if not future.done():
        future.set_result(GetResponse(found, error))


class BulkRequest:
    """A batch of GetRequests, sent as a single multi-get."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client
        self._entries: dict[str, _Entry] = {}
        self._aliases: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def _get_aliases(self, index_or_alias: str) -> dict[str, Any]:
        try:
            response = await self._client.get(
                f"/{quote(index_or_alias, safe='')}/_alias",
                params={"allow_no_indices": "true", "expand_wildcards": "none"},
            )
        except httpx.HTTPError as exc:
            raise RequestError(f"error executing request: {exc}") from exc

        if response.status_code > 299:
            raise HTTPError(response.status_code, response.text)

        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"unexpected alias response: {data!r}")
        return data

    async def _resolve_alias(self, index_or_alias: str) -> str:
        if index_or_alias in self._aliases:
            return self._aliases[index_or_alias]

        for index in await self._get_aliases(index_or_alias):
            self._aliases[index_or_alias] = index
            return index

        raise LookupError(f"index or alias {index_or_alias} not found")

    async def add(self, request: GetRequest, dst: Any, future: asyncio.Future) -> None:
        """Add a request; its response is set on future."""
        index = await self._resolve_alias(request.index)
        self._entries[index + request.document_id] = _Entry(request, dst, future)

    def request_body(self) -> bytes:
        """Return the JSON body of the multi-get request."""
        docs = [
            {
                "_index": entry.request.index,
                "_id": entry.request.document_id,
                "_source": {"include": entry.request.fields},
            }
            for entry in self._entries.values()
        ]
        return (json.dumps({"docs": docs}) + "\n").encode()

    def _process_doc(self, doc: dict[str, Any], entry: _Entry) -> tuple[bool, BaseException | None]:
        if entry.future.done():
            # The caller stopped waiting; nothing to decode.
            return False, None

        if not doc.get("found"):
            return False, None

        try:
            apply_json(entry.dst, doc.get("_source"))
        except (TypeError, ValueError) as exc:
            return False, ValueError(f"error decoding source: {exc}")
        return True, None

    def process_response(self, status_code: int, body: bytes | str) -> None:
        """Decode a multi-get response and answer every request in it."""
        if status_code == 200:
            try:
                data = json.loads(body)
                docs = data.get("docs") or []
            except (ValueError, AttributeError) as exc:
                raise ValueError(f"error decoding body: {exc}") from exc

            for doc in docs:
                if not isinstance(doc, dict):
                    raise ValueError(f"error decoding body: unexpected document {doc!r}")
                key = f"{doc.get('_index', '')}{doc.get('_id', '')}"
                entry = self._entries.get(key)
                if entry is None:
                    raise LookupError(f"unknown key {key!r} in response to bulk request")
                found, error = self._process_doc(doc, entry)
                _respond(entry.future, found, error)
            return

        text = body.decode(errors="replace") if isinstance(body, bytes) else body
        if status_code > 299:
            raise HTTPError(status_code, text)
        raise UnexpectedResponseError(f"unexpected HTTP return code: {status_code}")

    def fail(self, error: BaseException) -> None:
        """Answer every outstanding request with error."""
        for entry in self._entries.values():
            _respond(entry.future, False, error)

    def _remove_cancelled(self) -> None:
        cancelled = [key for key, entry in self._entries.items() if entry.future.cancelled()]
        for key in cancelled:
            del self._entries[key]
        if cancelled:
            log.debug("bulkrequest: removed %d canceled requests", len(cancelled))

    async def execute(self) -> None:
        """Send the batch, unless every request in it was cancelled."""
        self._remove_cancelled()
        if not self._entries:
            return

        try:
            response = await self._client.post(
                "/_mget",
                content=self.request_body(),
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as exc:
            error = RequestError(f"error executing request: {exc}")
            self.fail(error)
            raise error from exc

        try:
            self.process_response(response.status_code, response.content)
        except Exception as exc:
            self.fail(exc)
            raise


class BulkGetter(AsyncGetter):
    """Collects single gets into batched multi-get requests."""

    def __init__(self, config: BulkGetterConfig | None = None) -> None:
        config = config or BulkGetterConfig()
        client = config.client or httpx.AsyncClient(base_url=config.url)
        self.config = replace(
            config,
            client=client,
            batch_size=config.batch_size or _DEFAULT_BATCH_SIZE,
            batch_timeout=config.batch_timeout or _DEFAULT_BATCH_TIMEOUT,
        )
        self._queue: asyncio.Queue[_Entry] = asyncio.Queue(maxsize=5 * self.config.batch_size)

    async def get(self, request: GetRequest, dst: Any) -> GetResponse:
        """Queue a get and wait for a worker to answer it."""
        future = asyncio.get_running_loop().create_future()
        await self._queue.put(_Entry(request, dst, future))
        return await future

    async def work(self) -> None:
        """Process batches until an error occurs, which is raised."""
        log.info("Starting worker for BulkGetter.")
        try:
            while True:
                await self.process_batch()
        except BaseException as exc:
            log.info("BulkGetter worker exiting, error: %r", exc)
            raise

    async def _populate_batch(self) -> BulkRequest:
        assert self.config.client is not None
        batch = BulkRequest(self.config.client)
        try:
            for _ in range(self.config.batch_size):
                try:
                    entry = await asyncio.wait_for(self._queue.get(), self.config.batch_timeout)
                except asyncio.TimeoutError:
                    log.debug("bulkgetter: batch timeout, %d elements", len(batch))
                    break
                try:
                    await batch.add(entry.request, entry.dst, entry.future)
                except Exception as exc:
                    _respond(entry.future, False, exc)
                    raise
        except BaseException as exc:
            batch.fail(exc)
            raise
        return batch

    async def process_batch(self) -> None:
        """Collect one batch and send it."""
        batch = await self._populate_batch()
        await batch.execute()