# ipfscrawl

Asynchronous building blocks for indexing content published on IPFS: the
resource and document models, indexes backed by OpenSearch and Redis, a
caching index that combines two indexes, and metadata extractors that talk
to an ipfs-tika server and an nsfw-server.

All index and extractor operations are coroutines and are meant to run under
`asyncio`.

## Modules

- **`ipfscrawl.resources`** – `Resource`, `Reference` and `AnnotatedResource`,
  the enums `Protocol`, `ResourceType` and `SourceType`, and the shared errors
  `InvalidResourceError`, `UnsupportedTypeError` (a kind of
  `InvalidResourceError`), `UnexpectedResponseError` and `RequestError`.
- **`ipfscrawl.documents`** – dataclasses for what is stored in indexes:
  `Document`, `File`, `Directory`, `Link`, `LinkType`, `Language`, `NSFW`,
  `NSFWClassification`, `DocumentReference`, `Invalid`, `Partial` and
  `Update`. `to_json` turns a document into a JSON-ready structure using the
  stored field names (for example `first-seen`, `last-seen`); `apply_json`
  decodes JSON (text, bytes or parsed) into an existing dataclass or dict in
  place. `encode_references` / `decode_references` store a list of
  references as LZ4-framed CBOR arrays.
- **`ipfscrawl.indexing`** – the abstract `Index` (`index`, `update`, `get`,
  `delete`) and `multi_get`, which queries several indexes concurrently and
  returns the first index that holds the document, or `None`. Remaining
  lookups are cancelled once one succeeds; the first error is raised.
- **`ipfscrawl.extraction`** – the abstract `Extractor`, `BodyGetter` (fetches
  a URL with `httpx`, raising `RequestError` on transport failure and
  `UnexpectedResponseError` on an unexpected status), `validate_max_size` and
  `FileTooLargeError`.
- **`ipfscrawl.tika`** – `TikaExtractor` and `TikaConfig`. The extractor asks
  an object with a `gateway_url(resource)` method for the resource's gateway
  URL and requests `<tika_extractor_url>/extract?url=<escaped URL>`, decoding
  the answer into the given metadata object. Defaults:
  `http://localhost:8081`, a 300 second timeout and a 4 GiB size limit.
- **`ipfscrawl.nsfw`** – `NSFWExtractor`, `NSFWConfig` and `is_compatible`.
  Only IPFS resources whose `File.metadata["Content-Type"]` is JPEG, PNG, GIF
  or BMP are classified, through `<nsfw_server_url>/classify/<id>`; the result
  is set on `File.nsfw`. Defaults: `http://localhost:3000`, a 300 second
  timeout and a 1 GiB size limit.
- **`ipfscrawl.bulkgetter`** – `BulkGetter` collects single `GetRequest`s into
  batched `_mget` requests (defaults: 100 per batch, 0.1 s batch timeout),
  resolving index aliases first. A running `work()` coroutine serves the
  queue; `get()` waits for its `GetResponse`. `BulkRequest` holds one batch;
  `HTTPError` reports error statuses.
- **`ipfscrawl.search_index`** – `SearchClient`, `SearchIndex` and
  `BulkIndexer`. Writes are buffered as NDJSON and sent to `_bulk` when the
  buffer reaches `flush_bytes`, periodically while `SearchClient.work()` runs,
  and once more when it stops. Updates are sent wrapped in a `doc` field.
  Statuses 429, 502, 503 and 504 and timeouts are retried with backoff unless
  `debug` is set; in debug mode every item is flushed at once.
- **`ipfscrawl.redis_index`** – `RedisClient`, `RedisIndex` (documents as
  Redis hashes, using each field's short `redis` name such as `l` and `r`) and
  `ExistsIndex` (ids as members of a set, for presence checks only).
  `RedisClient.start()` connects to a cluster, or to a single node when only
  one address is given and clustering is not available. `flatten` produces the
  `HSET` arguments.
- **`ipfscrawl.cache`** – `CachingIndex` keeps the fields of a chosen dataclass
  in a caching index in front of a backing index. Reads try the cache first
  and write back hits from the backing index; failures of the cache alone
  raise `CacheError`, whose `found` attribute tells whether the document was
  found anyway.

## Installation

```
pip install ipfscrawl
```

To run the tests:

```
pip install "ipfscrawl[test]"
pytest
```

## Example

```python
import asyncio

from ipfscrawl.documents import DocumentReference, decode_references, encode_references
from ipfscrawl.extraction import BodyGetter
from ipfscrawl.nsfw import NSFWConfig, NSFWExtractor
from ipfscrawl.documents import File
from ipfscrawl.resources import AnnotatedResource, Protocol, Resource

refs = [DocumentReference(parent_hash="QmParent", name="file.pdf")]
assert decode_references(encode_references(refs)) == refs


async def classify() -> None:
    extractor = NSFWExtractor(NSFWConfig(), BodyGetter())
    resource = AnnotatedResource(resource=Resource(Protocol.IPFS, "QmExampleHash"), size=400)
    file = File(metadata={"Content-Type": "image/png"})
    await extractor.extract(resource, file)
    print(file.nsfw)


asyncio.run(classify())
```

## What this package does not do

The package provides the indexes, documents and extractors, but not the
crawler that drives them: nothing here decides which index a resource goes
to, lists directories, or publishes entries to work queues. There is no
IPFS client, no queue implementation and no command-line program; callers
assemble the components themselves.