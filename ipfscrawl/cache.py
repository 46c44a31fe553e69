"""An index that keeps a reduced copy of documents in a faster caching index."""

from __future__ import annotations

import logging
from dataclasses import fields, is_dataclass
from typing import Any, Awaitable, Callable

from .indexing import Index

log = logging.getLogger(__name__)


class CacheError(Exception):
    """The caching index failed; the original error is kept in ``error``.

    ``found`` tells whether the document was found nonetheless, which
    matters when only writing back to the cache failed during a get.
    """

    def __init__(self, message: str, error: BaseException, found: bool = False) -> None:
        super().__init__(message)
        self.error = error
        self.found = found
        self.__cause__ = error


def _caching_class(caching_type: Any) -> type:
    cls = caching_type if isinstance(caching_type, type) else type(caching_type)
    if not is_dataclass(cls):
        raise TypeError("caching type should be a dataclass")
    return cls


class CachingIndex(Index):
    """Wraps a backing index and caches selected fields in another index."""

    def __init__(self, backing: Index, caching: Index, caching_type: Any) -> None:
        self._backing = backing
        self._caching = caching
        self._caching_type = _caching_class(caching_type)

    def __str__(self) -> str:
        return f"'{self._backing}' through '{self._caching}'"

    def make_caching_properties(self, properties: Any) -> Any:
        """Build an instance of the caching type from matching fields of properties."""
        if not is_dataclass(properties) or isinstance(properties, type):
            raise TypeError("properties should be a dataclass instance")

        values = {}
        for f in fields(self._caching_type):
            if not hasattr(properties, f.name):
                raise TypeError(
                    f"field {f.name} of {self._caching_type.__name__} "
                    f"missing from {type(properties).__name__}"
                )
            values[f.name] = getattr(properties, f.name)

        instance = self._caching_type(**{f.name: values[f.name] for f in fields(self._caching_type) if f.init})
        for f in fields(self._caching_type):
            if not f.init:
                setattr(instance, f.name, values[f.name])
        return instance

    async def _cache_write(
        self,
        id: str,
        properties: Any,
        write: Callable[[str, Any], Awaitable[None]],
    ) -> None:
        caching_properties = self.make_caching_properties(properties)
        log.debug("cache %s: write %s", self, id)
        try:
            await write(id, caching_properties)
        except Exception as exc:
            raise CacheError(
                f"cache error in writing {caching_properties!r} to {id}: {exc}", exc
            ) from exc

    async def index(self, id: str, properties: Any) -> None:
        """Index in the backing index first, then in the cache."""
        await self._backing.index(id, properties)
        await self._cache_write(id, properties, self._caching.index)

    async def update(self, id: str, properties: Any) -> None:
        """Update the cache first, then the backing index."""
        await self._cache_write(id, properties, self._caching.update)
        await self._backing.update(id, properties)

    async def delete(self, id: str) -> None:
        """Delete from the cache first, keeping the backing index authoritative."""
        log.debug("cache %s: delete %s", self, id)
        try:
            await self._caching.delete(id)
        except Exception as exc:
            raise CacheError(f"error deleting cache: {exc}", exc) from exc
        await self._backing.delete(id)

    async def get(self, id: str, dst: Any, *fields: str) -> bool:
        """Read from the cache, falling back to the backing index.

        A document found in the backing index is written to the cache. When
        only the cache failed, CacheError is raised with ``found`` set.
        """
        cache_error: CacheError | None = None
        try:
            if await self._caching.get(id, dst, *fields):
                log.debug("cache %s: hit %s", self._caching, id)
                return True
        except Exception as exc:
            cache_error = CacheError(f"cache error in get: {exc}", exc)

        log.debug("cache %s: miss %s", self._caching, id)

        found = await self._backing.get(id, dst, *fields)

        if found:
            log.debug("backing %s: hit %s", self._backing, id)
            try:
                await self._cache_write(id, dst, self._caching.index)
            except CacheError as exc:
                cache_error = exc
        else:
            log.debug("backing %s: miss %s", self._backing, id)

        if cache_error is not None:
            cache_error.found = found
            raise cache_error
        return found