"""The index interface and lookups across several indexes."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Sequence


class Index(ABC):
    """An index that stores and retrieves document properties."""

    @abstractmethod
    async def index(self, id: str, properties: Any) -> None:
        """Store a document's properties under id."""

    @abstractmethod
    async def update(self, id: str, properties: Any) -> None:
        """Update a document's properties under id."""

    @abstractmethod
    async def get(self, id: str, dst: Any, *fields: str) -> bool:
        """Read fields of document id into dst; return whether it was found."""

    @abstractmethod
    async def delete(self, id: str) -> None:
        """Remove the document id."""


async def multi_get(indexes: Sequence[Index], id: str, dst: Any, *fields: str) -> Index | None:
    """Query all indexes at once; return the first holding id, or None.

    Once a document is found the remaining lookups are cancelled. The first
    error raised by a lookup is propagated.
    """
    tasks = {asyncio.ensure_future(index.get(id, dst, *fields)): index for index in indexes}
    try:
        pending = set(tasks)
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task, index in tasks.items():
                if task in done and task.result():
                    return index
        return None
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)