"""In-process partition store, used by tests and short-lived engines."""

from __future__ import annotations

from typing import Any, Optional

from swcache.models import CachedResponse
from swcache.store.base import CacheStore, Partition


class MemoryPartition(Partition):
    def __init__(self, name: str) -> None:
        self.name = name
        # dicts keep insertion order; put() re-inserts to move a key to the end
        self._entries: dict[str, CachedResponse] = {}

    async def match(self, key: str) -> Optional[CachedResponse]:
        return self._entries.get(key)

    async def put(self, key: str, response: CachedResponse) -> None:
        self._entries.pop(key, None)
        self._entries[key] = response

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def keys(self) -> list[str]:
        return list(self._entries)

    async def size(self) -> int:
        return len(self._entries)


class MemoryCacheStore(CacheStore):
    """A :class:`~swcache.store.base.CacheStore` held entirely in memory."""

    def __init__(self) -> None:
        self._partitions: dict[str, MemoryPartition] = {}
        self._meta: dict[str, Any] = {}

    async def open(self, name: str) -> MemoryPartition:
        partition = self._partitions.get(name)
        if partition is None:
            partition = self._partitions[name] = MemoryPartition(name)
        return partition

    async def has(self, name: str) -> bool:
        return name in self._partitions

    async def delete(self, name: str) -> bool:
        return self._partitions.pop(name, None) is not None

    async def keys(self) -> list[str]:
        return list(self._partitions)

    async def get_meta(self, key: str) -> Optional[Any]:
        return self._meta.get(key)

    async def set_meta(self, key: str, value: Optional[Any]) -> None:
        if value is None:
            self._meta.pop(key, None)
        else:
            self._meta[key] = value
