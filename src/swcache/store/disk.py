"""Disk-backed partition store using :mod:`diskcache`.

Each partition lives in its own directory under ``<root>/partitions/``
and is backed by a :class:`diskcache.Index`, a persistent mapping that
iterates in insertion order. Entries are stored as plain dicts
(``CachedResponse.model_dump()``) so the on-disk format does not depend
on pickled model classes. Store metadata lives in a separate index under
``<root>/meta/``.

diskcache is synchronous; once the store is constructed every read, write
and directory scan is pushed to a worker thread with :func:`asyncio.to_thread`
so the event loop is never blocked on SQLite or the filesystem.
"""

from __future__ import annotations

import asyncio
import re
import shutil
from pathlib import Path
from typing import Any, Optional

import diskcache

from swcache.models import CachedResponse
from swcache.store.base import CacheStore, Partition

_VALID_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class DiskPartition(Partition):
    """A partition persisted in a :class:`diskcache.Index` directory."""

    def __init__(self, name: str, directory: Path) -> None:
        self.name = name
        self._directory = directory
        self._index = diskcache.Index(str(directory))

    async def match(self, key: str) -> Optional[CachedResponse]:
        record = await asyncio.to_thread(self._index.get, key)
        if record is None:
            return None
        return CachedResponse.model_validate(record)

    async def put(self, key: str, response: CachedResponse) -> None:
        record = response.model_dump()

        def _replace() -> None:
            self._index.pop(key, None)
            self._index[key] = record

        await asyncio.to_thread(_replace)

    async def delete(self, key: str) -> bool:
        removed = await asyncio.to_thread(self._index.pop, key, None)
        return removed is not None

    async def keys(self) -> list[str]:
        return await asyncio.to_thread(list, self._index)

    async def size(self) -> int:
        return await asyncio.to_thread(len, self._index)

    def close(self) -> None:
        self._index.cache.close()


class DiskCacheStore(CacheStore):
    """A :class:`~swcache.store.base.CacheStore` persisted on the filesystem.

    Args:
        root: Store root. Partitions are created under ``root/partitions``.

    Example::

        store = DiskCacheStore(get_cache_dir())
        partition = await store.open("static-v1")
        await partition.put(key, entry)
        await store.close()
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root) / "partitions"
        self._root.mkdir(parents=True, exist_ok=True)
        self._open: dict[str, DiskPartition] = {}
        self._meta = diskcache.Index(str(Path(root) / "meta"))

    @property
    def directory(self) -> Path:
        return self._root

    def _path(self, name: str) -> Path:
        if not _VALID_NAME.match(name):
            raise ValueError(f"Invalid partition name: {name!r}")
        return self._root / name

    async def open(self, name: str) -> DiskPartition:
        partition = self._open.get(name)
        if partition is None:
            path = self._path(name)
            partition = await asyncio.to_thread(DiskPartition, name, path)
            self._open[name] = partition
        return partition

    async def has(self, name: str) -> bool:
        if name in self._open:
            return True
        return await asyncio.to_thread(self._path(name).is_dir)

    async def delete(self, name: str) -> bool:
        path = self._path(name)
        partition = self._open.pop(name, None)
        if partition is not None:
            partition.close()
        if not await asyncio.to_thread(path.is_dir):
            return partition is not None
        await asyncio.to_thread(shutil.rmtree, path)
        return True

    async def keys(self) -> list[str]:
        def _scan() -> set[str]:
            return {p.name for p in self._root.iterdir() if p.is_dir()}

        on_disk = await asyncio.to_thread(_scan)
        return sorted(on_disk | set(self._open))

    async def get_meta(self, key: str) -> Optional[Any]:
        return await asyncio.to_thread(self._meta.get, key)

    async def set_meta(self, key: str, value: Optional[Any]) -> None:
        def _write() -> None:
            if value is None:
                self._meta.pop(key, None)
            else:
                self._meta[key] = value

        await asyncio.to_thread(_write)

    async def close(self) -> None:
        for partition in self._open.values():
            partition.close()
        self._open.clear()
        self._meta.cache.close()
