"""Abstract partitioned cache store and request-key normalisation.

A :class:`CacheStore` holds named :class:`Partition` objects; each
partition maps request keys to :class:`~swcache.models.CachedResponse`
entries and remembers insertion order, which is what FIFO eviction relies
on. Individual key operations are atomic; there are no multi-key
transactions.

Writing to a key that already exists replaces the entry and moves it to
the newest position.

Besides partitions a store keeps a few small metadata records, such as the
names of the partitions last promoted by activation. Metadata never shows
up in :meth:`CacheStore.keys`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import urlsplit, urlunsplit

from swcache.exceptions import PartitionMiss
from swcache.models import CachedResponse

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str) -> str:
    """Canonicalise *url* for use in a cache key.

    Scheme and host are lower-cased, default ports and fragments are
    dropped, and an empty path becomes ``/``. The query string is kept
    verbatim.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    netloc = host if port is None or _DEFAULT_PORTS.get(scheme) == port else f"{host}:{port}"
    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, ""))


def request_key(method: str, url: str) -> str:
    """Build the store key for a request: ``"METHOD normalized-url"``."""
    return f"{method.upper()} {normalize_url(url)}"


class Partition(ABC):
    """A single named namespace of cached responses."""

    name: str

    @abstractmethod
    async def match(self, key: str) -> Optional[CachedResponse]:
        """Return the entry stored under *key*, or ``None``."""

    @abstractmethod
    async def put(self, key: str, response: CachedResponse) -> None:
        """Store *response* under *key*, replacing any previous entry."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove *key*. Returns ``True`` if an entry was removed."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """All keys, oldest insertion first."""

    async def size(self) -> int:
        return len(await self.keys())

    async def require(self, key: str) -> CachedResponse:
        """Like :meth:`match` but raises :class:`PartitionMiss` when absent."""
        entry = await self.match(key)
        if entry is None:
            raise PartitionMiss(self.name, key)
        return entry


class CacheStore(ABC):
    """Key-addressed store of named partitions.

    Implementations: :class:`~swcache.store.memory.MemoryCacheStore` and
    :class:`~swcache.store.disk.DiskCacheStore`.
    """

    @abstractmethod
    async def open(self, name: str) -> Partition:
        """Return the partition called *name*, creating it empty if needed."""

    @abstractmethod
    async def has(self, name: str) -> bool:
        """Whether a partition called *name* exists."""

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """Delete the partition and all its entries. ``True`` if it existed."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """Names of all stored partitions."""

    @abstractmethod
    async def get_meta(self, key: str) -> Optional[Any]:
        """Return the metadata record *key*, or ``None``."""

    @abstractmethod
    async def set_meta(self, key: str, value: Optional[Any]) -> None:
        """Store metadata record *key*; ``None`` removes it."""

    async def match(self, key: str, partition: Optional[str] = None) -> Optional[CachedResponse]:
        """Look *key* up without creating partitions.

        With *partition* given only that partition is searched; otherwise
        every partition is searched in :meth:`keys` order.
        """
        names = [partition] if partition is not None else await self.keys()
        for name in names:
            if not await self.has(name):
                continue
            entry = await (await self.open(name)).match(key)
            if entry is not None:
                return entry
        return None

    async def close(self) -> None:
        """Release any resources held by the store."""
