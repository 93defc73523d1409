"""Partitioned response stores.

:class:`CacheStore` is the capability every engine component is given;
it exposes ``open``/``has``/``delete``/``keys``/``match`` over named
partitions. Two implementations ship:

* :class:`MemoryCacheStore` -- in-process dicts, for tests and ephemeral use.
* :class:`DiskCacheStore` -- persistent, one :mod:`diskcache` index per partition.
"""

from swcache.store.base import CacheStore, Partition, normalize_url, request_key
from swcache.store.disk import DiskCacheStore
from swcache.store.memory import MemoryCacheStore

__all__ = [
    "CacheStore",
    "DiskCacheStore",
    "MemoryCacheStore",
    "Partition",
    "normalize_url",
    "request_key",
]
