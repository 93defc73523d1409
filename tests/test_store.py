"""Tests for swcache.store -- key normalisation and both store backends."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from swcache.exceptions import PartitionMiss
from swcache.models import CachedResponse
from swcache.store import DiskCacheStore, MemoryCacheStore, normalize_url, request_key


def _entry(body: str, url: str = "https://notes.example.com/") -> CachedResponse:
    return CachedResponse(url=url, status=200, headers={"content-type": "text/plain"}, body=body.encode())


@pytest.fixture(params=["memory", "disk"])
async def store(request, tmp_path: Path):
    """Each test in this module runs against both backends."""
    s = MemoryCacheStore() if request.param == "memory" else DiskCacheStore(tmp_path)
    yield s
    await s.close()


# ------------------------------------------------------------------ #
# Key normalisation
# ------------------------------------------------------------------ #


class TestNormalizeUrl:
    def test_lowercases_scheme_and_host(self) -> None:
        assert normalize_url("HTTPS://Notes.Example.COM/Path") == "https://notes.example.com/Path"

    def test_drops_default_port(self) -> None:
        assert normalize_url("https://notes.example.com:443/a") == "https://notes.example.com/a"
        assert normalize_url("http://notes.example.com:80/a") == "http://notes.example.com/a"

    def test_keeps_non_default_port(self) -> None:
        assert normalize_url("http://localhost:8000/a") == "http://localhost:8000/a"

    def test_drops_fragment_keeps_query(self) -> None:
        assert normalize_url("https://h/a?b=1&c=2#top") == "https://h/a?b=1&c=2"

    def test_empty_path_becomes_root(self) -> None:
        assert normalize_url("https://notes.example.com") == "https://notes.example.com/"

    def test_ipv6_host_keeps_brackets(self) -> None:
        assert normalize_url("http://[::1]:8080/x") == "http://[::1]:8080/x"

    def test_request_key_uppercases_method(self) -> None:
        key = request_key("get", "https://Notes.example.com")
        assert key == "GET https://notes.example.com/"


# ------------------------------------------------------------------ #
# Partition operations
# ------------------------------------------------------------------ #


class TestPartition:
    async def test_put_and_match(self, store) -> None:
        partition = await store.open("static-v1")
        await partition.put("GET https://h/", _entry("home"))
        entry = await partition.match("GET https://h/")
        assert entry is not None
        assert entry.body == b"home"
        assert entry.status == 200

    async def test_match_miss_returns_none(self, store) -> None:
        partition = await store.open("static-v1")
        assert await partition.match("GET https://h/missing") is None

    async def test_keys_in_insertion_order(self, store) -> None:
        partition = await store.open("dynamic-v1")
        for name in ("a", "b", "c"):
            await partition.put(f"GET https://h/{name}", _entry(name))
        assert await partition.keys() == ["GET https://h/a", "GET https://h/b", "GET https://h/c"]
        assert await partition.size() == 3

    async def test_overwrite_replaces_and_moves_to_newest(self, store) -> None:
        partition = await store.open("dynamic-v1")
        for name in ("a", "b", "c"):
            await partition.put(f"GET https://h/{name}", _entry(name))
        await partition.put("GET https://h/a", _entry("a2"))

        assert await partition.keys() == ["GET https://h/b", "GET https://h/c", "GET https://h/a"]
        assert (await partition.match("GET https://h/a")).body == b"a2"

    async def test_delete(self, store) -> None:
        partition = await store.open("dynamic-v1")
        await partition.put("GET https://h/a", _entry("a"))
        assert await partition.delete("GET https://h/a") is True
        assert await partition.delete("GET https://h/a") is False
        assert await partition.size() == 0

    async def test_require_raises_partition_miss(self, store) -> None:
        partition = await store.open("static-v1")
        with pytest.raises(PartitionMiss) as exc_info:
            await partition.require("GET https://h/nope")
        assert exc_info.value.partition == "static-v1"
        assert exc_info.value.exit_code == 4


# ------------------------------------------------------------------ #
# Store operations
# ------------------------------------------------------------------ #


class TestStore:
    async def test_open_creates_partition(self, store) -> None:
        assert await store.has("static-v1") is False
        await store.open("static-v1")
        assert await store.has("static-v1") is True
        assert await store.keys() == ["static-v1"]

    async def test_delete_partition(self, store) -> None:
        partition = await store.open("static-v1")
        await partition.put("GET https://h/", _entry("home"))
        assert await store.delete("static-v1") is True
        assert await store.has("static-v1") is False
        assert await store.delete("static-v1") is False

    async def test_deleted_partition_reopens_empty(self, store) -> None:
        partition = await store.open("static-v1")
        await partition.put("GET https://h/", _entry("home"))
        await store.delete("static-v1")
        partition = await store.open("static-v1")
        assert await partition.size() == 0

    async def test_match_in_named_partition(self, store) -> None:
        await (await store.open("static-v1")).put("GET https://h/", _entry("v1"))
        await (await store.open("static-v2")).put("GET https://h/", _entry("v2"))
        assert (await store.match("GET https://h/", "static-v2")).body == b"v2"

    async def test_match_across_partitions(self, store) -> None:
        await (await store.open("dynamic-v1")).put("GET https://h/api", _entry("api"))
        entry = await store.match("GET https://h/api")
        assert entry is not None
        assert entry.body == b"api"

    async def test_match_does_not_create_partition(self, store) -> None:
        assert await store.match("GET https://h/", "static-v9") is None
        assert await store.has("static-v9") is False

    async def test_metadata_round_trip(self, store) -> None:
        assert await store.get_meta("current-partitions") is None
        await store.set_meta("current-partitions", {"static": "static-v1"})
        assert await store.get_meta("current-partitions") == {"static": "static-v1"}
        await store.set_meta("current-partitions", None)
        assert await store.get_meta("current-partitions") is None

    async def test_metadata_is_not_a_partition(self, store) -> None:
        await store.set_meta("current-partitions", {"static": "static-v1"})
        assert await store.keys() == []


# ------------------------------------------------------------------ #
# Disk-specific behaviour
# ------------------------------------------------------------------ #


class TestDiskCacheStore:
    async def test_entries_survive_reopen(self, tmp_path: Path) -> None:
        first = DiskCacheStore(tmp_path)
        partition = await first.open("dynamic-v1")
        await partition.put("GET https://h/a", _entry("a"))
        await partition.put("GET https://h/b", _entry("b"))
        await first.close()

        second = DiskCacheStore(tmp_path)
        try:
            assert await second.keys() == ["dynamic-v1"]
            reopened = await second.open("dynamic-v1")
            assert await reopened.keys() == ["GET https://h/a", "GET https://h/b"]
            entry = await reopened.match("GET https://h/b")
            assert entry.body == b"b"
            assert entry.headers == {"content-type": "text/plain"}
        finally:
            await second.close()

    async def test_metadata_survives_reopen(self, tmp_path: Path) -> None:
        first = DiskCacheStore(tmp_path)
        await first.set_meta("current-partitions", {"static": "static-v2", "dynamic": "dynamic-v2"})
        await first.close()

        second = DiskCacheStore(tmp_path)
        try:
            assert await second.get_meta("current-partitions") == {
                "static": "static-v2",
                "dynamic": "dynamic-v2",
            }
        finally:
            await second.close()

    async def test_directory_scans_run_in_worker_thread(self, tmp_path: Path, monkeypatch) -> None:
        store = DiskCacheStore(tmp_path)
        await store.open("static-v1")
        await store.close()

        offloaded = []
        to_thread = asyncio.to_thread

        async def spy(func, *args, **kwargs):
            offloaded.append(func)
            return await to_thread(func, *args, **kwargs)

        monkeypatch.setattr("swcache.store.disk.asyncio.to_thread", spy)
        try:
            assert await store.has("static-v1") is True
            assert await store.keys() == ["static-v1"]
        finally:
            await store.close()
        assert len(offloaded) == 2

    async def test_partitions_live_under_root(self, tmp_path: Path) -> None:
        store = DiskCacheStore(tmp_path)
        await store.open("static-v1")
        assert (tmp_path / "partitions" / "static-v1").is_dir()
        assert store.directory == tmp_path / "partitions"
        await store.close()

    async def test_delete_removes_directory(self, tmp_path: Path) -> None:
        store = DiskCacheStore(tmp_path)
        await store.open("static-v1")
        await store.delete("static-v1")
        assert not (tmp_path / "partitions" / "static-v1").exists()
        await store.close()

    @pytest.mark.parametrize("name", ["../escape", "a/b", "", ".hidden"])
    async def test_invalid_partition_name_rejected(self, tmp_path: Path, name: str) -> None:
        store = DiskCacheStore(tmp_path)
        with pytest.raises(ValueError, match="Invalid partition name"):
            await store.open(name)
        await store.close()
