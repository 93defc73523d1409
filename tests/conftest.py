"""Shared test fixtures for swcache.

Provides a scripted origin server behind :class:`httpx.MockTransport`,
ready-made engine components wired to an in-memory store, isolated
configuration directories, and resets of the global output and logging
state between tests.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx
import pytest

from swcache.host import InProcessHost
from swcache.models import CachedResponse, EngineConfig
from swcache.network import Fetcher
from swcache.output import reset_output
from swcache.partitions import PartitionManager
from swcache.store.base import CacheStore, request_key
from swcache.store.memory import MemoryCacheStore
from swcache.strategies import CacheStrategyEngine

ORIGIN = "https://notes.example.com"


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams and the
    test finishes, the cached references become stale.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _reset_logging_between_tests() -> None:
    """Drop the Rich handler the CLI attaches to the ``swcache`` logger."""
    yield
    logger = logging.getLogger("swcache")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Scripted origin server
# ---------------------------------------------------------------------------


class FakeOrigin:
    """Answers requests from a route table; unknown URLs get a 404.

    Attributes:
        calls: Every requested URL, in order.
        offline: When set, every request fails with a connection error.
        gate: When set, requests block until the event is set.
    """

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, bytes, dict[str, str]]] = {}
        self.calls: list[str] = []
        self.offline = False
        self.gate: Optional[asyncio.Event] = None

    def route(
        self,
        url: str,
        body: str = "",
        status: int = 200,
        content_type: str = "text/plain",
    ) -> None:
        if url.startswith("/"):
            url = f"{ORIGIN}{url}"
        self.routes[url] = (status, body.encode(), {"content-type": content_type})

    def remove(self, url: str) -> None:
        self.routes.pop(f"{ORIGIN}{url}" if url.startswith("/") else url, None)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(str(request.url))
        if self.gate is not None:
            await self.gate.wait()
        if self.offline:
            raise httpx.ConnectError("network is unreachable", request=request)
        status, body, headers = self.routes.get(str(request.url), (404, b"not found", {}))
        return httpx.Response(status, content=body, headers=headers)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def origin_server() -> FakeOrigin:
    """An origin serving every default manifest entry plus a small API."""
    server = FakeOrigin()
    server.route("/", "<html>home</html>", content_type="text/html")
    server.route("/index.html", "<html>index</html>", content_type="text/html")
    server.route("/style.css", "body {}", content_type="text/css")
    server.route("/script.js", "console.log(1)", content_type="application/javascript")
    server.route("/manifest.json", '{"name": "notes"}', content_type="application/json")
    server.route("/api/notes", '[{"id": 1}]', content_type="application/json")
    return server


# ---------------------------------------------------------------------------
# Engine components
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(origin=ORIGIN, version="1")


@pytest.fixture
def store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture
def host() -> InProcessHost:
    return InProcessHost()


@pytest.fixture
async def fetcher(config: EngineConfig, origin_server: FakeOrigin) -> Fetcher:
    async with Fetcher(config, transport=origin_server.transport(), backoff_seconds=0) as f:
        yield f


@pytest.fixture
def partitions(
    config: EngineConfig, store: MemoryCacheStore, fetcher: Fetcher, host: InProcessHost
) -> PartitionManager:
    return PartitionManager(config, store, fetcher, host)


@pytest.fixture
async def engine(
    config: EngineConfig,
    store: MemoryCacheStore,
    fetcher: Fetcher,
    partitions: PartitionManager,
) -> CacheStrategyEngine:
    engine = CacheStrategyEngine(config, store, fetcher, partitions)
    yield engine
    await engine.drain()


async def seed(
    store: CacheStore,
    partition: str,
    url: str,
    body: str,
    status: int = 200,
) -> str:
    """Store a text entry for ``GET url`` in *partition* and return its key."""
    if url.startswith("/"):
        url = f"{ORIGIN}{url}"
    key = request_key("GET", url)
    entry = CachedResponse(
        url=url, status=status, headers={"content-type": "text/plain"}, body=body.encode()
    )
    await (await store.open(partition)).put(key, entry)
    return key


async def stored_body(store: CacheStore, partition: str, url: str) -> Optional[str]:
    if url.startswith("/"):
        url = f"{ORIGIN}{url}"
    entry = await store.match(request_key("GET", url), partition)
    return None if entry is None else entry.body.decode()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and the partition store to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME and XDG_DATA_HOME to
    subdirectories of tmp_path, clears all SWCACHE_* environment
    variables and changes the working directory to tmp_path.
    """
    monkeypatch.setattr("swcache.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["SWCACHE_ORIGIN", "SWCACHE_VERSION", "SWCACHE_STORE_DIR"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path
