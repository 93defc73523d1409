"""The three caching algorithms and the request-level failure boundary.

* **Cache-first** -- serve a stored entry immediately and refresh it in the
  background; on a miss, fetch, store and return.
* **Network-first** -- fetch; store and return an ok response. On rejection
  or a non-ok status fall back to the stored entry, re-raising the original
  failure when there is none.
* **Stale-while-revalidate** -- start a network update at once; return the
  stored entry without waiting for it, or await it on a miss.

Only responses with status 200 from the engine's own origin are stored.

Background updates are fire-and-forget. Two writers racing on the same key
resolve as last-write-wins; there is no ordering between a background
refresh and a concurrent foreground write.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Coroutine, Optional

import httpx

from swcache.classifier import RequestClassifier
from swcache.exceptions import NetworkFailure
from swcache.models import (
    CachedResponse,
    Classification,
    EngineConfig,
    FetchRequest,
    PartitionRole,
    Strategy,
)
from swcache.network import Fetcher, ensure_ok
from swcache.partitions import PartitionManager
from swcache.store.base import CacheStore, request_key

logger = logging.getLogger(__name__)

StrategyHandler = Callable[[FetchRequest, str, str], Awaitable[httpx.Response]]


def synthesize_response(request: FetchRequest, status: int, text: str) -> httpx.Response:
    """Build a locally generated plain-text response for *request*.

    The response carries no request when *request*'s URL cannot be parsed.
    """
    try:
        origin_request: Optional[httpx.Request] = httpx.Request(request.method.upper(), request.url)
    except (httpx.InvalidURL, ValueError):
        origin_request = None
    return httpx.Response(
        status_code=status,
        headers={"content-type": "text/plain; charset=utf-8"},
        text=text,
        request=origin_request,
    )


class CacheStrategyEngine:
    """Executes caching strategies against a :class:`~swcache.store.base.CacheStore`.

    Args:
        config: Engine configuration.
        store: Partition store.
        fetcher: Network access.
        partitions: Resolves the current partition name for a role.
        classifier: Request classifier; the default rule set is used when
            omitted.

    Example::

        engine = CacheStrategyEngine(config, store, fetcher, partitions)
        response = await engine.handle(FetchRequest(url="/api/notes"))
    """

    def __init__(
        self,
        config: EngineConfig,
        store: CacheStore,
        fetcher: Fetcher,
        partitions: PartitionManager,
        classifier: Optional[RequestClassifier] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._fetcher = fetcher
        self._partitions = partitions
        self._classifier = classifier or RequestClassifier(config)
        self._background: set[asyncio.Task] = set()
        self._handlers: dict[Strategy, StrategyHandler] = {
            Strategy.CACHE_FIRST: self.cache_first,
            Strategy.NETWORK_FIRST: self.network_first,
            Strategy.STALE_WHILE_REVALIDATE: self.stale_while_revalidate,
        }

    @property
    def classifier(self) -> RequestClassifier:
        return self._classifier

    @property
    def pending(self) -> int:
        """Number of background updates still in flight."""
        return len(self._background)

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    async def handle(self, request: FetchRequest) -> httpx.Response:
        """Serve *request*, never raising for intercepted requests.

        Bypassed requests (non-GET, non-http) go straight to the network
        unmodified. For intercepted requests any failure is turned into
        the cached offline document (navigations) or a 503 response.
        """
        request = request.model_copy(update={"url": self._config.resolve(request.url)})
        try:
            classification = self._classifier.classify(request)
        except Exception as exc:
            logger.debug("Cannot classify %s: %s", request.url, exc)
            return await self._fallback(request)
        if classification is None:
            logger.debug("Bypassing %s %s", request.method, request.url)
            return await self._fetcher.fetch(request)

        try:
            return await self.execute(classification, request)
        except Exception as exc:
            logger.debug("Falling back for %s: %s", request.url, exc)
            return await self._fallback(request)

    async def execute(self, classification: Classification, request: FetchRequest) -> httpx.Response:
        """Run the strategy chosen by *classification* without the failure boundary."""
        partition = self._partitions.current_name(classification.role)
        key = request_key(request.method, request.url)
        handler = self._handlers[classification.strategy]
        return await handler(request, partition, key)

    async def store_from_network(
        self,
        request: FetchRequest | str,
        role: PartitionRole = PartitionRole.DYNAMIC,
        retries: int = 0,
    ) -> bool:
        """Fetch *request* and store it in the current partition for *role*.

        Returns:
            ``True`` if the response was eligible and stored.

        Raises:
            NetworkFailure: The fetch was rejected or returned a non-ok status.
        """
        if isinstance(request, str):
            request = FetchRequest(url=request)
        request = request.model_copy(update={"url": self._config.resolve(request.url)})
        response = ensure_ok(await self._fetcher.fetch(request, retries=retries))
        key = request_key(request.method, request.url)
        return await self._store_if_eligible(self._partitions.current_name(role), key, response)

    # ------------------------------------------------------------------ #
    # Strategies
    # ------------------------------------------------------------------ #

    async def cache_first(self, request: FetchRequest, partition: str, key: str) -> httpx.Response:
        cached = await self._store.match(key, partition)
        if cached is not None:
            logger.debug("Cache hit for %s in %s", key, partition)
            self._spawn(self._fetch_and_store(request, partition, key), key)
            return cached.to_response()

        logger.debug("Cache miss for %s in %s", key, partition)
        return await self._fetch_and_store(request, partition, key)

    async def network_first(self, request: FetchRequest, partition: str, key: str) -> httpx.Response:
        try:
            response = ensure_ok(await self._fetcher.fetch(request))
        except NetworkFailure as exc:
            cached = await self._store.match(key, partition)
            if cached is None:
                raise
            logger.debug("Network failed for %s (%s); serving cached copy", key, exc)
            return cached.to_response()

        await self._store_if_eligible(partition, key, response)
        return response

    async def stale_while_revalidate(
        self, request: FetchRequest, partition: str, key: str
    ) -> httpx.Response:
        cached = await self._store.match(key, partition)
        update = self._spawn(self._fetch_and_store(request, partition, key), key)
        if cached is not None:
            logger.debug("Serving stale %s while revalidating", key)
            return cached.to_response()
        return await update

    # ------------------------------------------------------------------ #
    # Background work
    # ------------------------------------------------------------------ #

    async def drain(self) -> None:
        """Wait until every background update has settled."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _spawn(self, coro: Coroutine[object, object, httpx.Response], key: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._background.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                logger.debug("Background update for %s failed: %s", key, exc)

        task.add_done_callback(_done)
        return task

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    async def _fetch_and_store(self, request: FetchRequest, partition: str, key: str) -> httpx.Response:
        response = await self._fetcher.fetch(request)
        await self._store_if_eligible(partition, key, response)
        return response

    async def _store_if_eligible(self, partition: str, key: str, response: httpx.Response) -> bool:
        if response.status_code != 200:
            return False
        response_type = self._fetcher.response_type(response)
        if response_type != "basic":
            return False
        entry = CachedResponse.from_response(response, response_type)
        await (await self._store.open(partition)).put(key, entry)
        return True

    async def _fallback(self, request: FetchRequest) -> httpx.Response:
        if request.is_navigation:
            offline_key = request_key("GET", self._config.resolve(self._config.offline_document))
            cached = await self._store.match(
                offline_key, self._partitions.current_name(PartitionRole.STATIC)
            )
            if cached is not None:
                return cached.to_response()
            return synthesize_response(request, 503, "Offline")
        return synthesize_response(request, 503, "Network error")
