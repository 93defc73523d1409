"""Asynchronous network access for the cache engine.

:class:`Fetcher` wraps :class:`httpx.AsyncClient` and is the only place
the engine touches the network. It resolves root-relative URLs against
the configured origin, bounds every fetch with the configured timeout,
maps transport errors onto :class:`~swcache.exceptions.NetworkFailure`,
and can retry with exponential backoff (used for PREFETCH).

A resolved fetch is *not* a failure even when the status is an error:
like the platform ``fetch()``, only rejections raise. Use
:func:`ensure_ok` where a non-2xx status must count as a failure.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from swcache.exceptions import NetworkFailure
from swcache.models import EngineConfig, FetchRequest, origin_of

logger = logging.getLogger(__name__)


def ensure_ok(response: httpx.Response) -> httpx.Response:
    """Return *response* if its status is 2xx, else raise :class:`NetworkFailure`."""
    if not response.is_success:
        raise NetworkFailure(
            f"HTTP {response.status_code} for {response.url}", response=response
        )
    return response


class Fetcher:
    """Network capability handed to the strategy engine and partition manager.

    Must be used as an async context manager.

    Args:
        config: Engine configuration (origin and fetch timeout).
        transport: Optional httpx transport; tests pass an
            :class:`httpx.MockTransport`.
        backoff_seconds: Base delay for retries. The delay doubles each
            attempt: ``backoff``, ``2 * backoff``, ``4 * backoff``, ...

    Example::

        async with Fetcher(config) as fetcher:
            response = await fetcher.fetch(FetchRequest(url="/index.html"))
    """

    def __init__(
        self,
        config: EngineConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        backoff_seconds: float = 1.0,
    ) -> None:
        self._config = config
        self._transport = transport
        self._backoff = backoff_seconds
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> Fetcher:
        self._client = httpx.AsyncClient(
            timeout=self._config.fetch_timeout_seconds,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def response_type(self, response: httpx.Response) -> str:
        """``"basic"`` when *response* came from the engine's own origin, else ``"cors"``."""
        return "basic" if origin_of(str(response.url)) == self._config.origin else "cors"

    async def fetch(self, request: FetchRequest | str, retries: int = 0) -> httpx.Response:
        """Send *request* over the network.

        Args:
            request: The request, or a bare URL for a plain GET.
            retries: Extra attempts after a transport error or 5xx.

        Returns:
            The :class:`httpx.Response`, whatever its status.

        Raises:
            NetworkFailure: The request was rejected (connection error,
                timeout, ...) on every attempt.
        """
        assert self._client is not None, "Fetcher not initialised -- use as async context manager"

        if isinstance(request, str):
            request = FetchRequest(url=request)
        url = self._config.resolve(request.url)
        last_error: Optional[NetworkFailure] = None

        for attempt in range(retries + 1):
            last_error = None
            try:
                response = await self._client.request(
                    request.method.upper(), url, headers=request.headers, content=request.content,
                )
            except httpx.TimeoutException as exc:
                last_error = NetworkFailure(f"Timed out fetching {url}")
                last_error.__cause__ = exc
            except httpx.TransportError as exc:
                last_error = NetworkFailure(f"Fetch failed for {url}: {exc}")
                last_error.__cause__ = exc
            else:
                if response.status_code < 500 or attempt >= retries:
                    return response
                logger.debug(
                    "Server error %s for %s, retrying (attempt %d/%d)",
                    response.status_code, url, attempt + 1, retries,
                )

            if attempt < retries:
                delay = self._backoff * 2 ** attempt
                if last_error is not None:
                    logger.debug(
                        "%s, retrying in %ss (attempt %d/%d)", last_error, delay, attempt + 1, retries,
                    )
                await asyncio.sleep(delay)

        assert last_error is not None
        raise last_error
