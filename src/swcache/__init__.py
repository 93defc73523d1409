"""swcache -- a versioned, strategy-driven response cache that sits in front of the network.

Every outbound GET is classified into one of three caching strategies
(cache-first, network-first, stale-while-revalidate) and served from a
named, versioned *partition* of a pluggable store, from the network, or
from both. Partitions follow an install/activate/evict lifecycle and can
be managed out-of-band through a small control-message protocol.

Typical embedding::

    async with Fetcher(config) as fetcher:
        async with CacheWorker(config, MemoryCacheStore(), fetcher) as worker:
            await worker.dispatch(Install())
            await worker.dispatch(Activate())
            response = await worker.dispatch(Fetch(FetchRequest(url="/index.html")))

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration files and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    worker: Event dispatcher wiring every component together.
"""

__version__ = "0.1.0"
