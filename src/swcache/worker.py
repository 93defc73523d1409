"""Event dispatcher tying the engine components together.

The host drives the engine with a closed set of events:

``Install | Activate | Fetch | Message | PeriodicSweep | NetworkStatusChange | Sync | Push``

:meth:`CacheWorker.dispatch` routes each one to a single async handler.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from swcache.classifier import RequestClassifier
from swcache.control import ControlChannel, ReplyChannel
from swcache.host import Host, InProcessHost
from swcache.models import EngineConfig, FetchRequest
from swcache.network import Fetcher
from swcache.partitions import PartitionManager
from swcache.scheduler import MaintenanceScheduler
from swcache.strategies import CacheStrategyEngine
from swcache.store.base import CacheStore


@dataclass(frozen=True)
class Install:
    pass


@dataclass(frozen=True)
class Activate:
    pass


@dataclass(frozen=True)
class Fetch:
    request: FetchRequest


@dataclass(frozen=True)
class Message:
    data: Any
    reply: Optional[ReplyChannel] = None


@dataclass(frozen=True)
class PeriodicSweep:
    pass


@dataclass(frozen=True)
class NetworkStatusChange:
    online: bool


@dataclass(frozen=True)
class Sync:
    tag: str


@dataclass(frozen=True)
class Push:
    payload: Any = None


Event = Union[Install, Activate, Fetch, Message, PeriodicSweep, NetworkStatusChange, Sync, Push]


class CacheWorker:
    """One engine instance: store, network, host and every component on top.

    Use as an async context manager to restore state from the store and
    run the periodic eviction sweep for the lifetime of the block.

    Args:
        config: Engine configuration.
        store: Partition store.
        fetcher: Network access (already entered).
        host: Hosting environment; an :class:`~swcache.host.InProcessHost`
            is created when omitted.
        classifier: Custom request classifier.

    Example::

        async with CacheWorker(config, store, fetcher) as worker:
            await worker.dispatch(Install())
            await worker.dispatch(Activate())
            response = await worker.dispatch(Fetch(FetchRequest(url="/")))
    """

    def __init__(
        self,
        config: EngineConfig,
        store: CacheStore,
        fetcher: Fetcher,
        host: Optional[Host] = None,
        classifier: Optional[RequestClassifier] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.host = host or InProcessHost()
        self.partitions = PartitionManager(config, store, fetcher, self.host)
        self.engine = CacheStrategyEngine(config, store, fetcher, self.partitions, classifier)
        self.control = ControlChannel(self.partitions, self.engine, config.prefetch_retries)
        self.scheduler = MaintenanceScheduler(config, self.partitions, self.host)
        self._handlers: dict[type, Callable[[Any], Awaitable[Any]]] = {
            Install: self._on_install,
            Activate: self._on_activate,
            Fetch: self._on_fetch,
            Message: self._on_message,
            PeriodicSweep: self._on_sweep,
            NetworkStatusChange: self._on_network_status,
            Sync: self._on_sync,
            Push: self._on_push,
        }

    async def __aenter__(self) -> CacheWorker:
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def start(self) -> None:
        await self.partitions.restore()
        self.scheduler.start()

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.engine.drain()

    async def dispatch(self, event: Event) -> Any:
        """Handle *event* and return its result.

        ``Install`` returns the written keys (and raises
        :class:`~swcache.exceptions.InstallFailure`), ``Activate`` the
        deleted partition names, ``Fetch`` an :class:`httpx.Response`,
        ``Message`` the reply model or ``None``, ``PeriodicSweep`` the
        number of evicted entries, ``Sync``/``Push`` the number of
        clients notified.
        """
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unsupported event: {event!r}")
        return await handler(event)

    async def _on_install(self, event: Install) -> list[str]:
        return await self.partitions.install()

    async def _on_activate(self, event: Activate) -> list[str]:
        return await self.partitions.activate()

    async def _on_fetch(self, event: Fetch):
        return await self.engine.handle(event.request)

    async def _on_message(self, event: Message):
        return await self.control.handle(event.data, event.reply)

    async def _on_sweep(self, event: PeriodicSweep) -> int:
        return await self.scheduler.sweep()

    async def _on_network_status(self, event: NetworkStatusChange) -> None:
        await self.scheduler.on_network_status(event.online)

    async def _on_sync(self, event: Sync) -> int:
        return await self.scheduler.on_sync(event.tag)

    async def _on_push(self, event: Push) -> int:
        return await self.scheduler.on_push(event.payload)
