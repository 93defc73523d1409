"""Periodic maintenance and host-driven notifications.

:class:`MaintenanceScheduler` runs the eviction sweep on a fixed interval,
independent of request volume, and turns host signals into actions:

* network reconnect -> register the configured background-sync tag
* background-sync event for that tag -> ``SYNC_NOTES`` to every client
* push delivery -> ``BACKUP_NOTES`` to every client

Notifications are fire-and-forget. There is no acknowledgement, no retry
and no persistence; a client that fails to receive one does not stop
delivery to the others.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from swcache.host import Host
from swcache.models import ClientNotification, EngineConfig
from swcache.partitions import PartitionManager

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    def __init__(self, config: EngineConfig, partitions: PartitionManager, host: Host) -> None:
        self._config = config
        self._partitions = partitions
        self._host = host
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop. Idempotent."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="swcache-eviction")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def sweep(self) -> int:
        """Run one eviction sweep now. Returns the number of entries removed."""
        return await self._partitions.sweep()

    async def _run(self) -> None:
        interval = self._config.eviction_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                removed = await self.sweep()
            except Exception:
                logger.exception("Eviction sweep failed")
            else:
                logger.debug("Eviction sweep removed %d entries", removed)

    # ------------------------------------------------------------------ #
    # Host signals
    # ------------------------------------------------------------------ #

    async def on_network_status(self, online: bool) -> None:
        if not online:
            logger.info("Network offline")
            return
        logger.info("Network back online; registering sync '%s'", self._config.sync_tag)
        await self._host.register_sync(self._config.sync_tag)

    async def on_sync(self, tag: str) -> int:
        """Handle a background-sync event. Returns the number of clients notified."""
        if tag != self._config.sync_tag:
            logger.debug("Ignoring sync event '%s'", tag)
            return 0
        return await self._notify(ClientNotification(type="SYNC_NOTES"))

    async def on_push(self, payload: Any = None) -> int:
        """Handle a push delivery. Returns the number of clients notified."""
        return await self._notify(ClientNotification(type="BACKUP_NOTES"))

    async def _notify(self, notification: ClientNotification) -> int:
        clients = await self._host.clients()
        message = notification.model_dump()
        results = await asyncio.gather(
            *(client.post_message(message) for client in clients),
            return_exceptions=True,
        )
        delivered = 0
        for client, result in zip(clients, results):
            if isinstance(result, BaseException):
                logger.debug("Could not notify %s: %s", client.id, result)
            else:
                delivered += 1
        return delivered
