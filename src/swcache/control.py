"""Out-of-band control protocol.

Messages are ``{type, data?}`` envelopes, optionally paired with a
:class:`ReplyChannel`:

=============  ==================  ======================================
type           data                reply
=============  ==================  ======================================
SKIP_WAITING   --                  --
GET_VERSION    --                  ``{type: "VERSION", version}``
CLEAR_CACHE    --                  ``{type: "CACHE_CLEARED", success: true}``
PREFETCH       ``{urls: [...]}``   --
=============  ==================  ======================================

Malformed messages and unknown types are logged and dropped: no reply is
sent and nothing is raised back to the sender, so senders waiting for a
reply must apply their own timeout.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from pydantic import ValidationError

from swcache.exceptions import NetworkFailure, ProtocolError
from swcache.models import (
    CacheClearedReply,
    ControlMessage,
    ControlType,
    PartitionRole,
    PrefetchData,
    Reply,
    VersionReply,
)
from swcache.partitions import PartitionManager
from swcache.strategies import CacheStrategyEngine

logger = logging.getLogger(__name__)


class ReplyChannel(ABC):
    """Where replies to a control message are delivered."""

    @abstractmethod
    async def send(self, reply: Reply) -> None:
        """Deliver *reply* to the sender."""


class QueueReplyChannel(ReplyChannel):
    """Reply channel backed by an :class:`asyncio.Queue`.

    Example::

        channel = QueueReplyChannel()
        await control.handle({"type": "GET_VERSION"}, channel)
        reply = await channel.receive(timeout=1.0)
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Reply] = asyncio.Queue()

    async def send(self, reply: Reply) -> None:
        self._queue.put_nowait(reply)

    async def receive(self, timeout: Optional[float] = None) -> Reply:
        """Wait for the next reply; raises :class:`asyncio.TimeoutError` after *timeout*."""
        return await asyncio.wait_for(self._queue.get(), timeout)

    def empty(self) -> bool:
        return self._queue.empty()


class CallbackReplyChannel(ReplyChannel):
    """Reply channel that hands each reply, as a plain dict, to a callback."""

    def __init__(self, callback: Callable[[dict[str, Any]], Union[None, Awaitable[None]]]) -> None:
        self._callback = callback

    async def send(self, reply: Reply) -> None:
        result = self._callback(reply.model_dump())
        if asyncio.iscoroutine(result):
            await result


Handler = Callable[[ControlMessage], Awaitable[Optional[Reply]]]


class ControlChannel:
    """Decodes control messages and dispatches them.

    Args:
        partitions: Partition manager (skip-waiting, version, clear).
        engine: Strategy engine used to fetch and store PREFETCH URLs.
        prefetch_retries: Extra attempts per PREFETCH URL.
    """

    def __init__(
        self,
        partitions: PartitionManager,
        engine: CacheStrategyEngine,
        prefetch_retries: int = 0,
    ) -> None:
        self._partitions = partitions
        self._engine = engine
        self._prefetch_retries = prefetch_retries
        self._handlers: dict[ControlType, Handler] = {
            ControlType.SKIP_WAITING: self._skip_waiting,
            ControlType.GET_VERSION: self._get_version,
            ControlType.CLEAR_CACHE: self._clear_cache,
            ControlType.PREFETCH: self._prefetch,
        }

    @staticmethod
    def decode(message: Union[ControlMessage, Mapping[str, Any]]) -> ControlMessage:
        """Validate *message* into a :class:`~swcache.models.ControlMessage`.

        Raises:
            ProtocolError: The message is not a mapping, has no known
                ``type``, or its ``data`` is malformed.
        """
        if isinstance(message, ControlMessage):
            return message
        if not isinstance(message, Mapping):
            raise ProtocolError(f"Control message must be a mapping, got {type(message).__name__}")
        kind = message.get("type")
        if not isinstance(kind, str) or kind not in {t.value for t in ControlType}:
            raise ProtocolError(f"Unknown control message type: {kind!r}")
        try:
            return ControlMessage.model_validate(message)
        except ValidationError as exc:
            raise ProtocolError(f"Malformed {kind} message: {exc}") from exc

    async def handle(
        self,
        message: Union[ControlMessage, Mapping[str, Any]],
        reply: Optional[ReplyChannel] = None,
    ) -> Optional[Reply]:
        """Dispatch *message*; send the typed reply (if any) to *reply* and return it."""
        try:
            decoded = self.decode(message)
            result = await self._handlers[decoded.type](decoded)
        except ProtocolError as exc:
            logger.warning("Dropping control message: %s", exc)
            return None

        if result is not None and reply is not None:
            await reply.send(result)
        return result

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    async def _skip_waiting(self, message: ControlMessage) -> None:
        activated = await self._partitions.skip_waiting()
        logger.info("SKIP_WAITING received (%s)", "activated" if activated else "nothing pending")

    async def _get_version(self, message: ControlMessage) -> VersionReply:
        return VersionReply(version=self._partitions.current_name(PartitionRole.STATIC))

    async def _clear_cache(self, message: ControlMessage) -> CacheClearedReply:
        await self._partitions.clear_all()
        return CacheClearedReply(success=True)

    async def _prefetch(self, message: ControlMessage) -> None:
        try:
            data = PrefetchData.model_validate(message.data or {})
        except ValidationError as exc:
            raise ProtocolError(f"Malformed PREFETCH data: {exc}") from exc

        results = await asyncio.gather(*(self._prefetch_one(url) for url in data.urls))
        logger.info("Prefetched %d of %d URLs", sum(results), len(data.urls))

    async def _prefetch_one(self, url: str) -> bool:
        try:
            return await self._engine.store_from_network(url, retries=self._prefetch_retries)
        except NetworkFailure as exc:
            logger.debug("Prefetch of %s failed: %s", url, exc)
            return False

