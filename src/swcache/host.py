"""The hosting environment the engine runs inside.

The engine never talks to pages directly. Everything it needs from its
host -- skipping the activation wait, taking control of open clients,
enumerating in-scope clients and registering background-sync tasks -- goes
through the :class:`Host` capability. :class:`InProcessHost` is a complete
in-process implementation that records what was asked of it.
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional


class Client(ABC):
    """A page (or other consumer) controlled by the engine."""

    id: str

    @abstractmethod
    async def post_message(self, message: dict[str, Any]) -> None:
        """Deliver *message* to the client. No acknowledgement is expected."""


class Host(ABC):
    @abstractmethod
    async def skip_waiting(self) -> None:
        """Allow a freshly installed version to activate without waiting for old clients."""

    @abstractmethod
    async def claim_clients(self) -> None:
        """Take control of every open client without requiring a reload."""

    @abstractmethod
    async def clients(self) -> list[Client]:
        """Clients currently in scope."""

    @abstractmethod
    async def register_sync(self, tag: str) -> None:
        """Ask the host to fire a background-sync event named *tag* later."""


class InProcessClient(Client):
    """Client that keeps every received message in :attr:`messages`.

    Args:
        client_id: Identifier of the client.
        on_message: Optional callback invoked for each delivered message.
    """

    def __init__(
        self,
        client_id: str,
        on_message: Optional[Callable[[dict[str, Any]], None]] = None,
    ) -> None:
        self.id = client_id
        self.messages: list[dict[str, Any]] = []
        self._on_message = on_message

    async def post_message(self, message: dict[str, Any]) -> None:
        self.messages.append(message)
        if self._on_message is not None:
            self._on_message(message)


class InProcessHost(Host):
    """Host living in the same process as the engine.

    Attributes:
        waiting_skipped: Set once :meth:`skip_waiting` has been called.
        claimed: Set once :meth:`claim_clients` has been called.
        sync_registrations: Tags passed to :meth:`register_sync`, in order.
    """

    def __init__(self) -> None:
        self.waiting_skipped = False
        self.claimed = False
        self.sync_registrations: list[str] = []
        self._clients: dict[str, Client] = {}
        self._ids = itertools.count(1)

    def connect(self, client: Optional[Client] = None) -> Client:
        """Bring a client into scope. A fresh :class:`InProcessClient` is created when none is given."""
        if client is None:
            client = InProcessClient(f"client-{next(self._ids)}")
        self._clients[client.id] = client
        return client

    def disconnect(self, client_id: str) -> None:
        self._clients.pop(client_id, None)

    async def skip_waiting(self) -> None:
        self.waiting_skipped = True

    async def claim_clients(self) -> None:
        self.claimed = True

    async def clients(self) -> list[Client]:
        return list(self._clients.values())

    async def register_sync(self, tag: str) -> None:
        self.sync_registrations.append(tag)
