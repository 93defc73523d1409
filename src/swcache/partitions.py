"""Versioned partition lifecycle: install, activate, evict, clear.

Partition names are ``{role}-v{version}``. For each role exactly one
partition is *current*: the one last promoted by :meth:`activate`. The
promoted names are recorded in the store, so :meth:`restore` picks them up
in a later run; a store without that record falls back to the declared
name if stored, else the highest stored version.

Install is all-or-nothing. Every manifest entry is fetched first; entries
are only written once all fetches succeeded, and a write failure rolls
back whatever this attempt wrote, putting back any entry it replaced. A
failed install leaves the previously current partition authoritative and
blocks activation until the next successful install.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx

from swcache.exceptions import InstallFailure, NetworkFailure
from swcache.host import Host
from swcache.models import CachedResponse, EngineConfig, PartitionRole, PartitionState
from swcache.network import Fetcher, ensure_ok
from swcache.store.base import CacheStore, request_key

logger = logging.getLogger(__name__)

_NAME_PATTERN = re.compile(r"^(?P<role>[a-z]+)-v(?P<version>.+)$")
_CURRENT_META = "current-partitions"


def parse_partition_name(name: str) -> Optional[tuple[PartitionRole, str]]:
    """Split ``static-v3`` into ``(PartitionRole.STATIC, "3")``; ``None`` if not ours."""
    match = _NAME_PATTERN.match(name)
    if match is None:
        return None
    try:
        role = PartitionRole(match.group("role"))
    except ValueError:
        return None
    return role, match.group("version")


def _version_key(version: str) -> tuple:
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part)
        for part in re.split(r"[.\-]", version)
    )


@dataclass(frozen=True)
class PartitionInfo:
    name: str
    role: Optional[PartitionRole]
    state: Optional[PartitionState]
    entries: int
    current: bool


class PartitionManager:
    """Owns partition naming, population, cleanup and eviction.

    Args:
        config: Engine configuration (version, manifest, eviction cap).
        store: The partition store.
        fetcher: Network access used to populate the static partition.
        host: Hosting environment told to skip waiting and claim clients.
    """

    def __init__(
        self,
        config: EngineConfig,
        store: CacheStore,
        fetcher: Fetcher,
        host: Host,
    ) -> None:
        self._config = config
        self._store = store
        self._fetcher = fetcher
        self._host = host
        self._states: dict[str, PartitionState] = {}
        self._current: dict[PartitionRole, str] = {}
        self._install_failed = False
        self._lifecycle = asyncio.Lock()

    # ------------------------------------------------------------------ #
    # Naming and state
    # ------------------------------------------------------------------ #

    def declared_name(self, role: PartitionRole) -> str:
        return self._config.partition_name(role)

    def current_name(self, role: PartitionRole) -> str:
        """Name of the partition currently serving *role*."""
        return self._current.get(role, self.declared_name(role))

    def state(self, name: str) -> Optional[PartitionState]:
        return self._states.get(name)

    @property
    def pending_install(self) -> bool:
        """Whether a populated static partition is waiting for activation."""
        return self._states.get(self.declared_name(PartitionRole.STATIC)) == PartitionState.INSTALLED

    async def restore(self) -> None:
        """Adopt partitions left in the store by an earlier run as current.

        For each role the partition recorded by the last activation wins.
        Without a record the declared partition is used if it exists,
        otherwise the highest stored version of that role. A stored
        declared static partition that is not current is an install still
        waiting for activation.
        """
        stored = await self._store.keys()
        recorded = await self._store.get_meta(_CURRENT_META) or {}
        found: dict[PartitionRole, list[tuple[str, str]]] = {}
        for name in stored:
            parsed = parse_partition_name(name)
            if parsed is not None:
                found.setdefault(parsed[0], []).append((parsed[1], name))

        for role in PartitionRole:
            if role in self._current:
                continue
            chosen = recorded.get(role.value)
            if chosen is None:
                candidates = found.get(role)
                if not candidates:
                    continue
                declared = self.declared_name(role)
                names = [name for _, name in candidates]
                chosen = declared if declared in names else max(candidates, key=lambda c: _version_key(c[0]))[1]
            self._current[role] = chosen
            self._states[chosen] = PartitionState.ACTIVE
            logger.debug("Restored %s partition %s", role.value, chosen)

        pending = self.declared_name(PartitionRole.STATIC)
        if pending in stored and pending not in self._states:
            self._states[pending] = PartitionState.INSTALLED
            logger.debug("%s is installed and waiting for activation", pending)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def install(self) -> list[str]:
        """Pre-cache the manifest into the declared static partition.

        Returns:
            The store keys written.

        Raises:
            InstallFailure: At least one manifest entry could not be
                fetched (or stored). Nothing from this attempt persists.
        """
        async with self._lifecycle:
            name = self.declared_name(PartitionRole.STATIC)
            self._states[name] = PartitionState.INSTALLING
            logger.info("Installing %s (%d manifest entries)", name, len(self._config.manifest))

            results = await asyncio.gather(
                *(self._fetch_manifest_entry(path) for path in self._config.manifest),
                return_exceptions=True,
            )
            failed = [
                path
                for path, result in zip(self._config.manifest, results)
                if isinstance(result, BaseException)
            ]
            if failed:
                await self._abort_install(name, created=False)
                for result in results:
                    if isinstance(result, BaseException) and not isinstance(result, NetworkFailure):
                        raise result
                raise InstallFailure(name, failed)

            created = not await self._store.has(name)
            partition = await self._store.open(name)
            written: list[tuple[str, Optional[CachedResponse]]] = []
            try:
                for path, response in zip(self._config.manifest, results):
                    key = request_key("GET", self._config.resolve(path))
                    previous = None if created else await partition.match(key)
                    await partition.put(
                        key, CachedResponse.from_response(response, self._fetcher.response_type(response))
                    )
                    written.append((key, previous))
            except Exception as exc:
                for key, previous in reversed(written):
                    if previous is None:
                        await partition.delete(key)
                    else:
                        await partition.put(key, previous)
                await self._abort_install(name, created=created)
                raise InstallFailure(name, [str(exc)]) from exc

            self._states[name] = PartitionState.INSTALLED
            self._install_failed = False
            logger.info("Installed %s", name)

        await self._host.skip_waiting()
        return [key for key, _ in written]

    async def _fetch_manifest_entry(self, path: str) -> httpx.Response:
        return ensure_ok(await self._fetcher.fetch(path))

    async def _abort_install(self, name: str, created: bool) -> None:
        self._install_failed = True
        if created:
            await self._store.delete(name)
        if self._current.get(PartitionRole.STATIC) == name:
            self._states[name] = PartitionState.ACTIVE
        else:
            self._states.pop(name, None)
        logger.warning(
            "Install of %s failed; %s remains current",
            name, self._current.get(PartitionRole.STATIC, "no partition"),
        )

    async def activate(self) -> list[str]:
        """Promote the declared partitions and delete every undeclared one.

        Returns:
            Names of the partitions deleted.
        """
        async with self._lifecycle:
            if self._install_failed:
                logger.warning("Skipping activation: the last install failed")
                return []

            declared = self._config.declared_names
            deleted: list[str] = []
            for name in await self._store.keys():
                if name in declared:
                    continue
                self._states[name] = PartitionState.SUPERSEDED
                await self._store.delete(name)
                self._states[name] = PartitionState.DELETED
                deleted.append(name)

            for role in PartitionRole:
                name = self.declared_name(role)
                self._current[role] = name
                self._states[name] = PartitionState.ACTIVE
            await self._store.set_meta(
                _CURRENT_META, {role.value: name for role, name in self._current.items()}
            )
            logger.info("Activated %s; deleted %s", sorted(declared), deleted or "nothing")

        await self._host.claim_clients()
        return deleted

    async def skip_waiting(self) -> bool:
        """Force a pending install active now. Returns ``True`` if activation ran."""
        await self._host.skip_waiting()
        if not self.pending_install:
            return False
        await self.activate()
        return True

    async def clear_all(self) -> list[str]:
        """Delete every stored partition of every role and version."""
        async with self._lifecycle:
            names = await self._store.keys()
            for name in names:
                await self._store.delete(name)
                self._states[name] = PartitionState.DELETED
            self._current.clear()
            await self._store.set_meta(_CURRENT_META, None)
            logger.info("Cleared %d partitions", len(names))
            return names

    # ------------------------------------------------------------------ #
    # Eviction
    # ------------------------------------------------------------------ #

    async def evict(self, name: str, max_entries: int) -> int:
        """Trim partition *name* to *max_entries*, oldest insertions first.

        Returns:
            Number of entries removed.
        """
        if not await self._store.has(name):
            return 0
        partition = await self._store.open(name)
        keys = await partition.keys()
        removed = 0
        for key in keys[: max(len(keys) - max_entries, 0)]:
            if await partition.delete(key):
                removed += 1
        if removed:
            logger.debug("Evicted %d entries from %s", removed, name)
        return removed

    async def sweep(self) -> int:
        """Enforce the dynamic entry cap on the current dynamic partition."""
        return await self.evict(
            self.current_name(PartitionRole.DYNAMIC), self._config.max_dynamic_entries
        )

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    async def stats(self) -> list[PartitionInfo]:
        current = set(self._current.values()) or set(self._config.declared_names)
        infos = []
        for name in await self._store.keys():
            parsed = parse_partition_name(name)
            partition = await self._store.open(name)
            infos.append(
                PartitionInfo(
                    name=name,
                    role=parsed[0] if parsed else None,
                    state=self._states.get(name),
                    entries=await partition.size(),
                    current=name in current,
                )
            )
        return infos
