"""Engine commands -- drive a persistent cache worker from the shell.

Each command resolves the effective configuration (see
:func:`~swcache.config.resolve_config`), opens the on-disk partition
store, runs one engine operation, and exits. Engine errors are reported
on stderr and mapped to their exit codes.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Coroutine, Optional, TypeVar

import typer

from swcache.exceptions import SwcacheError
from swcache.models import EngineConfig, FetchRequest
from swcache.network import Fetcher
from swcache.output import (
    error,
    format_http_response,
    format_response,
    info,
    print_table,
    success,
)
from swcache.store.disk import DiskCacheStore
from swcache.worker import Activate, CacheWorker, Fetch, Install, Message, PeriodicSweep

T = TypeVar("T")


def _make_fetcher(engine: EngineConfig) -> Fetcher:
    return Fetcher(engine)


@asynccontextmanager
async def open_worker(ctx: typer.Context) -> AsyncIterator[CacheWorker]:
    """Build a :class:`~swcache.worker.CacheWorker` over the configured disk store."""
    from swcache.config import resolve_config

    obj = ctx.obj or {}
    _, engine, store_dir = resolve_config(
        cli_origin=obj.get("origin"),
        cli_version=obj.get("engine_version"),
        cli_store_dir=obj.get("store_dir"),
    )
    store = DiskCacheStore(store_dir)
    try:
        async with _make_fetcher(engine) as fetcher:
            async with CacheWorker(engine, store, fetcher) as worker:
                yield worker
    finally:
        await store.close()


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except SwcacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def install_command(
    ctx: typer.Context,
    activate: bool = typer.Option(
        False, "--activate", help="Activate immediately after a successful install."
    ),
) -> None:
    """Pre-cache the manifest into the static partition.

    Example::

        swcache --origin https://notes.example.com install --activate
    """

    async def _install() -> tuple[str, int, list[str]]:
        async with open_worker(ctx) as worker:
            written = await worker.dispatch(Install())
            deleted = await worker.dispatch(Activate()) if activate else []
            return worker.config.static_name, len(written), deleted

    name, count, deleted = _run(_install())
    success(f"Installed {count} entries into {name}")
    if deleted:
        info(f"Deleted superseded partitions: {', '.join(deleted)}")


def activate_command(ctx: typer.Context) -> None:
    """Promote the declared partitions and delete all others."""

    async def _activate() -> list[str]:
        async with open_worker(ctx) as worker:
            return await worker.dispatch(Activate())

    deleted = _run(_activate())
    success(f"Deleted {len(deleted)} superseded partition(s)")
    for name in deleted:
        info(f"  {name}")


def fetch_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL or root-relative path."),
    navigate: bool = typer.Option(False, "--navigate", help="Treat as a page navigation."),
    destination: str = typer.Option("", "--destination", "-d", help="Request destination, e.g. image."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
) -> None:
    """Route a request through the engine and print the response."""
    request = FetchRequest(
        url=url,
        method=method.upper(),
        destination=destination,
        mode="navigate" if navigate else "cors",
    )

    async def _fetch():
        async with open_worker(ctx) as worker:
            response = await worker.dispatch(Fetch(request))
            await response.aread()
            return response

    format_http_response(_run(_fetch()))


def control_command(
    ctx: typer.Context,
    message_type: str = typer.Argument(
        metavar="TYPE", help="SKIP_WAITING, GET_VERSION, CLEAR_CACHE or PREFETCH."
    ),
    urls: Optional[list[str]] = typer.Option(
        None, "--url", "-u", help="URL to prefetch (repeatable)."
    ),
) -> None:
    """Send a control message and print the reply, if any."""
    from swcache.control import QueueReplyChannel

    message: dict[str, Any] = {"type": message_type.upper()}
    if urls:
        message["data"] = {"urls": list(urls)}

    async def _send():
        channel = QueueReplyChannel()
        async with open_worker(ctx) as worker:
            await worker.dispatch(Message(message, channel))
        return None if channel.empty() else await channel.receive()

    reply = _run(_send())
    if reply is None:
        info("No reply.")
        return
    format_response(reply.model_dump())


def partitions_command(ctx: typer.Context) -> None:
    """List stored partitions with their entry counts."""

    async def _stats():
        async with open_worker(ctx) as worker:
            return await worker.partitions.stats()

    rows = [
        [
            p.name,
            p.role.value if p.role else "-",
            p.state.value if p.state else "-",
            str(p.entries),
            "yes" if p.current else "",
        ]
        for p in _run(_stats())
    ]
    if not rows:
        info("No partitions stored.")
        return
    print_table(["name", "role", "state", "entries", "current"], rows, title="Partitions")


def sweep_command(ctx: typer.Context) -> None:
    """Run one eviction sweep on the dynamic partition."""

    async def _sweep() -> int:
        async with open_worker(ctx) as worker:
            return await worker.dispatch(PeriodicSweep())

    success(f"Evicted {_run(_sweep())} entries")
