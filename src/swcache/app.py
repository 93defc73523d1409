"""Typer application and CLI entry point for swcache.

This module wires the top-level Typer application, registers the engine
commands (``install``, ``activate``, ``fetch``, ``control``,
``partitions``, ``sweep``) and the ``config`` sub-group, and configures
output and logging from the global flags.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. Unhandled exceptions are written to a crash log under
the data directory.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from swcache import __version__
from swcache.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="swcache",
    help="Versioned cache-first / network-first / stale-while-revalidate response cache.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"swcache {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool, console: Console) -> None:
    """Route the ``swcache`` logger hierarchy through a Rich handler on *console*."""
    logger = logging.getLogger("swcache")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.addHandler(RichHandler(console=console, show_path=False, markup=False))
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    origin: Optional[str] = typer.Option(
        None, "--origin", help="Origin the engine serves (overrides config)."
    ),
    engine_version: Optional[str] = typer.Option(
        None, "--engine-version", help="Partition version tag (overrides config)."
    ),
    store_dir: Optional[str] = typer.Option(
        None, "--store-dir", help="Directory holding the persistent partitions."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~swcache.output.OutputManager`, attaches a
    Rich log handler, and stores the engine overrides in ``ctx.obj``.
    """
    from swcache.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    configure_logging(verbose, output.stderr_console)

    ctx.ensure_object(dict)
    ctx.obj["origin"] = origin
    ctx.obj["engine_version"] = engine_version
    ctx.obj["store_dir"] = store_dir


def _register_commands() -> None:
    from swcache.commands.cache import (
        activate_command,
        control_command,
        fetch_command,
        install_command,
        partitions_command,
        sweep_command,
    )
    from swcache.commands.config import config_app

    app.command("install")(install_command)
    app.command("activate")(activate_command)
    app.command("fetch")(fetch_command)
    app.command("control")(control_command)
    app.command("partitions")(partitions_command)
    app.command("sweep")(sweep_command)
    app.add_typer(config_app, name="config", help="Configuration management.")


_register_commands()


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback under the data directory and return its path."""
    from swcache.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``swcache`` console script.

    :class:`~swcache.exceptions.SwcacheError` exits with the error's
    ``exit_code``; anything else produces a crash log and a generic
    failure exit.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from swcache.exceptions import SwcacheError
        from swcache.output import error

        if isinstance(exc, SwcacheError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
