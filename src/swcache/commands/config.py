"""Config commands -- view and modify global configuration.

Provides the ``swcache config`` sub-command group for reading, updating
and resetting the user's global configuration file
(:class:`~swcache.models.GlobalConfig`). Engine settings live under the
``engine`` key, e.g. ``engine.version`` or ``engine.max_dynamic_entries``.
"""

from __future__ import annotations

from typing import Any

import typer
from pydantic import ValidationError

from swcache.output import error, format_response, info, success

config_app = typer.Typer(no_args_is_help=True)


def _coerce(current: Any, value: str) -> Any:
    """Convert *value* to the type of the field's *current* value.

    Raises:
        ValueError: If *value* does not parse as a number where one is expected.
    """
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    if isinstance(current, list):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


@config_app.command("show")
def config_show() -> None:
    """Show current configuration.

    Example::

        swcache config show
        swcache --json config show
    """
    from swcache.config import get_config_dir, load_global_config

    config = load_global_config()
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key (dot notation, e.g., 'engine.version')."),
    value: str = typer.Argument(help="Value to set. Lists are comma-separated."),
) -> None:
    """Set a configuration value.

    The value is coerced to the existing field's type (bool, int, float,
    comma-separated list or str) and the result is validated against
    :class:`~swcache.models.GlobalConfig` before saving.

    Raises:
        typer.Exit: With code 2 if the key path is invalid, the value
            cannot be coerced, or validation fails.

    Example::

        swcache config set engine.version 2
        swcache config set engine.manifest /,/index.html,/app.js
        swcache config set store_dir /var/cache/swcache
    """
    from swcache.config import load_global_config, save_global_config
    from swcache.models import GlobalConfig

    data = load_global_config().model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    try:
        coerced = _coerce(target[final_key], value)
    except ValueError:
        error(f"Expected a number for {key}, got: {value}")
        raise typer.Exit(code=2) from None
    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask for confirmation."),
) -> None:
    """Reset configuration to defaults.

    Example::

        swcache config reset --force
    """
    from swcache.config import save_global_config
    from swcache.models import GlobalConfig

    if not force and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
