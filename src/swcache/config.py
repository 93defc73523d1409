"""Configuration management with XDG paths, atomic writes, and precedence resolution.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.swcache/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir` and :func:`get_data_dir`.
* **Global config** -- a single :class:`~swcache.models.GlobalConfig`
  JSON file holding the engine settings and the store location.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config (``./swcache.json``) and
  the global config into the effective :class:`~swcache.models.EngineConfig`.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from swcache.exceptions import ConfigError
from swcache.models import EngineConfig, GlobalConfig

_APP_NAME = "swcache"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "swcache.json"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/swcache/`` (default ``~/.config/swcache/``).
    On macOS/Windows: ``~/.swcache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the default partition store directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CACHE_HOME/swcache/`` (default ``~/.cache/swcache/``).
    On macOS/Windows: ``~/.swcache/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/swcache/`` (default ``~/.local/share/swcache/``).
    On macOS/Windows: ``~/.swcache/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write *data* to *path* via a temp file in the same directory and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration, or defaults when no file exists.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local overrides from ``./swcache.json``.

    The file may carry an ``engine`` object (partial engine settings) and
    a ``store_dir`` string.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Project config at {path} must be a JSON object")
    return data


# --- Precedence resolution ---


def resolve_config(
    cli_origin: Optional[str] = None,
    cli_version: Optional[str] = None,
    cli_store_dir: Optional[str] = None,
) -> tuple[GlobalConfig, EngineConfig, Path]:
    """Resolve the effective engine configuration and store directory.

    Precedence (high to low):
        1. CLI flags
        2. Environment variables (``SWCACHE_ORIGIN``, ``SWCACHE_VERSION``,
           ``SWCACHE_STORE_DIR``)
        3. Project config (``./swcache.json``)
        4. User config (``~/.config/swcache/config.json``)
        5. Defaults

    Returns:
        ``(global_config, engine_config, store_dir)``.

    Raises:
        ConfigError: If the merged engine settings are invalid.
    """
    global_cfg = load_global_config()
    project = load_project_config() or {}

    engine_data = global_cfg.engine.model_dump(mode="json")
    project_engine = project.get("engine") or {}
    if not isinstance(project_engine, dict):
        raise ConfigError("Project config 'engine' must be a JSON object")
    engine_data.update(project_engine)

    overrides = {
        "origin": cli_origin or os.environ.get("SWCACHE_ORIGIN"),
        "version": cli_version or os.environ.get("SWCACHE_VERSION"),
    }
    engine_data.update({key: value for key, value in overrides.items() if value})

    try:
        engine = EngineConfig.model_validate(engine_data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid engine configuration: {exc}") from exc

    store_dir = (
        cli_store_dir
        or os.environ.get("SWCACHE_STORE_DIR")
        or project.get("store_dir")
        or global_cfg.store_dir
    )
    return global_cfg, engine, Path(store_dir).expanduser() if store_dir else get_cache_dir()
