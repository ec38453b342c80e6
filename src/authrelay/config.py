"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for authrelay:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.authrelay/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- A single :class:`~authrelay.models.GlobalConfig`
  JSON file holding the :class:`~authrelay.models.ClientConfig` and output
  defaults.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and global config into the
  effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from authrelay.exceptions import ConfigError
from authrelay.models import GlobalConfig

_APP_NAME = "authrelay"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "authrelay.json"

ENV_BASE_URL = "AUTHRELAY_BASE_URL"
ENV_NAMESPACE = "AUTHRELAY_NAMESPACE"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform uses XDG Base Directory layout (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/authrelay/`` (default ``~/.config/authrelay/``).
    On macOS/Windows: ``~/.authrelay/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (credential storage, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/authrelay/`` (default ``~/.local/share/authrelay/``).
    On macOS/Windows: ``~/.authrelay/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.
    """
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
        fd = None  # prevent double-close below
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
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~authrelay.models.GlobalConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
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
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


def set_client_option(config: GlobalConfig, key: str, value: str) -> GlobalConfig:
    """Return a copy of *config* with ``client.<key>`` set from a string value.

    The value is validated (and coerced) by the
    :class:`~authrelay.models.ClientConfig` model.

    Raises:
        ConfigError: If *key* is unknown or *value* fails validation.
    """
    fields = type(config.client).model_fields
    if key not in fields:
        known = ", ".join(sorted(fields))
        raise ConfigError(f"Unknown client option '{key}'. Known options: {known}")
    data = config.client.model_dump()
    data[key] = value
    try:
        client = type(config.client).model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid value for '{key}': {exc.errors()[0]['msg']}") from exc
    return config.model_copy(update={"client": client})


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local overrides from ``./authrelay.json``.

    The file holds a partial ``client`` section, for example
    ``{"client": {"base_url": "https://staging.example.com"}}``.

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc


# --- Precedence resolution ---


def resolve_config(
    cli_base_url: Optional[str] = None,
    cli_namespace: Optional[str] = None,
    cli_format: Optional[str] = None,
) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_base_url``, ``cli_namespace``, ``cli_format``)
        2. Environment variables (``AUTHRELAY_BASE_URL``, ``AUTHRELAY_NAMESPACE``)
        3. Project config (``./authrelay.json``)
        4. User config (``~/.config/authrelay/config.json``)
        5. Defaults

    Raises:
        ConfigError: If any layer is malformed.
    """
    global_cfg = load_global_config()
    client_data = global_cfg.client.model_dump()

    project = load_project_config()
    if project is not None:
        project_client = project.get("client") or {}
        if not isinstance(project_client, dict):
            raise ConfigError("Project config 'client' section must be an object")
        client_data.update(project_client)

    env_base_url = os.environ.get(ENV_BASE_URL)
    if env_base_url:
        client_data["base_url"] = env_base_url
    env_namespace = os.environ.get(ENV_NAMESPACE)
    if env_namespace:
        client_data["storage_namespace"] = env_namespace

    if cli_base_url is not None:
        client_data["base_url"] = cli_base_url
    if cli_namespace is not None:
        client_data["storage_namespace"] = cli_namespace

    try:
        client = type(global_cfg.client).model_validate(client_data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid client configuration: {exc}") from exc

    resolved = global_cfg.model_copy(update={"client": client})
    if cli_format is not None:
        resolved.output.format = cli_format
    return resolved
