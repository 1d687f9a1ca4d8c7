"""Configuration management for ark-cli.

This module contains the well-known locations used by the tool and the
discovery rules for them. Precedence for every configurable location:

1. Explicit CLI argument
2. Environment variable (ARK_BACKUPS_DIR, ARK_ROOTS_CFG)
3. ~/.config/ark/config.yaml
4. Built-in default under the home directory
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path
from typing import Any

from .errors import ErrorCode, ResolutionError

log = logging.getLogger(__name__)


# =============================================================================
# Well-known locations
# =============================================================================

# Storage area inside every root; its presence makes a root "valid" for backup
ARK_FOLDER = ".ark"

# Persisted index, relative to the storage area
INDEX_FILENAME = "index"

# Per-user configuration directory, relative to home
ARK_CONFIG = ".config/ark"

# Backup base directory, relative to home
ARK_BACKUPS_PATH = ".ark-backups"

# Roots config inside ARK_CONFIG, and manifest name inside each backup
ROOTS_CFG_FILENAME = "roots"

# Optional YAML settings inside ARK_CONFIG
SETTINGS_FILENAME = "config.yaml"

# Per-user application directory holding the app id
APP_DIR = ".ark"
APP_ID_FILENAME = "app_id"


def get_home() -> Path:
    """Resolve the current user's home directory.

    Raises:
        ResolutionError: If the home directory cannot be determined.
    """
    try:
        return Path.home()
    except (RuntimeError, KeyError) as e:
        raise ResolutionError(
            ErrorCode.HOME_UNAVAILABLE, "Couldn't retrieve home directory!"
        ) from e


def load_settings() -> dict[str, Any]:
    """Load ~/.config/ark/config.yaml, if present.

    A malformed or unreadable file is ignored; the defaults still apply.
    """
    import yaml

    settings_path = get_home() / ARK_CONFIG / SETTINGS_FILENAME
    if not settings_path.exists():
        return {}

    try:
        data = yaml.safe_load(settings_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        log.warning("Ignoring unreadable settings file %s: %s", settings_path, e)
        return {}

    if not isinstance(data, dict):
        log.warning("Ignoring settings file %s: expected a mapping", settings_path)
        return {}
    return data


def _configured_path(env_var: str, key: str) -> Path | None:
    value = os.environ.get(env_var)
    if value:
        return Path(value).expanduser()

    value = load_settings().get(key)
    if isinstance(value, str) and value.strip():
        return Path(value.strip()).expanduser()
    return None


def get_backups_root() -> Path:
    """Get the base directory that holds timestamped backups."""
    configured = _configured_path("ARK_BACKUPS_DIR", "backups_dir")
    if configured:
        return configured
    return get_home() / ARK_BACKUPS_PATH


def get_roots_config_path(roots_cfg: Path | None = None) -> Path:
    """Get the roots config file path."""
    if roots_cfg is not None:
        return Path(roots_cfg).expanduser()

    configured = _configured_path("ARK_ROOTS_CFG", "roots_cfg")
    if configured:
        return configured
    return get_home() / ARK_CONFIG / ROOTS_CFG_FILENAME


def load_app_id() -> str:
    """Load the application id, creating ~/.ark/app_id on first run.

    Raises:
        ResolutionError: If the application directory cannot be created.
    """
    app_dir = get_home() / APP_DIR
    try:
        app_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ResolutionError(
            ErrorCode.HOME_UNAVAILABLE,
            f"Couldn't create {APP_DIR} directory: {e}",
        ) from e

    log.debug("Loading app id at %s...", app_dir)

    id_file = app_dir / APP_ID_FILENAME
    try:
        app_id = id_file.read_text(encoding="utf-8").strip()
        if app_id:
            return app_id
    except OSError:
        pass

    app_id = str(uuid.uuid4())
    try:
        id_file.write_text(app_id + "\n", encoding="utf-8")
    except OSError as e:
        raise ResolutionError(
            ErrorCode.HOME_UNAVAILABLE, f"Couldn't load app id: {e}"
        ) from e
    return app_id


def provide_root(root_dir: Path | str | None = None) -> Path:
    """Resolve the root to operate on (defaults to the current directory).

    Raises:
        ResolutionError: If the directory does not exist.
    """
    root = Path(root_dir).expanduser() if root_dir else Path(os.getcwd())
    if not root.is_dir():
        raise ResolutionError(
            ErrorCode.ROOT_NOT_FOUND,
            f"Root directory not found: {root}",
            {"root": str(root)},
        )
    return root.resolve()


def storage_area(root: Path) -> Path:
    """Path of the storage area inside a root."""
    return root / ARK_FOLDER
