"""Config directory and file path helpers."""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_ENV_VAR = "GTASKS_CONFIG_PATH"
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "gtasks"
CONFIG_FILE_NAME = "config.json"
KEY_FILE_NAME = "encryption.key"


def resolve_config_path(path: str | Path | None = None) -> Path:
    """Resolve the config file path.

    An explicit path wins, then ``GTASKS_CONFIG_PATH``, then the default
    under ``~/.config/gtasks``.
    """
    if path is not None:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_DIR / CONFIG_FILE_NAME


def config_dir(config_path: str | Path | None = None) -> Path:
    """Return the directory holding the config file."""
    return resolve_config_path(config_path).parent


def key_path(config_path: str | Path | None = None) -> Path:
    """Return the encryption key path, which always sits next to the config file."""
    return config_dir(config_path) / KEY_FILE_NAME
