"""Shared filesystem paths for polyfork."""

from __future__ import annotations

import os
from pathlib import Path


def _xdg_path(env_var: str, fallback: Path) -> Path:
    raw = os.environ.get(env_var)
    if raw:
        return Path(raw).expanduser()
    return fallback


CONFIG_ROOT = _xdg_path("XDG_CONFIG_HOME", Path.home() / ".config")
STATE_ROOT = _xdg_path("XDG_STATE_HOME", Path.home() / ".local/state")

CONFIG_HOME = CONFIG_ROOT / "polyfork"
STATE_HOME = STATE_ROOT / "polyfork"

DEFAULT_STORE_PATH = STATE_HOME / "fork-nodes.json"


__all__ = [
    "CONFIG_HOME",
    "STATE_HOME",
    "CONFIG_ROOT",
    "STATE_ROOT",
    "DEFAULT_STORE_PATH",
]
