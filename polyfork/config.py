from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from polyfork.errors import ConfigError
from polyfork.existence import DEFAULT_EXISTENCE_TTL_MS, DEFAULT_VERIFY_TIMEOUT_MS
from polyfork.paths import CONFIG_HOME, DEFAULT_STORE_PATH
from polyfork.storage.replica import DEFAULT_SYNC_RETRIES


CONFIG_VERSION = 1
DEFAULT_CONFIG_NAME = "config.json"

_ALLOWED_TOP_LEVEL_KEYS = {
    "version",
    "store_path",
    "remote",
    "language",
    "fork_enabled",
    "existence_ttl_ms",
    "verify_timeout_ms",
    "sync_retries",
}
_INT_KEYS = ("existence_ttl_ms", "verify_timeout_ms", "sync_retries")


def is_fork_feature_enabled_value(value: object) -> bool:
    """Only a real boolean ``True`` turns forking on ("true" and 1 do not)."""
    return value is True


@dataclass
class Config:
    version: int
    store_path: Path
    path: Path
    remote: Optional[str] = None
    language: Optional[str] = None
    fork_enabled: bool = False
    existence_ttl_ms: int = DEFAULT_EXISTENCE_TTL_MS
    verify_timeout_ms: int = DEFAULT_VERIFY_TIMEOUT_MS
    sync_retries: int = DEFAULT_SYNC_RETRIES

    def as_dict(self) -> dict:
        payload: dict = {
            "version": self.version,
            "store_path": str(self.store_path),
            "fork_enabled": self.fork_enabled,
            "existence_ttl_ms": self.existence_ttl_ms,
            "verify_timeout_ms": self.verify_timeout_ms,
            "sync_retries": self.sync_retries,
        }
        if self.remote is not None:
            payload["remote"] = self.remote
        if self.language is not None:
            payload["language"] = self.language
        return payload


def _config_path(explicit: Optional[Path] = None) -> Path:
    env_path = os.environ.get("POLYFORK_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    if explicit:
        return explicit.expanduser()
    return CONFIG_HOME / DEFAULT_CONFIG_NAME


def _store_path(configured: Optional[str]) -> Path:
    env_store = os.environ.get("POLYFORK_STORE")
    if env_store:
        return Path(env_store).expanduser()
    if configured:
        return Path(configured).expanduser()
    return DEFAULT_STORE_PATH


def _ensure_keys(data: dict, *, allowed: Iterable[str], context: str) -> None:
    unknown = set(data.keys()) - set(allowed)
    if unknown:
        keys = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown {context} key(s): {keys}")


def _optional_str(raw: dict, key: str) -> Optional[str]:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Config '{key}' must be a non-empty string")
    return value.strip()


def default_config(path: Optional[Path] = None) -> Config:
    return Config(
        version=CONFIG_VERSION,
        store_path=_store_path(None),
        path=_config_path(path),
    )


def load_config(path: Optional[Path] = None, *, missing_ok: bool = False) -> Config:
    config_path = _config_path(path)
    if not config_path.exists():
        if missing_ok:
            return default_config(path)
        raise ConfigError(f"Config not found: {config_path}")
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config {config_path} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError("Config payload must be a JSON object")
    _ensure_keys(raw, allowed=_ALLOWED_TOP_LEVEL_KEYS, context="config")
    version = raw.get("version")
    if version != CONFIG_VERSION:
        raise ConfigError(f"Unsupported config version '{version}', expected {CONFIG_VERSION}")

    ints: dict[str, int] = {}
    for key in _INT_KEYS:
        if key not in raw:
            continue
        value = raw[key]
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ConfigError(f"Config '{key}' must be a non-negative integer")
        ints[key] = value

    fork_enabled = raw.get("fork_enabled", False)
    if not isinstance(fork_enabled, bool):
        raise ConfigError("Config 'fork_enabled' must be true/false")

    return Config(
        version=CONFIG_VERSION,
        store_path=_store_path(_optional_str(raw, "store_path")),
        path=config_path,
        remote=_optional_str(raw, "remote"),
        language=_optional_str(raw, "language"),
        fork_enabled=is_fork_feature_enabled_value(fork_enabled),
        **ints,
    )


def write_config(config: Config) -> None:
    config.path.parent.mkdir(parents=True, exist_ok=True)
    config.path.write_text(json.dumps(config.as_dict(), indent=2), encoding="utf-8")


__all__ = [
    "CONFIG_VERSION",
    "Config",
    "ConfigError",
    "default_config",
    "is_fork_feature_enabled_value",
    "load_config",
    "write_config",
]
