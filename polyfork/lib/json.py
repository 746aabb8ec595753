"""Central JSON utilities using orjson."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import orjson

# orjson.JSONDecodeError subclasses ValueError
JSONDecodeError = orjson.JSONDecodeError


def dumps(obj: Any, *, default: Callable[[Any], Any] | None = None, indent: bool = False) -> str:
    """Dump object to JSON string."""
    option = orjson.OPT_NON_STR_KEYS
    if indent:
        option |= orjson.OPT_INDENT_2
    return orjson.dumps(obj, default=default, option=option).decode("utf-8")


def dumps_bytes(obj: Any, *, indent: bool = False) -> bytes:
    option = orjson.OPT_NON_STR_KEYS
    if indent:
        option |= orjson.OPT_INDENT_2
    return orjson.dumps(obj, option=option)


def loads(obj: str | bytes) -> Any:
    """Load object from JSON string or bytes."""
    return orjson.loads(obj)


__all__ = ["JSONDecodeError", "dumps", "dumps_bytes", "loads"]
