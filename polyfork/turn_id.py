"""Canonical user-turn identifiers.

User turns are addressed by their ordinal among user messages (``u-3``).
Older records appended a content hash (``u-3-9f2c``); normalizing drops the
suffix so a turn keeps its identity when its text is edited. Other ids are
opaque and pass through unchanged.
"""

from __future__ import annotations

import re

_USER_TURN_ID_RE = re.compile(r"^u-(\d+)(?:-.+)?$")


def make_stable_turn_id(index: int) -> str:
    return f"u-{max(0, index)}"


def normalize_turn_id(turn_id: str) -> str:
    trimmed = turn_id.strip()
    match = _USER_TURN_ID_RE.match(trimmed)
    if not match:
        return trimmed
    return f"u-{match.group(1)}"


def same_turn(left: str, right: str) -> bool:
    return normalize_turn_id(left) == normalize_turn_id(right)


__all__ = ["make_stable_turn_id", "normalize_turn_id", "same_turn"]
