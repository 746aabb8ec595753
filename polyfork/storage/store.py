"""File-backed owner of the fork node dataset.

The store is the single writer of the local replica. Every mutation loads
the whole dataset, applies the change to ``nodes``, rebuilds ``groups`` and
replaces the file atomically.
"""

from __future__ import annotations

import os
import tempfile
import threading
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path

from polyfork.errors import StoreError
from polyfork.lib.json import JSONDecodeError, dumps_bytes, loads
from polyfork.lib.log import get_logger
from polyfork.merge import coerce_fork_nodes_data, with_rebuilt_groups
from polyfork.models import ForkNode, ForkNodesData
from polyfork.turn_id import same_turn

logger = get_logger(__name__)

NodesMutator = Callable[[dict[str, list[ForkNode]]], bool]


def write_json_atomic(path: Path, payload: object) -> None:
    """Replace ``path`` with ``payload`` so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(dumps_bytes(payload, indent=True))
        os.replace(tmp_name, path)
    except BaseException:
        with suppress(OSError):
            os.unlink(tmp_name)
        raise


@dataclass
class ForkNodeStore:
    path: Path
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def load(self) -> ForkNodesData:
        """Read the dataset; a missing or unreadable file is an empty dataset."""
        if not self.path.exists():
            return ForkNodesData.empty()
        try:
            raw = loads(self.path.read_bytes())
        except (OSError, JSONDecodeError) as exc:
            logger.warning("fork_store_unreadable", path=str(self.path), error=str(exc))
            return ForkNodesData.empty()
        return coerce_fork_nodes_data(raw)

    def load_for_write(self) -> ForkNodesData:
        """Like `load`, but an existing file that cannot be parsed raises `StoreError`.

        Writes go through this so an unreadable file is never replaced by a
        dataset built on top of nothing.
        """
        if not self.path.exists():
            return ForkNodesData.empty()
        try:
            raw = loads(self.path.read_bytes())
        except (OSError, JSONDecodeError) as exc:
            logger.error("fork_store_unreadable", path=str(self.path), error=str(exc))
            raise StoreError(f"Fork node store {self.path} is unreadable: {exc}") from exc
        if not isinstance(raw, dict):
            raise StoreError(f"Fork node store {self.path} is not a JSON object")
        return coerce_fork_nodes_data(raw)

    def _write(self, data: ForkNodesData) -> None:
        try:
            write_json_atomic(self.path, data.to_payload())
        except OSError as exc:
            raise StoreError(f"Failed to write fork nodes to {self.path}: {exc}") from exc

    def _mutate(self, mutator: NodesMutator) -> bool:
        with self._lock:
            current = self.load_for_write()
            nodes = {conversation_id: list(entries) for conversation_id, entries in current.nodes.items()}
            changed = mutator(nodes)
            if changed:
                self._write(with_rebuilt_groups(nodes))
            return changed

    def get_all(self) -> ForkNodesData:
        return self.load()

    def get_for_conversation(self, conversation_id: str) -> list[ForkNode]:
        return list(self.load().nodes.get(conversation_id, ()))

    def get_group(self, fork_group_id: str) -> list[ForkNode]:
        return [node for node in self.load().iter_nodes() if node.fork_group_id == fork_group_id]

    def add(self, node: ForkNode) -> bool:
        """Insert ``node``; False when a node with the same identity exists."""

        def _add(nodes: dict[str, list[ForkNode]]) -> bool:
            entries = nodes.setdefault(node.conversation_id, [])
            if any(existing.identity == node.identity for existing in entries):
                return False
            entries.append(node)
            return True

        added = self._mutate(_add)
        logger.debug(
            "fork_node_add",
            conversation_id=node.conversation_id,
            turn_id=node.turn_id,
            fork_group_id=node.fork_group_id,
            added=added,
        )
        return added

    def remove(self, conversation_id: str, turn_id: str, fork_group_id: str) -> bool:
        """Drop the matching node; turn ids are compared in normalized form."""

        def _remove(nodes: dict[str, list[ForkNode]]) -> bool:
            entries = nodes.get(conversation_id)
            if not entries:
                return False
            kept = [
                node
                for node in entries
                if not (node.fork_group_id == fork_group_id and same_turn(node.turn_id, turn_id))
            ]
            if len(kept) == len(entries):
                return False
            if kept:
                nodes[conversation_id] = kept
            else:
                del nodes[conversation_id]
            return True

        removed = self._mutate(_remove)
        logger.debug(
            "fork_node_remove",
            conversation_id=conversation_id,
            turn_id=turn_id,
            fork_group_id=fork_group_id,
            removed=removed,
        )
        return removed

    def replace_all(self, data: ForkNodesData) -> ForkNodesData:
        """Swap in a whole dataset (the result of a merge); returns what was written."""
        with self._lock:
            written = with_rebuilt_groups(data.nodes)
            self._write(written)
        return written


__all__ = ["ForkNodeStore", "write_json_atomic"]
