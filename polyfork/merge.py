"""Reconciliation of two fork-node replicas.

A replica (local device state, remote copy) is a full ``ForkNodesData``.
Merging is last-writer-wins per node identity
``(conversation_id, turn_id, fork_group_id)``:

- the record with the strictly greater ``created_at`` wins as a whole;
- equal timestamps keep the local record;
- records present on one side only are kept unchanged.

The ``groups`` index is never merged. It is rebuilt from the merged
``nodes``, which also repairs replicas whose group index drifted.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from pydantic import ValidationError

from polyfork.lib.log import get_logger
from polyfork.models import ForkNode, ForkNodesData
from polyfork.types import NodeIdentity

logger = get_logger(__name__)


def rebuild_groups(nodes: Mapping[str, Iterable[ForkNode]]) -> dict[str, list[str]]:
    """Project the ``groups`` index out of ``nodes``."""
    groups: dict[str, list[str]] = {}
    seen: dict[str, set[str]] = {}
    for conversation_nodes in nodes.values():
        for node in conversation_nodes:
            keys = groups.setdefault(node.fork_group_id, [])
            known = seen.setdefault(node.fork_group_id, set())
            key = node.group_key
            if key in known:
                continue
            known.add(key)
            keys.append(key)
    return groups


def with_rebuilt_groups(nodes: Mapping[str, list[ForkNode]]) -> ForkNodesData:
    materialized = {conversation_id: list(entries) for conversation_id, entries in nodes.items() if entries}
    return ForkNodesData(nodes=materialized, groups=rebuild_groups(materialized))


def _coerce_node(raw: object) -> ForkNode | None:
    if isinstance(raw, ForkNode):
        return raw
    try:
        return ForkNode.model_validate(raw)
    except ValidationError as exc:
        logger.debug("fork_node_skipped", reason="invalid", errors=exc.error_count())
        return None


def coerce_fork_nodes_data(raw: object) -> ForkNodesData:
    """Best-effort view of a replica; anything unreadable becomes empty.

    Only ``nodes`` is read. A stored ``groups`` index is discarded since it
    is recomputed from the nodes anyway.
    """
    if isinstance(raw, ForkNodesData):
        return raw
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.debug("fork_data_malformed", kind=type(raw).__name__)
        return ForkNodesData.empty()
    raw_nodes = raw.get("nodes")
    if not isinstance(raw_nodes, Mapping):
        return ForkNodesData.empty()

    nodes: dict[str, list[ForkNode]] = {}
    for conversation_id, entries in raw_nodes.items():
        if not isinstance(conversation_id, str) or not isinstance(entries, (list, tuple)):
            continue
        parsed = [node for node in (_coerce_node(entry) for entry in entries) if node is not None]
        if parsed:
            nodes[conversation_id] = parsed
    return ForkNodesData(nodes=nodes, groups=rebuild_groups(nodes))


def _newer(candidate: ForkNode, current: ForkNode) -> bool:
    return candidate.created_at > current.created_at


def _merge_conversation(
    local_nodes: Iterable[ForkNode],
    cloud_nodes: Iterable[ForkNode],
) -> list[ForkNode]:
    merged: dict[NodeIdentity, ForkNode] = {}
    for node in local_nodes:
        current = merged.get(node.identity)
        if current is None or _newer(node, current):
            merged[node.identity] = node
    for node in cloud_nodes:
        current = merged.get(node.identity)
        if current is None or _newer(node, current):
            merged[node.identity] = node
    return list(merged.values())


def merge_fork_nodes(local: object, cloud: object) -> ForkNodesData:
    """Merge two replicas into one consistent dataset. Never raises."""
    local_data = coerce_fork_nodes_data(local)
    cloud_data = coerce_fork_nodes_data(cloud)

    conversation_ids = list(local_data.nodes)
    conversation_ids.extend(cid for cid in cloud_data.nodes if cid not in local_data.nodes)

    nodes: dict[str, list[ForkNode]] = {}
    for conversation_id in conversation_ids:
        merged = _merge_conversation(
            local_data.nodes.get(conversation_id, ()),
            cloud_data.nodes.get(conversation_id, ()),
        )
        if merged:
            nodes[conversation_id] = merged

    result = ForkNodesData(nodes=nodes, groups=rebuild_groups(nodes))
    logger.debug(
        "fork_nodes_merged",
        local_nodes=local_data.node_count,
        cloud_nodes=cloud_data.node_count,
        merged_nodes=result.node_count,
        groups=len(result.groups),
    )
    return result


__all__ = [
    "coerce_fork_nodes_data",
    "merge_fork_nodes",
    "rebuild_groups",
    "with_rebuilt_groups",
]
