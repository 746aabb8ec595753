"""Fork planning and branch ordering over fork nodes.

Both functions are pure: callers fetch the nodes from the store and pass
them in.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass

from polyfork.models import ForkNode
from polyfork.turn_id import same_turn


@dataclass(frozen=True)
class ForkPlan:
    fork_group_id: str
    source_fork_index: int
    next_fork_index: int


def _candidate_group_ids(nodes: Iterable[ForkNode]) -> list[str]:
    # Ordered by first appearance so ties resolve deterministically.
    seen: dict[str, None] = {}
    for node in nodes:
        seen.setdefault(node.fork_group_id, None)
    return list(seen)


def resolve_fork_plan(
    conversation_id: str,
    turn_id: str,
    conversation_nodes: Sequence[ForkNode],
    groups_by_id: Mapping[str, Sequence[ForkNode]],
    create_group_id: Callable[[], str],
) -> ForkPlan:
    """Decide which fork group a new branch at ``turn_id`` joins and its index.

    When the turn was already forked, possibly into several groups after
    replica merges, the group with the most known members wins.
    """
    same_turn_nodes = [node for node in conversation_nodes if same_turn(node.turn_id, turn_id)]
    if not same_turn_nodes:
        return ForkPlan(fork_group_id=create_group_id(), source_fork_index=0, next_fork_index=1)

    group_ids = _candidate_group_ids(same_turn_nodes)
    best_group_id = group_ids[0]
    best_group_nodes: Sequence[ForkNode] = groups_by_id.get(best_group_id, ())
    for group_id in group_ids[1:]:
        group_nodes = groups_by_id.get(group_id, ())
        if len(group_nodes) > len(best_group_nodes):
            best_group_id = group_id
            best_group_nodes = group_nodes

    source_fork_index = 0
    for node in best_group_nodes:
        if node.conversation_id == conversation_id and same_turn(node.turn_id, turn_id):
            source_fork_index = node.fork_index
            break

    max_fork_index = max((node.fork_index for node in best_group_nodes), default=0)
    return ForkPlan(
        fork_group_id=best_group_id,
        source_fork_index=source_fork_index,
        next_fork_index=max_fork_index + 1,
    )


def _display_rank(node: ForkNode) -> tuple[int, int]:
    return (node.fork_index, node.created_at)


def build_branch_display_nodes(group_nodes_list: Iterable[Iterable[ForkNode]]) -> list[ForkNode]:
    """Collapse overlapping fork groups into one ordered branch sequence.

    Each conversation contributes a single node: the one with the lowest
    fork index, then the earliest ``created_at``. Position in the result is
    the branch number shown to the user (1-based).
    """
    deduped: dict[str, ForkNode] = {}
    for group_nodes in group_nodes_list:
        for node in group_nodes:
            existing = deduped.get(node.conversation_id)
            if existing is None or _display_rank(node) < _display_rank(existing):
                deduped[node.conversation_id] = node
    return sorted(deduped.values(), key=_display_rank)


__all__ = ["ForkPlan", "build_branch_display_nodes", "resolve_fork_plan"]
