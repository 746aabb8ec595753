"""Property-based tests for merge, display and planning invariants."""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from polyfork.branching import build_branch_display_nodes, resolve_fork_plan
from polyfork.markdown import build_fork_markdown
from polyfork.merge import merge_fork_nodes, rebuild_groups
from polyfork.models import ForkNode, ForkNodesData
from tests.factories import make_fork_data
from tests.strategies import fork_node_strategy, fork_nodes_data_strategy, turns_strategy


def _as_set(data: ForkNodesData) -> set[ForkNode]:
    return {node for node in data.iter_nodes()}


@given(fork_nodes_data_strategy())
def test_merge_with_empty_is_identity(data: ForkNodesData) -> None:
    assert _as_set(merge_fork_nodes(data, ForkNodesData.empty())) == _as_set(data)
    assert _as_set(merge_fork_nodes(ForkNodesData.empty(), data)) == _as_set(data)


@given(fork_node_strategy(), st.integers(min_value=0, max_value=5000), st.integers(min_value=0, max_value=5000))
def test_newer_record_wins_regardless_of_argument_order(node: ForkNode, first_at: int, second_at: int) -> None:
    first = node.model_copy(update={"created_at": first_at, "conversation_title": "first"})
    second = node.model_copy(update={"created_at": second_at, "conversation_title": "second"})

    forward = merge_fork_nodes(make_fork_data(first), make_fork_data(second)).nodes[node.conversation_id]
    backward = merge_fork_nodes(make_fork_data(second), make_fork_data(first)).nodes[node.conversation_id]

    assert len(forward) == len(backward) == 1
    if first_at > second_at:
        assert forward[0] == backward[0] == first
    elif second_at > first_at:
        assert forward[0] == backward[0] == second
    else:
        assert forward[0] == first
        assert backward[0] == second


@given(fork_nodes_data_strategy(), fork_nodes_data_strategy())
def test_merged_groups_match_nodes(local: ForkNodesData, cloud: ForkNodesData) -> None:
    merged = merge_fork_nodes(local, cloud)
    assert merged.groups == rebuild_groups(merged.nodes)
    for group_id, keys in merged.groups.items():
        expected = {node.group_key for node in merged.iter_nodes() if node.fork_group_id == group_id}
        assert len(keys) == len(set(keys))
        assert set(keys) == expected
    for conversation_nodes in merged.nodes.values():
        identities = [node.identity for node in conversation_nodes]
        assert len(identities) == len(set(identities))


@given(fork_nodes_data_strategy(), fork_nodes_data_strategy())
def test_merge_keeps_every_identity(local: ForkNodesData, cloud: ForkNodesData) -> None:
    merged = merge_fork_nodes(local, cloud)
    expected = {node.identity for node in local.iter_nodes()} | {node.identity for node in cloud.iter_nodes()}
    assert {node.identity for node in merged.iter_nodes()} == expected


@given(st.lists(st.lists(fork_node_strategy(), max_size=6), max_size=4))
def test_display_has_one_node_per_conversation(groups: list[list[ForkNode]]) -> None:
    nodes = build_branch_display_nodes(groups)
    conversation_ids = [node.conversation_id for node in nodes]
    assert len(conversation_ids) == len(set(conversation_ids))
    ranks = [(node.fork_index, node.created_at) for node in nodes]
    assert ranks == sorted(ranks)
    assert set(conversation_ids) == {node.conversation_id for group in groups for node in group}


@settings(max_examples=50)
@given(st.integers(min_value=1, max_value=12))
def test_plan_next_index_grows_with_group(forks: int) -> None:
    source = ForkNode(turn_id="u-1", conversation_id="source", fork_group_id="g", fork_index=0)
    group: list[ForkNode] = [source]
    assigned: list[int] = [0]
    for step in range(forks):
        plan = resolve_fork_plan("source", "u-1", [source], {"g": list(group)}, lambda: "fresh")
        assert plan.fork_group_id == "g"
        assert plan.next_fork_index > max(assigned)
        assigned.append(plan.next_fork_index)
        group.append(
            ForkNode(
                turn_id="u-0",
                conversation_id=f"branch-{step}",
                fork_group_id="g",
                fork_index=plan.next_fork_index,
                created_at=step,
            )
        )


@given(turns_strategy())
def test_drop_last_removes_final_reply(turns) -> None:
    output = build_fork_markdown("Title", turns, True)
    assert turns[-1].assistant not in output
    assert turns[-1].user in output
    for turn in turns[:-1]:
        assert turn.assistant in output
