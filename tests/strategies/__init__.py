"""Hypothesis strategies for polyfork property-based testing.

Usage:
    from hypothesis import given
    from tests.strategies import fork_node_strategy, fork_nodes_data_strategy

    @given(fork_nodes_data_strategy())
    def test_merge_keeps_nodes(data):
        ...

Identifiers are drawn from small pools so that generated nodes collide on
identity, group and conversation often enough to exercise merge and dedup
paths.
"""

from tests.strategies.fork_nodes import (
    fork_node_strategy,
    fork_nodes_data_strategy,
    turn_id_strategy,
    turns_strategy,
)

__all__ = [
    "fork_node_strategy",
    "fork_nodes_data_strategy",
    "turn_id_strategy",
    "turns_strategy",
]
