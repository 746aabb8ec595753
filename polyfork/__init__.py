"""polyfork - branch conversations and keep the fork graph consistent.

A fork takes a conversation up to one user turn into a new, independent
conversation. All branches taken from the same point form a fork group,
recorded as `ForkNode` entries that can be synced between replicas.

Example:
    from polyfork import ForkCoordinator, ForkNodeStore, ForkNodesService

    service = ForkNodesService.local(ForkNodeStore(path))
    coordinator = ForkCoordinator(service)
    pending = coordinator.prepare_fork(
        conversation_id="abc",
        conversation_url="https://example.com/app/abc",
        title="Trip planning",
        pairs=pairs,
        turn_index=2,
    )
    # ... open a new conversation seeded with pending.markdown ...
    coordinator.complete_fork(pending, new_conversation_id="def", new_conversation_url=url)
"""

from polyfork.branching import ForkPlan, build_branch_display_nodes, resolve_fork_plan
from polyfork.errors import (
    ConfigError,
    PolyforkError,
    ReplicaError,
    ReplicaUnavailableError,
    StoreError,
    TransportError,
)
from polyfork.fork import BranchIndicator, ForkCoordinator, PendingFork
from polyfork.fork_context import compose_fork_input_with_context
from polyfork.markdown import build_fork_markdown
from polyfork.merge import merge_fork_nodes, rebuild_groups
from polyfork.models import ChatPair, ExtractedTurn, ForkNode, ForkNodesData
from polyfork.storage import FileReplica, ForkNodeStore, ForkNodesService, HttpReplica, sync_replicas
from polyfork.turn_id import make_stable_turn_id, normalize_turn_id
from polyfork.version import POLYFORK_VERSION

__version__ = POLYFORK_VERSION

__all__ = [
    "BranchIndicator",
    "ChatPair",
    "ConfigError",
    "ExtractedTurn",
    "FileReplica",
    "ForkCoordinator",
    "ForkNode",
    "ForkNodeStore",
    "ForkNodesData",
    "ForkNodesService",
    "ForkPlan",
    "HttpReplica",
    "PendingFork",
    "PolyforkError",
    "ReplicaError",
    "ReplicaUnavailableError",
    "StoreError",
    "TransportError",
    "build_branch_display_nodes",
    "build_fork_markdown",
    "compose_fork_input_with_context",
    "make_stable_turn_id",
    "merge_fork_nodes",
    "normalize_turn_id",
    "rebuild_groups",
    "resolve_fork_plan",
    "sync_replicas",
]
