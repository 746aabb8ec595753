"""Hypothesis strategies for fork nodes, datasets and transcripts."""

from __future__ import annotations

from hypothesis import strategies as st

from polyfork.merge import with_rebuilt_groups
from polyfork.models import ExtractedTurn, ForkNode, ForkNodesData

CONVERSATION_IDS = ["conv1", "conv2", "conv3", "conv4"]
GROUP_IDS = ["fork-a", "fork-b", "fork-c"]


@st.composite
def turn_id_strategy(draw: st.DrawFn) -> str:
    """Generate a user turn id, sometimes with a legacy hash suffix."""
    index = draw(st.integers(min_value=0, max_value=5))
    suffix = draw(st.one_of(st.just(""), st.text(alphabet="0123456789abcdef", min_size=1, max_size=6)))
    return f"u-{index}-{suffix}" if suffix else f"u-{index}"


@st.composite
def fork_node_strategy(
    draw: st.DrawFn,
    conversation_id: str | None = None,
    fork_group_id: str | None = None,
) -> ForkNode:
    """Generate a valid ForkNode drawn from small id pools."""
    cid = conversation_id or draw(st.sampled_from(CONVERSATION_IDS))
    return ForkNode(
        turn_id=draw(st.sampled_from(["u-0", "u-1", "u-2"])),
        conversation_id=cid,
        conversation_url=f"https://gemini.google.com/app/{cid}",
        conversation_title=draw(st.one_of(st.none(), st.text(min_size=1, max_size=20))),
        fork_group_id=fork_group_id or draw(st.sampled_from(GROUP_IDS)),
        fork_index=draw(st.integers(min_value=0, max_value=6)),
        created_at=draw(st.integers(min_value=0, max_value=5000)),
    )


@st.composite
def fork_nodes_data_strategy(draw: st.DrawFn, max_nodes: int = 12) -> ForkNodesData:
    """Generate a dataset with unique identities per conversation."""
    nodes = draw(st.lists(fork_node_strategy(), max_size=max_nodes, unique_by=lambda node: node.identity))
    by_conversation: dict[str, list[ForkNode]] = {}
    for node in nodes:
        by_conversation.setdefault(node.conversation_id, []).append(node)
    return with_rebuilt_groups(by_conversation)


@st.composite
def turns_strategy(draw: st.DrawFn, min_size: int = 1, max_size: int = 6) -> list[ExtractedTurn]:
    """Generate transcript turns with distinct, marker-tagged texts."""
    count = draw(st.integers(min_value=min_size, max_value=max_size))
    words = st.text(alphabet="abcdefghij ", max_size=20)
    return [
        ExtractedTurn(
            user=f"USER{index}:{draw(words)}",
            assistant=f"ASSISTANT{index}:{draw(words)}",
        )
        for index in range(count)
    ]
