"""Data model for the fork graph.

- `ForkNode`: one conversation's membership in a fork group, recorded at
  the turn where the branch happened.
- `ForkNodesData`: the persisted dataset. ``nodes`` (conversation id to
  nodes) is the source of truth; ``groups`` (fork group id to
  ``"conversationId:turnId"`` keys) is a projection of it, see
  `polyfork.merge.rebuild_groups`.
- `ExtractedTurn` / `ChatPair`: user/assistant exchanges handed over by the
  transcript extractor.

Models serialize with camelCase keys so stored datasets stay compatible with
the browser-side replicas.
"""

from __future__ import annotations

from collections.abc import Iterator

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from polyfork.types import NodeIdentity


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ForkNode(_CamelModel):
    turn_id: str
    conversation_id: str
    conversation_url: str = ""
    conversation_title: str | None = None
    fork_group_id: str
    fork_index: int = Field(default=0, ge=0)
    created_at: int = 0

    @field_validator("turn_id", "conversation_id", "fork_group_id")
    @classmethod
    def non_empty_string(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field cannot be empty")
        return v

    @property
    def identity(self) -> NodeIdentity:
        """Merge identity: two records with the same identity describe one branch membership."""
        return (self.conversation_id, self.turn_id, self.fork_group_id)

    @property
    def group_key(self) -> str:
        return f"{self.conversation_id}:{self.turn_id}"


class ForkNodesData(_CamelModel):
    nodes: dict[str, list[ForkNode]] = Field(default_factory=dict)
    groups: dict[str, list[str]] = Field(default_factory=dict)

    @classmethod
    def empty(cls) -> ForkNodesData:
        return cls()

    @classmethod
    def from_payload(cls, payload: object) -> ForkNodesData:
        """Strict parse of the persisted shape; raises ``pydantic.ValidationError``."""
        return cls.model_validate(payload)

    def iter_nodes(self) -> Iterator[ForkNode]:
        for conversation_nodes in self.nodes.values():
            yield from conversation_nodes

    @property
    def node_count(self) -> int:
        return sum(len(conversation_nodes) for conversation_nodes in self.nodes.values())

    def is_empty(self) -> bool:
        return not self.nodes and not self.groups


class ExtractedTurn(BaseModel):
    """One exchange of a transcript: the user text and the optional reply."""

    model_config = ConfigDict(frozen=True)

    user: str = ""
    assistant: str | None = None


class ChatPair(_CamelModel):
    """An exchange located on the page, addressed by its stable turn id."""

    turn_id: str
    user: str = ""
    assistant: str = ""

    def as_turn(self) -> ExtractedTurn:
        return ExtractedTurn(user=self.user, assistant=self.assistant)


__all__ = ["ChatPair", "ExtractedTurn", "ForkNode", "ForkNodesData"]
