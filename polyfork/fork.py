"""Fork workflow: from a chosen user turn to two linked fork nodes.

1. `ForkCoordinator.prepare_fork` renders the transcript up to the turn,
   wraps it with the branch preamble and resolves the fork plan. The result
   is a `PendingFork`, handed to whatever opens the new conversation.
2. Once the new conversation has an id, `ForkCoordinator.complete_fork`
   records the source node and the new conversation's node in the store.
3. `ForkCoordinator.branch_indicators` turns stored nodes back into numbered
   branches per turn for display.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable, Collection, Mapping, Sequence
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from polyfork.branching import ForkPlan, build_branch_display_nodes, resolve_fork_plan
from polyfork.errors import StoreError, TransportError
from polyfork.existence import ConversationExistenceChecker, prune_deleted_nodes
from polyfork.fork_context import compose_fork_input_with_context
from polyfork.lib.log import get_logger
from polyfork.markdown import build_fork_markdown
from polyfork.models import ChatPair, ExtractedTurn, ForkNode
from polyfork.storage.channel import ForkNodesService
from polyfork.turn_id import make_stable_turn_id, normalize_turn_id, same_turn

logger = get_logger(__name__)

NEW_CONVERSATION_TURN_ID = make_stable_turn_id(0)


def generate_fork_group_id() -> str:
    return f"fork-{uuid.uuid4().hex}"


def _now_ms() -> int:
    return int(time.time() * 1000)


def extract_conversation_up_to_turn(
    pairs: Sequence[ChatPair],
    user_turn_index: int,
    source_turn_id: str,
    title: str | None,
) -> str:
    """Markdown for pairs ``0..target`` with the target's reply dropped.

    The target is the pair whose turn id matches ``source_turn_id``; when no
    pair matches, ``user_turn_index`` is used positionally.
    """
    if not pairs:
        return ""
    target_index = next(
        (index for index, pair in enumerate(pairs) if same_turn(pair.turn_id, source_turn_id)),
        user_turn_index,
    )
    turns: list[ExtractedTurn] = [pair.as_turn() for pair in pairs[: target_index + 1]]
    return build_fork_markdown(title, turns, True)


class PendingFork(BaseModel):
    """Everything the new conversation needs once it exists."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    source_conversation_id: str = ""
    source_turn_id: str = ""
    source_url: str = ""
    source_title: str = ""
    fork_group_id: str = ""
    source_fork_index: int = Field(default=0, ge=0)
    next_fork_index: int = Field(default=1, ge=1)
    markdown: str = ""

    @field_validator("source_fork_index", mode="before")
    @classmethod
    def _default_source_index(cls, v: object) -> object:
        return v if isinstance(v, int) and not isinstance(v, bool) else 0

    @field_validator("next_fork_index", mode="before")
    @classmethod
    def _default_next_index(cls, v: object) -> object:
        return v if isinstance(v, int) and not isinstance(v, bool) else 1

    @classmethod
    def from_payload(cls, payload: object) -> PendingFork | None:
        """Lenient parse of a stored pending fork; None when unusable."""
        if not isinstance(payload, Mapping):
            return None
        cleaned = {key: value for key, value in payload.items() if value is not None}
        try:
            pending = cls.model_validate(cleaned)
        except ValidationError:
            return None
        return pending if pending.is_valid() else None

    def is_valid(self) -> bool:
        return bool(
            self.source_conversation_id
            and self.source_turn_id
            and self.fork_group_id
            and self.markdown.strip()
        )

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class BranchIndicator:
    node: ForkNode
    number: int
    is_current: bool


class ForkCoordinator:
    def __init__(
        self,
        service: ForkNodesService,
        *,
        now: Callable[[], int] = _now_ms,
        create_group_id: Callable[[], str] = generate_fork_group_id,
    ) -> None:
        self.service = service
        self._now = now
        self._create_group_id = create_group_id

    def plan_fork(self, conversation_id: str, turn_id: str) -> ForkPlan:
        """Resolve the plan against the store; raises `StoreError` on failure."""
        conversation_nodes = self.service.get_for_conversation(conversation_id)
        groups: dict[str, list[ForkNode]] = {}
        for node in conversation_nodes:
            if not same_turn(node.turn_id, turn_id) or node.fork_group_id in groups:
                continue
            groups[node.fork_group_id] = self.service.get_group(node.fork_group_id)
        return resolve_fork_plan(conversation_id, turn_id, conversation_nodes, groups, self._create_group_id)

    def prepare_fork(
        self,
        *,
        conversation_id: str,
        conversation_url: str,
        title: str | None,
        pairs: Sequence[ChatPair],
        turn_index: int,
        turn_id: str | None = None,
        language: str | None = None,
    ) -> PendingFork | None:
        """Build the pending fork for the user turn at ``turn_index``.

        Returns None when there is no transcript to carry over. If the store
        cannot be queried, the fork starts a fresh group.
        """
        source_turn_id = turn_id or make_stable_turn_id(turn_index)
        markdown = extract_conversation_up_to_turn(pairs, turn_index, source_turn_id, title)
        if not markdown.strip():
            logger.warning("fork_no_content", conversation_id=conversation_id, turn_id=source_turn_id)
            return None

        try:
            plan = self.plan_fork(conversation_id, source_turn_id)
        except StoreError as exc:
            log = logger.debug if isinstance(exc, TransportError) else logger.error
            log("fork_plan_fallback", conversation_id=conversation_id, error=str(exc))
            plan = ForkPlan(fork_group_id=self._create_group_id(), source_fork_index=0, next_fork_index=1)

        return PendingFork(
            source_conversation_id=conversation_id,
            source_turn_id=source_turn_id,
            source_url=conversation_url,
            source_title=title or "",
            fork_group_id=plan.fork_group_id,
            source_fork_index=plan.source_fork_index,
            next_fork_index=plan.next_fork_index,
            markdown=compose_fork_input_with_context(markdown, language),
        )

    def complete_fork(
        self,
        pending: PendingFork,
        *,
        new_conversation_id: str,
        new_conversation_url: str,
        new_conversation_title: str | None = None,
    ) -> tuple[ForkNode, ForkNode]:
        """Record both sides of the fork; store failures propagate."""
        source_node = ForkNode(
            turn_id=pending.source_turn_id,
            conversation_id=pending.source_conversation_id,
            conversation_url=pending.source_url,
            conversation_title=pending.source_title or None,
            fork_group_id=pending.fork_group_id,
            fork_index=pending.source_fork_index,
            created_at=self._now(),
        )
        self.service.add_fork_node(source_node)

        new_node = ForkNode(
            turn_id=NEW_CONVERSATION_TURN_ID,
            conversation_id=new_conversation_id,
            conversation_url=new_conversation_url,
            conversation_title=new_conversation_title,
            fork_group_id=pending.fork_group_id,
            fork_index=pending.next_fork_index,
            created_at=self._now(),
        )
        self.service.add_fork_node(new_node)
        logger.info(
            "fork_completed",
            source_conversation_id=source_node.conversation_id,
            new_conversation_id=new_node.conversation_id,
            fork_group_id=pending.fork_group_id,
            fork_index=new_node.fork_index,
        )
        return source_node, new_node

    def branch_indicators(
        self,
        conversation_id: str,
        *,
        checker: ConversationExistenceChecker | None = None,
        known_conversation_ids: Collection[str] = (),
    ) -> dict[str, list[BranchIndicator]]:
        """Numbered branches for each forked turn of ``conversation_id``.

        Turns left with fewer than two branches after pruning are omitted.
        A group that cannot be fetched is skipped; the others still render.
        """
        turn_groups: dict[str, list[str]] = {}
        for node in self.service.get_for_conversation(conversation_id):
            group_ids = turn_groups.setdefault(normalize_turn_id(node.turn_id), [])
            if node.fork_group_id not in group_ids:
                group_ids.append(node.fork_group_id)

        indicators: dict[str, list[BranchIndicator]] = {}
        group_cache: dict[str, list[ForkNode]] = {}
        for turn_id, group_ids in turn_groups.items():
            group_node_lists: list[list[ForkNode]] = []
            for group_id in group_ids:
                if group_id not in group_cache:
                    try:
                        group_nodes = self.service.get_group(group_id)
                    except StoreError as exc:
                        logger.warning("fork_group_unavailable", fork_group_id=group_id, error=str(exc))
                        continue
                    if checker is not None:
                        group_nodes = prune_deleted_nodes(
                            group_nodes,
                            checker,
                            self.service,
                            current_conversation_id=conversation_id,
                            known_conversation_ids=known_conversation_ids,
                        )
                    group_cache[group_id] = group_nodes
                group_node_lists.append(group_cache[group_id])

            display_nodes = build_branch_display_nodes(group_node_lists)
            if len(display_nodes) < 2:
                continue
            indicators[turn_id] = [
                BranchIndicator(
                    node=node,
                    number=position,
                    is_current=node.conversation_id == conversation_id,
                )
                for position, node in enumerate(display_nodes, start=1)
            ]
        return indicators


__all__ = [
    "BranchIndicator",
    "ForkCoordinator",
    "NEW_CONVERSATION_TURN_ID",
    "PendingFork",
    "extract_conversation_up_to_turn",
    "generate_fork_group_id",
]
