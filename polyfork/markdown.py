"""Markdown transcript used to seed a new branch."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from polyfork.models import ExtractedTurn

DEFAULT_TITLE = "Untitled"
USER_HEADING = "### 👤 User"
ASSISTANT_HEADING = "### 🤖 Assistant"


def _as_turn(turn: ExtractedTurn | Mapping[str, object]) -> ExtractedTurn:
    if isinstance(turn, ExtractedTurn):
        return turn
    return ExtractedTurn.model_validate(turn)


def build_fork_markdown(
    title: str | None,
    turns: Sequence[ExtractedTurn | Mapping[str, object]],
    drop_last_assistant: bool,
) -> str:
    """Render ``turns`` as a Markdown document.

    An empty ``turns`` yields ``""``, meaning there is nothing to fork. With
    ``drop_last_assistant`` the final reply is left out so the new branch
    picks up from the user's last message.
    """
    if not turns:
        return ""

    normalized = [_as_turn(turn) for turn in turns]
    if drop_last_assistant:
        normalized[-1] = normalized[-1].model_copy(update={"assistant": ""})

    lines: list[str] = [f"# {title or DEFAULT_TITLE}", ""]
    for turn in normalized:
        lines.extend([USER_HEADING, "", turn.user or "", ""])
        if turn.assistant and turn.assistant.strip():
            lines.extend([ASSISTANT_HEADING, "", turn.assistant, ""])
    return "\n".join(lines)


__all__ = ["ASSISTANT_HEADING", "DEFAULT_TITLE", "USER_HEADING", "build_fork_markdown"]
