from __future__ import annotations

from polyfork.markdown import build_fork_markdown
from polyfork.models import ExtractedTurn


def test_empty_turns_yield_empty_string() -> None:
    assert build_fork_markdown("Title", [], True) == ""
    assert build_fork_markdown(None, [], False) == ""


def test_drop_last_assistant() -> None:
    turns = [{"user": "u1", "assistant": "a1"}, {"user": "u2", "assistant": "a2"}]
    output = build_fork_markdown("Chat", turns, True)
    assert "u1" in output
    assert "a1" in output
    assert "u2" in output
    assert "a2" not in output


def test_exact_layout() -> None:
    turns = [ExtractedTurn(user="hello", assistant="hi there"), ExtractedTurn(user="bye")]
    output = build_fork_markdown("Greeting", turns, False)
    assert output == "\n".join(
        [
            "# Greeting",
            "",
            "### 👤 User",
            "",
            "hello",
            "",
            "### 🤖 Assistant",
            "",
            "hi there",
            "",
            "### 👤 User",
            "",
            "bye",
            "",
        ]
    )


def test_missing_title_uses_untitled() -> None:
    output = build_fork_markdown(None, [ExtractedTurn(user="q")], False)
    assert output.startswith("# Untitled\n")
    assert build_fork_markdown("", [ExtractedTurn(user="q")], False).startswith("# Untitled\n")


def test_blank_assistant_has_no_heading() -> None:
    output = build_fork_markdown("T", [ExtractedTurn(user="q", assistant="   \n")], False)
    assert "Assistant" not in output


def test_keeps_last_assistant_when_not_dropping() -> None:
    output = build_fork_markdown("T", [{"user": "q", "assistant": "answer"}], False)
    assert "### 🤖 Assistant" in output
    assert "answer" in output


def test_does_not_mutate_input() -> None:
    turns = [{"user": "u1", "assistant": "a1"}]
    models = [ExtractedTurn(user="u1", assistant="a1")]
    build_fork_markdown("T", turns, True)
    build_fork_markdown("T", models, True)
    assert turns == [{"user": "u1", "assistant": "a1"}]
    assert models[0].assistant == "a1"
