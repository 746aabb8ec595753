from __future__ import annotations

import pytest

from polyfork.fork_context import (
    CONTEXT_PREFIX,
    HISTORY_HEADING,
    ForkLanguage,
    compose_fork_input_with_context,
    normalize_language,
)


def test_chinese_context() -> None:
    output = compose_fork_input_with_context("# title\n\n### 👤 User\n\nhello", "zh")
    assert "# 分支上下文" in output
    assert "# Conversation History" in output


def test_unknown_language_falls_back_to_english() -> None:
    output = compose_fork_input_with_context("history", "xx")
    assert "# Branch Context" in output
    assert "history" in output


def test_layout() -> None:
    output = compose_fork_input_with_context("\n\n  body text \n\n", None)
    assert output == f"{CONTEXT_PREFIX[ForkLanguage.EN]}\n{HISTORY_HEADING}\nbody text\n"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, ForkLanguage.EN),
        ("", ForkLanguage.EN),
        ("en-US", ForkLanguage.EN),
        ("zh", ForkLanguage.ZH),
        ("zh-CN", ForkLanguage.ZH),
        ("zh_TW", ForkLanguage.ZH_TW),
        ("zh-TW", ForkLanguage.ZH_TW),
        ("ja", ForkLanguage.JA),
        ("pt-BR", ForkLanguage.PT),
        ("ru", ForkLanguage.RU),
        ("de", ForkLanguage.EN),
    ],
)
def test_normalize_language(raw, expected) -> None:
    assert normalize_language(raw) == expected


def test_every_language_has_a_preamble() -> None:
    for language in ForkLanguage:
        assert CONTEXT_PREFIX[language].startswith("# ")
