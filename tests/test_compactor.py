from __future__ import annotations

import pytest

from huddle.compactor import HistoryCompactor, count_words, summary_prompt
from huddle.errors import ConfigurationError
from huddle.messages import AssistantMessage, Participant, SystemMessage, UserMessage

ALICE = Participant(uuid="uuid-alice", name="Alice")


def test_count_words_handles_punctuation_and_cjk() -> None:
    assert count_words("Hello, world! It's fine.") == 4
    assert count_words("  ") == 0
    assert count_words("你好") == 2


def test_estimate_tokens_uses_words_to_tokens_ratio() -> None:
    compactor = HistoryCompactor()
    history = [
        SystemMessage(content="one two three"),
        UserMessage(content="four five six", participant=ALICE),
        AssistantMessage(content=None),
    ]

    assert compactor.estimate_tokens(history) == pytest.approx(6 * 100 / 75)


def test_should_compact_compares_against_trigger() -> None:
    history = [UserMessage(content="word " * 30, participant=ALICE)]

    assert HistoryCompactor(token_trigger=39).should_compact(history)
    assert not HistoryCompactor(token_trigger=40).should_compact(history)


def test_summary_prompt_mentions_word_bound() -> None:
    prompt = summary_prompt(200)
    assert "200 words" in prompt
    assert "who said what" in prompt


@pytest.mark.asyncio
async def test_compact_without_formatter_leaves_history_untouched() -> None:
    compactor = HistoryCompactor()
    history = [SystemMessage(content="rules"), UserMessage(content="Hi", participant=ALICE)]
    requested: list[int] = []

    async def request_summary(word_count: int) -> str:
        requested.append(word_count)
        return "summary"

    with pytest.raises(ConfigurationError):
        await compactor.compact(history, request_summary)

    assert requested == []
    assert len(history) == 2


@pytest.mark.asyncio
async def test_compact_replaces_history_with_formatted_summary() -> None:
    compactor = HistoryCompactor(word_count=50)
    compactor.register_formatter(lambda summary: f"Previously: {summary}")
    history = [
        SystemMessage(content="rules"),
        UserMessage(content="Hi", participant=ALICE),
        AssistantMessage(content="Hello Alice"),
    ]
    requested: list[int] = []

    async def request_summary(word_count: int) -> str:
        requested.append(word_count)
        return "Alice said hi."

    summary = await compactor.compact(history, request_summary)

    assert summary == "Alice said hi."
    assert requested == [50]
    assert history == [SystemMessage(content="Previously: Alice said hi.")]
