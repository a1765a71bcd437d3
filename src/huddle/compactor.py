"""History size estimation and compaction."""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from typing import TypeAlias

from loguru import logger

from huddle.errors import ConfigurationError
from huddle.messages import Message, SystemMessage, message_text

SummaryFormatter: TypeAlias = Callable[[str], str]
SummaryRequester: TypeAlias = Callable[[int], Awaitable[str]]

# CJK characters count as one word each; elsewhere a word is a run of letters or digits.
WORD_PATTERN = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]|[^\W_]+(?:['\u2019-][^\W_]+)*")
FORMATTER_MISSING_ERROR = (
    "The chat history is too big and no summary formatter is registered. "
    "Call register_summary_formatter() first."
)


def count_words(text: str) -> int:
    return len(WORD_PATTERN.findall(text))


def summary_prompt(word_count: int) -> str:
    return (
        "Please make a summary of the conversation you were having. "
        f"Do not make the summary longer than {round(word_count)} words. "
        "Please include in the summary who said what."
    )


class HistoryCompactor:
    """Estimates context size and collapses history into a summary message."""

    def __init__(self, *, word_count: int = 200, token_trigger: int = 3200) -> None:
        self.word_count = word_count
        self.token_trigger = token_trigger
        self._formatter: SummaryFormatter | None = None

    def register_formatter(self, formatter: SummaryFormatter) -> None:
        """Set the function turning a summary into the system prompt that replaces history."""
        self._formatter = formatter

    def estimate_tokens(self, history: list[Message]) -> float:
        text = "\n".join(message_text(message) for message in history)
        # From OpenAI's help center: 100 tokens ~= 75 words.
        return count_words(text) * 100 / 75

    def should_compact(self, history: list[Message]) -> bool:
        return self.estimate_tokens(history) > self.token_trigger

    async def compact(
        self,
        history: list[Message],
        request_summary: SummaryRequester,
        word_count: int | None = None,
    ) -> str:
        """Replace the whole history, in place, with one summarizing system message.

        The formatter is checked before any summary is requested, so a missing
        formatter leaves history untouched.
        """
        formatter = self._formatter
        if formatter is None:
            raise ConfigurationError(FORMATTER_MISSING_ERROR)

        target = self.word_count if word_count is None else word_count
        before = len(history)
        summary = await request_summary(target)
        history[:] = [SystemMessage(content=formatter(summary))]
        logger.info("history.compacted entries_before={} words={}", before, count_words(summary))
        return summary
