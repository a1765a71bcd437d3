"""Signal-based notification streams for one conversation."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from blinker import Signal
from loguru import logger

TalkingHandler = Callable[[], None]
AnswerHandler = Callable[[str], None]
ErrorHandler = Callable[[Exception], None]


class ConversationSignals:
    """In-process notification streams backed by blinker signals.

    Presentation layers subscribe to drive a typing indicator, post answers
    into the chat, and turn errors into a failure notice.
    """

    def __init__(self, name: str) -> None:
        self.started_talking = Signal(f"huddle.{name}.started_talking")
        self.stopped_talking = Signal(f"huddle.{name}.stopped_talking")
        self.answered = Signal(f"huddle.{name}.answered")
        self.errored = Signal(f"huddle.{name}.errored")

    def start_talking(self, sender: Any) -> None:
        self.started_talking.send(sender)

    def stop_talking(self, sender: Any) -> None:
        self.stopped_talking.send(sender)

    def answer(self, sender: Any, text: str) -> None:
        if not self.answered.receivers:
            logger.warning("conversation.answer.dropped reason=no_receiver")
            return
        self.answered.send(sender, text=text)

    def error(self, sender: Any, error: Exception) -> None:
        logger.opt(exception=error).error("conversation.error error={}", error)
        self.errored.send(sender, error=error)

    def on_start_talking(self, handler: TalkingHandler) -> Callable[[], None]:
        def _receiver(sender: Any) -> None:
            handler()

        self.started_talking.connect(_receiver, weak=False)
        return lambda: self.started_talking.disconnect(_receiver)

    def on_stop_talking(self, handler: TalkingHandler) -> Callable[[], None]:
        def _receiver(sender: Any) -> None:
            handler()

        self.stopped_talking.connect(_receiver, weak=False)
        return lambda: self.stopped_talking.disconnect(_receiver)

    def on_answer(self, handler: AnswerHandler) -> Callable[[], None]:
        def _receiver(sender: Any, *, text: str) -> None:
            handler(text)

        self.answered.connect(_receiver, weak=False)
        return lambda: self.answered.disconnect(_receiver)

    def on_error(self, handler: ErrorHandler) -> Callable[[], None]:
        def _receiver(sender: Any, *, error: Exception) -> None:
            handler(error)

        self.errored.connect(_receiver, weak=False)
        return lambda: self.errored.disconnect(_receiver)
