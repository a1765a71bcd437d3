"""Conversation manager: serialized turns over one shared history."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any, TypeAlias

from loguru import logger
from pydantic import BaseModel

from huddle.compactor import HistoryCompactor, SummaryFormatter
from huddle.config import Settings
from huddle.llm import ChatModel
from huddle.logging_utils import bind_conversation
from huddle.messages import AnswerCallback, Message, Participant, SystemMessage, UserMessage
from huddle.signals import AnswerHandler, ConversationSignals, ErrorHandler, TalkingHandler
from huddle.tools.registry import ResponseMode, ToolCallback, ToolRegistry
from huddle.turns import ConversationState, TurnExecutor, TurnOptions

Job: TypeAlias = Callable[[], Awaitable[Any]]


@dataclass
class _ScheduledJob:
    run: Job
    label: str
    # Set for awaited jobs; fire-and-forget jobs report failures on the error signal.
    future: asyncio.Future[Any] | None = None


class ConversationManager:
    """Accepts messages from producers and runs turns one at a time, in schedule order.

    Every scheduled operation is a closure on a FIFO queue consumed by a single
    worker task. Messages added while a turn is in flight are buffered and
    picked up by the next turn.
    """

    def __init__(
        self,
        model: ChatModel,
        *,
        name: str = "conversation",
        tools: ToolRegistry | None = None,
        compactor: HistoryCompactor | None = None,
        requires_user_message: bool = False,
        prefix_with_user_names: bool = False,
    ) -> None:
        self.name = name
        self.tools = tools if tools is not None else ToolRegistry()
        self.compactor = compactor if compactor is not None else HistoryCompactor()
        self.signals = ConversationSignals(name)
        self._state = ConversationState(prefix_with_user_names=prefix_with_user_names)
        self._executor = TurnExecutor(
            self._state,
            model=model,
            tools=self.tools,
            compactor=self.compactor,
            signals=self.signals,
            requires_user_message=requires_user_message,
        )
        self._queue: asyncio.Queue[_ScheduledJob] = asyncio.Queue()
        self._parked: list[_ScheduledJob] = []
        self._worker: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: Settings, model: ChatModel, *, name: str = "conversation") -> ConversationManager:
        return cls(
            model,
            name=name,
            tools=ToolRegistry(enabled=settings.enable_tools),
            compactor=HistoryCompactor(
                word_count=settings.summary_word_count,
                token_trigger=settings.summary_token_trigger,
            ),
            requires_user_message=settings.requires_user_message,
            prefix_with_user_names=settings.prefix_with_user_names,
        )

    @property
    def history(self) -> list[Message]:
        return list(self._state.history)

    @property
    def pending(self) -> list[Message]:
        return list(self._state.pending)

    @property
    def stopped(self) -> bool:
        return self._state.stopped

    @property
    def prefix_with_user_names(self) -> bool:
        return self._state.prefix_with_user_names

    @prefix_with_user_names.setter
    def prefix_with_user_names(self, value: bool) -> None:
        self._state.prefix_with_user_names = value

    def add_system_message(self, content: str, on_answer: AnswerCallback | None = None) -> None:
        """Add a system message and schedule a turn.

        With ``on_answer`` the answer goes to that callback instead of the
        answer signal, and no typing indicator is shown.
        """
        self._state.pending.append(SystemMessage(content=content, on_answer=on_answer))
        quiet = on_answer is not None
        self._schedule_turn(TurnOptions(trigger_typing_indicator=not quiet, dispatch_answer=not quiet))

    def add_user_message(self, content: str, participant: Participant, *, schedule_run: bool = True) -> None:
        self._state.pending.append(UserMessage(content=content, participant=participant))
        if schedule_run:
            self._schedule_turn(TurnOptions())

    def replace_first_system_message(self, content: str) -> None:
        """Replace the first system message in history, or prepend one if there is none."""
        history = self._state.history
        for idx, message in enumerate(history):
            if isinstance(message, SystemMessage):
                history[idx] = replace(message, content=content)
                return
        history.insert(0, SystemMessage(content=content))

    def participants(self) -> list[str]:
        """Uuids of the participants who spoke in the committed history."""
        uuids: dict[str, None] = {}
        for message in self._state.history:
            if isinstance(message, UserMessage):
                uuids.setdefault(message.participant.uuid, None)
        return list(uuids)

    def register_tool(
        self,
        name: str,
        description: str,
        schema: type[BaseModel],
        callback: ToolCallback,
        *,
        response_mode: ResponseMode = ResponseMode.SYNCHRONOUS,
    ) -> None:
        self.tools.register(name, description, schema, callback, response_mode=response_mode)

    def force_tool(self, name: str | None) -> None:
        """Pin the tool choice of every request to one tool; None restores automatic choice."""
        self._state.forced_tool = name

    def register_summary_formatter(self, formatter: SummaryFormatter) -> None:
        self.compactor.register_formatter(formatter)

    def on_answer(self, handler: AnswerHandler) -> Callable[[], None]:
        return self.signals.on_answer(handler)

    def on_error(self, handler: ErrorHandler) -> Callable[[], None]:
        return self.signals.on_error(handler)

    def on_start_talking(self, handler: TalkingHandler) -> Callable[[], None]:
        return self.signals.on_start_talking(handler)

    def on_stop_talking(self, handler: TalkingHandler) -> Callable[[], None]:
        return self.signals.on_stop_talking(handler)

    def execute_when_ready(self, callback: Callable[[], Awaitable[None] | None]) -> None:
        """Run callback once every previously scheduled turn has finished."""

        async def _job() -> None:
            await _maybe_await(callback())

        self._enqueue(_ScheduledJob(run=_job, label="when_ready"))

    def execute_when_done(self, callback: Callable[[], Awaitable[None] | None]) -> None:
        """Like execute_when_ready, but also wait until no message is pending."""

        async def _job() -> None:
            if self._state.pending:
                self._defer(job)
                return
            await _maybe_await(callback())

        job = _ScheduledJob(run=_job, label="when_done")
        self._enqueue(job)

    async def summarize(self, word_count: int | None = None) -> str:
        """Compact history into one summary message and return the summary."""
        return await self._submit(lambda: self._executor.compact(word_count), label="summarize")

    async def request_summary(self, word_count: int) -> str:
        """Ask the model for a summary of the conversation without compacting."""
        return await self._submit(lambda: self._executor.request_summary(word_count), label="request_summary")

    def stop(self) -> None:
        """Stop the conversation. Responses still in flight are ignored."""
        if self._state.stopped:
            return
        self._state.stopped = True
        logger.info("conversation.stopped name={}", self.name)

    async def wait_idle(self) -> None:
        """Wait until every job scheduled so far has run."""
        await self._queue.join()

    async def aclose(self) -> None:
        """Stop the conversation and cancel the worker along with every job it has not run."""
        self.stop()
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None

        self._parked.clear()
        while not self._queue.empty():
            job = self._queue.get_nowait()
            if job.future is not None and not job.future.done():
                job.future.cancel()
            self._queue.task_done()

    def _schedule_turn(self, options: TurnOptions) -> None:
        async def _job() -> str | None:
            return await self._run_turn(options)

        self._enqueue(_ScheduledJob(run=_job, label="turn"))

    async def _run_turn(self, options: TurnOptions) -> str | None:
        if self._state.stopped or not self._state.pending:
            return None
        response = await self._executor.turn(options)
        if options.dispatch_answer and response and not self._state.stopped:
            self.signals.answer(self, response)
        return response

    async def _submit(self, run: Job, *, label: str) -> Any:
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._enqueue(_ScheduledJob(run=run, label=label, future=future))
        return await future

    def _enqueue(self, job: _ScheduledJob) -> None:
        self._ensure_worker()
        self._queue.put_nowait(job)
        # Deferred jobs wait behind the newest work, which may drain pending messages.
        if self._parked:
            parked, self._parked = self._parked, []
            for item in parked:
                self._queue.put_nowait(item)

    def _defer(self, job: _ScheduledJob) -> None:
        if self._queue.empty():
            # Nothing queued could drain pending messages yet; wait for the next schedule.
            self._parked.append(job)
        else:
            self._queue.put_nowait(job)

    def _ensure_worker(self) -> None:
        if self._worker is not None and not self._worker.done():
            return
        self._worker = asyncio.get_running_loop().create_task(self._work(), name=f"huddle.{self.name}")

    async def _work(self) -> None:
        bind_conversation(self.name)
        while True:
            job = await self._queue.get()
            try:
                result = await job.run()
            except asyncio.CancelledError:
                if job.future is not None and not job.future.done():
                    job.future.cancel()
                raise
            except Exception as exc:
                if job.future is not None:
                    if not job.future.done():
                        job.future.set_exception(exc)
                elif self._state.stopped:
                    logger.debug("conversation.job.failed label={} reason=stopped error={}", job.label, exc)
                else:
                    logger.debug("conversation.job.failed label={}", job.label)
                    self.signals.error(self, exc)
            else:
                if job.future is not None and not job.future.done():
                    job.future.set_result(result)
            finally:
                self._queue.task_done()


async def _maybe_await(value: Awaitable[None] | None) -> None:
    if inspect.isawaitable(value):
        await value
