"""Turn execution against the chat model."""

from __future__ import annotations

import inspect
from collections import deque
from dataclasses import dataclass, field

from loguru import logger

from huddle.compactor import HistoryCompactor, summary_prompt
from huddle.errors import ConfigurationError, HuddleError, ProtocolError, ToolArgumentError, TransportError
from huddle.llm import ChatModel, CompletionRequest, CompletionResponse
from huddle.messages import (
    PLACEHOLDER_USER_MESSAGE,
    AnswerCallback,
    AssistantMessage,
    Message,
    SystemMessage,
    ToolResultMessage,
    UserMessage,
    render_messages,
)
from huddle.signals import ConversationSignals
from huddle.tools.registry import ToolRegistry

NO_CALLBACK_CONTENT_ERROR = "No message received for callback of system message."


@dataclass(frozen=True)
class TurnOptions:
    trigger_typing_indicator: bool = True
    dispatch_answer: bool = True


QUIET_TURN = TurnOptions(trigger_typing_indicator=False, dispatch_answer=False)


@dataclass
class ConversationState:
    """Pending and committed messages of one conversation."""

    history: list[Message] = field(default_factory=list)
    pending: deque[Message] = field(default_factory=deque)
    stopped: bool = False
    forced_tool: str | None = None
    prefix_with_user_names: bool = False


@dataclass
class _Batch:
    taken: int = 0
    callback: AnswerCallback | None = None


class TurnExecutor:
    """Runs one turn: drain pending messages, call the model, apply tool calls."""

    def __init__(
        self,
        state: ConversationState,
        *,
        model: ChatModel,
        tools: ToolRegistry,
        compactor: HistoryCompactor,
        signals: ConversationSignals,
        requires_user_message: bool = False,
    ) -> None:
        self._state = state
        self._model = model
        self._tools = tools
        self._compactor = compactor
        self._signals = signals
        self._requires_user_message = requires_user_message
        self._compacting = False
        self._talking = False

    async def turn(self, options: TurnOptions) -> str | None:
        """Run one scheduled turn, clearing the typing indicator if this turn raised it."""
        self._talking = False
        try:
            return await self.run(options)
        finally:
            if self._talking and not self._state.stopped:
                self._signals.stop_talking(self)
            self._talking = False

    async def run(self, options: TurnOptions) -> str | None:
        state = self._state
        if state.stopped or not state.pending:
            return None

        self._commit_tool_results()
        batch = self._drain_pending()

        messages = render_messages(state.history, prefix_with_user_names=state.prefix_with_user_names)
        if self._requires_user_message and not any(message["role"] == "user" for message in messages):
            messages.append(dict(PLACEHOLDER_USER_MESSAGE))

        if options.trigger_typing_indicator:
            self._signals.start_talking(self)
            self._talking = True

        request = CompletionRequest(
            messages=messages,
            tools=self._tools.model_tools(),
            forced_tool=state.forced_tool,
        )
        logger.info("turn.request messages={} taken={} forced_tool={}", len(messages), batch.taken, state.forced_tool)
        try:
            response = await self._model.complete(request)
        except TransportError as exc:
            logger.warning("turn.transport.error error={}", exc)
            if not state.stopped:
                self._signals.error(self, exc)
            return None

        if state.stopped:
            logger.info("turn.discarded reason=stopped")
            return None

        if not response.is_empty:
            state.history.append(
                AssistantMessage(content=response.content, tool_invocations=response.tool_invocations)
            )
        logger.info("turn.response content={} tool_calls={}", bool(response.content), len(response.tool_invocations))

        should_recurse, halted = await self._apply_tool_calls(response)
        if halted:
            return None

        content = response.content
        if should_recurse:
            content = await self.run(options)
            if state.stopped:
                return None

        if batch.callback is not None:
            if not content:
                raise ConfigurationError(NO_CALLBACK_CONTENT_ERROR)
            result = batch.callback(content)
            if inspect.isawaitable(result):
                await result

        # The recursive run has already checked the size of the same history.
        if not should_recurse and not self._compacting and self._compactor.should_compact(state.history):
            logger.info("turn.compaction.triggered estimate={:.0f}", self._compactor.estimate_tokens(state.history))
            try:
                await self.compact()
            except HuddleError:
                if not state.stopped:
                    raise
                logger.info("turn.compaction.discarded reason=stopped")
                return None

        return content or None

    async def request_summary(self, word_count: int) -> str:
        """Run a quiet turn that asks the model to summarize the conversation."""
        summary: list[str] = []

        def _capture(content: str) -> None:
            summary.append(content)

        # At the front so the prompt starts the next turn alone, ahead of buffered user messages.
        self._state.pending.appendleft(SystemMessage(content=summary_prompt(word_count), on_answer=_capture))
        await self.run(QUIET_TURN)
        if self._state.stopped:
            raise HuddleError("Conversation stopped before the summary arrived.")
        if not summary:
            raise ConfigurationError("Summary turn produced no answer.")
        return summary[0]

    async def compact(self, word_count: int | None = None) -> str:
        self._compacting = True
        try:
            return await self._compactor.compact(self._state.history, self.request_summary, word_count)
        finally:
            self._compacting = False

    def _commit_tool_results(self) -> None:
        history = self._state.history
        remaining: deque[Message] = deque()
        for message in self._state.pending:
            if not isinstance(message, ToolResultMessage):
                remaining.append(message)
                continue
            index = next(
                (
                    idx
                    for idx, entry in enumerate(history)
                    if isinstance(entry, AssistantMessage) and entry.invokes(message.tool_call_id)
                ),
                None,
            )
            if index is None:
                raise ProtocolError(f'Could not find tool call with ID "{message.tool_call_id}" in chat history')
            history.insert(index + 1, message)
        self._state.pending = remaining

    def _drain_pending(self) -> _Batch:
        """Move pending entries into history. User messages batch together; a system message goes alone."""
        state = self._state
        batch = _Batch()
        while state.pending:
            message = state.pending.popleft()
            if isinstance(message, SystemMessage):
                if batch.taken:
                    state.pending.appendleft(message)
                    break
                state.history.append(message)
                batch.callback = message.on_answer
                break
            state.history.append(message)
            if isinstance(message, UserMessage):
                batch.taken += 1
        return batch

    async def _apply_tool_calls(self, response: CompletionResponse) -> tuple[bool, bool]:
        """Run requested tools in order. Returns (should_recurse, halted_by_stop)."""
        should_recurse = False
        for invocation in response.tool_invocations:
            entry = self._tools.get(invocation.name)
            if entry is None:
                raise ProtocolError(f"Unknown tool: {invocation.name}")

            try:
                result = await self._tools.call(entry, invocation.raw_arguments)
            except ToolArgumentError as exc:
                # Remaining invocations of this response are dropped as well.
                logger.error("tool.arguments.invalid name={} arguments={} error={}", invocation.name, invocation.raw_arguments, exc)
                break

            if self._state.stopped:
                return should_recurse, True

            self._state.pending.appendleft(ToolResultMessage(tool_call_id=invocation.id, content=result))
            if entry.synchronous:
                should_recurse = True
        return should_recurse, False
