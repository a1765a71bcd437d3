"""Chat model boundary and the Republic-backed adapter."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol

from loguru import logger
from republic import LLM, Tool

from huddle.config import Settings
from huddle.errors import ConfigurationError, TransportError
from huddle.messages import ToolInvocation

MODEL_NOT_CONFIGURED_ERROR = "Model not configured. Set HUDDLE_MODEL (e.g., 'openai:gpt-4o-mini')."


@dataclass(frozen=True)
class CompletionRequest:
    """Everything one turn sends to the model."""

    messages: list[dict[str, Any]]
    tools: list[Tool] = field(default_factory=list)
    forced_tool: str | None = None

    @property
    def tool_choice(self) -> str | dict[str, Any]:
        if self.forced_tool is None:
            return "auto"
        return {"type": "function", "function": {"name": self.forced_tool}}


@dataclass(frozen=True)
class CompletionResponse:
    content: str | None = None
    tool_invocations: tuple[ToolInvocation, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.content and not self.tool_invocations


class ChatModel(Protocol):
    """Opaque request/response capability the turn executor talks to."""

    async def complete(self, request: CompletionRequest) -> CompletionResponse: ...


class RepublicChatModel:
    """ChatModel backed by a Republic LLM client."""

    def __init__(
        self,
        llm: LLM,
        *,
        max_tokens: int | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._llm = llm
        self._max_tokens = max_tokens
        self._timeout_seconds = timeout_seconds

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        kwargs: dict[str, Any] = {"messages": request.messages}
        if request.tools:
            kwargs["tools"] = request.tools
            kwargs["tool_choice"] = request.tool_choice
        if self._max_tokens is not None:
            kwargs["max_tokens"] = self._max_tokens

        logger.debug("model.request messages={} tools={}", len(request.messages), len(request.tools))
        try:
            async with asyncio.timeout(self._timeout_seconds):
                response = await asyncio.to_thread(self._llm.chat.raw, **kwargs)
        except TimeoutError as exc:
            raise TransportError(f"model_timeout: no response within {self._timeout_seconds}s") from exc
        except Exception as exc:
            raise TransportError(f"model_call_error: {exc!s}") from exc

        message = _first_message(response)
        if message is None:
            raise TransportError("model returned no message")
        return CompletionResponse(
            content=getattr(message, "content", None) or None,
            tool_invocations=_extract_tool_invocations(message),
        )


def build_chat_model(settings: Settings) -> RepublicChatModel:
    """Build a Republic-backed chat model from settings."""

    if not settings.model:
        raise ConfigurationError(MODEL_NOT_CONFIGURED_ERROR)
    llm = LLM(
        model=settings.model,
        api_key=settings.api_key,
        api_base=settings.api_base,
    )
    return RepublicChatModel(llm, timeout_seconds=settings.model_timeout_seconds)


def _first_message(response: Any) -> Any:
    choices = getattr(response, "choices", None)
    if not choices:
        return None
    return getattr(choices[0], "message", None)


def _extract_tool_invocations(message: Any) -> tuple[ToolInvocation, ...]:
    invocations: list[ToolInvocation] = []
    for idx, tool_call in enumerate(getattr(message, "tool_calls", None) or []):
        if getattr(tool_call, "type", "function") != "function":
            continue
        function = getattr(tool_call, "function", None)
        if function is None:
            continue
        invocations.append(
            ToolInvocation(
                id=getattr(tool_call, "id", None) or str(idx),
                name=getattr(function, "name", "") or "",
                raw_arguments=getattr(function, "arguments", "") or "",
            )
        )
    return tuple(invocations)
