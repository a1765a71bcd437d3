from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from huddle.config import Settings
from huddle.errors import ConfigurationError, TransportError
from huddle.llm import CompletionRequest, RepublicChatModel, build_chat_model
from huddle.messages import ToolInvocation


class FakeChat:
    def __init__(self, response: object = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def raw(self, **kwargs: Any) -> object:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


def _llm(chat: FakeChat) -> Any:
    return SimpleNamespace(chat=chat)


def _response(content: str | None, tool_calls: list[object] | None = None) -> object:
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.mark.asyncio
async def test_republic_model_maps_text_response() -> None:
    chat = FakeChat(_response("hello"))
    model = RepublicChatModel(_llm(chat))

    response = await model.complete(CompletionRequest(messages=[{"role": "user", "content": "hi"}]))

    assert response.content == "hello"
    assert response.tool_invocations == ()
    assert chat.calls == [{"messages": [{"role": "user", "content": "hi"}]}]


@pytest.mark.asyncio
async def test_republic_model_maps_tool_calls_and_forced_choice() -> None:
    call = SimpleNamespace(
        id="call-1",
        type="function",
        function=SimpleNamespace(name="performAction", arguments='{"action": "wait"}'),
    )
    chat = FakeChat(_response(None, [call]))
    model = RepublicChatModel(_llm(chat), max_tokens=256)
    tool = SimpleNamespace(name="performAction")

    response = await model.complete(CompletionRequest(messages=[], tools=[tool], forced_tool="performAction"))  # type: ignore[list-item]

    assert response.content is None
    assert response.tool_invocations == (ToolInvocation("call-1", "performAction", '{"action": "wait"}'),)
    assert chat.calls[0]["tool_choice"] == {"type": "function", "function": {"name": "performAction"}}
    assert chat.calls[0]["max_tokens"] == 256


@pytest.mark.asyncio
async def test_republic_model_wraps_failures() -> None:
    model = RepublicChatModel(_llm(FakeChat(error=RuntimeError("connection reset"))))

    with pytest.raises(TransportError, match="connection reset"):
        await model.complete(CompletionRequest(messages=[]))


@pytest.mark.asyncio
async def test_republic_model_rejects_empty_choices() -> None:
    model = RepublicChatModel(_llm(FakeChat(SimpleNamespace(choices=[]))))

    with pytest.raises(TransportError, match="no message"):
        await model.complete(CompletionRequest(messages=[]))


def test_build_chat_model_requires_a_model() -> None:
    with pytest.raises(ConfigurationError, match="HUDDLE_MODEL"):
        build_chat_model(Settings(model=None))
