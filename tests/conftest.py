from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest

from huddle.llm import CompletionRequest, CompletionResponse
from huddle.messages import Participant, ToolInvocation


@dataclass
class FakeChatModel:
    """Chat model stub that replays canned outputs and records every request."""

    outputs: list[CompletionResponse | Exception] = field(default_factory=list)
    requests: list[CompletionRequest] = field(default_factory=list)
    gate: asyncio.Event | None = None
    entered: asyncio.Event = field(default_factory=asyncio.Event)
    on_request: Callable[[int], None] | None = None

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        self.entered.set()
        if self.on_request is not None:
            self.on_request(len(self.requests) - 1)
        if self.gate is not None:
            await self.gate.wait()
        output = self.outputs.pop(0) if self.outputs else CompletionResponse(content="ok")
        if isinstance(output, Exception):
            raise output
        return output

    def contents(self, index: int) -> list[str | None]:
        return [message.get("content") for message in self.requests[index].messages]


def text(content: str | None) -> CompletionResponse:
    return CompletionResponse(content=content)


def tool_calls(*calls: tuple[str, str, str], content: str | None = None) -> CompletionResponse:
    return CompletionResponse(
        content=content,
        tool_invocations=tuple(ToolInvocation(id=call_id, name=name, raw_arguments=args) for call_id, name, args in calls),
    )


@pytest.fixture
def alice() -> Participant:
    return Participant(uuid="uuid-alice", name="Alice")


@pytest.fixture
def bob() -> Participant:
    return Participant(uuid="uuid-bob", name="Bob")
