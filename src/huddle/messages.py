"""Conversation message model."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeAlias

AnswerCallback: TypeAlias = Callable[[str], Awaitable[None] | None]


@dataclass(frozen=True)
class Participant:
    """Someone in the shared space who can talk to the bot."""

    uuid: str
    name: str


@dataclass(frozen=True)
class ToolInvocation:
    """One function call requested by the model."""

    id: str
    name: str
    raw_arguments: str

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.raw_arguments},
        }


@dataclass(frozen=True)
class SystemMessage:
    content: str
    # Receives the model's answer instead of the answer signal.
    on_answer: AnswerCallback | None = field(default=None, compare=False)

    role = "system"

    def to_wire(self, *, prefix_with_user_names: bool = False) -> dict[str, Any]:
        return {"role": "system", "content": self.content}


@dataclass(frozen=True)
class AssistantMessage:
    content: str | None = None
    tool_invocations: tuple[ToolInvocation, ...] = ()

    role = "assistant"

    def invokes(self, tool_call_id: str) -> bool:
        return any(invocation.id == tool_call_id for invocation in self.tool_invocations)

    def to_wire(self, *, prefix_with_user_names: bool = False) -> dict[str, Any]:
        message: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_invocations:
            message["tool_calls"] = [invocation.to_wire() for invocation in self.tool_invocations]
        return message


@dataclass(frozen=True)
class UserMessage:
    content: str
    participant: Participant

    role = "user"

    def to_wire(self, *, prefix_with_user_names: bool = False) -> dict[str, Any]:
        content = f"{self.participant.name}: {self.content}" if prefix_with_user_names else self.content
        return {"role": "user", "content": content}


@dataclass(frozen=True)
class ToolResultMessage:
    tool_call_id: str
    content: str

    role = "tool"

    def to_wire(self, *, prefix_with_user_names: bool = False) -> dict[str, Any]:
        return {"role": "tool", "tool_call_id": self.tool_call_id, "content": self.content}


Message: TypeAlias = SystemMessage | AssistantMessage | UserMessage | ToolResultMessage

# Blank user message for backends that refuse a request without one.
PLACEHOLDER_USER_MESSAGE: dict[str, Any] = {"role": "user", "content": " "}


def render_messages(history: list[Message], *, prefix_with_user_names: bool = False) -> list[dict[str, Any]]:
    """Render history into chat-completion messages."""
    return [message.to_wire(prefix_with_user_names=prefix_with_user_names) for message in history]


def message_text(message: Message) -> str:
    return message.content or ""
