"""Application-level exception types for huddle."""

from __future__ import annotations


class HuddleError(Exception):
    """Base exception for huddle."""


class ConfigurationError(HuddleError):
    """Raised on caller misuse: a missing formatter, model, or required answer content."""


class ProtocolError(HuddleError):
    """Raised when history and tool calls disagree, which indicates a wiring bug."""


class ToolArgumentError(HuddleError):
    """Raised when the model sends tool arguments that do not parse or validate."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name


class TransportError(HuddleError):
    """Raised by a chat model adapter when the underlying request fails."""
