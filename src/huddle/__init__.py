"""huddle - turn orchestration for chat bots living in a shared space."""

from huddle.compactor import HistoryCompactor
from huddle.config import Settings, get_settings
from huddle.conversation import ConversationManager
from huddle.errors import ConfigurationError, HuddleError, ProtocolError, ToolArgumentError, TransportError
from huddle.llm import ChatModel, CompletionRequest, CompletionResponse, RepublicChatModel, build_chat_model
from huddle.messages import Participant, ToolInvocation
from huddle.tools import ResponseMode, ToolRegistry

__version__ = "0.1.0"

__all__ = [
    "ChatModel",
    "CompletionRequest",
    "CompletionResponse",
    "ConfigurationError",
    "ConversationManager",
    "HistoryCompactor",
    "HuddleError",
    "Participant",
    "ProtocolError",
    "RepublicChatModel",
    "ResponseMode",
    "Settings",
    "ToolArgumentError",
    "ToolInvocation",
    "ToolRegistry",
    "TransportError",
    "build_chat_model",
    "get_settings",
]
