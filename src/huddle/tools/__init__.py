"""Tool registration for model function calls."""

from huddle.tools.registry import ResponseMode, ToolCallback, ToolEntry, ToolRegistry

__all__ = ["ResponseMode", "ToolCallback", "ToolEntry", "ToolRegistry"]
