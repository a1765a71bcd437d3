"""Tool registry for model function calls."""

from __future__ import annotations

import inspect
import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeAlias

from loguru import logger
from pydantic import BaseModel, ValidationError
from republic import Tool

from huddle.errors import ToolArgumentError

ToolCallback: TypeAlias = Callable[[Any], Awaitable[str] | str]


def _shorten_text(text: str, width: int = 30, placeholder: str = "...") -> str:
    """Shorten text to width characters, cutting in the middle of words if needed."""
    if len(text) <= width:
        return text

    available = width - len(placeholder)
    if available <= 0:
        return placeholder

    return text[:available] + placeholder


class ResponseMode(StrEnum):
    """When a tool result goes back to the model."""

    # Re-issue a turn as soon as the result is queued.
    SYNCHRONOUS = "synchronous"
    # Leave the result queued until the next externally triggered turn.
    DEFERRED = "deferred"


@dataclass(frozen=True)
class ToolEntry:
    """Registered tool: validator, callback and response mode."""

    name: str
    description: str
    schema: type[BaseModel]
    callback: ToolCallback
    response_mode: ResponseMode = ResponseMode.SYNCHRONOUS

    @property
    def synchronous(self) -> bool:
        return self.response_mode is ResponseMode.SYNCHRONOUS

    def parse(self, raw_arguments: str) -> BaseModel:
        """Parse raw JSON arguments into the tool's schema."""
        try:
            payload = json.loads(raw_arguments or "{}")
        except json.JSONDecodeError as exc:
            raise ToolArgumentError(self.name, f"invalid JSON arguments: {exc.msg}") from exc
        try:
            return self.schema.model_validate(payload)
        except ValidationError as exc:
            raise ToolArgumentError(self.name, str(exc)) from exc

    def model_tool(self) -> Tool:
        return Tool(
            name=self.name,
            description=self.description,
            parameters=self.schema.model_json_schema(),
        )


class ToolRegistry:
    """Registry of tools the model may call, keyed by name."""

    def __init__(self, *, enabled: bool = True) -> None:
        self._enabled = enabled
        self._tools: dict[str, ToolEntry] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    def register(
        self,
        name: str,
        description: str,
        schema: type[BaseModel],
        callback: ToolCallback | None = None,
        *,
        response_mode: ResponseMode = ResponseMode.SYNCHRONOUS,
    ) -> Any:
        """Register a tool, or return a decorator when no callback is given.

        Registering an existing name replaces the previous entry. When the
        registry is disabled, registration is only logged.
        """

        def _register(func: ToolCallback) -> ToolCallback:
            if not self._enabled:
                logger.info("tool.register.skipped name={} reason=tools_disabled", name)
                return func
            logger.info("tool.register name={} mode={}", name, response_mode.value)
            self._tools[name] = ToolEntry(
                name=name,
                description=description,
                schema=schema,
                callback=func,
                response_mode=response_mode,
            )
            return func

        if callback is None:
            return _register
        return _register(callback)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> ToolEntry | None:
        return self._tools.get(name)

    def entries(self) -> list[ToolEntry]:
        return list(self._tools.values())

    def model_tools(self) -> list[Tool]:
        return [entry.model_tool() for entry in self._tools.values()]

    async def call(self, entry: ToolEntry, raw_arguments: str) -> str:
        """Validate raw arguments and run the tool callback.

        Raises ToolArgumentError when the arguments do not match the schema.
        Exceptions from the callback itself propagate unchanged.
        """
        params = entry.parse(raw_arguments)
        self._log_tool_call(entry.name, params.model_dump())

        start = time.monotonic()
        try:
            result = entry.callback(params)
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            logger.exception("tool.call.error name={}", entry.name)
            raise
        finally:
            duration = time.monotonic() - start
            logger.info("tool.call.end name={} duration={:.3f}ms", entry.name, duration * 1000)
        return "" if result is None else str(result)

    def _log_tool_call(self, name: str, kwargs: dict[str, Any]) -> None:
        params: list[str] = []
        for key, value in kwargs.items():
            try:
                rendered = json.dumps(value, ensure_ascii=False)
            except TypeError:
                rendered = repr(value)
            value = _shorten_text(rendered, width=30, placeholder="...")
            if value.startswith('"') and not value.endswith('"'):
                value = value + '"'
            params.append(f"{key}={value}")
        logger.info("tool.call.start name={} {{ {} }}", name, ", ".join(params))
