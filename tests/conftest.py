"""
Pytest Configuration and Fixtures
"""

import threading
from typing import Any

import pytest

from strand.core.message import AssistantMessage, TokenUsage, ToolCall
from strand.tools.base import FunctionTool


class ScriptedModel:
    """Mock model: replays queued responses in order and records every call.

    A queued item may be an AssistantMessage, a plain string (content only),
    an exception instance (raised) or a callable taking the messages.
    When the script runs out, ``default`` is returned.
    """

    def __init__(self, responses: list[Any] | None = None, default: Any = None) -> None:
        self.responses = list(responses or [])
        self.default = default
        self.calls: list[tuple[list[Any], dict[str, Any]]] = []
        self._lock = threading.Lock()

    def generate(self, messages, **options):
        with self._lock:
            self.calls.append((list(messages), options))
            item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            item = item(messages)
        if isinstance(item, str):
            return AssistantMessage(content=item, token_usage=TokenUsage(input_tokens=10, output_tokens=5))
        return item


def tool_call(name: str, **arguments: Any) -> ToolCall:
    return ToolCall(name=name, arguments=arguments)


def action(*calls: ToolCall, content: str = "") -> AssistantMessage:
    return AssistantMessage(
        content=content,
        tool_calls=list(calls),
        token_usage=TokenUsage(input_tokens=10, output_tokens=5),
    )


def _add(a: int, b: int) -> int:
    """Add two integers."""
    return a + b


def _web_search(query: str) -> str:
    """Search the web."""
    return f"results for {query}"


@pytest.fixture
def add_tool() -> FunctionTool:
    return FunctionTool(_add, name="add")


@pytest.fixture
def search_tool() -> FunctionTool:
    return FunctionTool(_web_search, name="web_search")


@pytest.fixture
def scripted_model():
    """Factory for ScriptedModel instances."""
    return ScriptedModel
