"""Capability interfaces consumed by the runtime core."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from strand.core.message import AssistantMessage, BaseMessage


@runtime_checkable
class Model(Protocol):
    """Anything that turns a message list into an assistant message."""

    def generate(self, messages: list[BaseMessage], **options: Any) -> AssistantMessage: ...


@runtime_checkable
class ToolLike(Protocol):
    name: str
    description: str

    def __call__(self, *args: Any, **kwargs: Any) -> Any: ...


@runtime_checkable
class Emitter(Protocol):
    def emit(self, event: Any) -> None: ...
