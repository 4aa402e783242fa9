# strand/core/message.py

import json
from datetime import datetime
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

# ============ Token Usage ============


class TokenUsage(BaseModel):
    """Token accounting for one model call (or a sum of them)."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "TokenUsage | None") -> "TokenUsage":
        if other is None:
            return self
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


# ============ Tool Call Types ============


class ToolCall(BaseModel):
    """
    A tool invocation requested by the model.

    ``arguments`` is always a mapping. Providers that send a JSON string are
    normalized here; a JSON scalar becomes ``{"input": value}`` and text that
    is not JSON at all is kept verbatim under the same key.
    """

    id: str = Field(default_factory=lambda: f"call_{uuid4().hex[:24]}")
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)

    @field_validator("arguments", mode="before")
    @classmethod
    def _normalize_arguments(cls, value: Any) -> dict[str, Any]:
        if value is None:
            return {}
        if isinstance(value, dict):
            return value
        if isinstance(value, str):
            if not value.strip():
                return {}
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError:
                return {"input": value}
            return parsed if isinstance(parsed, dict) else {"input": parsed}
        return {"input": value}


# ============ Message Types ============


class BaseMessage(BaseModel):
    """
    Base class for all chat messages.

    Messages are plain pydantic models; steps convert themselves into lists of
    these when memory is replayed to the model.
    """

    role: str
    content: str | None = None

    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=datetime.now)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def get_text_content(self) -> str:
        return self.content or ""

    def to_dict(self) -> dict[str, Any]:
        msg: dict[str, Any] = {"role": self.role}
        if self.content is not None:
            msg["content"] = self.content
        return msg


class SystemMessage(BaseMessage):
    """System message."""

    role: Literal["system"] = "system"
    content: str


class UserMessage(BaseMessage):
    """User message."""

    role: Literal["user"] = "user"
    images: list[str] = Field(default_factory=list)


class AssistantMessage(BaseMessage):
    """Model response, optionally carrying tool calls and reasoning."""

    role: Literal["assistant"] = "assistant"
    tool_calls: list[ToolCall] = Field(default_factory=list)
    token_usage: TokenUsage | None = None
    reasoning: str | None = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_dict(self) -> dict[str, Any]:
        msg = super().to_dict()
        if self.tool_calls:
            msg["tool_calls"] = [tc.model_dump() for tc in self.tool_calls]
        return msg


class ToolMessage(BaseMessage):
    """Observation returned by a tool."""

    role: Literal["tool"] = "tool"
    content: str
    tool_call_id: str
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        msg = super().to_dict()
        msg["tool_call_id"] = self.tool_call_id
        return msg


Message = SystemMessage | UserMessage | AssistantMessage | ToolMessage
