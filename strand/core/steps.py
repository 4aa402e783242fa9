"""
Steps - 智能体记忆的基本单元

每一步在构造后不可变；有序的步骤序列构成智能体的记忆。
每个步骤都能转换为零条或多条聊天消息，用于把上下文重新注入模型。
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from strand.core.message import (
    AssistantMessage,
    BaseMessage,
    SystemMessage,
    TokenUsage,
    ToolCall,
    UserMessage,
)

ERROR_RETRY_GUIDANCE = (
    "Now let's retry: take care not to repeat previous errors!\n"
    "If you have retried several times, try a completely different approach."
)


@dataclass(frozen=True)
class Timing:
    start_time: float
    end_time: float | None = None

    @classmethod
    def start_now(cls) -> Timing:
        return cls(start_time=time.monotonic())

    def stop(self) -> Timing:
        return Timing(start_time=self.start_time, end_time=time.monotonic())

    @property
    def duration(self) -> float | None:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time


@dataclass(frozen=True)
class TaskStep:
    task: str
    images: tuple[str, ...] = ()

    def to_messages(self, summary_mode: bool = False) -> list[BaseMessage]:
        return [UserMessage(content=f"New task:\n{self.task}", images=list(self.images))]


@dataclass(frozen=True)
class SystemPromptStep:
    prompt: str

    def to_messages(self, summary_mode: bool = False) -> list[BaseMessage]:
        if summary_mode:
            return []
        return [SystemMessage(content=self.prompt)]


@dataclass(frozen=True)
class PlanningStep:
    input_messages: tuple[BaseMessage, ...]
    output_message: AssistantMessage
    plan: str
    timing: Timing
    token_usage: TokenUsage | None = None

    def to_messages(self, summary_mode: bool = False) -> list[BaseMessage]:
        if summary_mode:
            return []
        return [
            AssistantMessage(content=self.plan.strip()),
            UserMessage(content="Now proceed and carry out this plan."),
        ]


@dataclass(frozen=True)
class ActionStep:
    step_number: int
    timing: Timing
    output_message: AssistantMessage | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    error: str | None = None
    code_action: str | None = None
    observations: str | None = None
    observation_images: tuple[str, ...] = ()
    action_output: Any = None
    token_usage: TokenUsage | None = None
    is_final_answer: bool = False
    trace_id: str | None = None
    parent_trace_id: str | None = None

    @property
    def tool_names(self) -> list[str]:
        return [tc.name for tc in self.tool_calls]

    @property
    def reasoning(self) -> str | None:
        if self.output_message is None:
            return None
        return self.output_message.reasoning or None

    def to_messages(self, summary_mode: bool = False) -> list[BaseMessage]:
        messages: list[BaseMessage] = []
        if self.output_message is not None and not summary_mode:
            messages.append(self.output_message)
        if self.observations:
            messages.append(UserMessage(content=f"Observation:\n{self.observations}"))
        if self.error:
            messages.append(UserMessage(content=f"Error:\n{self.error}\n{ERROR_RETRY_GUIDANCE}"))
        return messages

    def to_dict(self) -> dict[str, Any]:
        data = {
            "step_number": self.step_number,
            "duration": self.timing.duration,
            "tool_calls": [tc.model_dump() for tc in self.tool_calls],
            "error": self.error,
            "code_action": self.code_action,
            "observations": self.observations,
            "action_output": self.action_output,
            "is_final_answer": self.is_final_answer,
            "trace_id": self.trace_id,
            "parent_trace_id": self.parent_trace_id,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class FinalAnswerStep:
    output: Any

    def to_messages(self, summary_mode: bool = False) -> list[BaseMessage]:
        return []


@dataclass(frozen=True)
class GuidanceStep:
    """Advice injected by the runtime, such as a hint to break out of a loop."""

    guidance: str
    source: str = "repetition"
    step_number: int = 0

    def to_messages(self, summary_mode: bool = False) -> list[BaseMessage]:
        return [UserMessage(content=self.guidance)]


@dataclass(frozen=True)
class NullStep:
    """Placeholder used when a model response cannot be turned into a step."""

    reason: str = "unknown"
    step_number: int = 0

    @classmethod
    def empty(cls, step_number: int = 0) -> NullStep:
        return cls(reason="empty", step_number=step_number)

    @classmethod
    def parse_error(cls, step_number: int = 0) -> NullStep:
        return cls(reason="parse_error", step_number=step_number)

    @classmethod
    def nil_output(cls, step_number: int = 0) -> NullStep:
        return cls(reason="nil_output", step_number=step_number)

    def to_messages(self, summary_mode: bool = False) -> list[BaseMessage]:
        return []


Step = TaskStep | SystemPromptStep | PlanningStep | ActionStep | FinalAnswerStep | GuidanceStep | NullStep
