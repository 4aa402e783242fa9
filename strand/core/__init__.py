"""Core data types: messages, steps, memory and capability protocols."""

from strand.core.memory import AgentMemory
from strand.core.message import (
    AssistantMessage,
    BaseMessage,
    Message,
    SystemMessage,
    TokenUsage,
    ToolCall,
    ToolMessage,
    UserMessage,
)
from strand.core.protocols import Emitter, Model, ToolLike
from strand.core.steps import (
    ERROR_RETRY_GUIDANCE,
    ActionStep,
    FinalAnswerStep,
    GuidanceStep,
    NullStep,
    PlanningStep,
    Step,
    SystemPromptStep,
    TaskStep,
    Timing,
)

__all__ = [
    "AgentMemory",
    "AssistantMessage",
    "BaseMessage",
    "Message",
    "SystemMessage",
    "TokenUsage",
    "ToolCall",
    "ToolMessage",
    "UserMessage",
    "Emitter",
    "Model",
    "ToolLike",
    "ERROR_RETRY_GUIDANCE",
    "ActionStep",
    "FinalAnswerStep",
    "GuidanceStep",
    "NullStep",
    "PlanningStep",
    "Step",
    "SystemPromptStep",
    "TaskStep",
    "Timing",
]
