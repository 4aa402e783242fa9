"""Event types emitted by the runtime core."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class StepCompletedEvent:
    step_number: int
    tool_names: list[str] = field(default_factory=list)
    error: str | None = None
    is_final_answer: bool = False
    duration: float | None = None
    type: str = "step_completed"


@dataclass
class PlanDivergenceEvent:
    level: str  # "mild" | "moderate" | "severe"
    off_topic_count: int
    step_number: int = 0
    type: str = "plan:divergence"


@dataclass
class QueueRequestStartedEvent:
    request_id: str
    priority: str = "normal"
    wait_seconds: float = 0.0
    type: str = "queue:request_started"


@dataclass
class QueueRequestCompletedEvent:
    request_id: str
    duration_seconds: float = 0.0
    type: str = "queue:request_completed"


@dataclass
class QueueRequestFailedEvent:
    request_id: str
    error_kind: str
    error_message: str
    type: str = "queue:request_failed"


@dataclass
class QueueRetriedEvent:
    request_id: str
    attempts: int
    succeeded: bool
    type: str = "queue:retried"


@dataclass
class RefinementCompletedEvent:
    iterations: int
    improved: bool
    confidence: float
    type: str = "refinement_completed"


@dataclass
class ReflectionRecordedEvent:
    outcome: str  # "failure" | "success"
    reflection: str
    type: str = "reflection_recorded"


@dataclass
class EvaluationCompletedEvent:
    status: str
    confidence: float | None = None
    step_number: int = 0
    type: str = "evaluation_completed"


@dataclass
class IsolationTimeoutEvent:
    tool_name: str
    timeout_seconds: float
    type: str = "isolation:timeout"


@dataclass
class IsolationViolationEvent:
    tool_name: str
    error: str
    metrics: dict[str, Any] = field(default_factory=dict)
    type: str = "isolation:violation"


@dataclass
class RepetitionDetectedEvent:
    pattern: str  # "tool_call" | "code_action" | "observation"
    count: int
    step_number: int = 0
    type: str = "repetition_detected"


RuntimeEvent = (
    StepCompletedEvent
    | PlanDivergenceEvent
    | QueueRequestStartedEvent
    | QueueRequestCompletedEvent
    | QueueRequestFailedEvent
    | QueueRetriedEvent
    | RefinementCompletedEvent
    | ReflectionRecordedEvent
    | EvaluationCompletedEvent
    | IsolationTimeoutEvent
    | IsolationViolationEvent
    | RepetitionDetectedEvent
)
