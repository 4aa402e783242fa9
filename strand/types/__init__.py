"""Shared event types."""

from strand.types.events import (
    EvaluationCompletedEvent,
    IsolationTimeoutEvent,
    IsolationViolationEvent,
    PlanDivergenceEvent,
    QueueRequestCompletedEvent,
    QueueRequestFailedEvent,
    QueueRequestStartedEvent,
    QueueRetriedEvent,
    RefinementCompletedEvent,
    ReflectionRecordedEvent,
    RepetitionDetectedEvent,
    RuntimeEvent,
    StepCompletedEvent,
)

__all__ = [
    "EvaluationCompletedEvent",
    "IsolationTimeoutEvent",
    "IsolationViolationEvent",
    "PlanDivergenceEvent",
    "QueueRequestCompletedEvent",
    "QueueRequestFailedEvent",
    "QueueRequestStartedEvent",
    "QueueRetriedEvent",
    "RefinementCompletedEvent",
    "ReflectionRecordedEvent",
    "RepetitionDetectedEvent",
    "RuntimeEvent",
    "StepCompletedEvent",
]
