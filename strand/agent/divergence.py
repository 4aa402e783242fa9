"""Plan divergence tracking."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any

from strand.agent.planning import PlanContext
from strand.core.steps import ActionStep
from strand.events.bus import emit_to
from strand.types.events import PlanDivergenceEvent

logger = logging.getLogger(__name__)

ALIGNED = 1.0
MISALIGNED = 0.4
ALIGNMENT_THRESHOLD = 0.5


class DivergenceLevel(StrEnum):
    NONE = "none"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


def divergence_level(off_topic_count: int) -> DivergenceLevel:
    if off_topic_count <= 0:
        return DivergenceLevel.NONE
    if off_topic_count <= 2:
        return DivergenceLevel.MILD
    if off_topic_count <= 4:
        return DivergenceLevel.MODERATE
    return DivergenceLevel.SEVERE


def score_alignment(step: ActionStep, context: PlanContext) -> float:
    """1.0 when the step uses a tool the plan mentions or is the final answer."""
    if context.plan is None:
        return ALIGNED
    if step.is_final_answer:
        return ALIGNED
    if any(context.mentions(name) for name in step.tool_names):
        return ALIGNED
    return MISALIGNED


class DivergenceTracker:
    """Off-topic counter owned by the step loop.

    Scores below the threshold bump the counter; anything else decays it by
    one (never below zero). A signal is emitted once each time an off-topic
    step pushes the derived level up into a new non-none level.
    """

    def __init__(self, emitter: Any | None = None) -> None:
        self.emitter = emitter
        self.off_topic_count = 0
        self.last_alignment = ALIGNED
        self._last_level = DivergenceLevel.NONE

    @property
    def level(self) -> DivergenceLevel:
        return divergence_level(self.off_topic_count)

    def record(self, alignment: float, step_number: int = 0) -> DivergenceLevel:
        self.last_alignment = alignment
        if alignment < ALIGNMENT_THRESHOLD:
            self.off_topic_count += 1
        else:
            self.off_topic_count = max(0, self.off_topic_count - 1)

        level = self.level
        if alignment < ALIGNMENT_THRESHOLD and level is not self._last_level:
            logger.info("Plan divergence %s (off-topic steps: %d)", level, self.off_topic_count)
            emit_to(self.emitter, PlanDivergenceEvent(str(level), self.off_topic_count, step_number))
        self._last_level = level
        return level

    def track(self, step: ActionStep, context: PlanContext) -> DivergenceLevel:
        return self.record(score_alignment(step, context), step.step_number)

    def reset(self) -> None:
        self.off_topic_count = 0
        self.last_alignment = ALIGNED
        self._last_level = DivergenceLevel.NONE
