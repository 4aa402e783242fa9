"""
Self-Refine - 有界的自我修正循环

每轮先获取反馈（execution / self / evaluation 三种来源之一），
反馈不可操作或修正后输出与上一轮相同时提前停止。
循环中的可变状态只存在于 refine() 内部，结束时转换为不可变的 RefinementResult。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Literal

from strand.agent.evaluation import Evaluator
from strand.agent.execution_oracle import ExecutionOracle
from strand.core.message import SystemMessage, UserMessage
from strand.core.steps import ActionStep

logger = logging.getLogger(__name__)

FeedbackSource = Literal["execution", "self", "evaluation"]

CRITIQUE_SYSTEM = (
    "You are a code reviewer. Identify specific issues that can be fixed.\n"
    'Be concise. If the code is correct, say "LGTM".'
)

CRITIQUE_PROMPT = """Task: {task}
Output: {output}

Review this output. Is it correct and complete?
If issues exist, describe ONE specific fix.
Format: ISSUE: <problem> | FIX: <solution>
Or if correct: LGTM"""

FIX_SYSTEM = "You fix code based on feedback. Output only the corrected code."

FIX_PROMPT = """Task: {task}
Current code/output: {output}
Feedback: {critique}

Fix the issue and provide the corrected code only."""

_ISSUE_FIX = re.compile(r"ISSUE:\s*(.+?)\s*\|\s*FIX:\s*(.+)", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class RefineConfig:
    max_iterations: int = 3
    feedback_source: FeedbackSource = "execution"
    min_confidence: float = 0.8
    enabled: bool = True

    @classmethod
    def disabled(cls) -> RefineConfig:
        return cls(max_iterations=0, min_confidence=1.0, enabled=False)


@dataclass(frozen=True)
class RefinementFeedback:
    iteration: int
    source: str
    critique: str
    actionable: bool
    confidence: float

    @property
    def suggests_improvement(self) -> bool:
        return self.actionable and self.confidence > 0.5


@dataclass(frozen=True)
class RefinementResult:
    original: Any
    refined: Any
    iterations: int
    feedback_history: tuple[RefinementFeedback, ...]
    improved: bool
    confidence: float

    @property
    def refined_any(self) -> bool:
        return self.iterations > 0

    @property
    def final(self) -> Any:
        return self.refined if self.improved else self.original

    @classmethod
    def unchanged(cls, output: Any, confidence: float = 1.0) -> RefinementResult:
        return cls(output, output, 0, (), False, confidence)


def parse_critique(text: str, iteration: int) -> RefinementFeedback:
    text = (text or "").strip()
    upper = text.upper()
    if "LGTM" in upper or "LOOKS GOOD" in upper:
        return RefinementFeedback(iteration, "self", "Code looks good", False, 0.8)
    match = _ISSUE_FIX.search(text)
    if match:
        issue, fix = match.group(1).strip(), match.group(2).strip()
        return RefinementFeedback(iteration, "self", f"{issue}. Fix: {fix}", True, 0.7)
    return RefinementFeedback(iteration, "self", text, len(text) > 20, 0.5)


class SelfRefiner:
    def __init__(
        self,
        model: Any,
        config: RefineConfig | None = None,
        evaluator: Evaluator | None = None,
    ) -> None:
        self.model = model
        self.config = config or RefineConfig()
        self.evaluator = evaluator

    def refine(
        self,
        output: Any,
        task: str,
        step: ActionStep | None = None,
        apply_fix: Callable[[Any, RefinementFeedback], Any] | None = None,
    ) -> RefinementResult:
        if not self.config.enabled:
            return RefinementResult.unchanged(output)

        apply_fix = apply_fix or (lambda current, feedback: self.apply_fix(current, feedback, task))
        current = output
        history: list[RefinementFeedback] = []
        iterations = 0

        while iterations < self.config.max_iterations:
            feedback = self.feedback(current, task, step, iterations)
            history.append(feedback)
            if not feedback.suggests_improvement:
                break
            iterations += 1
            refined = apply_fix(current, feedback)
            if refined == current:
                logger.debug("Refinement made no progress at iteration %d", iterations)
                break
            current = refined

        return RefinementResult(
            original=output,
            refined=current,
            iterations=iterations,
            feedback_history=tuple(history),
            improved=current != output,
            confidence=history[-1].confidence if history else 1.0,
        )

    # -- feedback sources --------------------------------------------------

    def feedback(self, output: Any, task: str, step: ActionStep | None, iteration: int) -> RefinementFeedback:
        source = self.config.feedback_source
        if source == "execution":
            return self.execution_feedback(step, iteration)
        if source == "self":
            return self.self_feedback(output, task, iteration)
        if source == "evaluation":
            return self.evaluation_feedback(task, step, iteration)
        return RefinementFeedback(iteration, "none", "Unknown feedback source", False, 0.0)

    @staticmethod
    def execution_feedback(step: ActionStep | None, iteration: int) -> RefinementFeedback:
        if step is None or not step.error:
            return RefinementFeedback(iteration, "execution", "Execution succeeded", False, 0.9)
        analysis = ExecutionOracle().analyze_step(step)
        return RefinementFeedback(
            iteration, "execution", analysis.to_observation(), analysis.actionable, analysis.confidence
        )

    def self_feedback(self, output: Any, task: str, iteration: int) -> RefinementFeedback:
        messages = [
            SystemMessage(content=CRITIQUE_SYSTEM),
            UserMessage(content=CRITIQUE_PROMPT.format(task=task, output=str(output)[:500])),
        ]
        response = self.model.generate(messages, max_tokens=150)
        return parse_critique(response.content or "", iteration)

    def evaluation_feedback(self, task: str, step: ActionStep | None, iteration: int) -> RefinementFeedback:
        if self.evaluator is None:
            return RefinementFeedback(iteration, "evaluation", "Evaluation not available", False, 0.5)
        result = self.evaluator.evaluate(task, iteration + 1, step)
        critique = result.reasoning or result.answer or "Evaluation complete"
        confidence = result.confidence if result.confidence is not None else 0.5
        return RefinementFeedback(iteration, "evaluation", critique, not result.done, confidence)

    def apply_fix(self, current: Any, feedback: RefinementFeedback, task: str) -> Any:
        messages = [
            SystemMessage(content=FIX_SYSTEM),
            UserMessage(content=FIX_PROMPT.format(task=task, output=str(current)[:500], critique=feedback.critique)),
        ]
        response = self.model.generate(messages, max_tokens=500)
        return (response.content or "").strip()
