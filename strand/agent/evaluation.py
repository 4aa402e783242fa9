"""
Evaluation - 任务完成度评估

在评估检查点让模型用一行给出判断：DONE / CONTINUE / STUCK，可选 CONFIDENCE。
解析失败时倾向于继续（CONTINUE，置信度 0.3），而不是误判为完成。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from strand.core.message import SystemMessage, TokenUsage, UserMessage
from strand.core.steps import ActionStep

logger = logging.getLogger(__name__)

EVALUATION_SYSTEM = "You evaluate task completion. Be decisive. One line only."

EVALUATION_PROMPT = """TASK: {task}
STEPS COMPLETED: {step_count}
LAST RESULT: {observation}

Is the task complete? Reply with EXACTLY one of:
DONE: <the final answer>
CONTINUE: <what's still needed>
STUCK: <what's blocking>
Optionally add a second line: CONFIDENCE: <0.0-1.0>"""

UNPARSEABLE_CONFIDENCE = 0.3
OBSERVATION_LIMIT = 500

_DONE = re.compile(r"DONE:\s*(.+)", re.IGNORECASE)
_CONTINUE = re.compile(r"CONTINUE:\s*(.+)", re.IGNORECASE)
_STUCK = re.compile(r"STUCK:\s*(.+)", re.IGNORECASE)
_CONFIDENCE = re.compile(r"^\s*CONFIDENCE:\s*(-?\d+(?:\.\d+)?)", re.IGNORECASE | re.MULTILINE)


class EvaluationStatus(StrEnum):
    DONE = "done"
    CONTINUE = "continue"
    STUCK = "stuck"


@dataclass(frozen=True)
class EvaluationResult:
    status: EvaluationStatus
    answer: str | None = None
    reasoning: str | None = None
    confidence: float | None = None
    token_usage: TokenUsage | None = None

    @property
    def done(self) -> bool:
        return self.status is EvaluationStatus.DONE

    @property
    def should_continue(self) -> bool:
        return self.status is EvaluationStatus.CONTINUE

    @property
    def stuck(self) -> bool:
        return self.status is EvaluationStatus.STUCK


def _confidence(text: str) -> float | None:
    match = _CONFIDENCE.search(text)
    if match is None:
        return None
    return min(1.0, max(0.0, float(match.group(1))))


def parse_evaluation(text: str | None, token_usage: TokenUsage | None = None) -> EvaluationResult:
    """Parse a one-line verdict. Anchored at the start of the reply."""
    content = (text or "").strip()
    confidence = _confidence(content)

    if match := _DONE.match(content):
        return EvaluationResult(EvaluationStatus.DONE, answer=match.group(1).strip(),
                                confidence=confidence, token_usage=token_usage)
    if match := _CONTINUE.match(content):
        return EvaluationResult(EvaluationStatus.CONTINUE, reasoning=match.group(1).strip(),
                                confidence=confidence, token_usage=token_usage)
    if match := _STUCK.match(content):
        return EvaluationResult(EvaluationStatus.STUCK, reasoning=match.group(1).strip(),
                                confidence=confidence, token_usage=token_usage)
    return EvaluationResult(
        EvaluationStatus.CONTINUE,
        reasoning=content,
        confidence=UNPARSEABLE_CONFIDENCE,
        token_usage=token_usage,
    )


class Evaluator:
    def __init__(self, model: Any) -> None:
        self.model = model

    def build_messages(self, task: str, step_count: int, step: ActionStep | None):
        observation = ""
        if step is not None:
            observation = step.observations or str(step.action_output or "")
        prompt = EVALUATION_PROMPT.format(
            task=task, step_count=step_count, observation=observation[:OBSERVATION_LIMIT]
        )
        return [SystemMessage(content=EVALUATION_SYSTEM), UserMessage(content=prompt)]

    def evaluate(self, task: str, step_count: int, step: ActionStep | None) -> EvaluationResult:
        messages = self.build_messages(task, step_count, step)
        try:
            response = self.model.generate(messages, max_tokens=100)
        except Exception as e:
            logger.warning("Evaluation call failed, continuing: %s", type(e).__name__)
            return EvaluationResult(
                EvaluationStatus.CONTINUE,
                reasoning=f"Evaluation failed: {type(e).__name__}",
                confidence=UNPARSEABLE_CONFIDENCE,
            )
        result = parse_evaluation(response.content, response.token_usage)
        logger.debug("Evaluation at step %d: %s", step_count, result.status)
        return result
