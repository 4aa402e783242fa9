"""
Repetition Detection - 在步数耗尽前识别循环

检查最近 window_size 个动作步骤，依次寻找三种模式：
1. 同一工具以相同参数反复调用
2. 相同的代码动作反复执行（忽略空白差异）
3. 观察结果高度相似（字符三元组 Jaccard 相似度）
命中时返回一段打破循环的引导语，由智能体注入上下文。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Sequence

from strand.core.steps import ActionStep

LOOP_PREFIX = "[Loop Detection]"

_WHITESPACE = re.compile(r"\s+")


class RepetitionPattern(StrEnum):
    TOOL_CALL = "tool_call"
    CODE_ACTION = "code_action"
    OBSERVATION = "observation"


@dataclass(frozen=True)
class RepetitionConfig:
    window_size: int = 3
    similarity_threshold: float = 0.9
    enabled: bool = True


@dataclass(frozen=True)
class RepetitionResult:
    pattern: RepetitionPattern
    count: int
    guidance: str


def trigrams(text: str) -> set[str]:
    if len(text) < 3:
        return set()
    return {text[i:i + 3] for i in range(len(text) - 2)}


def string_similarity(a: str, b: str) -> float:
    """Jaccard index over character trigrams."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    left, right = trigrams(a), trigrams(b)
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def tool_call_guidance(tool_name: str, count: int) -> str:
    return (
        f"You've called '{tool_name}' {count} times with the same arguments.\n"
        "This suggests you're stuck in a loop. Try one of:\n"
        "1. Use a different approach or tool\n"
        "2. Modify your arguments\n"
        "3. Call final_answer with what you have so far"
    )


def code_action_guidance(count: int) -> str:
    return (
        f"You've executed the same code {count} times in a row.\n"
        "The approach isn't working. Try:\n"
        "1. A different algorithm or method\n"
        "2. Breaking the problem into smaller steps\n"
        "3. Calling final_answer with partial progress"
    )


def observation_guidance(count: int) -> str:
    return (
        f"You've received the same result {count} times.\n"
        "You may be stuck. Consider:\n"
        "1. Using different inputs or parameters\n"
        "2. Trying a different tool\n"
        "3. Concluding with final_answer"
    )


def _normalize_arguments(arguments: dict[str, Any] | None) -> tuple[tuple[str, str], ...]:
    return tuple(sorted((k, str(v).strip().lower()) for k, v in (arguments or {}).items()))


def _normalize_code(code: str) -> str:
    return _WHITESPACE.sub(" ", code).strip()


class RepetitionDetector:
    def __init__(self, config: RepetitionConfig | None = None) -> None:
        self.config = config or RepetitionConfig()

    def check(self, steps: Sequence[ActionStep]) -> RepetitionResult | None:
        config = self.config
        if not config.enabled or len(steps) < config.window_size:
            return None
        window = list(steps)[-config.window_size:]
        return (
            self._tool_calls(window)
            or self._code_actions(window)
            or self._observations(window)
        )

    @staticmethod
    def _tool_calls(window: list[ActionStep]) -> RepetitionResult | None:
        signatures = [
            tuple((c.name, _normalize_arguments(c.arguments)) for c in step.tool_calls)
            for step in window
            if step.tool_calls
        ]
        if len(signatures) < 2 or len(set(signatures)) != 1:
            return None
        tool_name = signatures[-1][0][0]
        return RepetitionResult(
            RepetitionPattern.TOOL_CALL, len(signatures), tool_call_guidance(tool_name, len(signatures))
        )

    @staticmethod
    def _code_actions(window: list[ActionStep]) -> RepetitionResult | None:
        codes = [_normalize_code(step.code_action) for step in window if step.code_action]
        if len(codes) < 2 or len(set(codes)) != 1:
            return None
        return RepetitionResult(RepetitionPattern.CODE_ACTION, len(codes), code_action_guidance(len(codes)))

    def _observations(self, window: list[ActionStep]) -> RepetitionResult | None:
        observations = [step.observations for step in window if step.observations]
        if len(observations) < 2:
            return None
        first = observations[0]
        threshold = self.config.similarity_threshold
        if not all(string_similarity(first, other) >= threshold for other in observations):
            return None
        return RepetitionResult(
            RepetitionPattern.OBSERVATION, len(observations), observation_guidance(len(observations))
        )
