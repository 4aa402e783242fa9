"""
Execution Oracle - 把执行错误转换为结构化、可操作的反馈

小模型很难仅凭自身推理修正错误，但能根据外部反馈修正。
oracle 将错误文本归类（语法 / 未定义名称 / 方法不存在 / 类型 / 参数 / 工具 / 超时 / 操作上限），
为每一类给出修正建议和置信度；只有可归类的失败才被视为 actionable。
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from strand.core.steps import ActionStep


class ErrorCategory(StrEnum):
    SUCCESS = "success"
    SYNTAX = "syntax_error"
    NAME = "name_error"
    NO_METHOD = "no_method_error"
    TYPE = "type_error"
    ARGUMENT = "argument_error"
    TOOL = "tool_error"
    TIMEOUT = "timeout"
    MEMORY_LIMIT = "memory_limit"
    OPERATION_LIMIT = "operation_limit"
    RUNTIME = "runtime_error"


# Checked in order; the first match wins.
_CLASSIFIERS: list[tuple[ErrorCategory, re.Pattern[str]]] = [
    (ErrorCategory.SYNTAX, re.compile(r"syntax ?error|invalid syntax|unexpected (?:EOF|indent)", re.IGNORECASE)),
    (ErrorCategory.NAME, re.compile(r"Undefined name '(\w+)'|name '(\w+)' is not defined")),
    (ErrorCategory.TOOL, re.compile(r"Tool [\"'](\w+)[\"'] not found|Undefined method '(\w+)' in sandbox")),
    (
        ErrorCategory.ARGUMENT,
        re.compile(
            r"takes (\d+) (?:positional )?arguments? but (\d+) (?:were|was) given"
            r"|missing (\d+) required (?:positional |keyword-only )?arguments?"
            r"|unexpected keyword argument '(\w+)'"
        ),
    ),
    (ErrorCategory.NO_METHOD, re.compile(r"'(\w+)' object has no attribute '(\w+)'|has no attribute '(\w+)'")),
    (
        ErrorCategory.TYPE,
        re.compile(
            r"can only concatenate (\w+) \(not \"(\w+)\"\)"
            r"|unsupported operand type\(s\) for [^:]+: '(\w+)' and '(\w+)'"
            r"|must be (\w+), not (\w+)"
            r"|TypeError"
        ),
    ),
    (ErrorCategory.TIMEOUT, re.compile(r"timed out|timeout", re.IGNORECASE)),
    (ErrorCategory.MEMORY_LIMIT, re.compile(r"MemoryError|out of memory|memory limit", re.IGNORECASE)),
    (ErrorCategory.OPERATION_LIMIT, re.compile(r"Operation limit exceeded", re.IGNORECASE)),
]

_LINE = re.compile(r"\(line (\d+)\)|line (\d+)")
_IDENTIFIER = re.compile(r"\b([A-Za-z_]\w*)\b")

_NEW_APPROACH = frozenset({
    ErrorCategory.TOOL,
    ErrorCategory.TIMEOUT,
    ErrorCategory.MEMORY_LIMIT,
    ErrorCategory.OPERATION_LIMIT,
})


@dataclass(frozen=True)
class ExecutionFeedback:
    category: ErrorCategory
    message: str
    suggestion: str | None = None
    line: int | None = None
    details: dict[str, Any] = field(default_factory=dict)
    confidence: float = 1.0

    @property
    def success(self) -> bool:
        return self.category is ErrorCategory.SUCCESS

    @property
    def actionable(self) -> bool:
        """A classified failure with a concrete fix to try."""
        return (
            not self.success
            and self.category is not ErrorCategory.RUNTIME
            and bool(self.suggestion)
        )

    @property
    def needs_new_approach(self) -> bool:
        return self.category in _NEW_APPROACH

    def to_observation(self) -> str:
        if self.success:
            return "Execution successful."
        parts = [f"Error [{self.category}]: {self.message}"]
        if self.line is not None:
            parts.append(f"Location: line {self.line}")
        if self.suggestion:
            parts.append(f"Fix: {self.suggestion}")
        return "\n".join(parts)


class ExecutionOracle:
    """Classifies execution errors and proposes a fix for each category."""

    def analyze(self, error: str | None, code: str | None = None, output: Any = None) -> ExecutionFeedback:
        if not error:
            return ExecutionFeedback(ErrorCategory.SUCCESS, "" if output is None else str(output))

        category, match = self.classify(error)
        details = self._details(category, match)
        return ExecutionFeedback(
            category=category,
            message=error,
            suggestion=self._suggestion(category, details, code),
            line=self._line(error),
            details=details,
            confidence=self._confidence(category, details),
        )

    def analyze_step(self, step: ActionStep) -> ExecutionFeedback:
        return self.analyze(step.error, step.code_action, step.action_output)

    @staticmethod
    def classify(message: str) -> tuple[ErrorCategory, re.Match[str] | None]:
        for category, pattern in _CLASSIFIERS:
            match = pattern.search(message)
            if match:
                return category, match
        return ErrorCategory.RUNTIME, None

    # -- details ------------------------------------------------------------

    @staticmethod
    def _details(category: ErrorCategory, match: re.Match[str] | None) -> dict[str, Any]:
        if match is None:
            return {}
        groups = match.groups()
        if category is ErrorCategory.NAME:
            return {"undefined_name": groups[0] or groups[1]}
        if category is ErrorCategory.TOOL:
            return {"tool_name": groups[0] or groups[1]}
        if category is ErrorCategory.NO_METHOD:
            if groups[1]:
                return {"receiver": groups[0], "attribute": groups[1]}
            return {"attribute": groups[2]}
        if category is ErrorCategory.ARGUMENT:
            if groups[0]:
                return {"expected": int(groups[0]), "given": int(groups[1])}
            if groups[2]:
                return {"missing": int(groups[2])}
            return {"unexpected": groups[3]}
        if category is ErrorCategory.TYPE:
            if groups[0]:
                return {"from_type": groups[1], "to_type": groups[0]}
            if groups[2]:
                return {"from_type": groups[3], "to_type": groups[2]}
            if groups[4]:
                return {"from_type": groups[5], "to_type": groups[4]}
        if category is ErrorCategory.SYNTAX:
            return {"detail": match.group(0)}
        return {}

    @staticmethod
    def _line(message: str) -> int | None:
        match = _LINE.search(message)
        if not match:
            return None
        return int(match.group(1) or match.group(2))

    # -- suggestions ----------------------------------------------------------

    def _suggestion(self, category: ErrorCategory, details: dict[str, Any], code: str | None) -> str:
        if category is ErrorCategory.SYNTAX:
            return "Check brackets, quotes, colons and indentation."
        if category is ErrorCategory.NAME:
            return self._name_suggestion(details.get("undefined_name"), code)
        if category is ErrorCategory.NO_METHOD:
            attribute = details.get("attribute")
            receiver = details.get("receiver")
            if receiver:
                return f"{receiver} has no attribute '{attribute}'. Check the available methods."
            return f"Attribute '{attribute}' doesn't exist. Check spelling or use a different approach."
        if category is ErrorCategory.TYPE:
            if details.get("from_type") and details.get("to_type"):
                return f"Convert {details['from_type']} to {details['to_type']} explicitly (str(), int(), float())."
            return "Check types and add explicit conversions where needed."
        if category is ErrorCategory.ARGUMENT:
            if "expected" in details:
                return f"Pass {details['expected']} argument(s) instead of {details['given']}."
            if "unexpected" in details:
                return f"Remove the keyword argument '{details['unexpected']}'; check the signature."
            return "Check the function signature and pass every required argument."
        if category is ErrorCategory.TOOL:
            tool = details.get("tool_name")
            return f"Tool '{tool}' is not available. Use a different tool or check the name."
        if category is ErrorCategory.TIMEOUT:
            return "Simplify the code or break it into smaller steps."
        if category is ErrorCategory.MEMORY_LIMIT:
            return "Reduce data size or process it in smaller batches."
        if category is ErrorCategory.OPERATION_LIMIT:
            return "Reduce loop iterations or use a more efficient algorithm."
        return "Check the error message and try a different approach."

    @staticmethod
    def _name_suggestion(name: str | None, code: str | None) -> str:
        if not name:
            return "Check variable and function name spelling."
        candidates = sorted({i for i in _IDENTIFIER.findall(code or "") if i != name})
        similar = difflib.get_close_matches(name, candidates, n=3, cutoff=0.6)
        if similar:
            return f"Did you mean: {', '.join(similar)}?"
        return f"Define '{name}' before using it, or check spelling."

    @staticmethod
    def _confidence(category: ErrorCategory, details: dict[str, Any]) -> float:
        if category is ErrorCategory.SYNTAX:
            return 0.9 if details else 0.7
        if category in (ErrorCategory.NAME, ErrorCategory.NO_METHOD):
            return 0.85 if details.get("undefined_name") or details.get("attribute") else 0.6
        if category is ErrorCategory.TYPE:
            return 0.8 if details.get("from_type") and details.get("to_type") else 0.5
        if category is ErrorCategory.ARGUMENT:
            return 0.9 if "expected" in details else 0.6
        if category is ErrorCategory.TOOL:
            return 0.95 if details.get("tool_name") else 0.7
        if category in _NEW_APPROACH:
            return 0.8
        return 0.5
