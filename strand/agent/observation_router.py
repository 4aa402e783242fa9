"""
Observation Router - 观察结果路由

决定工具输出以何种形式进入上下文：
- summary_only: 摘要即可
- full_output: 需要完整输出
- needs_retry: 结果不对，提示换一种查询
- irrelevant: 无用信息

路由失败时原样放行（fail-open），不阻塞主循环。
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from strand.core.message import UserMessage

logger = logging.getLogger(__name__)


class RoutingDecision(StrEnum):
    SUMMARY_ONLY = "summary_only"
    FULL_OUTPUT = "full_output"
    NEEDS_RETRY = "needs_retry"
    IRRELEVANT = "irrelevant"


@dataclass(frozen=True)
class RoutedObservation:
    decision: RoutingDecision
    content: str
    summary: str | None = None
    next_action: str | None = None


class ObservationRouter(Protocol):
    def route(self, tool_name: str, output: str, task: str) -> RoutedObservation: ...


def full_output(output: str, summary: str | None = None) -> RoutedObservation:
    return RoutedObservation(RoutingDecision.FULL_OUTPUT, output, summary)


class PassThroughRouter:
    def route(self, tool_name: str, output: str, task: str) -> RoutedObservation:
        return full_output(output)


class TruncatingRouter:
    """Keep the head of long outputs. No model call."""

    def __init__(self, max_chars: int = 2000) -> None:
        self.max_chars = max_chars

    def route(self, tool_name: str, output: str, task: str) -> RoutedObservation:
        if len(output) <= self.max_chars:
            return full_output(output)
        head = output[: self.max_chars]
        summary = f"{head}\n...[{len(output) - self.max_chars} more characters truncated]"
        return RoutedObservation(RoutingDecision.SUMMARY_ONLY, summary, summary)


ROUTER_PROMPT = """Analyze this tool output and decide how much of it the agent needs.

TASK: {task}
TOOL: {tool}
OUTPUT:
{output}

Reply with a single JSON object:
{{"decision": "summary_only" | "full_output" | "needs_retry" | "irrelevant",
 "summary": "What was found in 2-3 sentences",
 "next_action": "Suggested next step"}}

Decisions:
- summary_only: found what we need, summary is enough
- full_output: complex data the agent should examine in detail
- needs_retry: wrong results, suggest a better query or approach
- irrelevant: nothing useful, suggest a different tool"""

_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)


class ModelRouter:
    """Ask a (cheap) model for a routing decision; fail open on any problem."""

    def __init__(self, model: Any, threshold_chars: int = 1000, prompt_limit: int = 3000) -> None:
        self.model = model
        self.threshold_chars = threshold_chars
        self.prompt_limit = prompt_limit

    def route(self, tool_name: str, output: str, task: str) -> RoutedObservation:
        if len(output) < self.threshold_chars:
            return full_output(output)
        truncated = output
        if len(output) > self.prompt_limit:
            truncated = f"{output[: self.prompt_limit]}...[truncated]"
        prompt = ROUTER_PROMPT.format(task=task, tool=tool_name, output=truncated)
        try:
            response = self.model.generate([UserMessage(content=prompt)])
            return self._interpret(response.content or "", output)
        except Exception as e:
            logger.warning("Observation router failed for %s, passing output through: %s", tool_name, type(e).__name__)
            return full_output(output, summary=f"Router fallback: {type(e).__name__}")

    @staticmethod
    def _interpret(reply: str, output: str) -> RoutedObservation:
        match = _JSON_BLOCK.search(reply)
        if match is None:
            raise ValueError("Router reply contained no JSON object")
        data = json.loads(match.group(0))
        decision = RoutingDecision(data["decision"])
        summary = data.get("summary") or None
        next_action = data.get("next_action") or None

        if decision is RoutingDecision.FULL_OUTPUT:
            return RoutedObservation(decision, output, summary, next_action)
        if decision is RoutingDecision.SUMMARY_ONLY:
            if not summary:
                raise ValueError("summary_only decision without a summary")
            return RoutedObservation(decision, summary, summary, next_action)
        if decision is RoutingDecision.NEEDS_RETRY:
            hint = next_action or "Try a different query or approach."
            content = f"Results did not answer the task. {summary or ''} Retry: {hint}".strip()
            return RoutedObservation(decision, content, summary, next_action)
        hint = next_action or "Try a different tool."
        return RoutedObservation(decision, f"Output was not relevant to the task. {hint}", summary, next_action)
