"""
ToolHandlerMixin - 工具执行

处理一个动作中的全部工具调用：
- 普通调用先执行（多个调用时并行 + 提前返回）
- final_answer 与检索类工具出现在同一动作中时拒绝
- 工具异常被捕获为步骤错误（脱敏后），不向上抛出
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from strand.agent.early_yield import CallOutcome, EarlyYieldResult, execute_with_early_yield
from strand.agent.observation_router import ObservationRouter, RoutingDecision
from strand.core.message import ToolCall
from strand.errors import FinalAnswerGuardError, FinalAnswerSignal, StrandError, ToolNotFoundError
from strand.isolation.tool_isolation import ToolIsolation
from strand.security.secret_redactor import redact_string
from strand.tools.base import is_retrieval_tool

logger = logging.getLogger(__name__)

FINAL_ANSWER = "final_answer"


@dataclass
class ToolRoundResult:
    """What one action's tool calls produced. Built up, then frozen into an ActionStep."""

    observations: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    outputs: list[Any] = field(default_factory=list)
    final_answer: Any = None
    is_final_answer: bool = False
    background: Callable[[], list[CallOutcome[Any]]] | None = None
    background_calls: list[ToolCall] = field(default_factory=list)
    completed: set[int] = field(default_factory=set)

    @property
    def error(self) -> str | None:
        return "\n".join(self.errors) if self.errors else None


def format_error(err: BaseException) -> str:
    if isinstance(err, StrandError):
        return redact_string(f"{type(err).__name__}: {err.message}")
    return redact_string(f"{type(err).__name__}: {err}")


class ToolHandlerMixin:
    """
    工具处理混入类

    由 Agent 提供 tools、config、observation_router 与 quality_predicate。
    """

    tools: dict[str, Any]
    config: Any
    observation_router: ObservationRouter
    quality_predicate: Callable[[CallOutcome[Any]], bool] | None
    isolation: ToolIsolation | None = None

    def execute_tool(self, call: ToolCall) -> Any:
        tool = self.tools.get(call.name)
        if tool is None:
            raise ToolNotFoundError(call.name, f'Tool "{call.name}" not found. Available: {", ".join(sorted(self.tools))}')
        if self.isolation is not None and call.name != FINAL_ANSWER:
            return self.isolation.call(tool, **call.arguments)
        return tool(**call.arguments)

    def execute_tool_calls(self, calls: list[ToolCall], task: str) -> ToolRoundResult:
        round_result = ToolRoundResult()
        final_calls = [c for c in calls if c.name == FINAL_ANSWER]
        other_calls = [c for c in calls if c.name != FINAL_ANSWER]

        if other_calls:
            outcome = self._run_parallel(other_calls)
            for index, item in enumerate(outcome.results):
                call = other_calls[index]
                if item is None:
                    round_result.observations.append(f"[{call.name}] still running; result will follow.")
                    continue
                round_result.completed.add(index)
                if item.ok:
                    round_result.outputs.append(item.value)
                    round_result.observations.append(self._route(call, item.value, task))
                elif isinstance(item.error, FinalAnswerSignal):
                    final_calls.append(call)
                else:
                    round_result.errors.append(f"Error executing tool '{call.name}': {format_error(item.error)}")
            if outcome.pending_count:
                round_result.background = outcome.collector
                round_result.background_calls = other_calls

        if final_calls:
            retrievals = sorted({c.name for c in other_calls if is_retrieval_tool(c.name)})
            if retrievals:
                guard = FinalAnswerGuardError(retrievals)
                logger.debug("Rejected final answer alongside %s", retrievals)
                round_result.errors.append(guard.message)
            else:
                self._run_final_answer(final_calls[0], round_result)
        return round_result

    def _run_parallel(self, calls: list[ToolCall]) -> EarlyYieldResult[Any]:
        if self.config.early_yield:
            return execute_with_early_yield(calls, self.execute_tool, self.quality_predicate)
        results = tuple(
            execute_with_early_yield([call], self.execute_tool, self.quality_predicate).results[0]
            for call in calls
        )
        return EarlyYieldResult(results, None, 0, lambda: list(results))

    def _run_final_answer(self, call: ToolCall, round_result: ToolRoundResult) -> None:
        try:
            value = self.execute_tool(call)
        except FinalAnswerSignal as signal:
            round_result.final_answer = signal.value
            round_result.is_final_answer = True
            return
        except Exception as e:
            round_result.errors.append(f"Error executing tool '{call.name}': {format_error(e)}")
            return
        # A final_answer tool that returns instead of raising still ends the run.
        round_result.final_answer = value
        round_result.is_final_answer = True

    def _route(self, call: ToolCall, value: Any, task: str) -> str:
        raw = str(value)
        routed = self.observation_router.route(call.name, raw, task)
        if routed.decision is not RoutingDecision.FULL_OUTPUT:
            logger.debug("Observation from %s routed as %s", call.name, routed.decision)
        return f"[{call.name}] {routed.content}"
