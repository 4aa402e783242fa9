"""
Agent - ReAct 步骤状态机

每一步：
1. 按间隔规划（首次生成计划，之后更新计划）
2. 调用模型构造动作（工具调用 / 代码动作）
3. 执行工具（多个调用并行 + 提前返回）或把代码交给执行器
4. 观察结果经过路由器进入上下文
5. 偏离计划跟踪、检查点评估、错误反思、可选的自我修正
6. 终止：最终答案 → success；步数耗尽 → max_steps_reached；不可恢复错误 → error
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Callable
from uuid import uuid4

from strand.agent.divergence import DivergenceTracker
from strand.agent.early_yield import CallOutcome
from strand.agent.evaluation import Evaluator
from strand.agent.observation_router import ObservationRouter, PassThroughRouter
from strand.agent.planning import Planner
from strand.agent.reflection import Reflection, ReflectionStore
from strand.agent.refinement import RefineConfig, SelfRefiner
from strand.agent.repetition import LOOP_PREFIX, RepetitionConfig, RepetitionDetector
from strand.agent.tool_handler import FINAL_ANSWER, ToolHandlerMixin, ToolRoundResult, format_error
from strand.config.models import AgentConfig
from strand.core.memory import AgentMemory
from strand.core.message import AssistantMessage, TokenUsage, ToolCall
from strand.core.steps import ActionStep, FinalAnswerStep, GuidanceStep, NullStep, Step, Timing
from strand.errors import ModelError, StrandError
from strand.events.bus import EventBus, emit_to
from strand.executors.base import ExecutionResult, Executor
from strand.isolation.tool_isolation import ToolIsolation
from strand.isolation.types import ResourceLimits
from strand.security.secret_redactor import redact_string
from strand.tools.base import FinalAnswerTool
from strand.types.events import (
    EvaluationCompletedEvent,
    RefinementCompletedEvent,
    ReflectionRecordedEvent,
    RepetitionDetectedEvent,
    StepCompletedEvent,
)

logger = logging.getLogger(__name__)

CODE_TOOL = "python_interpreter"

DEFAULT_SYSTEM_PROMPT = """You are an expert assistant who solves tasks step by step.
At each step, either call one or more tools, or write Python code in a ```python block.
Code runs in a sandbox where every tool is available as a function.
Observations from tools and code are returned to you after each step.
When you have the answer, call final_answer(answer=...).
Never call final_answer in the same step as a search or fetch tool: wait for the results first.

Available tools:
{tools}"""

NO_ACTION_ERROR = (
    "No tool call or code found in the model output. "
    "Call a tool, write a ```python code block, or call final_answer."
)

_CODE_BLOCK = re.compile(r"```(?:python|py)?[ \t]*\n(.*?)```", re.DOTALL)


def extract_code(text: str | None) -> str | None:
    """Join every fenced python block in ``text``; None when there is none."""
    if not text:
        return None
    blocks = [b.strip() for b in _CODE_BLOCK.findall(text) if b.strip()]
    return "\n\n".join(blocks) if blocks else None


class RunState(StrEnum):
    SUCCESS = "success"
    MAX_STEPS_REACHED = "max_steps_reached"
    ERROR = "error"


@dataclass(frozen=True)
class RunResult:
    output: Any
    state: RunState
    steps: tuple[Step, ...]
    token_usage: TokenUsage
    timing: Timing
    error: str | None = None
    trace_id: str | None = None

    @property
    def success(self) -> bool:
        return self.state is RunState.SUCCESS


@dataclass
class _Background:
    """Tool calls still running after an early yield."""

    step_number: int
    calls: list[ToolCall]
    collector: Callable[[], list[CallOutcome[Any]]]
    seen: set[int] = field(default_factory=set)


class Agent(ToolHandlerMixin):
    """ReAct agent: model + tools + optional code executor → RunResult."""

    def __init__(
        self,
        model: Any,
        tools: list[Any] | dict[str, Any] | None = None,
        config: AgentConfig | None = None,
        executor: Executor | None = None,
        observation_router: ObservationRouter | None = None,
        refine: RefineConfig | None = None,
        quality_predicate: Callable[[CallOutcome[Any]], bool] | None = None,
        emitter: Any | None = None,
        reflections: ReflectionStore | None = None,
    ) -> None:
        self.model = model
        self.config = config or AgentConfig()
        if isinstance(tools, dict):
            self.tools = dict(tools)
        else:
            self.tools = {t.name: t for t in tools or []}
        self.tools.setdefault(FINAL_ANSWER, FinalAnswerTool())
        self.executor = executor
        if executor is not None:
            executor.send_tools(self.tools)
        self.observation_router = observation_router or PassThroughRouter()
        self.quality_predicate = quality_predicate
        self.emitter = emitter if emitter is not None else EventBus()
        if self.config.tool_timeout:
            limits = ResourceLimits.permissive().with_timeout(self.config.tool_timeout)
            self.isolation = ToolIsolation(limits, self.emitter)
        self.reflections = reflections or ReflectionStore(self.config.max_reflections)
        self.evaluator = Evaluator(model)
        refine = refine or RefineConfig.disabled()
        self.refiner = SelfRefiner(model, refine, self.evaluator) if refine.enabled else None
        self.planner = Planner(model, self.tools, self.config.planning_interval)
        self.divergence = DivergenceTracker(self.emitter)
        self.repetition = RepetitionDetector(RepetitionConfig(
            window_size=self.config.repetition_window,
            enabled=self.config.repetition_detection,
        ))
        self.trace_id: str | None = None
        self.memory: AgentMemory | None = None
        self._background: list[_Background] = []

    def on(self, event_type: str, handler: Callable[[Any], None]) -> None:
        self.emitter.on(event_type, handler)

    # ------------------------------------------------------------------

    def system_prompt(self, task: str) -> str:
        if self.config.system_prompt:
            prompt = self.config.system_prompt
        else:
            tools = "\n".join(f"- {getattr(t, 'name', n)}: {getattr(t, 'description', '')}"
                              for n, t in self.tools.items())
            prompt = DEFAULT_SYSTEM_PROMPT.format(tools=tools)
        lessons = self.reflections.format_for_prompt(task)
        return f"{prompt}\n\n{lessons}" if lessons else prompt

    def run(self, task: str, images: list[str] | None = None) -> RunResult:
        """执行任务直到得到最终答案、步数耗尽或发生不可恢复错误"""
        timing = Timing.start_now()
        memory = AgentMemory(self.system_prompt(task), task, images)
        self.memory = memory
        self.planner = Planner(self.model, self.tools, self.config.planning_interval)
        self.divergence.reset()
        self._background = []
        self.trace_id = uuid4().hex
        logger.info("Agent run started (trace_id=%s, max_steps=%d)", self.trace_id, self.config.max_steps)

        try:
            for step_number in range(1, self.config.max_steps + 1):
                if self.planner.due(step_number):
                    memory.add_step(self._guard_model(self.planner.plan, memory, step_number))

                step = self.step(memory, step_number)
                memory.add_step(step)
                if isinstance(step, NullStep):
                    logger.warning("Step %d produced no action (%s)", step_number, step.reason)
                    continue

                emit_to(self.emitter, StepCompletedEvent(
                    step_number=step.step_number,
                    tool_names=step.tool_names,
                    error=step.error,
                    is_final_answer=step.is_final_answer,
                    duration=step.timing.duration,
                ))
                if step.is_final_answer:
                    self._reflect_success(task, step)
                    memory.add_step(FinalAnswerStep(output=step.action_output))
                    logger.info("Agent run finished at step %d", step_number)
                    return self._result(memory, step.action_output, RunState.SUCCESS, timing)

                self._check_repetition(memory, step)

            logger.info("Agent reached max steps (%d)", self.config.max_steps)
            return self._result(memory, self._last_observation(memory), RunState.MAX_STEPS_REACHED, timing)
        except StrandError as e:
            logger.error("Agent run failed: %s", e.message)
            return self._result(memory, None, RunState.ERROR, timing, error=format_error(e))
        finally:
            self._join_background()

    async def arun(self, task: str, images: list[str] | None = None) -> RunResult:
        return await asyncio.to_thread(self.run, task, images)

    # ------------------------------------------------------------------

    def step(self, memory: AgentMemory, step_number: int) -> ActionStep | NullStep:
        timing = Timing.start_now()
        late = self._collect_background()
        response: AssistantMessage | None = self._guard_model(
            self.model.generate, memory.to_messages(), tools=self._tool_schemas()
        )
        if response is None:
            return NullStep.nil_output(step_number)

        code = extract_code(response.content)
        code_calls = [c for c in response.tool_calls if c.name == CODE_TOOL]
        tool_calls = [c for c in response.tool_calls if c.name != CODE_TOOL]
        if code_calls:
            code = "\n\n".join(str(c.arguments.get("code", c.arguments.get("input", ""))) for c in code_calls)

        step = ActionStep(
            step_number=step_number,
            timing=timing,
            output_message=response,
            tool_calls=tuple(response.tool_calls),
            code_action=code,
            token_usage=response.token_usage,
            trace_id=uuid4().hex[:16],
            parent_trace_id=self.trace_id,
        )

        if tool_calls:
            step = self._apply_round(step, self.execute_tool_calls(tool_calls, memory.task), late)
        elif code is not None and self.executor is not None:
            step = self._apply_execution(step, self._execute_code(code), late)
        elif code_calls:
            step = replace(step, error=f"Tool '{CODE_TOOL}' is not available: no code executor configured.")
        elif not (response.content or "").strip():
            return NullStep.empty(step_number)
        else:
            step = replace(step, error=NO_ACTION_ERROR, observations=self._join(late))

        self.divergence.track(step, self.planner.context)

        if not step.is_final_answer and self._evaluation_due(step_number):
            step = self._evaluate(memory.task, step)

        if step.error and self.config.reflection_enabled:
            self._reflect_failure(memory.task, step)

        if self.refiner is not None and not step.is_final_answer:
            step = self._refine(memory.task, step)

        return replace(step, timing=timing.stop())

    # -- action execution ----------------------------------------------

    def _apply_round(self, step: ActionStep, round_result: ToolRoundResult, late: list[str]) -> ActionStep:
        if round_result.background is not None:
            self._background.append(_Background(
                step.step_number,
                round_result.background_calls,
                round_result.background,
                set(round_result.completed),
            ))

        if round_result.is_final_answer:
            output = round_result.final_answer
        elif len(round_result.outputs) == 1:
            output = round_result.outputs[0]
        else:
            output = round_result.outputs or None
        return replace(
            step,
            observations=self._join(late + round_result.observations),
            error=round_result.error,
            action_output=output,
            is_final_answer=round_result.is_final_answer,
        )

    def _execute_code(self, code: str) -> ExecutionResult:
        assert self.executor is not None
        try:
            return self.executor.execute(code)
        except StrandError as e:
            # Unsafe code comes from the model, so it is a step error, not a run error.
            return ExecutionResult.failed(format_error(e))

    def _apply_execution(self, step: ActionStep, result: ExecutionResult, late: list[str]) -> ActionStep:
        parts = list(late)
        if result.logs:
            parts.append(f"Execution logs:\n{result.logs.rstrip()}")
        if result.success and not result.is_final_answer and result.output is not None:
            parts.append(f"Last output from code snippet:\n{result.output}")
        return replace(
            step,
            observations=self._join(parts),
            error=result.error,
            action_output=result.output,
            is_final_answer=result.is_final_answer,
        )

    def _collect_background(self) -> list[str]:
        """Observations from tool calls that finished after an earlier early yield."""
        observations: list[str] = []
        for pending in self._background:
            for outcome in pending.collector():
                if outcome.index in pending.seen:
                    continue
                call = pending.calls[outcome.index]
                if outcome.ok:
                    observations.append(f"[{call.name}, from step {pending.step_number}] {outcome.value}")
                else:
                    observations.append(
                        f"[{call.name}, from step {pending.step_number}] failed: {format_error(outcome.error)}"
                    )
        self._background = []
        return observations

    def _join_background(self) -> None:
        for pending in self._background:
            pending.collector()
        self._background = []

    # -- checkpoints ------------------------------------------------------

    def _evaluation_due(self, step_number: int) -> bool:
        return self.config.evaluation_enabled and step_number % self.config.evaluation_interval == 0

    def _evaluate(self, task: str, step: ActionStep) -> ActionStep:
        result = self.evaluator.evaluate(task, step.step_number, step)
        emit_to(self.emitter, EvaluationCompletedEvent(str(result.status), result.confidence, step.step_number))
        if result.done:
            logger.info("Evaluation marked the task done at step %d", step.step_number)
            return replace(step, action_output=result.answer, is_final_answer=True)
        return step

    def _reflect_failure(self, task: str, step: ActionStep) -> None:
        reflection = Reflection.from_failure(task, step)
        self.reflections.add(reflection)
        emit_to(self.emitter, ReflectionRecordedEvent(reflection.outcome, reflection.reflection_text))

    def _reflect_success(self, task: str, step: ActionStep) -> None:
        if not self.config.reflection_enabled:
            return
        previous = [
            s for s in self.memory.action_steps()
            if any(name != FINAL_ANSWER for name in s.tool_names)
        ] if self.memory else []
        if not previous:
            return
        reflection = Reflection.from_success(task, previous[-1])
        self.reflections.add(reflection)
        emit_to(self.emitter, ReflectionRecordedEvent(reflection.outcome, reflection.reflection_text))

    def _check_repetition(self, memory: AgentMemory, step: ActionStep) -> None:
        result = self.repetition.check(memory.action_steps())
        if result is None:
            return
        logger.warning("Repetition detected at step %d: %s x%d", step.step_number, result.pattern, result.count)
        emit_to(self.emitter, RepetitionDetectedEvent(str(result.pattern), result.count, step.step_number))
        memory.add_step(GuidanceStep(f"{LOOP_PREFIX} {result.guidance}", "repetition", step.step_number))

    def _refine(self, task: str, step: ActionStep) -> ActionStep:
        assert self.refiner is not None
        target = step.code_action if step.code_action is not None else step.action_output
        if target is None:
            return step
        result = self._guard_model(self.refiner.refine, target, task, step)
        emit_to(self.emitter, RefinementCompletedEvent(result.iterations, result.improved, result.confidence))
        if not result.improved:
            return step
        if step.code_action is not None and self.executor is not None:
            late = [step.observations] if step.observations else []
            refined = replace(step, code_action=result.final, error=None)
            return self._apply_execution(refined, self._execute_code(result.final), late)
        return replace(step, action_output=result.final)

    # -- helpers -----------------------------------------------------------

    def _guard_model(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Model failures end the run; they surface as ModelError."""
        try:
            return fn(*args, **kwargs)
        except StrandError:
            raise
        except Exception as e:
            raise ModelError("MODEL_ERROR", redact_string(str(e)) or type(e).__name__, cause=e) from e

    def _tool_schemas(self) -> list[dict[str, Any]]:
        return [t.get_openai_schema() for t in self.tools.values() if hasattr(t, "get_openai_schema")]

    @staticmethod
    def _join(parts: list[str]) -> str | None:
        parts = [p for p in parts if p]
        return "\n".join(parts) if parts else None

    @staticmethod
    def _last_observation(memory: AgentMemory) -> Any:
        last = memory.last_action_step()
        if last is None:
            return None
        return last.observations if last.observations is not None else last.action_output

    def _result(
        self,
        memory: AgentMemory,
        output: Any,
        state: RunState,
        timing: Timing,
        error: str | None = None,
    ) -> RunResult:
        return RunResult(
            output=output,
            state=state,
            steps=tuple(memory.steps),
            token_usage=memory.token_usage(),
            timing=timing.stop(),
            error=error,
            trace_id=self.trace_id,
        )
