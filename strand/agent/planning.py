"""
Planning - 周期性规划

首次规划根据任务与可用工具生成 3-5 步计划；之后每隔 planning_interval 步
结合已完成步骤与最新观察更新计划。计划上下文（PlanContext）是不可变的，
每次更新都会产生新实例。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from strand.core.memory import AgentMemory
from strand.core.message import BaseMessage, SystemMessage, UserMessage
from strand.core.steps import ActionStep, PlanningStep, Timing

logger = logging.getLogger(__name__)

PLANNING_SYSTEM = (
    "You are a strategic planning assistant. "
    "Create concise, actionable plans that map directly to available tools. "
    "Focus on concrete steps, not abstract strategies."
)

INITIAL_PLAN = """Create a step-by-step plan to complete this task.

Task: {task}

Available tools:
{tools}

Instructions:
- Create 3-5 concrete steps
- Each step should use one of the available tools
- Be specific about what information to gather or actions to take
- Number each step

Plan:"""

UPDATE_PLAN = """Review your progress and update your plan.

Task: {task}

Progress so far:
{steps}

Latest observations:
{observations}

Current plan:
{plan}

Based on what you've learned, either:
1. Confirm the plan is still valid and continue, OR
2. Update the remaining steps based on new information

Updated plan:"""


class PlanState(StrEnum):
    UNINITIALIZED = "uninitialized"
    INITIAL = "initial"
    ACTIVE = "active"


def extract_tool_mentions(plan: str, tool_names: list[str]) -> frozenset[str]:
    lowered = plan.lower()
    return frozenset(name for name in tool_names if name.lower() in lowered)


@dataclass(frozen=True)
class PlanContext:
    plan: str | None = None
    state: PlanState = PlanState.UNINITIALIZED
    created_at_step: int | None = None
    tools_mentioned: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def initial(cls, plan: str, tool_names: list[str]) -> PlanContext:
        return cls(plan, PlanState.INITIAL, 0, extract_tool_mentions(plan, tool_names))

    def update(self, plan: str, at_step: int, tool_names: list[str]) -> PlanContext:
        return replace(
            self,
            plan=plan,
            state=PlanState.ACTIVE,
            created_at_step=at_step,
            tools_mentioned=extract_tool_mentions(plan, tool_names),
        )

    @property
    def initialized(self) -> bool:
        return self.state is not PlanState.UNINITIALIZED

    def mentions(self, tool_name: str) -> bool:
        if self.plan is None:
            return False
        return tool_name.lower() in self.plan.lower()


class Planner:
    """Builds planning prompts, calls the model and tracks the current plan."""

    def __init__(self, model: Any, tools: dict[str, Any], interval: int | None = None) -> None:
        self.model = model
        self.tools = tools
        self.interval = interval
        self.context = PlanContext()

    @property
    def tool_names(self) -> list[str]:
        return list(self.tools)

    def due(self, step_number: int) -> bool:
        if not self.interval:
            return False
        return not self.context.initialized or step_number % self.interval == 0

    def plan(self, memory: AgentMemory, step_number: int) -> PlanningStep:
        if not self.context.initialized:
            return self.initial_plan(memory.task)
        return self.update_plan(memory, step_number)

    def initial_plan(self, task: str) -> PlanningStep:
        tools = "\n".join(
            f"- {name}: {getattr(tool, 'description', '')}" for name, tool in self.tools.items()
        )
        messages: list[BaseMessage] = [
            SystemMessage(content=PLANNING_SYSTEM),
            UserMessage(content=INITIAL_PLAN.format(task=task, tools=tools)),
        ]
        return self._run(messages, lambda plan: PlanContext.initial(plan, self.tool_names))

    def update_plan(self, memory: AgentMemory, step_number: int) -> PlanningStep:
        last = memory.last_action_step()
        observations = (last.observations if last else None) or "No observations yet."
        steps = "\n".join(self._summarize(s) for s in memory.action_steps()) or "None yet."
        prompt = UPDATE_PLAN.format(
            task=memory.task,
            steps=steps,
            observations=observations,
            plan=self.context.plan or "No plan yet.",
        )
        messages: list[BaseMessage] = [SystemMessage(content=PLANNING_SYSTEM), UserMessage(content=prompt)]
        return self._run(messages, lambda plan: self.context.update(plan, step_number, self.tool_names))

    def _run(self, messages: list[BaseMessage], make_context) -> PlanningStep:
        timing = Timing.start_now()
        response = self.model.generate(messages)
        plan = (response.content or "").strip()
        self.context = make_context(plan)
        logger.debug("Plan updated (%d tools mentioned)", len(self.context.tools_mentioned))
        return PlanningStep(
            input_messages=tuple(messages),
            output_message=response,
            plan=plan,
            timing=timing.stop(),
            token_usage=response.token_usage,
        )

    @staticmethod
    def _summarize(step: ActionStep) -> str:
        tools = ", ".join(step.tool_names) or "no tools"
        status = f"error: {step.error[:80]}" if step.error else "ok"
        return f"Step {step.step_number}: {tools} ({status})"
