"""Agent memory: the ordered step sequence of one run."""

from __future__ import annotations

from strand.core.message import BaseMessage, TokenUsage
from strand.core.steps import (
    ActionStep,
    PlanningStep,
    Step,
    SystemPromptStep,
    TaskStep,
)


class AgentMemory:
    """
    有序步骤序列

    序列总是以一个 SystemPromptStep 开头，紧跟一个 TaskStep。
    之后只能追加规划、动作、最终答案或空步骤。
    """

    def __init__(self, system_prompt: str, task: str, images: list[str] | None = None) -> None:
        self._steps: list[Step] = [
            SystemPromptStep(prompt=system_prompt),
            TaskStep(task=task, images=tuple(images or ())),
        ]

    @property
    def steps(self) -> list[Step]:
        return list(self._steps)

    @property
    def system_prompt(self) -> SystemPromptStep:
        return self._steps[0]  # type: ignore[return-value]

    @property
    def task(self) -> str:
        return self._steps[1].task  # type: ignore[union-attr]

    def add_step(self, step: Step) -> None:
        if isinstance(step, (SystemPromptStep, TaskStep)):
            raise ValueError(f"{type(step).__name__} can only appear at the start of memory")
        self._steps.append(step)

    def action_steps(self) -> list[ActionStep]:
        return [s for s in self._steps if isinstance(s, ActionStep)]

    def planning_steps(self) -> list[PlanningStep]:
        return [s for s in self._steps if isinstance(s, PlanningStep)]

    def last_action_step(self) -> ActionStep | None:
        actions = self.action_steps()
        return actions[-1] if actions else None

    def to_messages(self, summary_mode: bool = False) -> list[BaseMessage]:
        messages: list[BaseMessage] = []
        for step in self._steps:
            messages.extend(step.to_messages(summary_mode=summary_mode))
        return messages

    def token_usage(self) -> TokenUsage:
        total = TokenUsage()
        for step in self._steps:
            usage = getattr(step, "token_usage", None)
            total = total + usage
        return total

    def reset(self) -> None:
        """Drop everything after the system prompt and task."""
        del self._steps[2:]

    def __len__(self) -> int:
        return len(self._steps)
