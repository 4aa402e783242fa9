"""Run tools through ThreadExecutor and report timeouts and violations."""

from __future__ import annotations

import logging
from typing import Any, Callable

from strand.events.bus import emit_to
from strand.isolation.thread_executor import ThreadExecutor
from strand.isolation.types import IsolationResult, ResourceLimits
from strand.types.events import IsolationTimeoutEvent, IsolationViolationEvent

logger = logging.getLogger(__name__)


class ToolIsolation:
    """Wrap tool calls so that a hung or greedy tool cannot stall the loop."""

    def __init__(self, limits: ResourceLimits | None = None, emitter: Any | None = None) -> None:
        self.limits = limits or ResourceLimits.default()
        self.emitter = emitter

    def isolated_call(
        self,
        tool: Callable[..., Any],
        limits: ResourceLimits | None = None,
        **arguments: Any,
    ) -> IsolationResult:
        limits = limits or self.limits
        tool_name = getattr(tool, "name", getattr(tool, "__name__", "tool"))
        result = ThreadExecutor(limits).execute(tool, **arguments)

        if result.is_timeout:
            emit_to(self.emitter, IsolationTimeoutEvent(tool_name=tool_name, timeout_seconds=limits.timeout_seconds))
        elif result.is_violation:
            logger.warning("Tool %s violated resource limits: %s", tool_name, result.error)
            emit_to(
                self.emitter,
                IsolationViolationEvent(
                    tool_name=tool_name, error=str(result.error), metrics=result.metrics.to_dict()
                ),
            )
        return result

    def call(self, tool: Callable[..., Any], **arguments: Any) -> Any:
        """Like ``isolated_call`` but returns the value or raises the error."""
        return self.isolated_call(tool, **arguments).unwrap()
