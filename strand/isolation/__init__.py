"""Isolation primitives: resource limits, results and the thread executor."""

from strand.isolation.thread_executor import ThreadExecutor, WorkerKilled, kill_thread
from strand.isolation.tool_isolation import ToolIsolation
from strand.isolation.types import (
    IsolationResult,
    IsolationStatus,
    ResourceLimits,
    ResourceMetrics,
)

__all__ = [
    "ThreadExecutor",
    "WorkerKilled",
    "kill_thread",
    "ToolIsolation",
    "IsolationResult",
    "IsolationStatus",
    "ResourceLimits",
    "ResourceMetrics",
]
