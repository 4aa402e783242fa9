"""Code executors: in-process sandbox and container."""

from strand.executors.base import ExecutionResult, Executor
from strand.executors.container import ContainerExecutor, parse_output
from strand.executors.local import LocalExecutor
from strand.executors.operation_limiter import OperationLimiter
from strand.executors.sandbox import OutputBuffer, Resolution, ResolutionKind, Sandbox
from strand.executors.tool_future import FutureBatch, ToolFuture

__all__ = [
    "ExecutionResult",
    "Executor",
    "ContainerExecutor",
    "parse_output",
    "LocalExecutor",
    "OperationLimiter",
    "OutputBuffer",
    "Resolution",
    "ResolutionKind",
    "Sandbox",
    "FutureBatch",
    "ToolFuture",
]
