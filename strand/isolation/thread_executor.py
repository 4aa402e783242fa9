"""
ThreadExecutor - 带硬超时的隔离执行

在独立的守护线程中运行一个工作单元，并以墙钟超时等待其结束。
超时后向工作线程异步注入异常将其终止，不依赖被执行代码的协作。
"""

from __future__ import annotations

import ctypes
import logging
import resource
import sys
import threading
import time
from typing import Any, Callable

from strand.errors import IsolationTimeoutError, ResourceViolationError
from strand.isolation.types import IsolationResult, ResourceLimits, ResourceMetrics

logger = logging.getLogger(__name__)


class WorkerKilled(BaseException):
    """Injected into a worker thread that overran its timeout."""


def _rss_bytes() -> int:
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, kilobytes elsewhere
    return usage if sys.platform == "darwin" else usage * 1024


def kill_thread(thread: threading.Thread) -> bool:
    """Raise WorkerKilled asynchronously inside ``thread``.

    The exception lands at the next bytecode boundary; a thread blocked in C
    code sees it once that call returns.
    """
    if not thread.is_alive() or thread.ident is None:
        return False
    res = ctypes.pythonapi.PyThreadState_SetAsyncExc(
        ctypes.c_ulong(thread.ident), ctypes.py_object(WorkerKilled)
    )
    if res > 1:
        # Undo: more than one thread state was touched
        ctypes.pythonapi.PyThreadState_SetAsyncExc(ctypes.c_ulong(thread.ident), None)
        return False
    return res == 1


class ThreadExecutor:
    """Run callables on a worker thread under ResourceLimits."""

    def __init__(self, limits: ResourceLimits | None = None) -> None:
        self.limits = limits or ResourceLimits.default()

    def execute(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> IsolationResult:
        limits = self.limits
        outcome: dict[str, Any] = {}

        def worker() -> None:
            try:
                outcome["value"] = fn(*args, **kwargs)
            except WorkerKilled:
                outcome["killed"] = True
            except BaseException as e:  # noqa: BLE001
                outcome["error"] = e

        rss_before = _rss_bytes()
        started = time.monotonic()
        thread = threading.Thread(target=worker, name="strand-isolated", daemon=True)
        thread.start()
        thread.join(limits.timeout_seconds)
        duration_ms = int((time.monotonic() - started) * 1000)

        if thread.is_alive():
            killed = kill_thread(thread)
            logger.warning(
                "Isolated execution exceeded %.2fs; worker %s",
                limits.timeout_seconds,
                "signalled" if killed else "abandoned",
            )
            metrics = ResourceMetrics(duration_ms=duration_ms)
            return IsolationResult.timeout(IsolationTimeoutError(limits.timeout_seconds), metrics)

        memory_bytes = max(0, _rss_bytes() - rss_before)

        if "error" in outcome:
            return IsolationResult.failure(
                outcome["error"], ResourceMetrics(duration_ms=duration_ms, memory_bytes=memory_bytes)
            )

        value = outcome.get("value")
        output_bytes = len(str(value).encode("utf-8")) if value is not None else 0
        metrics = ResourceMetrics(
            duration_ms=duration_ms, memory_bytes=memory_bytes, output_bytes=output_bytes
        )

        if output_bytes > limits.max_output_bytes:
            return IsolationResult.violation(
                ResourceViolationError("output", output_bytes, limits.max_output_bytes), metrics
            )
        if memory_bytes > limits.max_memory_bytes:
            return IsolationResult.violation(
                ResourceViolationError("memory", memory_bytes, limits.max_memory_bytes), metrics
            )
        return IsolationResult.success(value, metrics)
