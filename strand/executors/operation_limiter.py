"""Operation limiter: a counting trace hook that aborts runaway code."""

from __future__ import annotations

import sys
from typing import Any, Callable, Literal

from strand.errors import InterpreterError, OperationLimitAbort

SANDBOX_FILENAME = "<sandbox>"

Granularity = Literal["line", "call"]


class OperationLimiter:
    """
    Count operations while sandboxed code runs and abort past a ceiling.

    ``line`` granularity counts executed lines in code compiled under
    ``SANDBOX_FILENAME`` (tools and host code are not counted). ``call``
    granularity counts every Python and builtin function call made while the
    limiter is active.

    The abort is an ``OperationLimitAbort`` (a BaseException) raised from the
    hook; ``run`` turns it into ``InterpreterError``. The interpreter drops a
    hook that raises, so ``tripped`` stays set and ``run`` fails even when the
    callable swallowed the abort and returned normally.
    """

    def __init__(
        self,
        max_operations: int,
        granularity: Granularity = "line",
        filename: str = SANDBOX_FILENAME,
    ) -> None:
        if max_operations < 1:
            raise ValueError("max_operations must be at least 1")
        if granularity not in ("line", "call"):
            raise ValueError(f"Unknown granularity: {granularity}")
        self.max_operations = max_operations
        self.granularity = granularity
        self.filename = filename
        self.count = 0
        self.tripped = False
        self._previous_trace: Any = None
        self._previous_profile: Any = None

    # -- hooks -------------------------------------------------------------

    def _tick(self) -> None:
        self.count += 1
        if self.count > self.max_operations:
            self.tripped = True
            raise OperationLimitAbort(self.max_operations)

    def _trace(self, frame: Any, event: str, arg: Any) -> Callable | None:
        if event == "call":
            if frame.f_code.co_filename != self.filename:
                return None
            return self._trace_lines
        return None

    def _trace_lines(self, frame: Any, event: str, arg: Any) -> Callable | None:
        if event == "line":
            self._tick()
        return self._trace_lines

    def _profile(self, frame: Any, event: str, arg: Any) -> None:
        if event in ("call", "c_call"):
            self._tick()

    # -- context manager ---------------------------------------------------

    def __enter__(self) -> OperationLimiter:
        self.count = 0
        self.tripped = False
        if self.granularity == "line":
            self._previous_trace = sys.gettrace()
            sys.settrace(self._trace)
        else:
            self._previous_profile = sys.getprofile()
            sys.setprofile(self._profile)
        return self

    def __exit__(self, *exc: Any) -> None:
        if self.granularity == "line":
            sys.settrace(self._previous_trace)
        else:
            sys.setprofile(self._previous_profile)

    def run(self, fn: Callable[[], Any]) -> Any:
        try:
            with self:
                value = fn()
        except OperationLimitAbort:
            self.tripped = True
        except Exception:
            # Code that caught the abort and then failed still ran past the limit.
            if not self.tripped:
                raise
        if self.tripped:
            raise InterpreterError(f"Operation limit exceeded: {self.max_operations}")
        return value
