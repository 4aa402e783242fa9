"""
Early Yield - 并行工具调用的提前返回

多个调用在各自线程中并行执行，结果按原始顺序写入槽位。
一旦某个结果通过质量判定，调用方立即拿到它以及当时已完成的其他结果；
其余调用继续在后台运行，可以通过 collector 随时汇总，不会被丢弃。
单个调用直接内联执行，不经过并行机制。
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Generic, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallOutcome(Generic[R]):
    index: int
    value: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def default_quality(outcome: CallOutcome[Any]) -> bool:
    return outcome.ok


@dataclass(frozen=True)
class EarlyYieldResult(Generic[R]):
    results: tuple[CallOutcome[R] | None, ...]
    early_result: CallOutcome[R] | None
    pending_count: int
    collector: Callable[[], list[CallOutcome[R]]]

    @property
    def completed(self) -> list[CallOutcome[R]]:
        return [r for r in self.results if r is not None]

    def collect(self) -> list[CallOutcome[R]]:
        """Join every worker and return all outcomes in origin order."""
        return self.collector()


def _accepts(quality: Callable[[CallOutcome[R]], bool], outcome: CallOutcome[R]) -> bool:
    """Apply the quality predicate; a predicate that raises rejects the outcome."""
    try:
        return bool(quality(outcome))
    except Exception as e:
        logger.warning("Quality check failed for call %d: %s", outcome.index, e)
        return False


def _invoke(run: Callable[[T], R], call: T, index: int) -> CallOutcome[R]:
    try:
        return CallOutcome(index, value=run(call))
    except Exception as e:
        return CallOutcome(index, error=e)


def execute_with_early_yield(
    calls: Sequence[T],
    run: Callable[[T], R],
    quality: Callable[[CallOutcome[R]], bool] | None = None,
) -> EarlyYieldResult[R]:
    quality = quality or default_quality
    if not calls:
        return EarlyYieldResult((), None, 0, lambda: [])

    if len(calls) == 1:
        outcome = _invoke(run, calls[0], 0)
        early = outcome if _accepts(quality, outcome) else None
        return EarlyYieldResult((outcome,), early, 0, lambda: [outcome])

    slots: list[CallOutcome[R] | None] = [None] * len(calls)
    condition = threading.Condition()
    state = {"done": 0, "early": None}

    def worker(index: int, call: T) -> None:
        outcome = _invoke(run, call, index)
        with condition:
            slots[index] = outcome
            state["done"] += 1
            try:
                if _accepts(quality, outcome) and state["early"] is None:
                    state["early"] = outcome
            finally:
                condition.notify_all()

    threads = [
        threading.Thread(target=worker, args=(i, call), name=f"strand-tool-{i}", daemon=True)
        for i, call in enumerate(calls)
    ]
    for t in threads:
        t.start()

    with condition:
        condition.wait_for(lambda: state["early"] is not None or state["done"] == len(calls))
        snapshot = tuple(slots)
        early = state["early"]
        pending = len(calls) - state["done"]

    def collector() -> list[CallOutcome[R]]:
        for t in threads:
            t.join()
        with condition:
            return [s for s in slots if s is not None]

    return EarlyYieldResult(snapshot, early, pending, collector)
