"""
DeadLetterStore - 失败请求的有界归档

保存执行失败的请求快照（FIFO，超出容量时淘汰最旧的条目），
支持查看与手动重试；重试再次失败时以 attempts+1 重新追加，不会丢弃。
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable

from strand.errors import error_kind, is_retriable
from strand.security.secret_redactor import redact_string

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailedRequest:
    request: Any
    error_kind: str
    error_message: str
    attempts: int = 1
    failed_at: float = field(default_factory=time.time)
    retriable: bool = True

    @property
    def age(self) -> float:
        return time.time() - self.failed_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": getattr(self.request, "id", None),
            "error_kind": self.error_kind,
            "error_message": self.error_message,
            "attempts": self.attempts,
            "failed_at": self.failed_at,
            "retriable": self.retriable,
        }


@dataclass(frozen=True)
class RetryOutcome:
    failed: FailedRequest
    succeeded: bool
    result: Any = None
    error: BaseException | None = None


class DeadLetterStore:
    """Instance-owned bounded deque guarded by a lock."""

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: deque[FailedRequest] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, request: Any, error: BaseException, attempts: int = 1) -> FailedRequest:
        entry = FailedRequest(
            request=request,
            error_kind=error_kind(error),
            error_message=redact_string(str(error)),
            attempts=attempts,
            retriable=is_retriable(error),
        )
        with self._lock:
            if len(self._entries) == self.capacity:
                logger.debug("Dead letter store full; evicting oldest entry")
            self._entries.append(entry)
        return entry

    def retry_failed(self, executor: Callable[[Any], Any], count: int = 1) -> list[RetryOutcome]:
        """Pop up to ``count`` oldest entries and re-run each through ``executor``.

        Runs outside the lock. A retry that fails again goes back on the store
        with its attempt count bumped.
        """
        with self._lock:
            batch = [self._entries.popleft() for _ in range(min(count, len(self._entries)))]

        outcomes: list[RetryOutcome] = []
        for entry in batch:
            try:
                result = executor(entry.request)
            except Exception as e:
                logger.info("Retry of %s failed again (attempt %d)", entry.error_kind, entry.attempts + 1)
                self.record(entry.request, e, attempts=entry.attempts + 1)
                outcomes.append(RetryOutcome(failed=entry, succeeded=False, error=e))
            else:
                outcomes.append(RetryOutcome(failed=entry, succeeded=True, result=result))
        return outcomes

    def failed_requests(self) -> list[FailedRequest]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def oldest_age(self) -> float | None:
        with self._lock:
            return self._entries[0].age if self._entries else None

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            entries = list(self._entries)
        return {
            "capacity": self.capacity,
            "size": len(entries),
            "entries": [e.to_dict() for e in entries],
        }
