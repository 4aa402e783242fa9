"""
RequestQueue - 模型调用串行化

为只能同时处理一个请求的后端（例如本地模型服务）提供单消费者 FIFO 队列。
调用方阻塞在各自的一次性结果通道上，直到工作线程交付结果或异常。
高优先级请求在持有队列内部锁的情况下插入队首。
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from queue import Queue
from typing import Any, Callable, Literal
from uuid import uuid4

from strand.config.models import QueueConfig
from strand.core.message import AssistantMessage, BaseMessage
from strand.errors import QueueFullError, QueueShutdownError, error_kind
from strand.events.bus import emit_to
from strand.isolation.thread_executor import kill_thread
from strand.models.dead_letter import DeadLetterStore
from strand.security.secret_redactor import redact_string
from strand.types.events import (
    QueueRequestCompletedEvent,
    QueueRequestFailedEvent,
    QueueRequestStartedEvent,
    QueueRetriedEvent,
)

logger = logging.getLogger(__name__)

Priority = Literal["normal", "high"]

WAIT_WINDOW = 100


class ResultChannel:
    """One-shot channel: exactly one value or error is ever delivered."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._value: Any = None
        self._error: BaseException | None = None
        self._delivered = False

    def _set(self, value: Any, error: BaseException | None) -> bool:
        with self._lock:
            if self._delivered:
                return False
            self._value = value
            self._error = error
            self._delivered = True
        self._event.set()
        return True

    def deliver(self, value: Any) -> bool:
        return self._set(value, None)

    def fail(self, error: BaseException) -> bool:
        return self._set(None, error)

    @property
    def delivered(self) -> bool:
        return self._delivered

    def wait(self, timeout: float | None = None) -> Any:
        if not self._event.wait(timeout):
            raise TimeoutError("Timed out waiting for queued request")
        if self._error is not None:
            raise self._error
        return self._value


@dataclass
class QueuedRequest:
    messages: list[BaseMessage]
    kwargs: dict[str, Any] = field(default_factory=dict)
    priority: Priority = "normal"
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    channel: ResultChannel = field(default_factory=ResultChannel)
    queued_at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class QueueStats:
    depth: int
    processing: bool
    total_processed: int
    total_failed: int
    avg_wait_seconds: float
    max_wait_seconds: float


_POISON = object()


class RequestQueue:
    """Single-worker queue in front of a backend with a ``generate`` method."""

    def __init__(
        self,
        backend: Any,
        config: QueueConfig | None = None,
        dead_letters: DeadLetterStore | None = None,
        emitter: Any | None = None,
    ) -> None:
        self.backend = backend
        self.config = config or QueueConfig()
        self.emitter = emitter
        if dead_letters is None and self.config.dead_letter:
            dead_letters = DeadLetterStore(self.config.dead_letter_capacity)
        self.dead_letters = dead_letters

        self._queue: Queue[Any] = Queue()
        self._submit_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._worker: threading.Thread | None = None
        self._shutdown = False
        self._processing = False
        self._current: QueuedRequest | None = None
        self._total_processed = 0
        self._total_failed = 0
        self._waits: deque[float] = deque(maxlen=WAIT_WINDOW)
        self._callbacks: list[Callable[[QueuedRequest, Any, BaseException | None], None]] = []

    # -- submission --------------------------------------------------------

    @property
    def depth(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def queued_generate(
        self, messages: list[BaseMessage], priority: Priority = "normal", **kwargs: Any
    ) -> AssistantMessage:
        if not self.config.enabled:
            return self.backend.generate(messages, **kwargs)

        request = QueuedRequest(messages=list(messages), kwargs=kwargs, priority=priority)
        with self._submit_lock:
            if self._shutdown:
                raise QueueShutdownError()
            depth = self.depth
            max_depth = self.config.max_depth
            if max_depth is not None and depth >= max_depth:
                raise QueueFullError(depth, max_depth)
            self._ensure_worker()
            if priority == "high":
                self._push_front(request)
            else:
                self._queue.put(request)
        logger.debug("Queued request %s (priority=%s, depth=%d)", request.id, priority, depth + 1)
        return request.channel.wait()

    def _push_front(self, request: QueuedRequest) -> None:
        # Splice under the queue's own mutex so concurrent puts cannot interleave.
        q = self._queue
        with q.mutex:
            q.queue.appendleft(request)
            q.unfinished_tasks += 1
            q.not_empty.notify()

    def on_complete(self, callback: Callable[[QueuedRequest, Any, BaseException | None], None]) -> None:
        self._callbacks.append(callback)

    # -- worker ------------------------------------------------------------

    def _ensure_worker(self) -> None:
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(target=self._work, name="strand-request-queue", daemon=True)
            self._worker.start()
            logger.info("Request queue worker started")

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _POISON:
                    return
                self._process(item)
            finally:
                self._queue.task_done()

    def _process(self, request: QueuedRequest) -> None:
        wait = time.monotonic() - request.queued_at
        with self._stats_lock:
            self._processing = True
            self._current = request
            self._waits.append(wait)
        emit_to(self.emitter, QueueRequestStartedEvent(request.id, request.priority, wait))

        started = time.monotonic()
        result: Any = None
        error: BaseException | None = None
        try:
            result = self.backend.generate(request.messages, **request.kwargs)
        except Exception as e:
            error = e

        with self._stats_lock:
            self._processing = False
            self._current = None
            self._total_processed += 1
            if error is not None:
                self._total_failed += 1

        if error is None:
            emit_to(self.emitter, QueueRequestCompletedEvent(request.id, time.monotonic() - started))
        else:
            if self.dead_letters is not None:
                self.dead_letters.record(request, error)
            logger.warning("Queued request %s failed: %s", request.id, error_kind(error))
            emit_to(self.emitter, QueueRequestFailedEvent(request.id, error_kind(error), redact_string(str(error))))

        # Callbacks and events run before the caller is woken.
        for callback in list(self._callbacks):
            try:
                callback(request, result, error)
            except Exception:
                logger.exception("Queue completion callback failed for %s", request.id)

        if error is None:
            request.channel.deliver(result)
        else:
            request.channel.fail(error)

    # -- maintenance -------------------------------------------------------

    def stats(self) -> QueueStats:
        with self._stats_lock:
            waits = list(self._waits)
            return QueueStats(
                depth=self.depth,
                processing=self._processing,
                total_processed=self._total_processed,
                total_failed=self._total_failed,
                avg_wait_seconds=sum(waits) / len(waits) if waits else 0.0,
                max_wait_seconds=max(waits) if waits else 0.0,
            )

    def clear(self) -> int:
        """Drop queued (not yet dispatched) requests, failing their callers."""
        dropped = self._drain()
        for request in dropped:
            request.channel.fail(QueueShutdownError())
        return len(dropped)

    def _drain(self) -> list[QueuedRequest]:
        q = self._queue
        drained: list[QueuedRequest] = []
        with q.mutex:
            keep = []
            while q.queue:
                item = q.queue.popleft()
                if item is _POISON:
                    keep.append(item)
                else:
                    drained.append(item)
                    q.unfinished_tasks -= 1
            q.queue.extend(keep)
            if q.unfinished_tasks == 0:
                q.all_tasks_done.notify_all()
        return drained

    def retry_dead_letters(self, count: int = 1) -> int:
        """Re-run the oldest dead letters directly against the backend."""
        if self.dead_letters is None:
            return 0
        outcomes = self.dead_letters.retry_failed(
            lambda request: self.backend.generate(request.messages, **request.kwargs), count
        )
        for outcome in outcomes:
            request = outcome.failed.request
            emit_to(
                self.emitter,
                QueueRetriedEvent(request.id, outcome.failed.attempts + 1, outcome.succeeded),
            )
        return sum(1 for o in outcomes if o.succeeded)

    def shutdown(self, timeout: float | None = None) -> None:
        timeout = self.config.shutdown_timeout if timeout is None else timeout
        with self._submit_lock:
            self._shutdown = True
        worker = self._worker
        if worker is None:
            return
        self._queue.put(_POISON)
        worker.join(timeout)
        if worker.is_alive():
            logger.warning("Request queue worker did not stop within %.1fs; killing it", timeout)
            kill_thread(worker)
            current = self._current
            if current is not None:
                current.channel.fail(QueueShutdownError())
        for request in self._drain():
            request.channel.fail(QueueShutdownError())
        self._worker = None


class QueuedModel:
    """Model adapter whose ``generate`` goes through a RequestQueue."""

    def __init__(
        self,
        model: Any,
        config: QueueConfig | None = None,
        dead_letters: DeadLetterStore | None = None,
        emitter: Any | None = None,
    ) -> None:
        self.model = model
        self.queue = RequestQueue(model, config, dead_letters, emitter)

    def generate(self, messages: list[BaseMessage], priority: Priority = "normal", **kwargs: Any) -> AssistantMessage:
        return self.queue.queued_generate(messages, priority=priority, **kwargs)

    @property
    def dead_letters(self) -> DeadLetterStore | None:
        return self.queue.dead_letters

    def shutdown(self, timeout: float | None = None) -> None:
        self.queue.shutdown(timeout)
