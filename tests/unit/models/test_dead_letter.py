"""
DeadLetterStore Unit Tests

测试死信存储的有界 FIFO、脱敏与重试
"""

from dataclasses import dataclass

import pytest

from strand.errors import ConfigurationError, ModelConnectionError
from strand.models.dead_letter import DeadLetterStore


@dataclass
class Req:
    id: str


class TestDeadLetterStore:
    """测试记录与淘汰"""

    def test_fifo_bound(self):
        store = DeadLetterStore(capacity=3)
        for i in range(5):
            store.record(Req(str(i)), RuntimeError(f"fail {i}"))

        entries = store.failed_requests()
        assert len(store) == 3
        assert [e.request.id for e in entries] == ["2", "3", "4"]

    def test_record_fields(self):
        store = DeadLetterStore()
        entry = store.record(Req("a"), ModelConnectionError("down: sk-" + "k" * 30))

        assert entry.error_kind == "ModelConnectionError"
        assert "[REDACTED]" in entry.error_message
        assert entry.attempts == 1
        assert entry.retriable

    def test_non_retriable_flag(self):
        entry = DeadLetterStore().record(Req("a"), ConfigurationError("bad config"))
        assert not entry.retriable

    def test_clear_and_age(self):
        store = DeadLetterStore()
        assert store.oldest_age() is None
        store.record(Req("a"), RuntimeError("x"))
        store.record(Req("b"), RuntimeError("y"))

        assert store.oldest_age() >= 0
        assert store.clear() == 2
        assert store.size == 0

    def test_to_dict(self):
        store = DeadLetterStore(capacity=2)
        store.record(Req("a"), RuntimeError("x"))
        data = store.to_dict()
        assert data["capacity"] == 2
        assert data["entries"][0]["request_id"] == "a"

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            DeadLetterStore(capacity=0)


class TestRetryFailed:
    """测试死信重试"""

    def test_success_removes_entry(self):
        store = DeadLetterStore()
        store.record(Req("a"), RuntimeError("x"))
        store.record(Req("b"), RuntimeError("y"))

        outcomes = store.retry_failed(lambda request: f"ok {request.id}")

        assert [o.result for o in outcomes] == ["ok a"]
        assert [e.request.id for e in store.failed_requests()] == ["b"]

    def test_failure_is_reappended_with_attempts(self):
        store = DeadLetterStore()
        store.record(Req("a"), RuntimeError("x"))

        def still_failing(request):
            raise TimeoutError("again")

        outcomes = store.retry_failed(still_failing, count=5)

        assert len(outcomes) == 1
        assert not outcomes[0].succeeded
        entry = store.failed_requests()[0]
        assert entry.attempts == 2
        assert entry.error_kind == "TimeoutError"

    def test_retry_on_empty_store(self):
        assert DeadLetterStore().retry_failed(lambda r: r, count=3) == []
