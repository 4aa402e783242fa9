import pytest

from strand.executors.tool_future import FutureBatch, ToolFuture


class TestToolFuture:
    """测试延迟工具调用"""

    def test_result_flushes_whole_batch_in_order(self):
        order = []
        batch = FutureBatch()
        first = ToolFuture("a", {}, lambda: order.append("a") or 1, batch)
        second = ToolFuture("b", {}, lambda: order.append("b") or 2, batch)

        assert len(batch.pending()) == 2
        assert second.result() == 2
        assert order == ["a", "b"]
        assert first.resolved
        assert first.result() == 1
        assert order == ["a", "b"]

    def test_error_is_raised_on_result(self):
        def fail():
            raise ValueError("nope")

        future = ToolFuture("bad", {"x": 1}, fail)
        future.resolve()

        assert isinstance(future.error, ValueError)
        with pytest.raises(ValueError):
            future.result()

    def test_repr(self):
        future = ToolFuture("add", {"a": 1}, lambda: 3)
        assert "pending add" in repr(future)
        future.result()
        assert "resolved add => 3" in repr(future)

    def test_flush_counts_and_clear(self):
        batch = FutureBatch()
        ToolFuture("a", {}, lambda: 1, batch)
        ToolFuture("b", {}, lambda: 2, batch)

        assert batch.flush() == 2
        assert batch.flush() == 0

        batch.clear()
        assert len(batch) == 0
