"""Deferred tool calls for sandboxed code."""

from __future__ import annotations

from typing import Any, Callable


class ToolFuture:
    """A tool call that has been queued but not yet executed.

    ``result()`` resolves every pending future in the owning batch (in the
    order they were created) before returning this one's value.
    """

    def __init__(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        runner: Callable[[], Any],
        batch: FutureBatch | None = None,
    ) -> None:
        self.tool_name = tool_name
        self.arguments = arguments
        self._runner = runner
        self._batch = batch
        self._resolved = False
        self._value: Any = None
        self._error: Exception | None = None
        if batch is not None:
            batch.add(self)

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def error(self) -> Exception | None:
        return self._error

    def resolve(self) -> None:
        if self._resolved:
            return
        try:
            self._value = self._runner()
        except Exception as e:
            self._error = e
        self._resolved = True

    def result(self) -> Any:
        if not self._resolved:
            if self._batch is not None:
                self._batch.flush()
            else:
                self.resolve()
        if self._error is not None:
            raise self._error
        return self._value

    def __repr__(self) -> str:
        if not self._resolved:
            return f"<ToolFuture pending {self.tool_name}({self.arguments!r})>"
        return f"<ToolFuture resolved {self.tool_name} => {self._value!r:.50}>"


class FutureBatch:
    """Pending futures for one executor."""

    def __init__(self) -> None:
        self._futures: list[ToolFuture] = []

    def add(self, future: ToolFuture) -> None:
        self._futures.append(future)

    def pending(self) -> list[ToolFuture]:
        return [f for f in self._futures if not f.resolved]

    def flush(self) -> int:
        """Resolve all pending futures in creation order. Returns how many ran."""
        batch = self.pending()
        for future in batch:
            future.resolve()
        return len(batch)

    def clear(self) -> None:
        self._futures = []

    def __len__(self) -> int:
        return len(self._futures)
