"""Executor interface and the result of one code execution."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ExecutionResult:
    output: Any = None
    logs: str = ""
    error: str | None = None
    is_final_answer: bool = False

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, output: Any, logs: str = "", is_final_answer: bool = False) -> ExecutionResult:
        return cls(output=output, logs=logs, is_final_answer=is_final_answer)

    @classmethod
    def failed(cls, error: str, logs: str = "") -> ExecutionResult:
        return cls(logs=logs, error=error)


class Executor(ABC):
    """Runs a code action and reports the outcome as an ExecutionResult."""

    @abstractmethod
    def execute(self, code: str) -> ExecutionResult:
        ...

    def send_tools(self, tools: dict[str, Any]) -> None:
        """Register tools callable from executed code. Optional."""

    def send_variables(self, variables: dict[str, Any]) -> None:
        """Register variables readable from executed code. Optional."""
