"""Resource limits and outcomes of isolated execution."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from enum import StrEnum
from typing import Any

MB = 1024 * 1024
KB = 1024


@dataclass(frozen=True)
class ResourceLimits:
    timeout_seconds: float = 5.0
    max_memory_bytes: int = 50 * MB
    max_output_bytes: int = 50 * KB

    def __post_init__(self) -> None:
        for name in ("timeout_seconds", "max_memory_bytes", "max_output_bytes"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    @classmethod
    def default(cls) -> ResourceLimits:
        return cls()

    @classmethod
    def permissive(cls) -> ResourceLimits:
        return cls(timeout_seconds=60.0, max_memory_bytes=500 * MB, max_output_bytes=1 * MB)

    def with_timeout(self, seconds: float) -> ResourceLimits:
        return replace(self, timeout_seconds=seconds)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ResourceMetrics:
    duration_ms: int = 0
    memory_bytes: int = 0
    output_bytes: int = 0

    @classmethod
    def zero(cls) -> ResourceMetrics:
        return cls()

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class IsolationStatus(StrEnum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    VIOLATION = "violation"
    ERROR = "error"


@dataclass(frozen=True)
class IsolationResult:
    """Outcome of one isolated unit of work.

    ``value`` is meaningful only for ``success``; ``error`` for every other
    status.
    """

    status: IsolationStatus
    value: Any = None
    metrics: ResourceMetrics = ResourceMetrics()
    error: BaseException | None = None

    @classmethod
    def success(cls, value: Any, metrics: ResourceMetrics) -> IsolationResult:
        return cls(IsolationStatus.SUCCESS, value=value, metrics=metrics)

    @classmethod
    def timeout(cls, error: BaseException, metrics: ResourceMetrics) -> IsolationResult:
        return cls(IsolationStatus.TIMEOUT, metrics=metrics, error=error)

    @classmethod
    def violation(cls, error: BaseException, metrics: ResourceMetrics) -> IsolationResult:
        return cls(IsolationStatus.VIOLATION, metrics=metrics, error=error)

    @classmethod
    def failure(cls, error: BaseException, metrics: ResourceMetrics) -> IsolationResult:
        return cls(IsolationStatus.ERROR, metrics=metrics, error=error)

    @property
    def is_success(self) -> bool:
        return self.status is IsolationStatus.SUCCESS

    @property
    def is_timeout(self) -> bool:
        return self.status is IsolationStatus.TIMEOUT

    @property
    def is_violation(self) -> bool:
        return self.status is IsolationStatus.VIOLATION

    @property
    def is_error(self) -> bool:
        return self.status is IsolationStatus.ERROR

    def unwrap(self) -> Any:
        """Return the value, or raise the captured error."""
        if self.is_success:
            return self.value
        raise self.error  # type: ignore[misc]
