"""Structured error hierarchy and control-flow signals."""

from __future__ import annotations


class StrandError(Exception):
    def __init__(self, code: str, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.cause = cause

    @classmethod
    def wrap(cls, err: Exception) -> StrandError:
        if isinstance(err, StrandError):
            return err
        return StrandError("UNKNOWN", str(err), err)


class InterpreterError(StrandError):
    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__("INTERPRETER_ERROR", message, cause)


class SecurityError(StrandError):
    def __init__(self, message: str, construct: str | None = None) -> None:
        super().__init__("SECURITY_VIOLATION", message)
        self.construct = construct


class ConfigurationError(StrandError):
    def __init__(self, message: str) -> None:
        super().__init__("CONFIGURATION_ERROR", message)


class ToolError(StrandError):
    def __init__(
        self, code: str, tool_name: str, message: str, cause: Exception | None = None
    ) -> None:
        super().__init__(code, message, cause)
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    def __init__(self, tool_name: str, message: str | None = None) -> None:
        super().__init__(
            "TOOL_NOT_FOUND", tool_name, message or f'Tool "{tool_name}" not found'
        )


class ToolExecutionError(ToolError):
    def __init__(self, tool_name: str, message: str, cause: Exception | None = None) -> None:
        super().__init__("TOOL_EXECUTION_FAILED", tool_name, message, cause)


class FinalAnswerGuardError(StrandError):
    def __init__(self, retrieval_tools: list[str]) -> None:
        names = ", ".join(retrieval_tools)
        super().__init__(
            "FINAL_ANSWER_GUARD",
            f"Cannot call final_answer in the same action as {names}: "
            "wait for the results before answering.",
        )
        self.retrieval_tools = retrieval_tools


class ModelError(StrandError):
    def __init__(
        self,
        code: str,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(code, message, cause)
        self.status_code = status_code


class ModelTimeoutError(ModelError):
    def __init__(self, timeout_seconds: float | None = None) -> None:
        detail = f" after {timeout_seconds}s" if timeout_seconds is not None else ""
        super().__init__("MODEL_TIMEOUT", f"Model call timed out{detail}", 504)
        self.timeout_seconds = timeout_seconds


class ModelConnectionError(ModelError):
    def __init__(self, message: str = "Model backend unreachable", cause: Exception | None = None) -> None:
        super().__init__("MODEL_CONNECTION", message, 503, cause)


class ModelRateLimitError(ModelError):
    def __init__(self, retry_after_ms: int | None = None) -> None:
        super().__init__("MODEL_RATE_LIMIT", "Rate limited by model backend", 429)
        self.retry_after_ms = retry_after_ms


class QueueFullError(StrandError):
    def __init__(self, depth: int, max_depth: int) -> None:
        super().__init__("QUEUE_FULL", f"Request queue full ({depth}/{max_depth})")
        self.depth = depth
        self.max_depth = max_depth


class QueueShutdownError(StrandError):
    def __init__(self) -> None:
        super().__init__("QUEUE_SHUTDOWN", "Request queue was shut down")


class IsolationTimeoutError(StrandError):
    def __init__(self, timeout_seconds: float) -> None:
        super().__init__("ISOLATION_TIMEOUT", f"Execution timed out after {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds


class ResourceViolationError(StrandError):
    def __init__(self, resource: str, used: int, limit: int) -> None:
        super().__init__(
            "RESOURCE_VIOLATION", f"{resource} limit exceeded: {used} > {limit}"
        )
        self.resource = resource
        self.used = used
        self.limit = limit


# ---------------------------------------------------------------------------
# Control-flow signals. Not errors: they are caught at the executor boundary.
# ---------------------------------------------------------------------------


class FinalAnswerSignal(Exception):
    """Raised by the final-answer tool to end a run."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Final answer: {value}")
        self.value = value


class OperationLimitAbort(BaseException):
    """Raised from the trace hook once the operation ceiling is crossed.

    Derives from BaseException so that ``except Exception`` inside sandboxed
    code cannot swallow it.
    """

    def __init__(self, limit: int) -> None:
        super().__init__(limit)
        self.limit = limit


_RETRIABLE = (ModelTimeoutError, ModelConnectionError, ModelRateLimitError, TimeoutError, ConnectionError)
_NON_RETRIABLE = (ConfigurationError, SecurityError, ToolNotFoundError)


def is_retriable(err: BaseException) -> bool:
    """Whether a backend failure may be retried from the dead letter store."""
    if isinstance(err, _NON_RETRIABLE):
        return False
    if isinstance(err, _RETRIABLE):
        return True
    if isinstance(err, ModelError) and err.status_code is not None:
        return err.status_code == 429 or err.status_code >= 500
    return False


def error_kind(err: BaseException) -> str:
    return type(err).__name__
