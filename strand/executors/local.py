"""
LocalExecutor - 进程内受限代码执行

执行流程：
1. 静态校验（不安全代码在执行前直接抛出 SecurityError）
2. 清空未决 future 与本次执行的工具调用记录
3. RestrictedPython 编译，并在操作计数器下执行
4. 捕获 print 输出、处理最终答案信号、脱敏错误信息
"""

from __future__ import annotations

import ast
import logging
from typing import Any

from RestrictedPython import compile_restricted

from strand.config.models import SandboxConfig
from strand.errors import (
    FinalAnswerGuardError,
    FinalAnswerSignal,
    InterpreterError,
    StrandError,
    ToolNotFoundError,
)
from strand.executors.base import ExecutionResult, Executor
from strand.executors.operation_limiter import SANDBOX_FILENAME, OperationLimiter
from strand.executors.sandbox import OutputBuffer, ResolutionKind, Sandbox
from strand.executors.tool_future import FutureBatch, ToolFuture
from strand.security.code_validator import CodeValidator
from strand.security.secret_redactor import redact_string
from strand.tools.base import FinalAnswerTool, is_retrieval_tool

logger = logging.getLogger(__name__)

RESULT_NAME = "result"


def assign_last_expression(tree: ast.Module) -> tuple[ast.Module, bool]:
    """Rewrite a trailing expression statement into ``result = <expr>``."""
    if not tree.body or not isinstance(tree.body[-1], ast.Expr):
        return tree, False
    last = tree.body[-1]
    assign = ast.Assign(targets=[ast.Name(id=RESULT_NAME, ctx=ast.Store())], value=last.value)
    tree.body[-1] = ast.copy_location(assign, last)
    ast.fix_missing_locations(tree)
    return tree, True


class LocalExecutor(Executor):
    """Runs Python code in a RestrictedPython sandbox in the current process."""

    def __init__(
        self,
        tools: dict[str, Any] | None = None,
        variables: dict[str, Any] | None = None,
        config: SandboxConfig | None = None,
    ) -> None:
        self.config = config or SandboxConfig()
        self.validator = CodeValidator(self.config.authorized_imports)
        self.tools: dict[str, Any] = {"final_answer": FinalAnswerTool()}
        self.tools.update(tools or {})
        self.state: dict[str, Any] = dict(variables or {})
        self.futures = FutureBatch()
        self._called_tools: list[str] = []

    def send_tools(self, tools: dict[str, Any]) -> None:
        self.tools.update(tools)

    def send_variables(self, variables: dict[str, Any]) -> None:
        self.state.update(variables)

    @property
    def called_tools(self) -> list[str]:
        """Tools called during the most recent execution."""
        return list(self._called_tools)

    # ------------------------------------------------------------------

    def execute(self, code: str) -> ExecutionResult:
        output = OutputBuffer(self.config.max_output_bytes)
        try:
            tree = self.validator.validate(code)
        except InterpreterError as e:
            return ExecutionResult.failed(self._format_error(e), output.getvalue())

        self.futures.clear()
        self._called_tools = []

        sandbox = Sandbox(
            tools=self.tools,
            variables=self.state,
            output=output,
            on_tool_call=self._called_tools.append,
            defer=lambda name, **kwargs: self._defer(sandbox, name, **kwargs),
            authorized_imports=self.config.authorized_imports,
        )
        tree, has_result = assign_last_expression(tree)
        try:
            byte_code = compile_restricted(ast.unparse(tree), filename=SANDBOX_FILENAME, mode="exec")
        except SyntaxError as e:
            return ExecutionResult.failed(self._format_error(InterpreterError(str(e))), output.getvalue())

        namespace = sandbox.build_globals()
        limiter = OperationLimiter(self.config.max_operations, self.config.granularity)
        try:
            limiter.run(lambda: exec(byte_code, namespace))
        except FinalAnswerSignal as signal:
            return self._final_answer(signal.value, output)
        except Exception as e:
            return ExecutionResult.failed(self._format_error(e), output.getvalue())
        finally:
            self._persist_state(namespace, sandbox)

        value = namespace.get(RESULT_NAME) if has_result else None
        if isinstance(value, ToolFuture):
            self.futures.flush()
            try:
                value = value.result()
            except FinalAnswerSignal as signal:
                return self._final_answer(signal.value, output)
            except Exception as e:
                return ExecutionResult.failed(self._format_error(e), output.getvalue())
        return ExecutionResult.ok(value, output.getvalue())

    # ------------------------------------------------------------------

    def _defer(self, sandbox: Sandbox, name: str, **kwargs: Any) -> ToolFuture:
        if sandbox.resolve(name).kind is not ResolutionKind.TOOL:
            raise ToolNotFoundError(name, f"Undefined method '{name}' in sandbox")
        return ToolFuture(name, kwargs, lambda: sandbox.call_tool(name, **kwargs), self.futures)

    def _final_answer(self, value: Any, output: OutputBuffer) -> ExecutionResult:
        retrievals = [name for name in self._called_tools if is_retrieval_tool(name)]
        if retrievals:
            guard = FinalAnswerGuardError(sorted(set(retrievals)))
            logger.debug("Rejected final answer after %s", retrievals)
            return ExecutionResult.failed(guard.message, output.getvalue())
        return ExecutionResult.ok(value, output.getvalue(), is_final_answer=True)

    def _persist_state(self, namespace: dict[str, Any], sandbox: Sandbox) -> None:
        reserved = sandbox.reserved_names()
        for key, value in namespace.items():
            if key.startswith("_") or key in reserved or key == RESULT_NAME:
                continue
            self.state[key] = value

    @staticmethod
    def _format_error(err: BaseException) -> str:
        if isinstance(err, NameError) and getattr(err, "name", None):
            text = f"NameError: Undefined name '{err.name}' in sandbox"
        elif isinstance(err, StrandError):
            text = f"{type(err).__name__}: {err.message}"
        else:
            text = f"{type(err).__name__}: {err}"
        return redact_string(text)
