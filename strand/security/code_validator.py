"""Static validation of model-generated code before it reaches the sandbox."""

from __future__ import annotations

import ast

from strand.errors import InterpreterError, SecurityError

FORBIDDEN_CALLS = frozenset({
    "eval", "exec", "compile", "open", "__import__", "globals", "locals", "vars",
    "getattr", "setattr", "delattr", "breakpoint", "input", "memoryview",
})

FORBIDDEN_NAMES = frozenset({
    "os", "sys", "subprocess", "socket", "shutil", "builtins", "__builtins__",
    "importlib", "ctypes", "pickle", "marshal",
})

UNCATCHABLE = frozenset({"BaseException", "SystemExit", "KeyboardInterrupt", "GeneratorExit"})

# Hooks that run while an abort unwinds, after the trace hook is gone.
UNWIND_METHODS = frozenset({"__exit__", "__aexit__", "__del__"})


class CodeValidator:
    """Reject code that reaches for process, file or interpreter internals.

    This runs before RestrictedPython compiles the code, so violations are
    reported with the construct that caused them instead of a generic
    compile failure.
    """

    def __init__(self, authorized_imports: list[str] | None = None) -> None:
        self.authorized_imports = set(authorized_imports or [])

    def parse(self, code: str) -> ast.Module:
        try:
            return ast.parse(code, mode="exec")
        except SyntaxError as e:
            raise InterpreterError(f"Syntax error: {e.msg} (line {e.lineno})", e) from e

    def validate(self, code: str) -> ast.Module:
        tree = self.parse(code)
        for node in ast.walk(tree):
            self._check(node)
        return tree

    def _check(self, node: ast.AST) -> None:
        if isinstance(node, ast.Import):
            for alias in node.names:
                self._check_import(alias.name)
        elif isinstance(node, ast.ImportFrom):
            if node.level:
                raise SecurityError("Relative imports are not allowed", "import")
            self._check_import(node.module or "")
        elif isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
            if node.func.id in FORBIDDEN_CALLS:
                raise SecurityError(f"Call to '{node.func.id}' is not allowed", node.func.id)
        elif isinstance(node, ast.Name):
            if node.id in FORBIDDEN_NAMES and node.id not in self.authorized_imports:
                raise SecurityError(f"Access to '{node.id}' is not allowed", node.id)
        elif isinstance(node, ast.Attribute):
            if node.attr.startswith("__") and node.attr.endswith("__"):
                raise SecurityError(f"Access to dunder attribute '{node.attr}' is not allowed", node.attr)
        elif isinstance(node, ast.ExceptHandler):
            # The operation limiter aborts with a BaseException; code must not catch it.
            caught = self._handler_names(node.type)
            if node.type is None or caught & UNCATCHABLE:
                raise SecurityError("Catching BaseException (or a bare except) is not allowed", "except")
        elif isinstance(node, (ast.Try, ast.TryStar)) and node.finalbody:
            raise SecurityError("finally blocks are not allowed", "finally")
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.name in UNWIND_METHODS:
            raise SecurityError(f"Defining '{node.name}' is not allowed", node.name)

    @staticmethod
    def _handler_names(node: ast.expr | None) -> set[str]:
        if node is None:
            return set()
        if isinstance(node, ast.Tuple):
            return {elt.id for elt in node.elts if isinstance(elt, ast.Name)}
        if isinstance(node, ast.Name):
            return {node.id}
        return set()

    def _check_import(self, module: str) -> None:
        root = module.split(".")[0]
        if root not in self.authorized_imports:
            raise SecurityError(f"Import of '{module}' is not allowed", module)
