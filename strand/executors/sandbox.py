"""
Sandbox - 受限代码执行环境

沙箱只持有显式授予的能力：工具表、变量表和输出缓冲。
名称解析顺序固定：工具 → 变量 → 安全方法；其余一律报 "not found"。

执行使用 RestrictedPython 编译，并在一个只包含 safe_builtins 与守卫函数的
全局字典中运行，文件、进程和网络相关的内建函数在结构上不可达。
"""

from __future__ import annotations

import operator
import random
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Callable

from RestrictedPython import safe_builtins
from RestrictedPython.Eval import default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)

from strand.errors import ToolNotFoundError
from strand.security.code_validator import UNCATCHABLE

SAFE_METHODS = ("print", "puts", "rand", "tools", "variables", "help", "defer")

_EXTRA_BUILTINS = {
    "list": list,
    "dict": dict,
    "set": set,
    "frozenset": frozenset,
    "enumerate": enumerate,
    "reversed": reversed,
    "map": map,
    "filter": filter,
    "any": any,
    "all": all,
    "sum": sum,
    "min": min,
    "max": max,
    "format": format,
}

_INPLACE_OPS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "<<=": operator.ilshift,
    ">>=": operator.irshift,
    "&=": operator.iand,
    "|=": operator.ior,
    "^=": operator.ixor,
}


def _inplacevar(op: str, x: Any, y: Any) -> Any:
    fn = _INPLACE_OPS.get(op)
    if fn is None:
        raise SyntaxError(f"Unsupported in-place operator: {op}")
    return fn(x, y)


def _guarded_getitem(obj: Any, key: Any) -> Any:
    return obj[key]


def _apply(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    return fn(*args, **kwargs)


class OutputBuffer:
    """Collects sandbox print output, capped at ``max_bytes``."""

    def __init__(self, max_bytes: int = 50_000) -> None:
        self.max_bytes = max_bytes
        self._parts: list[str] = []
        self._size = 0
        self.truncated = False

    def write(self, text: str) -> None:
        if self.truncated:
            return
        size = len(text.encode("utf-8"))
        if self._size + size > self.max_bytes:
            remaining = max(0, self.max_bytes - self._size)
            self._parts.append(text.encode("utf-8")[:remaining].decode("utf-8", errors="ignore"))
            self._parts.append("\n... (output truncated)")
            self.truncated = True
            return
        self._parts.append(text)
        self._size += size

    def getvalue(self) -> str:
        return "".join(self._parts)

    def clear(self) -> None:
        self._parts = []
        self._size = 0
        self.truncated = False


class _PrintCollector:
    """Target of RestrictedPython's rewritten ``print`` calls."""

    def __init__(self, sink: OutputBuffer) -> None:
        self._sink = sink

    def _call_print(self, *objects: Any, sep: str = " ", end: str = "\n", **_: Any) -> None:
        self._sink.write(sep.join(str(o) for o in objects) + end)

    def write(self, text: str) -> None:
        self._sink.write(text)


class ResolutionKind(StrEnum):
    TOOL = "tool"
    VARIABLE = "variable"
    SAFE_METHOD = "safe_method"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Resolution:
    kind: ResolutionKind
    target: Any = None

    @property
    def found(self) -> bool:
        return self.kind is not ResolutionKind.NOT_FOUND


class Sandbox:
    """Capability-scoped execution context for model-written code.

    Executed code reaches tools, variables and safe methods as plain globals
    built by ``build_globals``. ``resolve`` is the lookup used by ``help`` and
    ``defer`` to check names; ``dispatch`` applies the same order to a call by
    name and is the inspection entry point for hosts and tests.
    """

    def __init__(
        self,
        tools: dict[str, Callable[..., Any]] | None = None,
        variables: dict[str, Any] | None = None,
        output: OutputBuffer | None = None,
        on_tool_call: Callable[[str], None] | None = None,
        defer: Callable[..., Any] | None = None,
        authorized_imports: list[str] | None = None,
    ) -> None:
        self.tools = dict(tools or {})
        self.variables = dict(variables or {})
        self.output = output or OutputBuffer()
        self._on_tool_call = on_tool_call
        self._defer = defer
        self.authorized_imports = list(authorized_imports or [])
        self._safe_methods: dict[str, Callable[..., Any]] = {
            "print": self._print,
            "puts": self._puts,
            "rand": self._rand,
            "tools": self._list_tools,
            "variables": self._list_variables,
            "help": self._help,
        }
        if defer is not None:
            self._safe_methods["defer"] = defer

    # -- dispatch ----------------------------------------------------------

    def resolve(self, name: str) -> Resolution:
        if name in self.tools:
            return Resolution(ResolutionKind.TOOL, self.tools[name])
        if name in self.variables:
            return Resolution(ResolutionKind.VARIABLE, self.variables[name])
        if name in self._safe_methods:
            return Resolution(ResolutionKind.SAFE_METHOD, self._safe_methods[name])
        return Resolution(ResolutionKind.NOT_FOUND)

    def dispatch(self, name: str, *args: Any, **kwargs: Any) -> Any:
        resolution = self.resolve(name)
        if resolution.kind is ResolutionKind.TOOL:
            return self.call_tool(name, *args, **kwargs)
        if resolution.kind is ResolutionKind.VARIABLE:
            return resolution.target
        if resolution.kind is ResolutionKind.SAFE_METHOD:
            return resolution.target(*args, **kwargs)
        raise ToolNotFoundError(name, f"Undefined method '{name}' in sandbox")

    def call_tool(self, name: str, *args: Any, **kwargs: Any) -> Any:
        if self._on_tool_call is not None:
            self._on_tool_call(name)
        return self.tools[name](*args, **kwargs)

    def _tool_proxy(self, name: str) -> Callable[..., Any]:
        def proxy(*args: Any, **kwargs: Any) -> Any:
            return self.call_tool(name, *args, **kwargs)

        proxy.__name__ = name
        proxy.__doc__ = getattr(self.tools[name], "description", None)
        return proxy

    # -- safe methods ------------------------------------------------------

    def _print(self, *objects: Any, sep: str = " ", end: str = "\n") -> None:
        self.output.write(sep.join(str(o) for o in objects) + end)

    def _puts(self, *objects: Any) -> None:
        for obj in objects or ("",):
            self.output.write(f"{obj}\n")

    def _rand(self, n: int | float | None = None) -> int | float:
        if n is None:
            return random.random()
        if isinstance(n, int):
            return random.randrange(n)
        return random.uniform(0, n)

    def _list_tools(self) -> list[str]:
        return sorted(self.tools)

    def _list_variables(self) -> list[str]:
        return sorted(self.variables)

    def _help(self, name: str | None = None) -> str:
        if name is None:
            return "\n".join(self._describe(n) for n in sorted(self.tools))
        if self.resolve(name).kind is not ResolutionKind.TOOL:
            raise ToolNotFoundError(name, f"Undefined method '{name}' in sandbox")
        return self._describe(name)

    def _describe(self, name: str) -> str:
        tool = self.tools[name]
        to_prompt = getattr(tool, "to_prompt", None)
        return to_prompt() if callable(to_prompt) else name

    # -- globals -----------------------------------------------------------

    def _guarded_import(self, name: str, globals=None, locals=None, fromlist=(), level=0):
        if name.split(".")[0] in self.authorized_imports:
            return __import__(name, globals, locals, fromlist, level)
        raise ImportError(f"Import of '{name}' is not allowed")

    def build_globals(self) -> dict[str, Any]:
        """Globals dict for ``exec``: safe methods < variables < tools."""
        builtins = dict(safe_builtins)
        builtins.update(_EXTRA_BUILTINS)
        for name in UNCATCHABLE:
            builtins.pop(name, None)
        builtins["__import__"] = self._guarded_import

        collector = _PrintCollector(self.output)
        namespace: dict[str, Any] = {
            "__builtins__": builtins,
            "__name__": "sandbox",
            "__metaclass__": type,
            "_getiter_": default_guarded_getiter,
            "_getitem_": _guarded_getitem,
            "_getattr_": safer_getattr,
            "_write_": full_write_guard,
            "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
            "_unpack_sequence_": guarded_unpack_sequence,
            "_inplacevar_": _inplacevar,
            "_apply_": _apply,
            "_print_": lambda _getattr=None: collector,
        }
        namespace.update({k: v for k, v in self._safe_methods.items() if k != "print"})
        namespace.update(self.variables)
        namespace.update({name: self._tool_proxy(name) for name in self.tools})
        return namespace

    def reserved_names(self) -> set[str]:
        return set(self.tools) | set(self._safe_methods)
