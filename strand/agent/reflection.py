"""Reflections: short lessons drawn from failed (and optionally successful) steps."""

from __future__ import annotations

import re
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from strand.core.steps import ActionStep

FALLBACK_REFLECTION = "Avoid this approach - try something different"
SUCCESS_REFLECTION = "This approach worked - consider reusing"

ERROR_PATTERNS: list[tuple[re.Pattern[str], Callable[[re.Match[str]], str]]] = [
    (
        re.compile(r"(?:NameError|Undefined name) '?(\w+)'?|name '(\w+)' is not defined"),
        lambda m: f"Define {m.group(1) or m.group(2)} before using it, or check spelling",
    ),
    (
        re.compile(r"has no attribute '(\w+)'"),
        lambda m: f"Attribute {m.group(1)} doesn't exist - use a different approach",
    ),
    (
        re.compile(r"takes \d+ (?:positional )?arguments? but \d+ (?:were|was) given|missing \d+ required"),
        lambda m: "Check the function signature and pass the correct number of arguments",
    ),
    (
        re.compile(r"can only concatenate|unsupported operand type|must be str, not|invalid literal for"),
        lambda m: "Add explicit type conversion (str(), int(), float())",
    ),
    (
        re.compile(r"SyntaxError|Syntax error|invalid syntax", re.IGNORECASE),
        lambda m: "Check brackets, quotes, colons and indentation",
    ),
    (
        re.compile(r"Tool.*not found|Undefined method", re.IGNORECASE),
        lambda m: "Use only available tools - list them first if unsure",
    ),
    (
        re.compile(r"timeout|timed out", re.IGNORECASE),
        lambda m: "Simplify the approach or break into smaller steps",
    ),
]


def reflect_on_error(error_text: str) -> str:
    for pattern, advice in ERROR_PATTERNS:
        match = pattern.search(error_text)
        if match:
            return advice(match)
    return FALLBACK_REFLECTION


@dataclass(frozen=True)
class Reflection:
    task: str
    step_snapshot: dict
    reflection_text: str
    outcome: str  # "failure" | "success"
    created_at: float = field(default_factory=time.time)

    @classmethod
    def from_failure(cls, task: str, step: ActionStep) -> Reflection:
        return cls(task, step.to_dict(), reflect_on_error(step.error or ""), "failure")

    @classmethod
    def from_success(cls, task: str, step: ActionStep) -> Reflection:
        tools = ", ".join(step.tool_names)
        text = f"{SUCCESS_REFLECTION} ({tools})" if tools else SUCCESS_REFLECTION
        return cls(task, step.to_dict(), text, "success")

    @property
    def failed(self) -> bool:
        return self.outcome == "failure"


_WORD = re.compile(r"[a-z0-9]+")


def _words(text: str) -> set[str]:
    return {w for w in _WORD.findall(text.lower()) if len(w) > 2}


class ReflectionStore:
    """Bounded store; lookup ranks by word overlap with the new task."""

    def __init__(self, max_size: int = 50) -> None:
        self._items: deque[Reflection] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def add(self, reflection: Reflection) -> None:
        with self._lock:
            self._items.append(reflection)

    def relevant(self, task: str, limit: int = 3) -> list[Reflection]:
        words = _words(task)
        with self._lock:
            items = list(self._items)
        scored = []
        for index, item in enumerate(items):
            overlap = len(words & _words(item.task))
            if overlap:
                # failures first on ties, then most recent
                scored.append((overlap, item.failed, index, item))
        scored.sort(key=lambda s: (s[0], s[1], s[2]), reverse=True)
        return [s[3] for s in scored[:limit]]

    def format_for_prompt(self, task: str, limit: int = 3) -> str:
        lessons = self.relevant(task, limit)
        if not lessons:
            return ""
        lines = [f"- [{r.outcome}] {r.reflection_text}" for r in lessons]
        return "Lessons from previous attempts:\n" + "\n".join(lines)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        return len(self._items)
