import pytest

from strand.agent.reflection import (
    FALLBACK_REFLECTION,
    Reflection,
    ReflectionStore,
    reflect_on_error,
)
from strand.core.message import ToolCall
from strand.core.steps import ActionStep, Timing


@pytest.mark.parametrize(
    "error, expected",
    [
        ("NameError: Undefined name 'total' in sandbox", "Define total before using it"),
        ("AttributeError: 'list' object has no attribute 'push'", "Attribute push doesn't exist"),
        ("TypeError: f() takes 2 positional arguments but 3 were given", "Check the function signature"),
        ("TypeError: can only concatenate str (not \"int\") to str", "Add explicit type conversion"),
        ("InterpreterError: Syntax error: invalid syntax (line 1)", "Check brackets"),
        ("ToolNotFoundError: Undefined method 'fly' in sandbox", "Use only available tools"),
        ("Execution timed out after 5s", "Simplify the approach"),
        ("ZeroDivisionError: division by zero", FALLBACK_REFLECTION),
    ],
)
def test_reflect_on_error(error, expected):
    assert reflect_on_error(error).startswith(expected)


def action(error=None, tools=()):
    return ActionStep(
        step_number=1,
        timing=Timing.start_now(),
        error=error,
        tool_calls=tuple(ToolCall(name=t) for t in tools),
    )


class TestReflection:
    """测试反思记录"""

    def test_from_failure(self):
        reflection = Reflection.from_failure("count words", action(error="NameError: name 'n' is not defined"))
        assert reflection.failed
        assert reflection.reflection_text == "Define n before using it, or check spelling"
        assert reflection.step_snapshot["error"].startswith("NameError")

    def test_from_success_names_tools(self):
        reflection = Reflection.from_success("find weather", action(tools=("web_search",)))
        assert not reflection.failed
        assert "web_search" in reflection.reflection_text


class TestReflectionStore:
    """测试反思存储"""

    def test_capacity(self):
        store = ReflectionStore(max_size=2)
        for i in range(3):
            store.add(Reflection.from_failure(f"task {i}", action(error="x")))
        assert len(store) == 2

    def test_relevant_ranks_by_overlap_then_failure(self):
        store = ReflectionStore()
        store.add(Reflection.from_failure("parse the csv file", action(error="x")))
        store.add(Reflection.from_success("parse json", action(tools=("reader",))))
        store.add(Reflection.from_failure("parse json", action(error="timeout")))
        store.add(Reflection.from_failure("draw a chart", action(error="x")))

        relevant = store.relevant("parse json payload")

        assert [r.task for r in relevant] == ["parse json", "parse json", "parse the csv file"]
        assert relevant[0].failed

    def test_format_for_prompt(self):
        store = ReflectionStore()
        assert store.format_for_prompt("anything") == ""

        store.add(Reflection.from_failure("sum numbers", action(error="timed out")))
        text = store.format_for_prompt("sum the numbers")
        assert text.startswith("Lessons from previous attempts:")
        assert "[failure] Simplify the approach" in text

        store.clear()
        assert len(store) == 0
