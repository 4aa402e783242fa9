"""
Execution Oracle Unit Tests

测试错误归类、修正建议与置信度
"""

import pytest

from strand.agent.execution_oracle import ErrorCategory, ExecutionOracle
from strand.core.steps import ActionStep, Timing


@pytest.fixture
def oracle():
    return ExecutionOracle()


class TestClassification:
    """测试错误归类"""

    @pytest.mark.parametrize(
        "error, category",
        [
            ("InterpreterError: Syntax error: invalid syntax (line 3)", ErrorCategory.SYNTAX),
            ("NameError: Undefined name 'totl' in sandbox", ErrorCategory.NAME),
            ("AttributeError: 'list' object has no attribute 'push'", ErrorCategory.NO_METHOD),
            ('TypeError: can only concatenate str (not "int") to str', ErrorCategory.TYPE),
            ("ToolExecutionError: add takes 2 arguments but 3 were given", ErrorCategory.ARGUMENT),
            ('ToolNotFoundError: Tool "lookup" not found. Available: add', ErrorCategory.TOOL),
            ("ToolNotFoundError: Undefined method 'lookup' in sandbox", ErrorCategory.TOOL),
            ("Execution timed out after 30s", ErrorCategory.TIMEOUT),
            ("InterpreterError: Operation limit exceeded: 1000", ErrorCategory.OPERATION_LIMIT),
            ("ZeroDivisionError: division by zero", ErrorCategory.RUNTIME),
        ],
    )
    def test_categories(self, oracle, error, category):
        assert oracle.analyze(error).category is category

    def test_success(self, oracle):
        feedback = oracle.analyze(None, output=42)
        assert feedback.success
        assert not feedback.actionable
        assert feedback.confidence == 1.0
        assert feedback.to_observation() == "Execution successful."


class TestSuggestions:
    """测试修正建议与置信度"""

    def test_name_error_suggests_similar_identifier(self, oracle):
        code = "total = add(1, 2)\nprint(totl)"
        feedback = oracle.analyze("NameError: Undefined name 'totl' in sandbox", code)

        assert feedback.details == {"undefined_name": "totl"}
        assert feedback.suggestion == "Did you mean: total?"
        assert feedback.confidence == 0.85
        assert feedback.actionable

    def test_name_error_without_code(self, oracle):
        feedback = oracle.analyze("NameError: Undefined name 'x' in sandbox")
        assert feedback.suggestion == "Define 'x' before using it, or check spelling."

    def test_type_error_details(self, oracle):
        feedback = oracle.analyze("TypeError: unsupported operand type(s) for +: 'int' and 'str'")
        assert feedback.details == {"from_type": "str", "to_type": "int"}
        assert feedback.confidence == 0.8

    def test_argument_error(self, oracle):
        feedback = oracle.analyze("TypeError: f() takes 1 positional argument but 2 were given")
        assert feedback.category is ErrorCategory.ARGUMENT
        assert feedback.suggestion == "Pass 1 argument(s) instead of 2."
        assert feedback.confidence == 0.9

    def test_tool_error_needs_new_approach(self, oracle):
        feedback = oracle.analyze('ToolNotFoundError: Tool "lookup" not found. Available: add')
        assert feedback.details == {"tool_name": "lookup"}
        assert feedback.confidence == 0.95
        assert feedback.needs_new_approach

    def test_runtime_error_is_not_actionable(self, oracle):
        feedback = oracle.analyze("ZeroDivisionError: division by zero")
        assert feedback.suggestion
        assert feedback.confidence == 0.5
        assert not feedback.actionable

    def test_observation_includes_line_and_fix(self, oracle):
        feedback = oracle.analyze("InterpreterError: Syntax error: invalid syntax (line 3)")
        assert feedback.line == 3
        assert feedback.to_observation().splitlines() == [
            "Error [syntax_error]: InterpreterError: Syntax error: invalid syntax (line 3)",
            "Location: line 3",
            "Fix: Check brackets, quotes, colons and indentation.",
        ]

    def test_analyze_step(self, oracle):
        step = ActionStep(
            step_number=1,
            timing=Timing.start_now(),
            code_action="value = 1\nvalu + 1",
            error="NameError: Undefined name 'valu' in sandbox",
        )
        assert oracle.analyze_step(step).suggestion == "Did you mean: value?"
