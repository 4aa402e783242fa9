"""
Tool Unit Tests

测试函数工具的 schema 生成、参数校验与最终答案信号
"""

import pytest

from strand.errors import FinalAnswerSignal, ToolExecutionError
from strand.tools.base import FinalAnswerTool, FunctionTool, is_retrieval_tool, tool


@tool
def multiply(x: int, y: int = 2) -> int:
    """Multiply two integers."""
    return x * y


class TestFunctionTool:
    """测试 FunctionTool"""

    def test_metadata(self):
        assert multiply.name == "multiply"
        assert multiply.description == "Multiply two integers."
        assert multiply.input_names == ["x", "y"]

    def test_openai_schema(self):
        schema = multiply.get_openai_schema()
        assert schema["type"] == "function"
        assert schema["function"]["name"] == "multiply"
        parameters = schema["function"]["parameters"]
        assert parameters["required"] == ["x"]
        assert parameters["properties"]["x"]["type"] == "integer"

    def test_keyword_and_positional(self):
        assert multiply(x=3, y=4) == 12
        assert multiply(3) == 6
        assert multiply(3, y=5) == 15
        assert multiply({"x": 2, "y": 7}) == 14

    def test_arguments_are_validated(self):
        assert multiply(x="4") == 8
        with pytest.raises(ToolExecutionError) as exc_info:
            multiply(x="four")
        assert exc_info.value.tool_name == "multiply"
        assert "Invalid arguments for multiply" in exc_info.value.message

    def test_too_many_positional(self):
        with pytest.raises(ToolExecutionError, match="takes 2 arguments but 3 were given"):
            multiply(1, 2, 3)

    def test_to_prompt(self):
        assert multiply.to_prompt() == "multiply(x: int, y: int) - Multiply two integers."

    def test_custom_name(self):
        def echo(query: str) -> str:
            return query

        renamed = FunctionTool(echo, name="lookup", description="Look things up")
        assert renamed.name == "lookup"
        assert renamed(query="q") == "q"


class TestFinalAnswerTool:
    """测试最终答案工具"""

    def test_raises_signal(self):
        with pytest.raises(FinalAnswerSignal) as exc_info:
            FinalAnswerTool()(answer={"value": 1})
        assert exc_info.value.value == {"value": 1}

    def test_positional(self):
        with pytest.raises(FinalAnswerSignal) as exc_info:
            FinalAnswerTool()(42)
        assert exc_info.value.value == 42


@pytest.mark.parametrize(
    "name, expected",
    [
        ("web_search", True),
        ("fetch_page", True),
        ("WikipediaLookup", True),
        ("sql_query", True),
        ("add", False),
        ("final_answer", False),
    ],
)
def test_is_retrieval_tool(name, expected):
    assert is_retrieval_tool(name) is expected
