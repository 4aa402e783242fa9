"""Tool interface used by the loop and the sandbox."""

from strand.tools.base import (
    RETRIEVAL_TOOL_FRAGMENTS,
    BaseTool,
    FinalAnswerTool,
    FunctionTool,
    is_retrieval_tool,
    tool,
)

__all__ = [
    "RETRIEVAL_TOOL_FRAGMENTS",
    "BaseTool",
    "FinalAnswerTool",
    "FunctionTool",
    "is_retrieval_tool",
    "tool",
]
