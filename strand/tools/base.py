import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, get_type_hints

from pydantic import BaseModel, ValidationError, create_model

from strand.errors import FinalAnswerSignal, ToolExecutionError

# Name fragments that identify tools fetching external data. A final answer
# may not be given in the same action as one of these.
RETRIEVAL_TOOL_FRAGMENTS = (
    "search", "web", "fetch", "wikipedia", "http", "api", "query",
    "duckduckgo", "google", "bing", "searxng",
)


def is_retrieval_tool(name: str) -> bool:
    lowered = name.lower()
    return any(fragment in lowered for fragment in RETRIEVAL_TOOL_FRAGMENTS)


class BaseTool(ABC):
    """
    Base class for Tools.

    Philosophy:
    - Tool is a plain callable: the sandbox calls it by name with keyword args
    - Input: validated against ``args_schema``
    - Output: any value (the loop stringifies it for observations)
    """

    name: str
    description: str
    args_schema: type[BaseModel]

    # Orchestration hints
    is_read_only: bool = False

    @abstractmethod
    def forward(self, **kwargs: Any) -> Any:
        """Execute the tool."""
        ...

    @property
    def input_names(self) -> list[str]:
        return list(self.args_schema.model_fields)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        if len(args) == 1 and not kwargs and isinstance(args[0], dict):
            kwargs = dict(args[0])
        elif args:
            names = self.input_names
            if len(args) > len(names):
                raise ToolExecutionError(
                    self.name, f"{self.name}() takes {len(names)} arguments but {len(args)} were given"
                )
            kwargs = {**dict(zip(names, args)), **kwargs}
        try:
            validated = self.args_schema(**kwargs)
        except ValidationError as e:
            raise ToolExecutionError(self.name, f"Invalid arguments for {self.name}: {e}", e) from e
        return self.forward(**{k: getattr(validated, k) for k in self.input_names})

    def to_prompt(self) -> str:
        params = ", ".join(
            f"{name}: {getattr(field.annotation, '__name__', field.annotation)}"
            for name, field in self.args_schema.model_fields.items()
        )
        return f"{self.name}({params}) - {self.description}"

    def get_openai_schema(self) -> dict[str, Any]:
        """Generate OpenAI Function Calling format schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.args_schema.model_json_schema(),
            },
        }


class FunctionTool(BaseTool):
    """
    Wraps a plain Python function as a Tool.

    Example:
        @tool
        def web_search(query: str, max_results: int = 10) -> str:
            '''Search the web'''
            return f"Results for {query}"
    """

    def __init__(self, func: Callable, name: str | None = None, description: str | None = None):
        self.func = func
        self.name = name or func.__name__
        self.description = description or (func.__doc__ or "").strip()
        self.args_schema = self._create_schema_from_function(func)

    @staticmethod
    def _create_schema_from_function(func: Callable) -> type[BaseModel]:
        sig = inspect.signature(func)
        hints = get_type_hints(func)

        fields: dict[str, Any] = {}
        for param_name, param in sig.parameters.items():
            if param_name == "self":
                continue
            param_type = hints.get(param_name, Any)
            default = param.default if param.default is not inspect.Parameter.empty else ...
            fields[param_name] = (param_type, default)

        return create_model(f"{func.__name__}_Schema", **fields)

    def forward(self, **kwargs: Any) -> Any:
        return self.func(**kwargs)

    @classmethod
    def from_function(cls, func: Callable) -> "FunctionTool":
        return cls(func)


def tool(func: Callable) -> FunctionTool:
    """Decorator form of ``FunctionTool.from_function``."""
    return FunctionTool.from_function(func)


class _FinalAnswerArgs(BaseModel):
    answer: Any


class FinalAnswerTool(BaseTool):
    """Ends the run. Raising, not returning, lets it escape sandboxed code."""

    name = "final_answer"
    description = "Provides the final answer to the task."
    args_schema = _FinalAnswerArgs

    def forward(self, answer: Any) -> Any:
        raise FinalAnswerSignal(answer)
