"""
Strand - Agent Execution Runtime
================================

If you are reading this to find your way around the runtime, start here.

## Mental Model

An `Agent` runs a ReAct loop: think (model call) → act (tools or code) → observe.
Each iteration produces one immutable step; the ordered steps are the agent's memory.

## Developer Map

### 1. The Loop (`strand.agent`)
- **Agent**: the step state machine (`from strand import Agent`).
- **Planning / Divergence / Evaluation / Reflection / Refinement**: optional checkpoints.
- **Early yield**: parallel tool calls that return as soon as one result is good enough.

### 2. Execution (`strand.executors`, `strand.isolation`)
- **LocalExecutor**: RestrictedPython sandbox with an operation limit.
- **ContainerExecutor**: hardened `docker run` per execution.
- **ThreadExecutor**: time, memory and output limits around any callable.

### 3. Model plumbing (`strand.models`)
- **QueuedModel / RequestQueue**: one-at-a-time model calls with priorities.
- **DeadLetterStore**: failed requests kept for inspection and retry.

## Quick Start

```python
from strand import Agent, LocalExecutor, tool

@tool
def add(a: int, b: int) -> int:
    \"\"\"Add two numbers.\"\"\"
    return a + b

agent = Agent(model=my_model, tools=[add], executor=LocalExecutor())
result = agent.run("What is 2 + 3?")
print(result.state, result.output)
```
"""

from strand.agent import Agent, RunResult, RunState
from strand.config import AgentConfig, ContainerConfig, QueueConfig, SandboxConfig
from strand.core import AgentMemory, AssistantMessage, ToolCall, UserMessage
from strand.events import EventBus
from strand.executors import ContainerExecutor, ExecutionResult, LocalExecutor
from strand.isolation import IsolationResult, ResourceLimits, ThreadExecutor
from strand.models import DeadLetterStore, QueuedModel, RequestQueue
from strand.tools import BaseTool, FinalAnswerTool, FunctionTool, tool

__version__ = "0.3.0"

__all__ = [
    "Agent",
    "RunResult",
    "RunState",
    "AgentConfig",
    "ContainerConfig",
    "QueueConfig",
    "SandboxConfig",
    "AgentMemory",
    "AssistantMessage",
    "ToolCall",
    "UserMessage",
    "EventBus",
    "ContainerExecutor",
    "ExecutionResult",
    "LocalExecutor",
    "IsolationResult",
    "ResourceLimits",
    "ThreadExecutor",
    "DeadLetterStore",
    "QueuedModel",
    "RequestQueue",
    "BaseTool",
    "FinalAnswerTool",
    "FunctionTool",
    "tool",
]
