"""
Planning Unit Tests

测试计划上下文、规划时机与提示构造
"""

from conftest import ScriptedModel
from strand.agent.planning import Planner, PlanContext, PlanState, extract_tool_mentions
from strand.core.memory import AgentMemory
from strand.core.message import ToolCall
from strand.core.steps import ActionStep, Timing


class Described:
    def __init__(self, description):
        self.description = description


TOOLS = {"web_search": Described("Search the web"), "add": Described("Add numbers")}


class TestPlanContext:
    """测试计划上下文"""

    def test_extract_tool_mentions(self):
        mentions = extract_tool_mentions("1. Use WEB_SEARCH\n2. Answer", ["web_search", "add"])
        assert mentions == frozenset({"web_search"})

    def test_initial_and_update(self):
        context = PlanContext.initial("1. add", ["add"])
        assert context.state is PlanState.INITIAL
        assert context.created_at_step == 0

        updated = context.update("1. web_search", 4, ["add", "web_search"])
        assert updated.state is PlanState.ACTIVE
        assert updated.created_at_step == 4
        assert updated.tools_mentioned == frozenset({"web_search"})
        assert context.plan == "1. add"

    def test_uninitialized(self):
        assert not PlanContext().initialized
        assert not PlanContext().mentions("add")


class TestPlanner:
    """测试 Planner"""

    def test_due(self):
        planner = Planner(ScriptedModel(), TOOLS, interval=3)
        assert planner.due(1)

        planner.context = PlanContext.initial("plan", [])
        assert not planner.due(1)
        assert planner.due(3)
        assert planner.due(6)

    def test_disabled_is_never_due(self):
        assert not Planner(ScriptedModel(), TOOLS, interval=None).due(1)

    def test_initial_plan(self):
        model = ScriptedModel(["  1. web_search for facts\n2. final_answer  "])
        planner = Planner(model, TOOLS, interval=2)
        memory = AgentMemory("system", "Find the tallest tower")

        step = planner.plan(memory, 1)

        assert step.plan == "1. web_search for facts\n2. final_answer"
        assert planner.context.state is PlanState.INITIAL
        assert planner.context.tools_mentioned == frozenset({"web_search"})
        prompt = model.calls[0][0][1].content
        assert "Task: Find the tallest tower" in prompt
        assert "- web_search: Search the web" in prompt

    def test_update_plan(self):
        model = ScriptedModel(["1. add", "1. add\n2. answer"])
        planner = Planner(model, TOOLS, interval=2)
        memory = AgentMemory("system", "Sum things")
        planner.plan(memory, 1)
        memory.add_step(
            ActionStep(
                step_number=1,
                timing=Timing.start_now(),
                tool_calls=(ToolCall(name="add"),),
                observations="[add] 5",
            )
        )

        step = planner.plan(memory, 2)

        assert planner.context.state is PlanState.ACTIVE
        assert planner.context.created_at_step == 2
        assert step.token_usage is not None
        prompt = model.calls[1][0][1].content
        assert prompt.startswith("Review your progress")
        assert "Step 1: add (ok)" in prompt
        assert "[add] 5" in prompt
        assert "Current plan:\n1. add" in prompt
