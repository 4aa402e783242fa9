"""
Agent Loop Tests

用脚本化模型驱动完整的 ReAct 循环：
- 工具调用 → 最终答案
- 步数耗尽、模型异常、无动作输出
- 代码动作、评估、规划、事件、提前返回
- 循环检测与追踪 ID
"""

import threading

import pytest

from conftest import ScriptedModel, action, tool_call
from strand.agent.agent import NO_ACTION_ERROR, Agent, RunState, extract_code
from strand.agent.refinement import RefineConfig
from strand.config.models import AgentConfig
from strand.core.steps import ActionStep, FinalAnswerStep, GuidanceStep, NullStep, PlanningStep
from strand.executors.local import LocalExecutor
from strand.security.secret_redactor import REDACTED
from strand.tools.base import FunctionTool

OPENAI_KEY = "sk-" + "a1B2c3D4e5F6g7H8i9J0k1L2"


def action_steps(result):
    return [s for s in result.steps if isinstance(s, ActionStep)]


class TestExtractCode:
    """测试代码块提取"""

    def test_python_blocks_are_joined(self):
        text = "First:\n```python\nx = 1\n```\nthen\n```py\ny = x + 1\n```"
        assert extract_code(text) == "x = 1\n\ny = x + 1"

    def test_no_block(self):
        assert extract_code("just prose") is None
        assert extract_code(None) is None
        assert extract_code("```python\n\n```") is None


class TestRunOutcomes:
    """测试运行结果状态"""

    def test_tool_then_final_answer(self, add_tool):
        model = ScriptedModel(
            [
                action(tool_call("add", a=1, b=1)),
                action(tool_call("final_answer", answer=2)),
            ]
        )
        agent = Agent(model, tools=[add_tool])

        result = agent.run("What is 1 + 1?")

        assert result.success
        assert result.state is RunState.SUCCESS
        assert result.output == 2
        assert result.error is None
        assert isinstance(result.steps[-1], FinalAnswerStep)
        first, second = action_steps(result)
        assert first.observations == "[add] 2"
        assert first.action_output == 2
        assert second.is_final_answer
        assert result.token_usage.input_tokens == 20

    def test_tool_schemas_sent_to_model(self, add_tool):
        model = ScriptedModel([action(tool_call("final_answer", answer="x"))])
        Agent(model, tools=[add_tool]).run("task")

        _, options = model.calls[0]
        names = [schema["function"]["name"] for schema in options["tools"]]
        assert sorted(names) == ["add", "final_answer"]

    def test_max_steps_reached(self, add_tool):
        model = ScriptedModel(default=action(tool_call("add", a=1, b=1)))
        agent = Agent(model, tools=[add_tool], config=AgentConfig(max_steps=3))

        result = agent.run("Keep adding")

        assert result.state is RunState.MAX_STEPS_REACHED
        assert result.output == "[add] 2"
        assert len(action_steps(result)) == 3

    def test_model_exception_ends_run(self):
        model = ScriptedModel([RuntimeError(f"backend down, key {OPENAI_KEY}")])

        result = Agent(model).run("task")

        assert result.state is RunState.ERROR
        assert result.output is None
        assert result.error.startswith("ModelError: backend down")
        assert OPENAI_KEY not in result.error
        assert REDACTED in result.error

    def test_text_without_action(self):
        model = ScriptedModel(["I would probably add the numbers."])

        result = Agent(model, config=AgentConfig(max_steps=1)).run("task")

        assert result.state is RunState.MAX_STEPS_REACHED
        assert action_steps(result)[0].error == NO_ACTION_ERROR

    def test_empty_responses_are_null_steps(self):
        model = ScriptedModel(["", None])

        result = Agent(model, config=AgentConfig(max_steps=2)).run("task")

        assert result.state is RunState.MAX_STEPS_REACHED
        assert result.output is None
        reasons = [s.reason for s in result.steps if isinstance(s, NullStep)]
        assert len(reasons) == 2

    @pytest.mark.asyncio
    async def test_arun(self, add_tool):
        model = ScriptedModel([action(tool_call("final_answer", answer="done"))])
        result = await Agent(model, tools=[add_tool]).arun("task")
        assert result.output == "done"


class TestToolHandling:
    """测试工具调用处理"""

    def test_final_answer_guard(self, search_tool):
        model = ScriptedModel(
            [action(tool_call("web_search", query="weather"), tool_call("final_answer", answer="sunny"))]
        )
        agent = Agent(model, tools=[search_tool], config=AgentConfig(max_steps=1))

        result = agent.run("Weather?")

        assert result.state is RunState.MAX_STEPS_REACHED
        step = action_steps(result)[0]
        assert not step.is_final_answer
        assert "Cannot call final_answer in the same action as web_search" in step.error
        assert "[web_search] results for weather" in step.observations

    def test_tool_error_is_redacted_step_error(self):
        def leak() -> str:
            raise ValueError(f"upstream rejected {OPENAI_KEY}")

        model = ScriptedModel([action(tool_call("leak"))])
        agent = Agent(model, tools=[FunctionTool(leak)], config=AgentConfig(max_steps=1))

        result = agent.run("task")

        error = action_steps(result)[0].error
        assert error.startswith("Error executing tool 'leak': ValueError: upstream rejected")
        assert OPENAI_KEY not in error

    def test_unknown_tool(self):
        model = ScriptedModel([action(tool_call("teleport"))])
        result = Agent(model, config=AgentConfig(max_steps=1)).run("task")

        error = action_steps(result)[0].error
        assert "ToolNotFoundError" in error
        assert "Available: final_answer" in error

    def test_tool_timeout_enables_isolation(self, add_tool):
        model = ScriptedModel(
            [action(tool_call("add", a=2, b=2)), action(tool_call("final_answer", answer=4))]
        )
        agent = Agent(model, tools=[add_tool], config=AgentConfig(tool_timeout=5.0))

        assert agent.isolation is not None
        assert agent.isolation.limits.timeout_seconds == 5.0
        result = agent.run("task")
        assert action_steps(result)[0].observations == "[add] 4"

    def test_late_results_arrive_next_step(self):
        release = threading.Event()

        def slow() -> str:
            release.wait(5)
            return "slow done"

        def fast() -> str:
            return "fast done"

        model = ScriptedModel(
            [
                action(tool_call("slow"), tool_call("fast")),
                action(tool_call("final_answer", answer="ok")),
            ]
        )
        agent = Agent(model, tools=[FunctionTool(slow), FunctionTool(fast)])
        agent.on("step_completed", lambda event: release.set())

        result = agent.run("task")

        first, second = action_steps(result)
        assert first.observations == "[slow] still running; result will follow.\n[fast] fast done"
        assert second.observations == "[slow, from step 1] slow done"
        assert result.output == "ok"


class TestCodeActions:
    """测试代码动作"""

    def test_code_final_answer(self, add_tool):
        model = ScriptedModel(["Let me compute.\n```python\nfinal_answer(add(2, 3))\n```"])
        agent = Agent(model, tools=[add_tool], executor=LocalExecutor())

        result = agent.run("2 + 3?")

        assert result.success
        assert result.output == 5
        assert action_steps(result)[0].code_action == "final_answer(add(2, 3))"

    def test_code_observations(self, add_tool):
        model = ScriptedModel(
            ["```python\nprint('adding')\nadd(1, 2)\n```"],
            default=action(tool_call("final_answer", answer="3")),
        )
        agent = Agent(model, tools=[add_tool], executor=LocalExecutor())

        result = agent.run("task")

        observations = action_steps(result)[0].observations
        assert observations == "Execution logs:\nadding\nLast output from code snippet:\n3"

    def test_interpreter_tool_call(self, add_tool):
        model = ScriptedModel([action(tool_call("python_interpreter", code="final_answer(add(4, 4))"))])
        agent = Agent(model, tools=[add_tool], executor=LocalExecutor())

        assert agent.run("task").output == 8

    def test_interpreter_without_executor(self):
        model = ScriptedModel([action(tool_call("python_interpreter", code="1 + 1"))])

        result = Agent(model, config=AgentConfig(max_steps=1)).run("task")

        assert "no code executor configured" in action_steps(result)[0].error

    def test_unsafe_code_is_step_error(self):
        model = ScriptedModel(["```python\nimport os\nos.system('ls')\n```"])
        agent = Agent(model, executor=LocalExecutor(), config=AgentConfig(max_steps=1))

        result = agent.run("task")

        assert result.state is RunState.MAX_STEPS_REACHED
        assert action_steps(result)[0].error is not None


class TestCheckpoints:
    """测试规划、评估、反思与修正"""

    def test_evaluation_marks_done(self, add_tool):
        model = ScriptedModel([action(tool_call("add", a=1, b=1)), "DONE: 2\nCONFIDENCE: 0.9"])
        agent = Agent(model, tools=[add_tool], config=AgentConfig(evaluation_enabled=True))
        statuses = []
        agent.on("evaluation_completed", lambda event: statuses.append(event.status))

        result = agent.run("1 + 1?")

        assert result.success
        assert result.output == "2"
        assert statuses == ["done"]

    def test_planning_step_precedes_action(self, add_tool):
        model = ScriptedModel(["1. Use add\n2. Answer", action(tool_call("final_answer", answer=1))])
        agent = Agent(model, tools=[add_tool], config=AgentConfig(planning_interval=5))

        result = agent.run("task")

        assert isinstance(result.steps[2], PlanningStep)
        assert result.steps[2].plan == "1. Use add\n2. Answer"
        contents = [m.content for m in model.calls[1][0]]
        assert "Now proceed and carry out this plan." in contents

    def test_step_completed_events(self, add_tool):
        model = ScriptedModel(
            [action(tool_call("add", a=1, b=1)), action(tool_call("final_answer", answer=2))]
        )
        agent = Agent(model, tools=[add_tool])
        events = []
        agent.on("step_completed", events.append)

        agent.run("task")

        assert [e.step_number for e in events] == [1, 2]
        assert events[0].tool_names == ["add"]
        assert events[1].is_final_answer

    def test_reflections(self, add_tool):
        model = ScriptedModel(
            [
                action(tool_call("add", a=1)),
                action(tool_call("add", a=1, b=2)),
                action(tool_call("final_answer", answer=3)),
            ]
        )
        agent = Agent(model, tools=[add_tool])
        recorded = []
        agent.on("reflection_recorded", lambda event: recorded.append(event.outcome))

        agent.run("add numbers")

        assert recorded == ["failure", "success"]
        assert len(agent.reflections) == 2
        assert "Lessons from previous attempts:" in agent.system_prompt("add more numbers")

    def test_refinement_replaces_output(self, add_tool):
        model = ScriptedModel(
            [
                action(tool_call("add", a=1, b=1)),
                "ISSUE: unlabeled | FIX: add units",
                "2 apples",
                "LGTM",
            ],
            default=action(tool_call("final_answer", answer="2 apples")),
        )
        agent = Agent(
            model,
            tools=[add_tool],
            config=AgentConfig(max_steps=1),
            refine=RefineConfig(feedback_source="self"),
        )

        result = agent.run("How many apples?")

        assert action_steps(result)[0].action_output == "2 apples"


class TestRepetitionAndTracing:
    """测试循环检测引导与追踪 ID"""

    def test_loop_guidance_reaches_the_model(self, add_tool):
        model = ScriptedModel(default=action(tool_call("add", a=1, b=1)))
        agent = Agent(model, tools=[add_tool], config=AgentConfig(max_steps=4))
        events = []
        agent.on("repetition_detected", events.append)

        result = agent.run("Keep adding")

        guidance = [s for s in result.steps if isinstance(s, GuidanceStep)]
        assert [g.step_number for g in guidance] == [3, 4]
        assert guidance[0].guidance.startswith("[Loop Detection] You've called 'add' 3 times")
        assert [(e.pattern, e.count) for e in events] == [("tool_call", 3), ("tool_call", 3)]
        fourth_prompt = [m.content for m in model.calls[3][0]]
        assert any(c and c.startswith("[Loop Detection]") for c in fourth_prompt)
        assert result.output == "[add] 2"

    def test_varied_actions_get_no_guidance(self, add_tool):
        model = ScriptedModel(
            [action(tool_call("add", a=1, b=i)) for i in range(3)],
            default=action(tool_call("final_answer", answer="done")),
        )

        result = Agent(model, tools=[add_tool], config=AgentConfig(max_steps=4)).run("task")

        assert result.success
        assert not [s for s in result.steps if isinstance(s, GuidanceStep)]

    def test_repetition_detection_can_be_disabled(self, add_tool):
        model = ScriptedModel(default=action(tool_call("add", a=1, b=1)))
        config = AgentConfig(max_steps=4, repetition_detection=False)

        result = Agent(model, tools=[add_tool], config=config).run("Keep adding")

        assert not [s for s in result.steps if isinstance(s, GuidanceStep)]

    def test_steps_carry_trace_ids(self, add_tool):
        model = ScriptedModel(
            [action(tool_call("add", a=1, b=1))],
            default=action(tool_call("final_answer", answer=2)),
        )
        agent = Agent(model, tools=[add_tool])

        result = agent.run("task")

        first, second = action_steps(result)
        assert result.trace_id == agent.trace_id
        assert first.parent_trace_id == second.parent_trace_id == result.trace_id
        assert first.trace_id and second.trace_id and first.trace_id != second.trace_id
        assert first.to_dict()["parent_trace_id"] == result.trace_id
        assert agent.run("again").trace_id != result.trace_id
