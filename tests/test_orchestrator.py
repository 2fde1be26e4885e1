"""
Tests for the orchestrator's plan and execute runs.

These drive the real tool executor against a temporary workspace and a
scripted model service, so every assertion covers the full loop:
model call -> tool execution -> step report -> tool_result fed back.
"""

import dataclasses

import pytest

from taskpilot.errors import TaskAlreadyRunningError
from taskpilot.execution import prompts
from taskpilot.execution.orchestrator import (
    ContinuationContext,
    Orchestrator,
    OrchestratorMode,
    OrchestratorRequest,
    parse_diagnosis,
    summarize,
)
from taskpilot.execution.registry import TaskRegistry
from taskpilot.llm.providers.scripted import ScriptedModelService
from taskpilot.llm.retry import RetryConfig
from taskpilot.models.task import TaskPhase
from taskpilot.tools.executor import REFUSAL_NOTE, ToolExecutor


def call(name, **tool_input):
    return {"name": name, "input": tool_input}


def complete(summary):
    return {"tool_calls": [call("task_complete", summary=summary)]}


def execute_request(message="List the files", task_id="t1", **kwargs):
    return OrchestratorRequest(message=message, task_id=task_id, mode=OrchestratorMode.EXECUTE, **kwargs)


class TestExecute:
    def test_list_then_complete(self, make_orchestrator):
        orchestrator, model = make_orchestrator([
            {"tool_calls": [call("list_files", path=".")]},
            complete("Listed files"),
        ])
        steps = []

        response = orchestrator.handle_request(execute_request(on_step=steps.append))

        assert response.success
        assert response.phase is TaskPhase.COMPLETED
        assert response.output == "Listed files"
        assert response.summary == "Listed files"
        assert [s.tool for s in response.step_results] == ["list_files", "task_complete"]
        assert response.step_results[0].output == "(empty directory)"
        assert steps == response.step_results
        assert model.call_count == 2
        assert not orchestrator.is_running("t1")

    def test_tools_and_system_prompt(self, make_orchestrator, workspace):
        orchestrator, model = make_orchestrator([complete("done")])
        orchestrator.handle_request(execute_request())

        first = model.calls[0]
        assert [t["name"] for t in first["tools"]][-1] == "task_complete"
        assert str(workspace.root) in first["system_prompt"]
        assert first["turns"] == [{"role": "user", "content": prompts.execution_message("List the files")}]

    def test_text_only_reply_completes(self, make_orchestrator):
        orchestrator, model = make_orchestrator([{"text": "Nothing needed doing."}])
        response = orchestrator.handle_request(execute_request())
        assert response.phase is TaskPhase.COMPLETED
        assert response.output == "Nothing needed doing."
        assert response.step_results == []
        assert model.call_count == 1

    def test_denied_command_is_fed_back_as_error(self, make_orchestrator):
        orchestrator, model = make_orchestrator([
            {"tool_calls": [call("execute_bash", command="rm -rf /")]},
            complete("Could not clean up"),
        ])

        response = orchestrator.handle_request(execute_request())

        assert response.phase is TaskPhase.COMPLETED
        assert response.step_results[0].success is False
        tool_result = model.calls[1]["turns"][-1]["content"][0]
        assert tool_result["type"] == "tool_result"
        assert tool_result["is_error"] is True
        assert tool_result["tool_use_id"] == "toolu_000_0"
        assert tool_result["content"].startswith("Error: Command not allowed")
        assert tool_result["content"].endswith(REFUSAL_NOTE)

    def test_assistant_turn_is_replayed(self, make_orchestrator):
        orchestrator, model = make_orchestrator([
            {"text": "Looking around", "tool_calls": [call("list_files")]},
            complete("done"),
        ])
        orchestrator.handle_request(execute_request())

        assistant = model.calls[1]["turns"][1]
        assert assistant["role"] == "assistant"
        assert assistant["content"][0] == {"type": "text", "text": "Looking around"}
        assert assistant["content"][1]["type"] == "tool_use"

    def test_steps_are_numbered_in_order(self, make_orchestrator):
        orchestrator, _ = make_orchestrator([
            {"tool_calls": [call("create_directory", path="src"), call("list_files")]},
            {"tool_calls": [call("write_file", path="src/a.py", content="x = 1\n")]},
            complete("done"),
        ])
        response = orchestrator.handle_request(execute_request())
        assert [s.step for s in response.step_results] == [1, 2, 3, 4]

    def test_step_output_is_truncated(self, make_orchestrator, workspace):
        (workspace.root / "big.txt").write_text("a" * 3000)
        orchestrator, model = make_orchestrator([
            {"tool_calls": [call("read_file", path="big.txt")]},
            complete("read"),
        ])

        response = orchestrator.handle_request(execute_request())

        assert len(response.step_results[0].output) == 2000
        assert len(model.calls[1]["turns"][-1]["content"][0]["content"]) == 3000

    def test_cost_and_tokens(self, make_orchestrator):
        orchestrator, _ = make_orchestrator([
            {"tool_calls": [call("list_files")], "usage": {"input_tokens": 1000, "output_tokens": 200}},
            dict(complete("done"), usage={"input_tokens": 500, "output_tokens": 300}),
        ])
        response = orchestrator.handle_request(execute_request())
        assert response.input_tokens == 1500
        assert response.output_tokens == 500
        assert response.total_cost == pytest.approx((1500 * 3 + 500 * 15) / 1_000_000)

    def test_history_precedes_seed_message(self, make_orchestrator):
        history = [
            {"role": "user", "content": "Original task: build it"},
            {"role": "assistant", "content": "Understood."},
        ]
        orchestrator, model = make_orchestrator([complete("done")])
        orchestrator.handle_request(execute_request(message="and test it", history=history))
        assert model.calls[0]["turns"][:2] == history
        assert model.calls[0]["turns"][2]["content"] == prompts.execution_message("and test it")

    def test_continuation_message(self, make_orchestrator):
        orchestrator, model = make_orchestrator([complete("done")])
        ctx = ContinuationContext(plan="1. install deps", error_reason="npm missing", error_step=2, adjustment="use yarn")

        orchestrator.handle_request(execute_request(message="Build the app", continuation=ctx))

        seed = model.calls[0]["turns"][0]["content"]
        assert seed.startswith("Build the app")
        assert "1. install deps" in seed
        assert "- Reason: npm missing" in seed
        assert "- At step: 2" in seed
        assert "use yarn" in seed

    def test_observer_errors_do_not_stop_the_run(self, make_orchestrator):
        def broken_observer(step):
            raise RuntimeError("ui went away")

        orchestrator, _ = make_orchestrator([{"tool_calls": [call("list_files")]}, complete("done")])
        response = orchestrator.handle_request(execute_request(on_step=broken_observer))
        assert response.phase is TaskPhase.COMPLETED

    def test_transient_model_error_is_retried(self, executor, agent_config, mocker):
        mocker.patch("time.sleep")
        model = ScriptedModelService([ConnectionResetError("ECONNRESET"), complete("done")])
        orchestrator = Orchestrator(model, executor, config=agent_config,
                                    retry_config=RetryConfig(max_retries=3, base_delay_ms=1))

        response = orchestrator.handle_request(execute_request())

        assert response.phase is TaskPhase.COMPLETED
        assert model.call_count == 2

    def test_duplicate_run_is_rejected(self, make_orchestrator):
        registry = TaskRegistry()
        orchestrator, model = make_orchestrator([complete("done")], registry=registry)
        with registry.track("t1"):
            with pytest.raises(TaskAlreadyRunningError):
                orchestrator.handle_request(execute_request())
        assert model.call_count == 0


class TestIterationLimit:
    def test_ceiling_fails_the_run(self, workspace, agent_config):
        config = dataclasses.replace(agent_config, max_iterations=3)
        model = ScriptedModelService([{"tool_calls": [call("list_files")]}], repeat_last=True)
        orchestrator = Orchestrator(model, ToolExecutor(workspace, config), config=config)

        response = orchestrator.handle_request(execute_request())

        assert response.phase is TaskPhase.FAILED
        assert len(response.step_results) == 3
        assert response.error_reason == "Maximum iterations (3) reached without completing the task"
        assert response.error_step is None
        assert response.summary == "Task failed with error"
        # three loop calls plus the diagnosis call
        assert model.call_count == 4


class TestCancellation:
    def test_stop_between_tool_calls(self, make_orchestrator):
        orchestrator, model = make_orchestrator([
            {"tool_calls": [call("list_files"), call("write_file", path="a.txt", content="x")]},
            complete("done"),
        ])

        def stop_after_first(step):
            orchestrator.stop_task("t1")

        response = orchestrator.handle_request(execute_request(on_step=stop_after_first))

        assert response.phase is TaskPhase.STOPPED
        assert response.summary == "Task stopped by user"
        assert len(response.step_results) == 1
        assert model.call_count == 1
        assert not (orchestrator.executor.workspace.root / "a.txt").exists()
        assert not orchestrator.is_running("t1")

    def test_stop_unknown_task(self, make_orchestrator):
        orchestrator, _ = make_orchestrator([])
        assert orchestrator.stop_task("ghost") is False


class TestFailurePath:
    def test_diagnosis_is_used(self, make_orchestrator):
        orchestrator, model = make_orchestrator([
            {"tool_calls": [call("read_file", path="missing.txt")]},
            RuntimeError("model crashed"),
            {"text": 'Here you go: {"reason": "The file does not exist", '
                     '"recommendation": "Create missing.txt first", "canContinue": false}'},
        ])

        response = orchestrator.handle_request(execute_request())

        assert response.phase is TaskPhase.FAILED
        assert response.success is False
        assert response.output == "Error: model crashed"
        assert response.error_reason == "The file does not exist"
        assert response.error_recommendation == "Create missing.txt first"
        assert response.can_continue is False
        assert response.error_step == 1
        assert model.calls[2]["tools"] is None
        assert model.calls[2]["system_prompt"] == prompts.DIAGNOSIS_SYSTEM_PROMPT

    def test_successful_last_step_is_not_blamed(self, make_orchestrator):
        orchestrator, _ = make_orchestrator([
            {"tool_calls": [call("list_files")]},
            RuntimeError("model crashed"),
        ])
        response = orchestrator.handle_request(execute_request())
        assert response.error_step is None

    def test_diagnosis_failure_falls_back(self, make_orchestrator):
        orchestrator, model = make_orchestrator([RuntimeError("model crashed")])

        response = orchestrator.handle_request(execute_request())

        assert response.phase is TaskPhase.FAILED
        assert response.error_reason == "model crashed"
        assert response.error_recommendation == prompts.GENERIC_RECOMMENDATION
        assert response.can_continue is True
        assert model.call_count == 2

    def test_unparseable_diagnosis_falls_back(self, make_orchestrator):
        orchestrator, _ = make_orchestrator([RuntimeError("model crashed"), {"text": "no idea, sorry"}])
        response = orchestrator.handle_request(execute_request())
        assert response.error_reason == "model crashed"

    def test_unconfigured_model_is_not_called(self, make_orchestrator):
        orchestrator, model = make_orchestrator([complete("done")])
        model.validate_config = lambda: False

        response = orchestrator.handle_request(execute_request())

        assert response.phase is TaskPhase.FAILED
        assert response.error_reason == "Model service 'scripted' is not configured (missing API key?)"
        assert response.can_continue is True
        assert model.call_count == 0


class TestPlan:
    def test_plan_is_single_toolless_call(self, make_orchestrator):
        orchestrator, model = make_orchestrator([{"text": "1. Scaffold\n2. Build"}])

        response = orchestrator.handle_request(
            OrchestratorRequest(message="Build a todo app", task_id="t1", mode="plan")
        )

        assert response.phase is TaskPhase.AWAITING_APPROVAL
        assert response.success
        assert response.plan == "1. Scaffold\n2. Build"
        assert response.output == response.plan
        assert response.summary == "Plan created - awaiting approval"
        assert model.call_count == 1
        assert model.calls[0]["tools"] is None
        assert model.calls[0]["system_prompt"] == prompts.PLANNING_SYSTEM_PROMPT
        assert "Build a todo app" in model.calls[0]["turns"][-1]["content"]

    def test_plan_does_not_register_task(self, make_orchestrator):
        orchestrator, _ = make_orchestrator([{"text": "plan"}])
        with orchestrator.registry.track("t1"):
            response = orchestrator.handle_request(
                OrchestratorRequest(message="x", task_id="t1", mode=OrchestratorMode.PLAN)
            )
        assert response.phase is TaskPhase.AWAITING_APPROVAL

    def test_plan_failure(self, make_orchestrator):
        orchestrator, _ = make_orchestrator([RuntimeError("down")])
        response = orchestrator.handle_request(OrchestratorRequest(message="x", task_id="t1", mode="plan"))
        assert response.phase is TaskPhase.FAILED
        assert response.summary == "Planning failed"
        assert response.output == "Error: down"


class TestParseDiagnosis:
    def test_snake_case_flag(self):
        diagnosis = parse_diagnosis('{"reason": "r", "recommendation": "do x", "can_continue": false}')
        assert diagnosis.reason == "r"
        assert diagnosis.can_continue is False

    def test_defaults(self):
        diagnosis = parse_diagnosis('{"reason": "r"}')
        assert diagnosis.recommendation == prompts.GENERIC_RECOMMENDATION
        assert diagnosis.can_continue is True

    @pytest.mark.parametrize("text", ["", "plain text", "{not json}", '{"recommendation": "x"}', None])
    def test_rejects(self, text):
        assert parse_diagnosis(text) is None


def test_summarize():
    assert summarize("short") == "short"
    assert summarize("x" * 301) == "x" * 300 + "..."
    assert summarize("x" * 300) == "x" * 300
