"""
Orchestrator for plan and execute runs.

A plan run makes one model call without tools and returns the response text
as the proposed plan. An execute run drives the tool loop:

1. check the task's abort flag
2. send the conversation plus the tool catalog to the model
3. run every requested tool through the ``ToolExecutor``, report it to the
   step observer and append the results to the conversation
4. finish on a ``task_complete`` call or when the model stops asking for tools

Any exception (model failure after retries, iteration ceiling, ...) ends the
run on the failure path, which asks the model once for a structured
diagnosis and folds it into the response. Cancellation is cooperative: the
flag is polled before each model call and each tool call, and an in-flight
shell command is killed at its next poll.
"""

import json
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from taskpilot.config import AgentConfig, STEP_OUTPUT_LIMIT, SUMMARY_LIMIT
from taskpilot.debug_logger import get_logger
from taskpilot.errors import IterationLimitExceeded
from taskpilot.execution import prompts
from taskpilot.execution.registry import RunningTask, TaskRegistry
from taskpilot.llm.providers.base import Completion, ModelService, TextBlock, Usage
from taskpilot.llm.retry import RetryConfig, with_retry_and_timeout, with_timeout
from taskpilot.models.task import TaskPhase
from taskpilot.tools.catalog import ToolName, get_available_tools
from taskpilot.tools.executor import ToolExecutor


logger = get_logger()

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class OrchestratorMode(Enum):
    PLAN = "plan"
    EXECUTE = "execute"


@dataclass
class StepResult:
    """One tool invocation as reported to the step observer."""
    step: int
    tool: str
    input: Any
    output: str
    success: bool
    duration_ms: int
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "tool": self.tool,
            "input": self.input,
            "output": self.output,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


StepObserver = Callable[[StepResult], None]


@dataclass
class ContinuationContext:
    """Prior state carried into a resumed execute run."""
    plan: Optional[str] = None
    error_reason: Optional[str] = None
    error_step: Optional[int] = None
    adjustment: Optional[str] = None


@dataclass
class OrchestratorRequest:
    message: str
    task_id: str
    mode: Union[OrchestratorMode, str] = OrchestratorMode.EXECUTE
    on_step: Optional[StepObserver] = None
    continuation: Optional[ContinuationContext] = None
    history: List[Dict[str, Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.mode = OrchestratorMode(self.mode)


@dataclass
class Diagnosis:
    reason: str
    recommendation: str
    can_continue: bool = True


@dataclass
class OrchestratorResponse:
    task_id: str
    success: bool
    phase: TaskPhase
    output: str = ""
    summary: str = ""
    plan: Optional[str] = None
    step_results: List[StepResult] = field(default_factory=list)
    total_duration_ms: int = 0
    total_cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    error_reason: Optional[str] = None
    error_recommendation: Optional[str] = None
    error_step: Optional[int] = None
    can_continue: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "success": self.success,
            "phase": self.phase.value,
            "output": self.output,
            "summary": self.summary,
            "plan": self.plan,
            "step_results": [s.to_dict() for s in self.step_results],
            "total_duration_ms": self.total_duration_ms,
            "total_cost": self.total_cost,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "error_reason": self.error_reason,
            "error_recommendation": self.error_recommendation,
            "error_step": self.error_step,
            "can_continue": self.can_continue,
        }


@dataclass
class _RunState:
    """Mutable bookkeeping for one run."""
    started: float = field(default_factory=time.time)
    usage: Usage = field(default_factory=Usage)
    steps: List[StepResult] = field(default_factory=list)
    output: str = ""

    @property
    def elapsed_ms(self) -> int:
        return int((time.time() - self.started) * 1000)


def summarize(text: str, limit: int = SUMMARY_LIMIT) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


class Orchestrator:
    """Drives plan and execute runs against a model service and tool executor."""

    def __init__(
        self,
        model: ModelService,
        executor: ToolExecutor,
        registry: Optional[TaskRegistry] = None,
        config: Optional[AgentConfig] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.model = model
        self.executor = executor
        self.registry = registry or TaskRegistry()
        self.config = config or executor.config
        self.retry_config = retry_config or RetryConfig(
            max_retries=self.config.model_max_retries,
            base_delay_ms=self.config.retry_base_ms,
            max_delay_ms=self.config.retry_max_ms,
        )
        self.tools = get_available_tools()

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    def handle_request(self, request: OrchestratorRequest) -> OrchestratorResponse:
        """Run ``request`` in plan or execute mode.

        Raises:
            TaskAlreadyRunningError: If an execute run is already active for the task.
        """
        logger.log_workflow_phase(request.mode.value, {"task_id": request.task_id})
        if request.mode is OrchestratorMode.PLAN:
            return self.create_plan(request)
        return self.execute_task(request)

    def stop_task(self, task_id: str) -> bool:
        """Request a cooperative stop; False if the task is not running."""
        return self.registry.abort(task_id)

    def is_running(self, task_id: str) -> bool:
        return self.registry.is_running(task_id)

    def create_plan(self, request: OrchestratorRequest) -> OrchestratorResponse:
        state = _RunState()
        unconfigured = self._unconfigured_response(request, state)
        if unconfigured:
            return unconfigured

        try:
            completion = self._call_model(
                prompts.PLANNING_SYSTEM_PROMPT,
                list(request.history) + [{"role": "user", "content": prompts.planning_message(request.message)}],
                tools=None,
                state=state,
                label="planning",
            )
        except Exception as e:
            return self._failure(request, e, state)

        plan_text = completion.text
        return self._response(
            request,
            state,
            success=True,
            phase=TaskPhase.AWAITING_APPROVAL,
            output=plan_text,
            summary="Plan created - awaiting approval",
            plan=plan_text,
        )

    def execute_task(self, request: OrchestratorRequest) -> OrchestratorResponse:
        state = _RunState()
        unconfigured = self._unconfigured_response(request, state)
        if unconfigured:
            return unconfigured

        error: Optional[Exception] = None
        stopped = False
        with self.registry.track(request.task_id) as entry:
            try:
                stopped = self._run_loop(request, entry, state)
            except Exception as e:
                error = e

        if error is not None:
            return self._failure(request, error, state)

        if stopped:
            logger.log("orchestrator", "RUN_STOPPED", {"task_id": request.task_id, "steps": len(state.steps)})
            return self._response(
                request,
                state,
                success=False,
                phase=TaskPhase.STOPPED,
                output=state.output,
                summary="Task stopped by user",
            )

        return self._response(
            request,
            state,
            success=True,
            phase=TaskPhase.COMPLETED,
            output=state.output,
            summary=summarize(state.output),
        )

    # ------------------------------------------------------------------
    # tool loop
    # ------------------------------------------------------------------

    def _seed_message(self, request: OrchestratorRequest) -> str:
        ctx = request.continuation
        if ctx is None:
            return prompts.execution_message(request.message)
        return prompts.continuation_message(
            request.message, ctx.plan, ctx.error_reason, ctx.error_step, ctx.adjustment
        )

    def _run_loop(self, request: OrchestratorRequest, entry: RunningTask, state: _RunState) -> bool:
        """Run the tool loop; returns True when the run was stopped."""
        system_prompt = prompts.EXECUTION_SYSTEM_PROMPT.format(workspace=self.executor.workspace.root)
        turns: List[Dict[str, Any]] = list(request.history)
        turns.append({"role": "user", "content": self._seed_message(request)})

        def should_abort() -> bool:
            return entry.aborted

        for iteration in range(1, self.config.max_iterations + 1):
            if entry.aborted:
                return True

            completion = self._call_model(system_prompt, turns, self.tools, state, label=f"iteration {iteration}")

            tool_results: List[Dict[str, Any]] = []
            complete = False
            for block in completion.blocks:
                if isinstance(block, TextBlock):
                    state.output = block.text
                    continue

                if entry.aborted:
                    return True

                result = self.executor.execute(block.name, block.input, should_abort=should_abort)
                step = StepResult(
                    step=len(state.steps) + 1,
                    tool=block.name,
                    input=block.input,
                    output=result.output[:STEP_OUTPUT_LIMIT],
                    success=result.success,
                    duration_ms=result.duration_ms,
                    error=result.error,
                )
                state.steps.append(step)
                self._notify(request, step)

                tool_results.append({
                    "type": "tool_result",
                    "tool_use_id": block.id,
                    "content": result.to_model_content(),
                    "is_error": not result.success,
                })

                if block.name == ToolName.TASK_COMPLETE.value and result.completes_task:
                    complete = True
                    state.output = str(block.input.get("summary", ""))

            turns.append(completion.to_turn())
            if tool_results:
                turns.append({"role": "user", "content": tool_results})

            if complete or not completion.tool_invocations:
                logger.log("orchestrator", "RUN_COMPLETE", {
                    "task_id": request.task_id,
                    "iterations": iteration,
                    "steps": len(state.steps),
                })
                return False

        raise IterationLimitExceeded(self.config.max_iterations)

    def _notify(self, request: OrchestratorRequest, step: StepResult) -> None:
        if request.on_step is None:
            return
        try:
            request.on_step(step)
        except Exception as e:
            logger.log_error("orchestrator", e, {"task_id": request.task_id, "step": step.step})

    def _call_model(
        self,
        system_prompt: str,
        turns: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
        state: _RunState,
        label: str,
    ) -> Completion:
        completion = with_retry_and_timeout(
            lambda: self.model.complete(system_prompt, turns, tools),
            self.config.model_timeout,
            self.retry_config,
            label=label,
        )
        state.usage = state.usage + completion.usage
        return completion

    # ------------------------------------------------------------------
    # results and failure path
    # ------------------------------------------------------------------

    def _response(self, request: OrchestratorRequest, state: _RunState, **fields: Any) -> OrchestratorResponse:
        return OrchestratorResponse(
            task_id=request.task_id,
            step_results=list(state.steps),
            total_duration_ms=state.elapsed_ms,
            total_cost=self.config.cost_for(state.usage.input_tokens, state.usage.output_tokens),
            input_tokens=state.usage.input_tokens,
            output_tokens=state.usage.output_tokens,
            **fields,
        )

    def _unconfigured_response(self, request: OrchestratorRequest, state: _RunState) -> Optional[OrchestratorResponse]:
        if self.model.validate_config():
            return None
        reason = f"Model service '{self.model.name}' is not configured (missing API key?)"
        return self._response(
            request,
            state,
            success=False,
            phase=TaskPhase.FAILED,
            output=f"Error: {reason}",
            summary="Model service not configured",
            error_reason=reason,
            error_recommendation="Set ANTHROPIC_API_KEY (or configure the model service) and retry the task.",
            can_continue=True,
        )

    def _failure(self, request: OrchestratorRequest, error: Exception, state: _RunState) -> OrchestratorResponse:
        message = str(error) or type(error).__name__
        logger.log_error("orchestrator", error, {"task_id": request.task_id, "mode": request.mode.value})

        last_step = state.steps[-1] if state.steps else None
        error_step = None
        if not isinstance(error, IterationLimitExceeded) and last_step is not None and not last_step.success:
            error_step = last_step.step

        diagnosis = self._diagnose(request, message, last_step, state)
        reason = message if isinstance(error, IterationLimitExceeded) else diagnosis.reason

        planning = request.mode is OrchestratorMode.PLAN
        return self._response(
            request,
            state,
            success=False,
            phase=TaskPhase.FAILED,
            output=f"Error: {message}",
            summary="Planning failed" if planning else "Task failed with error",
            error_reason=reason,
            error_recommendation=diagnosis.recommendation,
            error_step=error_step,
            can_continue=diagnosis.can_continue,
        )

    def _diagnose(
        self,
        request: OrchestratorRequest,
        message: str,
        last_step: Optional[StepResult],
        state: _RunState,
    ) -> Diagnosis:
        """Best-effort secondary model call explaining the failure."""
        fallback = Diagnosis(reason=message, recommendation=prompts.GENERIC_RECOMMENDATION, can_continue=True)

        step_text = None
        if last_step is not None:
            step_text = json.dumps(last_step.to_dict(), default=str)[:STEP_OUTPUT_LIMIT]
        turns = [{"role": "user", "content": prompts.diagnosis_message(request.message, message, step_text)}]

        logger.log_workflow_phase("diagnose", {"task_id": request.task_id})
        try:
            completion = with_timeout(
                lambda: self.model.complete(prompts.DIAGNOSIS_SYSTEM_PROMPT, turns, None),
                self.config.model_timeout,
                label="diagnosis",
            )
        except Exception as e:
            logger.log("orchestrator", "DIAGNOSIS_FAILED", {"task_id": request.task_id, "error": str(e)}, "WARNING")
            return fallback

        state.usage = state.usage + completion.usage
        return parse_diagnosis(completion.text) or fallback


def parse_diagnosis(text: str) -> Optional[Diagnosis]:
    """Extract ``{reason, recommendation, canContinue}`` from model text."""
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return None
    if not isinstance(data, dict) or not data.get("reason"):
        return None

    can_continue = data.get("canContinue", data.get("can_continue", True))
    return Diagnosis(
        reason=str(data["reason"]),
        recommendation=str(data.get("recommendation") or prompts.GENERIC_RECOMMENDATION),
        can_continue=bool(can_continue),
    )
