#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Task lifecycle service.

Moves a task through the phase machine around orchestration runs:
submit (plan) -> approve (execute) -> completed / failed / stopped, with
reject, edit, retry, continue, follow-up messages and stop on top. Runs are
synchronous; ``stop`` is safe to call from another thread while ``approve``
or ``continue_task`` is executing.
"""

import uuid
from typing import Any, Callable, Dict, List, Optional

from taskpilot.config import AgentConfig
from taskpilot.debug_logger import get_logger
from taskpilot.errors import InvalidTransitionError, RunLimitExceeded, TaskNotFoundError
from taskpilot.execution import prompts
from taskpilot.execution.orchestrator import (
    ContinuationContext,
    Orchestrator,
    OrchestratorMode,
    OrchestratorRequest,
    OrchestratorResponse,
    StepResult,
)
from taskpilot.models.task import FINISHED_PHASES, StepRecord, Task, TaskPhase, require_transition
from taskpilot.store import TaskStore


logger = get_logger()

FOLLOW_UP_ACK = "Understood. I have the context of the previous task."


class TaskLifecycle:
    """Drives tasks in a ``TaskStore`` through plan and execute runs."""

    def __init__(
        self,
        store: TaskStore,
        orchestrator: Orchestrator,
        config: Optional[AgentConfig] = None,
        on_step: Optional[Callable[[str, StepRecord], None]] = None,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.config = config or orchestrator.config
        self.on_step = on_step

    # ------------------------------------------------------------------
    # planning
    # ------------------------------------------------------------------

    def submit(self, goal: str, task_id: Optional[str] = None) -> Task:
        """Create a task for ``goal`` and produce a plan for approval."""
        goal = goal.strip()
        if not goal:
            raise ValueError("Goal must not be empty")
        task_id = task_id or uuid.uuid4().hex[:12]
        self.store.create(task_id, goal, TaskPhase.PLANNING)
        self.store.append_message(task_id, "user", goal)
        logger.log_task_status(task_id, TaskPhase.PLANNING.value, {"goal": goal[:200]})
        return self._plan(task_id, goal, "Plan created - awaiting approval")

    def reject(self, task_id: str, feedback: Optional[str] = None, regenerate: bool = False) -> Task:
        """Reject the proposed plan, or re-plan with ``feedback`` folded in."""
        task = self._require(task_id, TaskPhase.AWAITING_APPROVAL)

        if regenerate and feedback:
            self._move(task, TaskPhase.PLANNING, summary="Plan rejected - creating a new plan from feedback")
            return self._plan(task_id, prompts.feedback_goal(task.goal, feedback), "New plan created from feedback")

        return self._move(task, TaskPhase.REJECTED, summary=f"Plan rejected: {feedback}" if feedback else "Plan rejected")

    def edit_plan(self, task_id: str, plan: str) -> Task:
        task = self._require(task_id, TaskPhase.AWAITING_APPROVAL)
        if not plan.strip():
            raise ValueError("Plan must not be empty")
        return self._move(task, TaskPhase.AWAITING_APPROVAL, plan=plan, summary="Plan edited - awaiting approval")

    def retry(self, task_id: str) -> Task:
        """Start over from planning; previous steps and errors are discarded."""
        task = self._get(task_id)
        if task.phase not in (TaskPhase.FAILED, TaskPhase.STOPPED, TaskPhase.REJECTED):
            raise InvalidTransitionError(f"Task cannot be retried from phase '{task.phase.value}'")
        self.store.clear_steps(task_id)
        self._move(
            task,
            TaskPhase.PLANNING,
            output=None,
            summary="Restarting task",
            error_reason=None,
            error_recommendation=None,
            error_step=None,
            can_continue=None,
        )
        return self._plan(task_id, task.goal, "New plan created - awaiting approval")

    # ------------------------------------------------------------------
    # execution
    # ------------------------------------------------------------------

    def approve(self, task_id: str) -> Task:
        """Execute the approved plan."""
        task = self._require(task_id, TaskPhase.AWAITING_APPROVAL)
        self._move(task, TaskPhase.EXECUTING, summary="Plan approved - execution started")
        return self._execute(task, prompts.approved_plan_goal(task.goal, task.plan))

    def continue_task(self, task_id: str, adjustment: Optional[str] = None) -> Task:
        """Resume a failed or stopped task with an optional user adjustment."""
        task = self._get(task_id)
        if task.phase not in (TaskPhase.FAILED, TaskPhase.STOPPED):
            raise InvalidTransitionError(f"Task cannot be continued from phase '{task.phase.value}'")

        continuation = ContinuationContext(
            plan=task.plan,
            error_reason=task.error_reason,
            error_step=task.error_step,
            adjustment=adjustment,
        )
        self._move(
            task,
            TaskPhase.EXECUTING,
            summary="Continued with adjustment",
            error_reason=None,
            error_recommendation=None,
            error_step=None,
            can_continue=None,
        )
        return self._execute(task, task.goal, continuation=continuation)

    def send_message(self, task_id: str, message: str) -> Task:
        """Follow-up instruction on a finished task, run with the chat history."""
        task = self._get(task_id)
        if task.phase not in FINISHED_PHASES:
            raise InvalidTransitionError(f"Task is still active (phase '{task.phase.value}')")
        message = message.strip()
        if not message:
            raise ValueError("Message must not be empty")

        history = self._history(task)
        self.store.append_message(task_id, "user", message)
        self._move(task, TaskPhase.EXECUTING, summary="Working on follow-up message")
        updated = self._execute(task, message, history=history)
        if updated.output:
            self.store.append_message(task_id, "assistant", updated.output)
        return updated

    def stop(self, task_id: str) -> Task:
        """Request a cooperative stop and mark the task ``stopped``."""
        task = self._get(task_id)
        if task.phase not in (TaskPhase.EXECUTING, TaskPhase.PLANNING):
            raise InvalidTransitionError(f"Task is not active (phase '{task.phase.value}')")
        signalled = self.orchestrator.stop_task(task_id)
        logger.log_task_status(task_id, TaskPhase.STOPPED.value, {"signalled": signalled})
        return self._move(task, TaskPhase.STOPPED, summary="Task stopped by user")

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _get(self, task_id: str) -> Task:
        task = self.store.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _require(self, task_id: str, phase: TaskPhase) -> Task:
        task = self._get(task_id)
        if task.phase is not phase:
            raise InvalidTransitionError(
                f"Task is not in phase '{phase.value}' (current phase '{task.phase.value}')"
            )
        return task

    def _move(self, task: Task, phase: TaskPhase, **fields: Any) -> Task:
        require_transition(task.phase, phase)
        # compare-and-set: a concurrent stop or finish makes ``task`` stale
        updated = self.store.update(task.id, expected_phase=task.phase, phase=phase, **fields)
        if updated is None:
            raise TaskNotFoundError(task.id)
        logger.log_task_status(task.id, phase.value, {"from": task.phase.value})
        task.phase = phase
        return updated

    def _start_run(self, task_id: str) -> None:
        task = self._get(task_id)
        limit = self.config.max_runs_per_task
        if limit and task.run_count >= limit:
            raise RunLimitExceeded(task_id, limit)
        self.store.update(task_id, run_count=task.run_count + 1)

    def _plan(self, task_id: str, goal: str, success_summary: str) -> Task:
        try:
            self._start_run(task_id)
        except RunLimitExceeded as e:
            return self._fail_without_run(task_id, str(e))

        response = self.orchestrator.handle_request(
            OrchestratorRequest(message=goal, task_id=task_id, mode=OrchestratorMode.PLAN)
        )
        if response.success:
            return self._finish(task_id, response, plan=response.plan, summary=success_summary)
        return self._finish(task_id, response, summary="Planning failed")

    def _execute(
        self,
        task: Task,
        message: str,
        continuation: Optional[ContinuationContext] = None,
        history: Optional[List[Dict[str, Any]]] = None,
    ) -> Task:
        try:
            self._start_run(task.id)
        except RunLimitExceeded as e:
            return self._fail_without_run(task.id, str(e))

        offset = len(self.store.list_steps(task.id))

        def on_step(step: StepResult) -> None:
            record = StepRecord(
                step_number=offset + step.step,
                tool=step.tool,
                input=step.input,
                output=step.output,
                success=step.success,
                duration_ms=step.duration_ms,
                error=step.error,
            )
            self.store.append_step(task.id, record)
            if self.on_step is not None:
                self.on_step(task.id, record)

        response = self.orchestrator.handle_request(OrchestratorRequest(
            message=message,
            task_id=task.id,
            mode=OrchestratorMode.EXECUTE,
            on_step=on_step,
            continuation=continuation,
            history=history or [],
        ))
        if response.error_step is not None:
            response.error_step += offset
        return self._finish(task.id, response)

    def _finish(self, task_id: str, response: OrchestratorResponse, **overrides: Any) -> Task:
        """Fold a run's response into the stored task."""
        task = self._get(task_id)
        fields: Dict[str, Any] = {
            "output": response.output,
            "summary": response.summary,
            "total_duration_ms": task.total_duration_ms + response.total_duration_ms,
            "total_cost": task.total_cost + response.total_cost,
        }
        if not response.success and response.phase is TaskPhase.FAILED:
            fields.update(
                error_reason=response.error_reason,
                error_recommendation=response.error_recommendation,
                error_step=response.error_step,
                can_continue=response.can_continue,
            )
        fields.update(overrides)

        try:
            updated = self._move(task, response.phase, **fields)
        except InvalidTransitionError:
            # a stop request that landed while the run was in flight wins
            if self._get(task_id).phase is not TaskPhase.STOPPED:
                raise
            fields.pop("summary", None)
            updated = self.store.update(task_id, **fields)

        logger.log_task_status(task_id, updated.phase.value, {
            "success": response.success,
            "cost": response.total_cost,
            "duration_ms": response.total_duration_ms,
            "steps": len(response.step_results),
        })
        return updated

    def _fail_without_run(self, task_id: str, reason: str) -> Task:
        task = self._get(task_id)
        return self._move(
            task,
            TaskPhase.FAILED,
            output=f"Error: {reason}",
            summary="Run limit reached",
            error_reason=reason,
            error_recommendation="Create a new task for this goal or raise TASKPILOT_MAX_RUNS_PER_TASK.",
            error_step=None,
            can_continue=False,
        )

    def _history(self, task: Task) -> List[Dict[str, Any]]:
        """Conversation turns for a follow-up run, oldest first."""
        turns = [
            {"role": "user", "content": f"Original task: {task.goal}\n\nLast answer:\n{task.output or 'No answer'}"},
            {"role": "assistant", "content": FOLLOW_UP_ACK},
        ]
        # the goal message is already part of the preamble
        messages = self.store.list_messages(task.id)[1:]
        for message in messages:
            turns.append(message.to_turn())
        return turns
