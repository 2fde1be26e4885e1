"""Orchestration: task registry, orchestrator and task lifecycle."""

from taskpilot.execution.registry import RunningTask, TaskRegistry
from taskpilot.execution.orchestrator import (
    ContinuationContext,
    Orchestrator,
    OrchestratorMode,
    OrchestratorRequest,
    OrchestratorResponse,
    StepResult,
)
from taskpilot.execution.lifecycle import TaskLifecycle

__all__ = [
    "RunningTask",
    "TaskRegistry",
    "ContinuationContext",
    "Orchestrator",
    "OrchestratorMode",
    "OrchestratorRequest",
    "OrchestratorResponse",
    "StepResult",
    "TaskLifecycle",
]
