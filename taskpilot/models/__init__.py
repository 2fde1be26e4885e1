"""Data models for tasks, steps and messages."""

from taskpilot.models.task import (
    FINISHED_PHASES,
    Message,
    StepRecord,
    Task,
    TaskPhase,
    can_transition,
    require_transition,
)

__all__ = [
    "FINISHED_PHASES",
    "Message",
    "StepRecord",
    "Task",
    "TaskPhase",
    "can_transition",
    "require_transition",
]
