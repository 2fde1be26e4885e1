#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Task, step and message models plus the task phase machine."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from taskpilot.errors import InvalidTransitionError


class TaskPhase(Enum):
    PLANNING = "planning"
    AWAITING_APPROVAL = "awaiting_approval"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"
    REJECTED = "rejected"

    @property
    def is_finished(self) -> bool:
        """Terminal for now; every finished phase can be resumed by a new run."""
        return self in FINISHED_PHASES


FINISHED_PHASES: FrozenSet[TaskPhase] = frozenset({
    TaskPhase.COMPLETED,
    TaskPhase.FAILED,
    TaskPhase.STOPPED,
    TaskPhase.REJECTED,
})

_RESUME = frozenset({TaskPhase.PLANNING, TaskPhase.EXECUTING})

TRANSITIONS: Dict[TaskPhase, FrozenSet[TaskPhase]] = {
    TaskPhase.PLANNING: frozenset({TaskPhase.AWAITING_APPROVAL, TaskPhase.FAILED, TaskPhase.STOPPED}),
    TaskPhase.AWAITING_APPROVAL: frozenset({
        TaskPhase.EXECUTING,
        TaskPhase.REJECTED,
        TaskPhase.PLANNING,
        TaskPhase.AWAITING_APPROVAL,  # plan edited in place
    }),
    TaskPhase.EXECUTING: frozenset({TaskPhase.COMPLETED, TaskPhase.FAILED, TaskPhase.STOPPED}),
    TaskPhase.COMPLETED: _RESUME,
    TaskPhase.FAILED: _RESUME,
    TaskPhase.STOPPED: _RESUME,
    TaskPhase.REJECTED: _RESUME,
}


def can_transition(src: TaskPhase, dst: TaskPhase) -> bool:
    return dst in TRANSITIONS.get(src, frozenset())


def require_transition(src: TaskPhase, dst: TaskPhase) -> None:
    if not can_transition(src, dst):
        raise InvalidTransitionError(f"Cannot move task from '{src.value}' to '{dst.value}'")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Task:
    """A user goal and the accumulated state of every run against it."""
    id: str
    goal: str
    phase: TaskPhase = TaskPhase.PLANNING
    plan: Optional[str] = None
    output: Optional[str] = None
    summary: Optional[str] = None
    total_duration_ms: int = 0
    total_cost: float = 0.0
    error_reason: Optional[str] = None
    error_recommendation: Optional[str] = None
    error_step: Optional[int] = None
    can_continue: Optional[bool] = None
    run_count: int = 0
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        values = dict(data)
        values["phase"] = TaskPhase(values.get("phase", TaskPhase.PLANNING.value))
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in values.items() if k in known})


@dataclass(frozen=True)
class StepRecord:
    """One recorded tool invocation. Steps are append-only."""
    step_number: int
    tool: str
    input: Dict[str, Any]
    output: str
    success: bool
    duration_ms: int
    error: Optional[str] = None
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepRecord":
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class Message:
    """A chat message on a task (user goal, follow-ups, assistant replies)."""
    role: str
    content: str
    created_at: str = field(default_factory=utc_now)

    def to_turn(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}
