#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Task repository contract and an in-memory implementation.

The orchestration core only needs get/create/update by id plus append-only
steps and messages; persistence schemas live with whoever implements
``TaskStore`` for real.
"""

import threading
from dataclasses import replace
from typing import Any, Dict, List, Optional, Protocol

from taskpilot.errors import InvalidTransitionError
from taskpilot.models.task import Message, StepRecord, Task, TaskPhase, utc_now


class TaskStore(Protocol):
    def get(self, task_id: str) -> Optional[Task]: ...

    def create(self, task_id: str, goal: str, phase: TaskPhase = TaskPhase.PLANNING) -> Task: ...

    def update(self, task_id: str, expected_phase: Optional[TaskPhase] = None, **fields: Any) -> Optional[Task]: ...

    def append_step(self, task_id: str, step: StepRecord) -> None: ...

    def append_message(self, task_id: str, role: str, content: str) -> None: ...

    def list_steps(self, task_id: str) -> List[StepRecord]: ...

    def clear_steps(self, task_id: str) -> None: ...

    def list_messages(self, task_id: str) -> List[Message]: ...


class InMemoryTaskStore:
    """Lock-guarded dict-backed store used by the CLI and tests."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tasks: Dict[str, Task] = {}
        self._steps: Dict[str, List[StepRecord]] = {}
        self._messages: Dict[str, List[Message]] = {}

    def get(self, task_id: str) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            return replace(task) if task else None

    def create(self, task_id: str, goal: str, phase: TaskPhase = TaskPhase.PLANNING) -> Task:
        with self._lock:
            if task_id in self._tasks:
                raise ValueError(f"Task already exists: {task_id}")
            task = Task(id=task_id, goal=goal, phase=phase)
            self._tasks[task_id] = task
            self._steps[task_id] = []
            self._messages[task_id] = []
            return replace(task)

    def update(self, task_id: str, expected_phase: Optional[TaskPhase] = None, **fields: Any) -> Optional[Task]:
        """Apply ``fields``; with ``expected_phase`` only if the task is still in it."""
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return None
            if expected_phase is not None and task.phase is not expected_phase:
                raise InvalidTransitionError(
                    f"Task {task_id} moved to '{task.phase.value}' (expected '{expected_phase.value}')"
                )
            for name, value in fields.items():
                if not hasattr(task, name):
                    raise AttributeError(f"Task has no field '{name}'")
                setattr(task, name, value)
            task.updated_at = utc_now()
            return replace(task)

    def append_step(self, task_id: str, step: StepRecord) -> None:
        with self._lock:
            self._steps.setdefault(task_id, []).append(step)

    def append_message(self, task_id: str, role: str, content: str) -> None:
        with self._lock:
            self._messages.setdefault(task_id, []).append(Message(role=role, content=content))

    def list_steps(self, task_id: str) -> List[StepRecord]:
        with self._lock:
            return list(self._steps.get(task_id, []))

    def clear_steps(self, task_id: str) -> None:
        with self._lock:
            self._steps[task_id] = []

    def list_messages(self, task_id: str) -> List[Message]:
        with self._lock:
            return list(self._messages.get(task_id, []))

    def list_tasks(self) -> List[Task]:
        with self._lock:
            return [replace(task) for task in self._tasks.values()]
