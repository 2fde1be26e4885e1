"""Registry of running tasks and their cooperative cancellation flags."""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List

from taskpilot.debug_logger import get_logger
from taskpilot.errors import TaskAlreadyRunningError


logger = get_logger()


@dataclass
class RunningTask:
    """Entry for one active execute run."""
    task_id: str
    aborted: bool = False


class TaskRegistry:
    """Maps task ids to abort flags for the duration of an execute run.

    At most one entry exists per task id; presence means the task is
    currently executing. Entries are inserted and removed through
    :meth:`track` so removal happens on every exit path.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._running: Dict[str, RunningTask] = {}

    @contextmanager
    def track(self, task_id: str) -> Iterator[RunningTask]:
        """Register ``task_id`` as running for the duration of the block.

        Raises:
            TaskAlreadyRunningError: If the task already has an active run.
        """
        with self._lock:
            if task_id in self._running:
                raise TaskAlreadyRunningError(task_id)
            entry = RunningTask(task_id=task_id)
            self._running[task_id] = entry
        logger.log("registry", "TASK_REGISTERED", {"task_id": task_id}, "DEBUG")
        try:
            yield entry
        finally:
            with self._lock:
                if self._running.get(task_id) is entry:
                    del self._running[task_id]
            logger.log("registry", "TASK_UNREGISTERED", {"task_id": task_id, "aborted": entry.aborted}, "DEBUG")

    def abort(self, task_id: str) -> bool:
        """Set the aborted flag; returns False if the task is not running."""
        with self._lock:
            entry = self._running.get(task_id)
            if entry is None:
                return False
            entry.aborted = True
        logger.log("registry", "TASK_ABORT_REQUESTED", {"task_id": task_id})
        return True

    def is_aborted(self, task_id: str) -> bool:
        with self._lock:
            entry = self._running.get(task_id)
            return bool(entry and entry.aborted)

    def is_running(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._running

    def running_ids(self) -> List[str]:
        with self._lock:
            return list(self._running)
