"""Orchestration-level exceptions."""


class OrchestrationError(Exception):
    """Base class for failures that end an orchestration run or lifecycle action."""


class IterationLimitExceeded(OrchestrationError):
    """The tool loop reached its iteration ceiling without completing."""

    def __init__(self, limit: int):
        super().__init__(f"Maximum iterations ({limit}) reached without completing the task")
        self.limit = limit


class TaskAlreadyRunningError(OrchestrationError):
    """A second concurrent run was requested for a task id."""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} is already running")
        self.task_id = task_id


class InvalidTransitionError(OrchestrationError):
    """A lifecycle action is not valid from the task's current phase."""


class TaskNotFoundError(OrchestrationError):
    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class RunLimitExceeded(OrchestrationError):
    """The per-task run cap was reached."""

    def __init__(self, task_id: str, limit: int):
        super().__init__(f"Task {task_id} has reached the maximum of {limit} runs")
        self.task_id = task_id
        self.limit = limit
