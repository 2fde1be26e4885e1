#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""taskpilot - plan/approve/execute agent with a sandboxed tool executor."""

from taskpilot._version import TASKPILOT_VERSION

__version__ = TASKPILOT_VERSION

# Configuration
from taskpilot.config import AgentConfig
from taskpilot.workspace import Workspace

# Core models
from taskpilot.models import Task, TaskPhase, StepRecord, Message

# Orchestration
from taskpilot.execution import (
    Orchestrator,
    OrchestratorRequest,
    OrchestratorResponse,
    TaskLifecycle,
    TaskRegistry,
)
from taskpilot.store import InMemoryTaskStore, TaskStore
from taskpilot.tools.executor import ToolExecutor, ToolResult

__all__ = [
    "__version__",
    "AgentConfig",
    "Workspace",
    "Task",
    "TaskPhase",
    "StepRecord",
    "Message",
    "Orchestrator",
    "OrchestratorRequest",
    "OrchestratorResponse",
    "TaskLifecycle",
    "TaskRegistry",
    "InMemoryTaskStore",
    "TaskStore",
    "ToolExecutor",
    "ToolResult",
]
