"""Shared fixtures for the taskpilot test-suite."""

import os

import pytest

from taskpilot.config import AgentConfig
from taskpilot.execution.orchestrator import Orchestrator
from taskpilot.execution.registry import TaskRegistry
from taskpilot.llm.providers.scripted import ScriptedModelService
from taskpilot.tools.executor import ToolExecutor
from taskpilot.workspace import Workspace


# Keep debug logging off regardless of the developer's shell.
os.environ.pop("TASKPILOT_DEBUG", None)


@pytest.fixture
def workspace(tmp_path):
    return Workspace(tmp_path / "workspace").ensure_exists()


@pytest.fixture
def agent_config(workspace):
    return AgentConfig(
        workspace_root=workspace.root,
        max_iterations=10,
        model_timeout=10,
        model_max_retries=0,
        retry_base_ms=1,
        retry_max_ms=5,
        command_timeout=10,
        max_runs_per_task=0,
    )


@pytest.fixture
def executor(workspace, agent_config):
    return ToolExecutor(workspace, agent_config)


@pytest.fixture
def make_orchestrator(executor, agent_config):
    """Build an orchestrator around a scripted model service."""

    def _make(script, repeat_last=False, registry=None):
        model = ScriptedModelService(script, repeat_last=repeat_last)
        orchestrator = Orchestrator(model, executor, registry=registry or TaskRegistry(), config=agent_config)
        return orchestrator, model

    return _make
