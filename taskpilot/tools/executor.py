#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tool dispatch and the executor boundary.

``ToolExecutor.execute`` maps a tool name onto a handler through a closed
``ToolName`` enum, validates the raw input into the tool's typed input, runs
the handler and always returns a ``ToolResult``. No exception raised by a
tool crosses this boundary; the model sees failures as results and decides
what to do next.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from taskpilot.config import AgentConfig, TOOL_RESULT_LIMIT
from taskpilot.debug_logger import get_logger
from taskpilot.tools import file_ops, shell_ops
from taskpilot.tools.catalog import INPUT_TYPES, ToolName
from taskpilot.tools.command_policy import CommandPolicy
from taskpilot.tools.command_runner import CommandResult
from taskpilot.tools.errors import ToolError, ToolErrorType, ToolException
from taskpilot.workspace import Workspace


logger = get_logger()

COMPLETE_PREFIX = "TASK_COMPLETE: "
REFUSAL_NOTE = (
    "This was refused by the workspace policy. Do not retry it or work around it; "
    "use a permitted tool or report the refusal to the user."
)


@dataclass
class ToolResult:
    """Outcome of one tool invocation."""

    success: bool
    output: str = ""
    error: Optional[str] = None
    error_type: Optional[ToolErrorType] = None
    duration_ms: int = 0
    completes_task: bool = False

    def to_model_content(self, limit: int = TOOL_RESULT_LIMIT) -> str:
        """Text fed back to the model as the tool result."""
        if self.success:
            content = self.output
        else:
            content = f"Error: {self.error}\n{self.output}" if self.output else f"Error: {self.error}"
            if self.error_type is not None and self.error_type.requires_user_input:
                content = f"{content}\n{REFUSAL_NOTE}"
        return content[:limit]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "error_type": self.error_type.value if self.error_type else None,
            "duration_ms": self.duration_ms,
        }


Handler = Callable[[Any, Optional[Callable[[], bool]]], Union[str, ToolResult]]


class ToolExecutor:
    """Runs catalog tools against one workspace."""

    def __init__(
        self,
        workspace: Workspace,
        config: Optional[AgentConfig] = None,
        policy: Optional[CommandPolicy] = None,
    ):
        self.workspace = workspace
        self.config = config or AgentConfig(workspace_root=workspace.root)
        self.policy = policy or CommandPolicy.from_yaml(self.config.policy_file)
        self._handlers: Dict[ToolName, Handler] = {
            ToolName.READ_FILE: self._read_file,
            ToolName.WRITE_FILE: self._write_file,
            ToolName.LIST_FILES: self._list_files,
            ToolName.EXECUTE_BASH: self._execute_bash,
            ToolName.GIT_COMMAND: self._git_command,
            ToolName.CREATE_DIRECTORY: self._create_directory,
            ToolName.DELETE_FILE: self._delete_file,
            ToolName.SEARCH_FILES: self._search_files,
            ToolName.TASK_COMPLETE: self._task_complete,
        }

    def execute(
        self,
        tool_name: str,
        tool_input: Any,
        should_abort: Optional[Callable[[], bool]] = None,
    ) -> ToolResult:
        """Execute a tool and return its result; never raises for tool failures."""
        start = time.time()
        try:
            tool = ToolName.parse(tool_name)
            typed_input = INPUT_TYPES[tool].from_dict(tool_input)
            self.workspace.ensure_exists()
            outcome = self._handlers[tool](typed_input, should_abort)
            result = outcome if isinstance(outcome, ToolResult) else ToolResult(success=True, output=outcome)
        except Exception as e:
            err = ToolError.from_exception(e, tool_name)
            result = ToolResult(success=False, error=err.message, error_type=err.error_type)
            if not isinstance(e, ToolException):
                logger.log_error("tools", e, {"tool": tool_name})

        result.duration_ms = int((time.time() - start) * 1000)
        logger.log_tool_execution(
            tool_name,
            tool_input if isinstance(tool_input, dict) else {"input": tool_input},
            result=result.output if result.success else None,
            error=None if result.success else result.error,
        )
        return result

    # ---- handlers -------------------------------------------------------

    def _read_file(self, inp, should_abort):
        return file_ops.read_file(self.workspace, self.config, inp.path)

    def _write_file(self, inp, should_abort):
        return file_ops.write_file(self.workspace, self.config, inp.path, inp.content)

    def _list_files(self, inp, should_abort):
        return file_ops.list_files(self.workspace, self.config, inp.path)

    def _create_directory(self, inp, should_abort):
        return file_ops.create_directory(self.workspace, self.config, inp.path)

    def _delete_file(self, inp, should_abort):
        return file_ops.delete_file(self.workspace, self.config, inp.path)

    def _search_files(self, inp, should_abort):
        return file_ops.search_files(self.workspace, self.config, inp.pattern, inp.content)

    def _execute_bash(self, inp, should_abort):
        return _from_command(shell_ops.execute_bash(
            self.workspace, self.config, self.policy, inp.command, inp.working_dir, should_abort
        ))

    def _git_command(self, inp, should_abort):
        return _from_command(shell_ops.git_command(
            self.workspace, self.config, self.policy, inp.command, should_abort
        ))

    def _task_complete(self, inp, should_abort):
        return ToolResult(success=True, output=f"{COMPLETE_PREFIX}{inp.summary}", completes_task=True)


def _from_command(result: CommandResult) -> ToolResult:
    if result.ok:
        return ToolResult(success=True, output=result.combined_output())
    output = result.stdout + result.stderr
    return ToolResult(
        success=False,
        output=output,
        error=f"Command failed with exit code {result.returncode}: {result.command}",
        error_type=ToolErrorType.EXECUTION_FAILURE,
    )
