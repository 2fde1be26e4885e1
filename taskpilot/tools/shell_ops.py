#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Shell and git tools built on the command policy and runner."""

from typing import Callable, Optional

from taskpilot.config import AgentConfig
from taskpilot.tools.command_policy import CommandPolicy
from taskpilot.tools.command_runner import CommandResult, run_shell
from taskpilot.tools.errors import CommandDenied, ToolValidationError
from taskpilot.workspace import Workspace


def execute_bash(
    ws: Workspace,
    limits: AgentConfig,
    policy: CommandPolicy,
    command: str,
    working_dir: Optional[str] = None,
    should_abort: Optional[Callable[[], bool]] = None,
) -> CommandResult:
    """Run an allowlisted shell command inside the workspace.

    Raises:
        CommandDenied: If the policy rejects the command.
        AccessDenied: If ``working_dir`` escapes the workspace.
    """
    decision = policy.check_command(command)
    if not decision.allowed:
        raise CommandDenied(f"Command not allowed: {decision.reason}", command=command)

    cwd = ws.root
    if working_dir:
        resolved = ws.resolve_path(working_dir, purpose="working directory")
        if not resolved.abs_path.is_dir():
            raise ToolValidationError(f"Working directory does not exist: {working_dir}")
        cwd = resolved.abs_path

    return run_shell(
        command,
        cwd=cwd,
        timeout=limits.command_timeout,
        max_output_bytes=limits.max_output_bytes,
        should_abort=should_abort,
    )


def git_command(
    ws: Workspace,
    limits: AgentConfig,
    policy: CommandPolicy,
    command: str,
    should_abort: Optional[Callable[[], bool]] = None,
) -> CommandResult:
    """Run ``git <command>`` after subcommand validation."""
    command = (command or "").strip()
    if command.startswith("git "):
        command = command[4:].strip()

    decision = policy.check_git(command)
    if not decision.allowed:
        raise CommandDenied(f"Command not allowed: {decision.reason}", command=f"git {command}")

    return run_shell(
        f"git {command}",
        cwd=ws.root,
        timeout=limits.command_timeout,
        max_output_bytes=limits.max_output_bytes,
        should_abort=should_abort,
    )
