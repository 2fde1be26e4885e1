#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Main entry point for the taskpilot CLI."""

import argparse
import sys
import threading
from pathlib import Path
from typing import Optional, Tuple

from . import config
from ._version import TASKPILOT_VERSION
from .debug_logger import DebugLogger
from .errors import OrchestrationError
from .execution.lifecycle import TaskLifecycle
from .execution.orchestrator import Orchestrator
from .llm.providers.anthropic_provider import AnthropicProvider
from .llm.providers.base import ModelService
from .llm.providers.scripted import ScriptedModelService
from .models.task import StepRecord, Task, TaskPhase
from .store import InMemoryTaskStore
from .tools.command_policy import CommandPolicy
from .tools.executor import ToolExecutor
from .workspace import Workspace


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskpilot",
        description="taskpilot - plan, approve and execute coding tasks in a sandboxed workspace",
    )
    parser.add_argument(
        "goal",
        nargs="*",
        help="Task description (read from stdin when omitted)"
    )
    parser.add_argument(
        "--workspace",
        default=None,
        metavar="DIR",
        help=f"Workspace root the agent is confined to (default: {config.WORKSPACE_ROOT})"
    )
    parser.add_argument(
        "--plan-only",
        action="store_true",
        help="Create and print the plan, then stop"
    )
    parser.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Approve the plan without prompting"
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        metavar="N",
        help=f"Tool-loop iteration ceiling (default: {config.MAX_ITERATIONS})"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Write a debug log under the workspace (.taskpilot/logs)"
    )
    parser.add_argument(
        "--dry-run",
        default=None,
        metavar="SCRIPT.json",
        help="Replay scripted model responses instead of calling the API"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"taskpilot {TASKPILOT_VERSION}"
    )
    return parser


def build_lifecycle(args: argparse.Namespace) -> Tuple[TaskLifecycle, config.AgentConfig]:
    """Wire config, workspace, tools, model service and store together."""
    overrides = {}
    if args.workspace:
        overrides["workspace_root"] = Path(args.workspace)
    if args.max_iterations is not None:
        overrides["max_iterations"] = args.max_iterations
    agent_config = config.AgentConfig.from_env(**overrides)

    workspace = Workspace(agent_config.workspace_root)
    workspace.ensure_exists()

    if args.debug:
        DebugLogger.initialize(enabled=True, log_dir=agent_config.log_dir)

    model: ModelService
    if args.dry_run:
        model = ScriptedModelService.from_file(args.dry_run)
    else:
        model = AnthropicProvider()

    policy = CommandPolicy.from_yaml(agent_config.policy_file)
    executor = ToolExecutor(workspace, agent_config, policy)
    orchestrator = Orchestrator(model, executor, config=agent_config)
    lifecycle = TaskLifecycle(InMemoryTaskStore(), orchestrator, agent_config, on_step=print_step)
    return lifecycle, agent_config


def print_step(task_id: str, step: StepRecord) -> None:
    mark = "✓" if step.success else "✗"
    detail = ", ".join(f"{k}={str(v)[:60]!r}" for k, v in (step.input or {}).items())
    print(f"  {mark} [{step.step_number}] {step.tool}({detail}) {step.duration_ms}ms")
    if not step.success and step.error:
        print(f"      {step.error}")


def print_result(task: Task) -> None:
    print()
    print(f"Phase: {task.phase.value}")
    if task.summary:
        print(f"Summary: {task.summary}")
    print(f"Cost: ${task.total_cost:.4f}  Duration: {task.total_duration_ms / 1000:.1f}s")
    if task.phase is TaskPhase.FAILED:
        if task.error_reason:
            print(f"Reason: {task.error_reason}")
        if task.error_step is not None:
            print(f"Failed at step: {task.error_step}")
        if task.error_recommendation:
            print(f"Recommendation: {task.error_recommendation}")


def confirm(prompt: str) -> bool:
    try:
        response = input(prompt)
    except EOFError:
        return False
    return response.strip().lower() in ("y", "yes")


def run_execution(lifecycle: TaskLifecycle, task_id: str) -> Task:
    """Run ``approve`` on a worker thread so Ctrl-C can request a cooperative stop."""
    outcome = {}

    def _target() -> None:
        try:
            outcome["task"] = lifecycle.approve(task_id)
        except Exception as e:
            outcome["error"] = e

    worker = threading.Thread(target=_target, name=f"taskpilot-{task_id}", daemon=True)
    worker.start()

    stop_requested = False
    while worker.is_alive():
        try:
            worker.join(0.1)
        except KeyboardInterrupt:
            if stop_requested:
                continue
            stop_requested = True
            print("\n[!] Stopping after the current step...")
            try:
                lifecycle.stop(task_id)
            except OrchestrationError as e:
                print(f"  {e}")

    if "error" in outcome:
        raise outcome["error"]
    return outcome["task"]


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the taskpilot CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    goal = " ".join(args.goal).strip()
    if not goal and not sys.stdin.isatty():
        goal = sys.stdin.read().strip()
    if not goal:
        parser.error("a goal is required")

    try:
        lifecycle, agent_config = build_lifecycle(args)
    except (OSError, ValueError) as e:
        print(f"✗ {e}")
        return 1

    print(f"taskpilot {TASKPILOT_VERSION}")
    print(f"Workspace: {agent_config.workspace_root}")
    print()

    try:
        task = lifecycle.submit(goal)
        if task.phase is not TaskPhase.AWAITING_APPROVAL:
            print_result(task)
            return 1

        print("Plan:\n")
        print(task.plan)
        print()

        if args.plan_only:
            return 0

        if not args.yes and not confirm("Execute this plan? (y/N): "):
            task = lifecycle.reject(task.id)
            print("Plan rejected")
            return 1

        print("Executing...\n")
        task = run_execution(lifecycle, task.id)
        print_result(task)
        return 0 if task.phase is TaskPhase.COMPLETED else 1
    except KeyboardInterrupt:
        print("\nAborted by user")
        return 130
    finally:
        DebugLogger.get_instance().close()


if __name__ == "__main__":
    sys.exit(main())
