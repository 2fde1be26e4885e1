#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Configuration constants and settings for taskpilot."""

from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass, field
from typing import Optional


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# Workspace the tool executor is confined to
WORKSPACE_ROOT = pathlib.Path(
    os.getenv("TASKPILOT_WORKSPACE") or os.getenv("AGENT_WORKSPACE") or "workspace"
).expanduser()

# ============================================================================
# Tool loop limits
# ============================================================================
MAX_ITERATIONS = _env_int("TASKPILOT_MAX_ITERATIONS", 50)

# File I/O caps
MAX_FILE_BYTES = _env_int("TASKPILOT_MAX_FILE_BYTES", 1024 * 1024)
READ_RETURN_LIMIT = _env_int("TASKPILOT_READ_RETURN_LIMIT", 100_000)
MAX_WRITE_BYTES = _env_int("TASKPILOT_MAX_WRITE_BYTES", 5 * 1024 * 1024)
LIST_LIMIT = _env_int("TASKPILOT_LIST_LIMIT", 2000)
MAX_DELETE_FILES = _env_int("TASKPILOT_MAX_DELETE_FILES", 1000)

# Search caps
SEARCH_RESULT_LIMIT = _env_int("TASKPILOT_SEARCH_RESULT_LIMIT", 500)
CONTENT_SEARCH_FILE_LIMIT = _env_int("TASKPILOT_CONTENT_SEARCH_FILE_LIMIT", 200)
MATCHES_PER_FILE = _env_int("TASKPILOT_MATCHES_PER_FILE", 5)
MATCH_LINE_PREVIEW = 100

# Shell execution
COMMAND_TIMEOUT = _env_int("TASKPILOT_COMMAND_TIMEOUT", 120)
MAX_OUTPUT_BYTES = _env_int("TASKPILOT_MAX_OUTPUT_BYTES", 10 * 1024 * 1024)
SAFE_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"

# Truncation of tool output recorded on steps / fed back to the model
STEP_OUTPUT_LIMIT = 2000
TOOL_RESULT_LIMIT = 10_000
SUMMARY_LIMIT = 300

# Directories skipped by search_files
EXCLUDE_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", ".taskpilot"}

# Optional YAML file extending the command allowlist
POLICY_FILE = os.getenv("TASKPILOT_POLICY_FILE", "").strip() or None

# ============================================================================
# Model service
# ============================================================================
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")
ANTHROPIC_MAX_TOKENS = _env_int("ANTHROPIC_MAX_TOKENS", 8192)

# Claude Sonnet pricing in USD per million tokens
INPUT_COST_PER_MTOK = _env_float("TASKPILOT_INPUT_COST_PER_MTOK", 3.0)
OUTPUT_COST_PER_MTOK = _env_float("TASKPILOT_OUTPUT_COST_PER_MTOK", 15.0)

MODEL_MAX_RETRIES = _env_int("TASKPILOT_MODEL_MAX_RETRIES", 3)
RETRY_BASE_MS = _env_float("TASKPILOT_RETRY_BASE_MS", 1000)
RETRY_MAX_MS = _env_float("TASKPILOT_RETRY_MAX_MS", 30000)
MODEL_TIMEOUT = _env_float("TASKPILOT_MODEL_TIMEOUT", 300)

# 0 means a task may be re-run any number of times
MAX_RUNS_PER_TASK = _env_int("TASKPILOT_MAX_RUNS_PER_TASK", 0)

# ============================================================================
# Logging
# ============================================================================
DEBUG_ENABLED = os.getenv("TASKPILOT_DEBUG", "").lower() in {"1", "true", "yes"}
LOG_DIR = os.getenv("TASKPILOT_LOG_DIR", "").strip() or None
LOG_RETENTION_LIMIT = _env_int("TASKPILOT_LOG_RETENTION", 7)


@dataclass
class AgentConfig:
    """Settings consumed by the orchestrator and tool executor."""

    workspace_root: pathlib.Path = field(default_factory=lambda: WORKSPACE_ROOT)
    max_iterations: int = MAX_ITERATIONS
    max_file_bytes: int = MAX_FILE_BYTES
    read_return_limit: int = READ_RETURN_LIMIT
    max_write_bytes: int = MAX_WRITE_BYTES
    list_limit: int = LIST_LIMIT
    max_delete_files: int = MAX_DELETE_FILES
    search_result_limit: int = SEARCH_RESULT_LIMIT
    content_search_file_limit: int = CONTENT_SEARCH_FILE_LIMIT
    matches_per_file: int = MATCHES_PER_FILE
    command_timeout: int = COMMAND_TIMEOUT
    max_output_bytes: int = MAX_OUTPUT_BYTES
    input_cost_per_mtok: float = INPUT_COST_PER_MTOK
    output_cost_per_mtok: float = OUTPUT_COST_PER_MTOK
    model_max_retries: int = MODEL_MAX_RETRIES
    retry_base_ms: float = RETRY_BASE_MS
    retry_max_ms: float = RETRY_MAX_MS
    model_timeout: float = MODEL_TIMEOUT
    max_runs_per_task: int = MAX_RUNS_PER_TASK
    policy_file: Optional[pathlib.Path] = None

    def __post_init__(self) -> None:
        self.workspace_root = pathlib.Path(self.workspace_root).expanduser()
        if self.policy_file is not None:
            self.policy_file = pathlib.Path(self.policy_file)

    @classmethod
    def from_env(cls, **overrides) -> "AgentConfig":
        """Create a config from environment variables, applying overrides."""
        values = {
            "workspace_root": pathlib.Path(
                os.getenv("TASKPILOT_WORKSPACE") or os.getenv("AGENT_WORKSPACE") or "workspace"
            ),
            "max_iterations": _env_int("TASKPILOT_MAX_ITERATIONS", 50),
            "max_file_bytes": _env_int("TASKPILOT_MAX_FILE_BYTES", 1024 * 1024),
            "read_return_limit": _env_int("TASKPILOT_READ_RETURN_LIMIT", 100_000),
            "max_write_bytes": _env_int("TASKPILOT_MAX_WRITE_BYTES", 5 * 1024 * 1024),
            "list_limit": _env_int("TASKPILOT_LIST_LIMIT", 2000),
            "max_delete_files": _env_int("TASKPILOT_MAX_DELETE_FILES", 1000),
            "search_result_limit": _env_int("TASKPILOT_SEARCH_RESULT_LIMIT", 500),
            "content_search_file_limit": _env_int("TASKPILOT_CONTENT_SEARCH_FILE_LIMIT", 200),
            "matches_per_file": _env_int("TASKPILOT_MATCHES_PER_FILE", 5),
            "command_timeout": _env_int("TASKPILOT_COMMAND_TIMEOUT", 120),
            "max_output_bytes": _env_int("TASKPILOT_MAX_OUTPUT_BYTES", 10 * 1024 * 1024),
            "input_cost_per_mtok": _env_float("TASKPILOT_INPUT_COST_PER_MTOK", 3.0),
            "output_cost_per_mtok": _env_float("TASKPILOT_OUTPUT_COST_PER_MTOK", 15.0),
            "model_max_retries": _env_int("TASKPILOT_MODEL_MAX_RETRIES", 3),
            "retry_base_ms": _env_float("TASKPILOT_RETRY_BASE_MS", 1000),
            "retry_max_ms": _env_float("TASKPILOT_RETRY_MAX_MS", 30000),
            "model_timeout": _env_float("TASKPILOT_MODEL_TIMEOUT", 300),
            "max_runs_per_task": _env_int("TASKPILOT_MAX_RUNS_PER_TASK", 0),
        }
        policy_file = os.getenv("TASKPILOT_POLICY_FILE", "").strip()
        if policy_file:
            values["policy_file"] = pathlib.Path(policy_file)
        values.update(overrides)
        return cls(**values)

    def cost_for(self, input_tokens: int, output_tokens: int) -> float:
        """Return the USD cost of the given token usage."""
        return (
            input_tokens * self.input_cost_per_mtok
            + output_tokens * self.output_cost_per_mtok
        ) / 1_000_000

    @property
    def log_dir(self) -> pathlib.Path:
        if LOG_DIR:
            return pathlib.Path(LOG_DIR)
        return self.workspace_root / ".taskpilot" / "logs"
