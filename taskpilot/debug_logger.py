#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Structured debug logging for taskpilot runs.

Enabled with ``--debug`` or ``TASKPILOT_DEBUG=1``. Each process writes one
session file under the log directory; events are recorded as
``[EVENT] {json}`` lines tagged with the emitting component so that a run can
be replayed step by step when something goes wrong.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from taskpilot import config


def prune_old_logs(log_dir: Path, keep: int) -> None:
    """Delete session logs beyond the newest ``keep`` files."""
    if keep < 1 or not log_dir.exists():
        return

    sessions = sorted(
        (path for path in log_dir.glob("taskpilot_*.log") if path.is_file()),
        key=lambda path: path.stat().st_mtime,
        reverse=True,
    )
    for stale in sessions[keep:]:
        try:
            stale.unlink()
        except OSError:
            continue


class DebugLogger:
    """Process-wide structured logger, a no-op unless enabled."""

    _instance: Optional["DebugLogger"] = None

    def __init__(self, enabled: bool = False, log_dir: Optional[Path] = None):
        self._enabled = False
        self._log_file: Optional[Path] = None
        self._loggers: Dict[str, logging.Logger] = {}

        if enabled:
            self.enable(log_dir)

    def enable(self, log_dir: Optional[Path] = None) -> None:
        """Start writing to a new session file; no-op if already enabled."""
        if self._enabled:
            return

        if log_dir is None:
            log_dir = Path(config.LOG_DIR) if config.LOG_DIR else config.WORKSPACE_ROOT / ".taskpilot" / "logs"
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        self._enabled = True

        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self._log_file = log_dir / f"taskpilot_{stamp}.log"
        self._setup_logging()
        prune_old_logs(log_dir, config.LOG_RETENTION_LIMIT)

        self.log("system", "SESSION_START", {
            "timestamp": datetime.now().isoformat(),
            "log_file": str(self._log_file),
            "cwd": str(Path.cwd()),
        })

    @classmethod
    def initialize(cls, enabled: bool = False, log_dir: Optional[Path] = None) -> "DebugLogger":
        """Create the global instance, or switch an existing one on."""
        if cls._instance is None:
            cls._instance = cls(enabled, log_dir)
        elif enabled:
            cls._instance.enable(log_dir)
        return cls._instance

    @classmethod
    def get_instance(cls) -> "DebugLogger":
        if cls._instance is None:
            cls._instance = cls(enabled=config.DEBUG_ENABLED)
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Close and drop the global instance."""
        if cls._instance is not None:
            cls._instance.close()
        cls._instance = None

    def _setup_logging(self) -> None:
        formatter = logging.Formatter(
            "%(asctime)s | %(name)-24s | %(levelname)-8s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler = logging.FileHandler(self._log_file, mode="w", encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(formatter)

        root = logging.getLogger("taskpilot")
        root.setLevel(logging.DEBUG)
        root.addHandler(handler)
        root.propagate = False

    def get_logger(self, component: str) -> logging.Logger:
        if component not in self._loggers:
            self._loggers[component] = logging.getLogger(f"taskpilot.{component}")
        return self._loggers[component]

    def log(self, component: str, event: str, data: Optional[Dict[str, Any]] = None, level: str = "INFO") -> None:
        """Record a structured event.

        Args:
            component: Emitting subsystem (e.g. 'orchestrator', 'tools', 'llm')
            event: Upper-case event name
            data: Optional payload, serialized as JSON
            level: Log level name
        """
        if not self._enabled:
            return

        message = f"[{event}]"
        if data:
            message += f" {json.dumps(data, indent=2, default=str)}"
        self.get_logger(component).log(getattr(logging, level.upper(), logging.INFO), message)

    def log_llm_request(self, model: str, turns: list, tools: Optional[list] = None) -> None:
        if not self._enabled:
            return

        data: Dict[str, Any] = {
            "model": model,
            "turn_count": len(turns),
            "turns": [
                {"role": turn.get("role"), "content": str(turn.get("content", ""))[:500]}
                for turn in turns
            ],
        }
        if tools:
            data["tools"] = [tool.get("name") for tool in tools]
        self.log("llm", "LLM_REQUEST", data, "DEBUG")

    def log_llm_response(self, model: str, stop_reason: Optional[str], usage: Any, invocations: list) -> None:
        if not self._enabled:
            return

        self.log("llm", "LLM_RESPONSE", {
            "model": model,
            "stop_reason": stop_reason,
            "usage": usage,
            "tool_calls": [
                {"name": inv.name, "input_preview": str(inv.input)[:200]}
                for inv in invocations
            ],
        }, "DEBUG")

    def log_tool_execution(self, tool_name: str, arguments: dict, result: Any = None, error: Optional[str] = None) -> None:
        if not self._enabled:
            return

        data: Dict[str, Any] = {
            "tool": tool_name,
            "arguments": {k: str(v)[:200] for k, v in (arguments or {}).items()},
        }
        if error:
            data["error"] = str(error)
            level = "WARNING"
        else:
            data["result_preview"] = str(result)[:500] if result is not None else None
            level = "DEBUG"
        self.log("tools", "TOOL_EXECUTION", data, level)

    def log_task_status(self, task_id: str, phase: str, details: Optional[Dict[str, Any]] = None) -> None:
        if not self._enabled:
            return

        data: Dict[str, Any] = {"task_id": task_id, "phase": phase}
        if details:
            data["details"] = details
        self.log("lifecycle", "TASK_STATUS_CHANGE", data, "INFO")

    def log_error(self, component: str, error: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
        if not self._enabled:
            return

        data: Dict[str, Any] = {
            "error_type": type(error).__name__,
            "error_message": str(error),
        }
        if context:
            data["context"] = context
        self.log(component, "ERROR", data, "ERROR")

    def log_workflow_phase(self, phase: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Record the orchestrator entering a plan/execute/diagnose phase."""
        if not self._enabled:
            return

        data: Dict[str, Any] = {"phase": phase}
        if details:
            data.update(details)
        self.log("orchestrator", "WORKFLOW_PHASE", data, "INFO")

    def _log_plain(self, level: str, msg: str, *args: Any) -> None:
        if not self._enabled:
            return
        self.get_logger("general").log(getattr(logging, level, logging.INFO), msg, *args)

    def info(self, msg: str, *args: Any) -> None:
        self._log_plain("INFO", msg, *args)

    def warning(self, msg: str, *args: Any) -> None:
        self._log_plain("WARNING", msg, *args)

    def error(self, msg: str, *args: Any) -> None:
        self._log_plain("ERROR", msg, *args)

    def debug(self, msg: str, *args: Any) -> None:
        self._log_plain("DEBUG", msg, *args)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def log_file_path(self) -> Optional[Path]:
        return self._log_file

    def close(self) -> None:
        """Write the session end marker and release file handlers."""
        if not self._enabled:
            return

        self.log("system", "SESSION_END", {"timestamp": datetime.now().isoformat()})
        root = logging.getLogger("taskpilot")
        for handler in root.handlers[:]:
            handler.close()
            root.removeHandler(handler)
        self._enabled = False


def get_logger() -> DebugLogger:
    """Return the global debug logger."""
    return DebugLogger.get_instance()


def is_debug_enabled() -> bool:
    return get_logger().enabled
