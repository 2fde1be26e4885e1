"""
Sandboxed shell execution for the ``execute_bash`` and ``git_command`` tools.

Commands are run through ``bash -c`` (``sh -c`` when bash is missing) with:
- the workspace root as working directory
- a minimal environment (fixed PATH, HOME pointing at the workspace, C.UTF-8
  locale); nothing is inherited from the parent process, so API keys and
  other secrets never reach the child
- a wall-clock timeout and an output size cap, both enforced by a polling
  loop that kills the whole process group when either is exceeded
- optional cooperative cancellation through an ``should_abort`` callable

Policy checks happen in the caller; this module only executes.
"""

import os
import shutil
import signal
import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from taskpilot import config
from taskpilot.debug_logger import get_logger
from taskpilot.tools.errors import ResourceExceeded, ToolException


logger = get_logger()

POLL_INTERVAL = 0.1


@dataclass
class CommandResult:
    """Outcome of one shell invocation."""

    command: str
    returncode: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def combined_output(self) -> str:
        """stdout, followed by stderr under a marker line when present."""
        output = self.stdout
        if self.stderr:
            output = f"{output}\nSTDERR:\n{self.stderr}" if output else f"STDERR:\n{self.stderr}"
        return output or "(no output)"


def build_environment(workspace_root: Path) -> Dict[str, str]:
    return {
        "PATH": config.SAFE_PATH,
        "HOME": str(workspace_root),
        "LANG": "C.UTF-8",
        "LC_ALL": "C.UTF-8",
        "TERM": "dumb",
    }


def _shell() -> str:
    return shutil.which("bash", path=config.SAFE_PATH) or "/bin/sh"


def _kill_process_tree(proc: subprocess.Popen) -> None:
    try:
        if os.name != "nt":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except (ProcessLookupError, PermissionError):
        pass
    try:
        proc.wait(timeout=5)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


def _read_capped(handle, limit: int) -> str:
    handle.seek(0)
    data = handle.read(limit)
    return data.decode("utf-8", errors="replace")


def run_shell(
    command: str,
    *,
    cwd: Path,
    timeout: int = None,
    max_output_bytes: int = None,
    should_abort: Optional[Callable[[], bool]] = None,
) -> CommandResult:
    """Execute ``command`` in ``cwd`` and wait for it.

    Args:
        command: Full shell command line (already approved by the policy).
        cwd: Workspace root; also used as HOME.
        timeout: Wall-clock limit in seconds.
        max_output_bytes: Combined stdout+stderr cap in bytes.
        should_abort: Polled between checks; a True result kills the command.

    Raises:
        ResourceExceeded: If the timeout or output cap is hit.
        ToolException: If the command is cancelled or cannot be started.
    """
    timeout = timeout or config.COMMAND_TIMEOUT
    max_output_bytes = max_output_bytes or config.MAX_OUTPUT_BYTES
    cwd = Path(cwd)

    logger.log("tools", "SHELL_START", {"command": command, "cwd": str(cwd), "timeout": timeout}, "DEBUG")

    with tempfile.TemporaryFile() as out_f, tempfile.TemporaryFile() as err_f:
        start = time.time()
        try:
            proc = subprocess.Popen(
                [_shell(), "-c", command],
                cwd=str(cwd),
                env=build_environment(cwd),
                stdin=subprocess.DEVNULL,
                stdout=out_f,
                stderr=err_f,
                start_new_session=(os.name != "nt"),
            )
        except OSError as e:
            raise ToolException(f"Failed to start command: {e}", command=command)

        while proc.poll() is None:
            elapsed = time.time() - start
            if elapsed > timeout:
                _kill_process_tree(proc)
                raise ResourceExceeded(
                    f"Command timed out after {timeout}s",
                    limit=timeout,
                    command=command,
                    partial_output=_read_capped(out_f, 2000),
                )

            written = os.fstat(out_f.fileno()).st_size + os.fstat(err_f.fileno()).st_size
            if written > max_output_bytes:
                _kill_process_tree(proc)
                raise ResourceExceeded(
                    f"Command output exceeded {max_output_bytes} bytes",
                    limit=max_output_bytes,
                    command=command,
                )

            if should_abort is not None and should_abort():
                _kill_process_tree(proc)
                raise ToolException("Command cancelled: task was stopped", command=command)

            time.sleep(POLL_INTERVAL)

        duration_ms = int((time.time() - start) * 1000)
        written = os.fstat(out_f.fileno()).st_size + os.fstat(err_f.fileno()).st_size
        if written > max_output_bytes:
            raise ResourceExceeded(
                f"Command output exceeded {max_output_bytes} bytes",
                limit=max_output_bytes,
                command=command,
            )

        result = CommandResult(
            command=command,
            returncode=proc.returncode,
            stdout=_read_capped(out_f, max_output_bytes),
            stderr=_read_capped(err_f, max_output_bytes),
            duration_ms=duration_ms,
        )

    logger.log("tools", "SHELL_END", {"command": command, "rc": result.returncode, "duration_ms": duration_ms}, "DEBUG")
    return result
