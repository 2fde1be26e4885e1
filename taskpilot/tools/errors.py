#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Error taxonomy for sandboxed tool execution.

Tool handlers raise the exceptions defined here; the executor converts every
one of them into a failed ``ToolResult`` so nothing escapes to the tool loop.
The ``ToolErrorType`` carried on each result lets the model (and the caller)
tell a policy refusal apart from a tool that simply ran and failed.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class ToolErrorType(Enum):
    """Categories of tool failure reported back to the model.

    - ACCESS_DENIED: path escaped the workspace
    - COMMAND_DENIED: shell or git command rejected by policy
    - RESOURCE_EXCEEDED: size, output or time cap was hit
    - VALIDATION_ERROR: malformed tool input or unknown tool
    - NOT_FOUND: target file or directory does not exist
    - EXECUTION_FAILURE: the tool ran and reported failure (non-zero exit)
    - OS_ERROR: passthrough filesystem/OS error
    """

    ACCESS_DENIED = "access_denied"
    COMMAND_DENIED = "command_denied"
    RESOURCE_EXCEEDED = "resource_exceeded"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    EXECUTION_FAILURE = "execution_failure"
    OS_ERROR = "os_error"

    @property
    def requires_user_input(self) -> bool:
        """Policy refusals are surfaced to the user, never corrected automatically."""
        return self in {ToolErrorType.ACCESS_DENIED, ToolErrorType.COMMAND_DENIED}


class ToolException(Exception):
    """Base class for failures raised inside tool handlers."""

    error_type = ToolErrorType.EXECUTION_FAILURE

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def __str__(self) -> str:
        return self.message


class AccessDenied(ToolException):
    """Path resolved outside the workspace root."""

    error_type = ToolErrorType.ACCESS_DENIED


class CommandDenied(ToolException):
    """Command rejected by the command policy."""

    error_type = ToolErrorType.COMMAND_DENIED


class ResourceExceeded(ToolException):
    """A size, output or wall-clock limit was hit."""

    error_type = ToolErrorType.RESOURCE_EXCEEDED

    def __init__(self, message: str, limit: Any = None, **context: Any):
        super().__init__(message, limit=limit, **context)
        self.limit = limit


class ToolValidationError(ToolException):
    """Malformed tool input or an unknown tool name."""

    error_type = ToolErrorType.VALIDATION_ERROR


class ToolNotFound(ToolException):
    """Target path does not exist."""

    error_type = ToolErrorType.NOT_FOUND


@dataclass
class ToolError:
    """Structured error attached to a failed tool result."""

    error_type: ToolErrorType
    message: str
    context: Dict[str, Any] = field(default_factory=dict)
    original_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_type": self.error_type.value,
            "context": self.context,
            "original_error": self.original_error,
        }

    @classmethod
    def from_exception(cls, exc: BaseException, tool_name: str) -> "ToolError":
        """Classify an exception raised while running ``tool_name``."""
        if isinstance(exc, ToolException):
            context = dict(exc.context)
            context.setdefault("tool", tool_name)
            return cls(error_type=exc.error_type, message=exc.message, context=context)

        error_type = cls._classify_exception(exc)
        return cls(
            error_type=error_type,
            message=f"{tool_name}: {exc}",
            context={"exception_type": type(exc).__name__, "tool": tool_name},
            original_error=str(exc),
        )

    @staticmethod
    def _classify_exception(exc: BaseException) -> ToolErrorType:
        if isinstance(exc, FileNotFoundError):
            return ToolErrorType.NOT_FOUND
        if isinstance(exc, TimeoutError):
            return ToolErrorType.RESOURCE_EXCEEDED
        if isinstance(exc, (ValueError, KeyError, TypeError)):
            return ToolErrorType.VALIDATION_ERROR
        if isinstance(exc, OSError):
            return ToolErrorType.OS_ERROR
        return ToolErrorType.EXECUTION_FAILURE
