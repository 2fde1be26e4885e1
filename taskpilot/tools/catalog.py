#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tool catalog advertised to the model and the typed inputs for each tool."""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from taskpilot.tools.errors import ToolValidationError


class ToolName(str, Enum):
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    LIST_FILES = "list_files"
    EXECUTE_BASH = "execute_bash"
    GIT_COMMAND = "git_command"
    CREATE_DIRECTORY = "create_directory"
    DELETE_FILE = "delete_file"
    SEARCH_FILES = "search_files"
    TASK_COMPLETE = "task_complete"

    @classmethod
    def parse(cls, name: str) -> "ToolName":
        try:
            return cls(name)
        except ValueError:
            raise ToolValidationError(f"Unknown tool: {name}", tool=name)


class ToolInput:
    """Base for typed tool inputs; ``from_dict`` validates field presence and types."""

    _required: tuple = ()

    @classmethod
    def from_dict(cls: Type["ToolInput"], data: Any) -> "ToolInput":
        if not isinstance(data, dict):
            raise ToolValidationError(f"Tool input must be an object, got {type(data).__name__}")

        values: Dict[str, Any] = {}
        for f in fields(cls):
            value = data.get(f.name)
            if value is None:
                if f.name in cls._required:
                    raise ToolValidationError(f"Missing required field '{f.name}'", field=f.name)
                continue
            if not isinstance(value, str):
                raise ToolValidationError(
                    f"Field '{f.name}' must be a string, got {type(value).__name__}",
                    field=f.name,
                )
            values[f.name] = value
        return cls(**values)


@dataclass
class PathInput(ToolInput):
    path: str = "."
    _required = ("path",)


@dataclass
class ListFilesInput(ToolInput):
    path: str = "."


@dataclass
class WriteFileInput(ToolInput):
    path: str = ""
    content: str = ""
    _required = ("path", "content")


@dataclass
class ExecuteBashInput(ToolInput):
    command: str = ""
    working_dir: Optional[str] = None
    _required = ("command",)


@dataclass
class GitCommandInput(ToolInput):
    command: str = ""
    _required = ("command",)


@dataclass
class SearchFilesInput(ToolInput):
    pattern: str = ""
    content: Optional[str] = None
    _required = ("pattern",)


@dataclass
class TaskCompleteInput(ToolInput):
    summary: str = ""
    _required = ("summary",)


INPUT_TYPES: Dict[ToolName, Type[ToolInput]] = {
    ToolName.READ_FILE: PathInput,
    ToolName.WRITE_FILE: WriteFileInput,
    ToolName.LIST_FILES: ListFilesInput,
    ToolName.EXECUTE_BASH: ExecuteBashInput,
    ToolName.GIT_COMMAND: GitCommandInput,
    ToolName.CREATE_DIRECTORY: PathInput,
    ToolName.DELETE_FILE: PathInput,
    ToolName.SEARCH_FILES: SearchFilesInput,
    ToolName.TASK_COMPLETE: TaskCompleteInput,
}


def _string_prop(description: str) -> Dict[str, str]:
    return {"type": "string", "description": description}


def get_available_tools() -> List[Dict[str, Any]]:
    """Return the tool catalog in the model service's tool-definition format."""
    return [
        {
            "name": ToolName.READ_FILE.value,
            "description": "Read the contents of a file at the specified path",
            "input_schema": {
                "type": "object",
                "properties": {"path": _string_prop("The file path to read (relative to workspace)")},
                "required": ["path"],
            },
        },
        {
            "name": ToolName.WRITE_FILE.value,
            "description": "Write content to a file. Creates the file if it does not exist, overwrites if it does.",
            "input_schema": {
                "type": "object",
                "properties": {
                    "path": _string_prop("The file path to write to (relative to workspace)"),
                    "content": _string_prop("The content to write to the file"),
                },
                "required": ["path", "content"],
            },
        },
        {
            "name": ToolName.LIST_FILES.value,
            "description": "List files and directories at the specified path",
            "input_schema": {
                "type": "object",
                "properties": {
                    "path": _string_prop('The directory path to list (relative to workspace, use "." for root)'),
                },
                "required": ["path"],
            },
        },
        {
            "name": ToolName.EXECUTE_BASH.value,
            "description": (
                "Execute a bash command in the workspace. Use for running scripts, installing packages, "
                "building projects, etc. Only allowlisted commands are permitted."
            ),
            "input_schema": {
                "type": "object",
                "properties": {
                    "command": _string_prop("The bash command to execute"),
                    "working_dir": _string_prop("Working directory for the command (relative to workspace, optional)"),
                },
                "required": ["command"],
            },
        },
        {
            "name": ToolName.GIT_COMMAND.value,
            "description": "Execute a git command (init, add, commit, push, pull, status, etc.)",
            "input_schema": {
                "type": "object",
                "properties": {
                    "command": _string_prop(
                        'The git command (without "git" prefix), e.g. "status", "add .", "commit -m message"'
                    ),
                },
                "required": ["command"],
            },
        },
        {
            "name": ToolName.CREATE_DIRECTORY.value,
            "description": "Create a directory (including parent directories if needed)",
            "input_schema": {
                "type": "object",
                "properties": {"path": _string_prop("The directory path to create (relative to workspace)")},
                "required": ["path"],
            },
        },
        {
            "name": ToolName.DELETE_FILE.value,
            "description": "Delete a file or directory",
            "input_schema": {
                "type": "object",
                "properties": {"path": _string_prop("The path to delete (relative to workspace)")},
                "required": ["path"],
            },
        },
        {
            "name": ToolName.SEARCH_FILES.value,
            "description": "Search for files matching a pattern or containing specific text",
            "input_schema": {
                "type": "object",
                "properties": {
                    "pattern": _string_prop('Glob pattern for file names (e.g. "*.ts", "**/*.json")'),
                    "content": _string_prop("Optional: search for this text within files"),
                },
                "required": ["pattern"],
            },
        },
        {
            "name": ToolName.TASK_COMPLETE.value,
            "description": "Mark the task as complete and provide a final summary",
            "input_schema": {
                "type": "object",
                "properties": {"summary": _string_prop("A summary of what was accomplished")},
                "required": ["summary"],
            },
        },
    ]
