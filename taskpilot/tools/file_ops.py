#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Filesystem tools: read, write, list, create, delete and search.

Every function resolves its paths through the :class:`Workspace` and checks
the relevant size cap before doing the I/O. Failures are raised as
``ToolException`` subclasses; the executor turns them into results.
"""

import glob
import os
import pathlib
import shutil
from typing import List, Optional

from taskpilot.config import AgentConfig, EXCLUDE_DIRS, MATCH_LINE_PREVIEW
from taskpilot.tools.errors import (
    AccessDenied,
    ResourceExceeded,
    ToolNotFound,
    ToolValidationError,
)
from taskpilot.workspace import Workspace


# ========== Helper Functions ==========

def _is_text_file(path: pathlib.Path) -> bool:
    """Check if file is text (no null bytes in the first block)."""
    try:
        with open(path, "rb") as f:
            return b"\x00" not in f.read(8192)
    except OSError:
        return False


def _should_skip(rel_parts) -> bool:
    return any(part in EXCLUDE_DIRS for part in rel_parts)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... [truncated, {len(text) - limit} more characters]"


def _count_files(directory: pathlib.Path, stop_after: int) -> int:
    """Count entries under ``directory`` without following symlinks, stopping early past ``stop_after``."""
    count = 0
    for _dirpath, dirnames, filenames in os.walk(directory, followlinks=False):
        count += len(filenames) + len(dirnames)
        if count > stop_after:
            break
    return count


# ========== Tools ==========

def read_file(ws: Workspace, limits: AgentConfig, path: str) -> str:
    """Return the text content of a workspace file."""
    resolved = ws.resolve_path(path, purpose="read")
    target = resolved.abs_path

    if not target.exists():
        raise ToolNotFound(f"File not found: {path}", path=path)
    if target.is_dir():
        raise ToolValidationError(f"Path is a directory, not a file: {path}", path=path)

    size = target.stat().st_size
    if size > limits.max_file_bytes:
        raise ResourceExceeded(
            f"File too large to read: {size} bytes (limit {limits.max_file_bytes})",
            limit=limits.max_file_bytes,
            path=path,
        )

    content = target.read_text(encoding="utf-8", errors="replace")
    return _truncate(content, limits.read_return_limit)


def write_file(ws: Workspace, limits: AgentConfig, path: str, content: str) -> str:
    """Create or overwrite a file, creating parent directories."""
    data = content.encode("utf-8")
    if len(data) > limits.max_write_bytes:
        raise ResourceExceeded(
            f"Content too large to write: {len(data)} bytes (limit {limits.max_write_bytes})",
            limit=limits.max_write_bytes,
            path=path,
        )

    resolved = ws.resolve_path(path, purpose="write")
    target = resolved.abs_path
    if target == ws.root or target.is_dir():
        raise ToolValidationError(f"Path is a directory, not a file: {path}", path=path)

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    return f"File written: {resolved.rel_path}"


def list_files(ws: Workspace, limits: AgentConfig, path: str = ".") -> str:
    """List the immediate entries of a directory as ``[DIR]``/``[FILE]`` lines."""
    resolved = ws.resolve_path(path or ".", purpose="list")
    target = resolved.abs_path

    if not target.exists():
        raise ToolNotFound(f"Directory not found: {path}", path=path)
    if not target.is_dir():
        raise ToolValidationError(f"Not a directory: {path}", path=path)

    entries = sorted(os.scandir(target), key=lambda entry: entry.name)
    lines = [
        f"{'[DIR]' if entry.is_dir(follow_symlinks=False) else '[FILE]'} {entry.name}"
        for entry in entries[: limits.list_limit]
    ]
    if len(entries) > limits.list_limit:
        lines.append(f"... ({len(entries) - limits.list_limit} more entries not shown)")
    return "\n".join(lines) or "(empty directory)"


def create_directory(ws: Workspace, limits: AgentConfig, path: str) -> str:
    resolved = ws.resolve_path(path, purpose="create")
    target = resolved.abs_path
    if target.exists() and not target.is_dir():
        raise ToolValidationError(f"A file already exists at: {path}", path=path)
    target.mkdir(parents=True, exist_ok=True)
    return f"Directory created: {resolved.rel_path}"


def delete_file(ws: Workspace, limits: AgentConfig, path: str) -> str:
    """Delete a file, symlink or directory tree inside the workspace."""
    resolved = ws.resolve_path(path, purpose="delete")
    target = resolved.abs_path

    if target == ws.root:
        raise AccessDenied("Refusing to delete the workspace root", path=path)
    if not os.path.lexists(target):
        raise ToolNotFound(f"Path not found: {path}", path=path)

    if target.is_dir() and not target.is_symlink():
        count = _count_files(target, limits.max_delete_files)
        if count > limits.max_delete_files:
            raise ResourceExceeded(
                f"Directory too large to delete: more than {limits.max_delete_files} entries",
                limit=limits.max_delete_files,
                path=path,
            )
        shutil.rmtree(target)
        return f"Directory deleted: {resolved.rel_path}"

    target.unlink()
    return f"File deleted: {resolved.rel_path}"


def _glob_workspace(ws: Workspace, pattern: str) -> List[pathlib.Path]:
    if pathlib.PurePosixPath(pattern).is_absolute() or os.path.isabs(pattern):
        raise AccessDenied(f"Search pattern must be relative to the workspace: '{pattern}'", pattern=pattern)
    if any(part == ".." for part in pattern.replace("\\", "/").split("/")):
        raise AccessDenied(f"Path traversal not allowed in search pattern: '{pattern}'", pattern=pattern)

    base = glob.escape(str(ws.root))
    matches: List[pathlib.Path] = []
    for raw in glob.glob(os.path.join(base, pattern), recursive=True):
        candidate = pathlib.Path(raw)
        if not candidate.is_file():
            continue
        rel = candidate.relative_to(ws.root)
        if _should_skip(rel.parts):
            continue
        # symlinked files pointing outside the root are not searchable
        if not ws.contains(pathlib.Path(os.path.realpath(candidate))):
            continue
        matches.append(candidate)
    return sorted(matches)


def search_files(ws: Workspace, limits: AgentConfig, pattern: str, content: Optional[str] = None) -> str:
    """Find files by glob pattern, optionally filtering by a content substring.

    Without ``content`` the output is one relative path per line. With it,
    each matching file is listed as ``path:`` followed by up to
    ``matches_per_file`` lines of ``  <lineno>: <line preview>``.
    """
    if not pattern:
        raise ToolValidationError("search pattern is required")

    files = _glob_workspace(ws, pattern)

    if not content:
        shown = [ws.relative(f) for f in files[: limits.search_result_limit]]
        if len(files) > limits.search_result_limit:
            shown.append(f"... ({len(files) - limits.search_result_limit} more files not shown)")
        return "\n".join(shown) or "No files found"

    blocks: List[str] = []
    for candidate in files[: limits.content_search_file_limit]:
        if len(blocks) >= limits.search_result_limit:
            break
        try:
            if candidate.stat().st_size > limits.max_file_bytes or not _is_text_file(candidate):
                continue
            text = candidate.read_text(encoding="utf-8", errors="replace")
        except OSError:
            continue
        if content not in text:
            continue

        hits = [
            f"  {num}: {line[:MATCH_LINE_PREVIEW]}"
            for num, line in enumerate(text.split("\n"), start=1)
            if content in line
        ][: limits.matches_per_file]
        blocks.append(f"{ws.relative(candidate)}:\n" + "\n".join(hits))

    output = "\n\n".join(blocks) or "No matches found"
    if len(files) > limits.content_search_file_limit:
        output += f"\n\n(searched the first {limits.content_search_file_limit} of {len(files)} files)"
    return output
