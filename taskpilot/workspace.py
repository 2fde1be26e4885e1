#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Workspace confinement for every path a tool touches.

All filesystem tools resolve user or model supplied paths through
:meth:`Workspace.resolve_path`. Resolution is two-phase:

1. Lexical: the input may not contain ``..`` segments and, once joined to the
   root and normalized, must still sit under the root.
2. Real path: the final path (or, when it does not exist yet, its nearest
   existing ancestor) is resolved through symlinks and must also sit under the
   real root. This catches a symlink planted inside the workspace that points
   outward, which lexical normalization alone cannot see.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from taskpilot.tools.errors import AccessDenied, ToolValidationError


@dataclass(frozen=True)
class ResolvedWorkspacePath:
    """A validated workspace path.

    Attributes:
        abs_path: Absolute, normalized path inside the root.
        rel_path: Root-relative path for logs and tool output (forward slashes).
    """

    abs_path: Path
    rel_path: str


@dataclass
class Workspace:
    """The single directory tree the tool executor is confined to."""

    root: Path

    def __post_init__(self) -> None:
        self.root = Path(os.path.realpath(Path(self.root).expanduser()))

    def ensure_exists(self) -> "Workspace":
        self.root.mkdir(parents=True, exist_ok=True)
        return self

    @property
    def state_dir(self) -> Path:
        return self.root / ".taskpilot"

    def contains(self, abs_path: Path) -> bool:
        return _is_within_root(abs_path, self.root)

    def resolve_path(self, path: Union[str, Path], *, purpose: str = "access") -> ResolvedWorkspacePath:
        """Resolve ``path`` to an absolute path inside the workspace.

        Args:
            path: Incoming path, relative to the root or absolute.
            purpose: Short label used in error messages (e.g. "read", "write").

        Raises:
            AccessDenied: If the path traverses upward or escapes the root,
                lexically or through a symlink.
            ToolValidationError: If the path is empty.
        """
        raw = _clean_path_input(path)

        if _has_parent_segment(raw):
            raise AccessDenied(f"Path traversal not allowed: '{raw}'", path=raw, purpose=purpose)

        candidate = Path(raw)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        abs_path = Path(os.path.normpath(candidate))

        if not _is_within_root(abs_path, self.root):
            raise AccessDenied(
                f"Access denied: path is outside the workspace for {purpose}: '{raw}'",
                path=raw,
                purpose=purpose,
            )

        probe = _nearest_existing(abs_path)
        if probe is not None:
            real = Path(os.path.realpath(probe))
            if not _is_within_root(real, self.root):
                raise AccessDenied(
                    f"Access denied: '{raw}' resolves outside the workspace via a symlink",
                    path=raw,
                    purpose=purpose,
                )

        rel = abs_path.relative_to(self.root).as_posix()
        return ResolvedWorkspacePath(abs_path=abs_path, rel_path=rel or ".")

    def relative(self, abs_path: Path) -> str:
        """Root-relative display form of an already resolved path."""
        try:
            rel = Path(abs_path).relative_to(self.root).as_posix()
        except ValueError:
            return str(abs_path)
        return rel or "."


def _clean_path_input(path: Union[str, Path]) -> str:
    """Strip surrounding quotes, whitespace and trailing slashes."""
    raw = str(path).strip()
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in {"'", '"'}:
        raw = raw[1:-1].strip()
    if len(raw) > 1:
        raw = raw.rstrip("/\\") or "/"
    if not raw:
        raise ToolValidationError("Empty path")
    return raw


def _has_parent_segment(raw: str) -> bool:
    return any(part == ".." for part in raw.replace("\\", "/").split("/"))


def _is_within_root(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def _nearest_existing(path: Path) -> Optional[Path]:
    """Return ``path`` if it (or a dangling symlink at it) exists, else its closest existing ancestor."""
    probe = path
    while not os.path.lexists(probe):
        parent = probe.parent
        if parent == probe:
            return None
        probe = parent
    return probe
