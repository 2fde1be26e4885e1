"""Deterministic in-process model service.

Replays a prepared list of responses. Each entry is a ``Completion``, an
exception instance (raised when its turn comes) or a plain dict::

    {"text": "...", "tool_calls": [{"name": "list_files", "input": {"path": "."}}],
     "usage": {"input_tokens": 10, "output_tokens": 5}}

Used by the test-suite and by ``taskpilot --dry-run SCRIPT.json``.
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .base import Completion, ModelService, ModelServiceError, TextBlock, ToolInvocation, Usage


ScriptEntry = Union[Completion, BaseException, Dict[str, Any]]


def completion_from_dict(data: Dict[str, Any], call_index: int = 0) -> Completion:
    blocks: list = []
    if data.get("text"):
        blocks.append(TextBlock(text=data["text"]))
    for i, call in enumerate(data.get("tool_calls", []) or []):
        blocks.append(ToolInvocation(
            id=call.get("id") or f"toolu_{call_index:03d}_{i}",
            name=call["name"],
            input=dict(call.get("input") or {}),
        ))
    usage = data.get("usage") or {}
    return Completion(
        blocks=blocks,
        stop_reason=data.get("stop_reason") or ("tool_use" if data.get("tool_calls") else "end_turn"),
        usage=Usage(int(usage.get("input_tokens", 0)), int(usage.get("output_tokens", 0))),
    )


class ScriptedModelService(ModelService):
    """Replays scripted completions in order.

    Args:
        script: Responses to return, one per ``complete`` call.
        repeat_last: Keep returning the final entry once the script runs out
            instead of raising.
    """

    def __init__(self, script: Sequence[ScriptEntry], repeat_last: bool = False):
        super().__init__()
        self.name = "scripted"
        self.model = "scripted"
        self._script: List[ScriptEntry] = list(script)
        self.repeat_last = repeat_last
        self.calls: List[Dict[str, Any]] = []

    @classmethod
    def from_file(cls, path: Union[str, Path], repeat_last: bool = False) -> "ScriptedModelService":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("responses", [])
        if not isinstance(data, list):
            raise ValueError(f"Script file must contain a list of responses: {path}")
        return cls(data, repeat_last=repeat_last)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def complete(
        self,
        system_prompt: str,
        turns: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Completion:
        index = len(self.calls)
        self.calls.append({
            "system_prompt": system_prompt,
            "turns": copy.deepcopy(turns),
            "tools": tools,
        })

        if index < len(self._script):
            entry = self._script[index]
        elif self.repeat_last and self._script:
            entry = self._script[-1]
        else:
            raise ModelServiceError(f"Scripted model service exhausted after {len(self._script)} responses")

        if isinstance(entry, BaseException):
            raise entry
        if isinstance(entry, Completion):
            return entry
        return completion_from_dict(entry, index)

    def validate_config(self) -> bool:
        return True
