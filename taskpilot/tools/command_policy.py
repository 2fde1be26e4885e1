#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Allow/deny policy for shell and git commands issued by the model.

Evaluation order:

1. Denylist: regular expressions for catastrophic or escalating operations,
   matched against the whole command line. Any hit denies immediately, even
   if the command would otherwise be allowlisted.
2. Allowlist: the command line is split on ``&&``, ``||``, ``;`` and ``|``;
   every segment must be a git command that passes :meth:`check_git` or match
   one of the allowlist patterns.
3. Anything else is denied.

Evaluation is a pure function of the command string and the policy tables.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Pattern, Tuple

import yaml

from taskpilot.debug_logger import get_logger


logger = get_logger()


# start of a command, optionally behind a launcher such as "env FOO=1" or "nohup"
_CMD_START = r"(^|[;&|(]\s*)((env|command|nohup|xargs|time|nice|timeout|stdbuf)\s+(\S+\s+)*?)?"

# (pattern, human readable reason)
DENY_RULES: Tuple[Tuple[str, str], ...] = (
    (r"\brm\s+(-[\w-]+\s+)*[\"']?(/|~|\*|\$HOME)[\"']?(\s|/?\*?\s*$|$)", "recursive delete of root, home or wildcard"),
    (r"\bmkfs(\.\w+)?\b", "filesystem formatting"),
    (r"\bdd\s+.*\b(if|of)=", "raw disk copy"),
    (r">\s*/dev/(sd|hd|nvme|disk|xvd)", "write to a disk device"),
    (r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:", "fork bomb"),
    (r"\bch(mod|own)\s+(-[\w-]+\s+)*-R\b.*\s/(\s|$)", "recursive permission change on /"),
    (r"\bchmod\s+(-[\w-]+\s+)*777\s+/(\s|$)", "recursive permission change on /"),
    (r"\b(curl|wget)\b.*\|\s*(ba|z|da|k)?sh\b", "remote script piped into a shell"),
    (r"\|\s*(ba|z|da|k)?sh\b", "output piped into a shell"),
    (_CMD_START + r"(sudo|doas|pkexec)\b", "privilege escalation"),
    (_CMD_START + r"su(\s|$)", "privilege escalation"),
    (r"/etc/(passwd|shadow|sudoers|group)\b", "system credential files"),
    (r"(^|[\s/'\"=])\.ssh(/|\s|$)", "ssh credentials"),
    (r"(^|[\s/'\"=])\.env(\.\w+)?(\s|$|['\"])", "environment secrets file"),
    (r"(^|[\s/'\"=])\.aws(/|\s|$)", "cloud credentials"),
    (r"(^|[;&|]\s*)(export|unset|alias)\s", "environment tampering"),
    (_CMD_START + r"(kill|pkill|killall|systemctl|service|launchctl|shutdown|reboot|halt|poweroff|crontab)\b", "process or service control"),
    (r"\$\(", "command substitution"),
    (r"`", "command substitution"),
    (r"(^|[;&|(]\s*)(eval|exec|source)\b", "dynamic evaluation"),
    (r"(^|[;&|(]\s*)\.\s+\S", "dynamic evaluation"),
    (r"[;&|]\s*(rm|sudo|dd|mkfs|chmod|chown|curl|wget|nc|ncat|ssh|scp)\b", "chaining into a blocked command"),
    (r"\bfind\b.*\s-(exec|execdir|ok|delete)\b", "find with exec or delete"),
    (r"(?<![&>])&(?![&>])", "background execution"),
    (r">>?\s*[\"']?(/(?!dev/null\b)|~)", "redirect outside the workspace"),
)

# Commands the agent may run. Each entry is a command prefix; it matches when
# the segment starts with it followed by whitespace or end of segment.
ALLOWED_PREFIXES: Tuple[str, ...] = (
    # package managers
    "npm", "npx", "yarn", "pnpm", "pip", "pip3", "poetry", "uv", "cargo", "go",
    # interpreters, compilers and build tools
    "node", "python", "python3", "tsc", "webpack", "vite", "esbuild",
    "make", "cmake", "gcc", "g++", "clang", "javac", "java", "rustc", "deno", "bun",
    # read-only inspection
    "ls", "cat", "head", "tail", "wc", "grep", "find", "tree", "diff", "sort", "uniq",
    "cd", "stat", "file", "du",
    # test runners
    "jest", "vitest", "pytest", "mocha",
    # linters and formatters
    "eslint", "prettier", "black", "flake8", "ruff", "mypy", "isort", "pylint",
    # informational
    "echo", "pwd", "date", "whoami", "printenv", "which", "true", "false",
)

EXTRA_ALLOW_RULES: Tuple[str, ...] = (
    r"^docker\s+(ps|images|logs)(\s|$)",
    # bare env only; "env CMD" runs an arbitrary program
    r"^env$",
)

GIT_SUBCOMMANDS: Tuple[str, ...] = (
    "status", "diff", "log", "show", "branch", "checkout", "add", "commit",
    "push", "pull", "fetch", "merge", "rebase", "stash", "init", "clone",
    "remote", "tag",
)

_SEGMENT_SPLIT_RE = re.compile(r"&&|\|\||;|\|")


@dataclass(frozen=True)
class PolicyDecision:
    """Outcome of a policy check."""

    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed


@dataclass
class CommandPolicy:
    """Compiled allow/deny tables.

    Attributes:
        deny_rules: (compiled pattern, reason) pairs checked first.
        allow_rules: Compiled allowlist patterns for a single segment.
        git_subcommands: Subcommands ``git_command`` may run.
    """

    deny_rules: List[Tuple[Pattern[str], str]] = field(default_factory=list)
    allow_rules: List[Pattern[str]] = field(default_factory=list)
    git_subcommands: List[str] = field(default_factory=lambda: list(GIT_SUBCOMMANDS))

    @classmethod
    def default(cls) -> "CommandPolicy":
        policy = cls()
        policy.extend(deny=DENY_RULES, allow=_prefix_patterns(ALLOWED_PREFIXES) + list(EXTRA_ALLOW_RULES))
        return policy

    @classmethod
    def from_yaml(cls, yaml_path: Optional[Path]) -> "CommandPolicy":
        """Load the default policy extended by a YAML file.

        The file may contain ``allow`` (regex list), ``allow_commands``
        (prefix list), ``deny`` (regex list) and ``git_subcommands``. A
        missing or unreadable file leaves the defaults in place.
        """
        policy = cls.default()
        if yaml_path is None:
            return policy

        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            logger.warning("Command policy file not found: %s. Using defaults.", yaml_path)
            return policy

        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError("policy file must contain a mapping")
            policy.extend(
                deny=[(pattern, "denied by policy file") for pattern in data.get("deny", []) or []],
                allow=list(data.get("allow", []) or []) + _prefix_patterns(data.get("allow_commands", []) or []),
            )
            for sub in data.get("git_subcommands", []) or []:
                if sub not in policy.git_subcommands:
                    policy.git_subcommands.append(str(sub))
        except (OSError, ValueError, re.error, yaml.YAMLError) as e:
            logger.error("Failed to load command policy from %s: %s", yaml_path, e)
            return cls.default()

        logger.log("policy", "POLICY_LOADED", {"path": str(yaml_path)})
        return policy

    def extend(self, deny: Iterable[Tuple[str, str]] = (), allow: Iterable[str] = ()) -> None:
        for pattern, reason in deny:
            self.deny_rules.append((re.compile(pattern, re.IGNORECASE), reason))
        for pattern in allow:
            self.allow_rules.append(re.compile(pattern))

    def _denied(self, command: str) -> Optional[str]:
        for pattern, reason in self.deny_rules:
            if pattern.search(command):
                return reason
        return None

    def check_command(self, command: str) -> PolicyDecision:
        """Classify a full shell command line."""
        command = (command or "").strip()
        if not command:
            return PolicyDecision(False, "empty command")

        reason = self._denied(command)
        if reason:
            return PolicyDecision(False, f"blocked pattern ({reason})")

        for segment in _SEGMENT_SPLIT_RE.split(command):
            segment = segment.strip()
            if not segment:
                return PolicyDecision(False, "empty command segment")
            if segment == "git" or segment.startswith("git "):
                decision = self.check_git(segment)
                if not decision.allowed:
                    return decision
                continue
            if not any(rule.search(segment) for rule in self.allow_rules):
                return PolicyDecision(False, f"'{segment.split()[0]}' is not in the allowlist")

        return PolicyDecision(True, "allowed")

    def check_git(self, command: str) -> PolicyDecision:
        """Classify a git invocation, with or without the leading ``git``."""
        command = (command or "").strip()
        if command == "git":
            command = ""
        elif command.startswith("git "):
            command = command[4:].strip()

        tokens = command.split()
        if not tokens:
            return PolicyDecision(False, "missing git subcommand")

        full = f"git {command}"
        reason = self._denied(full)
        if reason:
            return PolicyDecision(False, f"blocked pattern ({reason})")
        if _SEGMENT_SPLIT_RE.search(command):
            return PolicyDecision(False, "git commands cannot be chained")

        subcommand = tokens[0]
        if subcommand not in self.git_subcommands:
            return PolicyDecision(False, f"git subcommand '{subcommand}' is not allowed")

        force = any(tok == "--force" or tok.startswith("--force=") for tok in tokens)
        if subcommand == "push" and any(_is_short_force(tok) or tok.startswith("+") for tok in tokens[1:]):
            # "+main" and "+src:dst" refspecs force-update the remote ref
            force = True
        if force:
            return PolicyDecision(False, "force flag not allowed; use --force-with-lease")

        return PolicyDecision(True, "allowed")


def _prefix_patterns(prefixes: Iterable[str]) -> List[str]:
    return [rf"^{re.escape(prefix)}(\s|$)" for prefix in prefixes]


def _is_short_force(token: str) -> bool:
    # combined short flags like -uf
    return token.startswith("-") and not token.startswith("--") and "f" in token[1:]
