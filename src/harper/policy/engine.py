"""
Harper Policy Engine

Stateless allow/deny decisions for OperationDescriptors. The engine never
performs I/O and never raises: an unexpected error while evaluating becomes
a denial.

Rules are applied in a fixed precedence; the first rule that denies wins.

    0. validation   descriptor carries a validation_error
    1. hard_block   catastrophic / privilege-escalation patterns, env mutation
    2. length       command text longer than max_command_length
    3. path         ``..`` segments or paths resolving outside project_root
    4. shell        metacharacters gated by allow_* flags, sudo, blocked_commands
    5. mutation     mutating kinds require approval unless allow-listed
    6. destructive  rm/mv/... or DROP/TRUNCATE/DELETE set confirm_destructive
"""

from __future__ import annotations

import os
import re
from typing import Any

from harper.config import ExecutionPolicyConfig
from harper.core.models import OperationDescriptor, OperationKind, PolicyDecision
from harper.logging import get_logger

logger = get_logger("harper.policy")


class Violation:
    VALIDATION = "validation"
    HARD_BLOCK = "hard_block"
    LENGTH = "length"
    PATH_TRAVERSAL = "path_traversal"
    METACHARACTER = "metacharacter"
    SUDO = "sudo"
    INTERNAL = "internal"


# ─── Rule 1: hard blocks ────────────────────────────────────

_PRIVILEGE_WORDS = r"\b(?:sudo|su|doas)\b"
_DETACH = r"\b(?:nohup|setsid|disown)\b|(?<![&>])&(?![&>])"

HARD_BLOCK_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(?:nc|netcat)\b[^|;]*\s-[a-zA-Z]*l"), "remote shell listener (nc -l)"),
    (re.compile(r"\bncat\b[^|;]*\s(?:-[a-zA-Z]*e|--exec|--sh-exec)"), "remote shell listener (ncat -e)"),
    (re.compile(r"\bsocat\b.*\b(?:exec|system):", re.IGNORECASE), "remote shell listener (socat exec)"),
    (re.compile(r"/dev/(?:tcp|udp)/"), "reverse shell via /dev/tcp"),
    (re.compile(r"(?:>>?\s*|\btee\s+(?:-a\s+)?)/etc/(?:sudoers|passwd|shadow)\b"), "write to system account files"),
    (re.compile(r"\bsed\s+-i\S*\s[^|;]*/etc/(?:sudoers|passwd|shadow)\b"), "write to system account files"),
    (re.compile(r"\bvisudo\b"), "sudoers modification (visudo)"),
    (re.compile(r"\bchmod\s+(?:-\w+\s+)*(?:[ugoa]*\+[rwx]*s|[0-7]?[4-7][0-7]{3})\b"), "setuid/setgid bit (chmod u+s)"),
    (re.compile(r"\busermod\b[^|;]*-a?G\s*\S*\b(?:sudo|wheel|admin)\b"), "privilege group membership (usermod -aG sudo)"),
    (re.compile(r"\bmkfs(?:\.\w+)?\b"), "filesystem format (mkfs)"),
    (re.compile(r"\bdd\s+if="), "raw disk write (dd if=)"),
    (re.compile(r":\(\)\s*\{"), "fork bomb"),
    (re.compile(r"(?:^|[\s;&|(])(?:shutdown|reboot|halt|poweroff)(?=\s|$)"), "system power control"),
    (re.compile(r"\brm\s+(?:-[a-zA-Z]*\s+|--no-preserve-root\s+)*(?:/\*?|~/?)(?=\s|$)"), "recursive delete of root or home (rm -rf /)"),
]

_ENV_MUTATION_RE = re.compile(r"(?:^|[\s;&|(])(?:export|unset|setenv)(?=\s|$)")
_RC_FILE_RE = re.compile(r"(?:^|/)\.(?:bashrc|bash_profile|bash_login|profile|zshrc|zprofile|zshenv|cshrc|tcshrc)$")
_RC_WRITE_RE = re.compile(
    r"(?:>>?\s*|\btee\s+(?:-a\s+)?)\S*\.(?:bashrc|bash_profile|bash_login|profile|zshrc|zprofile|zshenv|cshrc|tcshrc)\b"
)

# ─── Rule 6: destructive verbs ──────────────────────────────

_DESTRUCTIVE_CMD_RE = re.compile(r"(?:^|[\s;&|(])(?:rm|mv|rmdir|shred|truncate)(?=\s|$)")
_DESTRUCTIVE_SQL_RE = re.compile(r"\b(?:DROP|TRUNCATE|DELETE)\b", re.IGNORECASE)
_READ_SQL_RE = re.compile(r"^\s*(?:SELECT|WITH)\b", re.IGNORECASE)

_SUDO_RE = re.compile(r"(?:^|[\s;&|(])sudo(?=\s|$)")

_ALWAYS_MUTATING = frozenset({
    OperationKind.WRITE_FILE,
    OperationKind.RUN_COMMAND,
    OperationKind.GITHUB_ISSUE,
    OperationKind.GITHUB_PR,
    OperationKind.IMAGE_RESIZE,
    OperationKind.MCP_TOOL_CALL,
})


def is_mutating(descriptor: OperationDescriptor) -> bool:
    """Whether the descriptor changes state outside the agent."""
    kind = descriptor.kind
    args = descriptor.args
    if kind in _ALWAYS_MUTATING:
        return True
    if kind == OperationKind.GIT_ACTION:
        return args.get("action") not in ("status", "diff")
    if kind == OperationKind.DB_QUERY:
        return not _READ_SQL_RE.match(str(args.get("query", "")))
    if kind == OperationKind.API_PROBE:
        return str(args.get("method", "GET")).upper() != "GET"
    if kind == OperationKind.TODO:
        return args.get("action") != "list"
    return False


def operation_paths(descriptor: OperationDescriptor) -> list[Any]:
    """Filesystem paths named by a file-kind descriptor."""
    args = descriptor.args
    kind = descriptor.kind
    if kind in (
        OperationKind.READ_FILE,
        OperationKind.WRITE_FILE,
        OperationKind.CODE_ANALYZE,
        OperationKind.IMAGE_INSPECT,
    ):
        return [args.get("path")]
    if kind == OperationKind.IMAGE_RESIZE:
        return [args.get("input"), args.get("output")]
    if kind == OperationKind.DB_QUERY:
        return [args.get("db_path")]
    return []


class PolicyEngine:
    """Evaluates descriptors against an ExecutionPolicyConfig snapshot."""

    def evaluate(self, descriptor: OperationDescriptor, config: ExecutionPolicyConfig) -> PolicyDecision:
        try:
            decision = self._evaluate(descriptor, config)
        except Exception as e:  # noqa: BLE001
            logger.exception("Policy evaluation failed", extra={"operation": descriptor.kind.value})
            decision = _deny(descriptor, Violation.INTERNAL, f"Policy evaluation error: {type(e).__name__}: {e}")

        if not decision.allowed:
            logger.warning(
                "Operation denied: %s",
                decision.reason,
                extra={"operation": descriptor.kind.value, "violation": decision.violation},
            )
        return decision

    def _evaluate(self, descriptor: OperationDescriptor, config: ExecutionPolicyConfig) -> PolicyDecision:
        # 0. validation
        if descriptor.validation_error is not None:
            return _deny(descriptor, Violation.VALIDATION, f"Validation failed: {descriptor.validation_error}")

        command = _command_text(descriptor)

        # 1. hard blocks
        blocked = _hard_block(descriptor, command, config)
        if blocked:
            return _deny(descriptor, Violation.HARD_BLOCK, f"Blocked: {blocked}")

        # 2. structural limits
        if len(command) > config.max_command_length:
            return _deny(
                descriptor,
                Violation.LENGTH,
                f"Command length {len(command)} exceeds limit of {config.max_command_length}",
            )

        # 3. path safety
        for path in operation_paths(descriptor):
            problem = _path_problem(path, config.project_root)
            if problem:
                return _deny(descriptor, Violation.PATH_TRAVERSAL, problem)

        # 4. shell metacharacters, sudo, blocked prefixes
        if descriptor.kind == OperationKind.RUN_COMMAND:
            shell_denial = _shell_problem(command, config)
            if shell_denial:
                violation, reason = shell_denial
                return _deny(descriptor, violation, reason)

        # 5. mutation classification
        mutating = is_mutating(descriptor)
        allow_listed = descriptor.kind == OperationKind.RUN_COMMAND and any(
            _matches_command_prefix(command, prefix) for prefix in config.allowed_commands
        )
        requires_approval = mutating and config.require_approval and not allow_listed

        # 6. destructive sub-classification
        confirm = config.confirm_destructive and _is_destructive(descriptor, command)

        if confirm:
            reason = "Destructive operation requires confirmation"
        elif requires_approval:
            reason = "Mutating operation requires approval"
        elif allow_listed:
            reason = "Command is allow-listed"
        elif mutating:
            reason = "Approval disabled by configuration"
        else:
            reason = "Read-only operation"

        return PolicyDecision(
            descriptor_id=descriptor.id,
            allowed=True,
            requires_approval=requires_approval or confirm,
            confirm_destructive=confirm,
            reason=reason,
        )


def _deny(descriptor: OperationDescriptor, violation: str, reason: str) -> PolicyDecision:
    return PolicyDecision(
        descriptor_id=descriptor.id,
        allowed=False,
        reason=reason,
        violation=violation,
    )


def _command_text(descriptor: OperationDescriptor) -> str:
    args = descriptor.args
    if descriptor.kind == OperationKind.RUN_COMMAND:
        return str(args.get("command", ""))
    if descriptor.kind == OperationKind.DB_QUERY:
        return str(args.get("query", ""))
    return ""


def _hard_block(descriptor: OperationDescriptor, command: str, config: ExecutionPolicyConfig) -> str | None:
    if command and descriptor.kind == OperationKind.RUN_COMMAND:
        for pattern, label in HARD_BLOCK_PATTERNS:
            if pattern.search(command):
                return label
        if re.search(_DETACH, command) and re.search(_PRIVILEGE_WORDS, command):
            return "background detachment combined with privilege escalation"
        if config.block_env_mutation:
            if _ENV_MUTATION_RE.search(command):
                return "environment mutation (export/unset/setenv)"
            if _RC_WRITE_RE.search(command):
                return "write to shell rc file"

    if config.block_env_mutation and descriptor.kind == OperationKind.WRITE_FILE:
        path = descriptor.args.get("path")
        if isinstance(path, str) and _RC_FILE_RE.search(path.replace("\\", "/")):
            return "write to shell rc file"
    return None


def _path_problem(path: Any, project_root: str) -> str | None:
    if not isinstance(path, str) or not path:
        return "path traversal: missing or invalid path"
    segments = re.split(r"[\\/]+", path)
    if ".." in segments:
        return f"path traversal: '{path}' contains a '..' segment"
    root = os.path.normpath(project_root)
    candidate = path if os.path.isabs(path) else os.path.join(root, path)
    resolved = os.path.normpath(candidate)
    if resolved != root and os.path.commonpath([root, resolved]) != root:
        return f"path traversal: '{path}' resolves outside the project root"
    return None


def _shell_problem(command: str, config: ExecutionPolicyConfig) -> tuple[str, str] | None:
    meta = Violation.METACHARACTER
    if ";" in command:
        return meta, "Shell metacharacter ';' (command chaining) is not allowed"
    if "\n" in command or "\r" in command:
        return meta, "Shell metacharacter newline (command chaining) is not allowed"
    if "`" in command:
        return meta, "Shell metacharacter '`' (command substitution) is not allowed"
    if not config.allow_subshells:
        if "$(" in command:
            return meta, "Shell metacharacter '$(' (subshell) requires allow_subshells"
        if "(" in command or ")" in command:
            return meta, "Shell metacharacter '(' or ')' (subshell) requires allow_subshells"
        if "$" in command:
            return meta, "Shell metacharacter '$' (variable expansion) requires allow_subshells"
    if not config.allow_pipes and "|" in command:
        return meta, "Shell metacharacter '|' (pipe) requires allow_pipes"
    if not config.allow_redirects and ("<" in command or ">" in command):
        return meta, "Shell metacharacter '>' or '<' (redirect) requires allow_redirects"
    # "2>&1" and "&>" are redirects, not background jobs
    without_redirects = re.sub(r">&|&>", ">", command)
    if not config.allow_background and "&" in without_redirects:
        return meta, "Shell metacharacter '&' (background/chaining) requires allow_background"
    if not config.allow_sudo and _SUDO_RE.search(command):
        return Violation.SUDO, "sudo requires allow_sudo"
    stripped = command.strip()
    for prefix in config.blocked_commands:
        if stripped.startswith(prefix):
            return Violation.HARD_BLOCK, f"Command '{stripped}' is blocked by exec policy"
    return None


def _matches_command_prefix(command: str, prefix: str) -> bool:
    """Whole-word prefix match: "ls" matches "ls -la" but not "lsblk"."""
    words = prefix.split()
    return bool(words) and command.split()[: len(words)] == words


def _is_destructive(descriptor: OperationDescriptor, command: str) -> bool:
    if descriptor.kind == OperationKind.RUN_COMMAND:
        return bool(_DESTRUCTIVE_CMD_RE.search(command))
    if descriptor.kind == OperationKind.DB_QUERY:
        return bool(_DESTRUCTIVE_SQL_RE.search(command))
    return False


_default_engine = PolicyEngine()


def evaluate(descriptor: OperationDescriptor, config: ExecutionPolicyConfig) -> PolicyDecision:
    """Evaluate ``descriptor`` with a shared stateless engine."""
    return _default_engine.evaluate(descriptor, config)
