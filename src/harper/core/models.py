"""
Harper Core Data Models

Shared types for the tool-dispatch pipeline. Every other component imports
from here, so this module depends on nothing but pydantic.

Lifecycle of one operation:

    OperationDescriptor -> PolicyDecision -> ApprovalRecord? -> ExecutionResult
                                  \\___________ AuditEntry ____________/
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Enums ───────────────────────────────────────────────────

class OperationKind(str, Enum):
    """Closed set of operations the agent knows how to run."""
    RUN_COMMAND = "RUN_COMMAND"
    READ_FILE = "READ_FILE"
    WRITE_FILE = "WRITE_FILE"
    SEARCH_WEB = "SEARCH_WEB"
    GIT_ACTION = "GIT_ACTION"
    DB_QUERY = "DB_QUERY"
    API_PROBE = "API_PROBE"
    IMAGE_INSPECT = "IMAGE_INSPECT"
    IMAGE_RESIZE = "IMAGE_RESIZE"
    CODE_ANALYZE = "CODE_ANALYZE"
    GITHUB_ISSUE = "GITHUB_ISSUE"
    GITHUB_PR = "GITHUB_PR"
    SCREENPIPE = "SCREENPIPE"
    TODO = "TODO"
    MCP_TOOL_CALL = "MCP_TOOL_CALL"


FILE_KINDS = frozenset({
    OperationKind.READ_FILE,
    OperationKind.WRITE_FILE,
    OperationKind.CODE_ANALYZE,
    OperationKind.IMAGE_INSPECT,
    OperationKind.IMAGE_RESIZE,
    OperationKind.DB_QUERY,
})


class ExecutionStatus(str, Enum):
    """Outcome of one attempted operation."""
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    SKIPPED_DENIED = "SKIPPED_DENIED"
    SKIPPED_REJECTED = "SKIPPED_REJECTED"

    @classmethod
    def parse(cls, text: str) -> ExecutionStatus | None:
        """Parse the loose spellings accepted by ``/audit`` (failed, denied, ok...)."""
        aliases = {
            "success": cls.SUCCESS,
            "succeeded": cls.SUCCESS,
            "ok": cls.SUCCESS,
            "failure": cls.FAILURE,
            "failed": cls.FAILURE,
            "error": cls.FAILURE,
            "denied": cls.SKIPPED_DENIED,
            "blocked": cls.SKIPPED_DENIED,
            "skipped_denied": cls.SKIPPED_DENIED,
            "rejected": cls.SKIPPED_REJECTED,
            "cancelled": cls.SKIPPED_REJECTED,
            "skipped_rejected": cls.SKIPPED_REJECTED,
        }
        return aliases.get(text.strip().lower().replace("-", "_"))

    @property
    def skipped(self) -> bool:
        return self in (ExecutionStatus.SKIPPED_DENIED, ExecutionStatus.SKIPPED_REJECTED)


# ─── Operation Descriptor ────────────────────────────────────

class OperationDescriptor(BaseModel):
    """One requested action extracted from text.

    Immutable after creation. ``validation_error`` is set instead of
    dropping malformed syntax, so the descriptor still gets an audit entry.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"op-{uuid.uuid4().hex[:8]}")
    kind: OperationKind
    raw: str = ""
    args: dict[str, Any] = Field(default_factory=dict)
    span: tuple[int, int] = (0, 0)
    validation_error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.validation_error is None

    def summary(self, limit: int = 120) -> str:
        """Human-readable one-line description used in prompts and /audit."""
        args = self.args
        kind = self.kind
        if kind == OperationKind.RUN_COMMAND:
            text = args.get("command", "")
        elif kind in (OperationKind.READ_FILE, OperationKind.CODE_ANALYZE, OperationKind.IMAGE_INSPECT):
            text = f"{kind.value.lower()} {args.get('path', '')}"
        elif kind == OperationKind.WRITE_FILE:
            text = f"write_file {args.get('path', '')} ({len(str(args.get('content', '')))} bytes)"
        elif kind == OperationKind.SEARCH_WEB:
            text = f"search {args.get('query', '')}"
        elif kind == OperationKind.DB_QUERY:
            text = f"db_query {args.get('db_path', '')}: {args.get('query', '')}"
        elif kind == OperationKind.API_PROBE:
            text = f"{str(args.get('method', '')).upper()} {args.get('url', '')}"
        elif kind == OperationKind.GIT_ACTION:
            text = f"git {args.get('action', '')} {args.get('message', '') or ' '.join(args.get('files', []))}".strip()
        elif kind == OperationKind.MCP_TOOL_CALL:
            text = f"mcp {args.get('name', '')}"
        elif kind == OperationKind.TODO:
            detail = args.get("description") or args.get("index") or ""
            text = f"todo {args.get('action', '')} {detail}".strip()
        else:
            text = self.raw or kind.value
        if not text:
            text = self.raw or kind.value
        if len(text) > limit:
            text = text[: limit - 3] + "..."
        return text


# ─── Policy / Approval / Execution ──────────────────────────

class PolicyDecision(BaseModel):
    """Output of the policy engine for a single descriptor."""
    model_config = ConfigDict(frozen=True)

    descriptor_id: str
    allowed: bool
    requires_approval: bool = False
    confirm_destructive: bool = False
    reason: str | None = None
    violation: str | None = None


class ApprovalRecord(BaseModel):
    """Human decision for an operation that required approval."""
    model_config = ConfigDict(frozen=True)

    approved: bool
    prompt_text: str
    timestamp: datetime = Field(default_factory=_utcnow)


class ExecutionResult(BaseModel):
    """What happened when (or instead of) running an operation."""
    status: ExecutionStatus
    exit_code: int | None = None
    stdout_preview: str = ""
    stderr_preview: str = ""
    message: str = ""
    duration_ms: float = 0.0

    @classmethod
    def skipped_denied(cls, reason: str) -> ExecutionResult:
        return cls(status=ExecutionStatus.SKIPPED_DENIED, message=reason)

    @classmethod
    def skipped_rejected(cls, reason: str = "Rejected by user") -> ExecutionResult:
        return cls(status=ExecutionStatus.SKIPPED_REJECTED, message=reason)

    @classmethod
    def failure(cls, message: str, exit_code: int | None = None, stderr: str = "") -> ExecutionResult:
        return cls(
            status=ExecutionStatus.FAILURE,
            exit_code=exit_code,
            stderr_preview=stderr,
            message=message,
        )

    @property
    def output(self) -> str:
        """Text folded back into the conversation as the tool result."""
        parts = [p for p in (self.stdout_preview, self.stderr_preview) if p]
        if self.message:
            parts.insert(0, self.message)
        return "\n".join(parts)


# ─── Audit ───────────────────────────────────────────────────

class OperationSummary(BaseModel):
    """Descriptor snapshot embedded in an audit entry."""
    descriptor_id: str
    kind: OperationKind
    text: str
    args: dict[str, Any] = Field(default_factory=dict)
    validation_error: str | None = None

    @classmethod
    def of(cls, descriptor: OperationDescriptor) -> OperationSummary:
        return cls(
            descriptor_id=descriptor.id,
            kind=descriptor.kind,
            text=descriptor.summary(),
            args=dict(descriptor.args),
            validation_error=descriptor.validation_error,
        )


class AuditEntry(BaseModel):
    """Immutable record of one operation's complete lifecycle.

    ``sequence``, ``hash`` and ``previous_hash`` are assigned by the store
    on append; a freshly built entry carries placeholders.
    """
    model_config = ConfigDict(frozen=True)

    session_id: str
    sequence: int = -1
    timestamp: datetime = Field(default_factory=_utcnow)
    source: str = "assistant"
    operation: OperationSummary
    decision: PolicyDecision
    approval: ApprovalRecord | None = None
    result: ExecutionResult
    hash: str = ""
    previous_hash: str = ""

    @property
    def status(self) -> ExecutionStatus:
        return self.result.status

    @property
    def approval_label(self) -> str:
        if self.approval is None:
            return "auto"
        return "approved" if self.approval.approved else "rejected"


# ─── Conversation ───────────────────────────────────────────

class Message(BaseModel):
    """A single chat message."""
    role: str
    content: str


class Session(BaseModel):
    """A persisted conversation plus references to its audit entries."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=_utcnow)
    messages: list[Message] = Field(default_factory=list)
    audit_sequence: list[int] = Field(default_factory=list)

    def add_message(self, role: str, content: str) -> Message:
        message = Message(role=role, content=content)
        self.messages.append(message)
        return message
