"""
Harper Custom Exceptions

Structured exception hierarchy for the Harper agent.
All Harper-specific exceptions inherit from HarperError.

Exception hierarchy:
    HarperError
    +-- SecurityViolationError   (hard block, path traversal, metacharacter)
    +-- ValidationFailureError   (malformed operation shape)
    +-- ApprovalRejectedError    (user declined an operation)
    +-- ToolExecutionError       (tool ran and failed)
    +-- StorageError             (audit/session write or read failure)
    |   +-- SessionNotFoundError
    +-- ConfigError              (startup configuration failure)
    +-- ProviderError            (AI provider failure)

Inside a session the orchestrator folds operation failures into
ExecutionResult values, so a single failing operation never ends it.
Denials and rejections are raised afterwards only where a skipped
operation should end a command (``raise_for_skipped``, used by
``harper run``). StorageError and ConfigError always propagate.
"""

from __future__ import annotations


class HarperError(Exception):
    """Base exception for all Harper errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SecurityViolationError(HarperError):
    """Raised when an operation violates the execution policy.

    Never retried. The category names the rule that fired
    (hard_block, length, path_traversal, metacharacter, sudo).
    """

    def __init__(self, category: str, reason: str, details: dict | None = None):
        super().__init__(
            f"Security violation ({category}): {reason}",
            details={"category": category, "reason": reason, **(details or {})},
        )
        self.category = category
        self.reason = reason


class ValidationFailureError(HarperError):
    """Raised when an operation's arguments do not have the required shape."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, details=details)


class ApprovalRejectedError(HarperError):
    """Raised when the user declines an operation."""

    def __init__(self, operation: str, details: dict | None = None):
        super().__init__(
            f"Operation rejected by user: {operation}",
            details={"operation": operation, **(details or {})},
        )
        self.operation = operation


class ToolExecutionError(HarperError):
    """Raised inside a tool when the underlying operation fails.

    The executor converts it into a FAILURE result.
    """

    def __init__(
        self,
        tool_name: str,
        message: str,
        exit_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            f"Tool '{tool_name}' execution failed: {message}",
            details={"tool_name": tool_name, "exit_code": exit_code, **(details or {})},
        )
        self.tool_name = tool_name
        self.exit_code = exit_code


class StorageError(HarperError):
    """Raised when the audit/session store cannot complete a read or write.

    Must propagate to the caller; a swallowed storage error loses audit data.
    """

    def __init__(self, operation: str, message: str, details: dict | None = None):
        super().__init__(
            f"Storage '{operation}' failed: {message}",
            details={"operation": operation, **(details or {})},
        )
        self.operation = operation


class SessionNotFoundError(StorageError):
    """Raised when loading a session id that was never saved."""

    def __init__(self, session_id: str):
        super().__init__("session_load", f"No session with id '{session_id}'")
        self.session_id = session_id


class ConfigError(HarperError):
    """Raised for malformed or incomplete configuration at startup."""

    pass


class ProviderError(HarperError):
    """Raised when the AI provider call fails."""

    def __init__(self, provider_name: str, message: str, details: dict | None = None):
        super().__init__(
            f"Provider '{provider_name}' error: {message}",
            details={"provider_name": provider_name, **(details or {})},
        )
        self.provider_name = provider_name
