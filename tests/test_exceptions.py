"""Tests for Harper custom exceptions.

Covers the exception hierarchy and structured error information.
"""

import pytest

from harper.exceptions import (
    ApprovalRejectedError,
    ConfigError,
    HarperError,
    ProviderError,
    SecurityViolationError,
    SessionNotFoundError,
    StorageError,
    ToolExecutionError,
    ValidationFailureError,
)


class TestHarperError:
    def test_base_error(self):
        err = HarperError("something went wrong")
        assert str(err) == "something went wrong"
        assert err.details == {}

    def test_base_error_with_details(self):
        err = HarperError("failed", details={"key": "value"})
        assert err.details == {"key": "value"}

    def test_is_exception(self):
        assert issubclass(HarperError, Exception)


class TestSecurityViolationError:
    def test_creation(self):
        err = SecurityViolationError("metacharacter", "';' is not allowed")
        assert "metacharacter" in str(err)
        assert err.category == "metacharacter"
        assert err.reason == "';' is not allowed"

    def test_details_include_category(self):
        err = SecurityViolationError("hard_block", "mkfs")
        assert err.details["category"] == "hard_block"
        assert err.details["reason"] == "mkfs"


class TestToolExecutionError:
    def test_creation(self):
        err = ToolExecutionError("run_command", "timed out after 60s")
        assert "run_command" in str(err)
        assert "timed out" in str(err)
        assert err.exit_code is None

    def test_exit_code(self):
        err = ToolExecutionError("git", "failed", exit_code=128)
        assert err.exit_code == 128
        assert err.details["exit_code"] == 128


class TestStorageErrors:
    def test_storage_error(self):
        err = StorageError("append", "disk full")
        assert err.operation == "append"
        assert "disk full" in str(err)

    def test_session_not_found_is_storage_error(self):
        err = SessionNotFoundError("abc")
        assert isinstance(err, StorageError)
        assert err.session_id == "abc"
        assert "abc" in str(err)


class TestOtherErrors:
    def test_approval_rejected(self):
        err = ApprovalRejectedError("rm -rf build")
        assert err.operation == "rm -rf build"

    def test_provider_error(self):
        err = ProviderError("ClaudeProvider", "rate limited")
        assert err.provider_name == "ClaudeProvider"
        assert "rate limited" in str(err)

    def test_validation_failure(self):
        err = ValidationFailureError("missing path", details={"field": "path"})
        assert err.details["field"] == "path"


class TestExceptionHierarchy:
    @pytest.mark.parametrize(
        "exc_class",
        [
            SecurityViolationError,
            ValidationFailureError,
            ApprovalRejectedError,
            ToolExecutionError,
            StorageError,
            SessionNotFoundError,
            ConfigError,
            ProviderError,
        ],
    )
    def test_all_inherit_harper_error(self, exc_class):
        assert issubclass(exc_class, HarperError)

    def test_catch_all_harper_errors(self):
        with pytest.raises(HarperError):
            raise ToolExecutionError("shell", "boom")
