"""GitHub issue / pull request creation through the ``gh`` CLI.

``gh`` needs its own credentials, so the environment is passed through
unredacted for these two tools.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from harper.core.models import ExecutionResult, ExecutionStatus, OperationKind
from harper.tools.models import Tool
from harper.tools.sandbox import build_env, run_subprocess


class _GhTool(Tool, ABC):
    is_async = True
    mutating = True

    @abstractmethod
    def argv(self, args: dict[str, Any]) -> list[str]:
        """The gh command line for one call."""

    async def execute(self, args: dict[str, Any]) -> ExecutionResult:
        outcome = await run_subprocess(
            self.argv(args),
            cwd=self.project_root,
            timeout=self.config.command_timeout_seconds,
            env=build_env(redact=False),
            tool_name=self.name,
        )
        if not outcome.ok:
            return ExecutionResult.failure(
                f"gh exited with code {outcome.exit_code}",
                exit_code=outcome.exit_code,
                stderr=outcome.stderr,
            )
        return ExecutionResult(
            status=ExecutionStatus.SUCCESS,
            exit_code=0,
            stdout_preview=outcome.stdout.strip(),
            message=f"Created {self.noun}",
        )

    noun = "item"


class GithubIssueTool(_GhTool):
    kind = OperationKind.GITHUB_ISSUE
    name = "github_issue"
    description = "Create a GitHub issue with gh"
    fields = {"title": str, "body": str}
    noun = "issue"

    def argv(self, args: dict[str, Any]) -> list[str]:
        return ["gh", "issue", "create", "--title", args["title"], "--body", args["body"]]


class GithubPrTool(_GhTool):
    kind = OperationKind.GITHUB_PR
    name = "github_pr"
    description = "Create a GitHub pull request with gh"
    fields = {"title": str, "body": str, "branch": str}
    noun = "pull request"

    def argv(self, args: dict[str, Any]) -> list[str]:
        return [
            "gh", "pr", "create",
            "--title", args["title"],
            "--body", args["body"],
            "--head", args["branch"],
        ]
