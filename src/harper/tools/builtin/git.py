"""Git tool: status, diff, add and commit in the project root."""

from __future__ import annotations

from typing import Any

from harper.core.models import ExecutionResult, ExecutionStatus, OperationKind
from harper.exceptions import ValidationFailureError
from harper.tools.models import Tool
from harper.tools.sandbox import build_env, run_subprocess

GIT_ACTIONS = ("status", "diff", "add", "commit")


class GitTool(Tool):
    kind = OperationKind.GIT_ACTION
    name = "git"
    description = "git status/diff (read-only) and add/commit (mutating)"
    is_async = True
    mutating = True
    fields = {"action": str}

    def check(self, args: dict[str, Any]) -> None:
        action = args["action"]
        if action not in GIT_ACTIONS:
            raise ValidationFailureError(f"git: unsupported action '{action}'")
        if action == "add":
            files = args.get("files")
            if not isinstance(files, list) or not files or not all(isinstance(f, str) and f for f in files):
                raise ValidationFailureError("git add requires a non-empty list of files")
        if action == "commit":
            message = args.get("message")
            if not isinstance(message, str) or not message.strip():
                raise ValidationFailureError("git commit requires a message")

    def argv(self, args: dict[str, Any]) -> list[str]:
        action = args["action"]
        if action == "status":
            return ["git", "status", "--porcelain"]
        if action == "diff":
            return ["git", "diff"]
        if action == "add":
            return ["git", "add", "--", *args["files"]]
        return ["git", "commit", "-m", args["message"]]

    async def execute(self, args: dict[str, Any]) -> ExecutionResult:
        outcome = await run_subprocess(
            self.argv(args),
            cwd=self.project_root,
            timeout=self.config.command_timeout_seconds,
            env=build_env(self.config.redact_env),
            tool_name=self.name,
        )
        if not outcome.ok:
            return ExecutionResult.failure(
                f"git {args['action']} failed with code {outcome.exit_code}",
                exit_code=outcome.exit_code,
                stderr=outcome.stderr,
            )
        stdout = outcome.stdout
        if args["action"] == "status" and not stdout.strip():
            stdout = "Working tree clean"
        return ExecutionResult(
            status=ExecutionStatus.SUCCESS,
            exit_code=0,
            stdout_preview=stdout,
            stderr_preview=outcome.stderr,
        )
