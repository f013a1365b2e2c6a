"""Shell command tool: ``sh -c`` in the project root.

The command has already passed the policy engine's metacharacter and
hard-block rules; this tool only enforces the timeout and env redaction.
"""

from __future__ import annotations

from typing import Any

from harper.core.models import ExecutionResult, ExecutionStatus, OperationKind
from harper.tools.models import Tool
from harper.tools.sandbox import build_env, run_subprocess


class ShellTool(Tool):
    kind = OperationKind.RUN_COMMAND
    name = "run_command"
    description = "Run a shell command in the project root"
    is_async = True
    mutating = True
    fields = {"command": str}

    async def execute(self, args: dict[str, Any]) -> ExecutionResult:
        command = args["command"]
        outcome = await run_subprocess(
            ["sh", "-c", command],
            cwd=self.project_root,
            timeout=self.config.command_timeout_seconds,
            env=build_env(self.config.redact_env),
            tool_name=self.name,
        )
        status = ExecutionStatus.SUCCESS if outcome.ok else ExecutionStatus.FAILURE
        message = "" if outcome.ok else f"Command exited with code {outcome.exit_code}"
        return ExecutionResult(
            status=status,
            exit_code=outcome.exit_code,
            stdout_preview=outcome.stdout,
            stderr_preview=outcome.stderr,
            message=message,
        )
