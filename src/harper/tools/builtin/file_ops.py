"""File operation tools: read (1 MiB cap) and write (creates parent dirs).

Paths are resolved against the project root. Traversal checks already
happened in the policy engine.
"""

from __future__ import annotations

from typing import Any

from harper.core.models import ExecutionResult, ExecutionStatus, OperationKind
from harper.exceptions import ToolExecutionError
from harper.tools.models import Tool
from harper.tools.sandbox import resolve_in_root

MAX_READ_BYTES = 1_048_576


class ReadFileTool(Tool):
    kind = OperationKind.READ_FILE
    name = "read_file"
    description = "Read a text file (max 1 MiB)"
    fields = {"path": str}

    def run(self, args: dict[str, Any]) -> ExecutionResult:
        path = resolve_in_root(self.project_root, args["path"])
        if not path.exists():
            raise ToolExecutionError(self.name, f"File not found: {args['path']}")
        if not path.is_file():
            raise ToolExecutionError(self.name, f"Not a file: {args['path']}")
        size = path.stat().st_size
        if size > MAX_READ_BYTES:
            raise ToolExecutionError(self.name, f"File too large ({size} bytes). Max {MAX_READ_BYTES}.")
        content = path.read_text(encoding="utf-8", errors="replace")
        return ExecutionResult(
            status=ExecutionStatus.SUCCESS,
            stdout_preview=content,
            message=f"Read {size} bytes from {args['path']}",
        )


class WriteFileTool(Tool):
    kind = OperationKind.WRITE_FILE
    name = "write_file"
    description = "Write content to a file, creating parent directories"
    mutating = True
    fields = {"path": str, "content": str}

    def run(self, args: dict[str, Any]) -> ExecutionResult:
        path = resolve_in_root(self.project_root, args["path"])
        path.parent.mkdir(parents=True, exist_ok=True)
        content = args["content"]
        path.write_text(content, encoding="utf-8")
        return ExecutionResult(
            status=ExecutionStatus.SUCCESS,
            message=f"Wrote {len(content.encode('utf-8'))} bytes to {args['path']}",
        )
