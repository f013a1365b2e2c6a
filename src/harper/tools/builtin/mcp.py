"""MCP pass-through tool.

The wire protocol lives behind the McpClient protocol; this tool only
forwards ``[TOOL: name] {json}`` calls for names Harper does not know.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable
from typing import Any, Protocol

from harper.config import ExecutionPolicyConfig
from harper.core.models import ExecutionResult, ExecutionStatus, OperationKind
from harper.exceptions import ToolExecutionError, ValidationFailureError
from harper.tools.models import Tool


class McpClient(Protocol):
    """Minimal client surface: call a named tool, get text content blocks back."""

    def call_tool(self, name: str, arguments: dict[str, Any]) -> list[str] | Awaitable[list[str]]: ...


class McpTool(Tool):
    kind = OperationKind.MCP_TOOL_CALL
    name = "mcp_tool"
    description = "Call a tool on the connected MCP server"
    is_async = True
    mutating = True
    fields = {"name": str}

    def __init__(self, config: ExecutionPolicyConfig | None = None, client: McpClient | None = None):
        super().__init__(config)
        self._client = client

    def check(self, args: dict[str, Any]) -> None:
        if not isinstance(args.get("arguments", {}), dict):
            raise ValidationFailureError("mcp_tool: arguments must be an object")

    async def execute(self, args: dict[str, Any]) -> ExecutionResult:
        if self._client is None:
            raise ToolExecutionError(self.name, "MCP is not configured")
        blocks = self._client.call_tool(args["name"], args.get("arguments", {}))
        if inspect.isawaitable(blocks):
            blocks = await blocks
        if not isinstance(blocks, list):
            raise ToolExecutionError(self.name, "malformed MCP response")
        return ExecutionResult(
            status=ExecutionStatus.SUCCESS,
            stdout_preview="\n".join(str(b) for b in blocks),
            message=f"MCP tool '{args['name']}' returned {len(blocks)} block(s)",
        )
