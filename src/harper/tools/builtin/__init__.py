"""
Harper Built-in Tools

One tool per OperationKind. ``default_registry`` builds a registry with all
of them and checks that no kind is left without a tool.
"""

from __future__ import annotations

import httpx

from harper.config import ExecutionPolicyConfig
from harper.storage.todos import TodoStore
from harper.tools.builtin.code_analysis import CodeAnalyzeTool
from harper.tools.builtin.db_query import DbQueryTool
from harper.tools.builtin.file_ops import ReadFileTool, WriteFileTool
from harper.tools.builtin.git import GitTool
from harper.tools.builtin.github import GithubIssueTool, GithubPrTool
from harper.tools.builtin.http_client import ApiProbeTool
from harper.tools.builtin.image import ImageInfoTool, ImageResizeTool
from harper.tools.builtin.mcp import McpClient, McpTool
from harper.tools.builtin.screenpipe import ScreenpipeTool
from harper.tools.builtin.shell import ShellTool
from harper.tools.builtin.todo import TodoTool
from harper.tools.builtin.web_search import WebSearchTool
from harper.tools.registry import ToolRegistry

LOCAL_TOOLS = [
    ShellTool,
    ReadFileTool,
    WriteFileTool,
    GitTool,
    DbQueryTool,
    ImageInfoTool,
    ImageResizeTool,
    CodeAnalyzeTool,
    GithubIssueTool,
    GithubPrTool,
]

HTTP_TOOLS = [
    WebSearchTool,
    ApiProbeTool,
    ScreenpipeTool,
]


def register_all_builtins(
    registry: ToolRegistry,
    config: ExecutionPolicyConfig,
    transport: httpx.AsyncBaseTransport | None = None,
    mcp_client: McpClient | None = None,
    todos: TodoStore | None = None,
) -> None:
    """Register every built-in tool with the given registry.

    Without ``todos`` the todo list lives in a private in-memory database.
    """
    for tool_cls in LOCAL_TOOLS:
        registry.register(tool_cls(config))
    for http_cls in HTTP_TOOLS:
        registry.register(http_cls(config, transport=transport))
    registry.register(McpTool(config, client=mcp_client))
    registry.register(TodoTool(config, store=todos))


def default_registry(
    config: ExecutionPolicyConfig,
    transport: httpx.AsyncBaseTransport | None = None,
    mcp_client: McpClient | None = None,
    todos: TodoStore | None = None,
) -> ToolRegistry:
    """A registry covering every OperationKind.

    Raises:
        RuntimeError: If some OperationKind has no tool.
    """
    registry = ToolRegistry()
    register_all_builtins(registry, config, transport=transport, mcp_client=mcp_client, todos=todos)
    missing = registry.missing_kinds()
    if missing:
        raise RuntimeError(f"No tool registered for: {', '.join(k.value for k in missing)}")
    return registry
