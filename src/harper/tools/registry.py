"""
Harper Tool Registry

Maps each OperationKind to the single Tool that executes it. Registration
is checked for exhaustiveness with ``missing_kinds()``; a kind without a
tool is a startup error for the CLI, not a runtime surprise.
"""

from __future__ import annotations

from harper.core.models import OperationKind
from harper.tools.models import Tool


class ToolRegistry:
    """Central registry of tools keyed by OperationKind."""

    def __init__(self) -> None:
        self._tools: dict[OperationKind, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Raises ValueError if a tool for the same kind already exists.
        """
        if tool.kind in self._tools:
            raise ValueError(f"A tool for '{tool.kind.value}' is already registered")
        self._tools[tool.kind] = tool

    def get(self, kind: OperationKind) -> Tool | None:
        return self._tools.get(kind)

    def get_all(self) -> list[Tool]:
        return list(self._tools.values())

    def missing_kinds(self) -> list[OperationKind]:
        """OperationKinds that have no registered tool, in enum order."""
        return [kind for kind in OperationKind if kind not in self._tools]

    def describe(self) -> str:
        """One line per tool, used in help output and the provider system prompt."""
        return "\n".join(
            f"- {tool.name} ({tool.kind.value}){' [mutating]' if tool.mutating else ''}: {tool.description}"
            for tool in self._tools.values()
        )

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, kind: OperationKind) -> bool:
        return kind in self._tools
