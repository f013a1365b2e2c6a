"""
Harper Tool Execution System

    descriptor -> PolicyEngine -> ApprovalWorkflow -> ToolExecutor -> Tool

Components:
- Tool: uniform interface (validate_shape, execute, kind/is_async/mutating)
- ToolRegistry: one tool per OperationKind, exhaustiveness via missing_kinds()
- ToolExecutor: runs allowed operations, folds every failure into a result
- sandbox helpers: subprocess timeout, env redaction, output previews
"""

from harper.tools.executor import ToolExecutor
from harper.tools.models import Tool
from harper.tools.registry import ToolRegistry
from harper.tools.sandbox import OUTPUT_PREVIEW_LIMIT, build_env, truncate_preview

__all__ = [
    "OUTPUT_PREVIEW_LIMIT",
    "Tool",
    "ToolExecutor",
    "ToolRegistry",
    "build_env",
    "truncate_preview",
]
