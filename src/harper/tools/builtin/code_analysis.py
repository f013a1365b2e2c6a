"""Code metrics: line counts plus function/class/import counts.

Python sources are measured with ``ast``; other languages (or Python that
does not parse) fall back to keyword heuristics.
"""

from __future__ import annotations

import ast
import re
from typing import Any

from pydantic import BaseModel

from harper.core.models import ExecutionResult, ExecutionStatus, OperationKind
from harper.exceptions import ToolExecutionError
from harper.tools.builtin.file_ops import MAX_READ_BYTES
from harper.tools.models import Tool
from harper.tools.sandbox import resolve_in_root

_FUNCTION_RE = re.compile(r"^\s*(?:pub\s+)?(?:async\s+)?(?:fn|def|func|function)\s+\w+", re.MULTILINE)
_CLASS_RE = re.compile(r"^\s*(?:pub\s+)?(?:class|struct|enum|interface|trait)\s+\w+", re.MULTILINE)
_IMPORT_RE = re.compile(r"^\s*(?:import|from\s+\S+\s+import|use|#include|require)\b", re.MULTILINE)


class CodeMetrics(BaseModel):
    path: str
    total_lines: int
    non_empty_lines: int
    comment_lines: int
    functions: int
    classes: int
    imports: int
    method: str

    def render(self) -> str:
        return "\n".join([
            f"File: {self.path}",
            f"Total lines: {self.total_lines}",
            f"Non-empty lines: {self.non_empty_lines}",
            f"Comment lines: {self.comment_lines}",
            f"Functions: {self.functions}",
            f"Classes: {self.classes}",
            f"Imports: {self.imports}",
            f"Analysis: {self.method}",
        ])


def analyze_source(source: str, path: str) -> CodeMetrics:
    lines = source.splitlines()
    non_empty = [line for line in lines if line.strip()]
    comments = [line for line in non_empty if line.lstrip().startswith(("#", "//", "/*", "*"))]
    base = {
        "path": path,
        "total_lines": len(lines),
        "non_empty_lines": len(non_empty),
        "comment_lines": len(comments),
    }

    if path.endswith((".py", ".pyi")):
        try:
            tree = ast.parse(source)
        except SyntaxError:
            pass
        else:
            nodes = list(ast.walk(tree))
            return CodeMetrics(
                **base,
                functions=sum(isinstance(n, (ast.FunctionDef, ast.AsyncFunctionDef)) for n in nodes),
                classes=sum(isinstance(n, ast.ClassDef) for n in nodes),
                imports=sum(isinstance(n, (ast.Import, ast.ImportFrom)) for n in nodes),
                method="ast",
            )

    return CodeMetrics(
        **base,
        functions=len(_FUNCTION_RE.findall(source)),
        classes=len(_CLASS_RE.findall(source)),
        imports=len(_IMPORT_RE.findall(source)),
        method="heuristic",
    )


class CodeAnalyzeTool(Tool):
    kind = OperationKind.CODE_ANALYZE
    name = "code_analyze"
    description = "Report line, function, class and import counts for a source file"
    fields = {"path": str}

    def run(self, args: dict[str, Any]) -> ExecutionResult:
        path = resolve_in_root(self.project_root, args["path"])
        if not path.is_file():
            raise ToolExecutionError(self.name, f"File not found: {args['path']}")
        if path.stat().st_size > MAX_READ_BYTES:
            raise ToolExecutionError(self.name, f"File too large to analyze: {args['path']}")
        source = path.read_text(encoding="utf-8", errors="replace")
        metrics = analyze_source(source, args["path"])
        return ExecutionResult(status=ExecutionStatus.SUCCESS, stdout_preview=metrics.render())
