"""Read-only SQLite query tool.

Read-only twice over: the statement must be a single SELECT (or a
``WITH ... SELECT``), and the database is opened with ``mode=ro`` so even
a statement that slips past the check cannot write. The SELECT check runs
at execution time, so a non-SELECT query that was approved still fails.
"""

from __future__ import annotations

import re
import sqlite3
from contextlib import closing
from typing import Any

from harper.core.models import ExecutionResult, ExecutionStatus, OperationKind
from harper.exceptions import ToolExecutionError
from harper.tools.models import Tool
from harper.tools.sandbox import resolve_in_root

MAX_ROWS = 100

_SELECT_RE = re.compile(r"^\s*SELECT\b", re.IGNORECASE)
_WITH_SELECT_RE = re.compile(r"^\s*WITH\b.*\bSELECT\b", re.IGNORECASE | re.DOTALL)


def check_select_only(query: str) -> str:
    """Return the normalized statement, or raise if it is not a single SELECT."""
    statement = query.strip().rstrip(";").strip()
    if ";" in statement:
        raise ToolExecutionError("db_query", "Only a single statement is allowed")
    if not (_SELECT_RE.match(statement) or _WITH_SELECT_RE.match(statement)):
        raise ToolExecutionError("db_query", "Only SELECT queries are allowed")
    return statement


class DbQueryTool(Tool):
    kind = OperationKind.DB_QUERY
    name = "db_query"
    description = "Run a read-only SELECT query against a SQLite database"
    fields = {"db_path": str, "query": str}

    def run(self, args: dict[str, Any]) -> ExecutionResult:
        statement = check_select_only(args["query"])
        path = resolve_in_root(self.project_root, args["db_path"]).resolve()
        if not path.is_file():
            raise ToolExecutionError(self.name, f"Database not found: {args['db_path']}")

        uri = f"{path.as_uri()}?mode=ro"
        with closing(sqlite3.connect(uri, uri=True)) as conn:
            cursor = conn.execute(statement)
            columns = [d[0] for d in cursor.description or ()]
            rows = cursor.fetchmany(MAX_ROWS + 1)

        truncated = len(rows) > MAX_ROWS
        rows = rows[:MAX_ROWS]
        lines = [f"Columns: {', '.join(columns)}"]
        for i, row in enumerate(rows):
            cells = ", ".join(f"{name}={value!r}" for name, value in zip(columns, row))
            lines.append(f"Row {i}: {cells}")
        if truncated:
            lines.append(f"... (truncated at {MAX_ROWS} rows)")

        return ExecutionResult(
            status=ExecutionStatus.SUCCESS,
            stdout_preview="\n".join(lines),
            message=f"Query returned {len(rows)} row(s)",
        )
