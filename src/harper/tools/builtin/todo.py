"""Persistent todo list: add, list, remove and clear items."""

from __future__ import annotations

from typing import Any

from harper.config import ExecutionPolicyConfig
from harper.core.models import ExecutionResult, ExecutionStatus, OperationKind
from harper.exceptions import ToolExecutionError, ValidationFailureError
from harper.storage.todos import TodoStore
from harper.tools.models import Tool

TODO_ACTIONS = ("add", "list", "remove", "clear")


class TodoTool(Tool):
    kind = OperationKind.TODO
    name = "todo"
    description = "Keep a todo list: add <description>, list, remove <n>, clear"
    mutating = True
    fields = {"action": str}

    def __init__(self, config: ExecutionPolicyConfig | None = None, store: TodoStore | None = None):
        super().__init__(config)
        self.store = store if store is not None else TodoStore()

    def check(self, args: dict[str, Any]) -> None:
        action = args["action"]
        if action not in TODO_ACTIONS:
            raise ValidationFailureError(
                f"todo: unknown action '{action}'. Supported: {', '.join(TODO_ACTIONS)}",
                details={"tool_name": self.name, "field": "action"},
            )
        if action == "add":
            description = args.get("description")
            if not isinstance(description, str) or not description.strip():
                raise ValidationFailureError(
                    "todo: add requires a description",
                    details={"tool_name": self.name, "field": "description"},
                )
        if action == "remove":
            index = args.get("index")
            if not isinstance(index, int) or isinstance(index, bool) or index < 1:
                raise ValidationFailureError(
                    "todo: remove requires an index of 1 or more",
                    details={"tool_name": self.name, "field": "index"},
                )

    def run(self, args: dict[str, Any]) -> ExecutionResult:
        action = args["action"]
        if action == "add":
            description = args["description"].strip()
            self.store.add(description)
            return ExecutionResult(status=ExecutionStatus.SUCCESS, message=f"Added todo: {description}")
        if action == "remove":
            removed = self.store.remove(args["index"])
            if removed is None:
                raise ToolExecutionError(self.name, f"Invalid todo index: {args['index']}")
            return ExecutionResult(status=ExecutionStatus.SUCCESS, message=f"Removed todo: {removed}")
        if action == "clear":
            count = self.store.clear()
            return ExecutionResult(status=ExecutionStatus.SUCCESS, message=f"Cleared {count} todos")

        items = self.store.items()
        if not items:
            return ExecutionResult(status=ExecutionStatus.SUCCESS, message="No todos found")
        lines = [f"{i}. {item}" for i, item in enumerate(items, 1)]
        return ExecutionResult(status=ExecutionStatus.SUCCESS, stdout_preview="Current todos:\n" + "\n".join(lines))
