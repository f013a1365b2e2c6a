"""
Harper Tool Interface

Every OperationKind is served by exactly one Tool. A tool declares:

- ``kind``: the OperationKind it executes
- ``is_async``: async tools override ``execute``; sync tools implement
  ``run`` and are moved to a worker thread by the executor
- ``mutating``: whether the tool inherently changes state (informational;
  the policy engine makes the approval decision)
- ``fields``: required argument names and their types, checked by
  ``validate_shape`` before the policy engine sees the descriptor
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, ClassVar

from harper.config import ExecutionPolicyConfig
from harper.core.models import ExecutionResult, OperationKind
from harper.exceptions import ValidationFailureError


class Tool:
    """Base class for built-in tools."""

    kind: ClassVar[OperationKind]
    name: ClassVar[str]
    description: ClassVar[str] = ""
    is_async: ClassVar[bool] = False
    mutating: ClassVar[bool] = False
    fields: ClassVar[dict[str, type | tuple[type, ...]]] = {}

    def __init__(self, config: ExecutionPolicyConfig | None = None):
        self.config = config or ExecutionPolicyConfig()

    @property
    def project_root(self) -> Path:
        return Path(self.config.project_root)

    def validate_shape(self, args: dict[str, Any]) -> None:
        """Raise ValidationFailureError unless ``args`` has the required fields."""
        for field, expected in self.fields.items():
            if field not in args or args[field] is None:
                raise ValidationFailureError(
                    f"{self.name}: missing required field '{field}'",
                    details={"tool_name": self.name, "field": field},
                )
            value = args[field]
            if not isinstance(value, expected) or isinstance(value, bool) and expected is not bool:
                raise ValidationFailureError(
                    f"{self.name}: field '{field}' has type {type(value).__name__}",
                    details={"tool_name": self.name, "field": field},
                )
            if isinstance(value, str) and not value.strip() and field != "content":
                raise ValidationFailureError(
                    f"{self.name}: field '{field}' is empty",
                    details={"tool_name": self.name, "field": field},
                )
        self.check(args)

    def check(self, args: dict[str, Any]) -> None:
        """Extra per-tool shape rules. Raise ValidationFailureError on failure."""

    def run(self, args: dict[str, Any]) -> ExecutionResult:
        """Synchronous hook called by the default ``execute`` in a worker thread.

        Tools that override ``execute`` (the async ones) never call it.
        """
        raise NotImplementedError(f"{type(self).__name__} does not implement run()")

    async def execute(self, args: dict[str, Any]) -> ExecutionResult:
        """Run the tool. Sync tools are moved off the event loop."""
        return await asyncio.to_thread(self.run, args)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} kind={self.kind.value} async={self.is_async} mutating={self.mutating}>"
