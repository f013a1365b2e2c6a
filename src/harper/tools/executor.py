"""
Harper Tool Executor

Runs a descriptor's tool only when the policy allowed it and any required
approval was granted. Every failure is folded into an ExecutionResult with
status FAILURE; nothing raised by a tool escapes ``run``.

Sync tools run in a worker thread (``asyncio.to_thread``) and async tools
are awaited. Either way the call completes before ``run`` returns, so the
caller can keep operations strictly sequential.
"""

from __future__ import annotations

import asyncio
import time

from harper.core.models import (
    ApprovalRecord,
    ExecutionResult,
    OperationDescriptor,
    PolicyDecision,
)
from harper.exceptions import ToolExecutionError, ValidationFailureError
from harper.logging import get_logger
from harper.tools.registry import ToolRegistry
from harper.tools.sandbox import truncate_preview

logger = get_logger("harper.tools")


class ToolExecutor:
    """Executes allowed operations through the ToolRegistry."""

    def __init__(self, registry: ToolRegistry):
        self._registry = registry

    async def run(
        self,
        descriptor: OperationDescriptor,
        decision: PolicyDecision,
        approval: ApprovalRecord | None = None,
    ) -> ExecutionResult:
        if not decision.allowed:
            return ExecutionResult.skipped_denied(decision.reason or "Denied by policy")
        if approval is not None and not approval.approved:
            return ExecutionResult.skipped_rejected()
        if decision.requires_approval and approval is None:
            return ExecutionResult.skipped_rejected("Approval required but not obtained")

        tool = self._registry.get(descriptor.kind)
        if tool is None:
            return ExecutionResult.failure(f"No tool registered for {descriptor.kind.value}")

        start = time.monotonic()
        try:
            tool.validate_shape(descriptor.args)
            if tool.is_async:
                result = await tool.execute(descriptor.args)
            else:
                result = await asyncio.to_thread(tool.run, descriptor.args)
        except ToolExecutionError as e:
            result = ExecutionResult.failure(str(e), exit_code=e.exit_code)
        except ValidationFailureError as e:
            result = ExecutionResult.failure(f"Invalid arguments: {e}")
        except Exception as e:
            logger.debug("Tool raised", exc_info=True, extra={"tool_name": tool.name})
            result = ExecutionResult.failure(f"Tool execution error: {type(e).__name__}: {e}")
        duration_ms = (time.monotonic() - start) * 1000

        result = result.model_copy(
            update={
                "stdout_preview": truncate_preview(result.stdout_preview),
                "stderr_preview": truncate_preview(result.stderr_preview),
                "duration_ms": round(duration_ms, 2),
            }
        )
        logger.info(
            "Executed %s",
            tool.name,
            extra={
                "operation": descriptor.kind.value,
                "tool_name": tool.name,
                "status": result.status.value,
                "exit_code": result.exit_code,
                "duration_ms": result.duration_ms,
            },
        )
        return result
