"""
Harper Orchestrator

Composes the pipeline for every operation found in a turn:

    IntentExtractor -> shape check -> PolicyEngine -> ApprovalWorkflow
        -> ToolExecutor -> AuditStore -> feedback text

Operations are processed strictly in source order; operation N+1 is not
evaluated until N's audit entry has been written. Every extracted
descriptor yields exactly one audit entry, whatever happens to it.

Only StorageError escapes ``process_turn``. Validation, policy, approval
and execution problems all end up as ExecutionResults.
"""

from __future__ import annotations

from harper.approval.workflow import ApprovalWorkflow
from harper.audit.store import AuditStore
from harper.config import ExecutionPolicyConfig
from harper.core.models import (
    AuditEntry,
    ExecutionStatus,
    OperationDescriptor,
    OperationSummary,
    Session,
)
from harper.exceptions import ApprovalRejectedError, SecurityViolationError, ValidationFailureError
from harper.intent.extractor import IntentExtractor
from harper.logging import get_logger
from harper.policy.engine import PolicyEngine, Violation
from harper.tools.executor import ToolExecutor
from harper.tools.registry import ToolRegistry

logger = get_logger("harper.agent")


class Orchestrator:
    """Runs extracted operations through policy, approval, execution and audit."""

    def __init__(
        self,
        config: ExecutionPolicyConfig,
        registry: ToolRegistry,
        store: AuditStore,
        approval: ApprovalWorkflow | None = None,
        extractor: IntentExtractor | None = None,
        engine: PolicyEngine | None = None,
    ):
        self.config = config
        self.registry = registry
        self.store = store
        self._approval = approval or ApprovalWorkflow()
        self._extractor = extractor or IntentExtractor()
        self._engine = engine or PolicyEngine()
        self._executor = ToolExecutor(registry)

    async def process_turn(self, session: Session, text: str, source: str = "assistant") -> list[AuditEntry]:
        """Extract and process every operation in ``text``.

        Returns the stored audit entries in processing order (empty when the
        text holds no operations).

        Raises:
            StorageError: If an audit entry cannot be written. Entries
                already written stay written; later operations are skipped.
        """
        entries: list[AuditEntry] = []
        for descriptor in self._extractor.extract(text):
            entries.append(await self.process_descriptor(session, descriptor, source))
        return entries

    async def process_descriptor(
        self,
        session: Session,
        descriptor: OperationDescriptor,
        source: str = "assistant",
    ) -> AuditEntry:
        descriptor = self._check_shape(descriptor)
        decision = self._engine.evaluate(descriptor, self.config)

        approval = None
        if decision.allowed and decision.requires_approval:
            approval = await self._approval.request(decision, descriptor)

        result = await self._executor.run(descriptor, decision, approval)

        entry = AuditEntry(
            session_id=session.id,
            source=source,
            operation=OperationSummary.of(descriptor),
            decision=decision,
            approval=approval,
            result=result,
        )
        stored = self.store.append(entry)
        session.audit_sequence.append(stored.sequence)

        logger.info(
            "Operation %s finished",
            descriptor.id,
            extra={
                "session_id": session.id,
                "sequence": stored.sequence,
                "operation": descriptor.kind.value,
                "status": result.status.value,
                "violation": decision.violation,
                "duration_ms": result.duration_ms,
            },
        )
        return stored

    def _check_shape(self, descriptor: OperationDescriptor) -> OperationDescriptor:
        """Mark descriptors whose arguments the tool would reject."""
        if not descriptor.is_valid:
            return descriptor
        tool = self.registry.get(descriptor.kind)
        if tool is None:
            return descriptor
        try:
            tool.validate_shape(descriptor.args)
        except ValidationFailureError as e:
            return descriptor.model_copy(update={"validation_error": str(e)})
        return descriptor


def format_feedback(entries: list[AuditEntry]) -> str:
    """Render results as the text folded back into the conversation."""
    blocks = []
    for entry in entries:
        header = f"[#{entry.sequence} {entry.operation.kind.value}] {entry.operation.text} -> {entry.result.status.value}"
        output = entry.result.output
        blocks.append(f"{header}\n{output}" if output else header)
    return "Tool results:\n" + "\n\n".join(blocks)


def raise_for_skipped(entries: list[AuditEntry]) -> None:
    """Raise for the first operation that was denied or rejected.

    Used where a skipped operation should end the command rather than be
    folded back into the conversation. Entries are already audited.

    Raises:
        ValidationFailureError: The operation was malformed.
        SecurityViolationError: The policy engine denied the operation.
        ApprovalRejectedError: The user declined the operation.
    """
    for entry in entries:
        details = {"session_id": entry.session_id, "sequence": entry.sequence}
        if entry.status == ExecutionStatus.SKIPPED_DENIED:
            violation = entry.decision.violation or Violation.INTERNAL
            if violation == Violation.VALIDATION:
                raise ValidationFailureError(entry.decision.reason, details=details)
            raise SecurityViolationError(violation, entry.decision.reason, details=details)
        if entry.status == ExecutionStatus.SKIPPED_REJECTED:
            raise ApprovalRejectedError(entry.operation.text, details=details)
