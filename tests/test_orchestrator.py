"""Tests for the Harper orchestrator pipeline.

End-to-end over real components: extraction, shape check, policy, approval,
execution and audit. Every extracted descriptor must yield exactly one
audit entry whatever happens to it.
"""

import sqlite3
from unittest.mock import patch

import pytest

from harper.agent.orchestrator import format_feedback, raise_for_skipped
from harper.approval import ScriptedApprover
from harper.approval.workflow import DESTRUCTIVE_WARNING
from harper.core.models import ExecutionStatus, OperationKind
from harper.exceptions import ApprovalRejectedError, SecurityViolationError, StorageError, ValidationFailureError
from harper.policy import Violation


class TestSecurityScenarios:
    @pytest.mark.asyncio
    async def test_command_chaining_denied(self, make_orchestrator, session, approve_all):
        orchestrator = make_orchestrator(approve_all)
        [entry] = await orchestrator.process_turn(session, "[RUN_COMMAND ls; cat /etc/passwd]")
        assert not entry.decision.allowed
        assert entry.status == ExecutionStatus.SKIPPED_DENIED
        assert "metacharacter" in entry.decision.reason
        assert approve_all.prompts == []

    @pytest.mark.asyncio
    async def test_newline_chaining_denied_for_allow_listed_command(self, make_orchestrator, session, policy, project_root):
        orchestrator = make_orchestrator(config=policy.model_copy(update={"allowed_commands": ("ls",)}))
        [entry] = await orchestrator.process_turn(session, "[RUN_COMMAND ls\ntouch pwned]")
        assert entry.status == ExecutionStatus.SKIPPED_DENIED
        assert entry.decision.violation == Violation.METACHARACTER
        assert not entry.decision.requires_approval
        assert not (project_root / "pwned").exists()

    @pytest.mark.asyncio
    async def test_path_traversal_denied(self, make_orchestrator, session, approve_all):
        orchestrator = make_orchestrator(approve_all)
        tool = orchestrator.registry.get(OperationKind.READ_FILE)
        with patch.object(tool, "run", wraps=tool.run) as run:
            [entry] = await orchestrator.process_turn(session, "[READ_FILE ../../etc/passwd]")
        assert entry.status == ExecutionStatus.SKIPPED_DENIED
        assert "path traversal" in entry.decision.reason
        assert entry.decision.violation == Violation.PATH_TRAVERSAL
        run.assert_not_called()

    @pytest.mark.asyncio
    async def test_destructive_rejected(self, make_orchestrator, session, project_root):
        build = project_root / "build"
        build.mkdir()
        (build / "artifact.o").write_text("x")
        approver = ScriptedApprover(["no"])
        orchestrator = make_orchestrator(approver)

        [entry] = await orchestrator.process_turn(session, "[RUN_COMMAND rm -rf ./build]")
        assert entry.status == ExecutionStatus.SKIPPED_REJECTED
        assert entry.decision.confirm_destructive
        assert entry.approval is not None and not entry.approval.approved
        assert DESTRUCTIVE_WARNING in approver.prompts[0]
        assert (build / "artifact.o").exists()

    @pytest.mark.asyncio
    async def test_drop_table_fails_in_tool(self, make_orchestrator, session, approve_all, project_root):
        conn = sqlite3.connect(project_root / "data.db")
        conn.execute("CREATE TABLE users (id INTEGER)")
        conn.commit()
        conn.close()

        orchestrator = make_orchestrator(approve_all)
        [entry] = await orchestrator.process_turn(session, "[DB_QUERY ./data.db DROP TABLE users]")
        assert entry.status == ExecutionStatus.FAILURE
        assert "Only SELECT queries are allowed" in entry.result.message

        conn = sqlite3.connect(project_root / "data.db")
        assert conn.execute("SELECT name FROM sqlite_master WHERE name = 'users'").fetchone()
        conn.close()

    @pytest.mark.asyncio
    async def test_drop_table_fails_without_approval_gate(self, make_orchestrator, session, permissive_policy, project_root):
        sqlite3.connect(project_root / "data.db").close()
        orchestrator = make_orchestrator(config=permissive_policy)
        [entry] = await orchestrator.process_turn(session, "[DB_QUERY data.db DROP TABLE users]")
        assert entry.approval is None
        assert entry.status == ExecutionStatus.FAILURE


class TestPipeline:
    @pytest.mark.asyncio
    async def test_no_operations(self, make_orchestrator, session, store):
        entries = await make_orchestrator().process_turn(session, "Just a friendly reply.")
        assert entries == []
        assert store.count(session.id) == 0

    @pytest.mark.asyncio
    async def test_one_entry_per_descriptor(self, make_orchestrator, session, store, approve_all):
        text = "[READ_FILE missing.txt] [RUN_COMMAND ] [GIT_STATUS oops] [SEARCH: "
        entries = await make_orchestrator(approve_all).process_turn(session, text)
        assert [e.sequence for e in entries] == [0, 1, 2, 3]
        assert session.audit_sequence == [0, 1, 2, 3]
        assert store.count(session.id) == 4
        assert entries[0].status == ExecutionStatus.FAILURE
        assert all(e.status == ExecutionStatus.SKIPPED_DENIED for e in entries[1:])
        assert all(e.decision.violation == Violation.VALIDATION for e in entries[1:])

    @pytest.mark.asyncio
    async def test_operations_run_in_order(self, make_orchestrator, session, approve_all):
        text = '[WRITE_FILE greeting.txt "hello harper"] then [READ_FILE greeting.txt]'
        write, read = await make_orchestrator(approve_all).process_turn(session, text)
        assert write.status == ExecutionStatus.SUCCESS
        assert write.approval.approved
        assert read.status == ExecutionStatus.SUCCESS
        assert read.approval is None
        assert read.result.stdout_preview == "hello harper"

    @pytest.mark.asyncio
    async def test_shell_command_runs_after_approval(self, make_orchestrator, session, approve_all):
        [entry] = await make_orchestrator(approve_all).process_turn(session, "[RUN_COMMAND echo hi]")
        assert entry.status == ExecutionStatus.SUCCESS
        assert entry.result.exit_code == 0
        assert entry.approval_label == "approved"
        assert len(approve_all.prompts) == 1

    @pytest.mark.asyncio
    async def test_read_only_operations_do_not_prompt(self, make_orchestrator, session, project_root):
        (project_root / "a.txt").write_text("a")
        approver = ScriptedApprover()
        [entry] = await make_orchestrator(approver).process_turn(session, "look at @a.txt")
        assert entry.status == ExecutionStatus.SUCCESS
        assert entry.operation.kind == OperationKind.READ_FILE
        assert approver.prompts == []

    @pytest.mark.asyncio
    async def test_no_approver_rejects_mutations(self, make_orchestrator, session, project_root):
        [entry] = await make_orchestrator(None).process_turn(session, "[WRITE_FILE x.txt data]")
        assert entry.status == ExecutionStatus.SKIPPED_REJECTED
        assert not (project_root / "x.txt").exists()

    @pytest.mark.asyncio
    async def test_tool_shape_failure_is_validation_denial(self, make_orchestrator, session, approve_all):
        [entry] = await make_orchestrator(approve_all).process_turn(session, '[TOOL: git] {"action": "push"}')
        assert entry.status == ExecutionStatus.SKIPPED_DENIED
        assert entry.decision.violation == Violation.VALIDATION
        assert "unsupported action" in entry.operation.validation_error

    @pytest.mark.asyncio
    async def test_source_recorded(self, make_orchestrator, session):
        [entry] = await make_orchestrator().process_turn(session, "[READ_FILE notes.txt]", source="user")
        assert entry.source == "user"

    @pytest.mark.asyncio
    async def test_chain_verifies_after_turn(self, make_orchestrator, session, store, approve_all):
        await make_orchestrator(approve_all).process_turn(session, "[RUN_COMMAND echo 1] [RUN_COMMAND ls | wc]")
        assert store.verify_chain(session.id) == (True, "Audit chain intact (2 entries)")

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self, make_orchestrator, session, store):
        orchestrator = make_orchestrator()
        store.close()
        with pytest.raises(StorageError):
            await orchestrator.process_turn(session, "[READ_FILE notes.txt]")


class TestFormatFeedback:
    @pytest.mark.asyncio
    async def test_format(self, make_orchestrator, session, approve_all):
        entries = await make_orchestrator(approve_all).process_turn(
            session, "[RUN_COMMAND echo hi] [RUN_COMMAND ls; pwd]"
        )
        feedback = format_feedback(entries)
        assert feedback.startswith("Tool results:\n")
        assert "[#0 RUN_COMMAND] echo hi -> SUCCESS\nhi" in feedback
        assert "[#1 RUN_COMMAND] ls; pwd -> SKIPPED_DENIED" in feedback


class TestRaiseForSkipped:
    @pytest.mark.asyncio
    async def test_success_does_not_raise(self, make_orchestrator, session, project_root):
        (project_root / "notes.txt").write_text("hi")
        entries = await make_orchestrator().process_turn(session, "[READ_FILE notes.txt]")
        raise_for_skipped(entries)

    @pytest.mark.asyncio
    async def test_denial_raises_security_violation(self, make_orchestrator, session, approve_all):
        entries = await make_orchestrator(approve_all).process_turn(
            session, "[RUN_COMMAND echo hi] [RUN_COMMAND ls; pwd]"
        )
        with pytest.raises(SecurityViolationError) as exc_info:
            raise_for_skipped(entries)
        assert exc_info.value.category == Violation.METACHARACTER
        assert exc_info.value.details["sequence"] == 1

    @pytest.mark.asyncio
    async def test_rejection_raises(self, make_orchestrator, session, reject_all):
        entries = await make_orchestrator(reject_all).process_turn(session, "[RUN_COMMAND touch x]")
        with pytest.raises(ApprovalRejectedError, match="touch x"):
            raise_for_skipped(entries)

    @pytest.mark.asyncio
    async def test_malformed_raises_validation_failure(self, make_orchestrator, session):
        entries = await make_orchestrator().process_turn(session, "[GIT_ADD]")
        with pytest.raises(ValidationFailureError, match="GIT_ADD requires at least one file"):
            raise_for_skipped(entries)

    @pytest.mark.asyncio
    async def test_first_skipped_entry_wins(self, make_orchestrator, session, reject_all):
        entries = await make_orchestrator(reject_all).process_turn(
            session, "[RUN_COMMAND touch x] [RUN_COMMAND ls; pwd]"
        )
        with pytest.raises(ApprovalRejectedError):
            raise_for_skipped(entries)
