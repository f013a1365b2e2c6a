"""Shared test fixtures for the Harper test suite."""

import pytest

from harper.agent.orchestrator import Orchestrator
from harper.approval.workflow import ApprovalWorkflow, ScriptedApprover
from harper.audit.store import AuditStore
from harper.config import ExecutionPolicyConfig
from harper.core.models import Session
from harper.tools.builtin import default_registry


@pytest.fixture
def project_root(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def policy(project_root):
    return ExecutionPolicyConfig(project_root=str(project_root))


@pytest.fixture
def permissive_policy(project_root):
    return ExecutionPolicyConfig(
        project_root=str(project_root),
        require_approval=False,
        confirm_destructive=False,
    )


@pytest.fixture
def store(tmp_path):
    audit_store = AuditStore(str(tmp_path / "audit.db"))
    yield audit_store
    audit_store.close()


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def approve_all():
    return ScriptedApprover(default="y")


@pytest.fixture
def reject_all():
    return ScriptedApprover(default="n")


@pytest.fixture
def make_orchestrator(policy, store):
    """Build an orchestrator over the fixture store; override policy or approver per test."""

    def _make(approver=None, config=None, transport=None):
        config = config or policy
        return Orchestrator(
            config=config,
            registry=default_registry(config, transport=transport),
            store=store,
            approval=ApprovalWorkflow(approver),
        )

    return _make
