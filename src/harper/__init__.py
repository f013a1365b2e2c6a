"""
Harper: Policy-Checked Tool Execution for a Terminal Agent

Usage:
    from harper import AuditStore, Orchestrator, Session, load_config
    from harper.tools.builtin import default_registry

    config = load_config()
    store = AuditStore(config.storage.database_url)
    orchestrator = Orchestrator(
        config=config.exec_policy,
        registry=default_registry(config.exec_policy),
        store=store,
    )
    entries = await orchestrator.process_turn(Session(), "[RUN_COMMAND ls]")
"""

__version__ = "0.1.0"

from harper.agent.orchestrator import Orchestrator, format_feedback
from harper.audit.store import AuditStore
from harper.config import ExecutionPolicyConfig, HarperConfig, load_config
from harper.core.models import (
    AuditEntry,
    ExecutionResult,
    ExecutionStatus,
    OperationDescriptor,
    OperationKind,
    PolicyDecision,
    Session,
)
from harper.intent.extractor import IntentExtractor
from harper.policy.engine import PolicyEngine

__all__ = [
    "__version__",
    # Pipeline
    "Orchestrator",
    "format_feedback",
    "IntentExtractor",
    "PolicyEngine",
    "AuditStore",
    # Config
    "ExecutionPolicyConfig",
    "HarperConfig",
    "load_config",
    # Models
    "AuditEntry",
    "ExecutionResult",
    "ExecutionStatus",
    "OperationDescriptor",
    "OperationKind",
    "PolicyDecision",
    "Session",
]
