"""Harper quickstart: run one turn of bracket commands through policy, approval and audit."""

import asyncio

from harper import AuditStore, ExecutionPolicyConfig, Orchestrator, Session, format_feedback
from harper.approval import ApprovalWorkflow, ScriptedApprover
from harper.tools.builtin import default_registry

policy = ExecutionPolicyConfig(project_root=".")
store = AuditStore(":memory:")
orchestrator = Orchestrator(
    config=policy,
    registry=default_registry(policy),
    store=store,
    approval=ApprovalWorkflow(ScriptedApprover(default="y")),
)

session = Session()
entries = asyncio.run(
    orchestrator.process_turn(session, "[RUN_COMMAND echo hello] [RUN_COMMAND ls; cat /etc/passwd] [GIT_STATUS]")
)

print(format_feedback(entries))
print(f"\n{store.verify_chain(session.id)[1]}")
store.close()
