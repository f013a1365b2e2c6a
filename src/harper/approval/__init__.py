from harper.approval.workflow import (
    ApprovalWorkflow,
    Approver,
    CallbackApprover,
    ConsoleApprover,
    ScriptedApprover,
    is_affirmative,
)

__all__ = [
    "ApprovalWorkflow",
    "Approver",
    "CallbackApprover",
    "ConsoleApprover",
    "ScriptedApprover",
    "is_affirmative",
]
