from harper.policy.engine import PolicyEngine, Violation, evaluate, is_mutating

__all__ = ["PolicyEngine", "Violation", "evaluate", "is_mutating"]
