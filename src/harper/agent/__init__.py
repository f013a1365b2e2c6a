from harper.agent.chat import ChatSession
from harper.agent.orchestrator import Orchestrator, format_feedback, raise_for_skipped

__all__ = ["ChatSession", "Orchestrator", "format_feedback", "raise_for_skipped"]
