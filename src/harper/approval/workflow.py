"""
Harper Approval Workflow

Human-in-the-loop gate for operations whose PolicyDecision requires
approval. Only an explicit "y"/"yes" (or ``True`` from a callback) approves.
Anything else, including EOF, Ctrl-C, a timeout or an exception raised by
the prompt, is a rejection.

Approvers may answer synchronously or return an awaitable. Awaitable answers
are awaited on the running loop so only the issuing turn waits.
"""

from __future__ import annotations

import asyncio
import inspect
import sys
from collections.abc import Awaitable, Callable, Iterable
from typing import Protocol

import click

from harper.core.models import ApprovalRecord, OperationDescriptor, PolicyDecision
from harper.logging import get_logger

logger = get_logger("harper.approval")

Answer = str | bool

DESTRUCTIVE_WARNING = "WARNING: this operation is destructive and cannot be undone."


class Approver(Protocol):
    def ask(self, prompt: str) -> Answer | Awaitable[Answer]: ...


def is_affirmative(answer: object) -> bool:
    """True only for ``True`` or the strings "y"/"yes" (any case)."""
    if isinstance(answer, bool):
        return answer
    if isinstance(answer, str):
        return answer.strip().lower() in ("y", "yes")
    return False


class ConsoleApprover:
    """Prompts on the terminal with click.

    Without a TTY on stdin the answer is always "no".
    """

    def __init__(self, require_tty: bool = True):
        self._require_tty = require_tty

    def ask(self, prompt: str) -> Answer:
        if self._require_tty and not sys.stdin.isatty():
            logger.warning("No interactive terminal; operation denied by default")
            return False
        click.echo()
        click.secho(prompt, fg="magenta")
        try:
            return click.prompt("Approve? [y/N]", default="", show_default=False)
        except click.Abort:
            click.echo()
            return False


class ScriptedApprover:
    """Answers from a fixed script, then ``default`` once it runs out."""

    def __init__(self, answers: Iterable[Answer] = (), default: Answer = False):
        self._answers = list(answers)
        self._default = default
        self.prompts: list[str] = []

    def ask(self, prompt: str) -> Answer:
        self.prompts.append(prompt)
        if self._answers:
            return self._answers.pop(0)
        return self._default


class CallbackApprover:
    """Adapts any sync or async callable ``(prompt) -> answer``."""

    def __init__(self, callback: Callable[[str], Answer | Awaitable[Answer]]):
        self._callback = callback

    def ask(self, prompt: str) -> Answer | Awaitable[Answer]:
        return self._callback(prompt)


class ApprovalWorkflow:
    """Turns a PolicyDecision that requires approval into an ApprovalRecord."""

    def __init__(self, approver: Approver | None = None, timeout: float = 300.0):
        self._approver = approver
        self._timeout = timeout

    @staticmethod
    def build_prompt(decision: PolicyDecision, descriptor: OperationDescriptor) -> str:
        lines = [f"Execute {descriptor.kind.value}: {descriptor.summary()}"]
        if decision.reason:
            lines.append(f"Reason: {decision.reason}")
        if decision.confirm_destructive:
            lines.append(DESTRUCTIVE_WARNING)
        return "\n".join(lines)

    async def request(self, decision: PolicyDecision, descriptor: OperationDescriptor) -> ApprovalRecord:
        prompt = self.build_prompt(decision, descriptor)

        if self._approver is None:
            logger.warning(
                "No approver configured; operation denied by default",
                extra={"operation": descriptor.kind.value},
            )
            return ApprovalRecord(approved=False, prompt_text=prompt)

        try:
            answer = self._approver.ask(prompt)
            if inspect.isawaitable(answer):
                answer = await asyncio.wait_for(answer, timeout=self._timeout)
            approved = is_affirmative(answer)
        except TimeoutError:
            logger.warning("Approval timed out after %.0fs", self._timeout)
            approved = False
        except (EOFError, KeyboardInterrupt):
            approved = False
        except Exception as e:
            logger.warning("Approval prompt failed: %s", e, extra={"operation": descriptor.kind.value})
            approved = False

        logger.info(
            "Approval %s",
            "granted" if approved else "rejected",
            extra={"operation": descriptor.kind.value, "approved": approved},
        )
        return ApprovalRecord(approved=approved, prompt_text=prompt)
