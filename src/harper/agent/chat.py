"""
Harper Chat Session

The conversation loop around the Orchestrator: slash commands, user input
that may itself contain operations, and (when a provider is configured)
assistant replies whose operations are executed and fed back until the
assistant stops asking for tools.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import click

from harper.agent.orchestrator import Orchestrator, format_feedback
from harper.audit.store import AuditStore
from harper.core.models import AuditEntry, ExecutionStatus, Session
from harper.exceptions import ProviderError, SessionNotFoundError, StorageError
from harper.intent.commands import HELP_TEXT, SlashCommand, SlashCommandName, parse_slash_command
from harper.logging import get_logger
from harper.providers.base import ChatProvider

logger = get_logger("harper.chat")

DEFAULT_AUDIT_LIMIT = 10
MAX_TOOL_ROUNDS = 5

SYSTEM_PROMPT = """You are Harper, an assistant running in the user's terminal.
You can act on the user's machine by writing bracket commands in your reply.
Each command is checked against a security policy and may need the user's
approval; results are sent back to you in the next message.

{help}
Available tools:
{tools}

Shell commands run without pipes, redirects, subshells or ';' unless the
user enabled them. Prefer one command per bracket."""


class AuditFilterError(ValueError):
    pass


def parse_audit_args(args: list[str]) -> tuple[int, ExecutionStatus | None, bool | None]:
    """Parse ``/audit [limit] [status] [approved|rejected]`` in any order."""
    limit = DEFAULT_AUDIT_LIMIT
    status: ExecutionStatus | None = None
    approved: bool | None = None
    for token in args:
        lowered = token.lower()
        if lowered.isdigit():
            limit = int(lowered)
        elif lowered in ("approved", "yes"):
            approved = True
        elif lowered in ("rejected", "declined", "no"):
            approved = False
        else:
            parsed = ExecutionStatus.parse(lowered)
            if parsed is None:
                raise AuditFilterError(f"Unknown /audit filter: {token}")
            status = parsed
    return limit, status, approved


def format_audit_rows(entries: list[AuditEntry]) -> str:
    if not entries:
        return "No matching audit entries."
    lines = [f"{'#':>4}  {'STATUS':<16} {'APPROVAL':<9} {'EXIT':>4} {'TIME':>8}  COMMAND"]
    for entry in entries:
        exit_code = "-" if entry.result.exit_code is None else str(entry.result.exit_code)
        lines.append(
            f"{entry.sequence:>4}  {entry.result.status.value:<16} {entry.approval_label:<9} "
            f"{exit_code:>4} {entry.result.duration_ms:>6.0f}ms  {entry.operation.text}"
        )
    return "\n".join(lines)


class ChatSession:
    """One interactive conversation bound to a Session record."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        store: AuditStore,
        provider: ChatProvider | None = None,
        session: Session | None = None,
        echo: Callable[[str], None] = click.echo,
        export_dir: str | Path = ".",
    ):
        self.orchestrator = orchestrator
        self.store = store
        self.provider = provider
        self.session = session or Session()
        self._echo = echo
        self._export_dir = Path(export_dir)

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT.format(help=HELP_TEXT, tools=self.orchestrator.registry.describe())

    async def handle_input(self, line: str) -> bool:
        """Process one line of user input. Returns False when the chat should end.

        Raises:
            StorageError: If the audit trail or session store fails.
        """
        if not line.strip():
            return True
        command = parse_slash_command(line)
        if command is not None:
            return self._handle_slash(command)

        self.session.add_message("user", line)
        entries = await self.orchestrator.process_turn(self.session, line, source="user")
        if entries:
            feedback = format_feedback(entries)
            self._echo(feedback)
            self.session.add_message("user", feedback)

        if self.provider is not None:
            await self._assistant_rounds()
        return True

    async def _assistant_rounds(self) -> None:
        for _ in range(MAX_TOOL_ROUNDS):
            try:
                reply = await self.provider.complete(self.session.messages, system=self.system_prompt)
            except ProviderError as e:
                self._echo(f"Provider error: {e}")
                return
            self.session.add_message("assistant", reply)
            self._echo(reply)

            entries = await self.orchestrator.process_turn(self.session, reply, source="assistant")
            if not entries:
                return
            feedback = format_feedback(entries)
            self._echo(feedback)
            self.session.add_message("user", feedback)
        self._echo(f"Stopped after {MAX_TOOL_ROUNDS} tool rounds.")

    # ─── Slash commands ──────────────────────────────────────

    def _handle_slash(self, command: SlashCommand) -> bool:
        name = command.name
        if name == SlashCommandName.EXIT:
            return False
        if name == SlashCommandName.HELP:
            self._echo(HELP_TEXT)
        elif name == SlashCommandName.CLEAR:
            self.session.messages.clear()
            self._echo("Conversation cleared (audit trail kept).")
        elif name == SlashCommandName.SAVE:
            self.store.session_save(self.session)
            self._echo(f"Session saved: {self.session.id}")
        elif name == SlashCommandName.LOAD:
            self._load(command.args)
        elif name == SlashCommandName.AUDIT:
            self._audit(command.args)
        elif name == SlashCommandName.SESSIONS:
            self._echo(format_sessions(self.store.list_sessions()))
        elif name == SlashCommandName.EXPORT:
            self._export(command.args)
        elif name == SlashCommandName.VERIFY:
            ok, message = self.store.verify_chain(self.session.id)
            self._echo(("OK: " if ok else "FAILED: ") + message)
        else:
            self._echo(f"Unknown command: /{command.raw_name}. Type /help for commands.")
        return True

    def _load(self, args: list[str]) -> None:
        session_id = args[0] if args else self.store.latest_session_id()
        if session_id is None:
            self._echo("No saved sessions.")
            return
        try:
            self.session = self.store.session_load(session_id)
        except SessionNotFoundError as e:
            self._echo(str(e))
            return
        self._echo(
            f"Loaded session {self.session.id} "
            f"({len(self.session.messages)} messages, {len(self.session.audit_sequence)} audit entries)"
        )

    def _audit(self, args: list[str]) -> None:
        try:
            limit, status, approved = parse_audit_args(args)
        except AuditFilterError as e:
            self._echo(f"{e}. Usage: /audit [limit] [status] [approved|rejected]")
            return
        entries = self.store.query(self.session.id, limit, status=status, approved=approved)
        self._echo(format_audit_rows(entries))

    def _export(self, args: list[str]) -> None:
        fmt = "txt"
        session_id = self.session.id
        for token in args:
            if token.lower() in ("txt", "json"):
                fmt = token.lower()
            else:
                session_id = token
        if session_id == self.session.id:
            self.store.session_save(self.session)
        try:
            path = export_to_file(self.store, session_id, fmt, self._export_dir)
        except SessionNotFoundError as e:
            self._echo(str(e))
            return
        self._echo(f"Session exported to {path}")

    async def run(self, read_line: Callable[[], str] | None = None) -> None:
        """Read-eval loop until /exit or EOF. Storage errors are shown, not fatal."""
        read_line = read_line or (lambda: click.prompt("you", prompt_suffix="> ", default="", show_default=False))
        self._echo(f"Harper session {self.session.id}. Type /help for commands.")
        while True:
            try:
                line = read_line()
            except (EOFError, click.Abort):
                break
            try:
                if not await self.handle_input(line):
                    break
            except StorageError as e:
                logger.error("Storage failure: %s", e, extra={"session_id": self.session.id})
                self._echo(f"Storage error: {e}")


def format_sessions(rows: list[dict]) -> str:
    if not rows:
        return "No saved sessions."
    lines = [f"{'SESSION':<36}  {'UPDATED':<25} {'MSGS':>5} {'OPS':>5}"]
    for row in rows:
        lines.append(
            f"{row['id']:<36}  {str(row['updated_at'])[:25]:<25} {row['message_count']:>5} {row['entry_count']:>5}"
        )
    return "\n".join(lines)


def export_to_file(store: AuditStore, session_id: str, fmt: str, directory: str | Path = ".") -> Path:
    """Write ``harper_export_<id>.<fmt>`` and return its path."""
    content = store.export_session(session_id, fmt)
    path = Path(directory) / f"harper_export_{session_id}.{fmt}"
    path.write_text(content, encoding="utf-8")
    return path
