"""Slash command parsing for the chat loop."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class SlashCommandName(str, Enum):
    HELP = "help"
    EXIT = "exit"
    CLEAR = "clear"
    SAVE = "save"
    LOAD = "load"
    AUDIT = "audit"
    SESSIONS = "sessions"
    EXPORT = "export"
    VERIFY = "verify"
    UNKNOWN = "unknown"


_ALIASES = {
    "help": SlashCommandName.HELP,
    "?": SlashCommandName.HELP,
    "exit": SlashCommandName.EXIT,
    "quit": SlashCommandName.EXIT,
    "clear": SlashCommandName.CLEAR,
    "save": SlashCommandName.SAVE,
    "load": SlashCommandName.LOAD,
    "audit": SlashCommandName.AUDIT,
    "sessions": SlashCommandName.SESSIONS,
    "export": SlashCommandName.EXPORT,
    "verify": SlashCommandName.VERIFY,
}

HELP_TEXT = """\
Commands:
  /help                                  Show this help
  /exit, /quit                           Leave the chat
  /clear                                 Clear the conversation (audit trail is kept)
  /save                                  Persist the current session
  /load [id]                             Load a saved session (latest if omitted)
  /audit [limit] [status] [approved|rejected]
                                         Show recent operations for this session
  /sessions                              List saved sessions
  /export [id] [txt|json]                Export a session to a file
  /verify                                Check the audit hash chain

Operations:
  [RUN_COMMAND cmd]  [READ_FILE path]  [WRITE_FILE path content]  [SEARCH: query]
  [GIT_STATUS]  [GIT_DIFF]  [GIT_ADD files]  [GIT_COMMIT message]
  [DB_QUERY db query]  [API_TEST method url headers body]  [CODE_ANALYZE path]
  [IMAGE_INFO path]  [IMAGE_RESIZE in out w h]  [SCREENPIPE query type limit]
  [GITHUB_ISSUE title body]  [GITHUB_PR title body branch]  [TOOL: name] {json}
  [TODO add "task"]  [TODO list]  [TODO remove n]  [TODO clear]
  @path is shorthand for [READ_FILE path]; use @. to reach hidden files.
"""


class SlashCommand(BaseModel):
    """A parsed ``/command arg...`` line."""
    name: SlashCommandName
    raw_name: str = ""
    args: list[str] = Field(default_factory=list)


def parse_slash_command(text: str) -> SlashCommand | None:
    """Parse a line starting with ``/``. Returns None for ordinary input."""
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None
    parts = stripped[1:].split()
    if not parts:
        return SlashCommand(name=SlashCommandName.UNKNOWN, raw_name="")
    raw_name = parts[0].lower()
    return SlashCommand(
        name=_ALIASES.get(raw_name, SlashCommandName.UNKNOWN),
        raw_name=raw_name,
        args=parts[1:],
    )
