"""
Harper Intent Extraction

Bracket commands, ``@file`` references, slash commands and ``@`` path
completion.
"""

from harper.intent.commands import HELP_TEXT, SlashCommand, SlashCommandName, parse_slash_command
from harper.intent.completion import PathCompleter, complete_path
from harper.intent.extractor import IntentExtractor, extract, rewrite_file_references
from harper.intent.parsing import parse_quoted_args

__all__ = [
    "HELP_TEXT",
    "IntentExtractor",
    "PathCompleter",
    "SlashCommand",
    "SlashCommandName",
    "complete_path",
    "extract",
    "parse_quoted_args",
    "parse_slash_command",
    "rewrite_file_references",
]
