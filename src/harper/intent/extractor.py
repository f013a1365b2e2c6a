"""
Harper Intent Extractor

Turns free-form text (model output or user input) into an ordered list of
OperationDescriptors. Only bracket commands produce descriptors; any other
text is conversational content.

Malformed commands are not dropped. They become descriptors with
``validation_error`` set so the orchestrator still records them.

Recognized keywords are case-sensitive:

    [RUN_COMMAND ...]  [SEARCH: ...]  [TOOL: name] {json}
    [READ_FILE p]  [WRITE_FILE p content]  [CODE_ANALYZE p]
    [DB_QUERY db query]  [API_TEST method url headers body]
    [GITHUB_ISSUE title body]  [GITHUB_PR title body branch]
    [SCREENPIPE query type limit]  [IMAGE_INFO p]  [IMAGE_RESIZE in out w h]
    [GIT_STATUS]  [GIT_DIFF]  [GIT_ADD files...]  [GIT_COMMIT message]
    [TODO add "task"]  [TODO list]  [TODO remove n]  [TODO clear]
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

from harper.core.models import OperationDescriptor, OperationKind
from harper.exceptions import ValidationFailureError
from harper.intent.parsing import expect_args, parse_quoted_args, split_first, unquote
from harper.logging import get_logger

logger = get_logger("harper.intent")

_KEYWORDS = (
    "RUN_COMMAND",
    "SEARCH:",
    "TOOL:",
    "READ_FILE",
    "WRITE_FILE",
    "GITHUB_ISSUE",
    "GITHUB_PR",
    "CODE_ANALYZE",
    "DB_QUERY",
    "API_TEST",
    "SCREENPIPE",
    "GIT_STATUS",
    "GIT_DIFF",
    "GIT_ADD",
    "GIT_COMMIT",
    "IMAGE_INFO",
    "IMAGE_RESIZE",
    "TODO",
)

# Longest first so GITHUB_PR never shadows a longer keyword sharing its prefix
_OPEN_RE = re.compile(
    r"\[(" + "|".join(re.escape(k) for k in sorted(_KEYWORDS, key=len, reverse=True)) + r")(?=[\s\]]|(?<=:))"
)

_FILE_REF_RE = re.compile(r"(?<![\w@])@(\S+)")

_HTTP_METHODS = {"GET", "POST", "PUT", "DELETE", "PATCH"}

# [TOOL: name] aliases for built-in kinds; anything else is an MCP tool
_TOOL_NAMES: dict[str, OperationKind] = {
    "run_command": OperationKind.RUN_COMMAND,
    "shell": OperationKind.RUN_COMMAND,
    "read_file": OperationKind.READ_FILE,
    "write_file": OperationKind.WRITE_FILE,
    "search": OperationKind.SEARCH_WEB,
    "web_search": OperationKind.SEARCH_WEB,
    "search_web": OperationKind.SEARCH_WEB,
    "git": OperationKind.GIT_ACTION,
    "git_action": OperationKind.GIT_ACTION,
    "db_query": OperationKind.DB_QUERY,
    "api_test": OperationKind.API_PROBE,
    "api_probe": OperationKind.API_PROBE,
    "image_info": OperationKind.IMAGE_INSPECT,
    "image_inspect": OperationKind.IMAGE_INSPECT,
    "image_resize": OperationKind.IMAGE_RESIZE,
    "code_analyze": OperationKind.CODE_ANALYZE,
    "github_issue": OperationKind.GITHUB_ISSUE,
    "github_pr": OperationKind.GITHUB_PR,
    "screenpipe": OperationKind.SCREENPIPE,
    "todo": OperationKind.TODO,
}


# ─── @file references ───────────────────────────────────────

def rewrite_file_references(text: str) -> str:
    """Rewrite ``@path`` shorthand into ``[READ_FILE path]``.

    Only text outside bracket commands is rewritten. ``@`` followed by
    ``/``, ``!`` or nothing is left alone, as is ``@mcp:<uri>``.
    """
    out: list[str] = []
    cursor = 0
    for start, end in _bracket_regions(text):
        out.append(_rewrite_plain(text[cursor:start]))
        out.append(text[start:end])
        cursor = end
    out.append(_rewrite_plain(text[cursor:]))
    return "".join(out)


def _rewrite_plain(segment: str) -> str:
    def replace(match: re.Match[str]) -> str:
        ref = match.group(1)
        if ref[0] in "/!" or ref.startswith("mcp:"):
            return match.group(0)
        path, trailing = _split_trailing_punctuation(ref)
        if not path:
            return match.group(0)
        return f"[READ_FILE {path}]{trailing}"

    return _FILE_REF_RE.sub(replace, segment)


def _split_trailing_punctuation(ref: str) -> tuple[str, str]:
    path = ref.rstrip(",;:!?)")
    trailing = ref[len(path):]
    # "see @notes.md." keeps the file extension but drops the full stop
    if path.endswith(".") and path.strip("."):
        path, trailing = path[:-1], "." + trailing
    return path, trailing


def _bracket_regions(text: str) -> list[tuple[int, int]]:
    regions: list[tuple[int, int]] = []
    pos = 0
    while True:
        match = _OPEN_RE.search(text, pos)
        if match is None:
            return regions
        close = _find_close(text, match.end())
        if close is None:
            end = _line_end(text, match.start())
        elif match.group(1) == "TOOL:":
            end = _json_object_end(text, close + 1)
        else:
            end = close + 1
        regions.append((match.start(), end))
        pos = end


def _json_object_end(text: str, start: int) -> int:
    """End of a JSON object starting at ``start`` (after whitespace), else ``start``."""
    pos = start
    while pos < len(text) and text[pos].isspace():
        pos += 1
    if pos >= len(text) or text[pos] != "{":
        return start
    try:
        _, end = json.JSONDecoder().raw_decode(text, pos)
    except json.JSONDecodeError:
        return start
    return end


# ─── Bracket scanning ───────────────────────────────────────

def _find_close(text: str, start: int) -> int | None:
    """Index of the ``]`` closing a bracket opened before ``start``.

    Nested brackets are counted. Brackets inside quotes are ignored first;
    if that leaves the command unclosed (an apostrophe in prose, say) the
    scan is repeated without quote tracking.
    """
    close = _scan_close(text, start, quote_aware=True)
    if close is None:
        close = _scan_close(text, start, quote_aware=False)
    return close


def _scan_close(text: str, start: int, quote_aware: bool) -> int | None:
    depth = 1
    quote: str | None = None
    for i in range(start, len(text)):
        ch = text[i]
        if quote_aware:
            if quote:
                if ch == quote:
                    quote = None
                continue
            if ch in "\"'":
                quote = ch
                continue
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return i
    return None


def _line_end(text: str, start: int) -> int:
    newline = text.find("\n", start)
    return len(text) if newline == -1 else newline


class IntentExtractor:
    """Parses text into ordered OperationDescriptors."""

    def __init__(self) -> None:
        self._parsers: dict[str, Callable[[str], tuple[OperationKind, dict[str, Any]]]] = {
            "RUN_COMMAND": _parse_run_command,
            "SEARCH:": _parse_search,
            "READ_FILE": _path_parser(OperationKind.READ_FILE, "READ_FILE"),
            "CODE_ANALYZE": _path_parser(OperationKind.CODE_ANALYZE, "CODE_ANALYZE"),
            "IMAGE_INFO": _path_parser(OperationKind.IMAGE_INSPECT, "IMAGE_INFO"),
            "WRITE_FILE": _parse_write_file,
            "GITHUB_ISSUE": _parse_github_issue,
            "GITHUB_PR": _parse_github_pr,
            "DB_QUERY": _parse_db_query,
            "API_TEST": _parse_api_test,
            "SCREENPIPE": _parse_screenpipe,
            "GIT_STATUS": _git_no_args("status"),
            "GIT_DIFF": _git_no_args("diff"),
            "GIT_ADD": _parse_git_add,
            "GIT_COMMIT": _parse_git_commit,
            "IMAGE_RESIZE": _parse_image_resize,
            "TODO": _parse_todo,
        }

    def extract(self, text: str) -> list[OperationDescriptor]:
        """Extract every operation in ``text``, in source order.

        ``@path`` references are rewritten first, so spans refer to the
        rewritten text when references are present.
        """
        text = rewrite_file_references(text)
        descriptors: list[OperationDescriptor] = []
        pos = 0

        while True:
            match = _OPEN_RE.search(text, pos)
            if match is None:
                break
            keyword = match.group(1)
            start = match.start()
            close = _find_close(text, match.end())

            if close is None:
                end = _line_end(text, start)
                descriptors.append(
                    OperationDescriptor(
                        kind=_kind_for_keyword(keyword),
                        raw=text[start:end],
                        span=(start, end),
                        validation_error=f"Unbalanced brackets in {keyword.rstrip(':')} command",
                    )
                )
                pos = max(end, start + 1)
                continue

            payload = text[match.end():close]
            if keyword == "TOOL:":
                descriptor, end = self._tool_call(text, start, close, payload)
            else:
                end = close + 1
                descriptor = self._descriptor(keyword, payload, text[start:end], (start, end))
            descriptors.append(descriptor)
            pos = end

        if descriptors:
            logger.debug(
                "Extracted %d operation(s)",
                len(descriptors),
                extra={"operation": ",".join(d.kind.value for d in descriptors)},
            )
        return descriptors

    def _descriptor(
        self,
        keyword: str,
        payload: str,
        raw: str,
        span: tuple[int, int],
    ) -> OperationDescriptor:
        try:
            kind, args = self._parsers[keyword](payload)
        except ValidationFailureError as e:
            return OperationDescriptor(
                kind=_kind_for_keyword(keyword),
                raw=raw,
                span=span,
                validation_error=str(e),
            )
        return OperationDescriptor(kind=kind, raw=raw, args=args, span=span)

    def _tool_call(
        self,
        text: str,
        start: int,
        close: int,
        payload: str,
    ) -> tuple[OperationDescriptor, int]:
        """Handle ``[TOOL: name] {json}``; the JSON object is part of the span."""
        name = payload.strip()
        json_start = close + 1
        while json_start < len(text) and text[json_start].isspace():
            json_start += 1

        error: str | None = None
        arguments: Any = None
        end = close + 1
        if not name:
            error = "TOOL call without a tool name"
        elif json_start >= len(text) or text[json_start] != "{":
            error = f"TOOL call '{name}' is missing its JSON arguments"
        else:
            try:
                arguments, end = json.JSONDecoder().raw_decode(text, json_start)
            except json.JSONDecodeError as e:
                error = f"Invalid JSON for TOOL call '{name}': {e.msg}"
            else:
                if not isinstance(arguments, dict):
                    error = f"TOOL call '{name}' arguments must be a JSON object"

        kind = _TOOL_NAMES.get(name.lower(), OperationKind.MCP_TOOL_CALL)
        raw = text[start:end]
        if error:
            return OperationDescriptor(kind=kind, raw=raw, span=(start, end), validation_error=error), end

        # Some models nest the payload: {"name": ..., "args": {...}}
        if isinstance(arguments.get("args"), dict):
            arguments = arguments["args"]

        if kind == OperationKind.MCP_TOOL_CALL:
            args: dict[str, Any] = {"name": name, "arguments": arguments}
        else:
            args = dict(arguments)
            if kind == OperationKind.GIT_ACTION:
                args.setdefault("action", "status")
            if kind == OperationKind.API_PROBE:
                args["method"] = str(args.get("method", "GET")).upper()
        return OperationDescriptor(kind=kind, raw=raw, args=args, span=(start, end)), end


def _kind_for_keyword(keyword: str) -> OperationKind:
    mapping = {
        "RUN_COMMAND": OperationKind.RUN_COMMAND,
        "SEARCH:": OperationKind.SEARCH_WEB,
        "TOOL:": OperationKind.MCP_TOOL_CALL,
        "READ_FILE": OperationKind.READ_FILE,
        "WRITE_FILE": OperationKind.WRITE_FILE,
        "GITHUB_ISSUE": OperationKind.GITHUB_ISSUE,
        "GITHUB_PR": OperationKind.GITHUB_PR,
        "CODE_ANALYZE": OperationKind.CODE_ANALYZE,
        "DB_QUERY": OperationKind.DB_QUERY,
        "API_TEST": OperationKind.API_PROBE,
        "SCREENPIPE": OperationKind.SCREENPIPE,
        "IMAGE_INFO": OperationKind.IMAGE_INSPECT,
        "IMAGE_RESIZE": OperationKind.IMAGE_RESIZE,
        "TODO": OperationKind.TODO,
    }
    return mapping.get(keyword, OperationKind.GIT_ACTION)


# ─── Per-keyword argument parsers ───────────────────────────

def _require(value: str, message: str) -> str:
    if not value:
        raise ValidationFailureError(message)
    return value


def _parse_run_command(payload: str) -> tuple[OperationKind, dict[str, Any]]:
    command = _require(payload.strip(), "No command provided")
    return OperationKind.RUN_COMMAND, {"command": command}


def _parse_search(payload: str) -> tuple[OperationKind, dict[str, Any]]:
    query = _require(payload.strip(), "No search query provided")
    return OperationKind.SEARCH_WEB, {"query": query}


def _path_parser(kind: OperationKind, keyword: str):
    def parse(payload: str) -> tuple[OperationKind, dict[str, Any]]:
        args = parse_quoted_args(payload)
        path = args[0] if len(args) == 1 else payload.strip()
        return kind, {"path": _require(path, f"{keyword} requires a path")}

    return parse


def _parse_write_file(payload: str) -> tuple[OperationKind, dict[str, Any]]:
    path, rest = split_first(payload)
    _require(path, "WRITE_FILE requires a path")
    return OperationKind.WRITE_FILE, {"path": path, "content": unquote(rest)}


def _parse_github_issue(payload: str) -> tuple[OperationKind, dict[str, Any]]:
    title, body = expect_args(payload, 2, "GITHUB_ISSUE")
    return OperationKind.GITHUB_ISSUE, {"title": title, "body": body}


def _parse_github_pr(payload: str) -> tuple[OperationKind, dict[str, Any]]:
    title, body, branch = expect_args(payload, 3, "GITHUB_PR")
    return OperationKind.GITHUB_PR, {"title": title, "body": body, "branch": branch}


def _parse_db_query(payload: str) -> tuple[OperationKind, dict[str, Any]]:
    db_path, rest = split_first(payload)
    _require(db_path, "DB_QUERY requires a database path")
    query = _require(unquote(rest), "DB_QUERY requires a query")
    return OperationKind.DB_QUERY, {"db_path": db_path, "query": query}


def _parse_api_test(payload: str) -> tuple[OperationKind, dict[str, Any]]:
    args = parse_quoted_args(payload)
    if not 2 <= len(args) <= 4:
        raise ValidationFailureError(
            f"API_TEST expects 2 to 4 arguments (method url [headers] [body]), got {len(args)}"
        )
    method = args[0].upper()
    if method not in _HTTP_METHODS:
        raise ValidationFailureError(f"Unsupported HTTP method: {args[0]}")
    headers: dict[str, str] = {}
    if len(args) > 2 and args[2].strip():
        try:
            parsed = json.loads(args[2])
        except json.JSONDecodeError as e:
            raise ValidationFailureError(f"API_TEST headers are not valid JSON: {e.msg}") from e
        if not isinstance(parsed, dict):
            raise ValidationFailureError("API_TEST headers must be a JSON object")
        headers = {str(k): str(v) for k, v in parsed.items()}
    body = args[3] if len(args) > 3 else ""
    return OperationKind.API_PROBE, {"method": method, "url": args[1], "headers": headers, "body": body}


def _parse_screenpipe(payload: str) -> tuple[OperationKind, dict[str, Any]]:
    args = parse_quoted_args(payload)
    if not 1 <= len(args) <= 3:
        raise ValidationFailureError(f"SCREENPIPE expects 1 to 3 arguments, got {len(args)}")
    content_type = args[1] if len(args) > 1 and args[1] else "ocr"
    limit = 10
    if len(args) > 2:
        try:
            limit = int(args[2])
        except ValueError as e:
            raise ValidationFailureError(f"SCREENPIPE limit must be an integer: {args[2]!r}") from e
    return OperationKind.SCREENPIPE, {"query": args[0], "content_type": content_type, "limit": limit}


def _git_no_args(action: str):
    def parse(payload: str) -> tuple[OperationKind, dict[str, Any]]:
        if payload.strip():
            raise ValidationFailureError(f"GIT_{action.upper()} takes no arguments")
        return OperationKind.GIT_ACTION, {"action": action}

    return parse


def _parse_git_add(payload: str) -> tuple[OperationKind, dict[str, Any]]:
    files = parse_quoted_args(payload)
    if not files:
        raise ValidationFailureError("GIT_ADD requires at least one file")
    return OperationKind.GIT_ACTION, {"action": "add", "files": files}


def _parse_git_commit(payload: str) -> tuple[OperationKind, dict[str, Any]]:
    message = _require(unquote(payload), "GIT_COMMIT requires a message")
    return OperationKind.GIT_ACTION, {"action": "commit", "message": message}


def _parse_image_resize(payload: str) -> tuple[OperationKind, dict[str, Any]]:
    source, target, width, height = expect_args(payload, 4, "IMAGE_RESIZE")
    try:
        w, h = int(width), int(height)
    except ValueError as e:
        raise ValidationFailureError("IMAGE_RESIZE width and height must be integers") from e
    if w <= 0 or h <= 0:
        raise ValidationFailureError("IMAGE_RESIZE width and height must be positive")
    return OperationKind.IMAGE_RESIZE, {"input": source, "output": target, "width": w, "height": h}



def _parse_todo(payload: str) -> tuple[OperationKind, dict[str, Any]]:
    action, rest = split_first(payload)
    action = _require(action, "No TODO action provided").lower()
    if action == "add":
        description = _require(unquote(rest), "TODO add requires a description")
        return OperationKind.TODO, {"action": "add", "description": description}
    if action == "remove":
        raw_index = _require(rest.strip(), "TODO remove requires an index")
        try:
            index = int(raw_index)
        except ValueError as e:
            raise ValidationFailureError(f"Invalid todo index: {raw_index}") from e
        if index < 1:
            raise ValidationFailureError(f"Invalid todo index: {raw_index}")
        return OperationKind.TODO, {"action": "remove", "index": index}
    if action in ("list", "clear"):
        if rest.strip():
            raise ValidationFailureError(f"TODO {action} takes no arguments")
        return OperationKind.TODO, {"action": action}
    raise ValidationFailureError(f"Unknown TODO action: {action}. Supported: add, list, remove, clear")

_default_extractor = IntentExtractor()


def extract(text: str) -> list[OperationDescriptor]:
    """Module-level shortcut for ``IntentExtractor().extract``."""
    return _default_extractor.extract(text)
