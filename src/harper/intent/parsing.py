"""Argument tokenization for bracket commands.

Arguments are whitespace separated; double quotes group words and may be
empty (``""``). An unclosed quote is a ValidationFailureError.
"""

from __future__ import annotations

from harper.exceptions import ValidationFailureError


def parse_quoted_args(text: str) -> list[str]:
    """Split ``text`` into arguments, honouring double quotes."""
    args: list[str] = []
    current: list[str] = []
    in_quotes = False
    quoted_token = False

    for ch in text:
        if ch == '"':
            in_quotes = not in_quotes
            quoted_token = True
        elif ch.isspace() and not in_quotes:
            if current or quoted_token:
                args.append("".join(current))
                current = []
                quoted_token = False
        else:
            current.append(ch)

    if in_quotes:
        raise ValidationFailureError("Unclosed quote in arguments")
    if current or quoted_token:
        args.append("".join(current))
    return args


def expect_args(text: str, count: int, keyword: str) -> list[str]:
    """Tokenize and require exactly ``count`` arguments."""
    args = parse_quoted_args(text)
    if len(args) != count:
        raise ValidationFailureError(
            f"{keyword} expects {count} arguments, got {len(args)}",
            details={"keyword": keyword, "expected": count, "got": len(args)},
        )
    return args


def split_first(text: str) -> tuple[str, str]:
    """Split off the first (possibly quoted) token; return it and the raw remainder."""
    text = text.lstrip()
    if not text:
        return "", ""
    if text.startswith('"'):
        end = text.find('"', 1)
        if end == -1:
            raise ValidationFailureError("Unclosed quote in arguments")
        return text[1:end], text[end + 1 :].strip()
    parts = text.split(None, 1)
    return parts[0], (parts[1].strip() if len(parts) > 1 else "")


def unquote(text: str) -> str:
    """Strip one pair of surrounding double quotes, if the whole text is quoted."""
    text = text.strip()
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"' and '"' not in text[1:-1]:
        return text[1:-1]
    return text
