"""
``@`` path completion.

Completion state lives in PathCompleter and nothing else; the chat view
keeps its own scroll state. Dot-prefixed entries are only offered when the
fragment being completed itself starts with ``.`` (``@.en`` -> ``.env``).
"""

from __future__ import annotations

from pathlib import Path


class PathCompleter:
    """Lists completion candidates for ``@`` references under a root directory."""

    def __init__(self, root: str | Path, max_candidates: int = 50):
        self._root = Path(root)
        self._max = max_candidates
        self.candidates: list[str] = []
        self.index = 0

    def complete(self, fragment: str) -> list[str]:
        """Return sorted candidates for ``fragment`` (the text after ``@``).

        Directories get a trailing ``/``. Fragments containing ``..`` or
        starting with ``/`` produce nothing.
        """
        self.index = 0
        self.candidates = []
        if fragment.startswith("/") or ".." in fragment.split("/"):
            return []

        directory, _, prefix = fragment.rpartition("/")
        base = self._root / directory if directory else self._root
        if not base.is_dir():
            return []

        show_hidden = prefix.startswith(".")
        found: list[str] = []
        for entry in base.iterdir():
            name = entry.name
            if name.startswith(".") and not show_hidden:
                continue
            if not name.startswith(prefix):
                continue
            candidate = f"{directory}/{name}" if directory else name
            if entry.is_dir():
                candidate += "/"
            found.append(candidate)

        self.candidates = sorted(found)[: self._max]
        return list(self.candidates)

    def next(self) -> str | None:
        """Cycle through the last candidate list (Tab behaviour)."""
        if not self.candidates:
            return None
        candidate = self.candidates[self.index % len(self.candidates)]
        self.index += 1
        return candidate


def complete_path(fragment: str, root: str | Path = ".") -> list[str]:
    """One-shot completion for ``fragment`` relative to ``root``."""
    return PathCompleter(root).complete(fragment)
