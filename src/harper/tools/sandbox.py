"""
Harper Controlled Process Execution

Helpers shared by the subprocess-backed tools (shell, git, gh):

- timeout enforcement via asyncio.wait_for + process kill
- environment redaction (only a small allow-list of variables survives)
- output previews capped at OUTPUT_PREVIEW_LIMIT characters
- path resolution relative to the project root

This is NOT an OS-level sandbox: child processes run as the current user
with full filesystem and network access. The policy engine is the gate.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping, Sequence
from pathlib import Path

from pydantic import BaseModel

from harper.exceptions import ToolExecutionError

OUTPUT_PREVIEW_LIMIT = 512
TRUNCATION_MARKER = "…"

SAFE_ENV_KEYS = ("PATH", "HOME", "LANG", "TERM", "USER", "SHELL")


class ProcessOutcome(BaseModel):
    """Captured result of a finished child process."""
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def truncate_preview(text: str, limit: int = OUTPUT_PREVIEW_LIMIT) -> str:
    """Cap ``text`` at ``limit`` characters, marking the cut with ``…``."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def build_env(redact: bool, source: Mapping[str, str] | None = None) -> dict[str, str]:
    """Environment for a child process.

    With ``redact`` only SAFE_ENV_KEYS are passed through, so API keys and
    tokens in the parent environment never reach the command.
    """
    source = os.environ if source is None else source
    if not redact:
        return dict(source)
    return {key: source[key] for key in SAFE_ENV_KEYS if key in source}


def resolve_in_root(root: str | Path, path: str) -> Path:
    """Resolve ``path`` against ``root`` (absolute paths are kept as given)."""
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = Path(root) / candidate
    return candidate


async def run_subprocess(
    argv: Sequence[str],
    *,
    cwd: str | Path,
    timeout: float,
    env: Mapping[str, str] | None = None,
    tool_name: str = "subprocess",
) -> ProcessOutcome:
    """Run ``argv`` to completion and capture its output.

    Raises:
        ToolExecutionError: If the executable is missing or the process
            exceeds ``timeout`` (it is killed first).
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
            cwd=str(cwd),
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as e:
        raise ToolExecutionError(tool_name, f"executable not found: {argv[0]}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        proc.kill()
        await proc.wait()
        raise ToolExecutionError(tool_name, f"timed out after {timeout:g}s") from None

    return ProcessOutcome(
        exit_code=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
