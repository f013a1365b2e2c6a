"""Screenpipe search: query a local screenpipe server for OCR/audio history."""

from __future__ import annotations

import os
from typing import Any

from harper.core.models import ExecutionResult, ExecutionStatus, OperationKind
from harper.exceptions import ToolExecutionError, ValidationFailureError
from harper.tools.builtin.http_client import HttpTool

DEFAULT_SCREENPIPE_URL = "http://localhost:3030"
CONTENT_TYPES = ("ocr", "audio", "ui", "all")


def screenpipe_url() -> str:
    return os.environ.get("SCREENPIPE_URL", DEFAULT_SCREENPIPE_URL).rstrip("/")


class ScreenpipeTool(HttpTool):
    kind = OperationKind.SCREENPIPE
    name = "screenpipe"
    description = "Search screen/audio history captured by screenpipe"
    fields = {"query": str}

    def check(self, args: dict[str, Any]) -> None:
        content_type = args.get("content_type", "ocr")
        if content_type not in CONTENT_TYPES:
            raise ValidationFailureError(f"screenpipe: content type must be one of {', '.join(CONTENT_TYPES)}")
        limit = args.get("limit", 10)
        if not isinstance(limit, int) or isinstance(limit, bool) or not 1 <= limit <= 100:
            raise ValidationFailureError("screenpipe: limit must be an integer between 1 and 100")

    async def execute(self, args: dict[str, Any]) -> ExecutionResult:
        response = await self.request(
            "GET",
            f"{screenpipe_url()}/search",
            params={
                "q": args["query"],
                "content_type": args.get("content_type", "ocr"),
                "limit": args.get("limit", 10),
            },
        )
        if not response.is_success:
            return ExecutionResult.failure(
                f"Screenpipe returned HTTP {response.status_code}",
                exit_code=response.status_code,
                stderr=response.text,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise ToolExecutionError(self.name, "malformed screenpipe response (not JSON)") from e

        items = data.get("data", []) if isinstance(data, dict) else []
        lines = [f"{len(items)} result(s) for '{args['query']}'"]
        for item in items:
            if not isinstance(item, dict):
                continue
            content = item.get("content") or {}
            text = content.get("text") or content.get("transcription") or ""
            app = content.get("app_name") or content.get("device_name") or item.get("type", "")
            stamp = content.get("timestamp", "")
            lines.append(f"- [{stamp}] {app}: {text.strip()[:200]}")
        return ExecutionResult(status=ExecutionStatus.SUCCESS, stdout_preview="\n".join(lines))
