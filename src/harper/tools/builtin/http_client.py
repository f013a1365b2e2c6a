"""HTTP tools base and the API probe tool.

All network tools share one httpx.AsyncClient construction so tests can
inject an ``httpx.MockTransport``. Timeouts and transport errors become
FAILURE results through ToolExecutionError.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from harper.config import ExecutionPolicyConfig
from harper.core.models import ExecutionResult, ExecutionStatus, OperationKind
from harper.exceptions import ToolExecutionError, ValidationFailureError
from harper.tools.models import Tool

USER_AGENT = "harper/0.1 (terminal agent)"
HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")


class HttpTool(Tool):
    """Base for async tools that talk HTTP through httpx."""

    is_async = True

    def __init__(
        self,
        config: ExecutionPolicyConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(config)
        self._transport = transport

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self.config.network_timeout_seconds,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            async with self.client() as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ToolExecutionError(
                self.name, f"request timed out after {self.config.network_timeout_seconds:g}s"
            ) from e
        except httpx.HTTPError as e:
            raise ToolExecutionError(self.name, f"{type(e).__name__}: {e}") from e


class ApiProbeTool(HttpTool):
    kind = OperationKind.API_PROBE
    name = "api_probe"
    description = "Send an HTTP request (GET/POST/PUT/DELETE/PATCH) and report the response"
    mutating = True
    fields = {"method": str, "url": str}

    def check(self, args: dict[str, Any]) -> None:
        if str(args["method"]).upper() not in HTTP_METHODS:
            raise ValidationFailureError(f"api_probe: unsupported method '{args['method']}'")
        if not str(args["url"]).startswith(("http://", "https://")):
            raise ValidationFailureError(f"api_probe: URL must be http(s): {args['url']}")
        headers = args.get("headers")
        if headers is not None and not isinstance(headers, dict):
            raise ValidationFailureError("api_probe: headers must be an object")

    async def execute(self, args: dict[str, Any]) -> ExecutionResult:
        method = str(args["method"]).upper()
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        headers.update({str(k): str(v) for k, v in (args.get("headers") or {}).items()})
        body = args.get("body") or None
        if isinstance(body, (dict, list)):
            body = json.dumps(body)

        response = await self.request(method, args["url"], headers=headers, content=body)
        text = response.text
        if not response.is_success:
            return ExecutionResult(
                status=ExecutionStatus.FAILURE,
                exit_code=response.status_code,
                stderr_preview=text,
                message=f"HTTP {response.status_code} {response.reason_phrase}",
            )
        return ExecutionResult(
            status=ExecutionStatus.SUCCESS,
            exit_code=response.status_code,
            stdout_preview=text,
            message=f"HTTP {response.status_code} {response.reason_phrase}",
        )
