"""Web search tool using the DuckDuckGo instant answer API.

No API key is needed. The API returns an abstract plus related topics
rather than full web results; both are formatted into readable text.
"""

from __future__ import annotations

from typing import Any

from harper.core.models import ExecutionResult, ExecutionStatus, OperationKind
from harper.exceptions import ToolExecutionError
from harper.tools.builtin.http_client import HttpTool

DUCKDUCKGO_API_URL = "https://api.duckduckgo.com/"
MAX_TOPICS = 5


class WebSearchTool(HttpTool):
    kind = OperationKind.SEARCH_WEB
    name = "web_search"
    description = "Search the web (DuckDuckGo instant answers)"
    fields = {"query": str}

    async def execute(self, args: dict[str, Any]) -> ExecutionResult:
        query = args["query"]
        response = await self.request(
            "GET",
            DUCKDUCKGO_API_URL,
            params={"q": query, "format": "json", "no_html": "1", "skip_disambig": "1"},
        )
        if not response.is_success:
            return ExecutionResult.failure(
                f"Search API returned HTTP {response.status_code}",
                exit_code=response.status_code,
                stderr=response.text,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise ToolExecutionError(self.name, "malformed search response (not JSON)") from e
        if not isinstance(data, dict):
            raise ToolExecutionError(self.name, "malformed search response")

        return ExecutionResult(
            status=ExecutionStatus.SUCCESS,
            stdout_preview=format_results(data, query),
        )


def format_results(data: dict, query: str) -> str:
    """Format an instant-answer payload into readable text."""
    parts = [f"## Search results for: '{query}'"]

    heading = data.get("Heading") or ""
    abstract = data.get("AbstractText") or data.get("Answer") or ""
    if abstract:
        parts.append(f"### {heading}" if heading else "### Summary")
        parts.append(abstract)
        if data.get("AbstractURL"):
            parts.append(f"Source: {data['AbstractURL']}")

    topics = _flatten_topics(data.get("RelatedTopics") or [])
    for i, topic in enumerate(topics[:MAX_TOPICS], 1):
        parts.append(f"{i}. {topic.get('Text', '')}")
        if topic.get("FirstURL"):
            parts.append(f"   {topic['FirstURL']}")

    if len(parts) == 1:
        return f"No results found for: '{query}'"
    return "\n".join(parts)


def _flatten_topics(topics: list) -> list[dict]:
    # Disambiguation groups nest their entries under "Topics"
    flat: list[dict] = []
    for topic in topics:
        if not isinstance(topic, dict):
            continue
        if "Topics" in topic:
            flat.extend(t for t in topic["Topics"] if isinstance(t, dict))
        elif topic.get("Text"):
            flat.append(topic)
    return flat
