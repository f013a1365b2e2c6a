"""Tests for the DuckDuckGo web_search tool.

Covers the request it sends and the formatting of instant-answer payloads.
"""

import httpx
import pytest

from harper.core.models import ExecutionStatus
from harper.exceptions import ToolExecutionError
from harper.tools.builtin.web_search import MAX_TOPICS, WebSearchTool, format_results


def _tool(policy, handler) -> WebSearchTool:
    return WebSearchTool(policy, transport=httpx.MockTransport(handler))


class TestWebSearchRequest:
    @pytest.mark.asyncio
    async def test_query_params(self, policy):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            seen["host"] = request.url.host
            return httpx.Response(200, json={"AbstractText": "A language.", "Heading": "Python"})

        result = await _tool(policy, handler).execute({"query": "python language"})
        assert result.status == ExecutionStatus.SUCCESS
        assert seen["host"] == "api.duckduckgo.com"
        assert seen["q"] == "python language"
        assert seen["format"] == "json"
        assert "### Python\nA language." in result.stdout_preview

    @pytest.mark.asyncio
    async def test_http_error(self, policy):
        result = await _tool(policy, lambda request: httpx.Response(503, text="busy")).execute({"query": "x"})
        assert result.status == ExecutionStatus.FAILURE
        assert result.exit_code == 503
        assert result.message == "Search API returned HTTP 503"

    @pytest.mark.asyncio
    async def test_malformed_response(self, policy):
        tool = _tool(policy, lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ToolExecutionError, match="not JSON"):
            await tool.execute({"query": "x"})

    @pytest.mark.asyncio
    async def test_non_object_response(self, policy):
        tool = _tool(policy, lambda request: httpx.Response(200, json=["a", "b"]))
        with pytest.raises(ToolExecutionError, match="malformed search response"):
            await tool.execute({"query": "x"})


class TestFormatResults:
    def test_abstract_with_source(self):
        text = format_results(
            {"Heading": "httpx", "AbstractText": "An HTTP client.", "AbstractURL": "https://www.python-httpx.org"},
            "httpx",
        )
        assert text.splitlines() == [
            "## Search results for: 'httpx'",
            "### httpx",
            "An HTTP client.",
            "Source: https://www.python-httpx.org",
        ]

    def test_answer_without_heading(self):
        text = format_results({"Answer": "42"}, "meaning")
        assert "### Summary\n42" in text

    def test_related_topics_capped(self):
        topics = [{"Text": f"Topic {i}", "FirstURL": f"https://t.test/{i}"} for i in range(10)]
        text = format_results({"RelatedTopics": topics}, "topics")
        assert f"{MAX_TOPICS}. Topic {MAX_TOPICS - 1}" in text
        assert f"Topic {MAX_TOPICS}" not in text

    def test_nested_topic_groups(self):
        data = {
            "RelatedTopics": [
                {"Name": "Group", "Topics": [{"Text": "Nested one"}, {"Text": "Nested two"}]},
                {"Text": "Flat"},
                "garbage",
            ]
        }
        text = format_results(data, "q")
        assert "1. Nested one" in text
        assert "2. Nested two" in text
        assert "3. Flat" in text

    def test_no_results(self):
        assert format_results({}, "nothing") == "No results found for: 'nothing'"
