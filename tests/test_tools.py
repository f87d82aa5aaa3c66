"""Tests for the tool service client, tool catalog and tool runner."""

import json
from unittest.mock import patch

import httpx
import pytest

from app.clients.toolhouse import ToolhouseClient, ToolhouseConfig
from app.errors import ToolCatalogUnavailable, ToolExecutionFailed
from app.models.llm import CompletionResult, ToolDefinition
from app.models.messages import ToolInvocationRequest
from app.services.tools import ToolCatalog, ToolRunner

OPENAI_STYLE_TOOL = {
    "type": "function",
    "function": {
        "name": "get_weather",
        "description": "Current weather for a city",
        "parameters": {"type": "object", "properties": {"city": {"type": "string"}}},
    },
}
FLAT_TOOL = {
    "name": "web_search",
    "description": "Search the web",
    "input_schema": {"type": "object", "properties": {"query": {"type": "string"}}},
}


class RecordingHandler:
    """httpx MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses: httpx.Response | Exception):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def payload(self, index: int = 0) -> dict:
        return json.loads(self.requests[index].content)


def make_client(handler: RecordingHandler, **config) -> ToolhouseClient:
    return ToolhouseClient(
        api_key="test-key",
        config=ToolhouseConfig(base_url="https://tools.test/v1", **config),
        transport=httpx.MockTransport(handler),
    )


class TestToolhouseClient:
    """Tests for the low-level HTTP client."""

    def test_requires_api_key(self):
        """Test that a missing API key is rejected at construction."""
        with patch.dict("os.environ", {}, clear=True), pytest.raises(ValueError, match="TOOLHOUSE_API_KEY"):
            ToolhouseClient()

    def test_config_from_env(self):
        """Test reading the base URL and bundle from the environment."""
        env = {"TOOLHOUSE_BASE_URL": "https://tools.internal/v2", "TOOLHOUSE_BUNDLE": "notes"}
        with patch.dict("os.environ", env):
            config = ToolhouseConfig.from_env(provider="anthropic")

        assert config.base_url == "https://tools.internal/v2"
        assert config.bundle == "notes"
        assert config.provider == "anthropic"
        assert config.metadata == {"id": "user-id", "timezone": "0"}

    @pytest.mark.asyncio
    async def test_get_tools_request_shape(self):
        """Test URL, auth header and payload of the catalog request."""
        handler = RecordingHandler(httpx.Response(200, json=[OPENAI_STYLE_TOOL]))
        client = make_client(handler)

        tools = await client.get_tools()

        request = handler.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://tools.test/v1/get_tools"
        assert request.headers["Authorization"] == "Bearer test-key"
        assert handler.payload() == {
            "provider": "openai",
            "metadata": {"id": "user-id", "timezone": "0"},
            "bundle": "default",
        }
        assert tools == [OPENAI_STYLE_TOOL]
        await client.close()

    @pytest.mark.asyncio
    async def test_get_tools_rejects_non_list(self):
        """Test that a non-list catalog body is a format error."""
        client = make_client(RecordingHandler(httpx.Response(200, json={"tools": []})))

        with pytest.raises(ValueError, match="Expected a list of tools"):
            await client.get_tools()

    @pytest.mark.asyncio
    async def test_run_tool_sends_call_as_content(self):
        """Test the payload of a tool run request."""
        handler = RecordingHandler(httpx.Response(200, json={"content": "ok"}))
        client = make_client(handler)
        call = {"id": "call_1", "name": "get_weather", "input": {"city": "Berlin"}}

        await client.run_tool(call)

        assert str(handler.requests[0].url) == "https://tools.test/v1/run_tools"
        assert handler.payload()["content"] == call


class TestToolCatalog:
    """Tests for fetching the tool catalog."""

    @pytest.mark.asyncio
    async def test_parses_both_tool_formats(self):
        """Test parsing OpenAI function tools and flat tools."""
        catalog = ToolCatalog(make_client(RecordingHandler(httpx.Response(200, json=[OPENAI_STYLE_TOOL, FLAT_TOOL]))))

        tools = await catalog.fetch_tools()

        assert [tool.name for tool in tools] == ["get_weather", "web_search"]
        assert tools[0].input_schema == OPENAI_STYLE_TOOL["function"]["parameters"]
        assert tools[1].description == "Search the web"

    @pytest.mark.asyncio
    async def test_empty_catalog_is_valid(self):
        """Test that an empty catalog is returned, not an error."""
        catalog = ToolCatalog(make_client(RecordingHandler(httpx.Response(200, json=[]))))

        assert await catalog.fetch_tools() == []

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Test that transport errors become ToolCatalogUnavailable."""
        handler = RecordingHandler(httpx.ConnectError("Connection refused"))
        catalog = ToolCatalog(make_client(handler))

        with pytest.raises(ToolCatalogUnavailable, match="Connection refused"):
            await catalog.fetch_tools()

    @pytest.mark.asyncio
    async def test_non_2xx_status(self):
        """Test that error statuses carry status and body."""
        catalog = ToolCatalog(make_client(RecordingHandler(httpx.Response(401, text="invalid api key"))))

        with pytest.raises(ToolCatalogUnavailable) as exc_info:
            await catalog.fetch_tools()

        assert exc_info.value.message == "401 Unauthorized: invalid api key"
        assert exc_info.value.stage is None

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        """Test that a non-JSON body is a catalog failure."""
        catalog = ToolCatalog(make_client(RecordingHandler(httpx.Response(200, text="<html>"))))

        with pytest.raises(ToolCatalogUnavailable):
            await catalog.fetch_tools()

    @pytest.mark.asyncio
    async def test_invalid_definition_fails_whole_catalog(self):
        """Test that one bad definition fails the catalog instead of dropping it."""
        body = [FLAT_TOOL, {"description": "no name"}]
        catalog = ToolCatalog(make_client(RecordingHandler(httpx.Response(200, json=body))))

        with pytest.raises(ToolCatalogUnavailable):
            await catalog.fetch_tools()


class TestToolRunner:
    """Tests for running requested tools."""

    @pytest.mark.asyncio
    async def test_no_requests_returns_empty(self):
        """Test the pass-through when no tools were requested."""
        handler = RecordingHandler()
        runner = ToolRunner(make_client(handler))

        messages = await runner.run_tools(CompletionResult(content="The sky is blue."))

        assert messages == []
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_runs_each_tool_in_order(self):
        """Test the assistant turn followed by one tool message per call."""
        calls = [
            ToolInvocationRequest(id="call_1", name="get_weather", arguments={"city": "Berlin"}),
            ToolInvocationRequest(id="call_2", name="web_search", arguments={"query": "berlin events"}),
        ]
        handler = RecordingHandler(
            httpx.Response(200, json={"content": "18°C"}),
            httpx.Response(200, json={"content": "Jazz festival"}),
        )
        runner = ToolRunner(make_client(handler))

        messages = await runner.run_tools(CompletionResult(content=None, tool_invocation_requests=calls))

        assert [handler.payload(i)["content"]["id"] for i in range(2)] == ["call_1", "call_2"]
        assert messages[0].role == "assistant"
        assert messages[0].content == ""
        assert messages[0].tool_calls == calls
        assert [(m.role, m.tool_call_id, m.content) for m in messages[1:]] == [
            ("tool", "call_1", "18°C"),
            ("tool", "call_2", "Jazz festival"),
        ]

    @pytest.mark.asyncio
    async def test_individual_tool_error_is_folded_in(self, weather_call):
        """Test that a per-tool error is reported in its message."""
        handler = RecordingHandler(httpx.Response(200, json={"content": "City not found", "is_error": True}))
        runner = ToolRunner(make_client(handler))

        messages = await runner.run_tools(CompletionResult(tool_invocation_requests=[weather_call]))

        assert messages[1].is_error
        assert messages[1].content == "City not found"

    @pytest.mark.asyncio
    async def test_non_string_content_is_stringified(self, weather_call):
        """Test that structured tool output is rendered as text."""
        handler = RecordingHandler(httpx.Response(200, json={"content": {"temp": 18}}))
        runner = ToolRunner(make_client(handler))

        messages = await runner.run_tools(CompletionResult(tool_invocation_requests=[weather_call]))

        assert messages[1].content == "{'temp': 18}"

    @pytest.mark.asyncio
    async def test_transport_failure_fails_stage(self, weather_call):
        """Test that a failed call fails the whole stage with no partial results."""
        second = ToolInvocationRequest(id="call_2", name="web_search", arguments={})
        handler = RecordingHandler(
            httpx.Response(200, json={"content": "18°C"}),
            httpx.Response(502, text="upstream down"),
        )
        runner = ToolRunner(make_client(handler))

        with pytest.raises(ToolExecutionFailed, match="web_search: 502 Bad Gateway: upstream down"):
            await runner.run_tools(CompletionResult(tool_invocation_requests=[weather_call, second]))

    @pytest.mark.asyncio
    async def test_missing_content_fails_stage(self, weather_call):
        """Test that a result without content is a stage failure."""
        runner = ToolRunner(make_client(RecordingHandler(httpx.Response(200, json={"is_error": False}))))

        with pytest.raises(ToolExecutionFailed, match="has no content"):
            await runner.run_tools(CompletionResult(tool_invocation_requests=[weather_call]))


class TestToolDefinition:
    """Tests for tool definition parsing."""

    def test_function_without_parameters_gets_empty_schema(self):
        """Test the default schema for parameterless functions."""
        tool = ToolDefinition.model_validate({"type": "function", "function": {"name": "now"}})

        assert tool.name == "now"
        assert tool.input_schema == {"type": "object", "properties": {}}

    def test_definitions_are_frozen(self):
        """Test that fetched definitions cannot be mutated."""
        tool = ToolDefinition.model_validate(FLAT_TOOL)

        with pytest.raises(ValueError):
            tool.name = "other"
