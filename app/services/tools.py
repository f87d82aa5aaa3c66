"""Tool catalog and tool execution services."""

import httpx

from app.clients.toolhouse import ToolhouseClient
from app.errors import ToolCatalogUnavailable, ToolExecutionFailed
from app.models.llm import CompletionResult, ToolDefinition, ToolInvocationResult
from app.models.messages import Message, ToolInvocationRequest
from app.utils.logging import get_logger

logger = get_logger(__name__)


def _describe(error: Exception) -> str:
    """Upstream error message, including the status for HTTP failures."""
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        status = f"{response.status_code} {response.reason_phrase}"
        return f"{status}: {response.text}" if response.text else status
    return str(error) or type(error).__name__


class ToolCatalog:
    """Fetches the current tool definitions, all or nothing."""

    def __init__(self, client: ToolhouseClient):
        self.client = client

    async def fetch_tools(self) -> list[ToolDefinition]:
        """Fetch and parse the tool catalog.

        Raises:
            ToolCatalogUnavailable: On any transport, status or format failure
        """
        try:
            raw_tools = await self.client.get_tools()
            tools = [ToolDefinition.model_validate(raw) for raw in raw_tools]
        except (httpx.HTTPError, ValueError) as e:  # pydantic's ValidationError is a ValueError
            raise ToolCatalogUnavailable(_describe(e)) from e

        logger.debug(f"Fetched {len(tools)} tools: {[tool.name for tool in tools]}")
        return tools


class ToolRunner:
    """Runs the tool invocations requested by a completion."""

    def __init__(self, client: ToolhouseClient):
        self.client = client

    async def run_tools(self, completion: CompletionResult) -> list[Message]:
        """Run every requested tool and return the messages to append.

        The first message is the assistant turn carrying the tool calls; one
        tool message per invocation follows, in request order. Individual
        tool errors reported by the service are folded into their message.

        Raises:
            ToolExecutionFailed: If any invocation cannot be run at all
        """
        if not completion.requests_tools:
            logger.debug("Completion requested no tools")
            return []

        results: list[ToolInvocationResult] = []
        for invocation in completion.tool_invocation_requests:
            results.append(await self._run_one(invocation))

        failed = sum(1 for result in results if result.is_error)
        if failed:
            logger.warning(f"{failed} of {len(results)} tools reported errors")

        assistant_turn = Message(
            role="assistant",
            content=completion.content or "",
            tool_calls=list(completion.tool_invocation_requests),
        )
        return [assistant_turn, *(result.to_message() for result in results)]

    async def _run_one(self, invocation: ToolInvocationRequest) -> ToolInvocationResult:
        logger.debug(f"Executing tool: {invocation.name} with input: {invocation.arguments}")
        call = {"id": invocation.id, "name": invocation.name, "input": invocation.arguments}
        try:
            body = await self.client.run_tool(call)
        except (httpx.HTTPError, ValueError) as e:
            raise ToolExecutionFailed(f"{invocation.name}: {_describe(e)}") from e

        content = body.get("content")
        if content is None:
            raise ToolExecutionFailed(f"{invocation.name}: result has no content")

        return ToolInvocationResult(
            invocation=invocation,
            content=content if isinstance(content, str) else str(content),
            is_error=bool(body.get("is_error", False)),
        )
