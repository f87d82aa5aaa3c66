"""OpenAI chat completions client."""

import json
import os
from dataclasses import dataclass
from typing import Any

from openai import APIError, AsyncOpenAI
from openai.types.chat import ChatCompletion

from app.errors import CompletionFailed
from app.models.llm import CompletionResult, LLMUsage, ToolDefinition
from app.models.messages import Message, ToolInvocationRequest
from app.utils.logging import get_logger

logger = get_logger(__name__)

MODEL = "gpt-4o-mini"


@dataclass(frozen=True)
class OpenAIConfig:
    """Configuration for OpenAI API client."""

    model: str = MODEL


class OpenAIClient:
    """Low-level OpenAI API client speaking the neutral message model."""

    def __init__(self, api_key: str | None = None, config: OpenAIConfig | None = None):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
            config: Client configuration
        """
        openai_api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not openai_api_key:
            raise ValueError("OPENAI_API_KEY environment variable is required")

        self.config = config or OpenAIConfig()
        self.client = AsyncOpenAI(api_key=openai_api_key, max_retries=0)

    @property
    def model(self) -> str:
        return self.config.model

    async def complete(self, messages: list[Message], tools: list[ToolDefinition]) -> CompletionResult:
        """Create a chat completion.

        Args:
            messages: Conversation history
            tools: Available tools (may be empty)

        Returns:
            Provider-agnostic completion result

        Raises:
            CompletionFailed: If the API call fails or returns malformed tool calls
        """
        request_params: dict[str, Any] = {
            "model": self.config.model,
            "messages": [self.to_openai_message(message) for message in messages],
        }
        # An empty tools list is rejected by the API, so omit it entirely.
        if tools:
            request_params["tools"] = [self.to_openai_tool(tool) for tool in tools]

        logger.debug(f"Making OpenAI API call with model: {request_params['model']}, {len(tools)} tools")
        try:
            response: ChatCompletion = await self.client.chat.completions.create(**request_params)
        except APIError as e:
            raise CompletionFailed(e.message) from e

        return self._to_completion_result(response)

    async def close(self) -> None:
        await self.client.close()

    @staticmethod
    def to_openai_tool(tool: ToolDefinition) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.input_schema,
            },
        }

    @staticmethod
    def to_openai_message(message: Message) -> dict[str, Any]:
        """Convert a neutral message to a chat completions message dict."""
        if message.role == "tool":
            return {"role": "tool", "tool_call_id": message.tool_call_id, "content": message.content}

        if message.role == "assistant" and message.tool_calls:
            return {
                "role": "assistant",
                "content": message.content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                    }
                    for call in message.tool_calls
                ],
            }

        return {"role": message.role, "content": message.content}

    def _to_completion_result(self, response: ChatCompletion) -> CompletionResult:
        if not response.choices:
            raise CompletionFailed("Response contained no choices")

        choice = response.choices[0]
        invocations: list[ToolInvocationRequest] = []
        for call in choice.message.tool_calls or []:
            if call.type != "function":
                raise CompletionFailed(f"Unsupported tool call type {call.type!r} for call {call.id}")
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError as e:
                raise CompletionFailed(f"Malformed arguments for tool {call.function.name}: {e}") from e
            invocations.append(ToolInvocationRequest(id=call.id, name=call.function.name, arguments=arguments))

        usage = None
        if response.usage:
            usage = LLMUsage(
                input_tokens=response.usage.prompt_tokens,
                output_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        logger.debug(f"Response received - Finish reason: {choice.finish_reason}, tool calls: {len(invocations)}")

        return CompletionResult(
            content=choice.message.content,
            tool_invocation_requests=invocations,
            model=response.model,
            stop_reason=choice.finish_reason,
            usage=usage,
        )
