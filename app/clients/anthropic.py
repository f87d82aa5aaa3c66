"""Anthropic completion client."""

import os
from dataclasses import dataclass
from typing import Any, Literal

from anthropic import APIError, AsyncAnthropic
from anthropic.types import ContentBlock as AnthropicContentBlock
from anthropic.types import Message as AnthropicAPIMessage
from pydantic import BaseModel

from app.errors import CompletionFailed
from app.models.llm import (
    CompletionResult,
    ContentBlock,
    LLMUsage,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)
from app.models.messages import Message, ToolInvocationRequest
from app.utils.logging import get_logger

logger = get_logger(__name__)

MODEL = "claude-3-5-sonnet-20241022"


class AnthropicMessage(BaseModel):
    """Message format for Anthropic API."""

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass(frozen=True)
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = MODEL
    max_tokens: int = 1000
    temperature: float = 0.1


class AnthropicClient:
    """Low-level Anthropic API client speaking the neutral message model."""

    def __init__(self, api_key: str | None = None, config: AnthropicConfig | None = None):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Client configuration
        """
        anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        self.config = config or AnthropicConfig()
        self.client = AsyncAnthropic(api_key=anthropic_api_key, max_retries=0)

    @property
    def model(self) -> str:
        return self.config.model

    async def complete(self, messages: list[Message], tools: list[ToolDefinition]) -> CompletionResult:
        """Create a message with Claude API.

        Args:
            messages: Conversation history
            tools: Available tools (may be empty)

        Returns:
            Provider-agnostic completion result

        Raises:
            CompletionFailed: If the API call fails
        """
        system_prompt, anthropic_messages = self.to_anthropic_messages(messages)

        request_params: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": [msg.model_dump() for msg in anthropic_messages],
        }
        if system_prompt:
            request_params["system"] = system_prompt
        if tools:
            request_params["tools"] = [self.to_anthropic_tool(tool).model_dump() for tool in tools]

        logger.debug(f"Making Anthropic API call with model: {request_params['model']}, {len(tools)} tools")
        try:
            response: AnthropicAPIMessage = await self.client.messages.create(**request_params)
        except APIError as e:
            raise CompletionFailed(e.message) from e

        logger.debug(
            f"Response received - Stop reason: {response.stop_reason}, Content blocks: {len(response.content)}"
        )
        return self._to_completion_result(response)

    async def close(self) -> None:
        await self.client.close()

    @staticmethod
    def to_anthropic_tool(tool: ToolDefinition) -> AnthropicTool:
        return AnthropicTool(name=tool.name, description=tool.description, input_schema=tool.input_schema)

    @staticmethod
    def to_anthropic_messages(messages: list[Message]) -> tuple[str, list[AnthropicMessage]]:
        """Convert neutral messages to Anthropic's format.

        System messages are lifted into the system prompt. Consecutive tool
        messages are merged into one user message of tool_result blocks.
        """
        system_parts: list[str] = []
        converted: list[AnthropicMessage] = []

        for message in messages:
            if message.role == "system":
                system_parts.append(message.content)
            elif message.role == "tool":
                block = ToolResultBlock(
                    tool_use_id=message.tool_call_id or "",
                    content=message.content,
                    is_error=message.is_error,
                )
                previous = converted[-1] if converted else None
                if previous and previous.role == "user" and isinstance(previous.content, list):
                    previous.content.append(block)
                else:
                    converted.append(AnthropicMessage(role="user", content=[block]))
            elif message.role == "assistant" and message.tool_calls:
                blocks: list[ContentBlock] = []
                if message.content:
                    blocks.append(TextBlock(text=message.content))
                blocks.extend(
                    ToolUseBlock(id=call.id, name=call.name, input=call.arguments) for call in message.tool_calls
                )
                converted.append(AnthropicMessage(role="assistant", content=blocks))
            else:
                converted.append(AnthropicMessage(role=message.role, content=message.content))

        return "\n\n".join(system_parts), converted

    def _to_completion_result(self, response: AnthropicAPIMessage) -> CompletionResult:
        blocks = self._convert_content_blocks(response.content)
        texts = [block.text for block in blocks if isinstance(block, TextBlock)]
        invocations = [
            ToolInvocationRequest(id=block.id, name=block.name, arguments=block.input)
            for block in blocks
            if isinstance(block, ToolUseBlock)
        ]

        usage = None
        if response.usage:
            usage = LLMUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )

        return CompletionResult(
            content="".join(texts) or None,
            tool_invocation_requests=invocations,
            model=response.model,
            stop_reason=response.stop_reason,
            usage=usage,
        )

    def _convert_content_blocks(self, anthropic_content: list[AnthropicContentBlock]) -> list[ContentBlock]:
        """Convert Anthropic content blocks to our ContentBlock types."""
        converted_blocks: list[ContentBlock] = []
        for block in anthropic_content:
            block_dict = block.model_dump() if hasattr(block, "model_dump") else dict(block)

            if block_dict.get("type") == "text":
                converted_blocks.append(TextBlock.model_validate(block_dict))
            elif block_dict.get("type") == "tool_use":
                converted_blocks.append(ToolUseBlock.model_validate(block_dict))
            else:
                logger.warning(f"Unknown content block type: {block_dict.get('type')}")

        return converted_blocks
