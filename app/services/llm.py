"""LLM service: one completion call over the configured provider."""

import os
from collections.abc import Sequence
from typing import Protocol

from app.models.llm import CompletionResult, ToolDefinition
from app.models.messages import Message
from app.utils.logging import get_logger

logger = get_logger(__name__)

PROVIDERS = ("openai", "anthropic")


class CompletionClient(Protocol):
    """Provider client contract used by LLMService."""

    @property
    def model(self) -> str: ...

    async def complete(self, messages: list[Message], tools: list[ToolDefinition]) -> CompletionResult: ...

    async def close(self) -> None: ...


def create_completion_client(provider: str) -> CompletionClient:
    """Build the provider client for ``provider``."""
    if provider == "openai":
        from app.clients.openai import OpenAIClient

        return OpenAIClient()
    if provider == "anthropic":
        from app.clients.anthropic import AnthropicClient

        return AnthropicClient()
    raise ValueError(f"Unknown completion provider {provider!r}, expected one of {PROVIDERS}")


class LLMService:
    """Provider-agnostic completion calls for the pipeline."""

    def __init__(self, client: CompletionClient):
        """Initialize LLM service.

        Args:
            client: Provider client; its model is fixed for the process lifetime
        """
        self.client = client

    @property
    def model(self) -> str:
        return self.client.model

    async def complete(self, conversation: Sequence[Message], tools: Sequence[ToolDefinition]) -> CompletionResult:
        """Run one completion over the conversation.

        Args:
            conversation: Ordered, non-empty message history
            tools: Tool catalog; empty disables tool calling

        Returns:
            The completion result

        Raises:
            ValueError: If the conversation is empty
            CompletionFailed: If the provider call fails
        """
        messages = list(conversation)
        if not messages:
            raise ValueError("Cannot complete an empty conversation")

        logger.debug(f"Calling {self.model} with {len(messages)} messages and {len(tools)} tools")
        result = await self.client.complete(messages, list(tools))

        if result.requests_tools:
            logger.info(f"LLM wants to use {len(result.tool_invocation_requests)} tools")
        if result.usage:
            logger.debug(f"Token usage - Input: {result.usage.input_tokens}, Output: {result.usage.output_tokens}")
        return result

    async def close(self) -> None:
        await self.client.close()


def completion_provider_from_env() -> str:
    return os.getenv("COMPLETION_PROVIDER", "openai").lower()
