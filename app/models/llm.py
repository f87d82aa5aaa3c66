"""LLM-related data models and types (provider-agnostic)."""

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.messages import Message, ToolInvocationRequest


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    model_config = ConfigDict(extra="ignore")  # Ignore any additional fields from Anthropic

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    model_config = ConfigDict(extra="ignore")  # Ignore any additional fields from Anthropic

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    model_config = ConfigDict(extra="ignore")  # Ignore any additional fields from Anthropic

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


class ToolDefinition(BaseModel):
    """A callable tool offered by the tool-execution service.

    Accepts the OpenAI function format as well as the flat
    ``name``/``description``/``input_schema`` format.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})

    @model_validator(mode="before")
    @classmethod
    def unwrap_function_format(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("type") == "function" and isinstance(data.get("function"), dict):
            function = data["function"]
            unwrapped = {"name": function.get("name"), "description": function.get("description", "")}
            if function.get("parameters") is not None:
                unwrapped["input_schema"] = function["parameters"]
            return unwrapped
        return data


@dataclass
class LLMUsage:
    """Token/resource usage information from LLM provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class CompletionResult:
    """Provider-agnostic result of one completion call."""

    content: str | None = None
    tool_invocation_requests: list[ToolInvocationRequest] = field(default_factory=list)
    model: str = ""
    stop_reason: str | None = None
    usage: LLMUsage | None = None

    @property
    def requests_tools(self) -> bool:
        return bool(self.tool_invocation_requests)


@dataclass
class ToolInvocationResult:
    """Outcome of running one requested tool."""

    invocation: ToolInvocationRequest
    content: str
    is_error: bool = False

    def to_message(self) -> Message:
        """Render the result as a tool message answering the invocation."""
        return Message(
            role="tool",
            content=self.content,
            tool_call_id=self.invocation.id,
            is_error=self.is_error,
        )
