"""Message and conversation data models."""

from collections.abc import Iterable, Iterator
from typing import Any, Literal

from pydantic import BaseModel, Field

Role = Literal["user", "assistant", "tool", "system"]


class ToolInvocationRequest(BaseModel):
    """A tool call requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    """A provider-agnostic message in a conversation.

    Assistant messages that only carry ``tool_calls`` have empty content.
    Tool messages reference the invocation they answer via ``tool_call_id``.
    """

    role: Role
    content: str = ""
    tool_calls: list[ToolInvocationRequest] | None = None
    tool_call_id: str | None = None
    is_error: bool = False


class Conversation:
    """Append-only dialogue history for a single request."""

    def __init__(self, first_message: Message):
        if first_message.role != "user":
            raise ValueError(f"Conversation must start with a user message, got {first_message.role!r}")
        self._messages: list[Message] = [first_message]

    @classmethod
    def start(cls, text: str) -> "Conversation":
        """Create a conversation holding the user's text."""
        return cls(Message(role="user", content=text))

    @property
    def messages(self) -> tuple[Message, ...]:
        """Snapshot of the messages in order."""
        return tuple(self._messages)

    def append(self, message: Message) -> None:
        if not isinstance(message, Message):
            raise TypeError(f"Expected Message, got {type(message).__name__}")
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.append(message)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self._messages)
