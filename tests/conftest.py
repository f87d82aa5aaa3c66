"""Shared fixtures: a pipeline wired to mocked collaborators."""

from unittest.mock import AsyncMock, Mock

import pytest

from app.models.llm import CompletionResult, ToolDefinition
from app.models.messages import Message, ToolInvocationRequest
from app.services.pipeline import ProcessingPipeline


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def weather_tool() -> ToolDefinition:
    return ToolDefinition(
        name="get_weather",
        description="Current weather for a city",
        input_schema={"type": "object", "properties": {"city": {"type": "string"}}, "required": ["city"]},
    )


@pytest.fixture
def weather_call() -> ToolInvocationRequest:
    return ToolInvocationRequest(id="call_1", name="get_weather", arguments={"city": "Berlin"})


@pytest.fixture
def catalog(weather_tool):
    catalog = Mock()
    catalog.fetch_tools = AsyncMock(return_value=[weather_tool])
    catalog.client = Mock(close=AsyncMock())
    return catalog


@pytest.fixture
def llm():
    llm = Mock()
    llm.complete = AsyncMock(
        side_effect=[
            CompletionResult(content="Draft answer"),
            CompletionResult(content="Final answer"),
        ]
    )
    llm.close = AsyncMock()
    return llm


@pytest.fixture
def runner():
    runner = Mock()
    runner.run_tools = AsyncMock(return_value=[])
    runner.client = Mock(close=AsyncMock())
    return runner


@pytest.fixture
def pipeline(catalog, llm, runner) -> ProcessingPipeline:
    return ProcessingPipeline(catalog=catalog, llm=llm, runner=runner)


@pytest.fixture
def tool_messages(weather_call) -> list[Message]:
    """Messages a tool runner returns for a single successful call."""
    return [
        Message(role="assistant", content="", tool_calls=[weather_call]),
        Message(role="tool", content="18°C and sunny", tool_call_id=weather_call.id),
    ]
