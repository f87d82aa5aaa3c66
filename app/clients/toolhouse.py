"""HTTP client for the tool-execution service."""

import os
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.toolhouse.ai/v1"


@dataclass(frozen=True)
class ToolhouseConfig:
    """Configuration for the tool-execution service client."""

    base_url: str = DEFAULT_BASE_URL
    provider: str = "openai"
    bundle: str = "default"
    metadata: dict[str, str] = field(default_factory=lambda: {"id": "user-id", "timezone": "0"})
    timeout: float = 60.0

    @classmethod
    def from_env(cls, provider: str = "openai") -> "ToolhouseConfig":
        return cls(
            base_url=os.getenv("TOOLHOUSE_BASE_URL", DEFAULT_BASE_URL),
            provider=provider,
            bundle=os.getenv("TOOLHOUSE_BUNDLE", "default"),
        )


class ToolhouseClient:
    """Thin async wrapper over the tool service's JSON API.

    One instance is shared by all in-flight requests; httpx pools the
    connections and the client holds no per-request state.
    """

    def __init__(
        self,
        api_key: str | None = None,
        config: ToolhouseConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the tool service client.

        Args:
            api_key: Tool service API key (defaults to TOOLHOUSE_API_KEY env var)
            config: Client configuration
            transport: Optional httpx transport, used by tests
        """
        toolhouse_api_key = api_key or os.getenv("TOOLHOUSE_API_KEY")
        if not toolhouse_api_key:
            raise ValueError("TOOLHOUSE_API_KEY environment variable is required")

        self.config = config or ToolhouseConfig()
        self.client = httpx.AsyncClient(
            base_url=self.config.base_url,
            headers={"Authorization": f"Bearer {toolhouse_api_key}"},
            timeout=self.config.timeout,
            transport=transport,
        )

    def _payload(self, **extra: Any) -> dict[str, Any]:
        return {
            "provider": self.config.provider,
            "metadata": dict(self.config.metadata),
            "bundle": self.config.bundle,
            **extra,
        }

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        logger.debug(f"POST {path} to tool service")
        response = await self.client.post(path, json=payload)
        response.raise_for_status()
        return response.json()

    async def get_tools(self) -> list[dict[str, Any]]:
        """Fetch raw tool definitions.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx responses
            ValueError: If the body is not a JSON list
        """
        body = await self._post("/get_tools", self._payload())
        if not isinstance(body, list):
            raise ValueError(f"Expected a list of tools, got {type(body).__name__}")
        return body

    async def run_tool(self, call: dict[str, Any]) -> dict[str, Any]:
        """Run a single tool call and return the raw result body.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx responses
            ValueError: If the body is not a JSON object
        """
        body = await self._post("/run_tools", self._payload(content=call))
        if not isinstance(body, dict):
            raise ValueError(f"Expected a tool result object, got {type(body).__name__}")
        return body

    async def close(self) -> None:
        await self.client.aclose()
