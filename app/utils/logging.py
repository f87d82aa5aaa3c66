"""Logging configuration."""

import logging
import os
import sys
from typing import Any

from pydantic import BaseModel

REDACTED = "[REDACTED]"
SENSITIVE_FIELDS = frozenset({"password", "token", "apikey", "api_key", "secret"})


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    @classmethod
    def from_env(cls) -> "LogConfig":
        return cls(level=os.getenv("LOG_LEVEL", "INFO"))


def setup_logging(config: LogConfig | None = None) -> None:
    """Set up logging configuration for the application."""
    if config is None:
        config = LogConfig()

    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, config.level.upper()),
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,  # Override any existing configuration
    )

    # Set specific log levels for third-party libraries
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Get a logger for a specific module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    log_level = level if level else os.getenv("LOG_LEVEL", "INFO")
    logger.setLevel(log_level.upper())

    return logger


def truncate_for_log(text: str | None, limit: int = 100) -> str:
    """Shorten user or model text before it goes into a log line."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


def redact(data: Any) -> Any:
    """Return a copy of ``data`` with credential-like fields masked."""
    if isinstance(data, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_FIELDS else redact(value) for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact(item) for item in data]
    return data
