"""Settings for the server and chat programs.

Each settings class reads its defaults from ``TOOLWIRE_*`` environment
variables in ``from_env()``; explicit values (e.g. CLI options) are applied
on top with ``dataclasses.replace()``. Nothing here reads the environment at
import time.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from toolwire.llm.anthropic import DEFAULT_MODEL

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_ENDPOINT = f"http://localhost:{DEFAULT_PORT}/sse"


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip()
    return normalized or default


def _env_int(name: str, default: int) -> int:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, value)
        return default


def _env_timeout(name: str, default: float | None) -> float | None:
    """Parse a timeout in seconds; ``0`` or ``none`` disables it."""
    value = _env_str(name)
    if value is None:
        return default
    if value.lower() in {"0", "none", "off"}:
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", name, value)
        return default


def validate_port(port: int) -> int:
    """Return ``port`` if it is in [1, 65535].

    Raises:
        ValueError: Otherwise.
    """
    if not 1 <= port <= 65535:
        raise ValueError(f"Port must be between 1 and 65535, got {port}")
    return port


@dataclass(frozen=True)
class ServerSettings:
    """Where the tool server listens."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        validate_port(self.port)

    @classmethod
    def from_env(cls) -> ServerSettings:
        return cls(
            host=_env_str("TOOLWIRE_HOST", DEFAULT_HOST) or DEFAULT_HOST,
            port=_env_int("TOOLWIRE_PORT", DEFAULT_PORT),
            log_level=(_env_str("TOOLWIRE_LOG_LEVEL", "INFO") or "INFO").upper(),
        )


@dataclass(frozen=True)
class ClientSettings:
    """How the chat client reaches the tool server and the model.

    Attributes:
        endpoint: SSE endpoint of the tool server.
        model: Model identifier for the Anthropic API.
        max_tokens: Maximum tokens per model reply.
        request_timeout: Seconds to wait for each tool-server response;
            None waits until the connection ends.
        max_steps: Maximum model calls per query.
        log_level: Level for the ``toolwire`` logger.
    """

    endpoint: str = DEFAULT_ENDPOINT
    model: str = DEFAULT_MODEL
    max_tokens: int = 1024
    request_timeout: float | None = 30.0
    max_steps: int = 10
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> ClientSettings:
        return cls(
            endpoint=_env_str("TOOLWIRE_ENDPOINT", DEFAULT_ENDPOINT) or DEFAULT_ENDPOINT,
            model=_env_str("TOOLWIRE_MODEL", DEFAULT_MODEL) or DEFAULT_MODEL,
            max_tokens=_env_int("TOOLWIRE_MAX_TOKENS", 1024),
            request_timeout=_env_timeout("TOOLWIRE_REQUEST_TIMEOUT", 30.0),
            max_steps=_env_int("TOOLWIRE_MAX_STEPS", 10),
            log_level=(_env_str("TOOLWIRE_LOG_LEVEL", "WARNING") or "WARNING").upper(),
        )
