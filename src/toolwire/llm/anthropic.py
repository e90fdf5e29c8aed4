"""Built-in Anthropic Messages API client over httpx with tenacity retry.

Reads configuration from constructor arguments or environment variables.
The module-level conversion functions are the only place transcript turns
and tool descriptors are mapped to and from the Anthropic wire format.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx
import tenacity

from toolwire.exceptions import (
    ModelAuthError,
    ModelConfigError,
    ModelError,
    ModelRateLimitError,
    ModelResponseError,
)
from toolwire.llm.protocols import ModelReply, ReplySegment, TextSegment, ToolUse
from toolwire.models import ConversationTurn, ToolDescriptor

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_MODEL = "claude-3-7-sonnet-20250219"
API_VERSION = "2023-06-01"

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504, 529}
_AUTH_ERROR_STATUS_CODES = {401, 403}


def _is_retryable(exc: BaseException) -> bool:
    """Check if an exception is retryable.

    Retryable: 429, 5xx overload codes, connection errors.
    Not retryable: 401, 403, 400, other client errors.
    """
    if isinstance(exc, ModelAuthError):
        return False
    if isinstance(exc, ModelRateLimitError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))


# ---------------------------------------------------------------------------
# Wire conversions
# ---------------------------------------------------------------------------


def to_anthropic_tool(descriptor: ToolDescriptor) -> dict[str, Any]:
    """Map a tool descriptor to an Anthropic tool definition."""
    schema = descriptor.input_schema
    return {
        "name": descriptor.name,
        "description": descriptor.description,
        "input_schema": {
            "type": schema.type,
            "properties": dict(schema.properties),
            "required": list(schema.required),
        },
    }


def _assistant_block(block: dict[str, Any]) -> dict[str, Any]:
    if block.get("type") == "tool_use":
        return {
            "type": "tool_use",
            "id": block["id"],
            "name": block["name"],
            "input": dict(block.get("arguments") or {}),
        }
    return {"type": "text", "text": block.get("text", "")}


def transcript_to_anthropic(transcript: list[ConversationTurn]) -> list[dict[str, Any]]:
    """Map transcript turns to Anthropic ``messages``.

    ``tool_result`` turns become ``tool_result`` blocks in a user message;
    consecutive ones are merged into the same message.

    Raises:
        ModelResponseError: If a tool_result turn lacks a ``tool_use_id``.
    """
    messages: list[dict[str, Any]] = []
    for turn in transcript:
        if turn.role == "user":
            messages.append({"role": "user", "content": turn.content})
        elif turn.role == "assistant":
            content = turn.content
            if isinstance(content, list):
                content = [_assistant_block(block) for block in content]
            messages.append({"role": "assistant", "content": content})
        else:
            payload = turn.content if isinstance(turn.content, dict) else {}
            if not payload.get("tool_use_id"):
                raise ModelResponseError("tool_result turn is missing tool_use_id")
            block = {
                "type": "tool_result",
                "tool_use_id": payload["tool_use_id"],
                "content": payload.get("content", ""),
                "is_error": bool(payload.get("is_error", False)),
            }
            last = messages[-1] if messages else None
            if (
                last is not None
                and last["role"] == "user"
                and isinstance(last["content"], list)
                and all(b.get("type") == "tool_result" for b in last["content"])
            ):
                last["content"].append(block)
            else:
                messages.append({"role": "user", "content": [block]})
    return messages


def reply_from_anthropic(data: dict[str, Any]) -> ModelReply:
    """Map an Anthropic Messages response to a ModelReply.

    Raises:
        ModelResponseError: If the response has no ``content`` list.
    """
    content = data.get("content") if isinstance(data, dict) else None
    if not isinstance(content, list):
        raise ModelResponseError(
            f"Unexpected response format: missing 'content' list. Response: {data}"
        )
    segments: list[ReplySegment] = []
    for block in content:
        kind = block.get("type") if isinstance(block, dict) else None
        if kind == "text":
            segments.append(TextSegment(text=block.get("text") or ""))
        elif kind == "tool_use":
            arguments = block.get("input")
            if not isinstance(arguments, dict):
                logger.warning("Malformed input in tool_use for %s", block.get("name"))
                arguments = {}
            segments.append(
                ToolUse(id=block.get("id", ""), name=block.get("name", ""), arguments=arguments)
            )
        else:
            logger.debug("Ignoring content block of type %r", kind)
    return ModelReply(
        segments=segments,
        stop_reason=data.get("stop_reason"),
        usage=data.get("usage"),
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AnthropicClient:
    """Sync httpx client for the Anthropic Messages API.

    Implements the ModelClient protocol. Supports retry with exponential
    backoff for transient errors (429, 5xx). Fails immediately on
    authentication errors (401, 403).

    Usage::

        with AnthropicClient(api_key="sk-ant-...") as client:
            reply = client.send([ConversationTurn(role="user", content="Hello")], [])
            print(reply.texts)
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 1024,
        timeout: float = 120.0,
        max_retries: int = 3,
        http_transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: API key. Falls back to ANTHROPIC_API_KEY env var.
            base_url: API base URL. Falls back to ANTHROPIC_BASE_URL env var,
                then to https://api.anthropic.com.
            model: Model identifier sent with every request.
            max_tokens: Maximum tokens to generate per reply.
            timeout: Request timeout in seconds.
            max_retries: Maximum number of attempts for retryable errors.
            http_transport: Optional httpx transport (for tests).

        Raises:
            ModelConfigError: If no API key is provided or found in environment.
        """
        self._api_key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        if not self._api_key:
            raise ModelConfigError(
                "No API key provided. Pass api_key= or set ANTHROPIC_API_KEY "
                "environment variable."
            )
        self._base_url = (
            base_url or os.environ.get("ANTHROPIC_BASE_URL") or DEFAULT_BASE_URL
        ).rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self._max_retries = max_retries
        self._client = httpx.Client(
            timeout=timeout,
            headers={
                "Content-Type": "application/json",
                "x-api-key": self._api_key,
                "anthropic-version": API_VERSION,
            },
            transport=http_transport,
        )
        logger.info("Initialized Anthropic client (model=%s)", model)

    def send(
        self,
        transcript: list[ConversationTurn],
        tools: list[ToolDescriptor],
    ) -> ModelReply:
        """Send the transcript with retry and return the parsed reply.

        Raises:
            ModelAuthError: On 401/403 (no retry).
            ModelRateLimitError: On 429 after all retries exhausted.
            ModelResponseError: On unexpected response format.
            ModelError: On any other HTTP failure.
        """
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": transcript_to_anthropic(transcript),
        }
        if tools:
            payload["tools"] = [to_anthropic_tool(tool) for tool in tools]

        retryer = tenacity.Retrying(
            retry=tenacity.retry_if_exception(_is_retryable),
            wait=(
                tenacity.wait_exponential(multiplier=1, min=1, max=30)
                + tenacity.wait_random(0, 2)
            ),
            stop=tenacity.stop_after_attempt(self._max_retries),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            data = retryer(self._post, payload)
        except httpx.HTTPError as exc:
            raise ModelError(f"Model request failed: {exc}") from exc
        return reply_from_anthropic(data)

    def _post(self, payload: dict[str, Any]) -> dict:
        """Execute a single request (no retry)."""
        response = self._client.post(f"{self._base_url}/v1/messages", json=payload)

        if response.status_code in _AUTH_ERROR_STATUS_CODES:
            raise ModelAuthError(
                f"Authentication failed: HTTP {response.status_code} - {response.text}"
            )

        if response.status_code == 429:
            retry_after_raw = response.headers.get("Retry-After")
            retry_after: float | None = None
            if retry_after_raw is not None:
                try:
                    retry_after = float(retry_after_raw)
                except (ValueError, TypeError):
                    pass
            raise ModelRateLimitError(
                f"Rate limited: HTTP 429 - {response.text}",
                retry_after=retry_after,
            )

        response.raise_for_status()
        try:
            return response.json()
        except ValueError as exc:
            raise ModelResponseError(f"Response is not JSON: {response.text}") from exc

    def close(self) -> None:
        """Close the underlying httpx client."""
        self._client.close()

    def __enter__(self) -> AnthropicClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
