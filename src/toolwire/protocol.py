"""Request/response envelopes and correlation for the invocation protocol.

Every message on a connection is a JSON object. Requests carry
``{correlation_id, method, params}``; responses carry ``{correlation_id,
result}`` or ``{correlation_id, error: {code, message}}``. Tool invocation
rides inside this envelope as the ``tools/call`` method with params
``{tool_name, arguments}`` and result ``{content, is_error}``.
"""

from __future__ import annotations

import itertools
import threading
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from toolwire.exceptions import ProtocolError
from toolwire.models import ToolInvocationRequest

# Methods
INITIALIZE = "initialize"
PING = "ping"
TOOLS_LIST = "tools/list"
TOOLS_CALL = "tools/call"
PROMPTS_LIST = "prompts/list"
PROMPTS_GET = "prompts/get"
RESOURCES_LIST = "resources/list"
RESOURCES_READ = "resources/read"

# Capability that gates each method (None = always available)
METHOD_CAPABILITY: dict[str, str | None] = {
    INITIALIZE: None,
    PING: None,
    TOOLS_LIST: "tools",
    TOOLS_CALL: "tools",
    PROMPTS_LIST: "prompts",
    PROMPTS_GET: "prompts",
    RESOURCES_LIST: "resources",
    RESOURCES_READ: "resources",
}

# Error codes
PARSE_ERROR = "parse_error"
INVALID_REQUEST = "invalid_request"
METHOD_NOT_FOUND = "method_not_found"
INVALID_PARAMS = "invalid_params"
UNKNOWN_TOOL = "unknown_tool"
UNKNOWN_PROMPT = "unknown_prompt"
UNKNOWN_RESOURCE = "unknown_resource"
INTERNAL_ERROR = "internal_error"


class ErrorBody(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class Request(BaseModel):
    """A request envelope."""

    model_config = ConfigDict(frozen=True)

    correlation_id: str = Field(min_length=1)
    method: str = Field(min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class Response(BaseModel):
    """A response envelope. Exactly one of ``result`` / ``error`` is set."""

    model_config = ConfigDict(frozen=True)

    correlation_id: str = Field(min_length=1)
    result: dict[str, Any] | None = None
    error: ErrorBody | None = None

    @model_validator(mode="after")
    def _result_xor_error(self) -> Response:
        if (self.result is None) == (self.error is None):
            raise ValueError("response requires exactly one of result or error")
        return self

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


def success(correlation_id: str, result: dict[str, Any]) -> Response:
    return Response(correlation_id=correlation_id, result=result)


def failure(correlation_id: str, code: str, message: str) -> Response:
    return Response(
        correlation_id=correlation_id,
        error=ErrorBody(code=code, message=message),
    )


def parse_request(message: Any) -> Request:
    """Validate an incoming request envelope.

    Raises:
        ProtocolError: If ``message`` is not a well-formed request.
    """
    if not isinstance(message, dict):
        raise ProtocolError(f"Envelope must be an object, got {type(message).__name__}")
    try:
        return Request.model_validate(message)
    except ValidationError as exc:
        raise ProtocolError(f"Invalid request envelope: {exc}") from exc


def parse_response(message: Any) -> Response:
    """Validate an incoming response envelope.

    Raises:
        ProtocolError: If ``message`` is not a well-formed response.
    """
    if not isinstance(message, dict):
        raise ProtocolError(f"Envelope must be an object, got {type(message).__name__}")
    try:
        return Response.model_validate(message)
    except ValidationError as exc:
        raise ProtocolError(f"Invalid response envelope: {exc}") from exc


def tool_call_request(invocation: ToolInvocationRequest) -> Request:
    """Wrap a tool invocation in a ``tools/call`` request envelope."""
    return Request(
        correlation_id=invocation.correlation_id,
        method=TOOLS_CALL,
        params={
            "tool_name": invocation.tool_name,
            "arguments": dict(invocation.arguments),
        },
    )


def tool_invocation_from_request(request: Request) -> ToolInvocationRequest:
    """Unwrap the tool invocation carried by a ``tools/call`` request.

    Raises:
        ProtocolError: If the params do not describe a tool invocation.
    """
    try:
        return ToolInvocationRequest(
            correlation_id=request.correlation_id,
            tool_name=request.params.get("tool_name", ""),
            arguments=request.params.get("arguments") or {},
        )
    except ValidationError as exc:
        raise ProtocolError(f"Invalid tool invocation: {exc}") from exc


class CorrelationIds:
    """Monotonic correlation id source, unique for one connection's lifetime.

    Thread-safe.
    """

    def __init__(self, prefix: str = "") -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def next(self) -> str:
        with self._lock:
            value = next(self._counter)
        return f"{self._prefix}{value}"
