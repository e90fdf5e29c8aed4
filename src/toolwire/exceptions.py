"""Toolwire exception hierarchy.

All Toolwire-specific exceptions inherit from ToolwireError.
"""

from __future__ import annotations


class ToolwireError(Exception):
    """Base exception for all Toolwire errors."""


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class TransportError(ToolwireError):
    """Raised when the transport cannot connect or fails mid-session.

    Named TransportError (not ConnectionError) to avoid shadowing the
    builtin ConnectionError. Always fatal to the current session.
    """


class ConnectionClosed(TransportError):
    """Raised when the connection ends while a caller is waiting on it."""

    def __init__(self, reason: str = "connection closed") -> None:
        self.reason = reason
        super().__init__(reason)


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------


class RegistryError(ToolwireError):
    """Base exception for registry misuse (local to one request)."""


class DuplicateToolError(RegistryError):
    """Raised when a tool name is registered twice."""

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Tool already registered: {tool_name}")


class UnknownToolError(RegistryError):
    """Raised when invoking a tool that is not registered."""

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class DuplicatePromptError(RegistryError):
    """Raised when a prompt name is registered twice."""

    def __init__(self, prompt_name: str) -> None:
        self.prompt_name = prompt_name
        super().__init__(f"Prompt already registered: {prompt_name}")


class UnknownPromptError(RegistryError):
    """Raised when requesting a prompt that is not registered."""

    def __init__(self, prompt_name: str) -> None:
        self.prompt_name = prompt_name
        super().__init__(f"Unknown prompt: {prompt_name}")


class DuplicateResourceError(RegistryError):
    """Raised when a resource URI is registered twice."""

    def __init__(self, uri: str) -> None:
        self.uri = uri
        super().__init__(f"Resource already registered: {uri}")


class UnknownResourceError(RegistryError):
    """Raised when reading a resource that is not registered."""

    def __init__(self, uri: str) -> None:
        self.uri = uri
        super().__init__(f"Unknown resource: {uri}")


# ---------------------------------------------------------------------------
# Tool execution
# ---------------------------------------------------------------------------


class ToolError(ToolwireError):
    """A tool invocation failed without breaking the connection.

    Surfaced into the transcript so the model can react to it.
    """

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(message)


class RequestTimeoutError(ToolError):
    """No response arrived for a request within the configured timeout.

    ``tool_name`` is the tool being called for ``tools/call`` requests and
    the method name otherwise.
    """

    def __init__(
        self,
        method: str,
        correlation_id: str,
        timeout: float,
        *,
        tool_name: str | None = None,
    ) -> None:
        self.method = method
        self.correlation_id = correlation_id
        self.timeout = timeout
        super().__init__(
            tool_name or method,
            f"No response to {method} (id={correlation_id}) within {timeout}s",
        )


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(ToolwireError):
    """Raised for a malformed or mismatched protocol envelope."""


class RemoteError(ProtocolError):
    """The server answered a request with an error envelope."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.remote_message = message
        super().__init__(f"{code}: {message}")


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class DispatcherBusyError(ToolwireError):
    """Raised when a query is submitted while another is still running."""

    def __init__(self) -> None:
        super().__init__("Dispatcher is already processing a query")


# ---------------------------------------------------------------------------
# Language model
# ---------------------------------------------------------------------------


class ModelError(ToolwireError):
    """Upstream language-model failure. Aborts the current query only."""


class ModelConfigError(ModelError):
    """Missing or invalid model configuration (e.g., no API key)."""


class ModelRateLimitError(ModelError):
    """Rate limited by the API (429).

    Attributes:
        retry_after: Seconds to wait before retrying (from Retry-After header),
            or None if not provided.
    """

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        if retry_after is not None:
            message = f"{message} (retry after {retry_after}s)"
        super().__init__(message)


class ModelAuthError(ModelError):
    """Authentication failed (401/403)."""


class ModelResponseError(ModelError):
    """Unexpected response format from the model API."""
