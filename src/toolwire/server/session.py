"""Per-connection server state and request handling.

A ServerSession is created when a client connects. It fixes the negotiated
capabilities and takes snapshots of the server's registries, so tools
registered after the session starts stay invisible to it. ``handle()``
turns one request envelope into one response envelope; failures inside a
request are answered with an error envelope and never end the session.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING, Any

from toolwire import protocol
from toolwire.exceptions import (
    ProtocolError,
    UnknownPromptError,
    UnknownResourceError,
    UnknownToolError,
)
from toolwire.models import ToolDescriptor

if TYPE_CHECKING:
    from toolwire.models import Capabilities, ServerInfo
    from toolwire.server.registry import PromptRegistry, ResourceRegistry, ToolRegistry

logger = logging.getLogger(__name__)


class ServerSession:
    """Negotiated state for one client connection.

    Attributes:
        session_id: Opaque identifier, unique per server.
        capabilities: Capability flags fixed at connect time.
        server_info: Identity reported in the handshake.
        client_info: Identity the client sent with ``initialize``, if any.
    """

    def __init__(
        self,
        *,
        server_info: ServerInfo,
        capabilities: Capabilities,
        tools: ToolRegistry,
        prompts: PromptRegistry,
        resources: ResourceRegistry,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.server_info = server_info
        self.capabilities = capabilities
        self.client_info: dict[str, Any] | None = None
        self._tools = tools.snapshot()
        self._prompts = prompts.snapshot()
        self._resources = resources.snapshot()
        self._closed = False
        self._handlers = {
            protocol.INITIALIZE: self._initialize,
            protocol.PING: self._ping,
            protocol.TOOLS_LIST: self._list_tools,
            protocol.TOOLS_CALL: self._call_tool,
            protocol.PROMPTS_LIST: self._list_prompts,
            protocol.PROMPTS_GET: self._get_prompt,
            protocol.RESOURCES_LIST: self._list_resources,
            protocol.RESOURCES_READ: self._read_resource,
        }

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def tools(self) -> list[ToolDescriptor]:
        """The tool list this session was started with."""
        return self._tools.list()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle(self, message: Any) -> dict[str, Any] | None:
        """Handle one incoming message and return the response to send.

        Returns None when the message is too malformed to answer (no usable
        correlation id); the message is logged and dropped.
        """
        try:
            request = protocol.parse_request(message)
        except ProtocolError as exc:
            correlation_id = message.get("correlation_id") if isinstance(message, dict) else None
            if isinstance(correlation_id, str) and correlation_id:
                return protocol.failure(
                    correlation_id, protocol.INVALID_REQUEST, str(exc)
                ).to_wire()
            logger.warning("Dropping malformed message on session %s: %s", self.session_id, exc)
            return None

        return self.dispatch(request).to_wire()

    def dispatch(self, request: protocol.Request) -> protocol.Response:
        handler = self._handlers.get(request.method)
        capability = protocol.METHOD_CAPABILITY.get(request.method)
        if handler is None or (
            capability is not None and capability not in self.capabilities.enabled()
        ):
            return protocol.failure(
                request.correlation_id,
                protocol.METHOD_NOT_FOUND,
                f"Method not supported: {request.method}",
            )

        start = time.monotonic()
        try:
            result = handler(request)
        except UnknownToolError as exc:
            response = protocol.failure(request.correlation_id, protocol.UNKNOWN_TOOL, str(exc))
        except UnknownPromptError as exc:
            response = protocol.failure(request.correlation_id, protocol.UNKNOWN_PROMPT, str(exc))
        except UnknownResourceError as exc:
            response = protocol.failure(
                request.correlation_id, protocol.UNKNOWN_RESOURCE, str(exc)
            )
        except ProtocolError as exc:
            response = protocol.failure(request.correlation_id, protocol.INVALID_PARAMS, str(exc))
        except Exception as exc:
            logger.exception(
                "Handler for %s failed on session %s", request.method, self.session_id
            )
            response = protocol.failure(
                request.correlation_id,
                protocol.INTERNAL_ERROR,
                f"{type(exc).__name__}: {exc}",
            )
        else:
            response = protocol.success(request.correlation_id, result)

        logger.info(
            "session=%s method=%s id=%s ok=%s duration_ms=%.1f",
            self.session_id,
            request.method,
            request.correlation_id,
            response.ok,
            (time.monotonic() - start) * 1000,
        )
        return response

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    def _initialize(self, request: protocol.Request) -> dict[str, Any]:
        client_info = request.params.get("client_info")
        if isinstance(client_info, dict):
            self.client_info = client_info
        tools = self.tools() if self.capabilities.tools else []
        return {
            "server_info": self.server_info.model_dump(),
            "capabilities": self.capabilities.model_dump(),
            "tools": [tool.to_wire() for tool in tools],
        }

    def _ping(self, request: protocol.Request) -> dict[str, Any]:
        return {}

    def _list_tools(self, request: protocol.Request) -> dict[str, Any]:
        return {"tools": [tool.to_wire() for tool in self.tools()]}

    def _call_tool(self, request: protocol.Request) -> dict[str, Any]:
        invocation = protocol.tool_invocation_from_request(request)
        logger.info(
            "Calling tool %s with arguments %s", invocation.tool_name, invocation.arguments
        )
        result = self._tools.invoke(
            invocation.tool_name,
            invocation.arguments,
            correlation_id=invocation.correlation_id,
        )
        return result.to_wire()

    def _list_prompts(self, request: protocol.Request) -> dict[str, Any]:
        return {"prompts": [p.model_dump(mode="json") for p in self._prompts.list()]}

    def _get_prompt(self, request: protocol.Request) -> dict[str, Any]:
        name = request.params.get("name")
        if not isinstance(name, str) or not name:
            raise ProtocolError("prompts/get requires a 'name' string")
        arguments = request.params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise ProtocolError("prompts/get 'arguments' must be an object")
        return self._prompts.render(name, arguments).model_dump(mode="json")

    def _list_resources(self, request: protocol.Request) -> dict[str, Any]:
        return {"resources": [r.model_dump(mode="json") for r in self._resources.list()]}

    def _read_resource(self, request: protocol.Request) -> dict[str, Any]:
        uri = request.params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise ProtocolError("resources/read requires a 'uri' string")
        contents = self._resources.read(uri)
        return {"contents": [c.model_dump(mode="json") for c in contents]}
