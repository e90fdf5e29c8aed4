"""ToolServer: the tools, prompts and resources a server offers, plus its sessions."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from toolwire.models import (
    Capabilities,
    InputSchema,
    PromptArgument,
    PromptDescriptor,
    ResourceDescriptor,
    ServerInfo,
    ToolDescriptor,
)
from toolwire.server.registry import (
    PromptHandler,
    PromptRegistry,
    ResourceHandler,
    ResourceRegistry,
    ToolHandler,
    ToolRegistry,
)
from toolwire.server.session import ServerSession

logger = logging.getLogger(__name__)


class ToolServer:
    """Owns the registries and hands out one ServerSession per connection.

    Usage::

        server = ToolServer(ServerInfo(name="demo", version="0.1.0"))

        @server.tool("echo", description="Echo text back",
                     input_schema={"properties": {"text": {"type": "string"}}})
        def echo(arguments):
            return arguments.get("text", "")

        session = server.open_session()
    """

    def __init__(
        self,
        info: ServerInfo,
        capabilities: Capabilities | None = None,
    ) -> None:
        self.info = info
        self.capabilities = capabilities or Capabilities(prompts=True, resources=True, tools=True)
        self.tools = ToolRegistry()
        self.prompts = PromptRegistry()
        self.resources = ResourceRegistry()
        self._sessions: dict[str, ServerSession] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_tool(
        self,
        name: str,
        handler: ToolHandler,
        *,
        description: str = "",
        input_schema: InputSchema | dict[str, Any] | None = None,
    ) -> ToolDescriptor:
        """Register a tool. Raises DuplicateToolError for a taken name."""
        if not isinstance(input_schema, InputSchema):
            input_schema = InputSchema.model_validate(input_schema or {})
        descriptor = ToolDescriptor(name=name, description=description, input_schema=input_schema)
        self.tools.register(descriptor, handler)
        logger.info("Added tool %s", name)
        return descriptor

    def tool(
        self,
        name: str,
        *,
        description: str = "",
        input_schema: InputSchema | dict[str, Any] | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of ``add_tool``."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            self.add_tool(name, handler, description=description, input_schema=input_schema)
            return handler

        return decorator

    def add_prompt(
        self,
        name: str,
        handler: PromptHandler,
        *,
        description: str = "",
        arguments: list[PromptArgument] | None = None,
    ) -> PromptDescriptor:
        descriptor = PromptDescriptor(
            name=name, description=description, arguments=arguments or []
        )
        self.prompts.register(descriptor, handler)
        logger.info("Added prompt %s", name)
        return descriptor

    def add_resource(
        self,
        uri: str,
        handler: ResourceHandler,
        *,
        name: str,
        description: str = "",
        mime_type: str = "text/plain",
    ) -> ResourceDescriptor:
        descriptor = ResourceDescriptor(
            uri=uri, name=name, description=description, mime_type=mime_type
        )
        self.resources.register(descriptor, handler)
        logger.info("Added resource %s", uri)
        return descriptor

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def open_session(self) -> ServerSession:
        """Start a session over a snapshot of the current registries."""
        session = ServerSession(
            server_info=self.info,
            capabilities=self.capabilities,
            tools=self.tools,
            prompts=self.prompts,
            resources=self.resources,
        )
        with self._lock:
            self._sessions[session.session_id] = session
        logger.info(
            "Opened session %s with %d tool(s)", session.session_id, len(session.tools())
        )
        return session

    def get_session(self, session_id: str) -> ServerSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def close_session(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()
            logger.info("Closed session %s", session_id)

    @property
    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)
