"""Client side of the invocation protocol.

A ClientSession owns one Connection. A reader thread receives every
message, matches it to the outstanding request with the same correlation
id and completes that request's future. Callers block on the future until
the response arrives, the request times out, or the connection ends.

Responses that match no outstanding request, and malformed envelopes, are
logged as ProtocolError and dropped.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TYPE_CHECKING, Any

from toolwire import protocol
from toolwire._version import __version__
from toolwire.exceptions import (
    ConnectionClosed,
    ProtocolError,
    RemoteError,
    RequestTimeoutError,
    ToolError,
    TransportError,
    UnknownToolError,
)
from toolwire.models import (
    Capabilities,
    PromptDescriptor,
    PromptResult,
    ResourceContents,
    ResourceDescriptor,
    ServerInfo,
    ToolDescriptor,
    ToolInvocationRequest,
    ToolInvocationResult,
)

if TYPE_CHECKING:
    from toolwire.transport.base import Connection, Transport

logger = logging.getLogger(__name__)

CLIENT_INFO = ServerInfo(name="toolwire-chat", version=__version__)


class ClientSession:
    """Request/response session over one Connection.

    Usage::

        with ClientSession.connect(SseTransport(), "http://localhost:8080/sse") as session:
            for tool in session.tools:
                print(tool.name)
            result = session.call_tool("weather-tool", {"City": "Paris"})
            print(result.text)

    Args:
        connection: An open Connection; the session takes ownership of it.
        request_timeout: Seconds to wait for each response, or None to wait
            until the connection ends.
        client_info: Identity sent with ``initialize``.
    """

    def __init__(
        self,
        connection: Connection,
        *,
        request_timeout: float | None = 30.0,
        client_info: ServerInfo | None = None,
    ) -> None:
        self._connection = connection
        self._request_timeout = request_timeout
        self._client_info = client_info or CLIENT_INFO
        self._ids = protocol.CorrelationIds()
        self._pending: dict[str, Future[protocol.Response]] = {}
        self._lock = threading.Lock()
        self._closed = False
        self._close_reason: ConnectionClosed | None = None
        self._reader: threading.Thread | None = None

        self.server_info: ServerInfo | None = None
        self.capabilities = Capabilities()
        self.tools: list[ToolDescriptor] = []

    @classmethod
    def connect(
        cls,
        transport: Transport,
        endpoint: str,
        **kwargs: Any,
    ) -> ClientSession:
        """Connect, start the reader and run the discovery handshake.

        Raises:
            TransportError: If connecting or the handshake fails. The
                connection is released before the error propagates.
        """
        connection = transport.connect(endpoint)
        session = cls(connection, **kwargs)
        try:
            session.start()
            session.initialize()
        except Exception:
            session.close()
            raise
        return session

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def close_reason(self) -> str | None:
        """Why the session ended, or None while it is open."""
        return self._close_reason.reason if self._close_reason else None

    def start(self) -> None:
        """Start the reader thread. Called once."""
        if self._reader is not None:
            return
        self._reader = threading.Thread(
            target=self._read_loop, name="toolwire-reader", daemon=True
        )
        self._reader.start()

    def close(self) -> None:
        """Close the connection and fail every pending request with ConnectionClosed."""
        self._shutdown(ConnectionClosed("session closed"))
        self._connection.close()

    def __enter__(self) -> ClientSession:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _shutdown(self, reason: ConnectionClosed) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._close_reason = reason
            pending = list(self._pending.values())
            self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(ConnectionClosed(reason.reason))
        if pending:
            logger.warning("Failed %d pending request(s): %s", len(pending), reason.reason)

    def _read_loop(self) -> None:
        while True:
            try:
                message = self._connection.receive()
            except ConnectionClosed as exc:
                self._shutdown(exc)
                return
            except TransportError as exc:
                self._shutdown(ConnectionClosed(f"transport failed: {exc}"))
                return
            self._deliver(message)

    def _deliver(self, message: dict[str, Any]) -> None:
        try:
            response = protocol.parse_response(message)
        except ProtocolError as exc:
            logger.warning("Dropping message: %s", exc)
            return
        with self._lock:
            future = self._pending.pop(response.correlation_id, None)
        if future is None:
            logger.warning(
                "Dropping message: %s",
                ProtocolError(f"no outstanding request with id {response.correlation_id}"),
            )
            return
        future.set_result(response)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        correlation_id: str | None = None,
    ) -> protocol.Response:
        """Send one request and block for its response.

        Raises:
            ConnectionClosed: If the connection ends before the response.
            RequestTimeoutError: If no response arrives in time. The
                request is forgotten; a late response is dropped.
        """
        correlation_id = correlation_id or self._ids.next()
        future: Future[protocol.Response] = Future()
        with self._lock:
            if self._closed:
                raise ConnectionClosed(
                    self._close_reason.reason if self._close_reason else "session closed"
                )
            if correlation_id in self._pending:
                raise ProtocolError(f"Correlation id already in use: {correlation_id}")
            self._pending[correlation_id] = future

        envelope = protocol.Request(
            correlation_id=correlation_id, method=method, params=params or {}
        )
        logger.debug("-> %s id=%s", method, correlation_id)
        try:
            self._connection.send(envelope.to_wire())
        except TransportError as exc:
            with self._lock:
                self._pending.pop(correlation_id, None)
            if not isinstance(exc, ConnectionClosed):
                self._shutdown(ConnectionClosed(f"transport failed: {exc}"))
            raise

        try:
            response = future.result(timeout=self._request_timeout)
        except FutureTimeoutError:
            with self._lock:
                self._pending.pop(correlation_id, None)
            raise RequestTimeoutError(method, correlation_id, self._request_timeout) from None
        logger.debug("<- %s id=%s ok=%s", method, correlation_id, response.ok)
        return response

    def _call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        response = self.request(method, params)
        if response.error is not None:
            raise RemoteError(response.error.code, response.error.message)
        return response.result or {}

    def initialize(self) -> list[ToolDescriptor]:
        """Run the handshake and cache the server's tool list.

        Raises:
            TransportError: If the handshake fails for any reason.
        """
        try:
            result = self._call(
                protocol.INITIALIZE, {"client_info": self._client_info.model_dump()}
            )
            self.server_info = ServerInfo.model_validate(result.get("server_info") or {})
            self.capabilities = Capabilities.model_validate(result.get("capabilities") or {})
            self.tools = [ToolDescriptor.from_wire(t) for t in result.get("tools") or []]
        except (ProtocolError, ToolError, ValueError) as exc:
            raise TransportError(f"Handshake failed: {exc}") from exc
        logger.info(
            "Connected to server %s with tools: %s",
            self.server_info.name,
            ", ".join(tool.name for tool in self.tools),
        )
        return self.tools

    def ping(self) -> None:
        self._call(protocol.PING)

    def list_tools(self) -> list[ToolDescriptor]:
        """Fetch the session's tool list again and refresh the cache."""
        result = self._call(protocol.TOOLS_LIST)
        self.tools = [ToolDescriptor.from_wire(t) for t in result.get("tools") or []]
        return self.tools

    def invoke(self, invocation: ToolInvocationRequest) -> ToolInvocationResult:
        """Send a prepared tool invocation and wait for its result.

        A result with ``is_error=True`` is returned, not raised.

        Raises:
            UnknownToolError: If the server does not know the tool.
            ToolError: If the server rejected the call or no result
                arrived in time.
            ConnectionClosed: If the connection ends first.
        """
        logger.info("Calling tool %s with arguments %s", invocation.tool_name, invocation.arguments)
        envelope = protocol.tool_call_request(invocation)
        try:
            response = self.request(
                envelope.method, envelope.params, correlation_id=invocation.correlation_id
            )
        except RequestTimeoutError as exc:
            raise RequestTimeoutError(
                exc.method, exc.correlation_id, exc.timeout, tool_name=invocation.tool_name
            ) from None
        if response.error is not None:
            if response.error.code == protocol.UNKNOWN_TOOL:
                raise UnknownToolError(invocation.tool_name)
            raise ToolError(invocation.tool_name, f"{response.error.code}: {response.error.message}")
        try:
            result = ToolInvocationResult.from_wire(
                response.result, correlation_id=response.correlation_id
            )
        except ProtocolError as exc:
            raise ToolError(invocation.tool_name, str(exc)) from exc
        logger.info("Tool %s completed (is_error=%s)", invocation.tool_name, result.is_error)
        return result

    def new_invocation(
        self, tool_name: str, arguments: dict[str, Any] | None = None
    ) -> ToolInvocationRequest:
        """Build a tool invocation with a fresh correlation id."""
        return ToolInvocationRequest(
            correlation_id=self._ids.next(),
            tool_name=tool_name,
            arguments=arguments or {},
        )

    def call_tool(self, tool_name: str, arguments: dict[str, Any] | None = None) -> ToolInvocationResult:
        """Invoke ``tool_name`` with a fresh correlation id."""
        return self.invoke(self.new_invocation(tool_name, arguments))

    def list_prompts(self) -> list[PromptDescriptor]:
        result = self._call(protocol.PROMPTS_LIST)
        return [PromptDescriptor.model_validate(p) for p in result.get("prompts") or []]

    def get_prompt(self, name: str, arguments: dict[str, str] | None = None) -> PromptResult:
        result = self._call(protocol.PROMPTS_GET, {"name": name, "arguments": arguments or {}})
        return PromptResult.model_validate(result)

    def list_resources(self) -> list[ResourceDescriptor]:
        result = self._call(protocol.RESOURCES_LIST)
        return [ResourceDescriptor.model_validate(r) for r in result.get("resources") or []]

    def read_resource(self, uri: str) -> list[ResourceContents]:
        result = self._call(protocol.RESOURCES_READ, {"uri": uri})
        return [ResourceContents.model_validate(c) for c in result.get("contents") or []]
