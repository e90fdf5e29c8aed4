"""Server-Sent Events transport over httpx.

The client opens ``GET <endpoint>`` as an event stream. The server's first
event is ``endpoint``, whose data is the URL (usually relative) that
requests must be POSTed to. Every later ``message`` event carries one JSON
envelope.

Only the parts of the SSE format this protocol needs are handled: ``event:``
and ``data:`` fields, ``:`` comments and blank-line framing.
"""

from __future__ import annotations

import json
import logging
import queue
import socket
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

import httpx

from toolwire.exceptions import ConnectionClosed, ProtocolError, TransportError

logger = logging.getLogger(__name__)

ENDPOINT_EVENT = "endpoint"
MESSAGE_EVENT = "message"


@dataclass(frozen=True)
class ServerSentEvent:
    """One dispatched SSE event."""

    event: str = MESSAGE_EVENT
    data: str = ""


def format_sse(event: str, data: str) -> str:
    """Render one event in SSE wire format (multi-line data is split)."""
    lines = [f"event: {event}"]
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


def iter_sse(lines: Iterable[str]) -> Iterator[ServerSentEvent]:
    """Parse text lines into events.

    An event is dispatched at each blank line if it collected any data.
    A trailing event without a terminating blank line is discarded.
    """
    event = MESSAGE_EVENT
    data: list[str] = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            if data:
                yield ServerSentEvent(event=event, data="\n".join(data))
            event = MESSAGE_EVENT
            data = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value or MESSAGE_EVENT
        elif field == "data":
            data.append(value)


class SseConnection:
    """A live SSE stream plus the URL requests are POSTed to.

    A pump thread reads the stream into a queue so that ``close()`` from
    any thread wakes a blocked ``receive()``.
    """

    def __init__(
        self,
        client: httpx.Client,
        response: httpx.Response,
        message_url: str,
        events: Iterator[ServerSentEvent],
        *,
        post_timeout: float | None = 30.0,
    ) -> None:
        self._client = client
        self._response = response
        self._events = events
        self._post_timeout = post_timeout
        self._closed = False
        self._lock = threading.Lock()
        self._inbox: queue.Queue[ServerSentEvent | ConnectionClosed] = queue.Queue()
        self.message_url = message_url
        self._pump = threading.Thread(target=self._read_stream, name="toolwire-sse", daemon=True)
        self._pump.start()

    @property
    def closed(self) -> bool:
        return self._closed

    def _read_stream(self) -> None:
        try:
            for event in self._events:
                self._inbox.put(event)
        except Exception as exc:
            if self._closed:
                logger.debug("Event stream stopped after close: %s", exc)
                self._inbox.put(ConnectionClosed())
            else:
                logger.debug("Event stream failed", exc_info=True)
                self._inbox.put(ConnectionClosed(f"event stream failed: {exc}"))
            return
        self._inbox.put(ConnectionClosed("server closed the event stream"))

    def send(self, message: dict[str, Any]) -> None:
        if self._closed:
            raise ConnectionClosed()
        try:
            response = self._client.post(
                self.message_url, json=message, timeout=self._post_timeout
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {self.message_url} failed: {exc}") from exc
        if response.status_code >= 400:
            raise TransportError(
                f"POST {self.message_url} failed: HTTP {response.status_code} - "
                f"{response.text}"
            )

    def receive(self) -> dict[str, Any]:
        while True:
            if self._closed:
                raise ConnectionClosed()
            item = self._inbox.get()
            if isinstance(item, ConnectionClosed):
                # Leave the marker for any other waiting receiver
                self._inbox.put(item)
                self.close()
                raise ConnectionClosed(item.reason)

            if item.event != MESSAGE_EVENT:
                logger.debug("Ignoring SSE event %r", item.event)
                continue
            try:
                message = json.loads(item.data)
            except json.JSONDecodeError as exc:
                logger.warning("Dropping message: %s", ProtocolError(f"invalid JSON: {exc}"))
                continue
            if not isinstance(message, dict):
                logger.warning(
                    "Dropping message: %s",
                    ProtocolError(f"expected an object, got {type(message).__name__}"),
                )
                continue
            return message

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._inbox.put(ConnectionClosed())
        self._shutdown_socket()
        try:
            self._response.close()
        finally:
            self._client.close()
        logger.debug("Closed SSE connection to %s", self.message_url)

    def _shutdown_socket(self) -> None:
        """Interrupt a read blocked on the stream's socket, if there is one."""
        stream = self._response.extensions.get("network_stream")
        sock = stream.get_extra_info("socket") if stream is not None else None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            logger.debug("Socket shutdown failed: %s", exc)

    def __enter__(self) -> SseConnection:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class SseTransport:
    """Connects to a server's SSE endpoint.

    Usage::

        with SseTransport().connect("http://localhost:8080/sse") as conn:
            conn.send({"correlation_id": "1", "method": "ping", "params": {}})
            print(conn.receive())

    Args:
        timeout: Seconds allowed for connecting and for each POST. The
            stream itself has no read timeout.
        headers: Extra headers sent with every request.
        http_transport: Optional httpx transport (e.g. ``httpx.MockTransport``).
    """

    def __init__(
        self,
        *,
        timeout: float | None = 30.0,
        headers: dict[str, str] | None = None,
        http_transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._http_transport = http_transport

    def _make_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self._timeout, read=None),
            headers=self._headers,
            transport=self._http_transport,
        )

    def connect(self, endpoint: str) -> SseConnection:
        client = self._make_client()
        logger.info("Connecting to %s", endpoint)
        try:
            request = client.build_request(
                "GET",
                endpoint,
                headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
            )
            response = client.send(request, stream=True)
        except httpx.HTTPError as exc:
            client.close()
            raise TransportError(f"Could not connect to {endpoint}: {exc}") from exc

        if response.status_code != 200:
            response.read()
            body = response.text
            response.close()
            client.close()
            raise TransportError(
                f"Could not connect to {endpoint}: HTTP {response.status_code} - {body}"
            )

        events = iter_sse(response.iter_lines())
        try:
            message_url = self._await_endpoint(response, events)
        except (TransportError, httpx.HTTPError, httpx.StreamError) as exc:
            response.close()
            client.close()
            if isinstance(exc, TransportError):
                raise
            raise TransportError(f"Event stream from {endpoint} failed: {exc}") from exc

        logger.info("Connected to %s, posting to %s", endpoint, message_url)
        return SseConnection(
            client, response, message_url, events, post_timeout=self._timeout
        )

    @staticmethod
    def _await_endpoint(response: httpx.Response, events: Iterator[ServerSentEvent]) -> str:
        for event in events:
            if event.event == ENDPOINT_EVENT and event.data:
                return str(response.url.join(event.data.strip()))
            logger.debug("Ignoring SSE event %r before endpoint", event.event)
        raise TransportError("Event stream ended before the endpoint event")
