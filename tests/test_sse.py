"""Tests for the SSE client transport.

The event stream is served by an httpx.MockTransport: GET returns a
streaming body fed from a queue, POST hands the envelope to a real
ServerSession and queues the response onto that stream.
"""

from __future__ import annotations

import json
import queue
import socket
import threading
import time

import httpx
import pytest

from toolwire.client.session import ClientSession
from toolwire.exceptions import ConnectionClosed, TransportError
from toolwire.server.weather import WEATHER_TOOL, build_weather_server
from toolwire.transport.sse import (
    ServerSentEvent,
    SseTransport,
    format_sse,
    iter_sse,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeSseServer:
    """Routes GET /sse and POST /messages to one ServerSession."""

    def __init__(self, session_id: str = "s1"):
        self.server = build_weather_server()
        self.session = self.server.open_session()
        self.session_id = session_id
        self.outbox: queue.Queue = queue.Queue()
        self.posted: list[dict] = []

    def _stream(self):
        yield format_sse("endpoint", f"/messages?session_id={self.session_id}").encode()
        while True:
            item = self.outbox.get()
            if item is None:
                return
            yield item.encode()

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET" and request.url.path == "/sse":
            return httpx.Response(
                200, headers={"content-type": "text/event-stream"}, content=self._stream()
            )
        if request.method == "POST" and request.url.path == "/messages":
            if request.url.params.get("session_id") != self.session_id:
                return httpx.Response(404, json={"error": "unknown_session"})
            payload = json.loads(request.content)
            self.posted.append(payload)
            response = self.session.handle(payload)
            if response is not None:
                self.outbox.put(format_sse("message", json.dumps(response)))
            return httpx.Response(202, json={"accepted": True})
        return httpx.Response(404, json={"error": "not_found"})

    def push(self, event: str, data: str) -> None:
        self.outbox.put(format_sse(event, data))

    def end(self) -> None:
        self.outbox.put(None)

    def transport(self) -> SseTransport:
        return SseTransport(http_transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_server():
    fake = FakeSseServer()
    yield fake
    fake.end()


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------


class TestFraming:
    def test_format_sse(self):
        assert format_sse("message", '{"a":1}') == 'event: message\ndata: {"a":1}\n\n'

    def test_format_sse_splits_multiline_data(self):
        assert format_sse("x", "a\nb") == "event: x\ndata: a\ndata: b\n\n"

    def test_iter_sse(self):
        lines = [
            ": keep-alive",
            "event: endpoint",
            "data: /messages?session_id=1",
            "",
            "data: first",
            "data: second",
            "",
            "",
            "event: message",
            "data:no-space",
            "",
            "data: unterminated",
        ]
        assert list(iter_sse(lines)) == [
            ServerSentEvent(event="endpoint", data="/messages?session_id=1"),
            ServerSentEvent(event="message", data="first\nsecond"),
            ServerSentEvent(event="message", data="no-space"),
        ]

    def test_format_then_parse(self):
        text = format_sse("message", "line one\nline two")
        assert list(iter_sse(text.split("\n"))) == [
            ServerSentEvent(event="message", data="line one\nline two")
        ]


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class TestSseConnection:
    def test_connect_resolves_message_url(self, fake_server):
        conn = fake_server.transport().connect("http://testserver/sse")
        try:
            assert conn.message_url == "http://testserver/messages?session_id=s1"
        finally:
            conn.close()

    def test_send_and_receive(self, fake_server):
        with fake_server.transport().connect("http://testserver/sse") as conn:
            conn.send({"correlation_id": "1", "method": "ping", "params": {}})
            assert conn.receive() == {"correlation_id": "1", "result": {}}
        assert fake_server.posted == [{"correlation_id": "1", "method": "ping", "params": {}}]

    def test_receive_skips_other_events_and_bad_json(self, fake_server, caplog):
        with fake_server.transport().connect("http://testserver/sse") as conn:
            fake_server.push("heartbeat", "{}")
            fake_server.push("message", "not json")
            fake_server.push("message", "[1, 2]")
            fake_server.push("message", '{"correlation_id": "9", "result": {}}')
            assert conn.receive()["correlation_id"] == "9"
        assert "invalid JSON" in caplog.text

    def test_end_of_stream_is_connection_closed(self, fake_server):
        conn = fake_server.transport().connect("http://testserver/sse")
        fake_server.end()
        with pytest.raises(ConnectionClosed, match="server closed"):
            conn.receive()
        assert conn.closed is True

    def test_send_after_close(self, fake_server):
        conn = fake_server.transport().connect("http://testserver/sse")
        conn.close()
        conn.close()
        with pytest.raises(ConnectionClosed):
            conn.send({"correlation_id": "1", "method": "ping", "params": {}})

    def test_rejected_post_is_transport_error(self, fake_server):
        with fake_server.transport().connect("http://testserver/sse") as conn:
            conn.message_url = "http://testserver/messages?session_id=other"
            with pytest.raises(TransportError, match="HTTP 404"):
                conn.send({"correlation_id": "1", "method": "ping", "params": {}})


class TestConnectFailures:
    def test_http_error_status(self):
        transport = SseTransport(
            http_transport=httpx.MockTransport(lambda request: httpx.Response(503, text="down"))
        )
        with pytest.raises(TransportError, match="HTTP 503"):
            transport.connect("http://testserver/sse")

    def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = SseTransport(http_transport=httpx.MockTransport(handler))
        with pytest.raises(TransportError, match="Could not connect"):
            transport.connect("http://testserver/sse")

    def test_stream_without_endpoint_event(self):
        def handler(request):
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=format_sse("message", "{}").encode(),
            )

        transport = SseTransport(http_transport=httpx.MockTransport(handler))
        with pytest.raises(TransportError, match="before the endpoint event"):
            transport.connect("http://testserver/sse")


class TestLiveStream:
    """A real socket server that sends the endpoint event, then goes quiet."""

    @pytest.fixture
    def quiet_server(self, monkeypatch):
        for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
            monkeypatch.delenv(name, raising=False)
        listener = socket.create_server(("127.0.0.1", 0))
        port = listener.getsockname()[1]
        done = threading.Event()

        def serve():
            conn, _ = listener.accept()
            with conn:
                request = b""
                while b"\r\n\r\n" not in request:
                    chunk = conn.recv(1024)
                    if not chunk:
                        return
                    request += chunk
                conn.sendall(
                    b"HTTP/1.1 200 OK\r\n"
                    b"content-type: text/event-stream\r\n"
                    b"connection: close\r\n\r\n"
                    + format_sse("endpoint", "/messages?session_id=live").encode()
                )
                done.wait(10)

        thread = threading.Thread(target=serve, daemon=True)
        thread.start()
        yield f"http://127.0.0.1:{port}/sse"
        done.set()
        thread.join(timeout=5)
        listener.close()

    def test_close_wakes_blocked_receive(self, quiet_server):
        conn = SseTransport(timeout=5.0).connect(quiet_server)
        assert conn.message_url.endswith("/messages?session_id=live")
        outcome = []

        def read():
            try:
                conn.receive()
            except ConnectionClosed as exc:
                outcome.append(exc)

        reader = threading.Thread(target=read)
        reader.start()
        time.sleep(0.1)
        conn.close()
        reader.join(timeout=5)

        assert not reader.is_alive()
        assert len(outcome) == 1
        conn._pump.join(timeout=5)
        assert not conn._pump.is_alive()


# ---------------------------------------------------------------------------
# Client session over SSE
# ---------------------------------------------------------------------------


def test_client_session_over_sse(fake_server):
    session = ClientSession.connect(
        fake_server.transport(), "http://testserver/sse", request_timeout=5.0
    )
    try:
        assert [t.name for t in session.tools] == [WEATHER_TOOL]
        result = session.call_tool(WEATHER_TOOL, {"City": "Paris"})
        assert result.text == "The weather in Paris is 20 degrees Celsius"
    finally:
        session.close()
