"""Tests for the in-process transport."""

from __future__ import annotations

import threading

import pytest

from toolwire.exceptions import ConnectionClosed, TransportError
from toolwire.server.weather import WEATHER_TOOL


def test_requests_answered_in_order(weather_server, memory_transport):
    with memory_transport.connect() as conn:
        for i in range(1, 6):
            conn.send({"correlation_id": str(i), "method": "ping", "params": {}})
        ids = [conn.receive()["correlation_id"] for _ in range(5)]
    assert ids == ["1", "2", "3", "4", "5"]


def test_tool_call_round_trip(memory_transport):
    with memory_transport.connect() as conn:
        conn.send(
            {
                "correlation_id": "1",
                "method": "tools/call",
                "params": {"tool_name": WEATHER_TOOL, "arguments": {"City": "Oslo"}},
            }
        )
        response = conn.receive()
    assert response["result"]["content"][0]["text"] == "The weather in Oslo is 20 degrees Celsius"


def test_connect_opens_and_close_releases_session(weather_server, memory_transport):
    conn = memory_transport.connect()
    assert weather_server.session_count == 1
    conn.close()
    conn.close()
    assert conn.closed is True
    assert weather_server.session_count == 0


def test_send_after_close_raises(memory_transport):
    conn = memory_transport.connect()
    conn.close()
    with pytest.raises(ConnectionClosed):
        conn.send({"correlation_id": "1", "method": "ping", "params": {}})


def test_close_unblocks_receive(memory_transport):
    conn = memory_transport.connect()
    errors = []

    def reader():
        try:
            conn.receive()
        except ConnectionClosed as exc:
            errors.append(exc)

    thread = threading.Thread(target=reader)
    thread.start()
    conn.close()
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert len(errors) == 1


def test_unserializable_message_is_rejected(memory_transport):
    with memory_transport.connect() as conn:
        with pytest.raises(TransportError, match="not JSON-serializable"):
            conn.send({"correlation_id": "1", "method": "ping", "params": {"x": object()}})
