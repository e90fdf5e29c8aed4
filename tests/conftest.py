"""Shared test fixtures for Toolwire.

Provides the demo weather server, in-process client sessions and a
scripted model client. No test makes a real network or API call.
"""

from __future__ import annotations

import logging

import pytest

from toolwire.client.session import ClientSession
from toolwire.llm.protocols import ModelReply, TextSegment, ToolUse
from toolwire.server.weather import build_weather_server
from toolwire.transport.memory import MemoryTransport


# ---------------------------------------------------------------------------
# Scripted model
# ---------------------------------------------------------------------------


class ScriptedModel:
    """A ModelClient that returns canned replies in sequence and records calls.

    Entries may be ModelReply instances or exceptions (raised instead).
    The last entry repeats once the script runs out.
    """

    def __init__(self, replies):
        self._replies = list(replies)
        self.calls: list[dict] = []
        self.closed = False

    def send(self, transcript, tools):
        self.calls.append({"transcript": list(transcript), "tools": list(tools)})
        idx = min(len(self.calls) - 1, len(self._replies) - 1)
        reply = self._replies[idx]
        if isinstance(reply, BaseException):
            raise reply
        return reply

    def close(self):
        self.closed = True


def text_reply(*texts: str) -> ModelReply:
    """Model reply with only text segments."""
    return ModelReply(segments=[TextSegment(text=t) for t in texts], stop_reason="end_turn")


def tool_reply(name: str, arguments: dict, call_id: str = "toolu_1", *, before: str = "") -> ModelReply:
    """Model reply asking for one tool call, optionally preceded by text."""
    segments = []
    if before:
        segments.append(TextSegment(text=before))
    segments.append(ToolUse(id=call_id, name=name, arguments=arguments))
    return ModelReply(segments=segments, stop_reason="tool_use")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _restore_toolwire_logger():
    """Undo configure_logging() calls made by CLI tests."""
    logger = logging.getLogger("toolwire")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def weather_server():
    """The demo weather server with its tool, prompt and resource."""
    return build_weather_server()


@pytest.fixture
def memory_transport(weather_server):
    return MemoryTransport(weather_server)


@pytest.fixture
def client_session(memory_transport):
    """A started, initialized ClientSession over the in-process transport."""
    session = ClientSession.connect(memory_transport, "memory://", request_timeout=5.0)
    yield session
    session.close()
