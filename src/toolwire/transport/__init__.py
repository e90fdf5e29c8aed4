"""Transports: ordered, bidirectional message channels between client and server."""

from toolwire.transport.base import Connection, Transport
from toolwire.transport.memory import MemoryConnection, MemoryTransport
from toolwire.transport.sse import (
    ServerSentEvent,
    SseConnection,
    SseTransport,
    format_sse,
    iter_sse,
)

__all__ = [
    "Connection",
    "Transport",
    "MemoryConnection",
    "MemoryTransport",
    "SseConnection",
    "SseTransport",
    "ServerSentEvent",
    "format_sse",
    "iter_sse",
]
