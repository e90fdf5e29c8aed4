"""Transport and Connection protocols.

A Connection carries discrete JSON messages between one client and one
server, strictly in order. There is no reconnection: once ``receive()``
raises ConnectionClosed the connection is finished, and the owner has to
connect again and redo discovery.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """One open client connection.

    Usable as a context manager; leaving the block closes it.
    """

    def send(self, message: dict[str, Any]) -> None:
        """Send one message to the server.

        Raises:
            ConnectionClosed: If the connection is already closed.
            TransportError: If the message could not be delivered.
        """
        ...

    def receive(self) -> dict[str, Any]:
        """Block until the next message from the server arrives.

        Raises:
            ConnectionClosed: When the connection ends (including when
                ``close()`` is called from another thread).
        """
        ...

    def close(self) -> None:
        """Release the connection. Idempotent."""
        ...

    @property
    def closed(self) -> bool:
        ...

    def __enter__(self) -> Connection:
        ...

    def __exit__(self, *args: object) -> None:
        ...


@runtime_checkable
class Transport(Protocol):
    """Factory for connections to a server endpoint."""

    def connect(self, endpoint: str) -> Connection:
        """Open a connection to ``endpoint``.

        Raises:
            TransportError: If the connection cannot be established.
        """
        ...
