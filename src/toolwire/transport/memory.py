"""In-process transport bound directly to a ToolServer.

Each connection opens a ServerSession and runs a worker thread that
handles requests one at a time, in arrival order, pushing responses onto
the connection's outbox. Messages are round-tripped through JSON so that
anything not serializable fails here just as it would on the wire.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from typing import TYPE_CHECKING, Any

from toolwire.exceptions import ConnectionClosed, TransportError

if TYPE_CHECKING:
    from toolwire.server.server import ToolServer
    from toolwire.server.session import ServerSession

logger = logging.getLogger(__name__)

_CLOSED = object()


class MemoryConnection:
    """One in-process connection to a ServerSession."""

    def __init__(self, server: ToolServer, session: ServerSession) -> None:
        self._server = server
        self.session = session
        self._inbox: queue.Queue[Any] = queue.Queue()
        self._outbox: queue.Queue[Any] = queue.Queue()
        self._closed = False
        self._lock = threading.Lock()
        self._worker = threading.Thread(
            target=self._serve,
            name=f"toolwire-memory-{session.session_id[:8]}",
            daemon=True,
        )
        self._worker.start()

    @property
    def closed(self) -> bool:
        return self._closed

    def _serve(self) -> None:
        while True:
            message = self._inbox.get()
            if message is _CLOSED:
                return
            response = self.session.handle(message)
            if response is not None and not self._closed:
                self._outbox.put(json.loads(json.dumps(response)))

    def send(self, message: dict[str, Any]) -> None:
        if self._closed:
            raise ConnectionClosed()
        try:
            payload = json.loads(json.dumps(message))
        except (TypeError, ValueError) as exc:
            raise TransportError(f"Message is not JSON-serializable: {exc}") from exc
        self._inbox.put(payload)

    def receive(self) -> dict[str, Any]:
        item = self._outbox.get()
        if item is _CLOSED:
            # Leave the marker for any other waiting receiver
            self._outbox.put(_CLOSED)
            raise ConnectionClosed()
        return item

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._inbox.put(_CLOSED)
        self._outbox.put(_CLOSED)
        self._server.close_session(self.session.session_id)
        logger.debug("Closed memory connection %s", self.session.session_id)

    def __enter__(self) -> MemoryConnection:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class MemoryTransport:
    """Transport whose every connection talks to ``server`` in-process.

    The ``endpoint`` passed to ``connect()`` is ignored.
    """

    def __init__(self, server: ToolServer) -> None:
        self._server = server

    def connect(self, endpoint: str = "memory://") -> MemoryConnection:
        session = self._server.open_session()
        logger.debug("Opened memory connection %s", session.session_id)
        return MemoryConnection(self._server, session)
