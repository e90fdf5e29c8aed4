"""FastAPI application serving a ToolServer over SSE.

Routes:
    GET  /sse                          open a session; event stream
    POST /messages?session_id=<id>     submit one request envelope

The first event on a stream is ``endpoint`` with the POST URL for that
session. Responses to POSTed requests are pushed back on the stream as
``message`` events. Any unknown path gets a structured JSON 404.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from toolwire.server.server import ToolServer
from toolwire.server.session import ServerSession
from toolwire.transport.sse import ENDPOINT_EVENT, MESSAGE_EVENT, format_sse

logger = logging.getLogger(__name__)

SSE_PATH = "/sse"
MESSAGES_PATH = "/messages"


def not_found_body(path: str) -> dict[str, str]:
    return {
        "error": "not_found",
        "path": path,
        "message": f"404: Page Not Found - The requested path '{path}' does not exist",
    }


async def session_event_stream(
    server: ToolServer,
    session: ServerSession,
    outbox: asyncio.Queue[dict[str, Any]],
    streams: dict[str, asyncio.Queue[dict[str, Any]]],
) -> AsyncIterator[str]:
    """Yield the endpoint event, then every queued response, until the client leaves."""
    try:
        yield format_sse(ENDPOINT_EVENT, f"{MESSAGES_PATH}?session_id={session.session_id}")
        while True:
            message = await outbox.get()
            yield format_sse(MESSAGE_EVENT, json.dumps(message, separators=(",", ":")))
    finally:
        streams.pop(session.session_id, None)
        server.close_session(session.session_id)


def create_app(server: ToolServer) -> FastAPI:
    """Build the HTTP application for ``server``."""
    app = FastAPI(title=server.info.name, version=server.info.version)
    streams: dict[str, asyncio.Queue[dict[str, Any]]] = {}
    app.state.tool_server = server
    app.state.streams = streams

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            logger.info("404 Not Found - Request path: %s", request.url.path)
            return JSONResponse(not_found_body(request.url.path), status_code=404)
        return JSONResponse(
            {"error": "http_error", "message": str(exc.detail)},
            status_code=exc.status_code,
        )

    @app.get(SSE_PATH)
    async def open_stream() -> StreamingResponse:
        """Open a session and stream its responses."""
        session = server.open_session()
        outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        streams[session.session_id] = outbox
        return StreamingResponse(
            session_event_stream(server, session, outbox, streams),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.post(MESSAGES_PATH)
    async def post_message(request: Request, session_id: str) -> JSONResponse:
        """Handle one request envelope and queue its response on the stream."""
        session = server.get_session(session_id)
        outbox = streams.get(session_id)
        if session is None or outbox is None:
            return JSONResponse(
                {"error": "unknown_session", "message": f"No open session: {session_id}"},
                status_code=404,
            )
        try:
            payload = await request.json()
        except ValueError as exc:
            return JSONResponse(
                {"error": "invalid_json", "message": f"Request body is not JSON: {exc}"},
                status_code=400,
            )

        response = await run_in_threadpool(session.handle, payload)
        if response is not None:
            await outbox.put(response)
        return JSONResponse({"accepted": True}, status_code=202)

    return app
