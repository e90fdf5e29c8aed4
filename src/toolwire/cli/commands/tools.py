"""toolwire tools -- list the tools a server offers."""

from __future__ import annotations

import click

from toolwire.cli.formatting import format_error, format_server, format_tools, get_console
from toolwire.client.session import ClientSession
from toolwire.config import ClientSettings
from toolwire.exceptions import TransportError
from toolwire.logging import configure_logging
from toolwire.transport.sse import SseTransport


@click.command()
@click.option("--endpoint", default=None, help="SSE endpoint (default from TOOLWIRE_ENDPOINT).")
@click.pass_context
def tools(ctx: click.Context, endpoint: str | None) -> None:
    """Connect to a tool server, print its tools and disconnect."""
    console = get_console()
    settings = ClientSettings.from_env()
    configure_logging(ctx.obj.get("log_level") or settings.log_level)
    endpoint = endpoint or settings.endpoint

    try:
        session = ClientSession.connect(
            SseTransport(), endpoint, request_timeout=settings.request_timeout
        )
    except TransportError as e:
        format_error(str(e), console)
        raise SystemExit(1) from None

    with session:
        format_server(session.server_info, len(session.tools), console)
        format_tools(session.tools, console)
