"""toolwire serve -- run the weather tool server over HTTP/SSE."""

from __future__ import annotations

from dataclasses import replace

import click
import uvicorn

from toolwire.cli.formatting import format_error, get_console
from toolwire.config import ServerSettings
from toolwire.logging import configure_logging
from toolwire.server.app import create_app
from toolwire.server.weather import build_weather_server


@click.command()
@click.option("--host", default=None, envvar="TOOLWIRE_HOST", help="Interface to bind (default 127.0.0.1).")
@click.option(
    "--port",
    default=None,
    envvar="TOOLWIRE_PORT",
    type=click.IntRange(1, 65535),
    help="Port to listen on (default 8080).",
)
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Serve the weather tool, prompt and resource at /sse and /messages."""
    console = get_console()
    try:
        settings = ServerSettings.from_env()
        overrides: dict[str, object] = {}
        if host:
            overrides["host"] = host
        if port is not None:
            overrides["port"] = port
        if ctx.obj.get("log_level"):
            overrides["log_level"] = ctx.obj["log_level"]
        settings = replace(settings, **overrides)
        configure_logging(settings.log_level)
    except ValueError as e:
        format_error(str(e), console)
        raise SystemExit(1) from None

    server = build_weather_server()
    console.print(
        f"Serving [bold]{server.info.name}[/bold] on "
        f"http://{settings.host}:{settings.port}/sse",
        highlight=False,
    )
    uvicorn.run(
        create_app(server),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
