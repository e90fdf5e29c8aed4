"""toolwire chat -- interactive chat with tool calls through a tool server."""

from __future__ import annotations

import logging
from dataclasses import replace

import click
from dotenv import find_dotenv, load_dotenv
from rich.console import Console

from toolwire.cli.formatting import (
    format_answer,
    format_error,
    format_server,
    format_step,
    format_warning,
    get_console,
)
from toolwire.client.dispatcher import Dispatcher, DispatcherConfig
from toolwire.client.session import ClientSession
from toolwire.config import ClientSettings
from toolwire.exceptions import ModelConfigError, ToolwireError, TransportError
from toolwire.llm.anthropic import AnthropicClient
from toolwire.llm.protocols import ModelClient
from toolwire.logging import configure_logging
from toolwire.transport.base import Transport
from toolwire.transport.sse import SseTransport

logger = logging.getLogger(__name__)

QUIT_COMMAND = "quit"


def build_model(settings: ClientSettings) -> ModelClient:
    """Create the model client. Raises ModelConfigError without an API key."""
    return AnthropicClient(model=settings.model, max_tokens=settings.max_tokens)


def build_transport() -> Transport:
    return SseTransport()


def open_session(settings: ClientSettings, console: Console) -> ClientSession | None:
    """Connect to the tool server, or return None for basic chat mode."""
    try:
        session = ClientSession.connect(
            build_transport(),
            settings.endpoint,
            request_timeout=settings.request_timeout,
        )
    except TransportError as e:
        logger.debug("Tool server unavailable", exc_info=True)
        format_warning(f"{e}. Continuing in basic chat mode without tools.", console)
        return None
    format_server(session.server_info, len(session.tools), console)
    return session


def chat_loop(dispatcher: Dispatcher, console: Console) -> int:
    """Read queries until ``quit`` or end of input. Returns the exit code."""
    console.print(f"Type your queries or '{QUIT_COMMAND}' to exit.", highlight=False)
    while True:
        try:
            query = click.prompt(
                "\nQuery", default="", show_default=False, prompt_suffix=": "
            ).strip()
        except click.Abort:
            return 0

        if not query:
            continue
        if query.lower() == QUIT_COMMAND:
            return 0

        try:
            answer = dispatcher.process_query(query)
        except TransportError as e:
            format_error(f"Lost connection to the tool server: {e}", console)
            return 1
        except ToolwireError as e:
            format_error(str(e), console)
            continue
        except Exception as e:
            logger.debug("Query failed", exc_info=True)
            format_error(f"{type(e).__name__}: {e}", console)
            continue

        format_answer(answer, console)


@click.command()
@click.option("--endpoint", default=None, help="SSE endpoint (default from TOOLWIRE_ENDPOINT).")
@click.option("--model", default=None, help="Model identifier (default from TOOLWIRE_MODEL).")
@click.option("--show-steps", is_flag=True, help="Print each tool call as it runs.")
@click.pass_context
def chat(ctx: click.Context, endpoint: str | None, model: str | None, show_steps: bool) -> None:
    """Chat with the model; tool calls go to the tool server."""
    console = get_console()
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path)

    settings = ClientSettings.from_env()
    overrides: dict[str, object] = {}
    if endpoint:
        overrides["endpoint"] = endpoint
    if model:
        overrides["model"] = model
    if ctx.obj.get("log_level"):
        overrides["log_level"] = ctx.obj["log_level"]
    settings = replace(settings, **overrides)
    configure_logging(settings.log_level)

    try:
        model_client = build_model(settings)
    except ModelConfigError as e:
        format_error(str(e), console)
        raise SystemExit(1) from None

    session = open_session(settings, console)
    config = DispatcherConfig(
        max_steps=settings.max_steps,
        on_step=(lambda step: format_step(step, console)) if show_steps else None,
    )
    try:
        with Dispatcher(model_client, session, config) as dispatcher:
            code = chat_loop(dispatcher, console)
    finally:
        if session is not None:
            session.close()

    if code:
        raise SystemExit(code)
