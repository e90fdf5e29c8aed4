"""Toolwire CLI -- run the weather tool server or chat against it.

This module is NEVER imported from toolwire/__init__.py.
It is only loaded via the ``toolwire`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

import click

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@click.group()
@click.option(
    "--log-level",
    default=None,
    envvar="TOOLWIRE_LOG_LEVEL",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Logging level (default: INFO for serve, WARNING for chat).",
)
@click.version_option(package_name="toolwire", prog_name="toolwire")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """Toolwire: tool-calling chat over a streaming client/server protocol."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.upper() if log_level else None


# Register subcommands after cli group is defined
from toolwire.cli.commands.serve import serve  # noqa: E402
from toolwire.cli.commands.chat import chat  # noqa: E402
from toolwire.cli.commands.tools import tools  # noqa: E402

cli.add_command(serve)
cli.add_command(chat)
cli.add_command(tools)
