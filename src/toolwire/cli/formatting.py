"""Rich formatting helpers for the Toolwire CLI.

Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from toolwire.client.dispatcher import StepResult
    from toolwire.models import ServerInfo, ToolDescriptor


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def format_server(info: ServerInfo | None, tool_count: int, console: Console) -> None:
    """Display the server identity reported by the handshake."""
    if info is None:
        console.print("[dim]Connected (server did not identify itself).[/dim]")
        return
    noun = "tool" if tool_count == 1 else "tools"
    console.print(
        f"Connected to [bold]{escape(info.name)}[/bold] {escape(info.version)} "
        f"([green]{tool_count}[/green] {noun})"
    )


def format_tools(tools: list[ToolDescriptor], console: Console) -> None:
    """Display discovered tools as a table."""
    if not tools:
        console.print("[dim]No tools.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Required", style="yellow")
    table.add_column("Properties", style="dim")

    for tool in tools:
        schema = tool.input_schema
        table.add_row(
            escape(tool.name),
            escape(tool.description),
            escape(", ".join(schema.required)) or "-",
            escape(", ".join(schema.properties)) or "-",
        )

    console.print(table)


def format_step(step: StepResult, console: Console) -> None:
    """Display one tool invocation made while answering a query."""
    status = "[green]ok[/green]" if step.success else "[red]error[/red]"
    console.print(
        f"[dim]  {step.step}. {escape(step.tool_use.name)}"
        f"({escape(str(step.tool_use.arguments))})[/dim] {status}",
        highlight=False,
    )


def format_answer(answer: str, console: Console) -> None:
    """Display a query's final answer verbatim."""
    console.print()
    console.print(answer, markup=False, highlight=False)


def format_warning(message: str, console: Console) -> None:
    """Display a warning message."""
    console.print(f"[yellow]Warning:[/yellow] {escape(message)}", highlight=False)


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {escape(message)}", highlight=False)
