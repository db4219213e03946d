"""Rich console output utilities for the publish-extensions CLI."""

import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

console = Console()
error_console = Console(stderr=True)


def configure_logging(level: str = "INFO") -> None:
    """Route log records through rich on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=error_console, show_path=False, markup=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]→[/blue] {message}")


def print_summary(summary: Any) -> None:
    """Print a run summary as a table."""
    table = Table(title="Run Summary", show_header=True, header_style="bold")
    table.add_column("Extension", style="cyan")
    table.add_column("Packages", justify="right")
    table.add_column("Status")

    failed = {failure.extension_id for failure in summary.failures}
    published = {entry.id.lower() for entry in summary.published}

    already_published = set(summary.already_published)

    for extension_id, files in summary.built.items():
        if extension_id in already_published:
            continue
        if extension_id in failed:
            status = "[red]failed[/red]"
        elif extension_id.lower() in published:
            status = "[green]published[/green]"
        elif files:
            status = "[green]built[/green]"
        else:
            status = "[dim]skipped[/dim]"
        table.add_row(extension_id, str(len(files)), status)

    for extension_id in summary.already_published:
        table.add_row(extension_id, "-", "[dim]already published[/dim]")

    console.print(table)

    if summary.failures:
        lines = []
        for failure in summary.failures:
            where = f"{failure.extension_id}@{failure.target}" if failure.target else failure.extension_id
            lines.append(f"[bold]{where}[/bold]: {failure.error.splitlines()[0] if failure.error else ''}")
        error_console.print(Panel("\n".join(lines), title="Failures", border_style="red"))
