"""Catalogue CLI commands for publish-extensions.

Inspect the extensions the workflow knows about.
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

console = Console()

catalogue_app = typer.Typer(
    name="catalogue",
    help="Inspect the extension catalogue.",
)


def get_catalogue(path: Optional[Path]):
    """Load the catalogue from an explicit path or the configured one."""
    from extensions.catalogue import CatalogueError, load_catalogue
    from pipeline.config import get_config

    try:
        return load_catalogue(path or get_config().catalogue_path)
    except CatalogueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@catalogue_app.command("list")
def list_extensions(
    catalogue: Optional[Path] = typer.Option(
        None,
        "--catalogue",
        "-c",
        help="Path to extensions.json",
    ),
    custom_only: bool = typer.Option(
        False,
        "--custom",
        help="Only show extensions with custom build commands",
    ),
) -> None:
    """List all catalogue extensions.

    Examples:
        publish-extensions catalogue list
        publish-extensions catalogue list --custom
    """
    entries = get_catalogue(catalogue)
    descriptors = list(entries.values())

    if custom_only:
        descriptors = [d for d in descriptors if d.custom]

    if not descriptors:
        console.print("[yellow]No extensions in the catalogue[/yellow]")
        return

    table = Table(title="Extension Catalogue")
    table.add_column("Id", style="cyan")
    table.add_column("Build", style="green")
    table.add_column("Targets")
    table.add_column("Version")
    table.add_column("Repository")

    for descriptor in sorted(descriptors, key=lambda d: d.id.lower()):
        if descriptor.downloads:
            build = "release"
        elif descriptor.custom:
            build = "custom"
        else:
            build = "standard"
        targets = ", ".join(descriptor.target) if descriptor.target else "universal"
        table.add_row(
            descriptor.id,
            build,
            targets,
            descriptor.version or "-",
            descriptor.repository or "-",
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(descriptors)} extensions[/dim]")


@catalogue_app.command("show")
def show(
    extension_id: str = typer.Argument(..., help="Extension id (namespace.name)"),
    catalogue: Optional[Path] = typer.Option(
        None,
        "--catalogue",
        "-c",
        help="Path to extensions.json",
    ),
) -> None:
    """Show details of a catalogue extension.

    Example:
        publish-extensions catalogue show redhat.java
    """
    entries = get_catalogue(catalogue)
    descriptor = entries.get(extension_id)

    if not descriptor:
        console.print(f"[red]Extension '{extension_id}' is not in the catalogue[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold cyan]{descriptor.id}[/bold cyan]")
    console.print(f"[dim]namespace {descriptor.namespace}[/dim]\n")

    console.print("[bold]Source[/bold]")
    console.print(f"  Repository: {descriptor.repository or '-'}")
    if descriptor.location:
        console.print(f"  Location: {descriptor.location}")
    console.print(f"  Ref: {descriptor.ref or 'HEAD'}")
    if descriptor.version:
        console.print(f"  Version: {descriptor.version}")

    if descriptor.custom:
        console.print("\n[bold]Custom Commands[/bold]")
        for command in descriptor.custom:
            console.print(f"  $ {command}")
    elif descriptor.prepublish:
        console.print(f"\n[bold]Prepublish[/bold]: {descriptor.prepublish}")

    if descriptor.extension_file:
        console.print(f"\n[bold]Package File[/bold]: {descriptor.extension_file}")

    if descriptor.python_version:
        console.print(f"[bold]Python[/bold]: {descriptor.python_version}")

    if descriptor.target:
        console.print("\n[bold]Targets[/bold]")
        for target, config in descriptor.target.items():
            env = ", ".join(f"{k}={v}" for k, v in config.env.items())
            console.print(f"  - {target}" + (f" ({env})" if env else ""))

    if descriptor.downloads:
        console.print("\n[bold]Release Assets[/bold]")
        for target, url in descriptor.downloads.items():
            console.print(f"  - {target}: {url}")
