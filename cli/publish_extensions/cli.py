"""publish-extensions CLI.

Main command-line interface for building and publishing extensions.
"""

import asyncio
from pathlib import Path
from typing import Optional

import typer

from cli.commands.catalogue import catalogue_app
from cli.publish_extensions.output import (
    configure_logging,
    console,
    print_error,
    print_info,
    print_success,
    print_summary,
    print_warning,
)

app = typer.Typer(
    name="publish-extensions",
    help="Build editor extensions from source and publish them to Open VSX.",
    no_args_is_help=True,
)

app.add_typer(catalogue_app, name="catalogue")


def _load(config_path: Optional[Path], catalogue_path: Optional[Path]):
    """Load configuration and catalogue, exiting with a message on error."""
    from extensions.catalogue import CatalogueError, load_catalogue
    from pipeline.config import load_config

    config = load_config(config_path)
    configure_logging(config.log_level)
    try:
        catalogue = load_catalogue(catalogue_path or config.catalogue_path)
    except CatalogueError as e:
        print_error(str(e))
        raise typer.Exit(1)
    return config, catalogue


def _run_driver(
    config, catalogue, extension_ids: Optional[list[str]], context_path: Optional[Path] = None
) -> None:
    """Run the driver and exit with its status."""
    from orchestrator.context import load_publish_contexts
    from orchestrator.driver import PublishDriver
    from orchestrator.errors import ConfigurationError

    driver = PublishDriver(config, catalogue)
    try:
        seeds = load_publish_contexts(context_path) if context_path else None
        summary = asyncio.run(driver.run(extension_ids or None, seeds))
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_summary(summary)
    if summary.exit_code != 0:
        print_error(f"{len(summary.failures)} build(s) failed")
        raise typer.Exit(summary.exit_code)
    print_success("All extensions processed")


@app.command()
def run(
    extension_ids: Optional[list[str]] = typer.Argument(
        None, help="Extensions to process (default: the whole catalogue)"
    ),
    catalogue: Optional[Path] = typer.Option(
        None,
        "--catalogue",
        "-c",
        help="Path to extensions.json",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Path to config.toml",
    ),
    skip_publish: Optional[bool] = typer.Option(
        None,
        "--skip-publish/--publish",
        help="Only build and validate (default: SKIP_PUBLISH)",
    ),
    force: Optional[bool] = typer.Option(
        None,
        "--force/--no-force",
        help="Rebuild versions already on the registry (default: FORCE)",
    ),
    context_path: Optional[Path] = typer.Option(
        None,
        "--context",
        help="JSON file of publish contexts by extension id (upstream versions from CI)",
    ),
) -> None:
    """Build and publish extensions from the catalogue.

    Examples:
        publish-extensions run
        publish-extensions run redhat.java --skip-publish
        publish-extensions run --context publish-context.json
    """
    config, entries = _load(config_path, catalogue)
    if skip_publish is not None:
        config.publish.skip_publish = skip_publish
    if force is not None:
        config.publish.force = force

    _run_driver(config, entries, extension_ids, context_path)


@app.command()
def local(
    extension_ids: Optional[list[str]] = typer.Argument(
        None, help="Extensions to build (default: the whole catalogue)"
    ),
    catalogue: Optional[Path] = typer.Option(
        None,
        "--catalogue",
        "-c",
        help="Path to extensions.json",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Path to config.toml",
    ),
) -> None:
    """Build extensions locally without publishing.

    Same as `run`, but skip-publish and force default to on unless the
    SKIP_PUBLISH / FORCE variables say otherwise.

    Example:
        publish-extensions local redhat.java
    """
    import os

    config, entries = _load(config_path, catalogue)
    if os.getenv("SKIP_PUBLISH") is None:
        config.publish.skip_publish = True
    if os.getenv("FORCE") is None:
        config.publish.force = True
    if config.publish.skip_publish:
        print_warning(f"Packages are built into {config.build.artifacts_dir} and not published")

    _run_driver(config, entries, extension_ids)


@app.command()
def download(
    extension_id: Optional[str] = typer.Argument(
        None, help="Extension whose release assets to fetch (default: from EXTENSION)"
    ),
    version: Optional[str] = typer.Option(
        None,
        "--version",
        "-v",
        help="Version substituted into the asset URLs (default: upstream version from PUBLISH_CONTEXT)",
    ),
    catalogue: Optional[Path] = typer.Option(
        None,
        "--catalogue",
        "-c",
        help="Path to extensions.json",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Path to config.toml",
    ),
) -> None:
    """Download the pre-built release assets of an extension.

    In CI the extension and its publish context come from the EXTENSION
    and PUBLISH_CONTEXT variables (JSON) set by the previous step.

    Example:
        publish-extensions download rust-lang.rust-analyzer --version 0.3.2000
    """
    import json
    import os

    from extensions.resolver import DownloadError, SourceResolver
    from orchestrator.context import parse_publish_context
    from orchestrator.errors import ConfigurationError
    from tools.process import ProcessRunner

    config, entries = _load(config_path, catalogue)

    if extension_id is None:
        raw_extension = os.getenv("EXTENSION")
        if not raw_extension:
            print_error("Give an extension id or set the EXTENSION variable")
            raise typer.Exit(1)
        try:
            extension_id = json.loads(raw_extension)["id"]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            print_error(f"Invalid EXTENSION variable: {e}")
            raise typer.Exit(1)

    raw_context = os.getenv("PUBLISH_CONTEXT")
    if version is None and raw_context:
        try:
            version = parse_publish_context(raw_context).upstream_version
        except ConfigurationError as e:
            print_error(str(e))
            raise typer.Exit(1)

    descriptor = entries.get(extension_id)
    if descriptor is None:
        print_error(f"Extension '{extension_id}' is not in the catalogue")
        raise typer.Exit(1)
    if not descriptor.downloads:
        print_info(f"{extension_id} declares no release assets")
        return

    resolver = SourceResolver(
        ProcessRunner(shell=config.build.shell),
        repository_dir=config.build.repository_dir,
        download_dir=config.build.download_dir,
    )
    try:
        files = asyncio.run(resolver.download(descriptor, version))
    except DownloadError as e:
        print_error(str(e))
        raise typer.Exit(1)

    for target, path in files.items():
        console.print(f"  [cyan]{target}[/cyan]: {path}")
    print_success(f"Downloaded {len(files)} asset(s) to {config.build.download_dir}")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
