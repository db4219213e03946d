"""CLI command modules for publish-extensions."""

from cli.commands.catalogue import catalogue_app

__all__ = ["catalogue_app"]
