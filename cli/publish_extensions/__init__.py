"""publish-extensions CLI.

Command-line interface for building and publishing extensions.
"""

__version__ = "0.1.0"

from cli.publish_extensions.cli import app, main

__all__ = ["__version__", "app", "main"]
