"""Orchestrator module for publish-extensions.

Build/publish workflow with:
- Target matrix expansion
- Per-target builds behind validation gates
- Identity-checked publishing
- A driver that isolates failures per extension
"""

from .builder import BuildFailure, ExtensionBuilder
from .context import BuildEnvironment, BuildResult, PublishContext
from .driver import PublishDriver, RunSummary
from .errors import BuildError, ConfigurationError, PublishError
from .publisher import ExtensionPublisher
from .targets import build_extension, expand_targets

__all__ = [
    "BuildEnvironment",
    "BuildError",
    "BuildFailure",
    "BuildResult",
    "ConfigurationError",
    "ExtensionBuilder",
    "ExtensionPublisher",
    "PublishContext",
    "PublishDriver",
    "PublishError",
    "RunSummary",
    "build_extension",
    "expand_targets",
]
