"""Errors raised by the build/publish workflow."""

from __future__ import annotations

ALREADY_PUBLISHED_MARKER = "is already published"


class PublishError(Exception):
    """Base class for workflow errors."""

    pass


class ConfigurationError(PublishError):
    """Raised when the run is misconfigured (fatal, never retried)."""

    pass


class BuildError(PublishError):
    """Raised when one (extension, target) build cannot produce a valid artifact."""

    pass


class VersionNotResolvedError(BuildError):
    """Raised when no version can be read from the artifact."""

    pass


class OutdatedCatalogueError(BuildError):
    """Raised when the registry already has a newer version than the build."""

    pass


class LicenseMissingError(BuildError):
    """Raised when the extension declares no license."""

    pass


class DependencyError(BuildError):
    """Raised when extension dependencies cannot be satisfied on the registry."""

    def __init__(self, message: str, dependencies: list[str]) -> None:
        super().__init__(message)
        self.dependencies = dependencies


class ArtifactNotFoundError(BuildError):
    """Raised when a custom build produced no artifact for the requested target."""

    pass


class DependencyInstallError(BuildError):
    """Raised when installing dependencies fails even after the recovery retry."""

    pass


def is_already_published(error: BaseException) -> bool:
    """Check whether an error only says the version is already on the registry."""
    return ALREADY_PUBLISHED_MARKER in str(error)
