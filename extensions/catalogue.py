"""Extension catalogue for publish-extensions.

Defines the structure and validation for catalogue entries (extensions.json):
a JSON mapping from extension id (``namespace.name``) to the fields that
describe how to obtain and build that extension.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


class CatalogueError(Exception):
    """Raised when catalogue parsing or validation fails."""

    pass


@dataclass(frozen=True)
class TargetConfig:
    """Build configuration for one target platform.

    Attributes:
        env: Environment variables set for this target's build.
        structured: True when the catalogue gave an object rather than ``true``.
    """

    env: dict[str, str] = field(default_factory=dict)
    structured: bool = False

    @classmethod
    def from_value(cls, target: str, value: Any) -> TargetConfig:
        if value is True:
            return cls()
        if isinstance(value, dict):
            env = value.get("env") or {}
            if not isinstance(env, dict):
                raise CatalogueError(f"Target {target}: env must be a mapping")
            return cls(env={str(k): str(v) for k, v in env.items()}, structured=True)
        raise CatalogueError(f"Target {target}: expected true or an object, got {value!r}")


@dataclass(frozen=True)
class ExtensionDescriptor:
    """Catalogue entry describing how to build one extension.

    Attributes:
        id: Extension identifier (``namespace.name``).
        repository: Git URL of the extension sources.
        location: Sub directory of the package inside the repository.
        ref: Git ref to check out before building.
        version: Requested version, if pinned.
        custom: Shell commands that replace the standard build.
        prepublish: Shell command run after dependency installation.
        target: Target platforms to build, None for a universal build.
        python_version: Python version some builds need (installed with pyenv).
        extension_file: Name of the pre-built artifact the build produces.
        downloads: Release asset URL per target, used instead of building.
    """

    id: str
    repository: str | None = None
    location: str | None = None
    ref: str | None = None
    version: str | None = None
    custom: tuple[str, ...] | None = None
    prepublish: str | None = None
    target: dict[str, TargetConfig] | None = None
    python_version: str | None = None
    extension_file: str | None = None
    downloads: dict[str, str] | None = None

    def __post_init__(self) -> None:
        """Validate the descriptor after initialization."""
        parts = self.id.split(".")
        if len(parts) != 2 or not all(parts):
            raise CatalogueError(
                f"Invalid extension id: {self.id!r}. Use the form namespace.name."
            )

    @property
    def namespace(self) -> str:
        return self.id.split(".")[0]

    @property
    def name(self) -> str:
        return self.id.split(".")[1]

    @classmethod
    def from_dict(cls, extension_id: str, data: dict[str, Any]) -> ExtensionDescriptor:
        """Create a descriptor from a catalogue entry.

        Args:
            extension_id: Key of the entry in the catalogue.
            data: Entry fields.

        Returns:
            Parsed ExtensionDescriptor.

        Raises:
            CatalogueError: If fields are missing or invalid.
        """
        if not isinstance(data, dict):
            raise CatalogueError(f"{extension_id}: entry must be an object")

        custom = data.get("custom")
        if custom is not None:
            if not isinstance(custom, list) or not all(isinstance(c, str) for c in custom):
                raise CatalogueError(f"{extension_id}: custom must be a list of commands")
            custom = tuple(custom)

        target = data.get("target")
        if target is not None:
            if not isinstance(target, dict):
                raise CatalogueError(f"{extension_id}: target must be an object")
            target = {name: TargetConfig.from_value(name, value) for name, value in target.items()}

        downloads = data.get("downloads")
        if downloads is not None and not isinstance(downloads, dict):
            raise CatalogueError(f"{extension_id}: downloads must be an object")

        return cls(
            id=extension_id,
            repository=data.get("repository"),
            location=data.get("location"),
            ref=data.get("ref") or data.get("checkout"),
            version=data.get("version"),
            custom=custom,
            prepublish=data.get("prepublish"),
            target=target,
            python_version=data.get("pythonVersion") or data.get("python_version"),
            extension_file=data.get("extensionFile") or data.get("extension_file"),
            downloads=downloads,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert descriptor to its catalogue representation."""
        result: dict[str, Any] = {}

        if self.repository:
            result["repository"] = self.repository
        if self.location:
            result["location"] = self.location
        if self.ref:
            result["ref"] = self.ref
        if self.version:
            result["version"] = self.version
        if self.custom is not None:
            result["custom"] = list(self.custom)
        if self.prepublish:
            result["prepublish"] = self.prepublish
        if self.target is not None:
            result["target"] = {
                name: {"env": dict(config.env)} if config.structured else True
                for name, config in self.target.items()
            }
        if self.python_version:
            result["pythonVersion"] = self.python_version
        if self.extension_file:
            result["extensionFile"] = self.extension_file
        if self.downloads:
            result["downloads"] = dict(self.downloads)

        return result


def load_catalogue(path: Path | str) -> dict[str, ExtensionDescriptor]:
    """Load every descriptor from a catalogue file.

    Args:
        path: Path to extensions.json.

    Returns:
        Descriptors keyed by extension id, in file order.

    Raises:
        CatalogueError: If the file is missing or invalid.
    """
    catalogue_path = Path(path)
    if not catalogue_path.exists():
        raise CatalogueError(f"Catalogue not found: {catalogue_path}")

    try:
        data = json.loads(catalogue_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise CatalogueError(f"Invalid JSON in {catalogue_path}: {e}") from e

    if not isinstance(data, dict):
        raise CatalogueError(f"Catalogue must be a JSON object: {catalogue_path}")

    return {
        extension_id: ExtensionDescriptor.from_dict(extension_id, entry)
        for extension_id, entry in data.items()
    }
