"""Per-run state passed through the build/publish workflow."""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from extensions.catalogue import ExtensionDescriptor
from orchestrator.errors import ConfigurationError
from tools.process import child_environment


@dataclass
class PublishContext:
    """Mutable state of one extension's publish run.

    Created by the driver, narrowed to one target by the expander, and
    updated by the builder as resolution and validation proceed.

    Attributes:
        registry_version: Version currently published on the registry.
        registry_last_updated: When the registry entry was last updated.
        upstream_version: Version published upstream (the source marketplace).
        upstream_last_updated: When the upstream version was released.
        repo: Local path of the extension's source repository.
        ref: Git ref to check out.
        version: Requested version; replaced by the artifact's version once read.
        file: Pre-built artifact to use instead of building.
        target: Target platform of this build, None for universal.
        files: Pre-built artifact per target (e.g. release assets).
        environment_variables: Extra environment for this target's build.
        force: Rebuild even when the registry already has this version.
    """

    registry_version: str | None = None
    registry_last_updated: datetime | None = None
    upstream_version: str | None = None
    upstream_last_updated: datetime | None = None
    repo: Path | None = None
    ref: str | None = None
    version: str | None = None
    file: Path | None = None
    target: str | None = None
    files: dict[str, Path] | None = None
    environment_variables: dict[str, str] = field(default_factory=dict)
    force: bool = False

    def for_target(
        self,
        target: str | None,
        file: Path | None = None,
        environment_variables: Mapping[str, str] | None = None,
    ) -> PublishContext:
        """Derive the context of a single target build.

        The copy keeps the shared fields and replaces everything that is
        specific to one target, so nothing leaks between targets.
        """
        return dataclasses.replace(
            self,
            target=target,
            file=file if file is not None else self.file,
            environment_variables=dict(environment_variables or {}),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PublishContext:
        """Create a context from its JSON form (as handed over between CI steps)."""
        files = data.get("files")
        return cls(
            registry_version=data.get("ovsxVersion") or data.get("registry_version"),
            registry_last_updated=_parse_datetime(
                data.get("ovsxLastUpdated") or data.get("registry_last_updated")
            ),
            upstream_version=data.get("msVersion") or data.get("upstream_version"),
            upstream_last_updated=_parse_datetime(
                data.get("msLastUpdated") or data.get("upstream_last_updated")
            ),
            repo=Path(data["repo"]) if data.get("repo") else None,
            ref=data.get("ref"),
            version=data.get("version"),
            file=Path(data["file"]) if data.get("file") else None,
            target=data.get("target"),
            files={target: Path(path) for target, path in files.items()} if files else None,
            environment_variables=dict(data.get("environmentVariables") or {}),
            force=bool(data.get("force", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary (for logging)."""
        return {
            "registry_version": self.registry_version,
            "registry_last_updated": _format_datetime(self.registry_last_updated),
            "upstream_version": self.upstream_version,
            "upstream_last_updated": _format_datetime(self.upstream_last_updated),
            "repo": str(self.repo) if self.repo else None,
            "ref": self.ref,
            "version": self.version,
            "file": str(self.file) if self.file else None,
            "target": self.target,
            "files": {t: str(p) for t, p in self.files.items()} if self.files else None,
            "environment_variables": dict(self.environment_variables),
            "force": self.force,
        }


def parse_publish_context(text: str) -> PublishContext:
    """Parse one publish context handed over by an earlier CI step.

    Raises:
        ConfigurationError: If the text is not a JSON object.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid publish context: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError("Invalid publish context: expected a JSON object")
    return PublishContext.from_dict(data)


def load_publish_contexts(path: Path | str) -> dict[str, PublishContext]:
    """Load seeded publish contexts keyed by extension id.

    Args:
        path: JSON file mapping extension ids to publish context objects.

    Raises:
        ConfigurationError: If the file is missing or malformed.
    """
    context_path = Path(path)
    try:
        data = json.loads(context_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Publish context file not found: {context_path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid publish context file {context_path}: {e}") from e

    if not isinstance(data, dict) or not all(isinstance(v, dict) for v in data.values()):
        raise ConfigurationError(
            f"Invalid publish context file {context_path}: expected an object of objects"
        )
    return {extension_id: PublishContext.from_dict(entry) for extension_id, entry in data.items()}


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class BuildEnvironment:
    """Identity and version variables exposed to one build's commands.

    Build scripts in the catalogue read these, so the names are part of
    the catalogue contract.
    """

    extension_id: str
    publisher: str
    name: str
    version: str | None = None
    upstream_version: str | None = None
    registry_version: str | None = None
    overrides: tuple[tuple[str, str], ...] = ()

    @classmethod
    def for_build(
        cls, descriptor: ExtensionDescriptor, context: PublishContext
    ) -> BuildEnvironment:
        return cls(
            extension_id=descriptor.id,
            publisher=descriptor.namespace,
            name=descriptor.name,
            version=context.version,
            upstream_version=context.upstream_version,
            registry_version=context.registry_version,
            overrides=tuple(sorted(context.environment_variables.items())),
        )

    def variables(self) -> dict[str, str | None]:
        """Variables set (or, when None, removed) for the build's commands."""
        variables: dict[str, str | None] = {
            "EXTENSION_ID": self.extension_id,
            "EXTENSION_PUBLISHER": self.publisher,
            "EXTENSION_NAME": self.name,
            "VERSION": self.version,
            "MS_VERSION": self.upstream_version,
            "OVSX_VERSION": self.registry_version,
        }
        variables.update(dict(self.overrides))
        return variables

    def as_env(self, **extra: str) -> dict[str, str]:
        """Full child-process environment: ours plus this build's variables."""
        variables = self.variables()
        variables.update(extra)
        return child_environment(variables)


@dataclass
class BuildResult:
    """A validated artifact ready for publishing."""

    extension_file: Path
    target: str | None = None
