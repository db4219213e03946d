"""Build orchestrator: turns one (extension, target) pair into a validated package.

Each build runs through:
1. Prerequisite setup
2. Source acquisition (skipped for pre-built files)
3. Best-effort runtime pinning
4. Build execution (custom commands or standard package manager build)
5. Manifest resolution
6. Version freshness gate
7. License gate
8. Dependency publishability gate
9. Copy into the artifact directory

Failures are contained per build: they are logged, recorded in
``ExtensionBuilder.failures`` and never propagate to the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shlex
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import semver

from extensions.catalogue import ExtensionDescriptor
from extensions.manifest import PackageManifest, find_license_file, read_vsix
from extensions.registry import RegistryClient, RegistryError
from extensions.resolver import SourceResolver
from orchestrator.context import BuildEnvironment, BuildResult, PublishContext
from orchestrator.errors import (
    BuildError,
    DependencyError,
    LicenseMissingError,
    OutdatedCatalogueError,
    VersionNotResolvedError,
    is_already_published,
)
from orchestrator.runtimes import (
    log_pin_result,
    pin_node_version,
    pin_python_version,
    restore_python_version,
)
from orchestrator.strategies import package_directory, run_strategy, select_strategy
from pipeline.config import Config
from tools.process import ProcessError, ProcessRunner

logger = logging.getLogger(__name__)


@dataclass
class BuildFailure:
    """A build that failed for a reason other than a duplicate publish."""

    extension_id: str
    target: str | None
    error: str


class ExtensionBuilder:
    """Builds and validates extension packages.

    Example:
        >>> builder = ExtensionBuilder(config, ProcessRunner(), resolver, registry)
        >>> result = await builder.build_version(descriptor, context)
        >>> builder.failures
    """

    def __init__(
        self,
        config: Config,
        runner: ProcessRunner,
        resolver: SourceResolver,
        registry: RegistryClient,
        catalogue_ids: Iterable[str] = (),
    ) -> None:
        """Initialize the builder.

        Args:
            config: Run configuration.
            runner: Process runner for every external command.
            resolver: Source resolver for repository checkouts.
            registry: Registry client for dependency lookups.
            catalogue_ids: Ids of all catalogue entries (dependency shortcut).
        """
        self.config = config
        self.runner = runner
        self.resolver = resolver
        self.registry = registry
        self.catalogue_ids = frozenset(catalogue_ids)
        self.artifacts_dir = Path(config.build.artifacts_dir)
        self.failures: list[BuildFailure] = []
        self._prerequisites_ready = False

    async def ensure_prerequisites(self) -> None:
        """Prepare the shared build environment.

        Safe to call before every build; the artifact directory is only
        emptied on the first call of a run so earlier targets survive.
        """
        if self._prerequisites_ready:
            self.artifacts_dir.mkdir(parents=True, exist_ok=True)
            return

        # Make yarn run scripts with the same shell as our commands
        await self.runner.run(f"yarn config set script-shell {shlex.quote(self.config.build.shell)}")
        # Don't show large git advice blocks
        await self.runner.run("git config --global advice.detachedHead false")

        if self.artifacts_dir.exists():
            for entry in self.artifacts_dir.iterdir():
                if entry.is_file():
                    entry.unlink()
        else:
            self.artifacts_dir.mkdir(parents=True)

        self._prerequisites_ready = True

    async def build_version(
        self, descriptor: ExtensionDescriptor, context: PublishContext
    ) -> BuildResult | None:
        """Build one target of an extension.

        Args:
            descriptor: Extension to build.
            context: Publish context narrowed to one target.

        Returns:
            BuildResult, or None when skipped or failed.
        """
        label = _label(descriptor, context)
        logger.debug("Building %s for %s...", descriptor.id, context.target or "universal")
        logger.info(
            "Processing extension: %s",
            json.dumps({"extension": descriptor.to_dict(), "context": context.to_dict()}, indent=2),
        )

        try:
            return await self._build(descriptor, context)
        except Exception as e:
            if is_already_published(e):
                logger.info("%s: could not process extension, assuming it already exists: %s", label, e)
            else:
                logger.error(
                    "[FAIL] Could not process extension: %s",
                    json.dumps(
                        {"extension": descriptor.to_dict(), "context": context.to_dict()}, indent=2
                    ),
                )
                logger.error("%s: %s", label, e, exc_info=not isinstance(e, BuildError))
                self.failures.append(BuildFailure(descriptor.id, context.target, str(e)))
            return None
        finally:
            if descriptor.python_version:
                try:
                    await restore_python_version(
                        self.runner, self.config.build.default_python_version
                    )
                except (ProcessError, OSError) as e:
                    logger.warning("%s: could not restore the default Python version: %s", label, e)

    async def _build(
        self, descriptor: ExtensionDescriptor, context: PublishContext
    ) -> BuildResult | None:
        await self.ensure_prerequisites()

        package_dir = package_directory(descriptor, Path(context.repo)) if context.repo else None

        if context.file:
            extension_file = Path(context.file)
        elif context.repo and context.ref:
            extension_file = await self._build_from_source(descriptor, context)
            package_dir = package_directory(descriptor, Path(context.repo))
        else:
            raise BuildError(
                f"{descriptor.id}: nothing to build, the context has neither a file "
                "nor a repository and ref"
            )

        manifest = await asyncio.to_thread(read_vsix, extension_file)
        self._resolve_version(descriptor, context, manifest)

        if not self._is_newer_than_registry(context):
            return None

        self._check_license(descriptor, manifest, package_dir)
        await self._check_dependencies(descriptor, manifest)

        return await self._finalize(descriptor, context, extension_file)

    async def _build_from_source(
        self, descriptor: ExtensionDescriptor, context: PublishContext
    ) -> Path:
        """Check out the sources and run the build strategy."""
        logger.info("%s: preparing from %s...", descriptor.id, context.repo)
        for stale in (self.resolver.repository_dir, self.resolver.download_dir):
            await asyncio.to_thread(shutil.rmtree, stale, True)

        await self.resolver.resolve(descriptor, context)
        repo = Path(context.repo)

        build_env = BuildEnvironment.for_build(descriptor, context)
        env = build_env.as_env()
        await self.runner.run(f"git checkout {shlex.quote(context.ref)}", cwd=repo, env=env)

        label = _label(descriptor, context)
        package_dir = package_directory(descriptor, repo)
        log_pin_result(label, await pin_node_version(self.runner, package_dir, env))
        log_pin_result(
            label,
            await pin_python_version(self.runner, descriptor.python_version, package_dir, env),
        )

        strategy = select_strategy(descriptor)
        return await run_strategy(strategy, descriptor, context, self.runner, build_env)

    def _resolve_version(
        self,
        descriptor: ExtensionDescriptor,
        context: PublishContext,
        manifest: PackageManifest,
    ) -> None:
        """Take the version from the package; a build without one fails closed."""
        if not manifest.version:
            raise VersionNotResolvedError(f"{descriptor.id}: version is not resolved")
        if not semver.Version.is_valid(manifest.version):
            raise VersionNotResolvedError(
                f"{descriptor.id}: version {manifest.version!r} is not a valid semantic version"
            )
        context.version = manifest.version

    def _is_newer_than_registry(self, context: PublishContext) -> bool:
        """Compare the resolved version with the registry's.

        Returns:
            False when the registry already has this version (and not forced).

        Raises:
            OutdatedCatalogueError: If the registry has a newer version.
        """
        if not context.registry_version:
            return True

        try:
            registry_version = semver.Version.parse(context.registry_version)
        except ValueError:
            logger.warning(
                "Registry version %r is not comparable, treating it as older",
                context.registry_version,
            )
            return True
        resolved_version = semver.Version.parse(context.version)

        if registry_version > resolved_version:
            raise OutdatedCatalogueError(
                f"extensions.json is out-of-date: Open VSX version {context.registry_version} "
                f"is already greater than specified version {context.version}"
            )
        if registry_version == resolved_version and not (
            context.force or self.config.publish.force
        ):
            logger.info(
                "[SKIPPED] Requested version %s is already published on Open VSX",
                context.version,
            )
            return False
        return True

    def _check_license(
        self,
        descriptor: ExtensionDescriptor,
        manifest: PackageManifest,
        package_dir: Path | None,
    ) -> None:
        # TODO: check that the declared license is actually open source
        if manifest.has_license:
            return
        if find_license_file(package_dir) is not None:
            return
        raise LicenseMissingError(f"{descriptor.id}: license is missing")

    def _is_builtin(self, extension_id: str) -> bool:
        return extension_id.split(".")[0] == self.config.publish.builtin_namespace

    def _known_to_catalogue(self, extension_id: str) -> bool:
        """Dependencies built in this run count as available when not publishing."""
        publish = self.config.publish
        return (
            publish.skip_publish
            and not publish.strict_dependencies
            and extension_id in self.catalogue_ids
        )

    async def _check_dependencies(
        self, descriptor: ExtensionDescriptor, manifest: PackageManifest
    ) -> None:
        """Fail unless every extension dependency is (or can be) on the registry."""
        dependencies = [d for d in manifest.extension_dependencies if not self._is_builtin(d)]
        if not dependencies:
            return

        cannot_publish = {d.lower() for d in self.config.publish.cannot_publish}
        unpublishable = [d for d in dependencies if d.lower() in cannot_publish]
        if unpublishable:
            single = len(unpublishable) == 1
            raise DependencyError(
                f"{descriptor.id} is dependent on {', '.join(unpublishable)}, which "
                f"{'has' if single else 'have'} to be published to Open VSX first by "
                f"{'its author because of its license' if single else 'their authors because of their licenses'}.",
                unpublishable,
            )

        missing: list[str] = []
        for dependency in dependencies:
            if self._known_to_catalogue(dependency):
                continue
            try:
                entry = await self.registry.get_extension(dependency)
            except RegistryError as e:
                logger.warning("%s: could not look up dependency %s: %s", descriptor.id, dependency, e)
                continue
            if entry is None:
                missing.append(dependency)

        if missing:
            raise DependencyError(
                f"{descriptor.id} is dependent on {', '.join(missing)}, which "
                f"{'has' if len(missing) == 1 else 'have'} to be published to Open VSX first",
                missing,
            )

    async def _finalize(
        self,
        descriptor: ExtensionDescriptor,
        context: PublishContext,
        extension_file: Path,
    ) -> BuildResult:
        """Copy the validated package into the artifact directory."""
        file_name = (
            f"{descriptor.id}@{context.target}.vsix" if context.target else f"{descriptor.id}.vsix"
        )
        output = self.artifacts_dir / file_name
        logger.info("Copying file to %s", self.artifacts_dir)
        await asyncio.to_thread(shutil.copyfile, extension_file, output)
        return BuildResult(extension_file=output, target=context.target)


def _label(descriptor: ExtensionDescriptor, context: PublishContext) -> str:
    return f"{descriptor.id}@{context.target}" if context.target else descriptor.id
