"""Top-level driver: build and publish every catalogue extension."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from extensions.catalogue import ExtensionDescriptor
from extensions.registry import RegistryClient, RegistryExtension
from extensions.resolver import SourceResolver
from orchestrator.builder import BuildFailure, ExtensionBuilder
from orchestrator.context import PublishContext
from orchestrator.errors import ConfigurationError, is_already_published
from orchestrator.publisher import ExtensionPublisher
from orchestrator.targets import build_extension
from pipeline.config import Config
from tools.process import ProcessRunner

logger = logging.getLogger(__name__)

DEFAULT_REF = "HEAD"


@dataclass
class RunSummary:
    """Outcome of a driver run."""

    built: dict[str, list[Path]] = field(default_factory=dict)
    published: list[RegistryExtension] = field(default_factory=list)
    already_published: list[str] = field(default_factory=list)
    failures: list[BuildFailure] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        """Non-zero when any extension or target failed."""
        return 1 if self.failures else 0


class PublishDriver:
    """Runs the build/publish workflow over the catalogue.

    Extensions are processed one at a time; a failure in one extension
    is recorded and the next extension still runs.

    Example:
        >>> driver = PublishDriver(get_config(), load_catalogue("extensions.json"))
        >>> summary = await driver.run()
        >>> sys.exit(summary.exit_code)
    """

    def __init__(
        self,
        config: Config,
        catalogue: dict[str, ExtensionDescriptor],
        runner: ProcessRunner | None = None,
        registry: RegistryClient | None = None,
        resolver: SourceResolver | None = None,
        builder: ExtensionBuilder | None = None,
        publisher: ExtensionPublisher | None = None,
    ) -> None:
        self.config = config
        self.catalogue = catalogue
        self.runner = runner or ProcessRunner(shell=config.build.shell)
        self.registry = registry or RegistryClient(
            registry_url=config.registry.url,
            access_token=config.registry.access_token,
            timeout=config.registry.timeout,
            max_retries=config.registry.max_retries,
        )
        self.resolver = resolver or SourceResolver(
            self.runner,
            repository_dir=config.build.repository_dir,
            download_dir=config.build.download_dir,
        )
        self.builder = builder or ExtensionBuilder(
            config,
            self.runner,
            self.resolver,
            self.registry,
            catalogue_ids=catalogue.keys(),
        )
        self.publisher = publisher or ExtensionPublisher(self.registry)

    async def run(
        self,
        extension_ids: Iterable[str] | None = None,
        seeds: Mapping[str, PublishContext] | None = None,
    ) -> RunSummary:
        """Build (and unless skipped, publish) the selected extensions.

        Args:
            extension_ids: Extensions to process; all catalogue entries when None.
            seeds: Publish contexts handed over by an earlier CI step, by extension id.

        Returns:
            RunSummary of the run.

        Raises:
            ConfigurationError: If publishing is requested without an access token.
        """
        if not self.config.publish.skip_publish and not self.registry.access_token:
            raise ConfigurationError(
                "The OVSX_PAT environment variable was not provided, which means no extension "
                "can be published. Provide it or set SKIP_PUBLISH to true to build only."
            )

        summary = RunSummary()
        selected = list(extension_ids) if extension_ids is not None else list(self.catalogue)

        for extension_id in selected:
            descriptor = self.catalogue.get(extension_id)
            if descriptor is None:
                logger.error("%s: not found in the catalogue", extension_id)
                summary.failures.append(
                    BuildFailure(extension_id, None, "not found in the catalogue")
                )
                continue

            try:
                await self.process_extension(descriptor, summary, (seeds or {}).get(extension_id))
            except ConfigurationError:
                raise
            except Exception as e:
                if is_already_published(e):
                    logger.info("%s: already published, nothing to do: %s", extension_id, e)
                    summary.already_published.append(extension_id)
                else:
                    logger.exception("[FAIL] Could not process extension %s", extension_id)
                    summary.failures.append(BuildFailure(extension_id, None, str(e)))

        summary.failures.extend(self.builder.failures)
        self.builder.failures = []
        return summary

    async def process_extension(
        self,
        descriptor: ExtensionDescriptor,
        summary: RunSummary,
        seed: PublishContext | None = None,
    ) -> None:
        """Build all targets of one extension, then publish them."""
        context = await self.create_context(descriptor, seed)
        extension_files = await build_extension(descriptor, context, self.builder)
        summary.built[descriptor.id] = extension_files

        if self.config.publish.skip_publish:
            logger.info("%s: built %d package(s), publishing skipped", descriptor.id, len(extension_files))
            return
        if not extension_files:
            return

        summary.published.extend(await self.publisher.publish(descriptor.id, extension_files))

    async def create_context(
        self, descriptor: ExtensionDescriptor, seed: PublishContext | None = None
    ) -> PublishContext:
        """Create the publish context of one extension.

        Looks up what the registry has and fetches release assets when the
        descriptor publishes pre-built packages. A seed carries the upstream
        version and release date; the upstream version is the requested
        version when the catalogue pins none.
        """
        entry = await self.registry.get_extension(descriptor.id)
        upstream_version = seed.upstream_version if seed else None
        context = PublishContext(
            registry_version=entry.version if entry else None,
            registry_last_updated=entry.timestamp if entry else None,
            upstream_version=upstream_version,
            upstream_last_updated=seed.upstream_last_updated if seed else None,
            repo=self.resolver.repository_dir if descriptor.repository else None,
            ref=descriptor.ref or DEFAULT_REF,
            version=descriptor.version or upstream_version,
            force=self.config.publish.force or bool(seed and seed.force),
        )

        if descriptor.downloads:
            context.files = await self.resolver.download(descriptor, context.version)

        return context
