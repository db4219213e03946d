"""Publish gate: identity checks and upload of built packages."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path

from extensions.manifest import read_vsix
from extensions.registry import RegistryClient, RegistryError, RegistryExtension
from orchestrator.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ExtensionPublisher:
    """Publishes validated packages of one extension to the registry.

    Example:
        >>> publisher = ExtensionPublisher(registry)
        >>> await publisher.publish("redhat.java", [Path("/tmp/artifacts/redhat.java.vsix")])
    """

    def __init__(self, registry: RegistryClient) -> None:
        self.registry = registry

    async def publish(
        self, extension_id: str, extension_files: Iterable[Path]
    ) -> list[RegistryExtension]:
        """Publish every package whose manifest matches ``extension_id``.

        Args:
            extension_id: Requested extension id (namespace.name).
            extension_files: Packages produced by the builder.

        Returns:
            Registry entries of the published packages.

        Raises:
            ConfigurationError: If no registry access token is configured.
            RegistryError: If the registry rejects a package.
        """
        namespace, name = extension_id.split(".", 1)
        logger.info("Attempting to publish %s to Open VSX", extension_id)
        if not self.registry.access_token:
            raise ConfigurationError(
                "The OVSX_PAT environment variable was not provided, which means the extension "
                "cannot be published. Provide it or set SKIP_PUBLISH to true to avoid seeing this."
            )

        published: list[RegistryExtension] = []
        for extension_file in extension_files:
            manifest = await asyncio.to_thread(read_vsix, extension_file)

            if (manifest.publisher or "").lower() != namespace.lower():
                logger.error(
                    "Namespace name mismatch. Expected %s, but found %s", namespace, manifest.publisher
                )
                continue
            if (manifest.name or "").lower() != name.lower():
                logger.error(
                    "Extension name mismatch. Expected %s, but found %s", name, manifest.name
                )
                continue

            await self._ensure_namespace(namespace)

            logger.info("Publishing extension %s", extension_id)
            entry = await self.registry.publish(Path(extension_file))
            logger.info(
                "Published %s to %s", extension_file, self.registry.extension_url(namespace, name)
            )
            published.append(entry)

        return published

    async def _ensure_namespace(self, namespace: str) -> None:
        """Create the namespace; an existing namespace is fine."""
        try:
            await self.registry.create_namespace(namespace)
        except RegistryError as e:
            logger.info("Creating Open VSX namespace failed -- assuming that it already exists: %s", e)
