"""Source resolution for extensions.

Materializes what the builder needs on local disk: either a clone of the
extension's repository or the pre-built release assets it publishes.
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from extensions.catalogue import ExtensionDescriptor
from tools.process import ProcessRunner

if TYPE_CHECKING:
    from orchestrator.context import PublishContext

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    """Raised when a release asset cannot be downloaded."""

    pass


class SourceResolver:
    """Fetches extension sources and release assets.

    Example:
        >>> resolver = SourceResolver(ProcessRunner())
        >>> await resolver.resolve(descriptor, context)
        >>> files = await resolver.download(descriptor, "1.2.3")
    """

    def __init__(
        self,
        runner: ProcessRunner,
        repository_dir: Path | str = "/tmp/repository",
        download_dir: Path | str = "/tmp/download",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the resolver.

        Args:
            runner: Process runner used for git.
            repository_dir: Where sources are cloned.
            download_dir: Where release assets are stored.
            timeout: Download timeout in seconds.
            transport: Custom httpx transport (used by tests).
        """
        self.runner = runner
        self.repository_dir = Path(repository_dir)
        self.download_dir = Path(download_dir)
        self.timeout = timeout
        self._transport = transport

    async def resolve(self, descriptor: ExtensionDescriptor, context: PublishContext) -> None:
        """Clone the extension's repository into ``context.repo``.

        Args:
            descriptor: Extension to resolve.
            context: Publish context; ``repo`` is set when missing.
        """
        if not descriptor.repository:
            logger.debug("%s: no repository declared, nothing to clone", descriptor.id)
            return

        repo = Path(context.repo) if context.repo else self.repository_dir
        context.repo = repo
        if (repo / ".git").exists():
            logger.debug("%s: reusing clone at %s", descriptor.id, repo)
            return

        repo.parent.mkdir(parents=True, exist_ok=True)
        await self.runner.run(
            "git clone --recurse-submodules "
            f"{shlex.quote(descriptor.repository)} {shlex.quote(str(repo))}",
            quiet=True,
        )
        logger.info("%s: cloned %s", descriptor.id, descriptor.repository)

    async def download(
        self, descriptor: ExtensionDescriptor, version: str | None = None
    ) -> dict[str, Path]:
        """Download the release asset of every declared target.

        ``{version}`` in an asset URL is replaced by ``version`` (or the
        descriptor's pinned version).

        Args:
            descriptor: Extension whose ``downloads`` are fetched.
            version: Version to substitute into the URLs.

        Returns:
            Downloaded file per target.

        Raises:
            DownloadError: If an asset cannot be fetched, or a URL needs a
                version and none is known.
        """
        if not descriptor.downloads:
            return {}

        pinned = version or descriptor.version
        if not pinned and any("{version}" in url for url in descriptor.downloads.values()):
            raise DownloadError(
                f"{descriptor.id}: release asset URLs need a version but none is known"
            )
        self.download_dir.mkdir(parents=True, exist_ok=True)
        files: dict[str, Path] = {}

        async with httpx.AsyncClient(
            timeout=self.timeout, follow_redirects=True, transport=self._transport
        ) as client:
            for target, url_template in descriptor.downloads.items():
                url = url_template.replace("{version}", pinned or "")
                file_path = self.download_dir / f"{descriptor.id}@{target}.vsix"
                logger.info("%s: downloading %s asset from %s", descriptor.id, target, url)
                try:
                    response = await client.get(url)
                    response.raise_for_status()
                except httpx.HTTPStatusError as e:
                    raise DownloadError(
                        f"{descriptor.id}: download of {url} failed with "
                        f"HTTP {e.response.status_code}"
                    ) from e
                except httpx.RequestError as e:
                    raise DownloadError(f"{descriptor.id}: download of {url} failed: {e}") from e
                file_path.write_bytes(response.content)
                files[target] = file_path

        return files
