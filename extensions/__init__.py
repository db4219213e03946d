"""Extension catalogue, package manifests and registry access.

Provides the collaborators the build/publish workflow consumes:
- catalogue: descriptors of the extensions to build (extensions.json)
- manifest: metadata read from packaged extensions (.vsix)
- registry: lookup, namespace creation and publishing on Open VSX
- resolver: repository checkouts and release asset downloads
"""

from extensions.catalogue import (
    CatalogueError,
    ExtensionDescriptor,
    TargetConfig,
    load_catalogue,
)
from extensions.manifest import ManifestError, PackageManifest, read_vsix
from extensions.registry import RegistryClient, RegistryError, RegistryExtension
from extensions.resolver import DownloadError, SourceResolver

__all__ = [
    "CatalogueError",
    "DownloadError",
    "ExtensionDescriptor",
    "ManifestError",
    "PackageManifest",
    "RegistryClient",
    "RegistryError",
    "RegistryExtension",
    "SourceResolver",
    "TargetConfig",
    "load_catalogue",
    "read_vsix",
]
