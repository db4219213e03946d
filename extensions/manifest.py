"""Manifest reader for packaged extensions (.vsix).

A VSIX archive carries two manifests:
- extension/package.json: the extension's own package manifest
- extension.vsixmanifest: the legacy XML manifest
"""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

PACKAGE_JSON_ENTRY = "extension/package.json"
XML_MANIFEST_ENTRY = "extension.vsixmanifest"

# File names accepted as a license when the manifests declare none
LICENSE_FILE_NAMES = ("license", "license.md", "license.txt")


class ManifestError(Exception):
    """Raised when a package cannot be opened or its manifests parsed."""

    pass


@dataclass(frozen=True)
class PackageManifest:
    """Metadata extracted from a packaged extension.

    Attributes:
        version: Version from the XML identity, else from package.json.
        publisher: Publisher (namespace) from the XML identity, else package.json.
        name: Extension name from the XML identity, else package.json.
        license: License declared in package.json.
        has_xml_license: Whether the XML manifest declares a license.
        extension_dependencies: Declared extension dependencies.
        package: Raw package.json contents.
    """

    version: str | None = None
    publisher: str | None = None
    name: str | None = None
    license: str | None = None
    has_xml_license: bool = False
    extension_dependencies: tuple[str, ...] = ()
    package: dict[str, Any] = field(default_factory=dict)

    @property
    def has_license(self) -> bool:
        """Check if any manifest form declares a license."""
        return self.has_xml_license or bool(self.license)

    @classmethod
    def from_sources(
        cls,
        package: dict[str, Any] | None,
        xml_manifest: ET.Element | None,
    ) -> PackageManifest:
        """Combine the two manifest forms.

        Args:
            package: Parsed package.json, if present.
            xml_manifest: Root of the parsed XML manifest, if present.

        Returns:
            Combined PackageManifest.
        """
        package = package or {}
        identity: dict[str, str] = {}
        has_xml_license = False

        if xml_manifest is not None:
            metadata = _child(xml_manifest, "Metadata")
            if metadata is not None:
                identity_node = _child(metadata, "Identity")
                if identity_node is not None:
                    identity = dict(identity_node.attrib)
                license_node = _child(metadata, "License")
                has_xml_license = license_node is not None and bool(
                    (license_node.text or "").strip()
                )

        dependencies = package.get("extensionDependencies") or []

        return cls(
            version=identity.get("Version") or package.get("version"),
            publisher=identity.get("Publisher") or package.get("publisher"),
            name=identity.get("Id") or package.get("name"),
            license=package.get("license"),
            has_xml_license=has_xml_license,
            extension_dependencies=tuple(dependencies),
            package=package,
        )


def _child(element: ET.Element, local_name: str) -> ET.Element | None:
    """Find the first direct child by local name, ignoring XML namespaces."""
    for child in element:
        tag = child.tag.rsplit("}", 1)[-1]
        if tag == local_name:
            return child
    return None


def read_vsix(extension_file: Path | str) -> PackageManifest:
    """Read the manifests of a packaged extension.

    Args:
        extension_file: Path to the .vsix file.

    Returns:
        Parsed PackageManifest.

    Raises:
        ManifestError: If the file is missing, not an archive, or malformed.
    """
    path = Path(extension_file)
    if not path.exists():
        raise ManifestError(f"Extension package not found: {path}")

    try:
        with zipfile.ZipFile(path) as archive:
            names = set(archive.namelist())
            raw_package = archive.read(PACKAGE_JSON_ENTRY) if PACKAGE_JSON_ENTRY in names else None
            raw_xml = archive.read(XML_MANIFEST_ENTRY) if XML_MANIFEST_ENTRY in names else None
    except zipfile.BadZipFile as e:
        raise ManifestError(f"Not a valid extension package: {path}: {e}") from e

    package = None
    if raw_package is not None:
        try:
            package = json.loads(raw_package.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ManifestError(f"Invalid {PACKAGE_JSON_ENTRY} in {path}: {e}") from e

    xml_manifest = None
    if raw_xml is not None:
        try:
            xml_manifest = ET.fromstring(raw_xml)
        except ET.ParseError as e:
            raise ManifestError(f"Invalid {XML_MANIFEST_ENTRY} in {path}: {e}") from e

    return PackageManifest.from_sources(package, xml_manifest)


def find_license_file(package_dir: Path | str | None) -> Path | None:
    """Look for a license file next to the extension's package.json.

    Returns:
        Path to the license file or None if not found.
    """
    if package_dir is None:
        return None
    directory = Path(package_dir)
    if not directory.is_dir():
        return None
    for entry in directory.iterdir():
        if entry.is_file() and entry.name.lower() in LICENSE_FILE_NAMES:
            return entry
    return None
