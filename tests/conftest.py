"""
Shared fixtures for the publish-extensions test suite
"""

import json
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from extensions.registry import RegistryError, RegistryExtension
from pipeline.config import BuildConfig, Config, PublishConfig, RegistryConfig
from tools.process import ProcessError, ProcessResult


class RecordedCall:
    """One command seen by the FakeRunner"""

    def __init__(self, command: str, cwd, env, quiet: bool):
        self.command = command
        self.cwd = Path(cwd) if cwd is not None else None
        self.env = dict(env) if env is not None else None
        self.quiet = quiet


class FakeRunner:
    """Records commands instead of running them.

    ``on(pattern, action)`` registers an action for commands containing
    ``pattern``; the action receives the RecordedCall and may raise.
    """

    def __init__(self):
        self.calls: List[RecordedCall] = []
        self._actions: List[tuple] = []

    def on(self, pattern: str, action: Callable[[RecordedCall], Any]) -> None:
        self._actions.append((pattern, action))

    def fail(self, pattern: str, output: str = "", times: Optional[int] = None) -> None:
        """Make commands containing ``pattern`` exit with status 1."""
        state = {"remaining": times}

        def action(call: RecordedCall):
            if state["remaining"] is not None:
                if state["remaining"] <= 0:
                    return
                state["remaining"] -= 1
            raise ProcessError(call.command, 1, output)

        self.on(pattern, action)

    @property
    def commands(self) -> List[str]:
        return [call.command for call in self.calls]

    def calls_matching(self, pattern: str) -> List[RecordedCall]:
        return [call for call in self.calls if pattern in call.command]

    async def run(self, command, cwd=None, env=None, quiet=False):
        call = RecordedCall(command, cwd, env, quiet)
        self.calls.append(call)
        for pattern, action in self._actions:
            if pattern in command:
                action(call)
        return ProcessResult(command=command, returncode=0)


class FakeRegistry:
    """In-memory stand-in for RegistryClient"""

    def __init__(self, access_token: Optional[str] = "token"):
        self.access_token = access_token
        self.registry_url = "https://open-vsx.test"
        self.entries: Dict[str, RegistryExtension] = {}
        self.lookups: List[str] = []
        self.lookup_errors: Dict[str, Exception] = {}
        self.namespaces: List[str] = []
        self.existing_namespaces: set = set()
        self.published: List[Path] = []
        self.publish_error: Optional[Exception] = None

    def add(self, extension_id: str, version: str) -> None:
        namespace, name = extension_id.split(".", 1)
        self.entries[extension_id] = RegistryExtension(namespace, name, version)

    def extension_url(self, namespace: str, name: str) -> str:
        return f"{self.registry_url}/extension/{namespace}/{name}"

    async def get_extension(self, extension_id: str):
        self.lookups.append(extension_id)
        if extension_id in self.lookup_errors:
            raise self.lookup_errors[extension_id]
        return self.entries.get(extension_id)

    async def create_namespace(self, name: str) -> None:
        if name in self.existing_namespaces:
            raise RegistryError(f"Namespace already exists: {name}", 400)
        self.namespaces.append(name)
        self.existing_namespaces.add(name)

    async def publish(self, extension_file: Path) -> RegistryExtension:
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append(Path(extension_file))
        return RegistryExtension("ns", "ext", "1.0.0")


class FakeResolver:
    """Resolver that leaves the prepared repository alone"""

    def __init__(self, root: Path):
        self.repository_dir = root / "scratch" / "repository"
        self.download_dir = root / "scratch" / "download"
        self.resolved: List[str] = []
        self.downloads: Dict[str, Dict[str, Path]] = {}

    async def resolve(self, descriptor, context) -> None:
        self.resolved.append(descriptor.id)

    async def download(self, descriptor, version=None):
        return self.downloads.get(descriptor.id, {})


def write_vsix(
    path: Path,
    version: Optional[str] = "1.0.0",
    publisher: str = "ns",
    name: str = "ext",
    license: Optional[str] = "MIT",
    dependencies: Optional[List[str]] = None,
    xml: bool = True,
    xml_license: bool = False,
) -> Path:
    """Write a minimal .vsix archive"""
    package: Dict[str, Any] = {"publisher": publisher, "name": name}
    if version is not None:
        package["version"] = version
    if license is not None:
        package["license"] = license
    if dependencies:
        package["extensionDependencies"] = dependencies

    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("extension/package.json", json.dumps(package))
        if xml:
            version_attr = f' Version="{version}"' if version is not None else ""
            license_node = "<License>extension/LICENSE.txt</License>" if xml_license else ""
            archive.writestr(
                "extension.vsixmanifest",
                '<?xml version="1.0" encoding="utf-8"?>'
                '<PackageManifest Version="2.0.0" '
                'xmlns="http://schemas.microsoft.com/developer/vsx-schema/2011">'
                f'<Metadata><Identity Language="en-US" Id="{name}"{version_attr} '
                f'Publisher="{publisher}"/>{license_node}</Metadata>'
                "</PackageManifest>",
            )
    return path


@pytest.fixture
def runner():
    """Command-recording process runner"""
    return FakeRunner()


@pytest.fixture
def registry():
    """In-memory registry with an access token"""
    return FakeRegistry()


@pytest.fixture
def resolver(tmp_path):
    """Resolver with scratch directories under tmp_path"""
    return FakeResolver(tmp_path)


@pytest.fixture
def make_vsix(tmp_path):
    """Factory writing .vsix files under tmp_path/packages"""

    def factory(file_name: str = "ext.vsix", **kwargs) -> Path:
        return write_vsix(tmp_path / "packages" / file_name, **kwargs)

    return factory


@pytest.fixture
def config(tmp_path):
    """Configuration writing artifacts under tmp_path"""
    return Config(
        registry=RegistryConfig(url="https://open-vsx.test", access_token="token"),
        build=BuildConfig(
            artifacts_dir=str(tmp_path / "artifacts"),
            repository_dir=str(tmp_path / "scratch" / "repository"),
            download_dir=str(tmp_path / "scratch" / "download"),
        ),
        publish=PublishConfig(),
    )


@pytest.fixture
def repo(tmp_path):
    """Checked-out extension sources"""
    path = tmp_path / "checkout"
    path.mkdir()
    (path / "package.json").write_text(
        json.dumps({"name": "ext", "publisher": "ns", "version": "1.0.0"})
    )
    return path


@pytest.fixture
def write_package():
    """Writer for .vsix files at an explicit path"""
    return write_vsix
