"""
Tests for reading packaged extension manifests
"""

import json
import zipfile

import pytest

from extensions.manifest import ManifestError, find_license_file, read_vsix


def test_xml_identity_wins_over_package_json(tmp_path):
    path = tmp_path / "ext.vsix"
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr(
            "extension/package.json",
            json.dumps({"publisher": "old", "name": "legacy", "version": "0.0.1"}),
        )
        archive.writestr(
            "extension.vsixmanifest",
            '<PackageManifest xmlns="http://schemas.microsoft.com/developer/vsx-schema/2011">'
            '<Metadata><Identity Id="ext" Version="2.0.0" Publisher="ns"/>'
            "<License>extension/LICENSE.txt</License></Metadata></PackageManifest>",
        )

    manifest = read_vsix(path)

    assert manifest.version == "2.0.0"
    assert manifest.publisher == "ns"
    assert manifest.name == "ext"
    assert manifest.has_xml_license is True
    assert manifest.has_license is True


def test_package_json_only(make_vsix):
    manifest = read_vsix(make_vsix(xml=False, dependencies=["a.one", "vscode.git"]))

    assert manifest.version == "1.0.0"
    assert manifest.publisher == "ns"
    assert manifest.license == "MIT"
    assert manifest.extension_dependencies == ("a.one", "vscode.git")


def test_no_license(make_vsix):
    manifest = read_vsix(make_vsix(license=None))

    assert manifest.has_license is False


def test_missing_file(tmp_path):
    with pytest.raises(ManifestError, match="not found"):
        read_vsix(tmp_path / "missing.vsix")


def test_not_an_archive(tmp_path):
    path = tmp_path / "ext.vsix"
    path.write_text("<html>rate limited</html>")

    with pytest.raises(ManifestError, match="Not a valid extension package"):
        read_vsix(path)


def test_invalid_package_json(tmp_path):
    path = tmp_path / "ext.vsix"
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("extension/package.json", "{ not json")

    with pytest.raises(ManifestError, match="Invalid extension/package.json"):
        read_vsix(path)


class TestFindLicenseFile:

    @pytest.mark.parametrize("file_name", ["LICENSE", "License.md", "license.txt"])
    def test_found(self, tmp_path, file_name):
        (tmp_path / file_name).write_text("MIT")
        assert find_license_file(tmp_path) == tmp_path / file_name

    def test_other_files_do_not_count(self, tmp_path):
        (tmp_path / "LICENSE-THIRD-PARTY.txt").write_text("...")
        (tmp_path / "README.md").write_text("...")
        assert find_license_file(tmp_path) is None

    def test_no_directory(self, tmp_path):
        assert find_license_file(None) is None
        assert find_license_file(tmp_path / "missing") is None
