"""
Tests for publish contexts and per-build environments
"""

import os
from datetime import timezone
from pathlib import Path

import pytest

from extensions.catalogue import ExtensionDescriptor
from orchestrator.context import (
    BuildEnvironment,
    PublishContext,
    load_publish_contexts,
    parse_publish_context,
)
from orchestrator.errors import ConfigurationError


class TestPublishContext:

    def test_for_target_replaces_target_fields(self):
        base = PublishContext(
            registry_version="1.0.0",
            repo=Path("/src"),
            ref="main",
            file=Path("/dl/universal.vsix"),
            environment_variables={"A": "1"},
        )

        derived = base.for_target("linux-x64", environment_variables={"B": "2"})

        assert derived.target == "linux-x64"
        assert derived.environment_variables == {"B": "2"}
        assert derived.file == Path("/dl/universal.vsix")
        assert derived.repo == Path("/src")
        assert base.target is None
        assert base.environment_variables == {"A": "1"}

    def test_from_dict_accepts_ci_field_names(self):
        context = PublishContext.from_dict(
            {
                "ovsxVersion": "1.0.0",
                "ovsxLastUpdated": "2024-01-02T03:04:05Z",
                "msVersion": "1.1.0",
                "repo": "/tmp/repository",
                "ref": "v1.1.0",
                "files": {"linux-x64": "/tmp/download/a.vsix"},
                "environmentVariables": {"A": "1"},
            }
        )

        assert context.registry_version == "1.0.0"
        assert context.registry_last_updated.tzinfo == timezone.utc
        assert context.upstream_version == "1.1.0"
        assert context.repo == Path("/tmp/repository")
        assert context.files == {"linux-x64": Path("/tmp/download/a.vsix")}
        assert context.environment_variables == {"A": "1"}
        assert context.to_dict()["registry_last_updated"] == "2024-01-02T03:04:05+00:00"

    def test_parse_publish_context(self):
        context = parse_publish_context('{"msVersion": "1.1.0", "msLastUpdated": "2024-02-01T00:00:00Z"}')

        assert context.upstream_version == "1.1.0"
        assert context.upstream_last_updated.month == 2

    def test_parse_publish_context_rejects_non_objects(self):
        with pytest.raises(ConfigurationError, match="expected a JSON object"):
            parse_publish_context("[1, 2]")

        with pytest.raises(ConfigurationError, match="Invalid publish context"):
            parse_publish_context("{not json")

    def test_load_publish_contexts(self, tmp_path):
        path = tmp_path / "publish-context.json"
        path.write_text('{"redhat.java": {"msVersion": "1.30.0"}, "golang.go": {}}')

        contexts = load_publish_contexts(path)

        assert contexts["redhat.java"].upstream_version == "1.30.0"
        assert contexts["golang.go"].upstream_version is None

    def test_load_publish_contexts_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_publish_contexts(tmp_path / "missing.json")


class TestBuildEnvironment:

    def test_variables(self):
        descriptor = ExtensionDescriptor(id="rust-lang.rust-analyzer")
        context = PublishContext(
            version="0.3.2000",
            upstream_version="0.3.2001",
            registry_version="0.3.1999",
            environment_variables={"RA_TARGET": "x86_64"},
        )

        variables = BuildEnvironment.for_build(descriptor, context).variables()

        assert variables == {
            "EXTENSION_ID": "rust-lang.rust-analyzer",
            "EXTENSION_PUBLISHER": "rust-lang",
            "EXTENSION_NAME": "rust-analyzer",
            "VERSION": "0.3.2000",
            "MS_VERSION": "0.3.2001",
            "OVSX_VERSION": "0.3.1999",
            "RA_TARGET": "x86_64",
        }

    def test_as_env_does_not_touch_process_environment(self, monkeypatch):
        monkeypatch.setenv("VERSION", "stale")
        monkeypatch.delenv("EXTENSION_ID", raising=False)
        descriptor = ExtensionDescriptor(id="ns.ext")

        env = BuildEnvironment.for_build(descriptor, PublishContext()).as_env(VSCE_TESTS="1")

        assert env["EXTENSION_ID"] == "ns.ext"
        assert env["VSCE_TESTS"] == "1"
        assert "VERSION" not in env
        assert os.environ["VERSION"] == "stale"
        assert "EXTENSION_ID" not in os.environ

    def test_builds_are_independent(self):
        first = BuildEnvironment.for_build(
            ExtensionDescriptor(id="ns.one"), PublishContext(environment_variables={"X": "1"})
        )
        second = BuildEnvironment.for_build(ExtensionDescriptor(id="ns.two"), PublishContext())

        assert "X" in first.as_env()
        assert "X" not in second.variables()
        assert second.as_env()["EXTENSION_ID"] == "ns.two"
