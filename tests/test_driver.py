"""
Tests for the top-level driver
"""

import pytest

from extensions.catalogue import ExtensionDescriptor
from extensions.registry import RegistryError
from orchestrator.context import PublishContext
from orchestrator.driver import PublishDriver
from orchestrator.errors import ConfigurationError


def release(extension_id):
    return ExtensionDescriptor(
        id=extension_id, downloads={"linux-x64": "https://example.test/{version}.vsix"}
    )


@pytest.fixture
def catalogue():
    return {"ns.ext": release("ns.ext"), "ns.old": release("ns.old")}


@pytest.fixture
def driver_for(config, runner, registry, resolver):
    def factory(catalogue):
        return PublishDriver(config, catalogue, runner=runner, registry=registry, resolver=resolver)

    return factory


@pytest.fixture
def assets(resolver, make_vsix):
    resolver.downloads["ns.ext"] = {"linux-x64": make_vsix("ext.vsix")}
    resolver.downloads["ns.old"] = {"linux-x64": make_vsix("old.vsix", name="old")}
    return resolver.downloads


@pytest.mark.asyncio
async def test_missing_token_fails_fast(config, registry, driver_for, catalogue):
    registry.access_token = None

    with pytest.raises(ConfigurationError, match="OVSX_PAT"):
        await driver_for(catalogue).run()

    assert registry.lookups == []


@pytest.mark.asyncio
async def test_failures_are_isolated(config, registry, driver_for, catalogue, assets):
    config.publish.skip_publish = True
    registry.add("ns.old", "9.0.0")

    summary = await driver_for(catalogue).run()

    assert list(summary.built) == ["ns.ext", "ns.old"]
    assert [p.name for p in summary.built["ns.ext"]] == ["ns.ext@linux-x64.vsix"]
    assert summary.built["ns.old"] == []
    assert len(summary.failures) == 1
    assert summary.failures[0].extension_id == "ns.old"
    assert "out-of-date" in summary.failures[0].error
    assert summary.exit_code == 1
    assert registry.published == []


@pytest.mark.asyncio
async def test_publishes_built_packages(registry, driver_for, catalogue, assets):
    summary = await driver_for(catalogue).run(["ns.ext"])

    assert summary.exit_code == 0
    assert len(summary.published) == 1
    assert [p.name for p in registry.published] == ["ns.ext@linux-x64.vsix"]
    assert registry.namespaces == ["ns"]


@pytest.mark.asyncio
async def test_already_published_is_benign(registry, driver_for, catalogue, assets):
    registry.publish_error = RegistryError("Extension ns.ext 1.0.0 is already published.", 400)

    summary = await driver_for(catalogue).run(["ns.ext"])

    assert summary.already_published == ["ns.ext"]
    assert summary.failures == []
    assert summary.exit_code == 0


@pytest.mark.asyncio
async def test_publish_rejection_is_a_failure(registry, driver_for, catalogue, assets):
    registry.publish_error = RegistryError("Invalid token", 403)

    summary = await driver_for(catalogue).run(["ns.ext", "ns.old"])

    assert summary.failures[0].extension_id == "ns.ext"
    assert "Invalid token" in summary.failures[0].error
    assert "ns.old" in summary.built
    assert summary.exit_code == 1


@pytest.mark.asyncio
async def test_unknown_extension(config, driver_for, catalogue):
    config.publish.skip_publish = True

    summary = await driver_for(catalogue).run(["ns.missing"])

    assert summary.failures[0].extension_id == "ns.missing"
    assert summary.exit_code == 1


@pytest.mark.asyncio
async def test_create_context(registry, resolver, driver_for):
    registry.add("ns.ext", "1.0.0")
    descriptor = ExtensionDescriptor(id="ns.ext", repository="https://github.com/ns/ext")

    context = await driver_for({"ns.ext": descriptor}).create_context(descriptor)

    assert context.registry_version == "1.0.0"
    assert context.repo == resolver.repository_dir
    assert context.ref == "HEAD"
    assert context.files is None


@pytest.mark.asyncio
async def test_create_context_uses_catalogue_ref(config, driver_for):
    config.publish.force = True
    descriptor = ExtensionDescriptor(
        id="ns.ext", repository="https://github.com/ns/ext", ref="v2.0.0"
    )

    context = await driver_for({"ns.ext": descriptor}).create_context(descriptor)

    assert context.ref == "v2.0.0"
    assert context.registry_version is None
    assert context.force is True


@pytest.mark.asyncio
async def test_create_context_takes_upstream_version_from_seed(registry, resolver, driver_for):
    registry.add("ns.ext", "1.0.0")
    descriptor = release("ns.ext")
    seed = PublishContext.from_dict(
        {"msVersion": "1.1.0", "msLastUpdated": "2024-03-01T00:00:00Z", "ovsxVersion": "0.9.0"}
    )
    requested = []

    async def download(descriptor, version=None):
        requested.append(version)
        return {}

    resolver.download = download

    context = await driver_for({"ns.ext": descriptor}).create_context(descriptor, seed)

    assert context.upstream_version == "1.1.0"
    assert context.upstream_last_updated.year == 2024
    assert context.version == "1.1.0"
    assert context.registry_version == "1.0.0"
    assert requested == ["1.1.0"]


@pytest.mark.asyncio
async def test_catalogue_version_wins_over_seed(driver_for):
    descriptor = ExtensionDescriptor(id="ns.ext", repository="https://github.com/ns/ext", version="1.0.5")
    seed = PublishContext(upstream_version="1.1.0")

    context = await driver_for({"ns.ext": descriptor}).create_context(descriptor, seed)

    assert context.version == "1.0.5"
    assert context.upstream_version == "1.1.0"


@pytest.mark.asyncio
async def test_run_passes_seeds_by_extension_id(config, resolver, driver_for, catalogue, assets):
    config.publish.skip_publish = True
    requested = {}
    fetch = resolver.download

    async def download(descriptor, version=None):
        requested[descriptor.id] = version
        return await fetch(descriptor, version)

    resolver.download = download

    summary = await driver_for(catalogue).run(seeds={"ns.ext": PublishContext(upstream_version="1.0.0")})

    assert requested == {"ns.ext": "1.0.0", "ns.old": None}
    assert [p.name for p in summary.built["ns.ext"]] == ["ns.ext@linux-x64.vsix"]
