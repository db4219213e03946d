"""Build strategies: how an extension's sources become a .vsix file.

A descriptor selects exactly one strategy:
- CustomBuild: the catalogue's own commands produce the package
- StandardBuild: install dependencies with yarn or npm, then package with vsce
"""

from __future__ import annotations

import json
import logging
import shlex
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from extensions.catalogue import ExtensionDescriptor
from orchestrator.context import BuildEnvironment, PublishContext
from orchestrator.errors import ArtifactNotFoundError, BuildError, DependencyInstallError
from tools.process import ProcessError, ProcessRunner

logger = logging.getLogger(__name__)

DEFAULT_PACKAGE_FILE = "extension.vsix"

LEGACY_POSTINSTALL = "node ./node_modules/vscode/bin/install"
LEGACY_COMPILE = "node ./node_modules/vscode/bin/compile"


@dataclass(frozen=True)
class CustomBuild:
    """Run the catalogue's commands verbatim in the repository."""

    commands: tuple[str, ...]


@dataclass(frozen=True)
class StandardBuild:
    """Install dependencies, run an optional prepublish step, package with vsce."""

    prepublish: str | None = None


BuildStrategy = Union[CustomBuild, StandardBuild]


def select_strategy(descriptor: ExtensionDescriptor) -> BuildStrategy:
    """Pick the build strategy of a descriptor."""
    if descriptor.custom:
        return CustomBuild(commands=descriptor.custom)
    return StandardBuild(prepublish=descriptor.prepublish)


def package_directory(descriptor: ExtensionDescriptor, repo: Path) -> Path:
    """Directory holding the extension's package.json."""
    return repo / descriptor.location if descriptor.location else repo


@dataclass(frozen=True)
class InstallRecovery:
    """A named transform applied once when dependency installation fails.

    ``apply`` returns True when it changed something worth retrying for.
    """

    name: str
    apply: Callable[[Path], bool]


def migrate_legacy_vscode_dependency(package_dir: Path) -> bool:
    """Move a package off the deprecated ``vscode`` npm module.

    Drops the legacy postinstall hook and the ``vscode`` dev dependency,
    adds ``@types/vscode`` pinned to the engine version, and compiles with
    ``tsc`` instead of the legacy compile script.

    Returns:
        True if package.json was rewritten.
    """
    package_json = package_dir / "package.json"
    if not package_json.exists():
        return False

    package = json.loads(package_json.read_text(encoding="utf-8"))
    scripts = package.get("scripts") or {}
    if scripts.get("postinstall") != LEGACY_POSTINSTALL:
        return False

    del scripts["postinstall"]
    dev_dependencies = package.setdefault("devDependencies", {})
    dev_dependencies.pop("vscode", None)
    dev_dependencies["@types/vscode"] = (package.get("engines") or {}).get("vscode")

    content = json.dumps(package, indent=2).replace(LEGACY_COMPILE, "tsc")
    package_json.write_text(content, encoding="utf-8")
    return True


LEGACY_VSCODE_MIGRATION = InstallRecovery(
    name="legacy vscode module migration",
    apply=migrate_legacy_vscode_dependency,
)


async def install_dependencies(
    runner: ProcessRunner,
    command: str,
    package_dir: Path,
    env: dict[str, str],
    recovery: InstallRecovery = LEGACY_VSCODE_MIGRATION,
) -> None:
    """Install dependencies, retrying once after a recovery transform.

    Raises:
        ProcessError: If installation fails and the recovery does not apply.
        DependencyInstallError: If the retry after recovery fails as well.
    """
    try:
        await runner.run(command, cwd=package_dir, env=env)
        return
    except ProcessError:
        if not recovery.apply(package_dir):
            raise
        logger.info("`%s` failed, retrying after %s", command, recovery.name)

    try:
        await runner.run(command, cwd=package_dir, env=env)
    except ProcessError as e:
        raise DependencyInstallError(
            f"`{command}` failed again after {recovery.name}: {e}"
        ) from e


async def package_vsix(
    runner: ProcessRunner,
    package_dir: Path,
    output: Path,
    build_env: BuildEnvironment,
    use_yarn: bool = False,
    target: str | None = None,
) -> None:
    """Package an extension with vsce.

    ``VSCE_TESTS=1`` makes vsce answer yes to its interactive questions.
    """
    command = f"npx --yes @vscode/vsce package --out {shlex.quote(str(output))}"
    command += " --yarn" if use_yarn else " --no-yarn"
    if target:
        command += f" --target {shlex.quote(target)}"
    await runner.run(command, cwd=package_dir, env=build_env.as_env(VSCE_TESTS="1"))


async def run_custom_build(
    strategy: CustomBuild,
    descriptor: ExtensionDescriptor,
    context: PublishContext,
    runner: ProcessRunner,
    build_env: BuildEnvironment,
) -> Path:
    """Run custom commands and locate the package they produced.

    Returns:
        Path of the produced .vsix file.

    Raises:
        ArtifactNotFoundError: If no package exists for the requested target.
    """
    repo = _require_repo(descriptor, context)
    env = build_env.as_env()
    for command in strategy.commands:
        await runner.run(command, cwd=repo, env=env)

    extension_file = package_directory(descriptor, repo) / (
        descriptor.extension_file or DEFAULT_PACKAGE_FILE
    )

    if context.target:
        logger.info("Looking for a %s vsix package in %s...", context.target, repo)
        matches = sorted(repo.glob(f"*-{context.target}-*.vsix"))
        if not matches:
            raise ArtifactNotFoundError(
                "After running the custom commands, no .vsix file was found for "
                f"{descriptor.id}@{context.target}"
            )
        logger.info(
            "Found %d %s vsix package(s) in %s: %s",
            len(matches),
            context.target,
            repo,
            ", ".join(m.name for m in matches),
        )
        extension_file = matches[0]

    return extension_file


async def run_standard_build(
    strategy: StandardBuild,
    descriptor: ExtensionDescriptor,
    context: PublishContext,
    runner: ProcessRunner,
    build_env: BuildEnvironment,
) -> Path:
    """Install, prepublish and package an extension.

    Returns:
        Path of the produced (or declared) .vsix file.
    """
    repo = _require_repo(descriptor, context)
    package_dir = package_directory(descriptor, repo)
    env = build_env.as_env()

    use_yarn = (repo / "yarn.lock").exists()
    await install_dependencies(runner, "yarn install" if use_yarn else "npm install", package_dir, env)

    if strategy.prepublish:
        await runner.run(strategy.prepublish, cwd=repo, env=env)

    if descriptor.extension_file:
        return repo / descriptor.extension_file

    output = repo / DEFAULT_PACKAGE_FILE
    await package_vsix(runner, package_dir, output, build_env, use_yarn, context.target)
    logger.info("%s: prepared from %s", descriptor.id, repo)
    return output


async def run_strategy(
    strategy: BuildStrategy,
    descriptor: ExtensionDescriptor,
    context: PublishContext,
    runner: ProcessRunner,
    build_env: BuildEnvironment,
) -> Path:
    """Dispatch to the strategy's build function."""
    if isinstance(strategy, CustomBuild):
        return await run_custom_build(strategy, descriptor, context, runner, build_env)
    return await run_standard_build(strategy, descriptor, context, runner, build_env)


def _require_repo(descriptor: ExtensionDescriptor, context: PublishContext) -> Path:
    if context.repo is None:
        raise BuildError(f"{descriptor.id}: no source repository to build from")
    return Path(context.repo)
