"""Best-effort runtime version pinning for builds.

Pinning never fails a build: every attempt ends in a PinResult that is
logged and otherwise ignored.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from tools.process import ProcessError, ProcessRunner

logger = logging.getLogger(__name__)

NVMRC_FILE = ".nvmrc"


class PinOutcome(str, Enum):
    """Outcome of a pinning attempt."""

    APPLIED = "applied"
    NOT_APPLICABLE = "not_applicable"
    FAILED_IGNORED = "failed_ignored"


@dataclass
class PinResult:
    """Result of pinning one runtime."""

    runtime: str
    outcome: PinOutcome
    detail: str = ""


def find_up(file_name: str, start: Path) -> Path | None:
    """Find a file in ``start`` or any of its parents."""
    start = start.resolve()
    for directory in [start, *start.parents]:
        candidate = directory / file_name
        if candidate.is_file():
            return candidate
    return None


async def pin_node_version(
    runner: ProcessRunner, package_dir: Path, env: Mapping[str, str] | None = None
) -> PinResult:
    """Install the Node.js version the project prefers (via nvm)."""
    nvmrc = find_up(NVMRC_FILE, package_dir)
    if nvmrc is None:
        return PinResult("node", PinOutcome.NOT_APPLICABLE, "no .nvmrc found")

    try:
        await runner.run("source ~/.nvm/nvm.sh && nvm install", cwd=package_dir, env=env, quiet=True)
    except (ProcessError, OSError) as e:
        return PinResult("node", PinOutcome.FAILED_IGNORED, str(e))
    return PinResult("node", PinOutcome.APPLIED, f"from {nvmrc}")


async def pin_python_version(
    runner: ProcessRunner,
    version: str | None,
    package_dir: Path,
    env: Mapping[str, str] | None = None,
) -> PinResult:
    """Install and select a Python version (via pyenv)."""
    if not version:
        return PinResult("python", PinOutcome.NOT_APPLICABLE, "no python version requested")

    logger.debug("Installing Python %s...", version)
    quoted = shlex.quote(version)
    try:
        await runner.run(
            f"pyenv install -s {quoted} && pyenv global {quoted}", cwd=package_dir, env=env
        )
    except (ProcessError, OSError) as e:
        return PinResult("python", PinOutcome.FAILED_IGNORED, str(e))
    return PinResult("python", PinOutcome.APPLIED, version)


async def restore_python_version(runner: ProcessRunner, default_version: str) -> None:
    """Select the default Python version again after a build."""
    await runner.run(f"pyenv global {shlex.quote(default_version)}", quiet=True)


def log_pin_result(label: str, result: PinResult) -> None:
    """Log a pin result; failures are reported but never raised."""
    if result.outcome == PinOutcome.FAILED_IGNORED:
        logger.warning("%s: could not pin %s, continuing: %s", label, result.runtime, result.detail)
    elif result.outcome == PinOutcome.APPLIED:
        logger.info("%s: pinned %s (%s)", label, result.runtime, result.detail)
    else:
        logger.debug("%s: %s pin not applicable (%s)", label, result.runtime, result.detail)
