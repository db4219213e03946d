"""Shell command execution for build steps.

Commands are run through a real shell (bash by default) because catalogue
entries carry shell snippets such as ``source ~/.nvm/nvm.sh && nvm install``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


class ProcessError(Exception):
    """Raised when a command exits with a non-zero status."""

    def __init__(self, command: str, returncode: int, output: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.output = output
        message = f"Command failed with exit code {returncode}: {command}"
        if output:
            # Keep the tail, that is where npm and yarn print the actual error
            message += "\n" + output[-2000:]
        super().__init__(message)


@dataclass
class ProcessResult:
    """Result of a finished command."""

    command: str
    returncode: int
    output: str = ""


class ProcessRunner:
    """Runs shell commands asynchronously.

    Output is streamed to the log line by line unless ``quiet`` is set.
    A non-zero exit status raises ``ProcessError``.

    Example:
        >>> runner = ProcessRunner()
        >>> await runner.run("npm install", cwd=Path("/tmp/repository"))
    """

    def __init__(self, shell: str = "/bin/bash") -> None:
        """Initialize the runner.

        Args:
            shell: Shell executable used for every command.
        """
        self.shell = shell

    async def run(
        self,
        command: str,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        quiet: bool = False,
    ) -> ProcessResult:
        """Run a command and wait for it to finish.

        Args:
            command: Shell command line.
            cwd: Working directory (default: current directory).
            env: Full environment for the child; inherits ours when None.
            quiet: Do not echo the command output.

        Returns:
            ProcessResult with the combined stdout/stderr.

        Raises:
            ProcessError: If the command exits with a non-zero status.
        """
        if not quiet:
            logger.info("$ %s", command)

        process = await asyncio.create_subprocess_shell(
            command,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            executable=self.shell,
        )

        lines: list[str] = []
        assert process.stdout is not None
        async for raw in process.stdout:
            line = raw.decode("utf-8", errors="replace").rstrip()
            lines.append(line)
            if not quiet:
                logger.info("  %s", line)

        returncode = await process.wait()
        output = "\n".join(lines)

        if returncode != 0:
            raise ProcessError(command, returncode, output)

        return ProcessResult(command=command, returncode=returncode, output=output)


def child_environment(overrides: Mapping[str, str | None]) -> dict[str, str]:
    """Build a child-process environment from ours plus overrides.

    Keys whose override is None are removed rather than set.
    """
    env = os.environ.copy()
    for key, value in overrides.items():
        if value is None:
            env.pop(key, None)
        else:
            env[key] = value
    return env
