"""Tools module for build steps.

Provides the process runner used for every external command
(git, yarn/npm, vsce, nvm, pyenv and catalogue build scripts).
"""

from .process import ProcessError, ProcessResult, ProcessRunner, child_environment

__all__ = [
    "ProcessError",
    "ProcessResult",
    "ProcessRunner",
    "child_environment",
]
