"""Target matrix expansion: which builds to run for one extension."""

from __future__ import annotations

import logging
from pathlib import Path

from extensions.catalogue import ExtensionDescriptor
from orchestrator.builder import ExtensionBuilder
from orchestrator.context import PublishContext

logger = logging.getLogger(__name__)


def expand_targets(
    descriptor: ExtensionDescriptor, context: PublishContext
) -> list[PublishContext]:
    """Derive one publish context per build to perform.

    - Pre-built files (``context.files``): one build per file, restricted to
      the descriptor's targets when it declares any.
    - Declared targets: one build per target, with the target's env overrides.
    - Otherwise: a single universal build.
    """
    if context.files:
        contexts = []
        for target, file in context.files.items():
            if descriptor.target is not None and target not in descriptor.target:
                logger.info("%s: skipping, since target %s is not included", descriptor.id, target)
                continue
            contexts.append(context.for_target(target, file=Path(file)))
        return contexts

    if descriptor.target:
        return [
            context.for_target(
                target,
                environment_variables=config.env if config.structured else None,
            )
            for target, config in descriptor.target.items()
        ]

    return [context.for_target(None)]


async def build_extension(
    descriptor: ExtensionDescriptor,
    context: PublishContext,
    builder: ExtensionBuilder,
) -> list[Path]:
    """Build every target of an extension.

    Targets are built one after another; a failed target is reported by the
    builder and does not stop the remaining ones.

    Returns:
        Artifact paths of the targets that were built.
    """
    extension_files: list[Path] = []
    for target_context in expand_targets(descriptor, context):
        result = await builder.build_version(descriptor, target_context)
        if result is not None:
            extension_files.append(result.extension_file)
    return extension_files
