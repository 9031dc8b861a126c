"""Module-aware partitioning: keep natural directory subtrees together."""

from __future__ import annotations

from typing import List, Sequence

from ..logging import get_logger
from ..models import CodebaseManifest, FileInfo, PartitionConfig
from .base import (
    ModuleInfo,
    PartitionBuilder,
    find_orphan_files,
    identify_modules,
    parent_directory,
    split_files,
    sum_tokens,
    unique_directories,
)

ORPHAN_DESCRIPTION = "Configuration and utility files"

logger = get_logger("partitioning.auto")


def build_auto_partitions(
    manifest: CodebaseManifest, config: PartitionConfig
) -> List[PartitionBuilder]:
    modules = identify_modules(manifest.structure)
    logger.debug("Identified %d modules", len(modules))

    builders: List[PartitionBuilder] = []
    for module in modules:
        if module.tokens > config.max_tokens:
            builders.extend(
                split_files(module.files, module.path, module.name, config.target_tokens)
            )
        elif module.tokens >= config.min_tokens:
            builders.append(_module_builder(module))
        elif not _merge_into_sibling(module, builders, config):
            builders.append(_module_builder(module))

    orphans = find_orphan_files(manifest.structure, modules)
    if orphans:
        _attach_orphans(orphans, builders, config)
    return builders


def _module_builder(module: ModuleInfo) -> PartitionBuilder:
    return PartitionBuilder(
        description=module.name,
        directories=[module.path],
        files=list(module.files),
        tokens=module.tokens,
    )


def _merge_into_sibling(
    module: ModuleInfo, builders: Sequence[PartitionBuilder], config: PartitionConfig
) -> bool:
    parent = parent_directory(module.path)
    for builder in builders:
        if not builder.directories:
            continue
        if parent_directory(builder.directories[0]) != parent:
            continue
        if builder.tokens + module.tokens > config.target_tokens:
            continue
        builder.absorb(module.files, module.tokens, [module.path])
        builder.description = f"{builder.description} + {module.name}"
        return True
    return False


def _attach_orphans(
    orphans: List[FileInfo], builders: List[PartitionBuilder], config: PartitionConfig
) -> None:
    tokens = sum_tokens(orphans)
    if tokens < config.min_tokens and builders:
        smallest = min(builders, key=lambda builder: builder.tokens)
        if smallest.tokens + tokens <= config.max_tokens:
            smallest.absorb(orphans, tokens)
            return

    if tokens > config.max_tokens:
        dedicated = split_files(orphans, ".", ORPHAN_DESCRIPTION, config.target_tokens)
    else:
        dedicated = [
            PartitionBuilder(
                description=ORPHAN_DESCRIPTION,
                directories=unique_directories(orphans),
                files=list(orphans),
                tokens=tokens,
            )
        ]
    for builder in dedicated:
        builder.low_priority = True
    builders.extend(dedicated)
    logger.debug("Placed %d orphan files in %d dedicated partitions", len(orphans), len(dedicated))


__all__ = ["ORPHAN_DESCRIPTION", "build_auto_partitions"]
