"""One partition per top-level directory."""

from __future__ import annotations

from typing import List

from ..models import CodebaseManifest, PartitionConfig
from .base import PartitionBuilder, merge_small_partitions, module_name, split_files, sum_tokens

ROOT_FILES_DESCRIPTION = "Root-level files"


def build_directory_partitions(
    manifest: CodebaseManifest, config: PartitionConfig
) -> List[PartitionBuilder]:
    root = manifest.structure
    builders: List[PartitionBuilder] = []

    for child in root.children:
        files = child.iter_files()
        if child.total_tokens > config.max_tokens:
            builders.extend(
                split_files(files, child.path, module_name(child.path), config.target_tokens)
            )
            continue
        builders.append(
            PartitionBuilder(
                description=f"{module_name(child.path)} ({child.primary_language})",
                directories=[child.path],
                files=files,
                tokens=child.total_tokens,
            )
        )

    if root.files:
        tokens = sum_tokens(root.files)
        if tokens > config.max_tokens:
            builders.extend(
                split_files(root.files, ".", ROOT_FILES_DESCRIPTION, config.target_tokens)
            )
        else:
            builders.append(
                PartitionBuilder(
                    description=ROOT_FILES_DESCRIPTION,
                    directories=["."],
                    files=list(root.files),
                    tokens=tokens,
                )
            )

    return merge_small_partitions(builders, config)


__all__ = ["ROOT_FILES_DESCRIPTION", "build_directory_partitions"]
