"""Path-ordered partitioning that ignores directory structure."""

from __future__ import annotations

from typing import List

from ..models import CodebaseManifest, PartitionConfig
from .base import PartitionBuilder, pack_files


def build_flat_partitions(
    manifest: CodebaseManifest, config: PartitionConfig
) -> List[PartitionBuilder]:
    files = sorted(manifest.all_files(), key=lambda info: info.relative_path)
    return pack_files(
        files,
        config.target_tokens,
        "Files chunk",
        description_format="{label} {index}",
    )


__all__ = ["build_flat_partitions"]
