"""Split a scanned codebase into bounded, coherent partitions."""

from __future__ import annotations

from typing import Callable, Dict, List, Sequence

from ..logging import get_logger
from ..models import CodebaseManifest, PartitionConfig, PartitionSpec
from .auto import build_auto_partitions
from .base import PartitionBuilder, finalize, partition_id
from .directory import build_directory_partitions
from .flat import build_flat_partitions

SINGLE_PARTITION_PRIORITY = 10

StrategyFn = Callable[[CodebaseManifest, PartitionConfig], List[PartitionBuilder]]

PARTITION_STRATEGIES: Dict[str, StrategyFn] = {
    "auto": build_auto_partitions,
    "directory": build_directory_partitions,
    "flat": build_flat_partitions,
}

logger = get_logger("partitioning")


def partition(manifest: CodebaseManifest, config: PartitionConfig) -> List[PartitionSpec]:
    """Partition ``manifest`` according to ``config``.

    Every scanned file lands in exactly one non-empty partition and the
    result never holds more than ``config.max_partitions`` entries. A corpus
    that fits within ``max_tokens`` always becomes a single partition.
    """
    files = manifest.all_files()
    if not files:
        return []

    if manifest.total_tokens <= config.max_tokens:
        return [
            PartitionSpec(
                id=partition_id(1),
                description=f"Complete codebase: {manifest.project_name}",
                directories=["."],
                files=[info.relative_path for info in files],
                estimated_tokens=manifest.total_tokens,
                related_partitions=[],
                priority=SINGLE_PARTITION_PRIORITY,
            )
        ]

    try:
        strategy = PARTITION_STRATEGIES[config.mode]
    except KeyError:
        raise ValueError(f"Unknown partition mode: {config.mode}") from None

    builders = strategy(manifest, config)
    partitions = finalize(builders, manifest, config)
    logger.debug(
        "Partitioned %d files (%d tokens) into %d partitions using %s mode",
        len(files),
        manifest.total_tokens,
        len(partitions),
        config.mode,
    )
    return partitions


def _format_tokens(tokens: int) -> str:
    return f"{tokens / 1000:.1f}k" if tokens >= 1000 else str(tokens)


def format_partition_summary(partitions: Sequence[PartitionSpec]) -> str:
    lines: List[str] = [f"Partitions: {len(partitions)}", ""]
    for spec in partitions:
        lines.append(
            f"{spec.id}: {spec.description} "
            f"({_format_tokens(spec.estimated_tokens)} tokens, {len(spec.files)} files)"
        )
        for directory in spec.directories[:3]:
            lines.append(f"  - {directory}/")
        if len(spec.directories) > 3:
            lines.append(f"  - ... and {len(spec.directories) - 3} more")
    return "\n".join(lines)


__all__ = [
    "PARTITION_STRATEGIES",
    "format_partition_summary",
    "partition",
]
