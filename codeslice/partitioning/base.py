"""Shared building blocks for the partitioning strategies."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set

from ..models import CodebaseManifest, DirectoryNode, FileInfo, PartitionConfig, PartitionSpec

BASE_PRIORITY = 5
ENTRY_FILE_BONUS = 3
ENTRY_DIR_BONUS = 2
CORE_DIR_BONUS = 2
TEST_DIR_PENALTY = 2
GENERATED_DIR_PENALTY = 3
LOW_PRIORITY_CAP = 3

MODULE_MIN_TOKENS = 5000
MODULE_MIN_FILES = 5
SIGNIFICANT_CHILD_FILES = 3

_CORE_SEGMENTS = frozenset({"src", "lib", "core"})
_TEST_SEGMENT = re.compile(r"(?:^|[_.-])(?:tests?|specs?|e2e)(?:[_.-]|$)", re.IGNORECASE)
_GENERATED_SEGMENT = re.compile(r"^(?:build|dist|out)$|generated", re.IGNORECASE)


@dataclass
class PartitionBuilder:
    """Mutable partition under construction."""

    description: str
    directories: List[str]
    files: List[FileInfo]
    tokens: int
    low_priority: bool = False
    id: str = ""
    related: Set[str] = field(default_factory=set)
    priority: int = BASE_PRIORITY

    def absorb(
        self,
        files: Sequence[FileInfo],
        tokens: int,
        directories: Iterable[str] = (),
    ) -> None:
        self.files.extend(files)
        self.tokens += tokens
        for directory in directories:
            if directory not in self.directories:
                self.directories.append(directory)

    def to_spec(self) -> PartitionSpec:
        return PartitionSpec(
            id=self.id,
            description=self.description,
            directories=list(self.directories),
            files=[info.relative_path for info in self.files],
            estimated_tokens=self.tokens,
            related_partitions=sorted(self.related),
            priority=self.priority,
        )


@dataclass
class ModuleInfo:
    """A directory subtree the partitioner prefers to keep whole."""

    path: str
    name: str
    files: List[FileInfo]
    tokens: int
    depth: int


def partition_id(number: int) -> str:
    return f"partition-{number:02d}"


def parent_directory(path: str) -> str:
    return posixpath.dirname(path) or "."


def module_name(path: str) -> str:
    """Use the last two path components as a readable name."""
    parts = [part for part in path.split("/") if part]
    if len(parts) >= 2:
        return f"{parts[-2]}/{parts[-1]}"
    return parts[-1] if parts else path


def sum_tokens(files: Iterable[FileInfo]) -> int:
    return sum(info.tokens for info in files)


def unique_directories(files: Iterable[FileInfo]) -> List[str]:
    seen: Dict[str, None] = {}
    for info in files:
        seen.setdefault(parent_directory(info.relative_path), None)
    return list(seen)


# ----------------------------------------------------------------------
# Module discovery


def identify_modules(root: DirectoryNode) -> List[ModuleInfo]:
    """Return module boundaries; descent stops at the first qualifying node."""
    modules: List[ModuleInfo] = []

    def _walk(node: DirectoryNode, depth: int) -> None:
        significant = bool(node.files) or any(
            child.file_count > SIGNIFICANT_CHILD_FILES for child in node.children
        )
        large_enough = node.total_tokens > MODULE_MIN_TOKENS or node.file_count > MODULE_MIN_FILES
        if depth >= 1 and significant and large_enough:
            modules.append(
                ModuleInfo(
                    path=node.path,
                    name=module_name(node.path),
                    files=node.iter_files(),
                    tokens=node.total_tokens,
                    depth=depth,
                )
            )
            return

        for child in node.children:
            _walk(child, depth + 1)

        if depth == 0 and node.files:
            modules.append(
                ModuleInfo(
                    path=".",
                    name="root",
                    files=list(node.files),
                    tokens=sum_tokens(node.files),
                    depth=0,
                )
            )

    _walk(root, 0)
    return modules


def find_orphan_files(root: DirectoryNode, modules: Sequence[ModuleInfo]) -> List[FileInfo]:
    covered = {info.relative_path for module in modules for info in module.files}
    return [info for info in root.iter_files() if info.relative_path not in covered]


# ----------------------------------------------------------------------
# Packing


def pack_files(
    files: Sequence[FileInfo],
    budget: int,
    label: str,
    description_format: str = "{label} (part {index})",
) -> List[PartitionBuilder]:
    """Greedy left-to-right packing of files into chunks bounded by ``budget``.

    A chunk only exceeds the budget when it holds a single oversized file.
    """
    chunks: List[List[FileInfo]] = []
    current: List[FileInfo] = []
    current_tokens = 0
    for info in files:
        if current and current_tokens + info.tokens > budget:
            chunks.append(current)
            current, current_tokens = [], 0
        current.append(info)
        current_tokens += info.tokens
    if current:
        chunks.append(current)

    builders: List[PartitionBuilder] = []
    for index, chunk in enumerate(chunks, start=1):
        description = (
            label if len(chunks) == 1 else description_format.format(label=label, index=index)
        )
        builders.append(
            PartitionBuilder(
                description=description,
                directories=unique_directories(chunk),
                files=list(chunk),
                tokens=sum_tokens(chunk),
            )
        )
    return builders


def _group_by_subdirectory(files: Sequence[FileInfo], base: str) -> Dict[str, List[FileInfo]]:
    groups: Dict[str, List[FileInfo]] = {}
    prefix = "" if base == "." else base + "/"
    for info in files:
        remainder = info.relative_path[len(prefix):] if prefix else info.relative_path
        if "/" in remainder:
            key = prefix + remainder.split("/", 1)[0]
        else:
            key = base
        groups.setdefault(key, []).append(info)
    return groups


def split_files(
    files: Sequence[FileInfo],
    base: str,
    label: str,
    budget: int,
) -> List[PartitionBuilder]:
    """Split an oversized group by immediate subdirectory, packing left to right.

    Subdirectory groups are packed in first-seen order without rebalancing. A
    group that alone exceeds ``budget`` is split the same way one level down;
    a directory's direct files fall back to file-level packing.
    """
    builders: List[PartitionBuilder] = []
    current: Optional[PartitionBuilder] = None

    for key, group in _group_by_subdirectory(files, base).items():
        group_tokens = sum_tokens(group)
        if group_tokens > budget:
            if current is not None:
                builders.append(current)
                current = None
            if key == base:
                name = posixpath.basename(key) if key != "." else label
                builders.extend(pack_files(group, budget, f"{label}: {name}"))
            else:
                builders.extend(split_files(group, key, label, budget))
            continue

        if current is not None and current.tokens + group_tokens <= budget:
            current.absorb(group, group_tokens, [key])
            continue

        if current is not None:
            builders.append(current)
        current = PartitionBuilder(
            description=f"{label}: {posixpath.basename(key) if key != '.' else 'root'}",
            directories=[key],
            files=list(group),
            tokens=group_tokens,
        )

    if current is not None:
        builders.append(current)
    return builders


def merge_small_partitions(
    builders: List[PartitionBuilder], config: PartitionConfig
) -> List[PartitionBuilder]:
    """Accumulate undersized partitions (smallest first) while within target."""
    result: List[PartitionBuilder] = []
    accumulated: Optional[PartitionBuilder] = None

    for builder in sorted(builders, key=lambda item: item.tokens):
        if builder.tokens >= config.min_tokens:
            if accumulated is not None:
                result.append(accumulated)
                accumulated = None
            result.append(builder)
        elif accumulated is None:
            accumulated = builder
        elif accumulated.tokens + builder.tokens <= config.target_tokens:
            accumulated.absorb(builder.files, builder.tokens, builder.directories)
            accumulated.description = "Merged modules"
        else:
            result.append(accumulated)
            accumulated = builder

    if accumulated is not None:
        result.append(accumulated)
    return result


# ----------------------------------------------------------------------
# Finalisation


def enforce_partition_limit(
    builders: List[PartitionBuilder], max_partitions: int
) -> List[PartitionBuilder]:
    """Merge the two smallest partitions until the count ceiling holds."""
    builders = list(builders)
    while len(builders) > max_partitions:
        ranked = sorted(range(len(builders)), key=lambda index: builders[index].tokens)
        keep, drop = sorted(ranked[:2])
        target, source = builders[keep], builders[drop]
        target.absorb(source.files, source.tokens, source.directories)
        target.description = "Merged modules"
        target.low_priority = target.low_priority and source.low_priority
        del builders[drop]
    return builders


def _directories_related(first: str, second: str) -> bool:
    if first == "." or second == ".":
        return False
    return first == second or first.startswith(second + "/") or second.startswith(first + "/")


def detect_relationships(builders: Sequence[PartitionBuilder]) -> None:
    for index, builder in enumerate(builders):
        for other in builders[index + 1:]:
            if any(
                _directories_related(mine, theirs)
                for mine in builder.directories
                for theirs in other.directories
            ):
                builder.related.add(other.id)
                other.related.add(builder.id)


def score_priority(
    directories: Sequence[str],
    files: Iterable[str],
    entry_points: Sequence[str],
) -> int:
    entry_dirs = {parent_directory(entry) for entry in entry_points}
    file_set = set(files)
    segments = [
        segment for directory in directories for segment in directory.split("/") if segment != "."
    ]

    priority = BASE_PRIORITY
    if any(entry in file_set for entry in entry_points):
        priority += ENTRY_FILE_BONUS
    if any(directory in entry_dirs for directory in directories):
        priority += ENTRY_DIR_BONUS
    if any(segment.lower() in _CORE_SEGMENTS for segment in segments):
        priority += CORE_DIR_BONUS
    if any(_TEST_SEGMENT.search(segment) for segment in segments):
        priority -= TEST_DIR_PENALTY
    if any(_GENERATED_SEGMENT.search(segment) for segment in segments):
        priority -= GENERATED_DIR_PENALTY
    return max(1, min(10, priority))


def assign_priorities(builders: Sequence[PartitionBuilder], entry_points: Sequence[str]) -> None:
    for builder in builders:
        priority = score_priority(
            builder.directories,
            (info.relative_path for info in builder.files),
            entry_points,
        )
        builder.priority = min(priority, LOW_PRIORITY_CAP) if builder.low_priority else priority


def finalize(
    builders: Iterable[PartitionBuilder],
    manifest: CodebaseManifest,
    config: PartitionConfig,
) -> List[PartitionSpec]:
    """Apply the count ceiling, number, relate, prioritise and sort."""
    kept = enforce_partition_limit([b for b in builders if b.files], config.max_partitions)
    for number, builder in enumerate(kept, start=1):
        builder.id = partition_id(number)
    detect_relationships(kept)
    assign_priorities(kept, manifest.entry_points)
    ordered = sorted(kept, key=lambda builder: -builder.priority)
    return [builder.to_spec() for builder in ordered]


__all__ = [
    "ModuleInfo",
    "PartitionBuilder",
    "assign_priorities",
    "detect_relationships",
    "enforce_partition_limit",
    "finalize",
    "find_orphan_files",
    "identify_modules",
    "merge_small_partitions",
    "module_name",
    "pack_files",
    "partition_id",
    "score_priority",
    "split_files",
]
