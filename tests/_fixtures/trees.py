"""In-memory directory trees with arbitrary token counts."""

from __future__ import annotations

from typing import Dict, List, Mapping, Sequence, Tuple

from codeslice.models import (
    CodebaseManifest,
    DirectoryNode,
    FileInfo,
    GlobalContext,
)
from codeslice.repo_scanner import detect_language


def build_tree(sizes: Mapping[str, int]) -> DirectoryNode:
    """Build a ``DirectoryNode`` tree from ``relative path -> tokens``."""
    return _build_node(".", sorted(sizes.items()))


def _build_node(path: str, entries: Sequence[Tuple[str, int]]) -> DirectoryNode:
    prefix = "" if path == "." else path + "/"
    files: List[FileInfo] = []
    groups: Dict[str, List[Tuple[str, int]]] = {}
    for relative, tokens in entries:
        rest = relative[len(prefix):]
        if "/" in rest:
            groups.setdefault(prefix + rest.split("/", 1)[0], []).append((relative, tokens))
        else:
            files.append(
                FileInfo(
                    path=f"/project/{relative}",
                    relative_path=relative,
                    size=tokens * 4,
                    tokens=tokens,
                    language=detect_language(relative),
                    lines=max(1, tokens // 10),
                )
            )
    children = [_build_node(child, items) for child, items in groups.items()]
    return DirectoryNode(
        path=path,
        files=files,
        children=children,
        total_tokens=sum(info.tokens for info in files)
        + sum(child.total_tokens for child in children),
        file_count=len(files) + sum(child.file_count for child in children),
        primary_language="Python",
    )


def make_manifest(
    sizes: Mapping[str, int],
    *,
    entry_points: Sequence[str] = (),
    name: str = "demo",
) -> CodebaseManifest:
    structure = build_tree(sizes)
    context = GlobalContext(
        project_name=name,
        description="",
        structure_overview="",
        entry_points=list(entry_points),
    )
    return CodebaseManifest(
        project_dir="/project",
        project_name=name,
        total_files=structure.file_count,
        total_tokens=structure.total_tokens,
        structure=structure,
        languages={},
        entry_points=list(entry_points),
        config_files=[],
        partitions=[],
        global_context=context,
        skipped_files=[],
        hash="fixture",
        created_at="2024-01-01T00:00:00Z",
    )


__all__ = ["build_tree", "make_manifest"]
