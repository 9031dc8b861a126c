"""Core data models shared across codeslice components.

JSON documents written by codeslice (checkpoints, exploration payloads) use
camelCase keys so they stay readable by other tools consuming the same
checkpoint format. The ``*_to_dict`` / ``*_from_dict`` helpers own that
mapping; ``*_from_dict`` raises ``KeyError``/``TypeError``/``ValueError`` on
malformed input and leaves recovery to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

UNKNOWN_LANGUAGE = "Unknown"

SKIP_REASONS = ("too_large", "binary", "excluded")
PARTITION_MODES = ("auto", "directory", "flat")
PHASES = ("analysis", "exploration", "synthesis", "ingestion")


@dataclass(frozen=True)
class FileInfo:
    """Metadata for an individual scanned file."""

    path: str
    relative_path: str
    size: int
    tokens: int
    language: str
    lines: int
    digest: str = ""


@dataclass(frozen=True)
class DirectoryNode:
    """Directory in the scanned structure tree with aggregated totals."""

    path: str
    files: List[FileInfo] = field(default_factory=list)
    children: List["DirectoryNode"] = field(default_factory=list)
    total_tokens: int = 0
    file_count: int = 0
    primary_language: str = UNKNOWN_LANGUAGE

    def iter_files(self) -> List[FileInfo]:
        """Return every file below this node, direct files first."""
        collected: List[FileInfo] = list(self.files)
        for child in self.children:
            collected.extend(child.iter_files())
        return collected


@dataclass(frozen=True)
class SkippedFile:
    """File left out of the scan, kept for auditing."""

    path: str
    reason: str
    size: Optional[int] = None
    tokens: Optional[int] = None


@dataclass(frozen=True)
class GlobalContext:
    """Project-level context shared with every partition request."""

    project_name: str
    description: str
    structure_overview: str
    languages: List[str] = field(default_factory=list)
    frameworks: List[str] = field(default_factory=list)
    entry_points: List[str] = field(default_factory=list)
    config_summary: str = ""
    readme: Optional[str] = None
    total_partitions: int = 0


@dataclass(frozen=True)
class PartitionSpec:
    """A bounded group of files handed to the exploration step."""

    id: str
    description: str
    directories: List[str]
    files: List[str]
    estimated_tokens: int
    related_partitions: List[str] = field(default_factory=list)
    priority: int = 5


@dataclass(frozen=True)
class PartitionConfig:
    """Sizing rules for the partitioner."""

    mode: str = "auto"
    target_tokens: int = 80_000
    min_tokens: int = 10_000
    max_tokens: int = 100_000
    max_partitions: int = 50

    def __post_init__(self) -> None:
        if self.mode not in PARTITION_MODES:
            raise ValueError(
                f"Unknown partition mode '{self.mode}' (expected one of {', '.join(PARTITION_MODES)})"
            )
        if not 0 < self.min_tokens <= self.target_tokens <= self.max_tokens:
            raise ValueError(
                "Partition token limits must satisfy 0 < min_tokens <= target_tokens <= max_tokens"
            )
        if self.max_partitions < 1:
            raise ValueError("max_partitions must be at least 1")


@dataclass(frozen=True)
class CodebaseManifest:
    """Complete scan result consumed by the partitioner and checkpoints."""

    project_dir: str
    project_name: str
    total_files: int
    total_tokens: int
    structure: DirectoryNode
    languages: Dict[str, int]
    entry_points: List[str]
    config_files: List[str]
    partitions: List[PartitionSpec]
    global_context: GlobalContext
    skipped_files: List[SkippedFile]
    hash: str
    created_at: str

    def all_files(self) -> List[FileInfo]:
        return self.structure.iter_files()


@dataclass
class CodeInsight:
    """A single finding reported by the exploration collaborator."""

    scope: str
    type: str
    title: str
    insight: str
    evidence: List[str] = field(default_factory=list)
    importance: int = 5
    tags: List[str] = field(default_factory=list)
    related_areas: List[str] = field(default_factory=list)


@dataclass
class KeyFile:
    path: str
    role: str
    importance: int = 5


@dataclass
class CrossReference:
    from_partition: str
    to_area: str
    relationship: str = "uses"


@dataclass
class PartitionAnalysis:
    """Validated exploration result for one partition."""

    partition_id: str
    partition_description: str
    insights: List[CodeInsight] = field(default_factory=list)
    key_files: List[KeyFile] = field(default_factory=list)
    cross_references: List[CrossReference] = field(default_factory=list)
    confidence: int = 0
    coverage: int = 0
    processing_time_ms: int = 0
    error: Optional[str] = None


@dataclass
class CodebaseCheckpoint:
    """Persisted pipeline progress keyed to a manifest fingerprint."""

    manifest_hash: str
    manifest: CodebaseManifest
    phase: str = "analysis"
    completed_partitions: List[str] = field(default_factory=list)
    partition_results: Dict[str, PartitionAnalysis] = field(default_factory=dict)
    synthesis_complete: bool = False
    knowledge: Optional[Dict[str, Any]] = None
    memories_stored: List[str] = field(default_factory=list)
    created_at: str = ""
    last_updated: str = ""


# ----------------------------------------------------------------------
# Serialisation


def _require_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise TypeError(f"{what} must be an object, got {type(data).__name__}")
    return data


def file_to_dict(info: FileInfo) -> Dict[str, Any]:
    return {
        "path": info.path,
        "relativePath": info.relative_path,
        "size": info.size,
        "tokens": info.tokens,
        "language": info.language,
        "lines": info.lines,
        "digest": info.digest,
    }


def file_from_dict(data: Mapping[str, Any]) -> FileInfo:
    data = _require_mapping(data, "file")
    return FileInfo(
        path=str(data["path"]),
        relative_path=str(data["relativePath"]),
        size=int(data["size"]),
        tokens=int(data["tokens"]),
        language=str(data.get("language") or UNKNOWN_LANGUAGE),
        lines=int(data.get("lines", 0)),
        digest=str(data.get("digest", "")),
    )


def node_to_dict(node: DirectoryNode) -> Dict[str, Any]:
    return {
        "path": node.path,
        "files": [file_to_dict(info) for info in node.files],
        "children": [node_to_dict(child) for child in node.children],
        "totalTokens": node.total_tokens,
        "primaryLanguage": node.primary_language,
        "fileCount": node.file_count,
    }


def node_from_dict(data: Mapping[str, Any]) -> DirectoryNode:
    data = _require_mapping(data, "directory")
    return DirectoryNode(
        path=str(data["path"]),
        files=[file_from_dict(item) for item in data.get("files", [])],
        children=[node_from_dict(item) for item in data.get("children", [])],
        total_tokens=int(data["totalTokens"]),
        file_count=int(data["fileCount"]),
        primary_language=str(data.get("primaryLanguage") or UNKNOWN_LANGUAGE),
    )


def skipped_to_dict(skipped: SkippedFile) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"path": skipped.path, "reason": skipped.reason}
    if skipped.size is not None:
        payload["size"] = skipped.size
    if skipped.tokens is not None:
        payload["tokens"] = skipped.tokens
    return payload


def skipped_from_dict(data: Mapping[str, Any]) -> SkippedFile:
    data = _require_mapping(data, "skipped file")
    reason = str(data["reason"])
    if reason not in SKIP_REASONS:
        raise ValueError(f"Unknown skip reason: {reason}")
    size = data.get("size")
    tokens = data.get("tokens")
    return SkippedFile(
        path=str(data["path"]),
        reason=reason,
        size=int(size) if size is not None else None,
        tokens=int(tokens) if tokens is not None else None,
    )


def context_to_dict(context: GlobalContext) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "projectName": context.project_name,
        "description": context.description,
        "structureOverview": context.structure_overview,
        "languages": list(context.languages),
        "frameworks": list(context.frameworks),
        "entryPoints": list(context.entry_points),
        "configSummary": context.config_summary,
        "totalPartitions": context.total_partitions,
    }
    if context.readme is not None:
        payload["readme"] = context.readme
    return payload


def context_from_dict(data: Mapping[str, Any]) -> GlobalContext:
    data = _require_mapping(data, "globalContext")
    readme = data.get("readme")
    return GlobalContext(
        project_name=str(data["projectName"]),
        description=str(data.get("description", "")),
        structure_overview=str(data.get("structureOverview", "")),
        languages=[str(item) for item in data.get("languages", [])],
        frameworks=[str(item) for item in data.get("frameworks", [])],
        entry_points=[str(item) for item in data.get("entryPoints", [])],
        config_summary=str(data.get("configSummary", "")),
        readme=str(readme) if readme is not None else None,
        total_partitions=int(data.get("totalPartitions", 0)),
    )


def partition_to_dict(spec: PartitionSpec) -> Dict[str, Any]:
    return {
        "id": spec.id,
        "description": spec.description,
        "directories": list(spec.directories),
        "files": list(spec.files),
        "estimatedTokens": spec.estimated_tokens,
        "relatedPartitions": list(spec.related_partitions),
        "priority": spec.priority,
    }


def partition_from_dict(data: Mapping[str, Any]) -> PartitionSpec:
    data = _require_mapping(data, "partition")
    return PartitionSpec(
        id=str(data["id"]),
        description=str(data.get("description", "")),
        directories=[str(item) for item in data["directories"]],
        files=[str(item) for item in data["files"]],
        estimated_tokens=int(data["estimatedTokens"]),
        related_partitions=[str(item) for item in data.get("relatedPartitions", [])],
        priority=int(data.get("priority", 5)),
    )


def manifest_to_dict(manifest: CodebaseManifest) -> Dict[str, Any]:
    return {
        "projectDir": manifest.project_dir,
        "projectName": manifest.project_name,
        "totalFiles": manifest.total_files,
        "totalTokens": manifest.total_tokens,
        "structure": node_to_dict(manifest.structure),
        "languages": dict(manifest.languages),
        "entryPoints": list(manifest.entry_points),
        "configFiles": list(manifest.config_files),
        "partitions": [partition_to_dict(spec) for spec in manifest.partitions],
        "globalContext": context_to_dict(manifest.global_context),
        "skippedFiles": [skipped_to_dict(item) for item in manifest.skipped_files],
        "hash": manifest.hash,
        "createdAt": manifest.created_at,
    }


def manifest_from_dict(data: Mapping[str, Any]) -> CodebaseManifest:
    data = _require_mapping(data, "manifest")
    languages = data.get("languages", {})
    if not isinstance(languages, Mapping):
        raise TypeError("manifest languages must be a mapping")
    return CodebaseManifest(
        project_dir=str(data["projectDir"]),
        project_name=str(data["projectName"]),
        total_files=int(data["totalFiles"]),
        total_tokens=int(data["totalTokens"]),
        structure=node_from_dict(data["structure"]),
        languages={str(key): int(value) for key, value in languages.items()},
        entry_points=[str(item) for item in data.get("entryPoints", [])],
        config_files=[str(item) for item in data.get("configFiles", [])],
        partitions=[partition_from_dict(item) for item in data.get("partitions", [])],
        global_context=context_from_dict(data["globalContext"]),
        skipped_files=[skipped_from_dict(item) for item in data.get("skippedFiles", [])],
        hash=str(data["hash"]),
        created_at=str(data.get("createdAt", "")),
    )


def analysis_to_dict(analysis: PartitionAnalysis) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "partitionId": analysis.partition_id,
        "partitionDescription": analysis.partition_description,
        "insights": [
            {
                "scope": item.scope,
                "type": item.type,
                "title": item.title,
                "insight": item.insight,
                "evidence": list(item.evidence),
                "importance": item.importance,
                "tags": list(item.tags),
                "relatedAreas": list(item.related_areas),
            }
            for item in analysis.insights
        ],
        "keyFiles": [
            {"path": item.path, "role": item.role, "importance": item.importance}
            for item in analysis.key_files
        ],
        "crossReferences": [
            {
                "fromPartition": item.from_partition,
                "toArea": item.to_area,
                "relationship": item.relationship,
            }
            for item in analysis.cross_references
        ],
        "confidence": analysis.confidence,
        "coverage": analysis.coverage,
        "processingTime": analysis.processing_time_ms,
    }
    if analysis.error is not None:
        payload["error"] = analysis.error
    return payload


def _insight_from_dict(data: Any) -> CodeInsight:
    item = _require_mapping(data, "insight")
    return CodeInsight(
        scope=str(item["scope"]),
        type=str(item["type"]),
        title=str(item["title"]),
        insight=str(item["insight"]),
        evidence=[str(value) for value in item.get("evidence", [])],
        importance=int(item.get("importance", 5)),
        tags=[str(value) for value in item.get("tags", [])],
        related_areas=[str(value) for value in item.get("relatedAreas", [])],
    )


def _key_file_from_dict(data: Any) -> KeyFile:
    item = _require_mapping(data, "key file")
    return KeyFile(
        path=str(item["path"]),
        role=str(item["role"]),
        importance=int(item.get("importance", 5)),
    )


def _cross_reference_from_dict(data: Any) -> CrossReference:
    item = _require_mapping(data, "cross reference")
    return CrossReference(
        from_partition=str(item["fromPartition"]),
        to_area=str(item["toArea"]),
        relationship=str(item.get("relationship", "uses")),
    )


def analysis_from_dict(data: Mapping[str, Any]) -> PartitionAnalysis:
    data = _require_mapping(data, "partition result")
    error = data.get("error")
    return PartitionAnalysis(
        partition_id=str(data["partitionId"]),
        partition_description=str(data.get("partitionDescription", "")),
        insights=[_insight_from_dict(item) for item in data.get("insights", [])],
        key_files=[_key_file_from_dict(item) for item in data.get("keyFiles", [])],
        cross_references=[
            _cross_reference_from_dict(item) for item in data.get("crossReferences", [])
        ],
        confidence=int(data.get("confidence", 0)),
        coverage=int(data.get("coverage", 0)),
        processing_time_ms=int(data.get("processingTime", 0)),
        error=str(error) if error is not None else None,
    )


def checkpoint_to_dict(checkpoint: CodebaseCheckpoint) -> Dict[str, Any]:
    return {
        "manifestHash": checkpoint.manifest_hash,
        "manifest": manifest_to_dict(checkpoint.manifest),
        "phase": checkpoint.phase,
        "completedPartitions": list(checkpoint.completed_partitions),
        "partitionResults": {
            key: analysis_to_dict(value)
            for key, value in checkpoint.partition_results.items()
        },
        "synthesisComplete": checkpoint.synthesis_complete,
        "knowledge": checkpoint.knowledge,
        "memoriesStored": list(checkpoint.memories_stored),
        "createdAt": checkpoint.created_at,
        "lastUpdated": checkpoint.last_updated,
    }


def checkpoint_from_dict(data: Mapping[str, Any]) -> CodebaseCheckpoint:
    data = _require_mapping(data, "checkpoint")
    phase = str(data["phase"])
    if phase not in PHASES:
        raise ValueError(f"Unknown checkpoint phase: {phase}")
    results = data.get("partitionResults", {})
    if not isinstance(results, Mapping):
        raise TypeError("partitionResults must be a mapping")
    knowledge = data.get("knowledge")
    if knowledge is not None and not isinstance(knowledge, dict):
        raise TypeError("knowledge must be an object or null")
    return CodebaseCheckpoint(
        manifest_hash=str(data["manifestHash"]),
        manifest=manifest_from_dict(data["manifest"]),
        phase=phase,
        completed_partitions=[str(item) for item in data.get("completedPartitions", [])],
        partition_results={
            str(key): analysis_from_dict(value) for key, value in results.items()
        },
        synthesis_complete=bool(data.get("synthesisComplete", False)),
        knowledge=knowledge,
        memories_stored=[str(item) for item in data.get("memoriesStored", [])],
        created_at=str(data.get("createdAt", "")),
        last_updated=str(data.get("lastUpdated", "")),
    )


__all__ = [
    "CodeInsight",
    "CodebaseCheckpoint",
    "CodebaseManifest",
    "CrossReference",
    "DirectoryNode",
    "FileInfo",
    "GlobalContext",
    "KeyFile",
    "PARTITION_MODES",
    "PHASES",
    "PartitionAnalysis",
    "PartitionConfig",
    "PartitionSpec",
    "SKIP_REASONS",
    "SkippedFile",
    "UNKNOWN_LANGUAGE",
    "analysis_from_dict",
    "analysis_to_dict",
    "checkpoint_from_dict",
    "checkpoint_to_dict",
    "context_to_dict",
    "manifest_from_dict",
    "manifest_to_dict",
    "partition_to_dict",
]
