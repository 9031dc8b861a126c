"""Pipeline orchestration: scan, partition and checkpoint a codebase."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterable, List, Sequence

from .config import ScanOptions, load_config
from .context import ContextBuilder, find_config_files, format_tokens, language_breakdown
from .exploration import (
    ExplorationTask,
    batch_tasks,
    generate_exploration_tasks,
    parse_explorer_response,
)
from .ingestion import (
    DEFAULT_IMPORTANCE_MIN,
    DEFAULT_MAX_RECORDS,
    IngestionResult,
    prepare_ingestion,
)
from .logging import get_logger
from .models import CodebaseCheckpoint, CodebaseManifest, PartitionAnalysis
from .partitioning import partition
from .repo_scanner import MAX_FILE_TOKENS, RepoScanner, compute_fingerprint
from .schemas import CodebaseKnowledge
from .stores.checkpoint import (
    CheckpointManager,
    ResumeDecision,
    record_memories,
    record_partition,
    record_synthesis,
    remaining_partitions,
    resumed_analyses,
)
from .synthesis import SynthesisResult, build_synthesizer_payload, parse_synthesizer_response


class NoCheckpointError(RuntimeError):
    """Raised when a result is recorded for a project without a checkpoint."""


@dataclass
class ScanPlan:
    """Manifest plus the work still outstanding for it."""

    manifest: CodebaseManifest
    checkpoint: CodebaseCheckpoint
    decision: ResumeDecision
    remaining: List[str]
    batches: List[List[ExplorationTask]]


class Orchestrator:
    """Coordinates scanner, context builder, partitioner and checkpoints."""

    def __init__(
        self,
        scanner: RepoScanner | None = None,
        context_builder: ContextBuilder | None = None,
        checkpoints: CheckpointManager | None = None,
    ) -> None:
        self.scanner = scanner or RepoScanner()
        self.context_builder = context_builder or ContextBuilder()
        self._checkpoints = checkpoints
        self.logger = get_logger("orchestrator")

    # ------------------------------------------------------------------
    # Analysis

    def analyze(self, path: str | Path, options: ScanOptions | None = None) -> CodebaseManifest:
        """Scan ``path`` and return a partitioned, fingerprinted manifest."""
        root = Path(path).expanduser().resolve()
        options = options or self.load_options(root)
        self.logger.info("Analyzing %s", root)

        result = self.scanner.scan(root, list(options.include), list(options.exclude))
        structure = result.structure
        config_files = find_config_files(root)
        context = self.context_builder.build(root, structure, config_files)

        manifest = CodebaseManifest(
            project_dir=str(root),
            project_name=context.project_name,
            total_files=structure.file_count,
            total_tokens=structure.total_tokens,
            structure=structure,
            languages=language_breakdown(structure),
            entry_points=list(context.entry_points),
            config_files=config_files,
            partitions=[],
            global_context=context,
            skipped_files=list(result.skipped),
            hash=compute_fingerprint(str(root), structure),
            created_at=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        )

        partitions = partition(manifest, options.partition)
        manifest = replace(
            manifest,
            partitions=partitions,
            global_context=replace(context, total_partitions=len(partitions)),
        )
        self.logger.info(
            "Found %d files (%s) in %d partitions",
            manifest.total_files,
            format_tokens(manifest.total_tokens),
            len(partitions),
        )
        return manifest

    def plan(self, path: str | Path, options: ScanOptions | None = None) -> ScanPlan:
        """Analyze ``path`` and resume or start a checkpoint for it."""
        root = Path(path).expanduser().resolve()
        options = options or self.load_options(root)
        manifest = self.analyze(root, options)
        manager = self.checkpoint_manager(options)

        if options.resume:
            decision = manager.should_resume(root, manifest)
        else:
            decision = ResumeDecision(False, None, "Resume not requested")
        self.logger.info("Resume check: %s", decision.reason)

        if decision.resume and decision.checkpoint is not None:
            checkpoint = decision.checkpoint
        else:
            checkpoint = manager.create(manifest)
            manager.save(checkpoint, root)

        remaining = remaining_partitions(checkpoint)
        tasks = generate_exploration_tasks(manifest, only=remaining)
        return ScanPlan(
            manifest=manifest,
            checkpoint=checkpoint,
            decision=decision,
            remaining=remaining,
            batches=batch_tasks(tasks, options.parallel),
        )

    # ------------------------------------------------------------------
    # Recording results

    def record_partition_result(
        self,
        path: str | Path,
        partition_id: str,
        response: str,
        options: ScanOptions | None = None,
    ) -> PartitionAnalysis:
        """Validate an explorer response and store it in the checkpoint."""
        root = Path(path).expanduser().resolve()
        manager, checkpoint = self._require_checkpoint(root, options)
        tasks = generate_exploration_tasks(checkpoint.manifest, only=[partition_id])
        if not tasks:
            raise ValueError(f"Unknown partition id: {partition_id}")
        analysis = parse_explorer_response(response, tasks[0])
        record_partition(checkpoint, partition_id, analysis)
        manager.save(checkpoint, root)
        return analysis

    def record_synthesis_result(
        self, path: str | Path, response: str, options: ScanOptions | None = None
    ) -> SynthesisResult:
        root = Path(path).expanduser().resolve()
        manager, checkpoint = self._require_checkpoint(root, options)
        result = parse_synthesizer_response(response)
        if result.ok:
            record_synthesis(checkpoint, result.knowledge_dict())
            manager.save(checkpoint, root)
        return result

    def record_stored_records(
        self, path: str | Path, record_ids: Iterable[str], options: ScanOptions | None = None
    ) -> CodebaseCheckpoint:
        ids = [record_id for record_id in record_ids if record_id]
        if not ids:
            raise ValueError("No record ids to store")
        root = Path(path).expanduser().resolve()
        manager, checkpoint = self._require_checkpoint(root, options)
        record_memories(checkpoint, ids)
        manager.save(checkpoint, root)
        return checkpoint

    # ------------------------------------------------------------------
    # Later phases

    def synthesis_payload(
        self,
        path: str | Path,
        existing_titles: Sequence[str] = (),
        options: ScanOptions | None = None,
    ) -> str:
        """Build the synthesizer request from every analysis recorded so far."""
        root = Path(path).expanduser().resolve()
        _, checkpoint = self._require_checkpoint(root, options)
        analyses = resumed_analyses(checkpoint)
        if not analyses:
            raise ValueError("No partition results recorded yet")
        pending = remaining_partitions(checkpoint)
        if pending:
            self.logger.warning(
                "Building synthesis payload with %d partitions still unexplored", len(pending)
            )
        return build_synthesizer_payload(
            checkpoint.manifest.global_context, analyses, existing_titles
        )

    def prepare_records(
        self,
        path: str | Path,
        importance_min: int = DEFAULT_IMPORTANCE_MIN,
        max_records: int = DEFAULT_MAX_RECORDS,
        options: ScanOptions | None = None,
    ) -> IngestionResult:
        """Turn the recorded knowledge into records for the knowledge store."""
        root = Path(path).expanduser().resolve()
        _, checkpoint = self._require_checkpoint(root, options)
        if not checkpoint.synthesis_complete or checkpoint.knowledge is None:
            raise ValueError("Synthesis has not been recorded yet")
        knowledge = CodebaseKnowledge.model_validate(checkpoint.knowledge)
        return prepare_ingestion(
            knowledge, checkpoint.manifest.project_name, importance_min, max_records
        )

    # ------------------------------------------------------------------
    # Helpers

    @staticmethod
    def load_options(root: Path) -> ScanOptions:
        return load_config(root)

    def checkpoint_manager(self, options: ScanOptions | None = None) -> CheckpointManager:
        if self._checkpoints is not None:
            return self._checkpoints
        if options is None:
            return CheckpointManager()
        return CheckpointManager(options.state_dir)

    def _require_checkpoint(
        self, root: Path, options: ScanOptions | None
    ) -> tuple[CheckpointManager, CodebaseCheckpoint]:
        manager = self.checkpoint_manager(options or self.load_options(root))
        checkpoint = manager.load(root)
        if checkpoint is None:
            raise NoCheckpointError(f"No checkpoint found for {root}; run `codeslice plan` first")
        return manager, checkpoint


def format_manifest_summary(manifest: CodebaseManifest) -> str:
    lines = [
        f"Project: {manifest.project_name}",
        f"Path: {manifest.project_dir}",
        "",
        f"Files: {manifest.total_files}",
        f"Tokens: {format_tokens(manifest.total_tokens)}",
        "",
        "Languages:",
    ]
    for language, percent in sorted(manifest.languages.items(), key=lambda item: -item[1]):
        lines.append(f"  {language}: {percent}%")

    if manifest.global_context.frameworks:
        lines.extend(["", f"Frameworks: {', '.join(manifest.global_context.frameworks)}"])
    if manifest.entry_points:
        lines.extend(["", f"Entry points: {', '.join(manifest.entry_points[:5])}"])
    if manifest.skipped_files:
        lines.extend(["", f"Skipped: {len(manifest.skipped_files)} files"])
        too_large = [item for item in manifest.skipped_files if item.reason == "too_large"]
        if too_large:
            lines.append(f"  Too large: {len(too_large)} (>{format_tokens(MAX_FILE_TOKENS)} each)")
    return "\n".join(lines)


__all__ = [
    "NoCheckpointError",
    "Orchestrator",
    "ScanPlan",
    "format_manifest_summary",
]
