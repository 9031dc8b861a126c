"""Exploration phase: per-partition tasks, payloads and response handling.

The agents themselves run outside codeslice. This module prepares what they
receive, batches tasks by the caller's parallelism factor and validates what
comes back.
"""

from __future__ import annotations

import json
import math
import re
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, TypeVar

from pydantic import ValidationError

from .logging import get_logger
from .models import (
    CodebaseManifest,
    CodeInsight,
    CrossReference,
    GlobalContext,
    KeyFile,
    PartitionAnalysis,
    PartitionSpec,
)
from .schemas import ExplorerResponse

SECONDS_PER_BATCH = 60
SUMMARY_DIRECTORY_LIMIT = 5

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

T = TypeVar("T")

logger = get_logger("exploration")


@dataclass(frozen=True)
class ExplorationTask:
    id: str
    partition: PartitionSpec
    global_context: GlobalContext
    project_dir: str


@dataclass(frozen=True)
class ExplorerParseResult:
    """Typed outcome of validating one explorer response."""

    ok: bool
    analysis: Optional[PartitionAnalysis] = None
    error: Optional[str] = None


@dataclass
class MergedAnalysis:
    insights: List[CodeInsight] = field(default_factory=list)
    key_files: List[KeyFile] = field(default_factory=list)
    cross_references: List[CrossReference] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    avg_confidence: float = 0.0
    avg_coverage: float = 0.0


@dataclass(frozen=True)
class ExplorationEstimate:
    batches: int
    estimated_minutes: int


def generate_exploration_tasks(
    manifest: CodebaseManifest, only: Optional[Iterable[str]] = None
) -> List[ExplorationTask]:
    """Return one task per partition, optionally restricted to ``only`` ids."""
    wanted = set(only) if only is not None else None
    return [
        ExplorationTask(
            id=spec.id,
            partition=spec,
            global_context=manifest.global_context,
            project_dir=manifest.project_dir,
        )
        for spec in manifest.partitions
        if wanted is None or spec.id in wanted
    ]


def batch_tasks(tasks: Sequence[T], parallel: int) -> List[List[T]]:
    """Split ``tasks`` into consecutive batches of at most ``parallel`` items."""
    if parallel < 1:
        raise ValueError("parallel must be at least 1")
    return [list(tasks[index:index + parallel]) for index in range(0, len(tasks), parallel)]


def build_explorer_payload(task: ExplorationTask) -> str:
    context = task.global_context
    payload = {
        "partition_id": task.partition.id,
        "partition_description": task.partition.description,
        "directories": list(task.partition.directories),
        "files": list(task.partition.files),
        "global_context": {
            "projectName": context.project_name,
            "description": context.description,
            "structureOverview": context.structure_overview,
            "languages": list(context.languages),
            "frameworks": list(context.frameworks),
            "entryPoints": list(context.entry_points),
            "configSummary": context.config_summary,
            "totalPartitions": context.total_partitions,
        },
    }
    return json.dumps(payload, indent=2)


def _short_tokens(tokens: int) -> str:
    return f"{tokens / 1000:.1f}k" if tokens >= 1000 else str(tokens)


def format_task_summary(task: ExplorationTask) -> str:
    spec = task.partition
    lines = [
        f"Partition: {spec.id}",
        f"Description: {spec.description}",
        f"Files: {len(spec.files)}",
        f"Tokens: ~{_short_tokens(spec.estimated_tokens)}",
        "",
        "Directories:",
    ]
    lines.extend(f"  - {directory}/" for directory in spec.directories[:SUMMARY_DIRECTORY_LIMIT])
    if len(spec.directories) > SUMMARY_DIRECTORY_LIMIT:
        lines.append(f"  - ... and {len(spec.directories) - SUMMARY_DIRECTORY_LIMIT} more")
    return "\n".join(lines)


# ----------------------------------------------------------------------
# Response handling


def validate_explorer_response(response: str, task: ExplorationTask) -> ExplorerParseResult:
    """Validate an explorer response against :class:`ExplorerResponse`.

    The first ``{`` through the last ``}`` of ``response`` is treated as the
    JSON document so that agents may wrap it in prose or code fences.
    """
    started = time.perf_counter()
    match = _JSON_OBJECT.search(response)
    if match is None:
        return ExplorerParseResult(ok=False, error="No JSON found in response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        return ExplorerParseResult(ok=False, error=f"Parse error: {exc}")
    try:
        parsed = ExplorerResponse.model_validate(data)
    except ValidationError as exc:
        return ExplorerParseResult(ok=False, error=_describe_validation_error(exc))

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    analysis = PartitionAnalysis(
        partition_id=task.partition.id,
        partition_description=task.partition.description,
        insights=[
            CodeInsight(
                scope=item.scope,
                type=item.type,
                title=item.title,
                insight=item.insight,
                evidence=list(item.evidence),
                importance=item.importance,
                tags=list(item.tags),
                related_areas=list(item.related_areas),
            )
            for item in parsed.insights
        ],
        key_files=[
            KeyFile(path=item.path, role=item.role, importance=item.importance)
            for item in parsed.key_files
        ],
        cross_references=[
            CrossReference(
                from_partition=task.partition.id,
                to_area=item.to_area,
                relationship=item.relationship,
            )
            for item in parsed.cross_references
        ],
        confidence=parsed.confidence,
        coverage=parsed.coverage,
        processing_time_ms=(
            parsed.processing_time if parsed.processing_time is not None else elapsed_ms
        ),
    )
    return ExplorerParseResult(ok=True, analysis=analysis)


def parse_explorer_response(response: str, task: ExplorationTask) -> PartitionAnalysis:
    """Return a usable analysis for ``task`` even when the response is broken."""
    started = time.perf_counter()
    result = validate_explorer_response(response, task)
    if result.ok and result.analysis is not None:
        return result.analysis
    logger.warning("Explorer response for %s rejected: %s", task.partition.id, result.error)
    return error_analysis(
        task,
        result.error or "Unknown error",
        int((time.perf_counter() - started) * 1000),
    )


def error_analysis(task: ExplorationTask, error: str, elapsed_ms: int = 0) -> PartitionAnalysis:
    return PartitionAnalysis(
        partition_id=task.partition.id,
        partition_description=task.partition.description,
        confidence=0,
        coverage=0,
        processing_time_ms=elapsed_ms,
        error=error,
    )


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "response"
    count = exc.error_count()
    suffix = f" (+{count - 1} more)" if count > 1 else ""
    return f"Invalid response: {location}: {first.get('msg', 'invalid value')}{suffix}"


def merge_analysis_results(results: Iterable[PartitionAnalysis]) -> MergedAnalysis:
    """Concatenate findings; averages only count results without an error."""
    merged = MergedAnalysis()
    confidence_total = 0
    coverage_total = 0
    valid = 0
    for result in results:
        merged.insights.extend(result.insights)
        merged.key_files.extend(result.key_files)
        merged.cross_references.extend(result.cross_references)
        if result.error:
            merged.errors.append(f"{result.partition_id}: {result.error}")
            continue
        confidence_total += result.confidence
        coverage_total += result.coverage
        valid += 1
    if valid:
        merged.avg_confidence = confidence_total / valid
        merged.avg_coverage = coverage_total / valid
    return merged


# ----------------------------------------------------------------------
# Progress text


def estimate_exploration(task_count: int, parallel: int) -> ExplorationEstimate:
    if parallel < 1:
        raise ValueError("parallel must be at least 1")
    batches = math.ceil(task_count / parallel)
    return ExplorationEstimate(
        batches=batches,
        estimated_minutes=math.ceil(batches * SECONDS_PER_BATCH / 60),
    )


def format_exploration_progress(completed: int, total: int, current: Sequence[str] = ()) -> str:
    percent = round(completed / total * 100) if total else 100
    lines = [f"Progress: {completed}/{total} partitions ({percent}%)"]
    if current:
        lines.append(f"Currently exploring: {', '.join(current)}")
    return "\n".join(lines)


def format_exploration_instructions(tasks: Sequence[ExplorationTask], parallel: int) -> str:
    estimate = estimate_exploration(len(tasks), parallel)
    lines = [
        "## Exploration Phase",
        "",
        f"Partitions to analyze: {len(tasks)}",
        f"Parallel agents: {parallel}",
        f"Batches: {estimate.batches}",
        f"Estimated time: ~{estimate.estimated_minutes} minutes",
        "",
        "### Partitions:",
        "",
    ]
    for task in tasks:
        spec = task.partition
        lines.append(
            f"- **{spec.id}**: {spec.description} "
            f"({len(spec.files)} files, ~{_short_tokens(spec.estimated_tokens)} tokens)"
        )
    return "\n".join(lines)


__all__ = [
    "ExplorationEstimate",
    "ExplorationTask",
    "ExplorerParseResult",
    "MergedAnalysis",
    "batch_tasks",
    "build_explorer_payload",
    "error_analysis",
    "estimate_exploration",
    "format_exploration_instructions",
    "format_exploration_progress",
    "format_task_summary",
    "generate_exploration_tasks",
    "merge_analysis_results",
    "parse_explorer_response",
    "validate_explorer_response",
]
