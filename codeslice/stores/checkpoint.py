"""Persistent, fingerprint-keyed pipeline checkpoints."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..config import DEFAULT_STATE_DIR
from ..logging import get_logger
from ..models import (
    PHASES,
    CodebaseCheckpoint,
    CodebaseManifest,
    PartitionAnalysis,
    checkpoint_from_dict,
    checkpoint_to_dict,
)

CHECKPOINT_FILENAME = "scan-checkpoint.json"

logger = get_logger("checkpoint")


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ResumeDecision:
    """Outcome of comparing a stored checkpoint against a fresh manifest."""

    resume: bool
    checkpoint: Optional[CodebaseCheckpoint]
    reason: str


class CheckpointManager:
    """Reads and writes ``<project>/<state_dir>/scan-checkpoint.json``.

    Saves overwrite the whole document without locking, so concurrent writers
    race and the last one wins.
    """

    def __init__(self, state_dir: str = DEFAULT_STATE_DIR) -> None:
        self.state_dir = state_dir

    def path_for(self, project_dir: str | Path) -> Path:
        return Path(project_dir) / self.state_dir / CHECKPOINT_FILENAME

    def create(self, manifest: CodebaseManifest) -> CodebaseCheckpoint:
        timestamp = _now()
        return CodebaseCheckpoint(
            manifest_hash=manifest.hash,
            manifest=manifest,
            created_at=timestamp,
            last_updated=timestamp,
        )

    def save(self, checkpoint: CodebaseCheckpoint, project_dir: str | Path) -> Path:
        path = self.path_for(project_dir)
        path.parent.mkdir(parents=True, exist_ok=True)
        checkpoint.last_updated = _now()
        path.write_text(json.dumps(checkpoint_to_dict(checkpoint), indent=2), encoding="utf-8")
        logger.debug("Saved checkpoint for %s (phase=%s)", project_dir, checkpoint.phase)
        return path

    def load(self, project_dir: str | Path) -> Optional[CodebaseCheckpoint]:
        """Return the stored checkpoint, or ``None`` when absent or unusable."""
        path = self.path_for(project_dir)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable checkpoint %s: %s", path, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed checkpoint %s: expected an object", path)
            return None
        try:
            return checkpoint_from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Ignoring malformed checkpoint %s: %s", path, exc)
            return None

    @staticmethod
    def is_valid(checkpoint: CodebaseCheckpoint, manifest: CodebaseManifest) -> bool:
        if checkpoint.manifest_hash != manifest.hash:
            return False
        return len(checkpoint.manifest.partitions) == len(manifest.partitions)

    def should_resume(
        self, project_dir: str | Path, manifest: CodebaseManifest
    ) -> ResumeDecision:
        checkpoint = self.load(project_dir)
        if checkpoint is None:
            return ResumeDecision(False, None, "No checkpoint found")
        if not self.is_valid(checkpoint, manifest):
            return ResumeDecision(False, None, "Checkpoint is stale (codebase has changed)")
        if is_complete(checkpoint):
            return ResumeDecision(False, None, "Checkpoint is complete, nothing to resume")
        return ResumeDecision(
            True,
            checkpoint,
            f"Can resume from {checkpoint.phase} phase ({completion_percent(checkpoint)}% complete)",
        )

    def delete(self, project_dir: str | Path) -> bool:
        path = self.path_for(project_dir)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Cannot delete checkpoint %s: %s", path, exc)
            return False
        return True


# ----------------------------------------------------------------------
# Progress helpers


def advance_phase(checkpoint: CodebaseCheckpoint, phase: str) -> None:
    """Move ``checkpoint`` to ``phase``; moving backwards is an error."""
    if phase not in PHASES:
        raise ValueError(f"Unknown phase: {phase}")
    if PHASES.index(phase) < PHASES.index(checkpoint.phase):
        raise ValueError(f"Cannot move checkpoint from {checkpoint.phase} back to {phase}")
    checkpoint.phase = phase
    checkpoint.last_updated = _now()


def _advance_at_least(checkpoint: CodebaseCheckpoint, phase: str) -> None:
    if PHASES.index(checkpoint.phase) < PHASES.index(phase):
        checkpoint.phase = phase


def record_partition(
    checkpoint: CodebaseCheckpoint, partition_id: str, analysis: PartitionAnalysis
) -> None:
    known = {spec.id for spec in checkpoint.manifest.partitions}
    if partition_id not in known:
        raise ValueError(f"Unknown partition id: {partition_id}")
    _advance_at_least(checkpoint, "exploration")
    if partition_id not in checkpoint.completed_partitions:
        checkpoint.completed_partitions.append(partition_id)
    checkpoint.partition_results[partition_id] = analysis
    checkpoint.last_updated = _now()


def record_synthesis(checkpoint: CodebaseCheckpoint, knowledge: Dict[str, Any]) -> None:
    _advance_at_least(checkpoint, "ingestion")
    checkpoint.synthesis_complete = True
    checkpoint.knowledge = knowledge
    checkpoint.last_updated = _now()


def record_memories(checkpoint: CodebaseCheckpoint, record_ids: Iterable[str]) -> None:
    checkpoint.memories_stored.extend(record_ids)
    checkpoint.last_updated = _now()


def remaining_partitions(checkpoint: CodebaseCheckpoint) -> List[str]:
    completed = set(checkpoint.completed_partitions)
    return [spec.id for spec in checkpoint.manifest.partitions if spec.id not in completed]


def completion_percent(checkpoint: CodebaseCheckpoint) -> int:
    total = len(checkpoint.manifest.partitions)
    if total == 0:
        return 100
    done = len(set(checkpoint.completed_partitions))
    return round(done / total * 100)


def is_complete(checkpoint: CodebaseCheckpoint) -> bool:
    return (
        not remaining_partitions(checkpoint)
        and checkpoint.synthesis_complete
        and bool(checkpoint.memories_stored)
    )


def resumed_analyses(checkpoint: CodebaseCheckpoint) -> List[PartitionAnalysis]:
    return list(checkpoint.partition_results.values())


def _relative_time(timestamp: str, now: datetime) -> str:
    try:
        moment = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return timestamp or "unknown"
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    minutes = int((now - moment).total_seconds() // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def format_checkpoint_status(
    checkpoint: CodebaseCheckpoint, now: Optional[datetime] = None
) -> str:
    now = now or datetime.now(UTC)
    total = len(checkpoint.manifest.partitions)
    done = len(set(checkpoint.completed_partitions))
    lines = [
        "## Checkpoint Status",
        "",
        f"Phase: {checkpoint.phase}",
        f"Created: {_relative_time(checkpoint.created_at, now)}",
        f"Last updated: {_relative_time(checkpoint.last_updated, now)}",
        "",
        f"Partitions: {done}/{total} ({completion_percent(checkpoint)}%)",
    ]
    if checkpoint.synthesis_complete:
        lines.append("Synthesis: Complete")
    if checkpoint.memories_stored:
        lines.append(f"Memories stored: {len(checkpoint.memories_stored)}")
    return "\n".join(lines)


__all__ = [
    "CHECKPOINT_FILENAME",
    "CheckpointManager",
    "ResumeDecision",
    "advance_phase",
    "completion_percent",
    "format_checkpoint_status",
    "is_complete",
    "record_memories",
    "record_partition",
    "record_synthesis",
    "remaining_partitions",
    "resumed_analyses",
]
