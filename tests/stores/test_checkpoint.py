from __future__ import annotations

import json
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

import pytest

from codeslice.models import CodeInsight, PartitionAnalysis, PartitionConfig
from codeslice.partitioning import partition
from codeslice.stores.checkpoint import (
    CheckpointManager,
    advance_phase,
    completion_percent,
    format_checkpoint_status,
    is_complete,
    record_memories,
    record_partition,
    record_synthesis,
    remaining_partitions,
)
from tests._fixtures.trees import make_manifest

SIZES = {"app/x.py": 60_000, "lib/y.py": 45_000, "tools/z.py": 30_000}


def _manifest():
    manifest = make_manifest(SIZES)
    return replace(manifest, partitions=partition(manifest, PartitionConfig()))


def _analysis(partition_id: str) -> PartitionAnalysis:
    return PartitionAnalysis(
        partition_id=partition_id,
        partition_description="demo",
        confidence=8,
        coverage=7,
        processing_time_ms=120,
    )


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    manager = CheckpointManager()
    manifest = _manifest()
    checkpoint = manager.create(manifest)
    record_partition(checkpoint, "partition-01", _analysis("partition-01"))

    path = manager.save(checkpoint, tmp_path)
    loaded = manager.load(tmp_path)

    assert path == tmp_path / ".codeslice" / "scan-checkpoint.json"
    assert json.loads(path.read_text(encoding="utf-8"))["manifestHash"] == "fixture"
    assert loaded is not None
    assert loaded.phase == "exploration"
    assert loaded.completed_partitions == ["partition-01"]
    assert loaded.partition_results["partition-01"].confidence == 8
    assert loaded.manifest.partitions == manifest.partitions
    assert loaded.manifest.structure.file_count == 3
    assert loaded.last_updated.endswith("Z")


def test_load_returns_none_for_missing_or_corrupt_files(tmp_path: Path) -> None:
    manager = CheckpointManager()
    assert manager.load(tmp_path) is None

    path = manager.path_for(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")
    assert manager.load(tmp_path) is None

    path.write_text("[1, 2, 3]", encoding="utf-8")
    assert manager.load(tmp_path) is None

    path.write_text(json.dumps({"phase": "analysis"}), encoding="utf-8")
    assert manager.load(tmp_path) is None

    path.write_text(
        json.dumps({"phase": "teleport", "manifestHash": "x", "manifest": {}}),
        encoding="utf-8",
    )
    assert manager.load(tmp_path) is None

    path.write_text(
        json.dumps({"manifestHash": "x", "phase": "analysis", "manifest": []}),
        encoding="utf-8",
    )
    assert manager.load(tmp_path) is None


def _break_results(document):
    document["partitionResults"]["partition-01"] = ["not", "an", "object"]


def _break_insight(document):
    document["partitionResults"]["partition-01"]["insights"] = ["just a string"]


def _break_structure(document):
    document["manifest"]["structure"]["files"] = "src/app.py"


def _break_context(document):
    document["manifest"]["globalContext"] = None


@pytest.mark.parametrize(
    "corrupt", [_break_results, _break_insight, _break_structure, _break_context]
)
def test_structurally_invalid_checkpoint_counts_as_missing(tmp_path: Path, corrupt) -> None:
    manager = CheckpointManager()
    manifest = _manifest()
    checkpoint = manager.create(manifest)
    analysis = _analysis("partition-01")
    analysis.insights.append(
        CodeInsight(scope="module", type="pattern", title="Registry", insight="Lookup table.")
    )
    record_partition(checkpoint, "partition-01", analysis)
    path = manager.save(checkpoint, tmp_path)

    document = json.loads(path.read_text(encoding="utf-8"))
    corrupt(document)
    path.write_text(json.dumps(document), encoding="utf-8")

    assert manager.load(tmp_path) is None
    decision = manager.should_resume(tmp_path, manifest)
    assert decision.resume is False
    assert decision.reason == "No checkpoint found"


def test_custom_state_dir_is_honoured(tmp_path: Path) -> None:
    manager = CheckpointManager(".cache/scan")
    manager.save(manager.create(_manifest()), tmp_path)

    assert (tmp_path / ".cache" / "scan" / "scan-checkpoint.json").is_file()
    assert CheckpointManager().load(tmp_path) is None


def test_checkpoint_goes_stale_after_codebase_changes(repo_builder) -> None:
    repo_builder.write({"src/app.py": "value = 1\n"})
    root = repo_builder.path()
    manager = CheckpointManager()
    manifest = repo_builder.analyze()
    manager.save(manager.create(manifest), root)

    unchanged = manager.should_resume(root, repo_builder.analyze())
    assert unchanged.resume is True
    assert unchanged.reason == "Can resume from analysis phase (0% complete)"

    repo_builder.write({"src/extra.py": "value = 2\n"})
    changed = manager.should_resume(root, repo_builder.analyze())
    assert changed.resume is False
    assert changed.checkpoint is None
    assert changed.reason == "Checkpoint is stale (codebase has changed)"


def test_should_resume_without_checkpoint(tmp_path: Path) -> None:
    decision = CheckpointManager().should_resume(tmp_path, _manifest())

    assert decision.resume is False
    assert decision.reason == "No checkpoint found"


def test_partition_count_mismatch_invalidates() -> None:
    manifest = _manifest()
    checkpoint = CheckpointManager().create(manifest)

    assert CheckpointManager.is_valid(checkpoint, manifest)
    trimmed = replace(manifest, partitions=manifest.partitions[:1])
    assert not CheckpointManager.is_valid(checkpoint, trimmed)


def test_complete_checkpoint_is_not_resumed(tmp_path: Path) -> None:
    manager = CheckpointManager()
    manifest = _manifest()
    checkpoint = manager.create(manifest)
    for spec in manifest.partitions:
        record_partition(checkpoint, spec.id, _analysis(spec.id))
    record_synthesis(checkpoint, {"overview": "demo"})
    assert not is_complete(checkpoint)

    record_memories(checkpoint, ["mem-1", "mem-2"])
    manager.save(checkpoint, tmp_path)

    decision = manager.should_resume(tmp_path, manifest)
    assert is_complete(checkpoint)
    assert decision.resume is False
    assert decision.reason == "Checkpoint is complete, nothing to resume"


def test_progress_tracking_and_phase_order() -> None:
    checkpoint = CheckpointManager().create(_manifest())
    assert len(checkpoint.manifest.partitions) == 3
    assert completion_percent(checkpoint) == 0

    record_partition(checkpoint, "partition-02", _analysis("partition-02"))
    record_partition(checkpoint, "partition-02", _analysis("partition-02"))

    assert checkpoint.completed_partitions == ["partition-02"]
    assert remaining_partitions(checkpoint) == ["partition-01", "partition-03"]
    assert completion_percent(checkpoint) == 33

    with pytest.raises(ValueError, match="partition-99"):
        record_partition(checkpoint, "partition-99", _analysis("partition-99"))

    advance_phase(checkpoint, "synthesis")
    with pytest.raises(ValueError):
        advance_phase(checkpoint, "exploration")
    with pytest.raises(ValueError):
        advance_phase(checkpoint, "deploy")

    record_partition(checkpoint, "partition-01", _analysis("partition-01"))
    assert checkpoint.phase == "synthesis"


def test_completion_is_full_for_empty_partition_list() -> None:
    checkpoint = CheckpointManager().create(make_manifest({}))

    assert completion_percent(checkpoint) == 100
    assert remaining_partitions(checkpoint) == []


def test_format_checkpoint_status() -> None:
    checkpoint = CheckpointManager().create(_manifest())
    record_partition(checkpoint, "partition-01", _analysis("partition-01"))
    checkpoint.created_at = "2024-05-01T10:00:00Z"
    checkpoint.last_updated = "2024-05-01T11:45:00Z"
    now = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    status = format_checkpoint_status(checkpoint, now=now)

    assert status.splitlines() == [
        "## Checkpoint Status",
        "",
        "Phase: exploration",
        "Created: 2h ago",
        "Last updated: 15m ago",
        "",
        "Partitions: 1/3 (33%)",
    ]

    record_synthesis(checkpoint, {})
    record_memories(checkpoint, ["a"])
    status = format_checkpoint_status(checkpoint, now=now)
    assert status.endswith("Synthesis: Complete\nMemories stored: 1")


def test_delete_reports_whether_a_file_was_removed(tmp_path: Path) -> None:
    manager = CheckpointManager()
    manager.save(manager.create(_manifest()), tmp_path)

    assert manager.delete(tmp_path) is True
    assert manager.delete(tmp_path) is False
    assert manager.load(tmp_path) is None
