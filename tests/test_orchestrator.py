"""Tests for codeslice.orchestrator."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from codeslice.config import ScanOptions
from codeslice.models import PartitionConfig
from codeslice.orchestrator import NoCheckpointError, Orchestrator, format_manifest_summary
from codeslice.stores.checkpoint import CheckpointManager


def _explorer_response(title: str = "Entry module") -> str:
    return json.dumps(
        {
            "insights": [
                {"scope": "module", "type": "component", "title": title, "insight": "Starts the app."}
            ],
            "keyFiles": [{"path": "src/main.py", "role": "Entry point"}],
            "confidence": 8,
            "coverage": 6,
        }
    )


@pytest.fixture
def project(repo_builder) -> Path:
    repo_builder.write(
        {
            "README.md": "# Demo\n\nA demo service.\n",
            "src/main.py": "from .util import helper\n\nhelper()\n",
            "src/util.py": "def helper():\n    return 1\n",
            "web/index.ts": "export const x = 1;\n",
            "web/app.min.js": "var a;\n",
        }
    )
    return repo_builder.path()


def test_analyze_builds_partitioned_manifest(project: Path) -> None:
    manifest = Orchestrator().analyze(project, ScanOptions())

    assert manifest.project_dir == str(project.resolve())
    assert manifest.project_name == project.name
    assert manifest.total_files == 3
    assert manifest.total_tokens == sum(info.tokens for info in manifest.all_files())
    assert {item.path for item in manifest.skipped_files} == {"web/app.min.js"}
    assert manifest.entry_points == ["src/main.py", "web/index.ts"]
    assert manifest.global_context.description == "A demo service."
    assert len(manifest.partitions) == 1
    assert manifest.global_context.total_partitions == 1
    assert len(manifest.hash) == 16
    assert manifest.created_at.endswith("Z")


def test_analyze_respects_partition_options(repo_builder) -> None:
    for index in range(4):
        repo_builder.write_sized(f"pkg{index}/module.py", 40_000)
    options = ScanOptions(
        partition=PartitionConfig(
            target_tokens=12_000, min_tokens=5_000, max_tokens=15_000, max_partitions=3
        )
    )

    manifest = Orchestrator().analyze(repo_builder.path(), options)

    assert manifest.total_tokens == 40_000
    assert len(manifest.partitions) == 3
    assert manifest.global_context.total_partitions == 3
    covered = sorted(path for spec in manifest.partitions for path in spec.files)
    assert covered == [f"pkg{index}/module.py" for index in range(4)]


def test_plan_creates_checkpoint_and_batches(project: Path) -> None:
    orchestrator = Orchestrator()

    plan = orchestrator.plan(project, ScanOptions(parallel=2))

    assert plan.decision.resume is False
    assert plan.remaining == ["partition-01"]
    assert [[task.id for task in batch] for batch in plan.batches] == [["partition-01"]]
    stored = CheckpointManager().load(project)
    assert stored is not None
    assert stored.manifest_hash == plan.manifest.hash
    assert stored.phase == "analysis"


def test_resume_skips_completed_partitions(project: Path) -> None:
    orchestrator = Orchestrator()
    orchestrator.plan(project, ScanOptions())

    analysis = orchestrator.record_partition_result(project, "partition-01", _explorer_response())
    assert analysis.error is None
    assert analysis.key_files[0].path == "src/main.py"

    resumed = orchestrator.plan(project, ScanOptions(resume=True))
    assert resumed.decision.resume is True
    assert resumed.decision.reason == "Can resume from exploration phase (100% complete)"
    assert resumed.remaining == []
    assert resumed.batches == []
    assert resumed.checkpoint.partition_results["partition-01"].confidence == 8

    fresh = orchestrator.plan(project, ScanOptions())
    assert fresh.remaining == ["partition-01"]
    assert CheckpointManager().load(project).completed_partitions == []


def test_changed_codebase_restarts_from_scratch(project: Path, repo_builder) -> None:
    orchestrator = Orchestrator()
    orchestrator.plan(project, ScanOptions())
    orchestrator.record_partition_result(project, "partition-01", _explorer_response())

    repo_builder.write({"src/new_module.py": "VALUE = 2\n"})
    plan = orchestrator.plan(project, ScanOptions(resume=True))

    assert plan.decision.resume is False
    assert plan.decision.reason == "Checkpoint is stale (codebase has changed)"
    assert plan.remaining == ["partition-01"]


def test_broken_explorer_response_is_recorded_as_error(project: Path) -> None:
    orchestrator = Orchestrator()
    orchestrator.plan(project, ScanOptions())

    analysis = orchestrator.record_partition_result(project, "partition-01", "not json")

    assert analysis.error == "No JSON found in response"
    checkpoint = CheckpointManager().load(project)
    assert checkpoint.partition_results["partition-01"].error == "No JSON found in response"


def test_synthesis_and_stored_records_complete_the_checkpoint(project: Path) -> None:
    orchestrator = Orchestrator()
    orchestrator.plan(project, ScanOptions())
    orchestrator.record_partition_result(project, "partition-01", _explorer_response())

    rejected = orchestrator.record_synthesis_result(project, '{"knowledge": {}}')
    assert not rejected.ok
    assert CheckpointManager().load(project).synthesis_complete is False

    accepted = orchestrator.record_synthesis_result(
        project,
        json.dumps({"knowledge": {"overview": "Demo", "architecture": {"style": "Layered"}}}),
    )
    assert accepted.ok
    checkpoint = orchestrator.record_stored_records(project, ["mem-1"])
    assert checkpoint.phase == "ingestion"
    assert checkpoint.knowledge["architecture"]["style"] == "Layered"

    decision = orchestrator.plan(project, ScanOptions(resume=True)).decision
    assert decision.reason == "Checkpoint is complete, nothing to resume"


def test_recording_requires_checkpoint_and_known_partition(project: Path) -> None:
    orchestrator = Orchestrator()
    with pytest.raises(NoCheckpointError):
        orchestrator.record_partition_result(project, "partition-01", _explorer_response())

    orchestrator.plan(project, ScanOptions())
    with pytest.raises(ValueError, match="partition-42"):
        orchestrator.record_partition_result(project, "partition-42", _explorer_response())


def test_custom_state_dir_from_config(project: Path) -> None:
    (project / ".codeslice.yml").write_text('state_dir: ".state"\n', encoding="utf-8")
    orchestrator = Orchestrator()

    orchestrator.plan(project)

    assert (project / ".state" / "scan-checkpoint.json").is_file()
    assert not (project / ".codeslice").exists()


def test_manifest_summary(project: Path) -> None:
    manifest = Orchestrator().analyze(project, ScanOptions())

    summary = format_manifest_summary(manifest)

    assert summary.startswith(f"Project: {project.name}\nPath: {project.resolve()}")
    assert "Files: 3" in summary
    assert "  Python: " in summary
    assert "Entry points: src/main.py, web/index.ts" in summary
    assert "Skipped: 1 files" in summary


def test_synthesis_payload_uses_recorded_analyses(project: Path) -> None:
    orchestrator = Orchestrator()
    orchestrator.plan(project, ScanOptions())
    with pytest.raises(ValueError, match="No partition results"):
        orchestrator.synthesis_payload(project)

    orchestrator.record_partition_result(project, "partition-01", _explorer_response("Main"))
    payload = json.loads(orchestrator.synthesis_payload(project, ["Known title"]))

    assert payload["global_context"]["description"] == "A demo service."
    assert payload["global_context"]["totalPartitions"] == 1
    analysis = payload["partition_analyses"][0]
    assert analysis["partitionId"] == "partition-01"
    assert analysis["insights"][0]["title"] == "Main"
    assert "processingTime" not in analysis
    assert payload["existing_memory_titles"] == ["Known title"]


def test_prepare_records_from_recorded_knowledge(project: Path) -> None:
    orchestrator = Orchestrator()
    orchestrator.plan(project, ScanOptions())
    orchestrator.record_partition_result(project, "partition-01", _explorer_response())
    with pytest.raises(ValueError, match="Synthesis has not been recorded"):
        orchestrator.prepare_records(project)

    orchestrator.record_synthesis_result(
        project,
        json.dumps(
            {
                "knowledge": {
                    "overview": "Demo",
                    "architecture": {"style": "Layered", "keyDecisions": ["Keep it small"]},
                    "patterns": [{"title": "Helpers", "description": "Shared helpers.", "scope": "file"}],
                }
            }
        ),
    )

    result = orchestrator.prepare_records(project)
    assert [(record.title, record.importance) for record in result.records] == [
        (f"{project.name} Architecture Overview", 10),
        (f"{project.name}: Architectural Decision 1", 9),
        (f"{project.name}: Helpers", 5),
    ]
    limited = orchestrator.prepare_records(project, importance_min=6, max_records=1)
    assert len(limited.records) == 1
    assert limited.skipped == 1


def test_recording_stored_records_needs_ids(project: Path) -> None:
    orchestrator = Orchestrator()
    orchestrator.plan(project, ScanOptions())

    with pytest.raises(ValueError, match="No record ids"):
        orchestrator.record_stored_records(project, ["", ""])

    checkpoint = orchestrator.record_stored_records(project, ["mem-1", "", "mem-2"])
    assert checkpoint.memories_stored == ["mem-1", "mem-2"]
