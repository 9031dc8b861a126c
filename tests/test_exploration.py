from __future__ import annotations

import json
import logging
from dataclasses import replace

import pytest

from codeslice.exploration import (
    ExplorationTask,
    batch_tasks,
    build_explorer_payload,
    estimate_exploration,
    format_exploration_instructions,
    format_exploration_progress,
    format_task_summary,
    generate_exploration_tasks,
    merge_analysis_results,
    parse_explorer_response,
    validate_explorer_response,
)
from codeslice.models import GlobalContext, PartitionAnalysis, PartitionConfig, PartitionSpec
from codeslice.partitioning import partition
from tests._fixtures.trees import make_manifest

VALID_RESPONSE = {
    "insights": [
        {
            "scope": "module",
            "type": "pattern",
            "title": "Repository pattern",
            "insight": "Data access goes through repository classes.",
            "evidence": ["src/repo/users.py:12"],
            "importance": 8,
            "tags": ["Persistence", "DDD"],
            "relatedAreas": ["src/services"],
        }
    ],
    "keyFiles": [{"path": "src/repo/users.py", "role": "User repository", "importance": 7}],
    "crossReferences": [{"toArea": "src/db", "relationship": "depends_on"}],
    "confidence": 8,
    "coverage": 6,
    "processingTime": 1500,
}


def _task(directories=("src/repo",), partition_id: str = "partition-01") -> ExplorationTask:
    spec = PartitionSpec(
        id=partition_id,
        description="Repositories",
        directories=list(directories),
        files=["src/repo/users.py", "src/repo/orders.py"],
        estimated_tokens=12_400,
    )
    context = GlobalContext(
        project_name="shop",
        description="Online shop",
        structure_overview="./ (12.4k tokens, 2 files)",
        languages=["Python"],
        frameworks=["FastAPI"],
        entry_points=["src/main.py"],
        config_summary="Python packaging via pyproject.toml/setup.py",
        total_partitions=3,
    )
    return ExplorationTask(id=spec.id, partition=spec, global_context=context, project_dir="/shop")


def test_generate_tasks_filters_by_id() -> None:
    manifest = make_manifest({"a/x.py": 60_000, "b/y.py": 45_000})
    manifest = replace(manifest, partitions=partition(manifest, PartitionConfig()))

    every = generate_exploration_tasks(manifest)
    only = generate_exploration_tasks(manifest, only=["partition-02"])

    assert [task.id for task in every] == [spec.id for spec in manifest.partitions]
    assert [task.id for task in only] == ["partition-02"]
    assert only[0].project_dir == "/project"
    assert generate_exploration_tasks(manifest, only=[]) == []


def test_batch_tasks_respects_parallelism() -> None:
    assert batch_tasks(list(range(7)), 3) == [[0, 1, 2], [3, 4, 5], [6]]
    assert batch_tasks([], 3) == []
    with pytest.raises(ValueError):
        batch_tasks([1], 0)


def test_explorer_payload_carries_partition_and_context() -> None:
    payload = json.loads(build_explorer_payload(_task()))

    assert payload["partition_id"] == "partition-01"
    assert payload["files"] == ["src/repo/users.py", "src/repo/orders.py"]
    assert payload["global_context"]["projectName"] == "shop"
    assert payload["global_context"]["totalPartitions"] == 3
    assert "readme" not in payload["global_context"]


def test_valid_response_wrapped_in_prose_is_accepted() -> None:
    response = "Here is my analysis:\n```json\n" + json.dumps(VALID_RESPONSE) + "\n```\nDone."

    result = validate_explorer_response(response, _task())

    assert result.ok and result.error is None
    analysis = result.analysis
    assert analysis.partition_id == "partition-01"
    assert analysis.partition_description == "Repositories"
    assert analysis.insights[0].tags == ["persistence", "ddd"]
    assert analysis.insights[0].related_areas == ["src/services"]
    assert analysis.key_files[0].role == "User repository"
    assert analysis.cross_references[0].from_partition == "partition-01"
    assert analysis.cross_references[0].relationship == "depends_on"
    assert (analysis.confidence, analysis.coverage) == (8, 6)
    assert analysis.processing_time_ms == 1500


def test_empty_insight_list_is_a_valid_answer() -> None:
    result = validate_explorer_response(
        json.dumps({"insights": [], "confidence": 3, "coverage": 2}), _task()
    )

    assert result.ok
    assert result.analysis.insights == []
    assert result.analysis.key_files == []
    assert result.analysis.processing_time_ms >= 0


@pytest.mark.parametrize(
    ("response", "expected"),
    [
        ("I could not analyze this partition.", "No JSON found in response"),
        ("{insights: nope}", "Parse error:"),
        (json.dumps({"insights": [], "coverage": 5}), "Invalid response: confidence:"),
        (json.dumps({"confidence": 5, "coverage": 5}), "Invalid response: insights:"),
    ],
)
def test_rejected_responses_report_the_problem(response: str, expected: str) -> None:
    result = validate_explorer_response(response, _task())

    assert not result.ok
    assert result.analysis is None
    assert result.error.startswith(expected)


def test_out_of_range_values_are_rejected() -> None:
    broken = json.loads(json.dumps(VALID_RESPONSE))
    broken["insights"][0]["importance"] = 11
    broken["insights"][0]["scope"] = "galaxy"

    result = validate_explorer_response(json.dumps(broken), _task())

    assert not result.ok
    assert "insights.0." in result.error
    assert result.error.endswith("(+1 more)")


def test_parse_falls_back_to_error_analysis(caplog, monkeypatch) -> None:
    monkeypatch.setattr(logging.getLogger("codeslice"), "propagate", True)
    with caplog.at_level("WARNING", logger="codeslice"):
        analysis = parse_explorer_response("no json at all", _task())

    assert analysis.error == "No JSON found in response"
    assert analysis.confidence == 0
    assert analysis.coverage == 0
    assert analysis.insights == []
    assert "partition-01" in caplog.text


def test_merge_averages_only_successful_results() -> None:
    good = parse_explorer_response(json.dumps(VALID_RESPONSE), _task())
    other = PartitionAnalysis(
        partition_id="partition-02", partition_description="b", confidence=6, coverage=4
    )
    failed = parse_explorer_response("garbage", _task(partition_id="partition-03"))

    merged = merge_analysis_results([good, other, failed])

    assert len(merged.insights) == 1
    assert len(merged.key_files) == 1
    assert merged.avg_confidence == 7
    assert merged.avg_coverage == 5
    assert merged.errors == ["partition-03: No JSON found in response"]


def test_merge_of_nothing_has_zero_averages() -> None:
    merged = merge_analysis_results([])

    assert merged.avg_confidence == 0
    assert merged.errors == []


def test_estimate_and_progress_text() -> None:
    estimate = estimate_exploration(7, 3)
    assert (estimate.batches, estimate.estimated_minutes) == (3, 3)
    assert estimate_exploration(0, 3).batches == 0

    assert format_exploration_progress(1, 4, ["partition-02"]) == (
        "Progress: 1/4 partitions (25%)\nCurrently exploring: partition-02"
    )

    instructions = format_exploration_instructions([_task()], 2)
    assert "Batches: 1" in instructions
    assert "- **partition-01**: Repositories (2 files, ~12.4k tokens)" in instructions


def test_task_summary_truncates_directory_list() -> None:
    task = _task(directories=[f"pkg/d{index}" for index in range(7)])

    lines = format_task_summary(task).splitlines()

    assert lines[:4] == [
        "Partition: partition-01",
        "Description: Repositories",
        "Files: 2",
        "Tokens: ~12.4k",
    ]
    assert lines[-1] == "  - ... and 2 more"
    assert lines[-2] == "  - pkg/d4/"
