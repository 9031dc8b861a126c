from __future__ import annotations

import json

from codeslice.models import CodeInsight, CrossReference, GlobalContext, KeyFile, PartitionAnalysis
from codeslice.synthesis import (
    build_synthesizer_payload,
    format_synthesis_result,
    parse_synthesizer_response,
    synthesize_locally,
)

CONTEXT = GlobalContext(
    project_name="shop",
    description="Online shop backend.",
    structure_overview="./",
    languages=["Python"],
    frameworks=["FastAPI"],
    total_partitions=2,
)


def _insight(type_: str, title: str, text: str, importance: int = 5, evidence=()) -> CodeInsight:
    return CodeInsight(
        scope="module",
        type=type_,
        title=title,
        insight=text,
        evidence=list(evidence),
        importance=importance,
    )


def _analyses():
    api = PartitionAnalysis(
        partition_id="partition-01",
        partition_description="HTTP API",
        insights=[
            _insight("architecture", "Layered architecture", "API controllers call service objects.", 9, ["src/api/app.py"]),
            _insight("pattern", "Dependency injection", "Services are injected via FastAPI Depends.", 6),
            _insight("gotcha", "Sync DB calls", "Blocking calls inside async routes.", 3, ["src/api/orders.py"]),
            _insight("component", "OrderRouter", "Routes order requests." + "x" * 300, 7, ["src/api/orders.py"]),
        ],
        key_files=[KeyFile(path="src/api/app.py", role="Application factory")],
        cross_references=[CrossReference(from_partition="partition-01", to_area="src/db")],
        confidence=8,
        coverage=7,
        processing_time_ms=900,
    )
    db = PartitionAnalysis(
        partition_id="partition-02",
        partition_description="Persistence",
        insights=[
            _insight("pattern", "Repository pattern", "Repository classes wrap the session.", 8),
            _insight("convention", "Dependency injection", "Same title as another partition.", 4, ["a", "b", "c", "d"]),
            _insight("decision", "Postgres only", "Only Postgres is supported."),
        ],
        confidence=6,
        coverage=5,
        error=None,
    )
    return [api, db]


SYNTH_RESPONSE = {
    "knowledge": {
        "overview": "An online shop backend.",
        "architecture": {
            "style": "Layered",
            "layers": ["API", "Service"],
            "dataFlow": "Requests flow from routers to services to repositories.",
            "keyDecisions": ["Postgres only"],
        },
        "patterns": [{"title": "Repository pattern", "description": "Wraps the session.", "usedIn": ["src/db"]}],
        "gotchas": [{"title": "Sync DB calls", "description": "Blocking calls in async routes."}],
    },
    "skipped": [{"reason": "duplicate", "title": "Dependency injection", "sourcePartition": "partition-02"}],
    "warnings": ["Partition partition-03 failed"],
}


def test_payload_strips_timing_and_errors() -> None:
    analyses = _analyses()
    analyses[1].error = "timeout"

    payload = json.loads(build_synthesizer_payload(CONTEXT, analyses, ["Existing title"]))

    assert payload["global_context"]["projectName"] == "shop"
    assert payload["existing_memory_titles"] == ["Existing title"]
    first = payload["partition_analyses"][0]
    assert first["partitionId"] == "partition-01"
    assert "processingTime" not in first
    assert "error" not in payload["partition_analyses"][1]


def test_valid_synthesizer_response_is_parsed() -> None:
    result = parse_synthesizer_response("```json\n" + json.dumps(SYNTH_RESPONSE) + "\n```")

    assert result.ok
    knowledge = result.knowledge
    assert knowledge.architecture.style == "Layered"
    assert knowledge.architecture.data_flow.startswith("Requests flow")
    assert knowledge.patterns[0].used_in == ["src/db"]
    assert knowledge.patterns[0].scope == "module"
    assert knowledge.gotchas[0].importance == 6
    assert result.skipped[0].source_partition == "partition-02"
    assert result.warnings == ["Partition partition-03 failed"]

    stored = result.knowledge_dict()
    assert stored["architecture"]["dataFlow"].startswith("Requests flow")
    assert "publicApi" not in json.dumps(stored)


def test_invalid_synthesizer_response_yields_empty_knowledge() -> None:
    missing_architecture = {"knowledge": {"overview": "x"}}

    result = parse_synthesizer_response(json.dumps(missing_architecture))

    assert not result.ok
    assert result.error.startswith("Invalid response: knowledge.architecture")
    assert result.knowledge.overview == ""
    assert result.knowledge.patterns == []

    assert parse_synthesizer_response("nothing").error == "No JSON found in response"
    assert parse_synthesizer_response("{bad json}").error.startswith("Parse error:")


def test_bad_skip_reason_is_rejected() -> None:
    response = dict(SYNTH_RESPONSE, skipped=[{"reason": "boring", "title": "x"}])

    result = parse_synthesizer_response(json.dumps(response))

    assert not result.ok
    assert "skipped.0.reason" in result.error


def test_local_synthesis_builds_knowledge() -> None:
    result = synthesize_locally(CONTEXT, _analyses(), existing_titles=["Repository Pattern"])

    assert result.ok
    knowledge = result.knowledge
    assert knowledge.overview == (
        "Online shop backend. Built with FastAPI. Primary languages: Python. "
        "2 modules analyzed, 7 insights extracted."
    )
    assert knowledge.architecture.style == "Layered architecture"
    assert knowledge.architecture.layers == ["API", "Service"]
    assert knowledge.architecture.key_decisions == ["Only Postgres is supported."]
    assert knowledge.architecture.evidence == ["src/api/app.py"]
    assert [item.title for item in knowledge.patterns] == ["Repository pattern", "Dependency injection"]
    assert knowledge.conventions[0].examples == ["a", "b", "c"]
    assert [module.name for module in knowledge.modules] == ["partition-01", "partition-02"]
    assert knowledge.modules[0].key_files == ["src/api/app.py"]
    assert knowledge.modules[0].dependencies == ["src/db"]
    assert knowledge.components[0].path == "src/api/orders.py"
    assert len(knowledge.components[0].role) == 200
    assert knowledge.gotchas[0].importance == 5

    skipped = {(item.title, item.source_partition) for item in result.skipped}
    assert skipped == {("Dependency injection", "unknown"), ("Repository Pattern", "existing")}
    assert all(item.reason == "duplicate" for item in result.skipped)


def test_local_synthesis_without_insights() -> None:
    result = synthesize_locally(GlobalContext(project_name="x", description="", structure_overview=""), [])

    assert result.knowledge.overview == "0 modules analyzed, 0 insights extracted."
    assert result.knowledge.architecture.style == "Standard application architecture"
    assert result.skipped == []


def test_format_synthesis_result() -> None:
    text = format_synthesis_result(synthesize_locally(CONTEXT, _analyses()))

    assert text.startswith("## Synthesis Complete")
    assert "Layers: API, Service" in text
    assert "Patterns: 2" in text
    assert "Skipped: 1 insights" in text

    failed = format_synthesis_result(parse_synthesizer_response("nothing"))
    assert failed.endswith("Error: No JSON found in response")
