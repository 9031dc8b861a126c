"""Synthesis phase: merge partition analyses into unified codebase knowledge."""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from .logging import get_logger
from .models import CodeInsight, GlobalContext, PartitionAnalysis, analysis_to_dict
from .schemas import (
    ArchitectureKnowledge,
    CodebaseKnowledge,
    ComponentKnowledge,
    ConventionKnowledge,
    GotchaKnowledge,
    ModuleKnowledge,
    PatternKnowledge,
    SkippedInsight,
    SynthesizerResponse,
    empty_knowledge,
)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

_LAYER_KEYWORDS = (
    (("api", "controller"), "API"),
    (("service", "business"), "Service"),
    (("repository", "data access"), "Data Access"),
    (("domain", "model"), "Domain"),
    (("infrastructure",), "Infrastructure"),
    (("presentation", "view"), "Presentation"),
)

logger = get_logger("synthesis")


@dataclass
class SynthesisResult:
    """Knowledge plus bookkeeping from one synthesis run."""

    knowledge: CodebaseKnowledge
    skipped: List[SkippedInsight] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    processing_time_ms: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def knowledge_dict(self) -> Dict[str, object]:
        """Knowledge as the camelCase document stored in checkpoints."""
        return self.knowledge.model_dump(by_alias=True, exclude_none=True)


def build_synthesizer_payload(
    context: GlobalContext,
    analyses: Sequence[PartitionAnalysis],
    existing_titles: Sequence[str] = (),
) -> str:
    partition_analyses = []
    for analysis in analyses:
        document = analysis_to_dict(analysis)
        for key in ("processingTime", "error"):
            document.pop(key, None)
        partition_analyses.append(document)

    payload = {
        "global_context": {
            "projectName": context.project_name,
            "description": context.description,
            "structureOverview": context.structure_overview,
            "languages": list(context.languages),
            "frameworks": list(context.frameworks),
            "entryPoints": list(context.entry_points),
            "totalPartitions": context.total_partitions,
        },
        "partition_analyses": partition_analyses,
        "existing_memory_titles": list(existing_titles),
    }
    return json.dumps(payload, indent=2)


def parse_synthesizer_response(response: str) -> SynthesisResult:
    started = time.perf_counter()

    def _failure(message: str) -> SynthesisResult:
        logger.warning("Synthesizer response rejected: %s", message)
        return SynthesisResult(
            knowledge=empty_knowledge(),
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            error=message,
        )

    match = _JSON_OBJECT.search(response)
    if match is None:
        return _failure("No JSON found in response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        return _failure(f"Parse error: {exc}")
    try:
        parsed = SynthesizerResponse.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "response"
        return _failure(f"Invalid response: {location}: {first.get('msg', 'invalid value')}")

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    return SynthesisResult(
        knowledge=parsed.knowledge,
        skipped=list(parsed.skipped),
        warnings=list(parsed.warnings),
        processing_time_ms=(
            parsed.processing_time if parsed.processing_time is not None else elapsed_ms
        ),
    )


# ----------------------------------------------------------------------
# Local synthesis


def synthesize_locally(
    context: GlobalContext,
    analyses: Sequence[PartitionAnalysis],
    existing_titles: Sequence[str] = (),
) -> SynthesisResult:
    """Build knowledge directly from the analyses without an agent."""
    started = time.perf_counter()
    insights = [insight for analysis in analyses for insight in analysis.insights]
    by_type: Dict[str, List[CodeInsight]] = {}
    for insight in insights:
        by_type.setdefault(insight.type, []).append(insight)

    knowledge = CodebaseKnowledge(
        overview=_overview(context, analyses),
        architecture=_architecture(by_type.get("architecture", []), by_type.get("decision", [])),
        patterns=[
            PatternKnowledge(
                title=item.title,
                description=item.insight,
                scope=item.scope,
                used_in=list(item.evidence),
                tags=list(item.tags),
            )
            for item in _by_importance(by_type.get("pattern", []))[:10]
        ],
        conventions=[
            ConventionKnowledge(
                title=item.title,
                description=item.insight,
                examples=list(item.evidence[:3]),
                tags=list(item.tags),
            )
            for item in _by_importance(by_type.get("convention", []))[:10]
        ],
        modules=[
            ModuleKnowledge(
                name=analysis.partition_id,
                purpose=analysis.partition_description,
                key_files=[key_file.path for key_file in analysis.key_files],
                dependencies=[ref.to_area for ref in analysis.cross_references],
            )
            for analysis in analyses
        ],
        components=[
            ComponentKnowledge(
                name=item.title,
                path=item.evidence[0] if item.evidence else "",
                role=item.insight[:200],
            )
            for item in _by_importance(by_type.get("component", []))[:15]
        ],
        gotchas=[
            GotchaKnowledge(
                title=item.title,
                description=item.insight,
                applies_to=list(item.evidence),
                tags=list(item.tags),
                importance=max(item.importance, 5),
            )
            for item in _by_importance(by_type.get("gotcha", []))
        ],
    )

    return SynthesisResult(
        knowledge=knowledge,
        skipped=_find_duplicates(insights, existing_titles),
        processing_time_ms=int((time.perf_counter() - started) * 1000),
    )


def _by_importance(insights: Iterable[CodeInsight]) -> List[CodeInsight]:
    return sorted(insights, key=lambda item: -item.importance)


def _overview(context: GlobalContext, analyses: Sequence[PartitionAnalysis]) -> str:
    parts: List[str] = []
    if context.description:
        parts.append(context.description)
    if context.frameworks:
        parts.append(f"Built with {', '.join(context.frameworks)}.")
    if context.languages:
        parts.append(f"Primary languages: {', '.join(context.languages)}.")
    total = sum(len(analysis.insights) for analysis in analyses)
    parts.append(f"{len(analyses)} modules analyzed, {total} insights extracted.")
    return " ".join(parts)


def _architecture(
    architecture: Sequence[CodeInsight], decisions: Sequence[CodeInsight]
) -> ArchitectureKnowledge:
    ranked = _by_importance(architecture)
    layers: List[str] = []
    for insight in architecture:
        text = f"{insight.title} {insight.insight}".lower()
        for keywords, layer in _LAYER_KEYWORDS:
            if layer not in layers and any(keyword in text for keyword in keywords):
                layers.append(layer)

    flow = next(
        (
            insight.insight
            for insight in architecture
            if insight.type == "dataflow"
            or "flow" in insight.title.lower()
            or "flow" in insight.insight.lower()
        ),
        "",
    )
    evidence = list(dict.fromkeys(item for insight in architecture for item in insight.evidence))
    return ArchitectureKnowledge(
        style=ranked[0].title if ranked else "Standard application architecture",
        layers=layers,
        data_flow=flow,
        key_decisions=[insight.insight for insight in decisions[:5]],
        evidence=evidence[:10],
    )


def _find_duplicates(
    insights: Sequence[CodeInsight], existing_titles: Sequence[str]
) -> List[SkippedInsight]:
    skipped: List[SkippedInsight] = []
    seen = set()
    for insight in insights:
        key = insight.title.strip().lower()
        if key in seen:
            skipped.append(
                SkippedInsight(reason="duplicate", title=insight.title, source_partition="unknown")
            )
        seen.add(key)
    for title in existing_titles:
        if title.strip().lower() in seen:
            skipped.append(
                SkippedInsight(reason="duplicate", title=title, source_partition="existing")
            )
    return skipped


# ----------------------------------------------------------------------
# Display


def format_synthesis_instructions(analysis_count: int, insight_count: int) -> str:
    return "\n".join(
        [
            "## Synthesis Phase",
            "",
            f"Partition analyses: {analysis_count}",
            f"Total insights: {insight_count}",
            "",
            "The synthesizer agent will now:",
            "1. Merge related insights from different partitions",
            "2. Deduplicate redundant findings",
            "3. Elevate cross-cutting patterns",
            "4. Build a coherent knowledge structure",
        ]
    )


def format_synthesis_result(result: SynthesisResult) -> str:
    lines = ["## Synthesis Complete", ""]
    if result.error:
        lines.append(f"Error: {result.error}")
        return "\n".join(lines)

    knowledge = result.knowledge
    overview = knowledge.overview
    if len(overview) > 200:
        overview = overview[:200] + "..."
    lines.extend(
        [
            f"Overview: {overview}",
            "",
            f"Architecture style: {knowledge.architecture.style}",
            f"Layers: {', '.join(knowledge.architecture.layers) or 'Not identified'}",
            "",
            f"Patterns: {len(knowledge.patterns)}",
            f"Conventions: {len(knowledge.conventions)}",
            f"Modules: {len(knowledge.modules)}",
            f"Components: {len(knowledge.components)}",
            f"Gotchas: {len(knowledge.gotchas)}",
            "",
            f"Skipped: {len(result.skipped)} insights",
        ]
    )
    if result.warnings:
        lines.extend(["", "Warnings:"])
        lines.extend(f"  - {warning}" for warning in result.warnings)
    return "\n".join(lines)


__all__ = [
    "SynthesisResult",
    "build_synthesizer_payload",
    "format_synthesis_instructions",
    "format_synthesis_result",
    "parse_synthesizer_response",
    "synthesize_locally",
]
