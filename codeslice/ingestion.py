"""Ingestion phase: turn synthesized knowledge into importance-ranked records.

The records are handed to an external knowledge store; storing them is the
caller's job. Once stored, their ids are recorded in the checkpoint, which
completes the run.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from .logging import get_logger
from .schemas import CodebaseKnowledge, GotchaKnowledge, PatternKnowledge

CATEGORIES = ("architecture", "decisions", "reports", "summaries", "structure", "notes")

DEFAULT_IMPORTANCE_MIN = 3
DEFAULT_MAX_RECORDS = 100

MAX_DECISIONS = 5
MAX_COMPONENTS = 10
MIN_MODULE_PURPOSE = 50
MIN_COMPONENT_ROLE = 30
PREVIEW_PER_CATEGORY = 5

_PATTERN_IMPORTANCE = {"project": 8, "module": 6}

logger = get_logger("ingestion")


@dataclass(frozen=True)
class KnowledgeRecord:
    """One unit of knowledge ready for the store."""

    category: str
    title: str
    content: str
    importance: int
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "category": self.category,
            "title": self.title,
            "content": self.content,
            "importance": self.importance,
            "tags": list(self.tags),
        }


@dataclass
class IngestionResult:
    records: List[KnowledgeRecord]
    skipped: int = 0

    @property
    def by_category(self) -> Dict[str, int]:
        counts = {category: 0 for category in CATEGORIES}
        for record in self.records:
            counts[record.category] += 1
        return counts


def knowledge_to_records(knowledge: CodebaseKnowledge, project_name: str) -> List[KnowledgeRecord]:
    """Flatten ``knowledge`` into records, most general first."""
    records: List[KnowledgeRecord] = []
    architecture = knowledge.architecture

    if knowledge.overview:
        records.append(
            KnowledgeRecord(
                category="architecture",
                title=f"{project_name} Architecture Overview",
                content=_architecture_content(knowledge),
                importance=10,
                tags=["architecture", "overview", *(layer.lower() for layer in architecture.layers)],
            )
        )

    for index, decision in enumerate(architecture.key_decisions[:MAX_DECISIONS]):
        records.append(
            KnowledgeRecord(
                category="decisions",
                title=f"{project_name}: Architectural Decision {index + 1}",
                content=decision,
                importance=9 - index // 2,
                tags=["architecture", "decision"],
            )
        )

    records.extend(_pattern_record(pattern, project_name) for pattern in knowledge.patterns)

    for convention in knowledge.conventions:
        content = convention.description
        if convention.examples:
            content += f"\n\nExamples: {', '.join(convention.examples)}"
        records.append(
            KnowledgeRecord(
                category="structure",
                title=f"{project_name}: {convention.title}",
                content=content,
                importance=6,
                tags=["convention", *convention.tags],
            )
        )

    for module in knowledge.modules:
        # Short purposes are usually just the partition label.
        if len(module.purpose) <= MIN_MODULE_PURPOSE:
            continue
        content = module.purpose
        if module.public_api:
            content += f"\n\nPublic API: {module.public_api}"
        if module.dependencies:
            content += f"\n\nDependencies: {', '.join(module.dependencies)}"
        records.append(
            KnowledgeRecord(
                category="architecture",
                title=f"{project_name}: {module.name} Module",
                content=content,
                importance=5,
                tags=["module", module.name.lower()],
            )
        )

    records.extend(_gotcha_record(gotcha, project_name) for gotcha in knowledge.gotchas)

    for component in knowledge.components[:MAX_COMPONENTS]:
        if len(component.role) <= MIN_COMPONENT_ROLE:
            continue
        content = f"{component.role}\n\nLocation: {component.path}"
        if component.key_methods:
            content += f"\n\nKey methods: {', '.join(component.key_methods)}"
        records.append(
            KnowledgeRecord(
                category="notes",
                title=f"{project_name}: {component.name}",
                content=content,
                importance=4,
                tags=["component", component.name.lower()],
            )
        )

    return records


def _architecture_content(knowledge: CodebaseKnowledge) -> str:
    architecture = knowledge.architecture
    parts = [knowledge.overview]
    if architecture.style != "Unknown":
        parts.append(f"\nArchitecture Style: {architecture.style}")
    if architecture.layers:
        parts.append(f"\nLayers: {' -> '.join(architecture.layers)}")
    if architecture.data_flow:
        parts.append(f"\nData Flow: {architecture.data_flow}")
    return "".join(parts)


def _pattern_record(pattern: PatternKnowledge, project_name: str) -> KnowledgeRecord:
    content = pattern.description
    if pattern.used_in:
        content += f"\n\nUsed in: {', '.join(pattern.used_in[:5])}"
    return KnowledgeRecord(
        category="architecture",
        title=f"{project_name}: {pattern.title}",
        content=content,
        importance=_PATTERN_IMPORTANCE.get(pattern.scope, 5),
        tags=["pattern", *pattern.tags],
    )


def _gotcha_record(gotcha: GotchaKnowledge, project_name: str) -> KnowledgeRecord:
    content = gotcha.description
    if gotcha.applies_to:
        content += f"\n\nApplies to: {', '.join(gotcha.applies_to)}"
    return KnowledgeRecord(
        category="notes",
        title=f"{project_name} Gotcha: {gotcha.title}",
        content=content,
        importance=max(gotcha.importance, 5),
        tags=["gotcha", "warning", *gotcha.tags],
    )


def filter_records(
    records: Sequence[KnowledgeRecord],
    importance_min: int = DEFAULT_IMPORTANCE_MIN,
    max_records: int = DEFAULT_MAX_RECORDS,
) -> Tuple[List[KnowledgeRecord], int]:
    """Drop records below ``importance_min`` and keep the ``max_records`` most important.

    Returns the kept records (stable, importance descending) and how many
    were cut by the count limit.
    """
    if max_records < 0:
        raise ValueError("max_records must not be negative")
    kept = sorted(
        (record for record in records if record.importance >= importance_min),
        key=lambda record: -record.importance,
    )
    skipped = max(0, len(kept) - max_records)
    return kept[:max_records], skipped


def prepare_ingestion(
    knowledge: CodebaseKnowledge,
    project_name: str,
    importance_min: int = DEFAULT_IMPORTANCE_MIN,
    max_records: int = DEFAULT_MAX_RECORDS,
) -> IngestionResult:
    records, skipped = filter_records(
        knowledge_to_records(knowledge, project_name), importance_min, max_records
    )
    logger.debug("Prepared %d records (%d over the limit)", len(records), skipped)
    return IngestionResult(records=records, skipped=skipped)


def records_to_json(records: Sequence[KnowledgeRecord]) -> str:
    return json.dumps([record.to_dict() for record in records], indent=2)


# ----------------------------------------------------------------------
# Display


def format_ingestion_result(result: IngestionResult) -> str:
    lines = [
        "## Ingestion Plan",
        "",
        f"Records prepared: {len(result.records)}",
        f"Records skipped: {result.skipped}",
        "",
        "By category:",
    ]
    lines.extend(
        f"  {category}: {count}" for category, count in result.by_category.items() if count
    )
    return "\n".join(lines)


def format_record_preview(result: IngestionResult) -> str:
    lines = [
        "## Record Preview",
        "",
        f"Total records: {len(result.records)}",
        f"Would skip: {result.skipped} (over limit)",
        "",
    ]
    grouped: Dict[str, List[KnowledgeRecord]] = {}
    for record in result.records:
        grouped.setdefault(record.category, []).append(record)

    for category, records in grouped.items():
        lines.extend([f"### {category} ({len(records)})", ""])
        for record in records[:PREVIEW_PER_CATEGORY]:
            lines.append(f"- **{record.title}** (importance: {record.importance})")
            lines.append(f"  {record.content[:100]}...")
        if len(records) > PREVIEW_PER_CATEGORY:
            lines.append(f"- ... and {len(records) - PREVIEW_PER_CATEGORY} more")
        lines.append("")
    return "\n".join(lines)


__all__ = [
    "CATEGORIES",
    "DEFAULT_IMPORTANCE_MIN",
    "DEFAULT_MAX_RECORDS",
    "IngestionResult",
    "KnowledgeRecord",
    "filter_records",
    "format_ingestion_result",
    "format_record_preview",
    "knowledge_to_records",
    "prepare_ingestion",
    "records_to_json",
]
