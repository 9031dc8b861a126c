"""Pydantic schemas for responses returned by the external analysis agents.

Responses are untrusted text; these models reject anything outside the
documented shape instead of filling in silent defaults, so a malformed
response can be told apart from a legitimately empty one. Field names are
snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Scope = Literal["project", "module", "file"]
InsightType = Literal[
    "architecture",
    "pattern",
    "convention",
    "component",
    "dataflow",
    "dependency",
    "gotcha",
    "decision",
    "integration",
]
Relationship = Literal["imports", "extends", "implements", "uses", "depends_on"]
SkipReason = Literal["duplicate", "trivial", "contradiction", "low_importance", "subsumed"]


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


def _lower_tags(value: List[str]) -> List[str]:
    return [tag.lower() for tag in value]


Score = Annotated[int, Field(ge=1, le=10)]
Tags = Annotated[List[str], AfterValidator(_lower_tags)]


# ----------------------------------------------------------------------
# Exploration


class InsightModel(WireModel):
    scope: Scope
    type: InsightType
    title: str = Field(min_length=1)
    insight: str = Field(min_length=1)
    evidence: List[str] = Field(default_factory=list)
    importance: int = Field(default=5, ge=1, le=10)
    tags: Tags = Field(default_factory=list)
    related_areas: List[str] = Field(default_factory=list)


class KeyFileModel(WireModel):
    path: str = Field(min_length=1)
    role: str = Field(min_length=1)
    importance: int = Field(default=5, ge=1, le=10)


class CrossReferenceModel(WireModel):
    to_area: str = Field(min_length=1)
    relationship: Relationship = "uses"


class ExplorerResponse(WireModel):
    """Result of exploring one partition."""

    insights: List[InsightModel]
    key_files: List[KeyFileModel] = Field(default_factory=list)
    cross_references: List[CrossReferenceModel] = Field(default_factory=list)
    confidence: Score
    coverage: Score
    processing_time: Optional[int] = Field(default=None, ge=0)


# ----------------------------------------------------------------------
# Synthesis


class ArchitectureKnowledge(WireModel):
    style: str = "Unknown"
    layers: List[str] = Field(default_factory=list)
    data_flow: str = ""
    key_decisions: List[str] = Field(default_factory=list)
    evidence: List[str] = Field(default_factory=list)


class PatternKnowledge(WireModel):
    title: str = Field(min_length=1)
    description: str
    scope: Scope = "module"
    used_in: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class ConventionKnowledge(WireModel):
    title: str = Field(min_length=1)
    description: str
    examples: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class ModuleKnowledge(WireModel):
    name: str = Field(min_length=1)
    purpose: str
    key_files: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    public_api: Optional[str] = None


class ComponentKnowledge(WireModel):
    name: str = Field(min_length=1)
    path: str
    role: str = ""
    key_methods: Optional[List[str]] = None


class GotchaKnowledge(WireModel):
    title: str = Field(min_length=1)
    description: str
    applies_to: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    importance: int = Field(default=6, ge=1, le=10)


class CodebaseKnowledge(WireModel):
    """Unified knowledge structure produced by the synthesis step."""

    overview: str
    architecture: ArchitectureKnowledge
    patterns: List[PatternKnowledge] = Field(default_factory=list)
    conventions: List[ConventionKnowledge] = Field(default_factory=list)
    modules: List[ModuleKnowledge] = Field(default_factory=list)
    components: List[ComponentKnowledge] = Field(default_factory=list)
    gotchas: List[GotchaKnowledge] = Field(default_factory=list)


class SkippedInsight(WireModel):
    reason: SkipReason
    title: str = Field(min_length=1)
    source_partition: str = "unknown"


class SynthesizerResponse(WireModel):
    knowledge: CodebaseKnowledge
    skipped: List[SkippedInsight] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    processing_time: Optional[int] = Field(default=None, ge=0)


def empty_knowledge() -> CodebaseKnowledge:
    return CodebaseKnowledge(overview="", architecture=ArchitectureKnowledge())


__all__ = [
    "ArchitectureKnowledge",
    "CodebaseKnowledge",
    "ComponentKnowledge",
    "ConventionKnowledge",
    "CrossReferenceModel",
    "ExplorerResponse",
    "GotchaKnowledge",
    "InsightModel",
    "KeyFileModel",
    "ModuleKnowledge",
    "PatternKnowledge",
    "SkippedInsight",
    "SynthesizerResponse",
    "empty_knowledge",
]
