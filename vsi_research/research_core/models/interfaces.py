from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Generic, Literal, TypeVar

SourceType = Literal["internal", "external"]
Priority = Literal["high", "medium", "low", "info"]

T = TypeVar("T")


@dataclass(slots=True)
class QualityFactors:
    overall: float
    relevance: float
    completeness: float
    metadata: float
    collection: float
    recency: float


@dataclass(slots=True)
class Source:
    id: str
    collection_id: str
    collection_name: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    type: SourceType = "internal"
    score: float | None = None
    similarity: float | None = None
    collection_relevance: float | None = None
    url: str | None = None
    quality_score: float = 0.0
    quality_factors: QualityFactors | None = None
    discovered_at: str = ""
    dedupe_key: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Source:
        """Rebuild a source read back from a remote memory store."""
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        factors = known.get("quality_factors")
        if isinstance(factors, dict):
            known["quality_factors"] = QualityFactors(
                **{k: v for k, v in factors.items() if k in QualityFactors.__dataclass_fields__}
            )
        known.setdefault("id", "")
        known.setdefault("collection_id", "")
        known.setdefault("collection_name", "")
        content = known.get("content")
        if content is None:
            content = ""
        known["content"] = content if isinstance(content, str) else str(content)
        return cls(**known)


@dataclass(slots=True)
class SearchResult:
    title: str
    url: str
    description: str
    source: str
    relevance_score: float
    type: str = "search_result"
    final_relevance_score: float | None = None

    @property
    def ranking_score(self) -> float:
        if self.final_relevance_score is not None:
            return self.final_relevance_score
        return self.relevance_score


@dataclass(slots=True)
class SearchResponse:
    query: str
    provider: str
    results: list[SearchResult]
    timestamp: str
    success: bool = True
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def total_results(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["total_results"] = self.total_results
        return data


@dataclass(slots=True)
class BrowserSession:
    id: str
    created_at: float
    command_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class BrowseResult:
    url: str
    analysis_type: str
    timestamp: str
    duration_ms: int
    success: bool
    content: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class WebAnalysis:
    themes: list[dict[str, Any]] = field(default_factory=list)
    sentiment: dict[str, Any] = field(default_factory=dict)
    entities: list[dict[str, Any]] = field(default_factory=list)
    key_points: list[dict[str, Any]] = field(default_factory=list)
    summary: str = ""
    raw_content: str = ""


@dataclass(slots=True)
class ExternalAnalysisResult:
    source: str
    success: bool
    duration_ms: int = 0
    analysis: WebAnalysis | None = None
    error: str | None = None
    relevance_score: float = 0.5

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Theme:
    category: str
    score: float
    confidence: float
    evidence: list[str] = field(default_factory=list)
    frequency: float = 0.0


@dataclass(slots=True)
class Insight:
    type: str
    category: str
    content: str
    confidence: float | None = None
    evidence: list[str] | None = None
    priority: str | None = None
    source_id: str | None = None
    score: float = 0.0
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class FrameworkResult:
    framework: str
    themes: list[Theme] = field(default_factory=list)
    insights: list[Insight] = field(default_factory=list)
    concepts: list[dict[str, Any]] = field(default_factory=list)
    sentiment: dict[str, Any] | None = None
    quality: dict[str, Any] | None = None
    temporal: dict[str, Any] | None = None


@dataclass(slots=True)
class AnalysisRecord:
    source_id: str
    source_type: SourceType
    frameworks: list[str]
    collection_name: str = ""
    themes: list[Theme] = field(default_factory=list)
    insights: list[Insight] = field(default_factory=list)
    concepts: list[dict[str, Any]] = field(default_factory=list)
    sentiment: dict[str, Any] | None = None
    quality: dict[str, Any] | None = None
    temporal: dict[str, Any] | None = None
    confidence: float = 0.5
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ThemeAggregate:
    category: str
    total_score: float = 0.0
    occurrences: int = 0
    avg_confidence: float = 0.0
    sources: list[str] = field(default_factory=list)
    evidence: list[str] = field(default_factory=list)
    avg_score: float = 0.0
    prevalence: float = 0.0
    overall_score: float = 0.0
    external_frequency: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ItemResult(Generic[T]):
    """Outcome of one item in a batch that isolates per-item failures."""

    key: str
    ok: bool
    value: T | None = None
    error: str | None = None
