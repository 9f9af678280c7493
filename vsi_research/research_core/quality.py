from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from vsi_research.research_core.models.interfaces import QualityFactors, Source

METADATA_FIELDS = ("filename", "title", "author", "date", "type", "tags", "summary")

# (max age in days, score); anything older scores RECENCY_FLOOR.
RECENCY_BUCKETS = ((30, 1.0), (90, 0.8), (365, 0.6), (1095, 0.4))
RECENCY_FLOOR = 0.2
UNKNOWN_RECENCY = 0.5
NO_METADATA_SCORE = 0.2
DEDUPE_PREFIX_CHARS = 100


@dataclass(frozen=True, slots=True)
class QualityWeights:
    relevance: float = 0.4
    completeness: float = 0.2
    metadata: float = 0.15
    collection: float = 0.15
    recency: float = 0.1
    default_relevance: float = 0.5
    default_collection_relevance: float = 0.8
    completeness_target_chars: int = 1000


DEFAULT_WEIGHTS = QualityWeights()


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def dedupe_key(source: Source) -> str:
    filename = (source.metadata or {}).get("filename")
    if filename:
        return f"file:{filename}"
    prefix = (source.content or "")[:DEDUPE_PREFIX_CHARS].strip()
    if prefix:
        return f"content:{prefix}"
    if source.id:
        return f"id:{source.id}"
    return "raw:" + json.dumps(source.to_dict(), sort_keys=True, default=str)[:DEDUPE_PREFIX_CHARS]


def deduplicate(sources: Iterable[Source]) -> list[Source]:
    """Keep the first source seen for each dedupe key, preserving order."""
    seen: set[str] = set()
    unique: list[Source] = []
    for source in sources:
        key = dedupe_key(source)
        if key in seen:
            continue
        seen.add(key)
        source.dedupe_key = key
        unique.append(source)
    return unique


def metadata_richness(metadata: dict[str, Any] | None) -> float:
    if not metadata:
        return NO_METADATA_SCORE
    present = sum(1 for f in METADATA_FIELDS if metadata.get(f) not in (None, "", [], {}))
    return present / len(METADATA_FIELDS)


def _parse_date(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def recency_score(metadata: dict[str, Any] | None, *, now: datetime | None = None) -> float:
    parsed = _parse_date((metadata or {}).get("date"))
    if parsed is None:
        return UNKNOWN_RECENCY
    age_days = ((now or datetime.now(timezone.utc)) - parsed).days
    for max_age, score in RECENCY_BUCKETS:
        if age_days < max_age:
            return score
    return RECENCY_FLOOR


def quality_factors(
    source: Source,
    *,
    weights: QualityWeights = DEFAULT_WEIGHTS,
    now: datetime | None = None,
) -> QualityFactors:
    if source.similarity is not None:
        relevance = source.similarity
    elif source.score is not None:
        relevance = source.score
    else:
        relevance = weights.default_relevance
    relevance = clamp(float(relevance))
    completeness = clamp(len(source.content or "") / weights.completeness_target_chars)
    metadata = clamp(metadata_richness(source.metadata))
    collection = clamp(
        weights.default_collection_relevance
        if source.collection_relevance is None
        else float(source.collection_relevance)
    )
    recency = clamp(recency_score(source.metadata, now=now))
    overall = clamp(
        relevance * weights.relevance
        + completeness * weights.completeness
        + metadata * weights.metadata
        + collection * weights.collection
        + recency * weights.recency
    )
    return QualityFactors(
        overall=overall,
        relevance=relevance,
        completeness=completeness,
        metadata=metadata,
        collection=collection,
        recency=recency,
    )


def score_sources(
    sources: Iterable[Source],
    *,
    weights: QualityWeights = DEFAULT_WEIGHTS,
    now: datetime | None = None,
) -> list[Source]:
    scored = []
    for source in sources:
        factors = quality_factors(source, weights=weights, now=now)
        source.quality_factors = factors
        source.quality_score = factors.overall
        scored.append(source)
    return scored


def curate(sources: Iterable[Source], *, threshold: float, max_sources: int) -> list[Source]:
    """Best first, drop anything under threshold, cap the count."""
    ranked = sorted(sources, key=lambda s: s.quality_score, reverse=True)
    return [s for s in ranked if s.quality_score >= threshold][: max(int(max_sources), 0)]


def quality_distribution(sources: Iterable[Source]) -> dict[str, int]:
    distribution = {"excellent": 0, "good": 0, "fair": 0, "poor": 0}
    for source in sources:
        if source.quality_score >= 0.9:
            distribution["excellent"] += 1
        elif source.quality_score >= 0.7:
            distribution["good"] += 1
        elif source.quality_score >= 0.5:
            distribution["fair"] += 1
        else:
            distribution["poor"] += 1
    return distribution
