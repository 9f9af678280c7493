from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Iterable, Sequence

from vsi_research.research_core.models.interfaces import AnalysisRecord, Insight, ThemeAggregate

PRIORITY_WEIGHTS = {"high": 1.0, "medium": 0.7, "low": 0.4, "info": 0.3}
TYPE_WEIGHTS = {
    "meta": 1.0,
    "thematic": 0.8,
    "sentiment": 0.7,
    "external": 0.7,
    "structural": 0.6,
    "temporal": 0.6,
    "conceptual": 0.5,
}


@dataclass(frozen=True, slots=True)
class ThemeWeights:
    avg_score: float = 0.4
    avg_confidence: float = 0.3
    prevalence: float = 0.3


@dataclass(frozen=True, slots=True)
class InsightWeights:
    confidence: float = 0.4
    priority: float = 0.3
    type: float = 0.2
    evidence: float = 0.1
    default_confidence: float = 0.5
    default_weight: float = 0.5
    missing_evidence: float = 0.3
    evidence_target: int = 3
    priority_weights: dict[str, float] = field(default_factory=lambda: dict(PRIORITY_WEIGHTS))
    type_weights: dict[str, float] = field(default_factory=lambda: dict(TYPE_WEIGHTS))


DEFAULT_THEME_WEIGHTS = ThemeWeights()
DEFAULT_INSIGHT_WEIGHTS = InsightWeights()


def theme_overall_score(
    avg_score: float,
    avg_confidence: float,
    prevalence: float,
    weights: ThemeWeights = DEFAULT_THEME_WEIGHTS,
) -> float:
    return (
        avg_score * weights.avg_score
        + avg_confidence * weights.avg_confidence
        + prevalence * weights.prevalence
    )


def aggregate_themes(
    records: Sequence[AnalysisRecord],
    weights: ThemeWeights = DEFAULT_THEME_WEIGHTS,
) -> list[ThemeAggregate]:
    """Combine per-source themes by category, best overall score first."""
    aggregates: dict[str, ThemeAggregate] = {}
    confidence_sums: Counter[str] = Counter()
    for record in records:
        for theme in record.themes:
            agg = aggregates.setdefault(theme.category, ThemeAggregate(category=theme.category))
            agg.total_score += theme.score or 0
            agg.occurrences += 1
            confidence_sums[theme.category] += theme.confidence or 0
            agg.sources.append(record.source_id)
            agg.evidence.extend(theme.evidence or [])

    total_sources = len(records) or 1
    for category, agg in aggregates.items():
        agg.avg_confidence = confidence_sums[category] / agg.occurrences
        agg.avg_score = agg.total_score / agg.occurrences
        agg.prevalence = agg.occurrences / total_sources
        agg.overall_score = theme_overall_score(
            agg.avg_score, agg.avg_confidence, agg.prevalence, weights
        )
    return sorted(aggregates.values(), key=lambda a: a.overall_score, reverse=True)


def theme_relationships(records: Sequence[AnalysisRecord]) -> list[dict[str, Any]]:
    """Pairwise theme co-occurrence; each source counts a pair once."""
    counts: Counter[tuple[str, str]] = Counter()
    for record in records:
        categories = sorted({t.category for t in record.themes})
        counts.update(combinations(categories, 2))

    total = len(records) or 1
    relationships = [
        {
            "theme1": first,
            "theme2": second,
            "cooccurrence": count,
            "strength": count / total,
            "type": "cooccurrence",
        }
        for (first, second), count in counts.items()
    ]
    return sorted(relationships, key=lambda r: r["strength"], reverse=True)


def theme_concentration(themes: Sequence[ThemeAggregate]) -> float:
    total = sum(t.occurrences for t in themes)
    if not themes or total == 0:
        return 0.0
    return themes[0].occurrences / total


def theme_cross_references(records: Sequence[AnalysisRecord]) -> dict[str, dict[str, Any]]:
    refs: dict[str, dict[str, Any]] = {}
    for record in records:
        categories = [t.category for t in record.themes]
        for category in categories:
            entry = refs.setdefault(category, {"sources": [], "related_themes": []})
            entry["sources"].append(
                {"source_id": record.source_id, "collection_name": record.collection_name}
            )
            for other in categories:
                if other != category and other not in entry["related_themes"]:
                    entry["related_themes"].append(other)
    return refs


def theme_statistics(themes: Sequence[ThemeAggregate], total_sources: int) -> dict[str, Any]:
    return {
        "total_themes": len(themes),
        "avg_themes_per_source": (
            sum(t.occurrences for t in themes) / total_sources if total_sources else 0.0
        ),
        "dominant_theme": themes[0].category if themes else None,
        "theme_concentration": theme_concentration(themes),
    }


def meta_insights(
    records: Sequence[AnalysisRecord],
    themes: Sequence[ThemeAggregate],
) -> list[Insight]:
    """Cross-cutting insights about the whole analyzed corpus."""
    insights: list[Insight] = []
    if len(themes) > 1:
        insights.append(
            Insight(
                type="meta",
                category="theme_diversity",
                content=(
                    f"Analysis reveals {len(themes)} distinct themes, "
                    "indicating rich content diversity"
                ),
                confidence=0.8,
                evidence=[t.category for t in themes],
                priority="high",
            )
        )
    if themes:
        dominant = themes[0]
        insights.append(
            Insight(
                type="meta",
                category="dominant_pattern",
                content=(
                    f'"{dominant.category}" emerges as the dominant theme with '
                    f"{dominant.prevalence * 100:.0f}% prevalence across sources"
                ),
                confidence=dominant.avg_confidence,
                evidence=[f"Appeared in {dominant.occurrences} sources"],
                priority="high",
            )
        )

    sentiments = Counter(
        r.sentiment["overall"] for r in records if r.sentiment and r.sentiment.get("overall")
    )
    if sentiments:
        label, count = sentiments.most_common(1)[0]
        share = count / sum(sentiments.values())
        insights.append(
            Insight(
                type="meta",
                category="sentiment_pattern",
                content=f"Overall sentiment is predominantly {label} ({share * 100:.0f}% of sources)",
                confidence=0.7,
                evidence=[json.dumps(dict(sentiments))],
                priority="medium",
            )
        )

    completeness = [
        r.quality["completeness"]
        for r in records
        if r.quality and r.quality.get("completeness") is not None
    ]
    if completeness:
        avg = sum(completeness) / len(completeness)
        level = "high" if avg > 0.7 else "moderate" if avg > 0.5 else "low"
        insights.append(
            Insight(
                type="meta",
                category="content_quality",
                content=f"Content quality is {level} with average completeness of {avg * 100:.0f}%",
                confidence=0.8,
                evidence=[f"{len(completeness)} sources analyzed"],
                priority="medium",
            )
        )
    return insights


def insight_score(insight: Insight, weights: InsightWeights = DEFAULT_INSIGHT_WEIGHTS) -> float:
    confidence = weights.default_confidence if insight.confidence is None else insight.confidence
    priority = weights.priority_weights.get(insight.priority or "", weights.default_weight)
    type_weight = weights.type_weights.get(insight.type, weights.default_weight)
    if insight.evidence is None:
        evidence = weights.missing_evidence
    else:
        evidence = min(1.0, len(insight.evidence) / weights.evidence_target)
    return (
        confidence * weights.confidence
        + priority * weights.priority
        + type_weight * weights.type
        + evidence * weights.evidence
    )


def rank_insights(
    insights: Iterable[Insight],
    weights: InsightWeights = DEFAULT_INSIGHT_WEIGHTS,
) -> list[Insight]:
    """Score every insight and sort best first; ties keep their input order."""
    scored = list(insights)
    for insight in scored:
        insight.score = insight_score(insight, weights)
    return sorted(scored, key=lambda i: i.score, reverse=True)


def categorize_insights(insights: Iterable[Insight]) -> dict[str, dict[str, int]]:
    categories: dict[str, dict[str, int]] = {}
    for insight in insights:
        bucket = categories.setdefault(insight.type, {})
        bucket[insight.category] = bucket.get(insight.category, 0) + 1
    return categories


def confidence_distribution(insights: Iterable[Insight]) -> dict[str, int]:
    distribution = {"high": 0, "medium": 0, "low": 0}
    for insight in insights:
        confidence = 0.5 if insight.confidence is None else insight.confidence
        if confidence > 0.8:
            distribution["high"] += 1
        elif confidence >= 0.5:
            distribution["medium"] += 1
        else:
            distribution["low"] += 1
    return distribution


def analysis_statistics(records: Sequence[AnalysisRecord]) -> dict[str, Any]:
    if not records:
        return {
            "total_sources": 0,
            "avg_confidence": 0.0,
            "theme_distribution": {},
            "sentiment_distribution": {"positive": 0, "negative": 0, "neutral": 0},
            "concept_count": 0,
            "avg_quality": 0.0,
            "avg_concepts_per_source": 0.0,
        }
    theme_distribution: Counter[str] = Counter()
    sentiment_distribution = {"positive": 0, "negative": 0, "neutral": 0}
    concept_count = 0
    quality_total = 0.0
    for record in records:
        theme_distribution.update(t.category for t in record.themes)
        if record.sentiment:
            label = record.sentiment.get("overall") or "neutral"
            sentiment_distribution[label] = sentiment_distribution.get(label, 0) + 1
        concept_count += len(record.concepts)
        if record.quality and record.quality.get("completeness"):
            quality_total += record.quality["completeness"]
    return {
        "total_sources": len(records),
        "avg_confidence": sum(r.confidence for r in records) / len(records),
        "theme_distribution": dict(theme_distribution),
        "sentiment_distribution": sentiment_distribution,
        "concept_count": concept_count,
        "avg_quality": quality_total / len(records),
        "avg_concepts_per_source": concept_count / len(records),
    }
