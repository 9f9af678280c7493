"""Bibliography and distribution reports over curated sources."""
from __future__ import annotations

import math
import re
from collections import Counter
from typing import Any, Sequence

from vsi_research.research_core.models.interfaces import Source

EXCERPT_MAX_CHARS = 200
EXCERPT_SENTENCE_BREAK = 0.7
COMMON_TERM_LIMIT = 10
LOW_QUALITY_SHARE = 0.3
MIN_COLLECTIONS = 3
CONCENTRATION_SHARE = 0.7
GOOD_MEAN_QUALITY = 0.7

STOP_WORDS = frozenset(
    (
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
        "by", "is", "are", "was", "were", "be", "been", "being", "have", "has", "had", "do",
        "does", "did", "will", "would", "could", "should", "may", "might", "must", "can",
        "this", "that", "these", "those",
    )
)

QUALITY_RANGES = (
    ("0.9-1.0", 0.9),
    ("0.8-0.9", 0.8),
    ("0.7-0.8", 0.7),
    ("0.6-0.7", 0.6),
    ("0.5-0.6", 0.5),
    ("0.0-0.5", 0.0),
)


def format_citation(source: Source) -> str:
    metadata = source.metadata or {}
    parts: list[str] = []
    if metadata.get("author"):
        parts.append(str(metadata["author"]))
    if metadata.get("title"):
        parts.append(f'"{metadata["title"]}"')
    elif metadata.get("filename"):
        parts.append(f'"{metadata["filename"]}"')
    if source.collection_name:
        parts.append(f"in {source.collection_name}")
    if metadata.get("date"):
        parts.append(f"({metadata['date']})")
    parts.append(f"[Quality: {source.quality_score * 100:.0f}%]")
    return ", ".join(parts)


def create_excerpt(content: str | None, max_length: int = EXCERPT_MAX_CHARS) -> str:
    if not content:
        return "No content available"
    if len(content) <= max_length:
        return content
    truncated = content[:max_length]
    last_period = truncated.rfind(".")
    if last_period > max_length * EXCERPT_SENTENCE_BREAK:
        return truncated[: last_period + 1] + "..."
    return truncated + "..."


def build_bibliography(sources: Sequence[Source], query: str) -> dict[str, Any]:
    by_collection: dict[str, list[Source]] = {}
    for source in sources:
        by_collection.setdefault(source.collection_name or "Unknown", []).append(source)

    entries = [
        {
            "collection": name,
            "source_count": len(members),
            "average_quality": sum(s.quality_score for s in members) / len(members),
            "sources": [
                {
                    "id": s.id,
                    "index": idx + 1,
                    "citation": format_citation(s),
                    "quality_score": s.quality_score,
                    "excerpt": create_excerpt(s.content),
                    "metadata": s.metadata,
                }
                for idx, s in enumerate(members)
            ],
        }
        for name, members in by_collection.items()
    ]

    scores = [s.quality_score for s in sources]
    lengths = [len(s.content or "") for s in sources]
    return {
        "query": query,
        "total_sources": len(sources),
        "collections": len(by_collection),
        "entries": entries,
        "statistics": {
            "average_quality": sum(scores) / len(scores) if scores else 0.0,
            "min_quality": min(scores) if scores else 0.0,
            "max_quality": max(scores) if scores else 0.0,
            "total_content_length": sum(lengths),
            "average_content_length": sum(lengths) / len(lengths) if lengths else 0.0,
        },
    }


def collection_distribution(sources: Sequence[Source]) -> dict[str, dict[str, Any]]:
    distribution: dict[str, dict[str, Any]] = {}
    for source in sources:
        entry = distribution.setdefault(
            source.collection_name or "Unknown",
            {"count": 0, "total_quality": 0.0, "avg_quality": 0.0, "sources": []},
        )
        entry["count"] += 1
        entry["total_quality"] += source.quality_score
        entry["sources"].append(source.id)
    for entry in distribution.values():
        entry["avg_quality"] = entry["total_quality"] / entry["count"]
    return distribution


def quality_ranges(sources: Sequence[Source]) -> dict[str, Any]:
    ranges = {label: 0 for label, _ in QUALITY_RANGES}
    for source in sources:
        for label, floor in QUALITY_RANGES:
            if source.quality_score >= floor:
                ranges[label] += 1
                break

    scores = sorted(s.quality_score for s in sources)
    if not scores:
        stats = {"mean": 0.0, "median": 0.0, "std_dev": 0.0, "min": 0.0, "max": 0.0}
    else:
        mean = sum(scores) / len(scores)
        mid = len(scores) // 2
        median = scores[mid] if len(scores) % 2 else (scores[mid - 1] + scores[mid]) / 2
        variance = sum((s - mean) ** 2 for s in scores) / len(scores)
        stats = {
            "mean": mean,
            "median": median,
            "std_dev": math.sqrt(variance),
            "min": scores[0],
            "max": scores[-1],
        }
    return {"ranges": ranges, "statistics": stats}


def common_terms(sources: Sequence[Source], limit: int = COMMON_TERM_LIMIT) -> list[dict[str, Any]]:
    counts: Counter[str] = Counter()
    for source in sources:
        if not source.content:
            continue
        words = re.sub(r"[^\w\s]", " ", source.content.lower()).split()
        counts.update(w for w in words if len(w) > 2 and w not in STOP_WORDS)
    return [{"term": term, "frequency": n} for term, n in counts.most_common(limit)]


def content_patterns(sources: Sequence[Source]) -> dict[str, Any]:
    content_types: Counter[str] = Counter()
    buckets = {"short": 0, "medium": 0, "long": 0, "very_long": 0}
    total_length = 0
    for source in sources:
        length = len(source.content or "")
        total_length += length
        content_types[(source.metadata or {}).get("type") or "unknown"] += 1
        if length < 500:
            buckets["short"] += 1
        elif length < 2000:
            buckets["medium"] += 1
        elif length < 5000:
            buckets["long"] += 1
        else:
            buckets["very_long"] += 1
    return {
        "content_types": dict(content_types),
        "average_length": total_length / len(sources) if sources else 0.0,
        "length_distribution": buckets,
        "common_terms": common_terms(sources),
    }


def recommendations(
    sources: Sequence[Source],
    collections: dict[str, dict[str, Any]],
    quality: dict[str, Any],
) -> list[dict[str, str]]:
    total = len(sources)
    if total == 0:
        return [
            {
                "type": "coverage",
                "priority": "high",
                "message": "No sources passed curation. Broaden the query or add collections.",
            }
        ]

    recs: list[dict[str, str]] = []
    low_quality = quality["ranges"]["0.0-0.5"] + quality["ranges"]["0.5-0.6"]
    if low_quality / total > LOW_QUALITY_SHARE:
        recs.append(
            {
                "type": "quality",
                "priority": "high",
                "message": (
                    f"{round(low_quality / total * 100)}% of sources have low quality scores. "
                    "Consider refining search criteria or expanding to additional collections."
                ),
            }
        )
    if len(collections) < MIN_COLLECTIONS:
        recs.append(
            {
                "type": "coverage",
                "priority": "medium",
                "message": (
                    f"Sources found in only {len(collections)} collections. "
                    "Consider expanding search to improve coverage."
                ),
            }
        )
    largest = max(entry["count"] for entry in collections.values())
    if largest / total > CONCENTRATION_SHARE:
        recs.append(
            {
                "type": "diversity",
                "priority": "medium",
                "message": (
                    "Sources are heavily concentrated in one collection. Consider balancing "
                    "sources across collections for better perspective."
                ),
            }
        )
    mean = quality["statistics"]["mean"]
    if mean > GOOD_MEAN_QUALITY:
        recs.append(
            {
                "type": "success",
                "priority": "info",
                "message": f"Good source quality achieved with average score of {mean * 100:.0f}%.",
            }
        )
    return recs


def distribution_analysis(sources: Sequence[Source], query: str) -> dict[str, Any]:
    collections = collection_distribution(sources)
    quality = quality_ranges(sources)
    return {
        "query": query,
        "total_sources": len(sources),
        "collection_distribution": collections,
        "quality_distribution": quality,
        "content_patterns": content_patterns(sources),
        "recommendations": recommendations(sources, collections, quality),
    }
