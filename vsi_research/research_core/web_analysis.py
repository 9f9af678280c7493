"""Lightweight text heuristics applied to content extracted from web pages."""
from __future__ import annotations

import re
from collections import Counter
from typing import Any, Iterable

from vsi_research.research_core.models.interfaces import WebAnalysis

WEB_THEMES = (
    "technology",
    "business",
    "science",
    "politics",
    "health",
    "education",
    "environment",
    "innovation",
    "research",
    "development",
    "analysis",
    "market",
    "strategy",
    "data",
    "artificial intelligence",
    "machine learning",
)
POSITIVE_WORDS = frozenset(
    ("good", "great", "excellent", "positive", "beneficial", "successful", "innovative")
)
NEGATIVE_WORDS = frozenset(
    ("bad", "poor", "negative", "problem", "issue", "failure", "difficult")
)

MAX_THEMES = 5
MAX_ENTITIES = 10
MAX_KEY_POINTS = 5
SUMMARY_HEAD_CHARS = 200
SUMMARY_TAIL_CHARS = 100


def extract_themes(content: str) -> list[dict[str, Any]]:
    themes = []
    for theme in WEB_THEMES:
        count = len(re.findall(rf"\b{re.escape(theme)}\b", content, flags=re.IGNORECASE))
        if count:
            themes.append(
                {"theme": theme, "frequency": count, "confidence": min(1.0, count / 10)}
            )
    themes.sort(key=lambda t: t["frequency"], reverse=True)
    return themes[:MAX_THEMES]


def extract_sentiment(content: str) -> dict[str, Any]:
    words = re.split(r"\W+", content.lower())
    positive = sum(1 for w in words if w in POSITIVE_WORDS)
    negative = sum(1 for w in words if w in NEGATIVE_WORDS)
    total = positive + negative
    if total == 0:
        return {"overall": "neutral", "confidence": 0.5, "positive": 0, "negative": 0}
    if positive > negative:
        overall = "positive"
    elif negative > positive:
        overall = "negative"
    else:
        overall = "neutral"
    return {
        "overall": overall,
        "confidence": abs(positive - negative) / total,
        "positive": positive,
        "negative": negative,
    }


def extract_entities(content: str) -> list[dict[str, Any]]:
    counts = Counter(w for w in re.findall(r"\b[A-Z][a-z]+\b", content) if len(w) > 2)
    ranked = sorted(
        ((entity, n) for entity, n in counts.items() if n > 1),
        key=lambda item: item[1],
        reverse=True,
    )
    return [
        {"entity": entity, "frequency": n, "type": "named_entity"}
        for entity, n in ranked[:MAX_ENTITIES]
    ]


def extract_key_points(content: str) -> list[dict[str, Any]]:
    sentences = [s.strip() for s in re.split(r"[.!?]+", content) if len(s.strip()) > 20]
    return [
        {"point": sentence, "position": idx + 1, "importance": round(1.0 - idx * 0.1, 2)}
        for idx, sentence in enumerate(sentences[:MAX_KEY_POINTS])
    ]


def extract_summary(content: str) -> str:
    if len(content) <= SUMMARY_HEAD_CHARS + SUMMARY_TAIL_CHARS:
        return content
    return f"{content[:SUMMARY_HEAD_CHARS]}...{content[-SUMMARY_TAIL_CHARS:]}"


def parse_web_analysis(raw_content: str | None) -> WebAnalysis | None:
    if not raw_content:
        return None
    return WebAnalysis(
        themes=extract_themes(raw_content),
        sentiment=extract_sentiment(raw_content),
        entities=extract_entities(raw_content),
        key_points=extract_key_points(raw_content),
        summary=extract_summary(raw_content),
        raw_content=raw_content,
    )


def combine_frequencies(
    items: Iterable[dict[str, Any]],
    key_field: str,
    limit: int,
) -> list[dict[str, Any]]:
    """Sum `frequency` per key across analyses and keep the most frequent."""
    totals: Counter[str] = Counter()
    for item in items:
        key = item.get(key_field)
        if key:
            totals[key] += item.get("frequency") or 1
    return [{key_field: key, "frequency": n} for key, n in totals.most_common(limit)]
