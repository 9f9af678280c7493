"""Content analysis frameworks.

Each framework is a pure function of the text (and optionally its source)
returning a FrameworkResult. Frameworks are looked up by name through the
registry so new ones can be added without touching the analysis agent.
"""
from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Protocol

from vsi_research.research_core.models.interfaces import FrameworkResult, Insight, Source, Theme

THEME_PATTERNS: dict[str, tuple[str, ...]] = {
    "technology": (
        "technology", "digital", "software", "computer", "internet", "data", "algorithm",
        "artificial", "intelligence", "machine", "learning",
    ),
    "business": (
        "business", "market", "economic", "financial", "revenue", "profit", "customer",
        "strategy", "management", "organization",
    ),
    "innovation": (
        "innovation", "creative", "new", "novel", "breakthrough", "advancement",
        "development", "research", "discovery",
    ),
    "sustainability": (
        "sustainable", "environment", "green", "climate", "renewable", "carbon",
        "emissions", "ecological", "conservation",
    ),
    "social": (
        "social", "community", "people", "human", "society", "culture", "relationship",
        "communication", "collaboration",
    ),
    "education": (
        "education", "learning", "teaching", "student", "knowledge", "training", "skill",
        "academic", "university",
    ),
    "health": (
        "health", "medical", "healthcare", "patient", "treatment", "therapy", "wellness",
        "disease", "medicine",
    ),
}

POSITIVE_WORDS = frozenset(
    (
        "good", "great", "excellent", "positive", "beneficial", "effective", "successful",
        "improvement", "advantage", "opportunity", "innovation", "progress", "growth", "success",
    )
)
NEGATIVE_WORDS = frozenset(
    (
        "bad", "poor", "negative", "problem", "issue", "challenge", "difficulty", "failure",
        "decline", "risk", "threat", "concern", "limitation", "weakness",
    )
)
SENTIMENT_DOMINANCE = 1.5

TEMPORAL_PATTERNS: dict[str, tuple[str, ...]] = {
    "recent": ("recent", "recently", "current", "now", "today", "this year", "2024", "2025"),
    "historical": ("past", "previous", "earlier", "before", "history", "traditional"),
    "future": ("future", "upcoming", "will", "predict", "forecast", "expect", "plan"),
}

MAX_THEME_EVIDENCE = 5
MAX_KEYWORD_CONCEPTS = 20
MAX_CONCEPTS = 20
IDEAL_SENTENCE_WORDS = (10, 25)
IDEAL_SENTENCE_CENTER = 17.5
VARIANCE_NORMALIZER = 50
GOOD_READABILITY = 0.7
POOR_READABILITY = 0.4

_WORD_RE = re.compile(r"\b\w+\b")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_YEAR_RE = re.compile(r"\b(?:19|20)\d{2}\b")


class ContentScorer(Protocol):
    name: str

    def score(self, content: str, source: Source | None = None) -> FrameworkResult: ...


FrameworkFn = Callable[[str, "Source | None"], FrameworkResult]


@dataclass(frozen=True, slots=True)
class FunctionScorer:
    name: str
    fn: FrameworkFn

    def score(self, content: str, source: Source | None = None) -> FrameworkResult:
        return self.fn(content, source)


FRAMEWORKS: dict[str, ContentScorer] = {}


def register_framework(name: str) -> Callable[[FrameworkFn], FrameworkFn]:
    def decorator(fn: FrameworkFn) -> FrameworkFn:
        FRAMEWORKS[name] = FunctionScorer(name=name, fn=fn)
        return fn

    return decorator


def get_framework(name: str) -> ContentScorer | None:
    return FRAMEWORKS.get(name)


def available_frameworks() -> list[str]:
    return list(FRAMEWORKS)


def _count_phrase(pattern: str, text: str, flags: int = 0) -> list[str]:
    return re.findall(rf"\b{re.escape(pattern)}\b", text, flags=flags)


def _sentences(content: str) -> list[str]:
    return [s for s in _SENTENCE_SPLIT_RE.split(content) if s.strip()]


def _variance(values: list[int]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


@register_framework("thematic")
def thematic_analysis(content: str, source: Source | None = None) -> FrameworkResult:
    words = _WORD_RE.findall(content.lower())
    word_freq = Counter(w for w in words if len(w) > 3)

    themes: list[Theme] = []
    for category, patterns in THEME_PATTERNS.items():
        matched: list[str] = []
        for pattern in patterns:
            matched.extend(_count_phrase(pattern, content, re.IGNORECASE))
        if matched:
            score = len(matched)
            themes.append(
                Theme(
                    category=category,
                    score=score,
                    confidence=min(1.0, score / 10),
                    evidence=matched[:MAX_THEME_EVIDENCE],
                    frequency=score / len(words) if words else 0.0,
                )
            )

    keywords = sorted(
        ((w, n) for w, n in word_freq.items() if n > 1 and len(w) > 4),
        key=lambda item: item[1],
        reverse=True,
    )[:MAX_KEYWORD_CONCEPTS]
    concepts = [
        {"term": w, "frequency": n, "relevance": n / len(words), "type": "keyword"}
        for w, n in keywords
    ]

    insights: list[Insight] = []
    if themes:
        dominant = max(themes, key=lambda t: t.score)
        insights.append(
            Insight(
                type="thematic",
                category="dominant_theme",
                content=(
                    f"Dominant theme identified: {dominant.category} "
                    f"(confidence: {dominant.confidence * 100:.0f}%)"
                ),
                confidence=dominant.confidence,
                evidence=list(dominant.evidence),
            )
        )
        if len(themes) > 1:
            insights.append(
                Insight(
                    type="thematic",
                    category="theme_diversity",
                    content=(
                        f"Multiple themes detected ({len(themes)} total), "
                        "indicating rich content diversity"
                    ),
                    confidence=0.8,
                    data={"themes": [t.category for t in themes]},
                )
            )
    return FrameworkResult(framework="thematic", themes=themes, concepts=concepts, insights=insights)


def overall_sentiment(positive: int, negative: int) -> str:
    if positive > negative * SENTIMENT_DOMINANCE:
        return "positive"
    if negative > positive * SENTIMENT_DOMINANCE:
        return "negative"
    return "neutral"


@register_framework("sentiment")
def sentiment_analysis(content: str, source: Source | None = None) -> FrameworkResult:
    words = _WORD_RE.findall(content.lower())
    positive_terms = [w for w in words if w in POSITIVE_WORDS]
    negative_terms = [w for w in words if w in NEGATIVE_WORDS]
    positive, negative = len(positive_terms), len(negative_terms)
    neutral = len(words) - positive - negative
    polar = positive + negative
    total = len(words) or 1

    sentiment = {
        "overall": overall_sentiment(positive, negative),
        "scores": {
            "positive": positive / total,
            "negative": negative / total,
            "neutral": neutral / total,
        },
        "confidence": abs(positive - negative) / polar if polar else 0.0,
        "evidence": {"positive": positive_terms, "negative": negative_terms},
    }
    insight = Insight(
        type="sentiment",
        category="overall_tone",
        content=(
            f"Content sentiment: {sentiment['overall']} "
            f"({sentiment['confidence'] * 100:.0f}% confidence)"
        ),
        confidence=sentiment["confidence"],
        data={"overall": sentiment["overall"]},
    )
    return FrameworkResult(framework="sentiment", sentiment=sentiment, insights=[insight])


@register_framework("conceptual")
def conceptual_analysis(content: str, source: Source | None = None) -> FrameworkResult:
    sentences = _SENTENCE_SPLIT_RE.split(content)
    candidates: dict[str, None] = {}
    for sentence in sentences:
        tokens = sentence.split()
        for token in tokens:
            word = re.sub(r"[^\w]", "", token)
            if len(word) > 2 and word[0].isupper():
                candidates[word.lower()] = None
        for first, second in zip(tokens, tokens[1:]):
            compound = re.sub(r"[^\w\s]", "", f"{first} {second}".lower())
            if len(compound) > 5:
                candidates[compound] = None

    lowered = content.lower()
    concepts = []
    for term in candidates:
        frequency = len(_count_phrase(term, lowered))
        if frequency:
            concepts.append(
                {
                    "term": term,
                    "frequency": frequency,
                    "relevance": frequency / len(sentences),
                    "type": "concept",
                }
            )
    concepts.sort(key=lambda c: c["relevance"], reverse=True)
    concepts = concepts[:MAX_CONCEPTS]

    insights = []
    if concepts:
        insights.append(
            Insight(
                type="conceptual",
                category="key_concepts",
                content=(
                    f"Identified {len(concepts)} key concepts, with "
                    f'"{concepts[0]["term"]}" being most prominent'
                ),
                confidence=0.7,
                data={"concepts": [c["term"] for c in concepts[:10]]},
            )
        )
    return FrameworkResult(framework="conceptual", concepts=concepts, insights=insights)


def readability_score(avg_words_per_sentence: float, sentences: list[str]) -> float:
    low, high = IDEAL_SENTENCE_WORDS
    if low <= avg_words_per_sentence <= high:
        length_score = 1.0
    else:
        length_score = max(
            0.0, 1.0 - abs(avg_words_per_sentence - IDEAL_SENTENCE_CENTER) / IDEAL_SENTENCE_CENTER
        )
    variety_score = min(1.0, _variance([len(s.split()) for s in sentences]) / VARIANCE_NORMALIZER)
    return length_score * 0.7 + variety_score * 0.3


def content_completeness(content: str) -> float:
    lowered = content.lower()
    completeness = 0.5
    if "introduction" in lowered or "overview" in lowered:
        completeness += 0.1
    if "conclusion" in lowered or "summary" in lowered:
        completeness += 0.1
    if len(content.split("\n")) > 3:
        completeness += 0.1
    if "http" in content or "www" in content or re.search(r"\[\d+\]", content):
        completeness += 0.1
    if len(content) > 1000:
        completeness += 0.1
    if len(content) > 3000:
        completeness += 0.1
    return min(1.0, completeness)


@register_framework("structural")
def structural_analysis(content: str, source: Source | None = None) -> FrameworkResult:
    sentences = _sentences(content)
    paragraphs = [p for p in re.split(r"\n\s*\n", content) if p.strip()]
    words = _WORD_RE.findall(content)
    avg_words = len(words) / len(sentences) if sentences else 0.0
    readability = readability_score(avg_words, sentences) if sentences else 0.0

    quality = {
        "word_count": len(words),
        "sentence_count": len(sentences),
        "paragraph_count": len(paragraphs),
        "avg_words_per_sentence": avg_words,
        "avg_sentences_per_paragraph": len(sentences) / len(paragraphs) if paragraphs else 0.0,
        "readability_score": readability,
        "completeness": content_completeness(content),
    }

    insights = []
    if readability > GOOD_READABILITY:
        insights.append(
            Insight(
                type="structural",
                category="readability",
                content=f"Content has good readability (score: {readability * 100:.0f}%)",
                confidence=0.8,
                data={"readability_score": readability},
            )
        )
    elif readability < POOR_READABILITY:
        insights.append(
            Insight(
                type="structural",
                category="readability",
                content=f"Content may be difficult to read (score: {readability * 100:.0f}%)",
                confidence=0.7,
                data={"readability_score": readability},
            )
        )
    return FrameworkResult(framework="structural", quality=quality, insights=insights)


@register_framework("temporal")
def temporal_analysis(content: str, source: Source | None = None) -> FrameworkResult:
    lowered = content.lower()
    scores = {
        period: sum(len(_count_phrase(p, lowered)) for p in patterns)
        for period, patterns in TEMPORAL_PATTERNS.items()
    }
    dominant = max(scores, key=scores.get)
    years = sorted(set(_YEAR_RE.findall(content)))

    insights = []
    if scores[dominant] > 0:
        insights.append(
            Insight(
                type="temporal",
                category="time_focus",
                content=f"Content has a {dominant} temporal focus",
                confidence=min(1.0, scores[dominant] / 10),
                data={"temporal_scores": scores},
            )
        )
    if years:
        insights.append(
            Insight(
                type="temporal",
                category="date_references",
                content=f"References to specific years: {', '.join(years)}",
                confidence=0.9,
                evidence=years,
            )
        )
    temporal = {
        "scores": scores,
        "dominant": dominant if scores[dominant] > 0 else None,
        "years": years,
    }
    return FrameworkResult(framework="temporal", temporal=temporal, insights=insights)
