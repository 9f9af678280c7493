from __future__ import annotations

from datetime import datetime, timezone

import pytest

from vsi_research.research_core import quality
from vsi_research.research_core.models.interfaces import Source
from vsi_research.research_core.quality import QualityWeights

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)

FULL_METADATA = {
    "filename": "report.pdf",
    "title": "Annual report",
    "author": "Research Team",
    "date": "2025-05-20",
    "type": "pdf",
    "tags": ["finance"],
    "summary": "Yearly results",
}


def _source(source_id: str, content: str = "", **kwargs) -> Source:
    return Source(
        id=source_id,
        collection_id=kwargs.pop("collection_id", "c1"),
        collection_name=kwargs.pop("collection_name", "Collection One"),
        content=content,
        **kwargs,
    )


def test_dedupe_by_filename_collapses_three_sources_to_one():
    sources = [
        _source("1", "first body", metadata={"filename": "a.txt"}),
        _source("2", "second body", metadata={"filename": "a.txt"}),
        _source("3", "third body", metadata={"filename": "a.txt"}),
    ]
    unique = quality.deduplicate(sources)
    assert [s.id for s in unique] == ["1"]
    assert unique[0].dedupe_key == "file:a.txt"


def test_dedupe_falls_back_to_content_prefix_then_id():
    shared_prefix = "x" * 100
    sources = [
        _source("1", shared_prefix + " tail one"),
        _source("2", shared_prefix + " tail two"),
        _source("3", ""),
        _source("4", ""),
        _source("3", ""),
    ]
    unique = quality.deduplicate(sources)
    assert [s.id for s in unique] == ["1", "3", "4"]
    keys = [s.dedupe_key for s in unique]
    assert len(keys) == len(set(keys))


def test_perfect_source_scores_one():
    source = _source(
        "1",
        "word " * 250,
        metadata=dict(FULL_METADATA),
        similarity=1.0,
        collection_relevance=1.0,
    )
    factors = quality.quality_factors(source, now=NOW)
    assert factors.relevance == 1.0
    assert factors.completeness == 1.0
    assert factors.metadata == 1.0
    assert factors.recency == 1.0
    assert factors.overall == pytest.approx(1.0)


@pytest.mark.parametrize(
    "similarity,score,metadata,collection_relevance",
    [
        (5.0, None, {"date": "2025-05-30"}, 3.0),
        (-2.0, None, {}, -1.0),
        (None, 1.7, None, None),
        (None, None, {"date": "not a date"}, 0.0),
    ],
)
def test_quality_score_stays_within_unit_interval(similarity, score, metadata, collection_relevance):
    source = _source(
        "1",
        "z" * 5000,
        metadata=metadata,
        similarity=similarity,
        score=score,
        collection_relevance=collection_relevance,
    )
    factors = quality.quality_factors(source, now=NOW)
    for value in (factors.overall, factors.relevance, factors.metadata, factors.collection):
        assert 0.0 <= value <= 1.0


def test_relevance_prefers_similarity_then_score_then_default():
    assert quality.quality_factors(_source("1", similarity=0.3, score=0.9)).relevance == 0.3
    assert quality.quality_factors(_source("1", score=0.9)).relevance == 0.9
    assert quality.quality_factors(_source("1")).relevance == 0.5


def test_metadata_richness_counts_present_fields():
    assert quality.metadata_richness(None) == 0.2
    assert quality.metadata_richness({}) == 0.2
    assert quality.metadata_richness({"title": "t", "author": "", "tags": []}) == pytest.approx(1 / 7)


@pytest.mark.parametrize(
    "date,expected",
    [
        ("2025-05-25", 1.0),
        ("2025-04-01", 0.8),
        ("2024-09-01", 0.6),
        ("2023-01-01", 0.4),
        ("2015-01-01", 0.2),
        ("garbage", 0.5),
        (None, 0.5),
    ],
)
def test_recency_buckets(date, expected):
    assert quality.recency_score({"date": date}, now=NOW) == expected


def test_collection_relevance_default_is_overridable():
    source = _source("1")
    assert quality.quality_factors(source).collection == 0.8
    weights = QualityWeights(default_collection_relevance=0.3)
    assert quality.quality_factors(source, weights=weights).collection == 0.3


def test_curate_sorts_filters_and_caps():
    sources = [_source(str(i), quality_score=q) for i, q in enumerate([0.65, 0.9, 0.4, 0.7, 0.9])]
    curated = quality.curate(sources, threshold=0.6, max_sources=3)
    assert [s.id for s in curated] == ["1", "4", "3"]
    assert len(quality.curate(sources, threshold=0.0, max_sources=50)) == len(sources)


def test_score_sources_sets_factors_on_each_source():
    sources = quality.score_sources([_source("1", "abc"), _source("2", "def")], now=NOW)
    assert all(s.quality_factors is not None for s in sources)
    assert all(s.quality_score == s.quality_factors.overall for s in sources)


def test_quality_distribution_buckets():
    sources = [_source(str(i), quality_score=q) for i, q in enumerate([0.95, 0.75, 0.55, 0.1])]
    assert quality.quality_distribution(sources) == {"excellent": 1, "good": 1, "fair": 1, "poor": 1}
