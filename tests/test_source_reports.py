from __future__ import annotations

import pytest

from vsi_research.research_core import source_reports
from vsi_research.research_core.models.interfaces import Source


def _source(source_id: str, collection: str, score: float, content: str = "", **metadata) -> Source:
    return Source(
        id=source_id,
        collection_id=collection.lower(),
        collection_name=collection,
        content=content,
        metadata=metadata,
        quality_score=score,
    )


def test_format_citation_orders_author_title_collection_date_quality():
    source = _source("1", "Papers", 0.874, author="Ada", title="Engines", date="1843")
    assert source_reports.format_citation(source) == 'Ada, "Engines", in Papers, (1843), [Quality: 87%]'


def test_format_citation_uses_filename_without_title():
    source = _source("1", "Docs", 0.5, filename="notes.md")
    assert source_reports.format_citation(source) == '"notes.md", in Docs, [Quality: 50%]'


def test_create_excerpt_breaks_at_late_sentence_end():
    content = "a" * 150 + ". " + "b" * 100
    assert source_reports.create_excerpt(content) == "a" * 150 + "...."
    early = "a" * 50 + ". " + "b" * 200
    assert source_reports.create_excerpt(early) == early[:200] + "..."
    assert source_reports.create_excerpt("") == "No content available"
    assert source_reports.create_excerpt("short") == "short"


def test_bibliography_groups_by_collection_with_statistics():
    sources = [
        _source("1", "A", 0.9, "x" * 100),
        _source("2", "B", 0.7, "y" * 300),
        _source("3", "A", 0.8, "z" * 200),
    ]
    bibliography = source_reports.build_bibliography(sources, "query")

    assert bibliography["total_sources"] == 3
    assert [e["collection"] for e in bibliography["entries"]] == ["A", "B"]
    assert bibliography["entries"][0]["average_quality"] == pytest.approx(0.85)
    assert [s["index"] for s in bibliography["entries"][0]["sources"]] == [1, 2]
    stats = bibliography["statistics"]
    assert stats["average_quality"] == pytest.approx(0.8)
    assert (stats["min_quality"], stats["max_quality"]) == (0.7, 0.9)
    assert stats["total_content_length"] == 600


def test_empty_reports_have_zero_statistics():
    bibliography = source_reports.build_bibliography([], "query")
    assert bibliography["statistics"]["average_quality"] == 0.0

    analysis = source_reports.distribution_analysis([], "query")
    assert analysis["quality_distribution"]["statistics"]["mean"] == 0.0
    assert analysis["content_patterns"]["average_length"] == 0.0
    assert analysis["recommendations"][0]["type"] == "coverage"


def test_quality_ranges_and_statistics():
    sources = [_source(str(i), "A", q) for i, q in enumerate([0.95, 0.85, 0.65, 0.3])]
    ranges = source_reports.quality_ranges(sources)
    assert ranges["ranges"] == {
        "0.9-1.0": 1,
        "0.8-0.9": 1,
        "0.7-0.8": 0,
        "0.6-0.7": 1,
        "0.5-0.6": 0,
        "0.0-0.5": 1,
    }
    assert ranges["statistics"]["median"] == pytest.approx(0.75)
    assert ranges["statistics"]["min"] == 0.3


def test_content_patterns_buckets_and_common_terms():
    sources = [
        _source("1", "A", 0.8, "python python asyncio the and", type="article"),
        _source("2", "A", 0.8, "p" * 600 + " python", type="article"),
        _source("3", "A", 0.8, "q" * 6000),
    ]
    patterns = source_reports.content_patterns(sources)
    assert patterns["content_types"] == {"article": 2, "unknown": 1}
    assert patterns["length_distribution"] == {"short": 1, "medium": 1, "long": 0, "very_long": 1}
    assert patterns["common_terms"][0] == {"term": "python", "frequency": 3}
    assert all(t["term"] not in ("the", "and") for t in patterns["common_terms"])


def test_recommendations_flag_low_quality_and_concentration():
    sources = [_source(str(i), "A", 0.4) for i in range(4)]
    recs = source_reports.distribution_analysis(sources, "q")["recommendations"]
    assert [r["type"] for r in recs] == ["quality", "coverage", "diversity"]
    assert recs[0]["priority"] == "high"


def test_recommendations_report_success_for_good_spread():
    sources = [_source(str(i), name, 0.9) for i, name in enumerate(["A", "B", "C"])]
    recs = source_reports.distribution_analysis(sources, "q")["recommendations"]
    assert [r["type"] for r in recs] == ["success"]
