from __future__ import annotations

import pytest

from vsi_research.research_core import web_analysis


def test_themes_are_counted_case_insensitively_and_ordered():
    content = "Data and data. Machine learning and Machine Learning matter for the market."
    themes = web_analysis.extract_themes(content)
    assert [(t["theme"], t["frequency"]) for t in themes] == [
        ("data", 2),
        ("machine learning", 2),
        ("market", 1),
    ]
    assert themes[0]["confidence"] == pytest.approx(0.2)


def test_sentiment_confidence_is_margin_over_polar_words():
    sentiment = web_analysis.extract_sentiment("Good news, great team, bad timing")
    assert sentiment["overall"] == "positive"
    assert sentiment["confidence"] == pytest.approx(1 / 3)

    assert web_analysis.extract_sentiment("nothing polar here") == {
        "overall": "neutral",
        "confidence": 0.5,
        "positive": 0,
        "negative": 0,
    }


def test_entities_need_repeats():
    entities = web_analysis.extract_entities("Alice met Bob. Alice and Bob went to Paris.")
    assert [e["entity"] for e in entities] == ["Alice", "Bob"]


def test_key_points_skip_short_sentences():
    points = web_analysis.extract_key_points(
        "Short. This sentence is clearly longer than twenty chars. Another long sentence goes right here!"
    )
    assert [p["position"] for p in points] == [1, 2]
    assert [p["importance"] for p in points] == [1.0, 0.9]
    assert points[0]["point"].startswith("This sentence")


def test_summary_keeps_head_and_tail():
    content = "a" * 200 + "b" * 100 + "c" * 100
    assert web_analysis.extract_summary(content) == "a" * 200 + "..." + "c" * 100
    assert web_analysis.extract_summary("short") == "short"


def test_parse_web_analysis_handles_missing_content():
    assert web_analysis.parse_web_analysis(None) is None
    assert web_analysis.parse_web_analysis("") is None

    analysis = web_analysis.parse_web_analysis("Research on health data is excellent.")
    assert {t["theme"] for t in analysis.themes} == {"research", "health", "data"}
    assert analysis.sentiment["overall"] == "positive"
    assert analysis.raw_content.startswith("Research")


def test_combine_frequencies_sums_and_limits():
    items = [
        {"theme": "a", "frequency": 2},
        {"theme": "b"},
        {"theme": "a", "frequency": 1},
        {"theme": None, "frequency": 9},
        {"theme": "c", "frequency": 1},
    ]
    assert web_analysis.combine_frequencies(items, "theme", 2) == [
        {"theme": "a", "frequency": 3},
        {"theme": "b", "frequency": 1},
    ]
