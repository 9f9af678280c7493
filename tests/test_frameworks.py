from __future__ import annotations

import pytest

from vsi_research.research_core import frameworks
from vsi_research.research_core.models.interfaces import FrameworkResult


def test_registry_lists_builtin_frameworks():
    assert set(frameworks.available_frameworks()) >= {
        "thematic",
        "sentiment",
        "conceptual",
        "structural",
        "temporal",
    }
    assert frameworks.get_framework("unknown") is None


def test_register_framework_adds_scorer():
    @frameworks.register_framework("length_only")
    def length_only(content, source=None):
        return FrameworkResult(framework="length_only", quality={"length": len(content)})

    try:
        scorer = frameworks.get_framework("length_only")
        assert scorer.name == "length_only"
        assert scorer.score("abcd").quality == {"length": 4}
    finally:
        frameworks.FRAMEWORKS.pop("length_only")


def test_thematic_counts_whole_word_matches():
    content = "Software and data drive the market. Data data everywhere, but no datasets."
    result = frameworks.get_framework("thematic").score(content)

    themes = {t.category: t for t in result.themes}
    assert themes["technology"].score == 4
    assert themes["technology"].confidence == pytest.approx(0.4)
    assert themes["business"].score == 1
    assert result.insights[0].category == "dominant_theme"
    assert "technology" in result.insights[0].content
    assert result.insights[1].category == "theme_diversity"


def test_thematic_keyword_concepts_need_repeats_and_length():
    content = "Quantum quantum qubit qubit qubit entanglement atom atom"
    result = frameworks.thematic_analysis(content)
    assert [c["term"] for c in result.concepts] == ["qubit", "quantum"]
    assert result.themes == []
    assert result.insights == []


@pytest.mark.parametrize(
    "content,expected,confidence",
    [
        ("good great excellent problem", "positive", 0.5),
        ("bad poor risk success", "negative", 0.5),
        ("good bad", "neutral", 0.0),
        ("plain words only", "neutral", 0.0),
    ],
)
def test_sentiment_overall_and_confidence(content, expected, confidence):
    result = frameworks.sentiment_analysis(content)
    assert result.sentiment["overall"] == expected
    assert result.sentiment["confidence"] == pytest.approx(confidence)
    assert result.insights[0].data == {"overall": expected}


def test_sentiment_dominance_needs_more_than_one_and_a_half_times():
    # 3 positive vs 2 negative is exactly 1.5x, which stays neutral
    result = frameworks.sentiment_analysis("good great excellent bad poor")
    assert result.sentiment["overall"] == "neutral"


def test_conceptual_collects_capitalized_words_and_bigrams():
    content = "Machine learning helps Python developers. Machine learning is popular."
    result = frameworks.conceptual_analysis(content)
    terms = {c["term"]: c for c in result.concepts}
    assert terms["machine learning"]["frequency"] == 2
    assert "python" in terms
    assert len(result.concepts) <= frameworks.MAX_CONCEPTS
    assert result.insights[0].category == "key_concepts"


def test_structural_readability_and_completeness():
    sentence = "This sentence has exactly twelve words in it for the readability check"
    content = ". ".join([sentence] * 4) + "."
    result = frameworks.structural_analysis(content)
    assert result.quality["sentence_count"] == 4
    assert result.quality["avg_words_per_sentence"] == pytest.approx(12)
    assert result.quality["readability_score"] == pytest.approx(0.7)
    assert result.quality["completeness"] == pytest.approx(0.5)
    assert result.insights == []


def test_content_completeness_adds_structure_bonuses():
    content = "Introduction\nbody\nmore\nConclusion\nsee https://example.com " + "x" * 3000
    assert frameworks.content_completeness(content) == pytest.approx(1.0)


def test_readability_penalizes_long_sentences():
    assert frameworks.readability_score(35.0, ["w " * 35]) == pytest.approx(0.0)


def test_temporal_focus_and_years():
    content = "In 2019 and 2023 the past was different. We expect and predict change; 2019 again."
    result = frameworks.temporal_analysis(content)
    assert result.temporal["scores"]["future"] == 2
    assert result.temporal["dominant"] == "future"
    assert result.temporal["years"] == ["2019", "2023"]
    categories = [i.category for i in result.insights]
    assert categories == ["time_focus", "date_references"]


def test_temporal_without_signals_has_no_dominant():
    result = frameworks.temporal_analysis("nothing here")
    assert result.temporal["dominant"] is None
    assert result.insights == []
