from __future__ import annotations

import pytest

from position_tracker.analysis.stance import StanceAnalyzer, stance_confidence


def test_support_with_intensifier_is_strong(taxonomy, lexicon) -> None:
    result = StanceAnalyzer(lexicon, taxonomy).analyze(
        "I strongly support expanding Medicare to cover every American.", "healthcare"
    )

    assert result.stance == "support"
    assert result.strength == "strong"
    assert result.support_hits == 2
    assert result.oppose_hits == 0
    assert result.intensifier_hits == 1
    assert result.confidence == pytest.approx(0.7)
    assert result.key_phrases == ["I strongly support expanding Medicare to cover every American"]


def test_support_without_intensifier_is_moderate(taxonomy, lexicon) -> None:
    result = StanceAnalyzer(lexicon, taxonomy).analyze("I endorse the new housing plan for our city.", "housing")

    assert result.stance == "support"
    assert result.strength == "moderate"
    assert result.confidence == pytest.approx(0.45)


def test_oppose_wins_when_more_oppose_phrases(taxonomy, lexicon) -> None:
    result = StanceAnalyzer(lexicon, taxonomy).analyze(
        "I oppose any plan to repeal protections for immigrants and reject mass deportation.", "immigration"
    )

    assert result.stance == "oppose"
    assert result.oppose_hits == 4
    assert result.confidence == pytest.approx(0.9)


def test_tie_is_mixed(taxonomy, lexicon) -> None:
    result = StanceAnalyzer(lexicon, taxonomy).analyze("I endorse one bill and reject another.", "economy")

    assert result.stance == "mixed"
    assert result.confidence == pytest.approx(0.4)


def test_no_lexicon_hits_is_neutral(taxonomy, lexicon) -> None:
    result = StanceAnalyzer(lexicon, taxonomy).analyze("Schools open in September.", "education")

    assert result.stance == "neutral"
    assert result.confidence == pytest.approx(0.1)
    assert result.key_phrases == []


def test_topic_bonus_only_applies_to_its_topic(taxonomy, lexicon) -> None:
    analyzer = StanceAnalyzer(lexicon, taxonomy)
    text = "School vouchers drain public classrooms."

    assert analyzer.analyze(text, "education").oppose_hits == 1
    assert analyzer.analyze(text, "housing").stance == "neutral"


def test_repeated_phrase_counts_once(taxonomy, lexicon) -> None:
    result = StanceAnalyzer(lexicon, taxonomy).analyze("Endorse, endorse, endorse the housing plan.", "housing")
    assert result.support_hits == 1


def test_key_phrases_need_topic_and_direction(taxonomy, lexicon) -> None:
    text = (
        "I support our farmers and their families every day. "
        "I support affordable housing for every working family. "
        "Housing costs have gone up a great deal this year! "
        "We advocate for more rental units near transit lines? "
        "I believe homeownership should be in reach for everyone. "
        "Also, I support building more housing."
    )

    phrases = StanceAnalyzer(lexicon, taxonomy).key_phrases(text, "housing", "support")

    assert phrases == [
        "I support affordable housing for every working family",
        "We advocate for more rental units near transit lines",
        "I believe homeownership should be in reach for everyone",
    ]


def test_key_phrases_skip_overlong_sentences(taxonomy, lexicon) -> None:
    long_sentence = "I support housing " + "and more " * 30
    phrases = StanceAnalyzer(lexicon, taxonomy).key_phrases(long_sentence + ".", "housing", "support")
    assert phrases == []


def test_confidence_formula_caps() -> None:
    assert stance_confidence("support", 10, 0, 5) == pytest.approx(0.9)
    assert stance_confidence("mixed", 4, 4, 0) == pytest.approx(0.7)
    assert stance_confidence("neutral", 0, 0, 3) == pytest.approx(0.1)


def test_analysis_is_deterministic(taxonomy, lexicon) -> None:
    analyzer = StanceAnalyzer(lexicon, taxonomy)
    text = "We will fight for clean energy and oppose new coal plants."
    assert analyzer.analyze(text, "environment") == analyzer.analyze(text, "environment")
