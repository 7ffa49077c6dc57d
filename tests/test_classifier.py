from __future__ import annotations

from position_tracker.analysis.classifier import TopicClassifier


def test_canonical_name_scores_full_weight(taxonomy) -> None:
    matches = TopicClassifier(taxonomy).identify("Our Healthcare plan")
    assert [(match.topic, match.confidence) for match in matches] == [("healthcare", 1.0)]


def test_alias_only_match_scores_alias_weight(taxonomy) -> None:
    matches = TopicClassifier(taxonomy).identify("Protecting MEDICARE for seniors")
    by_topic = {match.topic: match.confidence for match in matches}
    assert by_topic["healthcare"] == 0.8
    assert by_topic["social_security"] == 0.8


def test_results_follow_taxonomy_order(taxonomy) -> None:
    matches = TopicClassifier(taxonomy).identify("Taxes, climate and immigration")
    assert [match.topic for match in matches] == ["immigration", "environment", "taxation"]


def test_hint_is_prepended_when_not_matched(taxonomy) -> None:
    matches = TopicClassifier(taxonomy).identify("We must protect our climate.", hint="economy")
    assert matches[0].topic == "economy"
    assert matches[0].confidence == 0.9
    assert [match.topic for match in matches[1:]] == ["environment"]


def test_hint_already_matched_keeps_its_score(taxonomy) -> None:
    matches = TopicClassifier(taxonomy).identify("A stronger economy for all", hint="economy")
    assert [(match.topic, match.confidence) for match in matches] == [("economy", 1.0)]


def test_unknown_hint_is_ignored(taxonomy) -> None:
    assert TopicClassifier(taxonomy).identify("Nothing relevant here", hint="agriculture") == []
