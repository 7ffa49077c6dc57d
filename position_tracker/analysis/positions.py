from __future__ import annotations

import logging

from position_tracker.analysis.classifier import TopicClassifier
from position_tracker.analysis.stance import StanceAnalyzer
from position_tracker.types import ContentSection, PositionData, StanceResult, TopicDefinition
from position_tracker.utils import contains_any, split_sentences

logger = logging.getLogger(__name__)

MIN_EMIT_CONFIDENCE = 0.2
MIN_SUMMARY_CHARS = 20
MAX_DETAIL_CHARS = 1500
LONG_TOPICAL_SENTENCE_CHARS = 50

KEY_ISSUE_INDICATORS = (
    "priority",
    "key issue",
    "important",
    "focus",
    "commitment",
    "committed to",
    "champion",
    "fight for",
    "dedicated to",
)

POSITION_INDICATORS = (
    "support",
    "oppose",
    "believe",
    "advocate",
    "against",
    "committed",
    "will fight",
    "priority",
    "important",
)


def is_key_issue(section_text: str, stance: StanceResult) -> bool:
    return stance.strength == "strong" or contains_any(section_text.casefold(), KEY_ISSUE_INDICATORS)


def _join(sentences: list[str]) -> str:
    return ". ".join(sentences[:2]) + "."


def position_summary(text: str, topic: TopicDefinition, stance: StanceResult) -> str:
    """Pick up to two sentences describing the position, falling back to weaker evidence."""
    if stance.key_phrases:
        return _join(stance.key_phrases)

    sentences = split_sentences(text)
    names = (topic.canonical_name.casefold(), topic.display_name.casefold())
    keywords = names + topic.keywords

    relevant: list[str] = []
    for sentence in sentences:
        lower = sentence.casefold()
        if not contains_any(lower, keywords):
            continue
        if contains_any(lower, POSITION_INDICATORS) or len(sentence) > LONG_TOPICAL_SENTENCE_CHARS:
            relevant.append(sentence)
    if relevant:
        return _join(relevant)

    mentioning = [sentence for sentence in sentences if contains_any(sentence.casefold(), names)]
    if mentioning:
        return _join(mentioning)

    if sentences:
        return _join(sentences)
    return text.strip()[:200]


class PositionBuilder:
    """Turns extracted sections into position records for one page."""

    def __init__(self, classifier: TopicClassifier, analyzer: StanceAnalyzer) -> None:
        self.classifier = classifier
        self.analyzer = analyzer
        self.taxonomy = classifier.taxonomy

    def from_section(self, section: ContentSection, source_url: str, hint: str | None = None) -> list[PositionData]:
        out: list[PositionData] = []
        for match in self.classifier.identify(section.text, hint):
            topic = self.taxonomy.get(match.topic)
            if topic is None:
                continue
            stance = self.analyzer.analyze(section.text, match.topic)
            confidence = min(match.confidence, stance.confidence)
            if stance.stance == "neutral" or confidence <= MIN_EMIT_CONFIDENCE:
                continue

            summary = position_summary(section.text, topic, stance)
            if len(summary) <= MIN_SUMMARY_CHARS:
                logger.debug("Dropping %s position from %s: summary too short", match.topic, source_url)
                continue

            out.append(
                PositionData(
                    topic=match.topic,
                    position_summary=summary,
                    position_details=section.text[:MAX_DETAIL_CHARS],
                    stance=stance.stance,
                    strength=stance.strength,
                    confidence_score=round(confidence, 4),
                    is_key_issue=is_key_issue(section.text, stance),
                    key_phrases=stance.key_phrases,
                    source_url=source_url,
                    source_section=section.title or section.selector,
                )
            )
        return out

    def from_sections(
        self, sections: list[ContentSection], source_url: str, hint: str | None = None
    ) -> list[PositionData]:
        out: list[PositionData] = []
        for section in sections:
            out.extend(self.from_section(section, source_url, hint))
        return out
