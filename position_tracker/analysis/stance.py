from __future__ import annotations

from position_tracker.types import Lexicon, StanceResult, Taxonomy
from position_tracker.utils import clip, contains_any, count_hits, split_sentences

MAX_KEY_PHRASES = 3
MAX_KEY_PHRASE_CHARS = 200

SUPPORT_DIRECTION_WORDS = ("support", "advocate", "believe", "committed", "will fight")
OPPOSE_DIRECTION_WORDS = ("oppose", "against", "reject", "block", "stop")


def stance_confidence(stance: str, support: int, oppose: int, intensifiers: int) -> float:
    if stance == "support":
        return min(0.9, 0.3 + 0.15 * support + 0.1 * intensifiers)
    if stance == "oppose":
        return min(0.9, 0.3 + 0.15 * oppose + 0.1 * intensifiers)
    if stance == "mixed":
        return min(0.7, 0.2 + 0.1 * (support + oppose))
    return 0.1


class StanceAnalyzer:
    """Lexicon-based stance detection for one passage and one topic.

    Every phrase counts at most once, so repeating "support" ten times is no
    stronger than saying it once.
    """

    def __init__(self, lexicon: Lexicon, taxonomy: Taxonomy) -> None:
        self.lexicon = lexicon
        self.taxonomy = taxonomy

    def topic_keywords(self, topic: str) -> tuple[str, ...]:
        definition = self.taxonomy.get(topic)
        if definition is None:
            return (topic.casefold(),)
        return definition.keywords or (topic.casefold(),)

    def analyze(self, text: str, topic: str) -> StanceResult:
        lower = text.casefold()
        support = count_hits(lower, self.lexicon.support)
        oppose = count_hits(lower, self.lexicon.oppose)
        intensifiers = count_hits(lower, self.lexicon.intensifiers)

        topical = self.lexicon.topics.get(topic)
        if topical is not None:
            support += count_hits(lower, topical.support)
            oppose += count_hits(lower, topical.oppose)

        if support > oppose:
            stance = "support"
        elif oppose > support:
            stance = "oppose"
        elif support > 0:
            stance = "mixed"
        else:
            stance = "neutral"

        return StanceResult(
            stance=stance,
            strength="strong" if intensifiers > 0 else "moderate",
            confidence=clip(stance_confidence(stance, support, oppose, intensifiers), 0.0, 1.0),
            key_phrases=self.key_phrases(text, topic, stance),
            support_hits=support,
            oppose_hits=oppose,
            intensifier_hits=intensifiers,
        )

    def key_phrases(self, text: str, topic: str, stance: str) -> list[str]:
        if stance == "support":
            direction = SUPPORT_DIRECTION_WORDS
        elif stance == "oppose":
            direction = OPPOSE_DIRECTION_WORDS
        elif stance == "mixed":
            direction = SUPPORT_DIRECTION_WORDS + OPPOSE_DIRECTION_WORDS
        else:
            return []

        keywords = self.topic_keywords(topic)
        phrases: list[str] = []
        for sentence in split_sentences(text):
            if len(sentence) >= MAX_KEY_PHRASE_CHARS:
                continue
            lower = sentence.casefold()
            if contains_any(lower, keywords) and contains_any(lower, direction):
                phrases.append(sentence)
                if len(phrases) == MAX_KEY_PHRASES:
                    break
        return phrases
