from __future__ import annotations

from position_tracker.types import Taxonomy, TopicMatch

HINT_CONFIDENCE = 0.9


class TopicClassifier:
    """Keyword classifier over a fixed taxonomy.

    Each topic scores the highest weight among its aliases that occur in the
    text (case-insensitive substring). Results follow taxonomy order; a page
    hint that did not match is put first at ``HINT_CONFIDENCE``.
    """

    def __init__(self, taxonomy: Taxonomy) -> None:
        self.taxonomy = taxonomy

    def identify(self, text: str, hint: str | None = None) -> list[TopicMatch]:
        lower = text.casefold()
        matches: list[TopicMatch] = []
        for topic in self.taxonomy.topics:
            best = 0.0
            for alias in topic.aliases:
                if alias.weight > best and alias.alias in lower:
                    best = alias.weight
            if best > 0:
                matches.append(TopicMatch(topic=topic.canonical_name, confidence=best))

        if hint and self.taxonomy.get(hint) is not None:
            if not any(match.topic == hint for match in matches):
                matches.insert(0, TopicMatch(topic=hint, confidence=HINT_CONFIDENCE))
        return matches
