from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from position_tracker.models import PolicyTopic, TopicAlias
from position_tracker.types import AliasDefinition, Lexicon, Taxonomy, TopicDefinition, TopicLexicon
from position_tracker.utils import from_json, to_json, unique_list

logger = logging.getLogger(__name__)

NAME_WEIGHT = 1.0
ALIAS_WEIGHT = 0.8


def _seed_aliases(entry: dict[str, Any]) -> list[tuple[str, float]]:
    canonical = str(entry["canonical_name"]).strip().lower()
    display = str(entry.get("display_name") or canonical).strip().lower()
    out: list[tuple[str, float]] = []
    seen: set[str] = set()
    for alias, weight in [(canonical, NAME_WEIGHT), (display, NAME_WEIGHT)] + [
        (str(item).strip().lower(), ALIAS_WEIGHT) for item in entry.get("aliases") or []
    ]:
        if not alias or alias in seen:
            continue
        seen.add(alias)
        out.append((alias, weight))
    return out


def bootstrap_taxonomy(session: Session, seed: list[dict[str, Any]]) -> dict[str, int]:
    """Insert seed topics and aliases that are not stored yet.

    Existing rows are left untouched, so running this repeatedly is safe and
    administrative edits survive.
    """
    topics_created = 0
    aliases_created = 0
    existing = {row.canonical_name: row for row in session.execute(select(PolicyTopic)).scalars().all()}

    for order, entry in enumerate(seed):
        canonical = str(entry["canonical_name"]).strip().lower()
        topic = existing.get(canonical)
        if topic is None:
            topic = PolicyTopic(
                canonical_name=canonical,
                display_name=str(entry.get("display_name") or canonical),
                description=str(entry.get("description") or ""),
                discovery_keywords_json=to_json(unique_list(entry.get("discovery_keywords") or [])),
                sort_order=order,
            )
            session.add(topic)
            session.flush()
            existing[canonical] = topic
            topics_created += 1

        stored_aliases = {
            row.alias
            for row in session.execute(select(TopicAlias).where(TopicAlias.topic_id == topic.id)).scalars().all()
        }
        for alias, weight in _seed_aliases(entry):
            if alias in stored_aliases:
                continue
            session.add(TopicAlias(topic_id=topic.id, alias=alias, confidence_weight=weight))
            stored_aliases.add(alias)
            aliases_created += 1

    session.flush()
    if topics_created or aliases_created:
        logger.info("Taxonomy bootstrap inserted %s topics and %s aliases", topics_created, aliases_created)
    return {"topics_created": topics_created, "aliases_created": aliases_created}


def load_taxonomy(session: Session) -> Taxonomy:
    topics = session.execute(select(PolicyTopic).order_by(PolicyTopic.sort_order, PolicyTopic.id)).scalars().all()
    aliases = session.execute(select(TopicAlias).order_by(TopicAlias.id)).scalars().all()
    by_topic: dict[int, list[AliasDefinition]] = {}
    for row in aliases:
        by_topic.setdefault(row.topic_id, []).append(AliasDefinition(alias=row.alias.lower(), weight=row.confidence_weight))

    return Taxonomy(
        topics=tuple(
            TopicDefinition(
                id=topic.id,
                canonical_name=topic.canonical_name,
                display_name=topic.display_name,
                description=topic.description,
                aliases=tuple(by_topic.get(topic.id, [])),
                discovery_keywords=tuple(from_json(topic.discovery_keywords_json, [])),
            )
            for topic in topics
        )
    )


def taxonomy_from_seed(seed: list[dict[str, Any]]) -> Taxonomy:
    """Build a taxonomy without a database; ids follow seed order starting at 1."""
    topics: list[TopicDefinition] = []
    for index, entry in enumerate(seed, start=1):
        canonical = str(entry["canonical_name"]).strip().lower()
        topics.append(
            TopicDefinition(
                id=index,
                canonical_name=canonical,
                display_name=str(entry.get("display_name") or canonical),
                description=str(entry.get("description") or ""),
                aliases=tuple(AliasDefinition(alias=alias, weight=weight) for alias, weight in _seed_aliases(entry)),
                discovery_keywords=tuple(unique_list(entry.get("discovery_keywords") or [])),
            )
        )
    return Taxonomy(topics=tuple(topics))


def _phrases(values: Any) -> tuple[str, ...]:
    if not isinstance(values, list):
        return ()
    return tuple(unique_list(str(value).lower() for value in values))


def lexicon_from_mapping(raw: dict[str, Any]) -> Lexicon:
    topics: dict[str, TopicLexicon] = {}
    for name, lists in (raw.get("topics") or {}).items():
        if not isinstance(lists, dict):
            continue
        topics[str(name)] = TopicLexicon(support=_phrases(lists.get("support")), oppose=_phrases(lists.get("oppose")))
    return Lexicon(
        support=_phrases(raw.get("support")),
        oppose=_phrases(raw.get("oppose")),
        intensifiers=_phrases(raw.get("intensifiers")),
        topics=topics,
    )


def add_alias(session: Session, topic_name: str, alias: str, *, weight: float = ALIAS_WEIGHT) -> TopicAlias:
    if not 0.0 < weight <= 1.0:
        raise ValueError(f"Alias weight must be in (0, 1], got {weight}")
    normalized_alias = alias.strip().lower()
    if not normalized_alias:
        raise ValueError("Alias must not be empty")

    topic = session.execute(
        select(PolicyTopic).where(PolicyTopic.canonical_name == topic_name.strip().lower())
    ).scalars().first()
    if topic is None:
        raise ValueError(f"Unknown topic: {topic_name}")

    existing = session.execute(
        select(TopicAlias).where(TopicAlias.topic_id == topic.id, TopicAlias.alias == normalized_alias)
    ).scalars().first()
    if existing is not None:
        existing.confidence_weight = weight
        session.add(existing)
        session.flush()
        return existing

    row = TopicAlias(topic_id=topic.id, alias=normalized_alias, confidence_weight=weight)
    session.add(row)
    session.flush()
    return row
