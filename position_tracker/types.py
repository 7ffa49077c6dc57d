from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Stance = Literal["support", "oppose", "mixed", "neutral"]
Strength = Literal["strong", "moderate"]
CrawlStatus = Literal["success", "error"]


class AliasDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    alias: str
    weight: float = Field(gt=0.0, le=1.0)


class TopicDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    canonical_name: str
    display_name: str
    description: str = ""
    aliases: tuple[AliasDefinition, ...] = ()
    discovery_keywords: tuple[str, ...] = ()

    @property
    def keywords(self) -> tuple[str, ...]:
        return tuple(item.alias for item in self.aliases)


class Taxonomy(BaseModel):
    """Immutable, ordered view of the topic taxonomy.

    Iteration order is the seed order, which decides tie-breaks in discovery
    and the order of classifier results.
    """

    model_config = ConfigDict(frozen=True)

    topics: tuple[TopicDefinition, ...] = ()

    def get(self, canonical_name: str | None) -> TopicDefinition | None:
        if not canonical_name:
            return None
        for topic in self.topics:
            if topic.canonical_name == canonical_name:
                return topic
        return None

    def discovery_keywords(self) -> dict[str, tuple[str, ...]]:
        return {topic.canonical_name: topic.discovery_keywords for topic in self.topics}


class TopicLexicon(BaseModel):
    model_config = ConfigDict(frozen=True)

    support: tuple[str, ...] = ()
    oppose: tuple[str, ...] = ()


class Lexicon(BaseModel):
    model_config = ConfigDict(frozen=True)

    support: tuple[str, ...]
    oppose: tuple[str, ...]
    intensifiers: tuple[str, ...]
    topics: dict[str, TopicLexicon] = Field(default_factory=dict)


class ContentSection(BaseModel):
    selector: str
    title: str = ""
    text: str
    is_key_section: bool = False
    has_structured_content: bool = False


class TopicMatch(BaseModel):
    topic: str
    confidence: float


class StanceResult(BaseModel):
    stance: Stance
    strength: Strength
    confidence: float
    key_phrases: list[str] = Field(default_factory=list)
    support_hits: int = 0
    oppose_hits: int = 0
    intensifier_hits: int = 0


class FetchedPage(BaseModel):
    url: str
    text: str


class DiscoveredPage(BaseModel):
    url: str
    text: str = ""
    topic_hint: str | None = None


class PositionData(BaseModel):
    topic: str
    position_summary: str
    position_details: str
    stance: Stance
    strength: Strength
    confidence_score: float
    is_key_issue: bool = False
    key_phrases: list[str] = Field(default_factory=list)
    source_url: str = ""
    source_section: str = ""


class StoredPosition(PositionData):
    subject_id: str
    topic_id: int
    last_updated: datetime | None = None


class CrawlLogEntry(BaseModel):
    subject_id: str
    source_url: str = ""
    status: CrawlStatus
    positions_found: int = 0
    error_kind: str = ""
    error_message: str = ""
    duration_ms: int = 0
    crawled_at: datetime


class SubjectRecord(BaseModel):
    id: str
    name: str
    homepage_url: str = ""
    party: str = ""
    state: str = ""
    chamber: str = ""
