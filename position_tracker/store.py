from __future__ import annotations

from enum import Enum
from typing import Protocol

from rapidfuzz import fuzz, process
from sqlalchemy import select
from sqlalchemy.orm import Session

from position_tracker.models import CrawlLog, PolicyTopic, Position, Subject
from position_tracker.types import CrawlLogEntry, PositionData, StoredPosition, SubjectRecord
from position_tracker.utils import as_utc, canonicalize_url, from_json, normalize_name, to_json, utc_now


class ConflictPolicy(str, Enum):
    """How a second position for the same (subject, topic) pair is resolved."""

    REPLACE = "replace"
    MAX_CONFIDENCE = "max_confidence"


def _should_write(policy: ConflictPolicy, stored_confidence: float | None, incoming: float) -> bool:
    if stored_confidence is None or policy is ConflictPolicy.REPLACE:
        return True
    return incoming >= stored_confidence


class PositionRepository(Protocol):
    def upsert(self, subject_id: str, topic_id: int, data: PositionData) -> bool: ...

    def for_subject(self, subject_id: str) -> list[StoredPosition]: ...


class CrawlLogRepository(Protocol):
    def append(self, entry: CrawlLogEntry) -> None: ...

    def latest_by_subject(self) -> dict[str, CrawlLogEntry]: ...

    def latest_for(self, subject_id: str) -> CrawlLogEntry | None: ...


class SqlPositionRepository:
    def __init__(self, session: Session, *, policy: ConflictPolicy = ConflictPolicy.REPLACE) -> None:
        self.session = session
        self.policy = policy

    def upsert(self, subject_id: str, topic_id: int, data: PositionData) -> bool:
        existing = self.session.execute(
            select(Position).where(Position.subject_id == subject_id, Position.topic_id == topic_id)
        ).scalars().first()
        if not _should_write(self.policy, existing.confidence_score if existing else None, data.confidence_score):
            return False

        now = utc_now()
        row = existing or Position(subject_id=subject_id, topic_id=topic_id, created_at=now)
        row.position_summary = data.position_summary
        row.position_details = data.position_details
        row.stance = data.stance
        row.strength = data.strength
        row.confidence_score = data.confidence_score
        row.is_key_issue = data.is_key_issue
        row.key_phrases_json = to_json(data.key_phrases)
        row.source_url = data.source_url
        row.source_section = data.source_section[:255]
        row.last_updated = now
        self.session.add(row)
        self.session.flush()
        return True

    def for_subject(self, subject_id: str) -> list[StoredPosition]:
        rows = self.session.execute(
            select(Position, PolicyTopic)
            .join(PolicyTopic, PolicyTopic.id == Position.topic_id)
            .where(Position.subject_id == subject_id)
            .order_by(PolicyTopic.sort_order, PolicyTopic.id)
        ).all()
        return [position_from_row(position, topic) for position, topic in rows]


def position_from_row(position: Position, topic: PolicyTopic) -> StoredPosition:
    return StoredPosition(
        subject_id=position.subject_id,
        topic_id=position.topic_id,
        topic=topic.canonical_name,
        position_summary=position.position_summary,
        position_details=position.position_details,
        stance=position.stance,
        strength=position.strength,
        confidence_score=position.confidence_score,
        is_key_issue=position.is_key_issue,
        key_phrases=from_json(position.key_phrases_json, []),
        source_url=position.source_url,
        source_section=position.source_section,
        last_updated=as_utc(position.last_updated) if position.last_updated else None,
    )


class InMemoryPositionRepository:
    """Dict-backed repository for tests and dry runs."""

    def __init__(self, *, policy: ConflictPolicy = ConflictPolicy.REPLACE) -> None:
        self.policy = policy
        self.rows: dict[tuple[str, int], StoredPosition] = {}

    def upsert(self, subject_id: str, topic_id: int, data: PositionData) -> bool:
        existing = self.rows.get((subject_id, topic_id))
        if not _should_write(self.policy, existing.confidence_score if existing else None, data.confidence_score):
            return False
        self.rows[(subject_id, topic_id)] = StoredPosition(
            **data.model_dump(), subject_id=subject_id, topic_id=topic_id, last_updated=utc_now()
        )
        return True

    def for_subject(self, subject_id: str) -> list[StoredPosition]:
        return [row for (owner, _topic_id), row in sorted(self.rows.items()) if owner == subject_id]


def _entry_from_row(row: CrawlLog) -> CrawlLogEntry:
    return CrawlLogEntry(
        subject_id=row.subject_id,
        source_url=row.source_url,
        status=row.status,
        positions_found=row.positions_found,
        error_kind=row.error_kind,
        error_message=row.error_message,
        duration_ms=row.duration_ms,
        crawled_at=as_utc(row.crawled_at),
    )


class SqlCrawlLogRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def append(self, entry: CrawlLogEntry) -> None:
        self.session.add(
            CrawlLog(
                subject_id=entry.subject_id,
                source_url=entry.source_url,
                status=entry.status,
                positions_found=entry.positions_found,
                error_kind=entry.error_kind,
                error_message=entry.error_message,
                duration_ms=entry.duration_ms,
                crawled_at=entry.crawled_at,
            )
        )
        self.session.flush()

    def latest_by_subject(self) -> dict[str, CrawlLogEntry]:
        latest: dict[str, CrawlLogEntry] = {}
        rows = self.session.execute(select(CrawlLog).order_by(CrawlLog.crawled_at, CrawlLog.id)).scalars()
        for row in rows:
            latest[row.subject_id] = _entry_from_row(row)
        return latest

    def latest_for(self, subject_id: str) -> CrawlLogEntry | None:
        row = self.session.execute(
            select(CrawlLog)
            .where(CrawlLog.subject_id == subject_id)
            .order_by(CrawlLog.crawled_at.desc(), CrawlLog.id.desc())
        ).scalars().first()
        return _entry_from_row(row) if row else None


class InMemoryCrawlLogRepository:
    def __init__(self) -> None:
        self.entries: list[CrawlLogEntry] = []

    def append(self, entry: CrawlLogEntry) -> None:
        self.entries.append(entry)

    def latest_by_subject(self) -> dict[str, CrawlLogEntry]:
        latest: dict[str, CrawlLogEntry] = {}
        for entry in sorted(self.entries, key=lambda item: as_utc(item.crawled_at)):
            latest[entry.subject_id] = entry
        return latest

    def latest_for(self, subject_id: str) -> CrawlLogEntry | None:
        return self.latest_by_subject().get(subject_id)


def upsert_subject(session: Session, record: SubjectRecord) -> Subject:
    subject = session.get(Subject, record.id)
    if subject is None:
        subject = Subject(id=record.id, name=record.name.strip())
    subject.name = record.name.strip() or subject.name
    subject.normalized_name = normalize_name(subject.name)
    subject.homepage_url = canonicalize_url(record.homepage_url) if record.homepage_url.strip() else ""
    subject.party = record.party.strip()
    subject.state = record.state.strip()
    subject.chamber = record.chamber.strip()
    session.add(subject)
    session.flush()
    return subject


def subject_record(subject: Subject) -> SubjectRecord:
    return SubjectRecord(
        id=subject.id,
        name=subject.name,
        homepage_url=subject.homepage_url,
        party=subject.party,
        state=subject.state,
        chamber=subject.chamber,
    )


def list_subjects(session: Session) -> list[SubjectRecord]:
    rows = session.execute(select(Subject).order_by(Subject.name, Subject.id)).scalars().all()
    return [subject_record(row) for row in rows]


def find_subject_by_name(session: Session, name: str, *, min_score: float = 85.0) -> Subject | None:
    """Exact normalized match first, then the best fuzzy match above ``min_score``."""
    normalized = normalize_name(name)
    if not normalized:
        return None
    exact = session.execute(select(Subject).where(Subject.normalized_name == normalized)).scalars().first()
    if exact is not None:
        return exact

    subjects = session.execute(select(Subject)).scalars().all()
    choices = {subject.id: subject.normalized_name for subject in subjects}
    best = process.extractOne(normalized, choices, scorer=fuzz.token_sort_ratio, score_cutoff=min_score)
    if best is None:
        return None
    _match, _score, subject_id = best
    return session.get(Subject, subject_id)
