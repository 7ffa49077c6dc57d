from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from position_tracker.config import Settings, get_settings
from position_tracker.models import CrawlLog, PolicyTopic, Position, Subject
from position_tracker.utils import as_utc, from_json, utc_now


def _iso(value: Any) -> str | None:
    return as_utc(value).isoformat() if value is not None else None


def _topic_filter(topic_name: str):
    needle = topic_name.strip()
    return or_(PolicyTopic.canonical_name == needle.lower(), func.lower(PolicyTopic.display_name) == needle.lower())


def summary_stats(session: Session) -> dict[str, Any]:
    total_positions = session.scalar(select(func.count(Position.id))) or 0
    subjects_with_positions = session.scalar(select(func.count(func.distinct(Position.subject_id)))) or 0
    total_subjects = session.scalar(select(func.count(Subject.id))) or 0
    topics_covered = session.scalar(select(func.count(func.distinct(Position.topic_id)))) or 0
    total_topics = session.scalar(select(func.count(PolicyTopic.id))) or 0
    key_issues = session.scalar(select(func.count(Position.id)).where(Position.is_key_issue.is_(True))) or 0
    recent_crawls = (
        session.scalar(select(func.count(CrawlLog.id)).where(CrawlLog.crawled_at > utc_now() - timedelta(hours=24)))
        or 0
    )
    total_crawls = session.scalar(select(func.count(CrawlLog.id))) or 0
    successful_crawls = session.scalar(select(func.count(CrawlLog.id)).where(CrawlLog.status == "success")) or 0

    return {
        "total_positions": total_positions,
        "subjects_with_positions": subjects_with_positions,
        "total_subjects": total_subjects,
        "coverage_pct": round(100 * subjects_with_positions / total_subjects) if total_subjects else 0,
        "topics_covered": topics_covered,
        "total_topics": total_topics,
        "key_issues": key_issues,
        "recent_crawls_24h": recent_crawls,
        "success_rate_pct": round(100 * successful_crawls / total_crawls) if total_crawls else 0,
    }


def topic_distribution(session: Session) -> list[dict[str, Any]]:
    position_count = func.count(Position.id).label("position_count")
    rows = session.execute(
        select(
            PolicyTopic.canonical_name,
            PolicyTopic.display_name,
            position_count,
            func.count(func.distinct(Position.subject_id)).label("subject_count"),
            func.sum(case((Position.is_key_issue.is_(True), 1), else_=0)).label("key_issue_count"),
            func.avg(Position.confidence_score).label("avg_confidence"),
        )
        .join(Position, Position.topic_id == PolicyTopic.id)
        .group_by(PolicyTopic.id, PolicyTopic.canonical_name, PolicyTopic.display_name)
        .order_by(position_count.desc(), PolicyTopic.sort_order)
    ).all()
    return [
        {
            "canonical_name": row.canonical_name,
            "display_name": row.display_name,
            "position_count": row.position_count,
            "subject_count": row.subject_count,
            "key_issue_count": int(row.key_issue_count or 0),
            "avg_confidence": round(float(row.avg_confidence or 0.0), 3),
        }
        for row in rows
    ]


def positions_by_party(session: Session, topic_name: str) -> list[dict[str, Any]]:
    position_count = func.count(Position.id).label("position_count")
    rows = session.execute(
        select(
            Subject.party,
            position_count,
            func.sum(case((Position.is_key_issue.is_(True), 1), else_=0)).label("key_issue_count"),
            func.avg(Position.confidence_score).label("avg_confidence"),
        )
        .join(Subject, Subject.id == Position.subject_id)
        .join(PolicyTopic, PolicyTopic.id == Position.topic_id)
        .where(_topic_filter(topic_name))
        .group_by(Subject.party)
        .order_by(position_count.desc(), Subject.party)
    ).all()
    return [
        {
            "party": row.party or "unknown",
            "position_count": row.position_count,
            "key_issue_count": int(row.key_issue_count or 0),
            "avg_confidence": round(float(row.avg_confidence or 0.0), 3),
        }
        for row in rows
    ]


def top_key_issue_subjects(session: Session, limit: int = 10) -> list[dict[str, Any]]:
    key_issue_count = func.count(Position.id).label("key_issue_count")
    rows = session.execute(
        select(
            Subject.id,
            Subject.name,
            Subject.party,
            Subject.state,
            Subject.chamber,
            key_issue_count,
            func.count(func.distinct(Position.topic_id)).label("total_topics"),
        )
        .join(Subject, Subject.id == Position.subject_id)
        .where(Position.is_key_issue.is_(True))
        .group_by(Subject.id, Subject.name, Subject.party, Subject.state, Subject.chamber)
        .order_by(key_issue_count.desc(), Subject.name)
        .limit(limit)
    ).all()
    return [dict(row._mapping) for row in rows]


def crawl_failures(session: Session, limit: int | None = None) -> list[dict[str, Any]]:
    query = (
        select(CrawlLog, Subject.name, Subject.party, Subject.state)
        .outerjoin(Subject, Subject.id == CrawlLog.subject_id)
        .where(CrawlLog.status == "error")
        .order_by(CrawlLog.crawled_at.desc(), CrawlLog.id.desc())
    )
    if limit is not None:
        query = query.limit(limit)
    return [
        {
            "subject_id": log.subject_id,
            "name": name or log.subject_id,
            "party": party or "",
            "state": state or "",
            "source_url": log.source_url,
            "error_kind": log.error_kind,
            "error_message": log.error_message,
            "crawled_at": _iso(log.crawled_at),
        }
        for log, name, party, state in session.execute(query).all()
    ]


def missing_positions(session: Session, topic_name: str) -> list[dict[str, Any]]:
    covered = (
        select(Position.subject_id)
        .join(PolicyTopic, PolicyTopic.id == Position.topic_id)
        .where(_topic_filter(topic_name))
    )
    rows = session.execute(
        select(Subject)
        .where(Subject.homepage_url != "", Subject.id.not_in(covered))
        .order_by(Subject.name)
    ).scalars().all()
    return [
        {
            "subject_id": row.id,
            "name": row.name,
            "party": row.party,
            "state": row.state,
            "chamber": row.chamber,
            "homepage_url": row.homepage_url,
        }
        for row in rows
    ]


def subject_positions(session: Session, subject_id: str) -> list[dict[str, Any]]:
    rows = session.execute(
        select(Position, PolicyTopic.display_name)
        .join(PolicyTopic, PolicyTopic.id == Position.topic_id)
        .where(Position.subject_id == subject_id)
        .order_by(Position.is_key_issue.desc(), PolicyTopic.display_name)
    ).all()
    return [
        {
            "topic": display_name,
            "stance": position.stance,
            "strength": position.strength,
            "position_summary": position.position_summary,
            "is_key_issue": position.is_key_issue,
            "confidence_score": position.confidence_score,
            "key_phrases": from_json(position.key_phrases_json, []),
            "source_url": position.source_url,
            "source_section": position.source_section,
            "last_updated": _iso(position.last_updated),
        }
        for position, display_name in rows
    ]


def search_positions(session: Session, keyword: str, limit: int = 20) -> list[dict[str, Any]]:
    term = f"%{keyword.strip().lower()}%"
    rows = session.execute(
        select(Position, Subject.name, Subject.party, Subject.state, PolicyTopic.display_name)
        .join(Subject, Subject.id == Position.subject_id)
        .join(PolicyTopic, PolicyTopic.id == Position.topic_id)
        .where(or_(func.lower(Position.position_summary).like(term), func.lower(Position.position_details).like(term)))
        .order_by(Position.confidence_score.desc(), Position.is_key_issue.desc())
        .limit(limit)
    ).all()
    return [
        {
            "name": name,
            "party": party,
            "state": state,
            "topic": topic,
            "stance": position.stance,
            "position_summary": position.position_summary,
            "is_key_issue": position.is_key_issue,
            "confidence_score": position.confidence_score,
        }
        for position, name, party, state, topic in rows
    ]


def export_topic_positions(session: Session, topic_name: str) -> dict[str, Any]:
    rows = session.execute(
        select(Position, Subject)
        .join(Subject, Subject.id == Position.subject_id)
        .join(PolicyTopic, PolicyTopic.id == Position.topic_id)
        .where(_topic_filter(topic_name))
        .order_by(Subject.name)
    ).all()
    positions = [
        {
            "subject_id": subject.id,
            "name": subject.name,
            "party": subject.party,
            "state": subject.state,
            "chamber": subject.chamber,
            "stance": position.stance,
            "strength": position.strength,
            "position_summary": position.position_summary,
            "position_details": position.position_details,
            "is_key_issue": position.is_key_issue,
            "confidence_score": position.confidence_score,
            "key_phrases": from_json(position.key_phrases_json, []),
            "source_url": position.source_url,
            "last_updated": _iso(position.last_updated),
        }
        for position, subject in rows
    ]
    return {
        "topic": topic_name,
        "exported_at": utc_now().isoformat(),
        "total_positions": len(positions),
        "positions": positions,
    }


def build_report(session: Session, *, top_topics: int = 10, top_subjects: int = 5, failures: int = 5) -> dict[str, Any]:
    all_failures = crawl_failures(session)
    return {
        "summary": summary_stats(session),
        "top_topics": topic_distribution(session)[:top_topics],
        "top_key_issue_subjects": top_key_issue_subjects(session, limit=top_subjects),
        "recent_failures": all_failures[:failures],
        "failure_count": len(all_failures),
    }


def default_export_path(topic_name: str, settings: Settings | None = None) -> Path:
    cfg = settings or get_settings()
    slug = "_".join(topic_name.strip().lower().split()) or "topic"
    return cfg.exports_dir / f"positions_{slug}.json"
