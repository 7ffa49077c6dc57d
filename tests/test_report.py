from __future__ import annotations

from position_tracker.db import init_db, session_scope
from position_tracker.pipeline.report import (
    build_report,
    crawl_failures,
    default_export_path,
    export_topic_positions,
    missing_positions,
    positions_by_party,
    search_positions,
    subject_positions,
    topic_distribution,
)
from position_tracker.store import SqlCrawlLogRepository, SqlPositionRepository, upsert_subject
from position_tracker.taxonomy import load_taxonomy
from position_tracker.types import CrawlLogEntry, PositionData, SubjectRecord
from position_tracker.utils import utc_now


def _position(topic: str, summary: str, confidence: float, *, key: bool) -> PositionData:
    return PositionData(
        topic=topic,
        position_summary=summary,
        position_details=summary,
        stance="support",
        strength="strong" if key else "moderate",
        confidence_score=confidence,
        is_key_issue=key,
        key_phrases=[summary],
        source_url="https://example.gov/",
        source_section="main",
    )


def _seed(db_url: str) -> None:
    init_db(db_url)
    with session_scope(db_url) as session:
        for record in (
            SubjectRecord(id="S1", name="Alice Adams", homepage_url="https://adams.gov", party="D", state="CA"),
            SubjectRecord(id="S2", name="Bob Brown", homepage_url="https://brown.gov", party="R", state="TX"),
            SubjectRecord(id="S3", name="Cara Cole", homepage_url="https://cole.gov", party="D", state="NY"),
        ):
            upsert_subject(session, record)
        session.flush()

        taxonomy = load_taxonomy(session)
        positions = SqlPositionRepository(session)
        healthcare = taxonomy.get("healthcare").id
        environment = taxonomy.get("environment").id
        positions.upsert("S1", healthcare, _position("healthcare", "Expand Medicare to every American", 0.8, key=True))
        positions.upsert("S1", environment, _position("environment", "Invest in clean energy jobs", 0.6, key=False))
        positions.upsert("S2", healthcare, _position("healthcare", "Lower drug prices for Medicare", 0.5, key=False))

        crawl_log = SqlCrawlLogRepository(session)
        now = utc_now()
        crawl_log.append(CrawlLogEntry(subject_id="S1", status="success", positions_found=2, crawled_at=now))
        crawl_log.append(CrawlLogEntry(subject_id="S2", status="success", positions_found=1, crawled_at=now))
        crawl_log.append(
            CrawlLogEntry(
                subject_id="S3",
                source_url="https://cole.gov",
                status="error",
                error_kind="http_403",
                error_message="HTTP 403",
                crawled_at=now,
            )
        )


def test_build_report_summarizes_coverage(db_url) -> None:
    _seed(db_url)
    with session_scope(db_url) as session:
        report = build_report(session)

    summary = report["summary"]
    assert summary["total_positions"] == 3
    assert summary["subjects_with_positions"] == 2
    assert summary["total_subjects"] == 3
    assert summary["coverage_pct"] == 67
    assert summary["topics_covered"] == 2
    assert summary["total_topics"] == 12
    assert summary["key_issues"] == 1
    assert summary["success_rate_pct"] == 67

    assert [row["canonical_name"] for row in report["top_topics"]] == ["healthcare", "environment"]
    assert report["top_topics"][0]["avg_confidence"] == 0.65
    assert report["top_key_issue_subjects"][0]["id"] == "S1"
    assert report["failure_count"] == 1
    assert report["recent_failures"][0]["name"] == "Cara Cole"
    assert report["recent_failures"][0]["error_kind"] == "http_403"


def test_topic_queries_accept_display_names(db_url) -> None:
    _seed(db_url)
    with session_scope(db_url) as session:
        by_party = positions_by_party(session, "Healthcare")
        missing = missing_positions(session, "Environment")
        distribution = topic_distribution(session)

    assert [(row["party"], row["position_count"]) for row in by_party] == [("D", 1), ("R", 1)]
    assert [row["subject_id"] for row in missing] == ["S2", "S3"]
    assert distribution[0]["subject_count"] == 2


def test_subject_positions_list_key_issues_first(db_url) -> None:
    _seed(db_url)
    with session_scope(db_url) as session:
        rows = subject_positions(session, "S1")
        assert subject_positions(session, "S3") == []

    assert [row["topic"] for row in rows] == ["Healthcare", "Environment"]
    assert rows[0]["key_phrases"] == ["Expand Medicare to every American"]


def test_search_and_export(db_url, settings) -> None:
    _seed(db_url)
    with session_scope(db_url) as session:
        hits = search_positions(session, "MEDICARE")
        exported = export_topic_positions(session, "healthcare")
        failures = crawl_failures(session)

    assert [hit["name"] for hit in hits] == ["Alice Adams", "Bob Brown"]
    assert exported["total_positions"] == 2
    assert [row["subject_id"] for row in exported["positions"]] == ["S1", "S2"]
    assert len(failures) == 1
    assert default_export_path("Civil Rights", settings) == settings.exports_dir / "positions_civil_rights.json"
