from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable

from position_tracker.analysis.classifier import TopicClassifier
from position_tracker.analysis.positions import PositionBuilder
from position_tracker.analysis.stance import StanceAnalyzer
from position_tracker.config import Settings, get_settings
from position_tracker.db import finish_pipeline_run, init_db, session_scope, start_pipeline_run
from position_tracker.errors import KIND_INTERNAL, FetchError
from position_tracker.scheduler import SkipWindows, select_eligible, should_skip
from position_tracker.sources.common import parse_html
from position_tracker.sources.discovery import discover_policy_pages
from position_tracker.sources.extractor import extract_sections
from position_tracker.sources.fetcher import Fetcher
from position_tracker.store import (
    ConflictPolicy,
    CrawlLogRepository,
    PositionRepository,
    SqlCrawlLogRepository,
    SqlPositionRepository,
    find_subject_by_name,
    list_subjects,
    subject_record,
)
from position_tracker.taxonomy import lexicon_from_mapping, load_taxonomy
from position_tracker.types import CrawlLogEntry, Lexicon, PositionData, SubjectRecord, Taxonomy
from position_tracker.utils import canonicalize_url, utc_now

logger = logging.getLogger(__name__)

TEST_MODE_LIMIT = 5


class PositionCrawler:
    """Crawls one subject at a time and records exactly one log entry per attempt.

    The main page is fetched and mined for positions, then up to
    ``max_policy_pages`` same-site policy pages are fetched and mined with
    their topic hint. Positions are written only after every page has been
    processed, followed by the log entry.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        taxonomy: Taxonomy,
        lexicon: Lexicon,
        positions: PositionRepository,
        crawl_log: CrawlLogRepository,
        *,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or get_settings()
        self.fetcher = fetcher
        self.taxonomy = taxonomy
        self.positions = positions
        self.crawl_log = crawl_log
        self.builder = PositionBuilder(TopicClassifier(taxonomy), StanceAnalyzer(lexicon, taxonomy))
        self._sleep = sleep
        self._clock = clock

    def collect(self, url: str) -> list[PositionData]:
        """Fetch and classify a homepage and its policy pages. Main-page fetch errors propagate.

        Links are resolved against the URL the homepage was finally served
        from, and a policy page that redirects to an already mined page is
        not mined again.
        """
        homepage = self.fetcher.fetch(url)
        tree = parse_html(homepage.text)
        found = self.builder.from_sections(extract_sections(tree, limit=self.settings.max_sections), homepage.url)
        mined = {canonicalize_url(homepage.url)}

        pages = discover_policy_pages(
            tree,
            homepage.url,
            self.taxonomy.discovery_keywords(),
            limit=self.settings.max_policy_pages,
        )
        logger.info("Found %s policy pages on %s", len(pages), homepage.url)
        for page in pages:
            self._sleep(self.settings.page_delay_seconds)
            try:
                fetched = self.fetcher.fetch(page.url)
            except FetchError as exc:
                logger.warning("Skipping policy page %s: %s", page.url, exc)
                continue
            final_url = canonicalize_url(fetched.url)
            if final_url in mined:
                logger.info("Policy page %s redirected to already mined %s", page.url, fetched.url)
                continue
            mined.add(final_url)
            sections = extract_sections(parse_html(fetched.text), limit=self.settings.max_sections)
            found.extend(self.builder.from_sections(sections, fetched.url, page.topic_hint))
        return found

    def crawl_subject(self, subject: SubjectRecord) -> CrawlLogEntry:
        started = time.monotonic()
        url = subject.homepage_url
        found: list[PositionData] = []
        error_kind = ""
        error_message = ""

        try:
            found = self.collect(url)
        except FetchError as exc:
            logger.warning("Failed to crawl %s (%s): %s", subject.name, url, exc)
            error_kind, error_message = exc.kind, str(exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error while crawling %s (%s)", subject.name, url)
            error_kind, error_message = KIND_INTERNAL, f"{type(exc).__name__}: {exc}"

        for position in found:
            topic = self.taxonomy.get(position.topic)
            if topic is not None:
                self.positions.upsert(subject.id, topic.id, position)

        entry = CrawlLogEntry(
            subject_id=subject.id,
            source_url=url,
            status="error" if error_kind else "success",
            positions_found=len(found),
            error_kind=error_kind,
            error_message=error_message,
            duration_ms=int((time.monotonic() - started) * 1000),
            crawled_at=self._clock(),
        )
        self.crawl_log.append(entry)
        if not error_kind:
            logger.info("Crawled %s: %s positions", subject.name, len(found))
        return entry


def _resolve_targets(
    session: Any,
    *,
    subject_id: str | None,
    subject_name: str | None,
) -> list[SubjectRecord]:
    if subject_id:
        records = [record for record in list_subjects(session) if record.id == subject_id]
        if not records:
            raise ValueError(f"Unknown subject id: {subject_id}")
        return records
    if subject_name:
        subject = find_subject_by_name(session, subject_name)
        if subject is None:
            raise ValueError(f"No subject matches name: {subject_name}")
        return [subject_record(subject)]
    return list_subjects(session)


def crawl_positions(
    settings: Settings | None = None,
    db_url: str | None = None,
    *,
    limit: int | None = None,
    test_mode: bool = False,
    subject_id: str | None = None,
    subject_name: str | None = None,
    force: bool = False,
    fetcher: Fetcher | None = None,
    sleep: Callable[[float], None] = time.sleep,
    now: datetime | None = None,
) -> dict[str, Any]:
    cfg = settings or get_settings()
    init_db(db_url)
    lexicon = lexicon_from_mapping(cfg.load_lexicon())
    windows = SkipWindows.from_settings(cfg)
    batch_size = TEST_MODE_LIMIT if test_mode else limit

    details: dict[str, Any] = {
        "subjects_considered": 0,
        "attempted": 0,
        "successful": 0,
        "failed": 0,
        "skipped": 0,
        "positions_found": 0,
        "errors": [],
    }

    own_fetcher = fetcher is None
    active_fetcher = fetcher or Fetcher(cfg)
    try:
        with session_scope(db_url) as session:
            run = start_pipeline_run(session, "crawl_positions")
            session.commit()
            try:
                taxonomy = load_taxonomy(session)
                log_repo = SqlCrawlLogRepository(session)
                position_repo = SqlPositionRepository(session, policy=ConflictPolicy(cfg.position_conflict_policy))
                current_time = now or utc_now()

                candidates = _resolve_targets(session, subject_id=subject_id, subject_name=subject_name)
                details["subjects_considered"] = len(candidates)
                if force or subject_id or subject_name:
                    targets = [record for record in candidates if record.homepage_url]
                    if not force:
                        targets = [
                            record
                            for record in targets
                            if not should_skip(log_repo.latest_for(record.id), current_time, windows)
                        ]
                    if batch_size is not None:
                        targets = targets[:batch_size]
                else:
                    targets = select_eligible(
                        candidates,
                        log_repo.latest_by_subject(),
                        now=current_time,
                        batch_size=batch_size,
                        windows=windows,
                    )
                details["skipped"] = len(candidates) - len(targets)
                logger.info("Crawling %s of %s subjects", len(targets), len(candidates))

                crawler = PositionCrawler(
                    active_fetcher,
                    taxonomy,
                    lexicon,
                    position_repo,
                    log_repo,
                    settings=cfg,
                    sleep=sleep,
                )
                for index, subject in enumerate(targets):
                    if index > 0:
                        sleep(cfg.subject_delay_seconds)
                    details["attempted"] += 1
                    try:
                        entry = crawler.crawl_subject(subject)
                        session.commit()
                    except Exception as exc:  # noqa: BLE001
                        session.rollback()
                        logger.exception("Failed to store crawl results for %s", subject.name)
                        entry = CrawlLogEntry(
                            subject_id=subject.id,
                            source_url=subject.homepage_url,
                            status="error",
                            error_kind=KIND_INTERNAL,
                            error_message=f"{type(exc).__name__}: {exc}",
                            crawled_at=utc_now(),
                        )
                        log_repo.append(entry)
                        session.commit()

                    if entry.status == "success":
                        details["successful"] += 1
                        details["positions_found"] += entry.positions_found
                    else:
                        details["failed"] += 1
                        details["errors"].append(
                            {"subject_id": subject.id, "kind": entry.error_kind, "message": entry.error_message}
                        )

                finish_pipeline_run(session, run, status="success", details=details)
                return details
            except Exception as exc:  # noqa: BLE001
                session.rollback()
                finish_pipeline_run(session, run, status="failed", details=details, error_message=str(exc))
                session.commit()
                raise
    finally:
        if own_fetcher:
            active_fetcher.close()
