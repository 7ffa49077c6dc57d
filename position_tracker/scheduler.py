"""Decides which subjects are due for a crawl.

A subject is skipped while its most recent crawl log entry is inside a skip
window. The window length depends on how that attempt ended: a success is
trusted for a week, an unknown host is left alone for a month, a 403 for a
week, and any other failure for a day.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Mapping

from position_tracker.config import Settings
from position_tracker.errors import KIND_FORBIDDEN, KIND_HOST_NOT_FOUND
from position_tracker.types import CrawlLogEntry, SubjectRecord
from position_tracker.utils import as_utc

_HOST_NOT_FOUND_MARKERS = ("enotfound", "host_not_found", "name or service not known", "name resolution")


@dataclass(frozen=True)
class SkipWindows:
    success: timedelta = timedelta(days=7)
    host_not_found: timedelta = timedelta(days=30)
    forbidden: timedelta = timedelta(days=7)
    error: timedelta = timedelta(days=1)

    @classmethod
    def from_settings(cls, settings: Settings) -> SkipWindows:
        return cls(
            success=timedelta(days=settings.success_skip_days),
            host_not_found=timedelta(days=settings.host_not_found_skip_days),
            forbidden=timedelta(days=settings.forbidden_skip_days),
            error=timedelta(days=settings.error_skip_days),
        )


def error_kind_of(entry: CrawlLogEntry) -> str:
    if entry.error_kind:
        return entry.error_kind
    # Rows written before kinds were recorded only have the message.
    message = entry.error_message.casefold()
    if any(marker in message for marker in _HOST_NOT_FOUND_MARKERS):
        return KIND_HOST_NOT_FOUND
    if "403" in message:
        return KIND_FORBIDDEN
    return ""


def window_for(entry: CrawlLogEntry, windows: SkipWindows) -> timedelta:
    if entry.status == "success":
        return windows.success
    kind = error_kind_of(entry)
    if kind == KIND_HOST_NOT_FOUND:
        return windows.host_not_found
    if kind == KIND_FORBIDDEN:
        return windows.forbidden
    return windows.error


def should_skip(entry: CrawlLogEntry | None, now: datetime, windows: SkipWindows | None = None) -> bool:
    if entry is None:
        return False
    age = as_utc(now) - as_utc(entry.crawled_at)
    return age < window_for(entry, windows or SkipWindows())


def select_eligible(
    subjects: Iterable[SubjectRecord],
    latest_entries: Mapping[str, CrawlLogEntry],
    *,
    now: datetime,
    batch_size: int | None = None,
    windows: SkipWindows | None = None,
) -> list[SubjectRecord]:
    active_windows = windows or SkipWindows()
    candidates = sorted(
        (subject for subject in subjects if subject.homepage_url.strip()),
        key=lambda subject: (subject.name.casefold(), subject.id),
    )
    eligible = [
        subject for subject in candidates if not should_skip(latest_entries.get(subject.id), now, active_windows)
    ]
    if batch_size is not None:
        return eligible[: max(0, batch_size)]
    return eligible
