from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from position_tracker.db import finish_pipeline_run, init_db, session_scope, start_pipeline_run
from position_tracker.store import upsert_subject
from position_tracker.types import SubjectRecord

logger = logging.getLogger(__name__)

_FIELD_ALIASES = {
    "id": ("id", "subject_id", "bioguide_id"),
    "name": ("name", "full_name"),
    "homepage_url": ("homepage_url", "website", "url", "official_website"),
    "party": ("party",),
    "state": ("state",),
    "chamber": ("chamber",),
}


def _normalize_row(raw: dict[str, Any]) -> dict[str, str]:
    lowered = {str(key).strip().lower(): value for key, value in raw.items()}
    out: dict[str, str] = {}
    for field, candidates in _FIELD_ALIASES.items():
        for candidate in candidates:
            value = lowered.get(candidate)
            if value not in (None, ""):
                out[field] = str(value).strip()
                break
    return out


def read_subject_rows(path: Path) -> list[dict[str, Any]]:
    if path.suffix.lower() == ".csv":
        with path.open("r", encoding="utf-8", newline="") as f:
            return list(csv.DictReader(f))

    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("subjects", [])
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of subjects in {path}")
    return [row for row in data if isinstance(row, dict)]


def import_subjects(path: Path, db_url: str | None = None) -> dict[str, Any]:
    init_db(db_url)
    rows = read_subject_rows(path)
    details: dict[str, Any] = {"file": str(path), "rows": len(rows), "imported": 0, "invalid": 0}

    with session_scope(db_url) as session:
        run = start_pipeline_run(session, "import_subjects")
        session.commit()
        try:
            for raw in rows:
                try:
                    record = SubjectRecord.model_validate(_normalize_row(raw))
                except ValidationError as exc:
                    details["invalid"] += 1
                    logger.warning("Skipping subject row %s: %s", raw, exc.errors()[0]["msg"])
                    continue
                upsert_subject(session, record)
                details["imported"] += 1
            finish_pipeline_run(session, run, status="success", details=details)
            return details
        except Exception as exc:  # noqa: BLE001
            session.rollback()
            finish_pipeline_run(session, run, status="failed", details=details, error_message=str(exc))
            session.commit()
            raise
