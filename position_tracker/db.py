from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from position_tracker.config import get_settings
from position_tracker.models import Base, PipelineRun
from position_tracker.utils import to_json, utc_now

_ENGINES: dict[str, Engine] = {}
_SESSIONS: dict[str, sessionmaker[Session]] = {}


def get_engine(db_url: str | None = None) -> Engine:
    settings = get_settings()
    target_url = db_url or settings.database_url
    if target_url not in _ENGINES:
        connect_args = {"check_same_thread": False} if target_url.startswith("sqlite") else {}
        _ENGINES[target_url] = create_engine(target_url, future=True, connect_args=connect_args)
    return _ENGINES[target_url]


def get_session_factory(db_url: str | None = None) -> sessionmaker[Session]:
    settings = get_settings()
    target_url = db_url or settings.database_url
    if target_url not in _SESSIONS:
        _SESSIONS[target_url] = sessionmaker(
            bind=get_engine(target_url),
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )
    return _SESSIONS[target_url]


def init_db(db_url: str | None = None, *, seed_taxonomy: bool = True) -> None:
    """Create tables and, unless disabled, insert the seed taxonomy if missing."""
    settings = get_settings()
    settings.ensure_directories()
    if db_url is None:
        Path(settings.database_path).parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(db_url)
    Base.metadata.create_all(engine)
    _run_additive_migrations(engine)

    if seed_taxonomy:
        from position_tracker.taxonomy import bootstrap_taxonomy

        with session_scope(db_url) as session:
            bootstrap_taxonomy(session, settings.load_taxonomy_seed())


@contextmanager
def session_scope(db_url: str | None = None) -> Iterator[Session]:
    session_factory = get_session_factory(db_url)
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def start_pipeline_run(session: Session, stage: str) -> PipelineRun:
    run = PipelineRun(stage=stage, status="running", details_json="{}", error_message="", started_at=utc_now())
    session.add(run)
    session.flush()
    return run


def finish_pipeline_run(
    session: Session,
    run: PipelineRun,
    *,
    status: str,
    details: dict | None = None,
    error_message: str = "",
) -> PipelineRun:
    run.status = status
    run.details_json = to_json(details or {})
    run.error_message = error_message
    run.finished_at = utc_now()
    session.add(run)
    return run


def _table_exists(engine: Engine, table: str) -> bool:
    if engine.dialect.name == "sqlite":
        with engine.connect() as conn:
            row = conn.execute(
                text("SELECT 1 FROM sqlite_master WHERE type='table' AND name=:name"),
                {"name": table},
            ).first()
        return row is not None
    return True


def _column_exists(engine: Engine, table: str, column: str) -> bool:
    if engine.dialect.name != "sqlite":
        return True
    with engine.connect() as conn:
        rows = conn.execute(text(f"PRAGMA table_info('{table}')")).fetchall()
    for row in rows:
        if row[1] == column:
            return True
    return False


def _add_column_if_missing(engine: Engine, table: str, column: str, definition: str) -> None:
    if not _table_exists(engine, table):
        return
    if _column_exists(engine, table, column):
        return
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {definition}"))


def _run_additive_migrations(engine: Engine) -> None:
    # Databases created before error kinds and topic ordering were tracked.
    if engine.dialect.name != "sqlite":
        return
    _add_column_if_missing(engine, "crawl_log", "error_kind", "VARCHAR(32) NOT NULL DEFAULT ''")
    _add_column_if_missing(engine, "crawl_log", "duration_ms", "INTEGER NOT NULL DEFAULT 0")
    _add_column_if_missing(engine, "policy_topics", "discovery_keywords_json", "TEXT NOT NULL DEFAULT '[]'")
    _add_column_if_missing(engine, "policy_topics", "sort_order", "INTEGER NOT NULL DEFAULT 0")
