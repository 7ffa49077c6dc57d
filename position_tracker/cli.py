from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Callable

import typer
from rich.box import ROUNDED
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from position_tracker.config import get_settings
from position_tracker.db import init_db, session_scope
from position_tracker.pipeline.crawl_positions import crawl_positions
from position_tracker.pipeline.import_subjects import import_subjects
from position_tracker.pipeline.report import (
    build_report,
    default_export_path,
    export_topic_positions,
    missing_positions,
    positions_by_party,
    search_positions,
    subject_positions,
)
from position_tracker.scheduler import SkipWindows, select_eligible
from position_tracker.store import SqlCrawlLogRepository, list_subjects
from position_tracker.taxonomy import add_alias
from position_tracker.utils import utc_now

app = typer.Typer(help="Crawl elected officials' websites and classify their policy positions")
console = Console()


def _configure_logging(*, verbose: int, json_output: bool) -> None:
    if verbose <= 0:
        level = logging.ERROR
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    handlers: list[logging.Handler]
    if json_output:
        handlers = [logging.StreamHandler()]
        fmt = "%(levelname)s: %(message)s"
    else:
        handlers = [RichHandler(console=console, show_time=False, show_path=False, markup=True)]
        fmt = "%(message)s"

    logging.basicConfig(level=level, format=fmt, handlers=handlers, force=True)


@app.callback()
def app_callback(
    ctx: typer.Context,
    project_root: str | None = typer.Option(
        None,
        "--project-root",
        help="Directory holding data/ (database and exports).",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON for scripting."),
    verbose: int = typer.Option(0, "-v", "--verbose", count=True, help="Increase log verbosity."),
) -> None:
    if project_root:
        os.environ["POSITION_TRACKER_HOME"] = str(Path(project_root).expanduser().resolve())
        get_settings.cache_clear()
    ctx.obj = {"json_output": json_output, "verbose": verbose}
    _configure_logging(verbose=verbose, json_output=json_output)


def _wants_json(ctx: typer.Context) -> bool:
    return bool(ctx.obj and ctx.obj.get("json_output"))


def _format_scalar(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if value is None or value == "":
        return "-"
    return str(value)


def _render_table(title: str, rows: list[tuple[str, str]], *, border_style: str = "cyan") -> None:
    table = Table(show_header=True, header_style="bold cyan", box=ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    for metric, value in rows:
        table.add_row(metric, value)
    console.print(Panel(table, title=title, border_style=border_style))


def _render_rows(
    title: str,
    rows: list[dict[str, Any]],
    columns: list[tuple[str, str]],
    *,
    border_style: str = "yellow",
) -> None:
    if not rows:
        console.print(Panel("[dim]No rows[/dim]", title=title, border_style=border_style))
        return
    table = Table(show_header=True, header_style=f"bold {border_style}", box=ROUNDED)
    for _key, label in columns:
        table.add_column(label)
    for row in rows:
        table.add_row(*[_format_scalar(row.get(key)) for key, _label in columns])
    console.print(Panel(table, title=title, border_style=border_style))


def _print(title: str, payload: dict[str, Any], ctx: typer.Context) -> None:
    if _wants_json(ctx):
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    scalar_rows = [
        (key, _format_scalar(value))
        for key, value in payload.items()
        if isinstance(value, (str, int, float, bool)) or value is None
    ]
    if scalar_rows:
        _render_table(title, scalar_rows)
    else:
        console.print(Panel(f"[bold]{title}[/bold]", border_style="cyan"))

    for key, value in payload.items():
        if isinstance(value, dict):
            _render_table(
                f"{title} · {key}",
                [(nested_key, _format_scalar(nested_value)) for nested_key, nested_value in value.items()],
                border_style="magenta",
            )
        elif isinstance(value, list) and value:
            _render_table(
                f"{title} · {key}",
                [("items", str(len(value))), ("preview", json.dumps(value[:3], ensure_ascii=False))],
                border_style="yellow",
            )


def _run_stage(ctx: typer.Context, stage_name: str, runner: Callable[[], dict[str, Any]]) -> dict[str, Any]:
    if _wants_json(ctx):
        return runner()

    started = time.perf_counter()
    with console.status(f"[bold cyan]{stage_name}[/bold cyan]", spinner="dots"):
        result = runner()
    console.print(f"[green]✓[/green] {stage_name} ({time.perf_counter() - started:.2f}s)")
    return result


@app.command("init-db")
def init_db_command(
    ctx: typer.Context,
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    init_db(db_url)
    _print("init-db", {"status": "ok", "database_url_override": db_url}, ctx)


@app.command("import-subjects")
def import_subjects_command(
    ctx: typer.Context,
    file: Path = typer.Option(..., "--file", exists=True, dir_okay=False, help="JSON or CSV subject directory."),
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    details = import_subjects(file, db_url)
    _print("import-subjects", details, ctx)


@app.command("eligible")
def eligible_command(
    ctx: typer.Context,
    limit: int | None = typer.Option(None, help="Maximum number of subjects to list."),
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    init_db(db_url)
    with session_scope(db_url) as session:
        subjects = list_subjects(session)
        latest = SqlCrawlLogRepository(session).latest_by_subject()
    selected = select_eligible(
        subjects,
        latest,
        now=utc_now(),
        batch_size=limit,
        windows=SkipWindows.from_settings(get_settings()),
    )
    rows = [subject.model_dump() for subject in selected]

    if _wants_json(ctx):
        typer.echo(json.dumps({"count": len(rows), "items": rows}, indent=2, ensure_ascii=False))
        return
    _render_rows(
        f"eligible · {len(rows)} of {len(subjects)}",
        rows,
        [("id", "ID"), ("name", "Name"), ("party", "Party"), ("state", "State"), ("homepage_url", "Homepage")],
    )


@app.command("crawl")
def crawl_command(
    ctx: typer.Context,
    limit: int | None = typer.Option(None, help="Maximum number of subjects to crawl."),
    test: bool = typer.Option(False, "--test", help="Crawl at most 5 subjects."),
    subject_id: str | None = typer.Option(None, "--subject-id", help="Crawl a single subject by ID."),
    subject_name: str | None = typer.Option(None, "--subject-name", help="Crawl a single subject by (fuzzy) name."),
    force: bool = typer.Option(False, "--force", help="Ignore skip windows."),
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    if subject_id and subject_name:
        raise typer.BadParameter("Provide only one of --subject-id or --subject-name")
    try:
        details = _run_stage(
            ctx,
            "crawl",
            lambda: crawl_positions(
                get_settings(),
                db_url,
                limit=limit,
                test_mode=test,
                subject_id=subject_id,
                subject_name=subject_name,
                force=force,
            ),
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    _print("crawl", details, ctx)


@app.command("report")
def report_command(
    ctx: typer.Context,
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    init_db(db_url)
    with session_scope(db_url) as session:
        payload = build_report(session)

    if _wants_json(ctx):
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    summary = payload["summary"]
    _render_table(
        "Policy position report",
        [
            ("Total positions", str(summary["total_positions"])),
            (
                "Subjects with positions",
                f"{summary['subjects_with_positions']}/{summary['total_subjects']} ({summary['coverage_pct']}%)",
            ),
            ("Topics covered", f"{summary['topics_covered']}/{summary['total_topics']}"),
            ("Key issues", str(summary["key_issues"])),
            ("Crawl success rate", f"{summary['success_rate_pct']}%"),
            ("Crawls (24h)", str(summary["recent_crawls_24h"])),
        ],
    )
    _render_rows(
        "Top topics",
        payload["top_topics"],
        [
            ("display_name", "Topic"),
            ("position_count", "Positions"),
            ("subject_count", "Subjects"),
            ("key_issue_count", "Key issues"),
            ("avg_confidence", "Avg conf"),
        ],
        border_style="green",
    )
    _render_rows(
        "Top subjects by key issues",
        payload["top_key_issue_subjects"],
        [("name", "Name"), ("party", "Party"), ("state", "State"), ("key_issue_count", "Key issues")],
        border_style="magenta",
    )
    if payload["recent_failures"]:
        _render_rows(
            f"Recent crawl failures · {payload['failure_count']} total",
            payload["recent_failures"],
            [("name", "Name"), ("error_kind", "Kind"), ("error_message", "Message"), ("crawled_at", "When")],
            border_style="red",
        )


@app.command("topic")
def topic_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Topic canonical or display name."),
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    init_db(db_url)
    with session_scope(db_url) as session:
        rows = positions_by_party(session, name)
    if _wants_json(ctx):
        typer.echo(json.dumps({"topic": name, "parties": rows}, indent=2, ensure_ascii=False))
        return
    _render_rows(
        f"{name} · positions by party",
        rows,
        [
            ("party", "Party"),
            ("position_count", "Positions"),
            ("key_issue_count", "Key issues"),
            ("avg_confidence", "Avg conf"),
        ],
    )


@app.command("missing")
def missing_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Topic canonical or display name."),
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    init_db(db_url)
    with session_scope(db_url) as session:
        rows = missing_positions(session, name)
    if _wants_json(ctx):
        typer.echo(json.dumps({"topic": name, "count": len(rows), "items": rows}, indent=2, ensure_ascii=False))
        return
    _render_rows(
        f"{name} · no position found ({len(rows)})",
        rows,
        [("name", "Name"), ("party", "Party"), ("state", "State"), ("homepage_url", "Homepage")],
    )


@app.command("search")
def search_command(
    ctx: typer.Context,
    keyword: str = typer.Argument(..., help="Text to look for in summaries and details."),
    limit: int = typer.Option(20, help="Maximum number of results."),
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    init_db(db_url)
    with session_scope(db_url) as session:
        rows = search_positions(session, keyword, limit=limit)
    if _wants_json(ctx):
        typer.echo(json.dumps({"keyword": keyword, "items": rows}, indent=2, ensure_ascii=False))
        return
    _render_rows(
        f"search · {keyword}",
        rows,
        [
            ("name", "Name"),
            ("topic", "Topic"),
            ("stance", "Stance"),
            ("confidence_score", "Conf"),
            ("position_summary", "Summary"),
        ],
    )


@app.command("export")
def export_command(
    ctx: typer.Context,
    topic: str = typer.Argument(..., help="Topic canonical or display name."),
    output: Path | None = typer.Option(None, "--output", help="Destination JSON file."),
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    init_db(db_url)
    with session_scope(db_url) as session:
        payload = export_topic_positions(session, topic)

    destination = output or default_export_path(topic)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    _print("export", {"topic": topic, "total_positions": payload["total_positions"], "output": str(destination)}, ctx)


@app.command("positions")
def positions_command(
    ctx: typer.Context,
    subject_id: str = typer.Argument(..., help="Subject ID."),
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    init_db(db_url)
    with session_scope(db_url) as session:
        rows = subject_positions(session, subject_id)
    if _wants_json(ctx):
        typer.echo(json.dumps({"subject_id": subject_id, "items": rows}, indent=2, ensure_ascii=False))
        return
    _render_rows(
        f"positions · {subject_id}",
        rows,
        [
            ("topic", "Topic"),
            ("stance", "Stance"),
            ("strength", "Strength"),
            ("is_key_issue", "Key"),
            ("confidence_score", "Conf"),
            ("position_summary", "Summary"),
        ],
        border_style="green",
    )


@app.command("add-alias")
def add_alias_command(
    ctx: typer.Context,
    topic: str = typer.Argument(..., help="Topic canonical name."),
    alias: str = typer.Argument(..., help="Alias text (matched case-insensitively)."),
    weight: float = typer.Option(0.8, help="Confidence weight in (0, 1]."),
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    init_db(db_url)
    try:
        with session_scope(db_url) as session:
            row = add_alias(session, topic, alias, weight=weight)
            payload = {"topic": topic, "alias": row.alias, "confidence_weight": row.confidence_weight}
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    _print("add-alias", payload, ctx)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
