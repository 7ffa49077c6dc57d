from __future__ import annotations

import json

from typer.testing import CliRunner

from position_tracker.cli import app

runner = CliRunner()


def _write_subjects(tmp_path):
    path = tmp_path / "subjects.csv"
    path.write_text(
        "bioguide_id,full_name,website,party,state,chamber\n"
        "A000001,Alice Adams,https://adams.house.gov,D,CA,house\n"
        "B000002,Bob Brown,https://brown.senate.gov,R,TX,senate\n"
        ",Missing Id,https://nobody.gov,I,VT,house\n",
        encoding="utf-8",
    )
    return path


def test_init_db_and_import_subjects(tmp_path) -> None:
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"

    result = runner.invoke(app, ["--json", "init-db", "--db-url", db_url])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["status"] == "ok"

    result = runner.invoke(app, ["--json", "import-subjects", "--file", str(_write_subjects(tmp_path)), "--db-url", db_url])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["rows"] == 3
    assert payload["imported"] == 2
    assert payload["invalid"] == 1

    result = runner.invoke(app, ["--json", "eligible", "--limit", "1", "--db-url", db_url])
    assert result.exit_code == 0
    eligible = json.loads(result.stdout)
    assert eligible["count"] == 1
    assert eligible["items"][0]["id"] == "A000001"


def test_add_alias_validates_input(tmp_path) -> None:
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"

    result = runner.invoke(app, ["--json", "add-alias", "technology", "Broadband", "--weight", "0.7", "--db-url", db_url])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"topic": "technology", "alias": "broadband", "confidence_weight": 0.7}

    result = runner.invoke(app, ["--json", "add-alias", "agriculture", "farms", "--db-url", db_url])
    assert result.exit_code != 0

    result = runner.invoke(app, ["--json", "add-alias", "technology", "5g", "--weight", "1.5", "--db-url", db_url])
    assert result.exit_code != 0


def test_reports_on_empty_database(tmp_path) -> None:
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"

    result = runner.invoke(app, ["--json", "report", "--db-url", db_url])
    assert result.exit_code == 0
    report = json.loads(result.stdout)
    assert report["summary"]["total_positions"] == 0
    assert report["summary"]["total_topics"] == 12

    result = runner.invoke(app, ["--json", "positions", "NOBODY", "--db-url", db_url])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"subject_id": "NOBODY", "items": []}

    result = runner.invoke(app, ["--json", "search", "medicare", "--db-url", db_url])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["items"] == []


def test_export_writes_json_file(tmp_path) -> None:
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"
    output = tmp_path / "out" / "healthcare.json"

    result = runner.invoke(app, ["--json", "export", "healthcare", "--output", str(output), "--db-url", db_url])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["output"] == str(output)
    exported = json.loads(output.read_text(encoding="utf-8"))
    assert exported["topic"] == "healthcare"
    assert exported["total_positions"] == 0


def test_crawl_rejects_unknown_subject(tmp_path) -> None:
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"

    result = runner.invoke(app, ["--json", "crawl", "--subject-id", "NOPE", "--db-url", db_url])
    assert result.exit_code != 0

    result = runner.invoke(app, ["--json", "crawl", "--subject-id", "A", "--subject-name", "B", "--db-url", db_url])
    assert result.exit_code != 0
