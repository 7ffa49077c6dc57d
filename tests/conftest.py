from __future__ import annotations

import pytest

from position_tracker.config import PACKAGE_DATA_DIR, Settings, get_settings
from position_tracker.taxonomy import lexicon_from_mapping, taxonomy_from_seed
from position_tracker.types import Lexicon, Taxonomy


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    monkeypatch.setenv("POSITION_TRACKER_HOME", str(tmp_path / "home"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        project_root=tmp_path,
        data_dir=tmp_path / "data",
        exports_dir=tmp_path / "data" / "exports",
        database_path=tmp_path / "data" / "positions.db",
        taxonomy_file=PACKAGE_DATA_DIR / "taxonomy.yaml",
        lexicon_file=PACKAGE_DATA_DIR / "lexicons.yaml",
    )


@pytest.fixture()
def taxonomy(settings) -> Taxonomy:
    return taxonomy_from_seed(settings.load_taxonomy_seed())


@pytest.fixture()
def lexicon(settings) -> Lexicon:
    return lexicon_from_mapping(settings.load_lexicon())


@pytest.fixture()
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'positions.db'}"
