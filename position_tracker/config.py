from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

PACKAGE_DATA_DIR = Path(__file__).parent / "data"


def _resolve_project_root() -> Path:
    override = os.getenv("POSITION_TRACKER_HOME", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return Path.cwd().resolve()


class Settings(BaseModel):
    project_root: Path = Field(default_factory=_resolve_project_root)
    data_dir: Path = Field(default_factory=lambda: _resolve_project_root() / "data")
    exports_dir: Path = Field(default_factory=lambda: _resolve_project_root() / "data" / "exports")

    database_path: Path = Field(default_factory=lambda: _resolve_project_root() / "data" / "positions.db")

    taxonomy_file: Path = PACKAGE_DATA_DIR / "taxonomy.yaml"
    lexicon_file: Path = PACKAGE_DATA_DIR / "lexicons.yaml"

    user_agent: str = "PositionTrackerBot/0.4 (policy research crawler; +https://github.com/position-tracker/position-tracker)"
    request_timeout_seconds: float = 20.0
    max_retries: int = 3
    request_backoff_seconds: float = 1.0
    max_redirects: int = 5

    subject_delay_seconds: float = 2.0
    page_delay_seconds: float = 1.0
    max_policy_pages: int = 15
    max_sections: int = 15

    success_skip_days: float = 7.0
    host_not_found_skip_days: float = 30.0
    forbidden_skip_days: float = 7.0
    error_skip_days: float = 1.0

    # "replace" keeps the most recent write; "max_confidence" keeps the stronger one.
    position_conflict_policy: str = "replace"

    def ensure_directories(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.exports_dir.mkdir(parents=True, exist_ok=True)

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.database_path}"

    def load_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data

    def load_taxonomy_seed(self) -> list[dict[str, Any]]:
        raw = self.load_yaml(self.taxonomy_file)
        topics = raw.get("topics", [])
        if not isinstance(topics, list):
            return []
        return [topic for topic in topics if isinstance(topic, dict) and topic.get("canonical_name")]

    def load_lexicon(self) -> dict[str, Any]:
        return self.load_yaml(self.lexicon_file)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_directories()
    return settings
