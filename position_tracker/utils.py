from __future__ import annotations

import json
import re
import unicodedata
from datetime import UTC, datetime
from typing import Any, Iterable
from urllib.parse import urldefrag, urlparse, urlunparse

SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def normalize_name(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    normalized = "".join(ch for ch in normalized if not unicodedata.combining(ch))
    normalized = normalized.casefold()
    normalized = re.sub(r"[^a-z0-9]+", " ", normalized)
    normalized = re.sub(r"\s+", " ", normalized).strip()
    return normalized


def normalize_whitespace(text: str) -> str:
    return " ".join(text.replace("\xa0", " ").split())


def canonicalize_url(url: str | None) -> str:
    if not url:
        return ""
    candidate = "".join(url.split())
    if not candidate:
        return ""
    if candidate.startswith("www."):
        candidate = f"https://{candidate}"
    candidate, _fragment = urldefrag(candidate)
    parsed = urlparse(candidate)
    if not parsed.scheme:
        parsed = urlparse(f"https://{candidate}")
    path = parsed.path or "/"
    if path != "/":
        path = path.rstrip("/")
    sanitized = parsed._replace(scheme=parsed.scheme.lower(), netloc=parsed.netloc.lower(), path=path, params="")
    return urlunparse(sanitized)


def url_host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").casefold()
    except ValueError:
        return ""


def to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def from_json(value: str | None, default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return default


def unique_list(items: Iterable[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for item in items:
        normalized = item.strip()
        if not normalized:
            continue
        key = normalized.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(normalized)
    return out


def clip(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def split_sentences(text: str, *, min_length: int = 20) -> list[str]:
    """Split on sentence punctuation, keeping trimmed fragments longer than ``min_length``."""
    out: list[str] = []
    for fragment in SENTENCE_SPLIT_RE.split(text):
        stripped = fragment.strip()
        if len(stripped) > min_length:
            out.append(stripped)
    return out


def count_hits(lower_text: str, phrases: Iterable[str]) -> int:
    """Number of distinct phrases contained in ``lower_text`` (repeats count once)."""
    return sum(1 for phrase in phrases if phrase and phrase in lower_text)


def contains_any(lower_text: str, phrases: Iterable[str]) -> bool:
    return any(phrase and phrase in lower_text for phrase in phrases)
