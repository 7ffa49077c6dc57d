from __future__ import annotations

import logging
import re
from typing import Mapping, Sequence
from urllib.parse import urldefrag, urljoin, urlparse

from lxml import html

from position_tracker.errors import LinkResolutionError
from position_tracker.types import DiscoveredPage
from position_tracker.utils import canonicalize_url, normalize_whitespace, url_host

logger = logging.getLogger(__name__)

POLICY_PATH_TOKENS = frozenset(
    {"issues", "issue", "policy", "policies", "positions", "priorities", "agenda", "platform", "legislation"}
)
_PATH_TOKEN_RE = re.compile(r"[/\-_.]+")
_SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:", "data:", "sms:")


def resolve_link(base_url: str, href: str | None) -> str:
    candidate = (href or "").strip()
    if not candidate or candidate.startswith("#"):
        raise LinkResolutionError(f"Not a page link: {href!r}")
    if candidate.casefold().startswith(_SKIPPED_SCHEMES):
        raise LinkResolutionError(f"Unsupported scheme: {href!r}")
    try:
        resolved, _fragment = urldefrag(urljoin(base_url, candidate))
        parsed = urlparse(resolved)
        hostname = parsed.hostname
    except ValueError as exc:
        raise LinkResolutionError(f"Malformed href {href!r}: {exc}") from exc
    if parsed.scheme not in {"http", "https"} or not hostname:
        raise LinkResolutionError(f"Not an http(s) URL: {resolved!r}")
    return resolved


def _path_tokens(url: str) -> set[str]:
    path = urlparse(url).path.casefold()
    return {token for token in _PATH_TOKEN_RE.split(path) if token}


def _topic_hint(path: str, text: str, topic_keywords: Mapping[str, Sequence[str]]) -> str | None:
    haystack = f"{path} {text}".casefold()
    for topic, keywords in topic_keywords.items():
        if any(keyword and keyword.casefold() in haystack for keyword in keywords):
            return topic
    return None


def discover_policy_pages(
    tree: html.HtmlElement,
    base_url: str,
    topic_keywords: Mapping[str, Sequence[str]],
    *,
    limit: int = 15,
) -> list[DiscoveredPage]:
    """Collect same-site links that look like policy or issue pages.

    ``topic_keywords`` maps canonical topic names to discovery keywords; its
    iteration order decides which topic a link is hinted with.
    """
    base_host = url_host(base_url)
    base_canonical = canonicalize_url(base_url)
    pages: list[DiscoveredPage] = []
    seen: set[str] = set()

    for anchor in tree.xpath("//a[@href]"):
        href = anchor.get("href")
        try:
            url = resolve_link(base_url, href)
        except LinkResolutionError as exc:
            logger.debug("Skipping link on %s: %s", base_url, exc)
            continue

        if url_host(url) != base_host:
            continue
        canonical = canonicalize_url(url)
        if canonical == base_canonical or canonical in seen:
            continue

        text = normalize_whitespace(anchor.text_content())
        path = urlparse(url).path
        hint = _topic_hint(path, text, topic_keywords)
        if hint is None and not (_path_tokens(url) & POLICY_PATH_TOKENS):
            continue

        seen.add(canonical)
        pages.append(DiscoveredPage(url=url, text=text, topic_hint=hint))
        if len(pages) >= limit:
            break

    return pages
