"""Error taxonomy for crawling.

Fetch failures carry a short ``kind`` string which is persisted on the crawl
log and drives the scheduler's skip windows:

- ``host_not_found`` -- DNS resolution failed (longest cooldown)
- ``http_403``       -- the site refused us (medium cooldown)
- anything else      -- ``timeout``, ``network``, ``http_<code>``,
  ``redirect_limit``, ``internal`` (shortest cooldown)
"""
from __future__ import annotations

KIND_HOST_NOT_FOUND = "host_not_found"
KIND_FORBIDDEN = "http_403"
KIND_TIMEOUT = "timeout"
KIND_NETWORK = "network"
KIND_REDIRECT_LIMIT = "redirect_limit"
KIND_INTERNAL = "internal"


class FetchError(Exception):
    """A page could not be retrieved."""

    def __init__(self, message: str, *, url: str = "", kind: str = KIND_NETWORK):
        super().__init__(message)
        self.url = url
        self.kind = kind


class NetworkError(FetchError):
    """Timeout, DNS failure or dropped connection. Retried before surfacing."""


class HTTPStatusError(FetchError):
    """Non-2xx response. Never retried."""

    def __init__(self, message: str, *, url: str = "", status_code: int):
        super().__init__(message, url=url, kind=f"http_{status_code}")
        self.status_code = status_code


class RedirectLimitError(FetchError):
    def __init__(self, message: str, *, url: str = ""):
        super().__init__(message, url=url, kind=KIND_REDIRECT_LIMIT)


class LinkResolutionError(ValueError):
    """An anchor href could not be resolved into a crawlable URL."""
