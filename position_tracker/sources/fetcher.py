from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urljoin

import httpx

from position_tracker.config import Settings, get_settings
from position_tracker.errors import (
    KIND_HOST_NOT_FOUND,
    KIND_NETWORK,
    KIND_TIMEOUT,
    FetchError,
    HTTPStatusError,
    NetworkError,
    RedirectLimitError,
)
from position_tracker.types import FetchedPage

logger = logging.getLogger(__name__)

_DNS_MARKERS = (
    "enotfound",
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
)


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry budget for network errors.

    The first request is followed by up to ``max_retries`` retries; failed
    attempt ``n`` waits ``n * base_delay`` before the next one.
    """

    max_retries: int = 3
    base_delay: float = 1.0

    @property
    def attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * attempt


def _is_dns_failure(exc: BaseException) -> bool:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, socket.gaierror):
            return True
        message = str(current).casefold()
        if any(marker in message for marker in _DNS_MARKERS):
            return True
        current = current.__cause__ or current.__context__
    return False


def classify_transport_error(exc: httpx.TransportError) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return KIND_TIMEOUT
    if _is_dns_failure(exc):
        return KIND_HOST_NOT_FOUND
    return KIND_NETWORK


class Fetcher:
    """Sequential HTML fetcher with manual redirect handling and bounded retries."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: httpx.Client | None = None,
        backoff: BackoffPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self.backoff = backoff or BackoffPolicy(
            max_retries=max(0, self.settings.max_retries),
            base_delay=self.settings.request_backoff_seconds,
        )
        self.max_redirects = self.settings.max_redirects
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=False)
        self._headers = {
            "User-Agent": self.settings.user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.5",
        }

    def __enter__(self) -> Fetcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def fetch(self, url: str) -> FetchedPage:
        """Return the page body together with the URL it was finally served from."""
        attempt = 1
        while True:
            try:
                return self._fetch_following_redirects(url)
            except NetworkError as exc:
                logger.warning("Request failed (%s/%s) %s: %s", attempt, self.backoff.attempts, url, exc)
                if attempt > self.backoff.max_retries:
                    raise
                self._sleep(self.backoff.delay_for(attempt))
                attempt += 1

    def _fetch_following_redirects(self, url: str) -> FetchedPage:
        current = url
        for _hop in range(self.max_redirects + 1):
            response = self._get(current)
            if response.is_redirect:
                location = response.headers.get("location", "")
                current = urljoin(current, location.strip())
                logger.debug("Redirect %s -> %s", response.status_code, current)
                continue
            if not response.is_success:
                raise HTTPStatusError(f"HTTP {response.status_code}", url=current, status_code=response.status_code)
            return FetchedPage(url=current, text=response.text)
        raise RedirectLimitError(f"Too many redirects (>{self.max_redirects}) starting at {url}", url=url)

    def _get(self, url: str) -> httpx.Response:
        try:
            return self._client.get(url, headers=self._headers, timeout=self.settings.request_timeout_seconds)
        except httpx.TransportError as exc:
            kind = classify_transport_error(exc)
            raise NetworkError(f"{type(exc).__name__}: {exc}", url=url, kind=kind) from exc
        except httpx.InvalidURL as exc:
            raise FetchError(f"Invalid URL: {exc}", url=url, kind=KIND_NETWORK) from exc
