"""HTTP fetcher with timeout, retry/backoff, per-host pacing and UA rotation.

Provides a `Fetcher` object exposing `fetch`, and the `Backoff` state machine
that decides how long to wait between attempts.
"""

from __future__ import annotations

import logging
import random
import threading
from typing import Callable, Dict, List, Optional
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.exceptions import InvalidHeader
from urllib3.util.retry import Retry

from spider.core.config import RetryPolicy
from spider.core.errors import (
    ClientError,
    FetchCancelled,
    FetchError,
    NetworkError,
    RateLimited,
    ServerError,
    TooManyRedirects,
)
from spider.core.models import FetchResult
from spider.core.scraping.throttle import HostRateLimiter

logger = logging.getLogger(__name__)

DEFAULT_UA_POOL = [
    "Mozilla/5.0 (compatible; SpiderBot/1.0; +https://example.org/bot)",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
]

JITTER = 0.2


class Backoff:
    """Delay schedule for one URL.

    The n-th failure waits ``base * 2**(n-1)`` seconds, jittered by +/-20%,
    clamped to ``max_delay`` and never shorter than the previous wait.
    A server hint (Retry-After) replaces the computed delay.
    """

    def __init__(self, policy: RetryPolicy, rng: Optional[random.Random] = None):
        self.policy = policy
        self.failures = 0
        self.previous = 0.0
        self._rng = rng or random.Random()

    def next_delay(self, hint: Optional[float] = None) -> float:
        self.failures += 1
        if hint is not None:
            delay = max(0.0, hint)
        else:
            raw = min(self.policy.max_delay, self.policy.base_delay * 2 ** (self.failures - 1))
            jittered = raw * self._rng.uniform(1 - JITTER, 1 + JITTER)
            delay = min(self.policy.max_delay, max(jittered, self.previous))
        self.previous = delay
        return delay


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return Retry().parse_retry_after(value)
    except InvalidHeader:
        return None


class Fetcher:
    """Small HTTP client with sensible defaults for crawling.

    Usage:
        f = Fetcher(retry=RetryPolicy(max_attempts=3), timeout=15)
        result = f.fetch(url)

    ``fetch`` returns a `FetchResult` or raises a `FetchError` subclass whose
    ``attempts`` tells how many requests were made. ``sleep`` is used for the
    pause between attempts and must return True if shutdown interrupted it.
    """

    def __init__(
        self,
        retry: Optional[RetryPolicy] = None,
        timeout: float = 15,
        max_redirects: int = 5,
        rate_limiter: Optional[HostRateLimiter] = None,
        user_agent: Optional[str] = None,
        ua_pool: Optional[List[str]] = None,
        pool_size: int = 10,
        session: Optional[requests.Session] = None,
        stop_event: Optional[threading.Event] = None,
        sleep: Optional[Callable[[float], bool]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.retry = retry or RetryPolicy()
        self.timeout = timeout
        self._stop = stop_event or threading.Event()
        self._sleep = sleep or self._stop.wait
        self._rng = rng or random.Random()
        self.rate_limiter = rate_limiter or HostRateLimiter(stop_event=self._stop)
        self.user_agent = user_agent
        self.ua_pool = ua_pool or DEFAULT_UA_POOL

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(
                pool_connections=pool_size, pool_maxsize=pool_size, max_retries=0
            )
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        session.max_redirects = max_redirects
        self.session = session

    def _headers(self) -> Dict[str, str]:
        return {"User-Agent": self.user_agent or self._rng.choice(self.ua_pool)}

    def fetch(self, url: str, method: str = "GET") -> FetchResult:
        host = urlparse(url).netloc.lower()
        backoff = Backoff(self.retry, self._rng)
        attempt = 0
        while True:
            attempt += 1
            if self._stop.is_set():
                raise FetchCancelled(url, "shutdown requested", attempt - 1)
            try:
                self.rate_limiter.acquire(host, url)
            except FetchError as exc:
                # no request was sent for this attempt
                exc.attempts = attempt - 1
                raise
            try:
                return self._attempt(url, method, attempt)
            except FetchError as exc:
                exc.attempts = attempt
                if not exc.retryable or attempt >= self.retry.max_attempts:
                    raise
                if isinstance(exc, RateLimited):
                    delay = backoff.next_delay(exc.retry_after)
                    logger.info(
                        "Rate limited on %s; retrying in %.2fs (attempt %d/%d)",
                        url, delay, attempt, self.retry.max_attempts,
                    )
                    # the limiter makes every worker hitting this host wait
                    self.rate_limiter.defer(host, delay)
                    continue
                delay = backoff.next_delay()
                logger.info(
                    "Fetch of %s failed (%s: %s); retrying in %.2fs (attempt %d/%d)",
                    url, exc.kind, exc, delay, attempt, self.retry.max_attempts,
                )
                if self._sleep(delay):
                    raise FetchCancelled(url, "shutdown during backoff", attempt) from exc

    def _attempt(self, url: str, method: str, attempt: int) -> FetchResult:
        try:
            resp = self.session.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.timeout,
                allow_redirects=True,
            )
        except requests.TooManyRedirects as exc:
            raise TooManyRedirects(url, str(exc), attempt) from exc
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise NetworkError(url, f"{type(exc).__name__}: {exc}", attempt) from exc
        except requests.RequestException as exc:
            raise FetchError(url, f"{type(exc).__name__}: {exc}", attempt) from exc

        status = resp.status_code
        if status == 429:
            raise RateLimited(url, parse_retry_after(resp.headers.get("Retry-After")), attempt)
        if 400 <= status < 500:
            raise ClientError(url, status, attempt)
        if status >= 500:
            raise ServerError(url, status, attempt)

        logger.debug("Fetched %s (status=%s, attempt=%d)", url, status, attempt)
        return FetchResult(
            url=url,
            final_url=resp.url or url,
            status_code=status,
            body=b"" if method.upper() == "HEAD" else resp.content,
            content_type=resp.headers.get("Content-Type", ""),
            headers=dict(resp.headers),
            attempts=attempt,
        )

    def close(self) -> None:
        self.session.close()
