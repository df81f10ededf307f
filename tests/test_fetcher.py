import random
import threading

import pytest
import requests

from spider.core.config import RetryPolicy
from spider.core.errors import (
    ClientError,
    FetchCancelled,
    NetworkError,
    RateLimitTimeout,
    ServerError,
    TooManyRedirects,
)
from spider.core.scraping.fetcher import Backoff, Fetcher, parse_retry_after
from spider.core.scraping.throttle import HostRateLimiter


class DummyResponse:
    def __init__(self, status_code=200, content=b"<html></html>", headers=None, url=""):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {"Content-Type": "text/html"}
        self.url = url


class DummySession:
    """Plays back responses (or raises exceptions) in order."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.max_redirects = 30

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if not item.url:
            item.url = url
        return item

    def close(self):
        pass


def _fetcher(responses, delays=None, **kwargs):
    session = DummySession(responses)
    recorded = [] if delays is None else delays
    kwargs.setdefault("retry", RetryPolicy(max_attempts=3, base_delay=1, max_delay=30))
    f = Fetcher(session=session, sleep=recorded.append, rng=random.Random(7), **kwargs)
    return f, session


def test_success_returns_fetch_result():
    f, session = _fetcher(
        [DummyResponse(200, b"<p>hi</p>", {"Content-Type": "text/html; charset=utf-8"})]
    )
    result = f.fetch("https://site/page")
    assert result.status_code == 200
    assert result.body == b"<p>hi</p>"
    assert result.charset == "utf-8"
    assert result.attempts == 1
    assert len(session.calls) == 1
    assert "User-Agent" in session.calls[0][2]["headers"]


def test_always_503_uses_whole_budget_with_monotone_delays():
    delays = []
    f, session = _fetcher(
        [DummyResponse(503) for _ in range(6)],
        delays,
        retry=RetryPolicy(max_attempts=6, base_delay=1, max_delay=8),
    )
    with pytest.raises(ServerError) as info:
        f.fetch("https://site/flaky")

    assert info.value.attempts == 6
    assert len(session.calls) == 6
    assert len(delays) == 5
    assert all(later >= earlier for earlier, later in zip(delays, delays[1:]))
    assert max(delays) <= 8


def test_client_error_is_not_retried():
    delays = []
    f, session = _fetcher([DummyResponse(404)], delays)
    with pytest.raises(ClientError) as info:
        f.fetch("https://site/missing")
    assert info.value.status_code == 404
    assert info.value.attempts == 1
    assert len(session.calls) == 1
    assert delays == []


def test_network_error_then_success():
    delays = []
    f, session = _fetcher(
        [requests.ConnectionError("reset"), DummyResponse(200)], delays
    )
    result = f.fetch("https://site/page")
    assert result.attempts == 2
    assert len(delays) == 1


def test_network_error_exhausts_budget():
    f, _ = _fetcher([requests.Timeout("slow")] * 3)
    with pytest.raises(NetworkError) as info:
        f.fetch("https://site/page")
    assert info.value.attempts == 3


def test_429_honors_retry_after_through_rate_limiter():
    limiter_waits = []
    limiter = HostRateLimiter(clock=lambda: 100.0, sleep=limiter_waits.append)
    delays = []
    f, session = _fetcher(
        [DummyResponse(429, headers={"Retry-After": "7"}), DummyResponse(200)],
        delays,
        rate_limiter=limiter,
    )
    result = f.fetch("https://site/busy")
    assert result.attempts == 2
    assert limiter_waits == [7]
    # the pause is taken in the limiter, not as an extra backoff sleep
    assert delays == []


def test_429_wait_beyond_limit_is_a_failure():
    limiter = HostRateLimiter(max_wait=60, clock=lambda: 0.0, sleep=lambda s: False)
    f, _ = _fetcher(
        [DummyResponse(429, headers={"Retry-After": "120"}), DummyResponse(200)],
        rate_limiter=limiter,
    )
    with pytest.raises(RateLimitTimeout) as info:
        f.fetch("https://site/busy")
    assert info.value.attempts == 1


def test_too_many_redirects_is_terminal():
    f, session = _fetcher([requests.TooManyRedirects("Exceeded 5 redirects.")])
    with pytest.raises(TooManyRedirects):
        f.fetch("https://site/loop")
    assert len(session.calls) == 1
    assert session.max_redirects == 5


def test_head_request_has_empty_body():
    f, session = _fetcher([DummyResponse(200, b"ignored")])
    result = f.fetch("https://site/page", method="HEAD")
    assert session.calls[0][0] == "HEAD"
    assert result.body == b""


def test_final_url_follows_redirect():
    f, _ = _fetcher([DummyResponse(200, url="https://site/new")])
    assert f.fetch("https://site/old").final_url == "https://site/new"


def test_stop_event_cancels_before_request():
    stop = threading.Event()
    stop.set()
    f, session = _fetcher([DummyResponse(200)], stop_event=stop)
    with pytest.raises(FetchCancelled):
        f.fetch("https://site/page")
    assert session.calls == []


def test_shutdown_during_backoff_cancels():
    session = DummySession([DummyResponse(500), DummyResponse(200)])
    f = Fetcher(session=session, sleep=lambda delay: True)
    with pytest.raises(FetchCancelled):
        f.fetch("https://site/page")
    assert len(session.calls) == 1


@pytest.mark.parametrize("seed", range(20))
def test_backoff_never_decreases_and_respects_cap(seed):
    backoff = Backoff(RetryPolicy(base_delay=0.5, max_delay=5), random.Random(seed))
    delays = [backoff.next_delay() for _ in range(10)]
    assert all(later >= earlier for earlier, later in zip(delays, delays[1:]))
    assert all(d <= 5 for d in delays)
    assert 0.4 <= delays[0] <= 0.6


def test_parse_retry_after():
    assert parse_retry_after("3") == 3
    assert parse_retry_after(None) is None
    assert parse_retry_after("not a date") is None


def test_rate_limit_timeout_before_any_request_counts_no_attempts():
    limiter = HostRateLimiter(max_wait=5, clock=lambda: 0.0, sleep=lambda s: False)
    limiter.defer("site", 30)
    f, session = _fetcher([DummyResponse(200)], rate_limiter=limiter)
    with pytest.raises(RateLimitTimeout) as info:
        f.fetch("https://site/page")
    assert info.value.attempts == 0
    assert session.calls == []
