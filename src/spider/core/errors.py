"""Error taxonomy for a crawl run.

Per-task errors (fetch and extraction) are caught by the worker that hit them
and never stop the run. ``SinkWriteError`` aborts the run.
"""

from __future__ import annotations

from typing import Optional


class SpiderError(Exception):
    kind = "error"


class ConfigError(SpiderError):
    kind = "config"


class SeedError(SpiderError):
    kind = "seed"


class FetchError(SpiderError):
    """A fetch that ended without a usable response."""

    kind = "fetch"
    retryable = False

    def __init__(self, url: str, message: str = "", attempts: int = 0):
        super().__init__(message or self.kind)
        self.url = url
        self.attempts = attempts


class NetworkError(FetchError):
    kind = "network"
    retryable = True


class ServerError(NetworkError):
    kind = "server"

    def __init__(self, url: str, status_code: int, attempts: int = 0):
        super().__init__(url, f"HTTP {status_code}", attempts)
        self.status_code = status_code


class ClientError(FetchError):
    kind = "client"

    def __init__(self, url: str, status_code: int, attempts: int = 0):
        super().__init__(url, f"HTTP {status_code}", attempts)
        self.status_code = status_code


class RateLimited(FetchError):
    kind = "rate_limited"
    retryable = True

    def __init__(self, url: str, retry_after: Optional[float] = None, attempts: int = 0):
        super().__init__(url, "HTTP 429", attempts)
        self.status_code = 429
        self.retry_after = retry_after


class TooManyRedirects(FetchError):
    kind = "redirect"


class RateLimitTimeout(FetchError):
    kind = "rate_limit_timeout"


class FetchCancelled(FetchError):
    kind = "cancelled"


class ExtractionError(SpiderError):
    kind = "extraction"

    def __init__(self, url: str, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.url = url
        self.field = field


class SinkWriteError(SpiderError):
    kind = "sink"
