"""Per-host request pacing shared by every worker.

Each host gets a "next free slot" timestamp. ``acquire`` reserves the next
slot under the lock and then sleeps outside it, so workers hitting different
hosts never wait on each other.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

from spider.core.errors import FetchCancelled, RateLimitTimeout

logger = logging.getLogger(__name__)


class HostRateLimiter:
    """Minimum interval between requests to the same host.

    ``sleep`` must return True when the wait was interrupted by shutdown; the
    default waits on ``stop_event``.
    """

    def __init__(
        self,
        min_interval: float = 0.0,
        max_wait: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        stop_event: Optional[threading.Event] = None,
        sleep: Optional[Callable[[float], bool]] = None,
    ) -> None:
        self.min_interval = min_interval
        self.max_wait = max_wait
        self._clock = clock
        self._stop = stop_event or threading.Event()
        self._sleep = sleep or self._stop.wait
        self._lock = threading.Lock()
        self._next_slot: Dict[str, float] = {}

    def reserve(self, host: str, url: str = "") -> float:
        """Claim the next slot for ``host`` and return how long to wait for it."""
        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot.get(host, now))
            wait = slot - now
            if wait > self.max_wait:
                raise RateLimitTimeout(
                    url or host, f"rate limit wait {wait:.1f}s exceeds {self.max_wait:.1f}s"
                )
            self._next_slot[host] = slot + self.min_interval
        return wait

    def acquire(self, host: str, url: str = "") -> float:
        wait = self.reserve(host, url)
        if wait > 0:
            logger.debug("Throttling %s for %.2fs", host, wait)
            if self._sleep(wait):
                raise FetchCancelled(url or host, "shutdown while throttled")
        return wait

    def defer(self, host: str, seconds: float) -> None:
        """Push the host's next slot at least ``seconds`` into the future (429 hint)."""
        if seconds <= 0:
            return
        with self._lock:
            until = self._clock() + seconds
            if until > self._next_slot.get(host, 0.0):
                self._next_slot[host] = until
        logger.warning("Host %s asked us to slow down; pausing it for %.1fs", host, seconds)
