"""
Thread-safe frontier for the crawler.
Holds the pending crawl tasks and the seen-set of dedup keys, and tracks how
many tasks are in flight so that workers can tell "nothing queued right now"
from "crawl finished".
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from spider.core.dedup import Deduplicator
from spider.core.models import CrawlTask
from spider.core.scraping.normalizer import dedup_key

logger = logging.getLogger(__name__)


class Frontier:
    """
    Priority queue of `CrawlTask` plus the seen-set, both guarded by one
    condition variable. A key is added to the seen-set in the same critical
    section that queues its task, so two concurrent offers of the same URL
    admit exactly one task.

    Ordering is breadth-first (shallowest depth, then FIFO) or, with
    ``order="dfs"``, last-in first-out.
    """

    def __init__(self, max_depth: int = 2, order: str = "bfs") -> None:
        if order not in ("bfs", "dfs"):
            raise ValueError(f"unknown frontier order: {order}")
        self.max_depth = max_depth
        self.order = order
        self._cond = threading.Condition()
        self._seen = Deduplicator()
        self._heap: List[Tuple[Tuple[int, int], CrawlTask]] = []
        self._counter = itertools.count()
        self._in_flight = 0
        self._closed = False

    def _priority(self, depth: int) -> Tuple[int, int]:
        seq = next(self._counter)
        if self.order == "dfs":
            return (0, -seq)
        return (depth, seq)

    def offer(self, url: str, depth: int = 0, parent: Optional[str] = None) -> bool:
        """Admit ``url`` unless it is too deep, not http(s), already seen, or we are closed."""
        if depth > self.max_depth:
            logger.debug("offer: rejected (depth %d > %d): %s", depth, self.max_depth, url)
            return False
        try:
            scheme = urlparse(url).scheme
            key = dedup_key(url)
        except ValueError:
            logger.debug("offer: rejected (unparseable URL): %s", url)
            return False
        if scheme not in ("http", "https"):
            logger.debug("offer: rejected (non-HTTP scheme): %s", url)
            return False

        with self._cond:
            if self._closed:
                return False
            if not self._seen.admit_locked(key):
                logger.debug("offer: skipped (already seen): %s", key)
                return False
            task = CrawlTask(url=url, depth=depth, key=key, parent_url=parent)
            heapq.heappush(self._heap, (self._priority(depth), task))
            self._cond.notify()

        logger.debug("offer: queued %s (depth=%d, parent=%s)", url, depth, parent)
        return True

    def take(self, timeout: Optional[float] = None) -> Optional[CrawlTask]:
        """
        Block until a task is available and hand it out, counting it as in flight.
        Returns None when the frontier is exhausted (nothing queued, nothing in
        flight), when it was closed and drained, or when ``timeout`` expires.
        """
        with self._cond:
            while not self._heap:
                if self._closed or self._in_flight == 0:
                    return None
                if not self._cond.wait(timeout):
                    return None
            _, task = heapq.heappop(self._heap)
            self._in_flight += 1
            return task

    def task_done(self, task: CrawlTask) -> None:
        """Release a task handed out by `take`, after all its follow-up offers."""
        with self._cond:
            if self._in_flight <= 0:
                raise RuntimeError(f"task_done called more times than take: {task.url}")
            self._in_flight -= 1
            if self._in_flight == 0 and not self._heap:
                # wake everyone waiting so they can observe exhaustion
                self._cond.notify_all()

    def close(self, discard: bool = False) -> int:
        """Stop admitting new URLs. With ``discard`` pending tasks are dropped.

        Returns the number of dropped tasks.
        """
        with self._cond:
            self._closed = True
            dropped = 0
            if discard:
                dropped = len(self._heap)
                self._heap.clear()
            self._cond.notify_all()
        if dropped:
            logger.warning("Frontier closed; dropped %d pending task(s)", dropped)
        return dropped

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def is_exhausted(self) -> bool:
        with self._cond:
            return not self._heap and self._in_flight == 0

    def __len__(self) -> int:
        with self._cond:
            return len(self._heap)

    def stats(self) -> dict:
        with self._cond:
            return {
                "queued": len(self._heap),
                "in_flight": self._in_flight,
                "seen": len(self._seen),
            }
