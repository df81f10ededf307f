"""Run statistics and the failure report.

`CrawlStats` counts what happened during a run, `FailureLog` appends one JSON
line per failed task, and `summarize_output` reads a finished output file
back to report how records are distributed over a field.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from spider.core.models import CrawlTask

logger = logging.getLogger(__name__)


class CrawlStats:
    """Thread-safe counters shared by all workers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.pages_fetched = 0
        self.pages_failed = 0
        self.records_emitted = 0
        self.records_duplicate = 0
        self.links_offered = 0
        self.links_accepted = 0
        self.failures: Counter = Counter()

    def page_fetched(self) -> None:
        with self._lock:
            self.pages_fetched += 1

    def page_failed(self, kind: str) -> None:
        with self._lock:
            self.pages_failed += 1
            self.failures[kind] += 1

    def links(self, offered: int, accepted: int) -> None:
        with self._lock:
            self.links_offered += offered
            self.links_accepted += accepted

    def record_emitted(self) -> None:
        with self._lock:
            self.records_emitted += 1

    def record_duplicate(self) -> None:
        with self._lock:
            self.records_duplicate += 1

    def summary(self) -> Dict[str, object]:
        with self._lock:
            return {
                "pages_fetched": self.pages_fetched,
                "pages_failed": self.pages_failed,
                "records_emitted": self.records_emitted,
                "records_duplicate": self.records_duplicate,
                "links_offered": self.links_offered,
                "links_accepted": self.links_accepted,
                "failures": dict(self.failures),
            }


class FailureLog:
    """Log each failed task and, when ``path`` is set, append it as a JSON line."""

    def __init__(self, path: Optional[str | Path] = None) -> None:
        self.path = Path(path) if path else None
        self._lock = threading.Lock()

    def record(self, task: CrawlTask, exc: Exception) -> None:
        kind = getattr(exc, "kind", type(exc).__name__)
        attempts = getattr(exc, "attempts", 0)
        logger.warning(
            "Task failed: url=%s kind=%s attempts=%d error=%s", task.url, kind, attempts, exc
        )
        if self.path is None:
            return
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "url": task.url,
            "depth": task.depth,
            "parent_url": task.parent_url,
            "kind": kind,
            "attempts": attempts,
            "exception": type(exc).__name__,
            "message": str(exc),
        }
        line = json.dumps(entry, ensure_ascii=False)
        with self._lock:
            try:
                with open(self.path, "a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            except OSError as e:
                logger.error("Could not write failure log %s: %s", self.path, e)


def summarize_output(path: str | Path, fmt: str, field: str) -> Dict[str, int]:
    """Count records per value of ``field`` in a written output file, most common first."""
    if Path(path).stat().st_size == 0:
        return {}
    if fmt == "csv":
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    else:
        df = pd.read_json(path, lines=True, dtype=False)
    if df.empty or field not in df.columns:
        return {}
    counts = df[field].astype(str).value_counts()
    return {str(k): int(v) for k, v in counts.items()}
