"""
Worker pool for the crawler.
Each worker loops: take a task from the frontier, fetch it, extract it, offer
the discovered links back to the frontier, emit the records to the sink, and
release the task.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional, Sequence

from spider.core.dedup import Deduplicator
from spider.core.errors import ExtractionError, FetchError, SinkWriteError
from spider.core.frontier import Frontier
from spider.core.models import CrawlTask, Extraction, TaskState
from spider.core.scraping.fetcher import Fetcher
from spider.core.scraping.normalizer import natural_key
from spider.extractors.selector_extractor import SelectorExtractor
from spider.services.report import CrawlStats, FailureLog
from spider.services.sink import RecordSink

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Runs ``concurrency`` worker threads over a shared frontier and sink.

    Per-task failures (fetch, extraction) are logged and counted and the run
    carries on. A `SinkWriteError` aborts the run: the frontier is closed and
    emptied, workers finish what they hold, and `run` re-raises the error.
    """

    def __init__(
        self,
        frontier: Frontier,
        fetcher: Fetcher,
        extractor: SelectorExtractor,
        sink: RecordSink,
        concurrency: int = 4,
        natural_key_fields: Sequence[str] = (),
        stats: Optional[CrawlStats] = None,
        failures: Optional[FailureLog] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.frontier = frontier
        self.fetcher = fetcher
        self.extractor = extractor
        self.sink = sink
        self.concurrency = concurrency
        self.natural_key_fields = list(natural_key_fields)
        self.records_seen = Deduplicator()
        self.stats = stats or CrawlStats()
        self.failures = failures or FailureLog()
        self.stop_event = stop_event or threading.Event()
        self._abort_lock = threading.Lock()
        self.fatal_error: Optional[BaseException] = None
        self.interrupted = False

    def run(self) -> CrawlStats:
        threads: List[threading.Thread] = [
            threading.Thread(target=self._work, name=f"worker-{i}", daemon=True)
            for i in range(self.concurrency)
        ]
        logger.info("Starting %d worker(s); frontier=%s", len(threads), self.frontier.stats())
        for t in threads:
            t.start()
        try:
            for t in threads:
                while t.is_alive():
                    t.join(0.5)
        except KeyboardInterrupt:
            logger.warning("Interrupted; shutting down workers")
            self.shutdown()
            for t in threads:
                t.join()

        if self.fatal_error is not None:
            raise self.fatal_error
        return self.stats

    def shutdown(self) -> None:
        """Interrupt the crawl: no new tasks, backoff waits cancelled, pending work dropped."""
        self.interrupted = True
        self._stop()

    def _stop(self) -> None:
        self.stop_event.set()
        self.frontier.close(discard=True)

    def _abort(self, exc: BaseException) -> None:
        with self._abort_lock:
            if self.fatal_error is None:
                self.fatal_error = exc
                logger.error("Fatal error, aborting crawl: %s", exc)
        self._stop()

    def _work(self) -> None:
        name = threading.current_thread().name
        logger.debug("%s started", name)
        while True:
            task = self.frontier.take()
            if task is None:
                break
            try:
                self.process(task)
            except SinkWriteError as exc:
                self._abort(exc)
            except Exception as exc:
                # a bug in one task must not hang the frontier for everyone
                logger.exception("%s crashed on %s", name, task.url)
                self._abort(exc)
            finally:
                self.frontier.task_done(task)
        logger.debug("%s exiting", name)

    def process(self, task: CrawlTask) -> TaskState:
        """Drive one task through fetch, extract, enqueue and emit."""
        if self.stop_event.is_set():
            return self._enter(task, TaskState.FAILED)

        self._enter(task, TaskState.FETCHING)
        try:
            result = self.fetcher.fetch(task.url)
        except FetchError as exc:
            return self._fail(task, exc)
        self.stats.page_fetched()

        self._enter(task, TaskState.EXTRACTING)
        try:
            extraction = self.extractor.extract(result)
        except ExtractionError as exc:
            exc.attempts = result.attempts
            return self._fail(task, exc)

        self._enter(task, TaskState.ENQUEUING)
        self._enqueue(task, extraction)

        self._enter(task, TaskState.EMITTING)
        self._emit(extraction)

        return self._enter(task, TaskState.DONE)

    def _enter(self, task: CrawlTask, state: TaskState) -> TaskState:
        logger.debug("%s [depth=%d] -> %s", task.url, task.depth, state.value)
        return state

    def _fail(self, task: CrawlTask, exc: FetchError | ExtractionError) -> TaskState:
        self.stats.page_failed(exc.kind)
        self.failures.record(task, exc)
        return self._enter(task, TaskState.FAILED)

    def _enqueue(self, task: CrawlTask, extraction: Extraction) -> None:
        accepted = 0
        for link in extraction.links:
            if self.frontier.offer(link, task.depth + 1, task.url):
                accepted += 1
        self.stats.links(len(extraction.links), accepted)
        if extraction.links:
            logger.debug(
                "%s: %d link(s) found, %d queued", task.url, len(extraction.links), accepted
            )

    def _emit(self, extraction: Extraction) -> None:
        for record in extraction.records:
            if self.natural_key_fields:
                key = natural_key(record.fields, self.natural_key_fields)
                if key is not None and not self.records_seen.admit(key):
                    self.stats.record_duplicate()
                    logger.debug("Dropping duplicate record %s from %s", key, record.source_url)
                    continue
            self.sink.emit(record)
            self.stats.record_emitted()
