"""
SpiderManager: wires the crawl components together and runs one crawl.

The manager owns the process-level concerns: seeding the frontier, opening
and closing the sink, mapping the outcome to an exit code, and printing the
run statistics at the end.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from spider.core.config import CrawlConfig
from spider.core.errors import SeedError, SinkWriteError
from spider.core.frontier import Frontier
from spider.core.scheduler import Scheduler
from spider.core.scraping.fetcher import Fetcher
from spider.core.scraping.throttle import HostRateLimiter
from spider.extractors import get_extractor
from spider.services.report import CrawlStats, FailureLog, summarize_output
from spider.services.sink import RecordSink
from spider.services.storage_backends import get_encoder

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SEED_FAILED = 1
EXIT_SINK_FAILED = 2
EXIT_INTERRUPTED = 130


class SpiderManager:
    def __init__(
        self,
        config: CrawlConfig,
        fetcher: Optional[Fetcher] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.config = config
        self.stop_event = stop_event or threading.Event()
        self.stats = CrawlStats()
        self.frontier = Frontier(max_depth=config.max_depth, order=config.order)
        self.fetcher = fetcher or self._build_fetcher()
        self.extractor = get_extractor("selector").from_config(config)
        self.sink = RecordSink(
            config.output.path,
            config.field_names,
            get_encoder(config.output.format),
            buffer_size=config.output.buffer_size,
        )
        self.scheduler: Optional[Scheduler] = None
        self.interrupted = False

    def _build_fetcher(self) -> Fetcher:
        cfg = self.config
        limiter = HostRateLimiter(
            min_interval=cfg.per_host_rate_limit,
            max_wait=cfg.max_rate_limit_wait,
            stop_event=self.stop_event,
        )
        return Fetcher(
            retry=cfg.retry,
            timeout=cfg.timeout,
            max_redirects=cfg.max_redirects,
            rate_limiter=limiter,
            user_agent=cfg.user_agent,
            pool_size=cfg.concurrency,
            stop_event=self.stop_event,
        )

    def seed(self) -> int:
        accepted = sum(1 for url in self.config.seeds if self.frontier.offer(url, 0, None))
        if accepted == 0:
            raise SeedError("no seed URL was accepted by the frontier")
        logger.info("Seeded frontier with %d URL(s)", accepted)
        return accepted

    def run_spider(self) -> int:
        """Run the crawl to completion and return the process exit code."""
        start = time.monotonic()
        logger.info("Starting crawl of %s", ", ".join(self.config.seeds))
        try:
            self.seed()
        except SeedError as exc:
            if self.interrupted:
                return EXIT_INTERRUPTED
            logger.error("Could not seed the crawl: %s", exc)
            return EXIT_SEED_FAILED

        try:
            self.sink.open()
        except SinkWriteError as exc:
            logger.error("Could not open output: %s", exc)
            return EXIT_SINK_FAILED

        self.scheduler = Scheduler(
            self.frontier,
            self.fetcher,
            self.extractor,
            self.sink,
            concurrency=self.config.concurrency,
            natural_key_fields=self.config.natural_key,
            stats=self.stats,
            failures=FailureLog(self.config.failure_log),
            stop_event=self.stop_event,
        )
        code = EXIT_OK
        try:
            self.scheduler.run()
        except SinkWriteError as exc:
            logger.error("Crawl aborted, output is incomplete: %s", exc)
            code = EXIT_SINK_FAILED
        finally:
            try:
                self.sink.close()
            except SinkWriteError as exc:
                logger.error("Failed to flush output on close: %s", exc)
                code = EXIT_SINK_FAILED
            self.fetcher.close()

        if code == EXIT_OK and (self.interrupted or self.scheduler.interrupted):
            code = EXIT_INTERRUPTED
        self.print_statistics()
        logger.info("Crawl finished in %.1fs with exit code %d", time.monotonic() - start, code)
        return code

    def shutdown(self) -> None:
        """Interrupt the crawl; `run_spider` then returns EXIT_INTERRUPTED."""
        self.interrupted = True
        if self.scheduler is not None:
            self.scheduler.shutdown()
        else:
            self.stop_event.set()
            self.frontier.close(discard=True)

    def print_statistics(self) -> None:
        summary = self.stats.summary()
        logger.info("=" * 60)
        logger.info("Crawl statistics")
        for key, value in summary.items():
            logger.info("  %s: %s", key, value)
        if not self.config.stats_fields or self.sink.written == 0:
            logger.info("=" * 60)
            return
        for field in self.config.stats_fields:
            counts = summarize_output(self.config.output.path, self.config.output.format, field)
            logger.info("Distribution of %s (%d distinct):", field, len(counts))
            for value, n in counts.items():
                logger.info("  %s: %d", value, n)
        logger.info("=" * 60)


def run(config: CrawlConfig) -> int:
    return SpiderManager(config).run_spider()
