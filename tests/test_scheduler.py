import csv

import pytest

from conftest import BROKEN_PAGE, LIST_PAGE_1, FakeFetcher
from spider.core.errors import SinkWriteError
from spider.core.frontier import Frontier
from spider.core.interfaces import RecordEncoder
from spider.core.models import TaskState
from spider.core.scheduler import Scheduler
from spider.extractors import SelectorExtractor
from spider.services.sink import open_sink
from spider.services.storage_backends import get_encoder


class FailingEncoder(RecordEncoder):
    def encode(self, rows, columns):
        raise ValueError("disk full")


def _scheduler(cfg, pages, encoder=None, **kwargs):
    frontier = Frontier(max_depth=cfg.max_depth, order=cfg.order)
    for seed in cfg.seeds:
        frontier.offer(seed, 0)
    sink = open_sink(
        cfg.output.path,
        cfg.field_names,
        encoder or get_encoder(cfg.output.format),
        cfg.output.buffer_size,
    )
    fetcher = FakeFetcher(pages)
    scheduler = Scheduler(
        frontier,
        fetcher,
        SelectorExtractor.from_config(cfg),
        sink,
        concurrency=cfg.concurrency,
        natural_key_fields=cfg.natural_key,
        **kwargs,
    )
    return scheduler, fetcher


def _rows(path):
    with open(path, newline="", encoding="utf-8") as fh:
        return list(csv.DictReader(fh))


def test_crawl_listing_pages(listing_config, site_pages):
    cfg = listing_config()
    scheduler, fetcher = _scheduler(cfg, site_pages)
    stats = scheduler.run()
    scheduler.sink.close()

    rows = _rows(cfg.output.path)
    assert sorted((r["title"], r["price"]) for r in rows) == [
        ("Algebra I", "12.5"),
        ("Calculus", "30"),
        ("Geometry", "9"),
    ]
    # page 2 is offered twice under different query orders, fetched once;
    # page 3 sits beyond maxDepth and is never fetched
    assert sorted(fetcher.calls) == ["https://site/list?page=1", "https://site/list?page=2&sort=asc"]
    summary = stats.summary()
    assert summary["pages_fetched"] == 2
    assert summary["pages_failed"] == 0
    assert summary["records_emitted"] == 3
    assert summary["links_offered"] == 3
    assert summary["links_accepted"] == 1
    assert scheduler.frontier.is_exhausted()


def test_records_from_one_page_stay_in_document_order(listing_config):
    cfg = listing_config(maxDepth=0)
    scheduler, _ = _scheduler(cfg, {"https://site/list?page=1": LIST_PAGE_1})
    scheduler.run()
    scheduler.sink.close()
    assert [r["title"] for r in _rows(cfg.output.path)] == ["Algebra I", "Geometry"]


def test_failed_pages_do_not_stop_the_crawl(listing_config):
    cfg = listing_config()
    pages = {
        "https://site/list?page=1": LIST_PAGE_1,
        "https://site/list?page=2&sort=asc": BROKEN_PAGE,
    }
    scheduler, _ = _scheduler(cfg, pages)
    stats = scheduler.run()
    scheduler.sink.close()

    assert stats.pages_failed == 1
    assert stats.failures == {"extraction": 1}
    assert stats.records_emitted == 2
    assert [r["title"] for r in _rows(cfg.output.path)] == ["Algebra I", "Geometry"]


def test_fetch_failure_is_counted_by_kind(listing_config):
    cfg = listing_config(seeds=["https://site/list?page=1", "https://site/gone"])
    scheduler, _ = _scheduler(cfg, {"https://site/list?page=1": LIST_PAGE_1})
    stats = scheduler.run()
    scheduler.sink.close()
    # page 2 is not served either
    assert stats.failures == {"client": 2}
    assert stats.records_emitted == 2


def test_natural_key_drops_repeated_records(listing_config):
    cfg = listing_config(naturalKey=["title"])
    repeat = LIST_PAGE_1.replace("Geometry", "Algebra I")
    scheduler, _ = _scheduler(cfg, {"https://site/list?page=1": repeat})
    stats = scheduler.run()
    scheduler.sink.close()
    assert stats.records_emitted == 1
    assert stats.records_duplicate == 1
    assert [r["title"] for r in _rows(cfg.output.path)] == ["Algebra I"]


def test_sink_failure_aborts_the_run(listing_config, site_pages):
    cfg = listing_config(output={"path": listing_config().output.path, "bufferSize": 1})
    scheduler, _ = _scheduler(cfg, site_pages, encoder=FailingEncoder())
    with pytest.raises(SinkWriteError):
        scheduler.run()
    assert scheduler.stop_event.is_set()
    assert scheduler.frontier.closed


def test_process_after_shutdown_marks_task_failed(listing_config, site_pages):
    cfg = listing_config()
    scheduler, fetcher = _scheduler(cfg, site_pages)
    task = scheduler.frontier.take()
    scheduler.shutdown()
    assert scheduler.process(task) is TaskState.FAILED
    assert fetcher.calls == []
    scheduler.frontier.task_done(task)
    scheduler.sink.close()


def test_malformed_links_do_not_abort_the_crawl(listing_config):
    cfg = listing_config(maxDepth=0, allow=["^https://site"])
    page = LIST_PAGE_1.replace(
        "<ul>",
        '<a class="next" href="http://[broken/">x</a>'
        '<a class="next" href="https://site:99999/x">y</a><ul>',
    )
    scheduler, _ = _scheduler(cfg, {"https://site/list?page=1": page})
    stats = scheduler.run()
    scheduler.sink.close()

    assert scheduler.fatal_error is None
    assert not scheduler.stop_event.is_set()
    assert stats.pages_failed == 0
    assert stats.records_emitted == 2
    assert stats.links_offered == 2


def test_shutdown_marks_run_interrupted(listing_config, site_pages):
    cfg = listing_config()
    scheduler, _ = _scheduler(cfg, site_pages)
    assert not scheduler.interrupted
    scheduler.shutdown()
    scheduler.run()
    scheduler.sink.close()
    assert scheduler.interrupted
    assert scheduler.stats.pages_fetched == 0


def test_sink_abort_is_not_an_interruption(listing_config, site_pages):
    cfg = listing_config(output={"path": listing_config().output.path, "bufferSize": 1})
    scheduler, _ = _scheduler(cfg, site_pages, encoder=FailingEncoder())
    with pytest.raises(SinkWriteError):
        scheduler.run()
    assert not scheduler.interrupted
