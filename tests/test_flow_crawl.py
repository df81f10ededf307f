import pytest

from spider.flows.crawl_flow import crawl_flow


def _cfg(tmp_path):
    return {
        "seeds": ["https://example.com/start"],
        "selectors": {"title": {"selector": "h1"}},
        "output": {"path": str(tmp_path / "out.jsonl"), "format": "jsonl"},
    }


def test_crawl_flow_delegates_to_task(monkeypatch, tmp_path):
    seen = []

    def fake_task(config):
        seen.append(config)
        return 0

    # Patch the task used by the flow so no crawl runs
    monkeypatch.setattr("spider.flows.crawl_flow.run_crawl_task", fake_task)

    assert crawl_flow(_cfg(tmp_path)) == 0
    assert seen[0].seeds == ["https://example.com/start"]
    assert seen[0].output.format == "jsonl"


def test_crawl_flow_fails_on_nonzero_exit(monkeypatch, tmp_path):
    monkeypatch.setattr("spider.flows.crawl_flow.run_crawl_task", lambda config: 2)
    with pytest.raises(RuntimeError):
        crawl_flow(_cfg(tmp_path))


def test_crawl_failure_carries_exit_code(monkeypatch, tmp_path):
    from spider.flows.crawl_flow import CrawlFailed

    monkeypatch.setattr("spider.flows.crawl_flow.run_crawl_task", lambda config: 2)
    with pytest.raises(CrawlFailed) as info:
        crawl_flow(_cfg(tmp_path))
    assert info.value.exit_code == 2
