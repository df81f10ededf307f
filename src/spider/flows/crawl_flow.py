"""Prefect wrapper around a crawl run.

Lets a crawl be scheduled and observed like any other Prefect flow: the
configuration dict is validated up front, the crawl runs as one task, and
a non-zero exit code fails the flow run.
"""

from __future__ import annotations

from prefect import flow, get_run_logger, task

from spider.core.config import CrawlConfig
from spider.manager import EXIT_OK, SpiderManager


class CrawlFailed(RuntimeError):
    """A crawl run inside the flow ended with a non-zero exit code."""

    def __init__(self, exit_code: int):
        super().__init__(f"crawl failed with exit code {exit_code}")
        self.exit_code = exit_code

    def __reduce__(self):
        # flow states may pickle the exception
        return (CrawlFailed, (self.exit_code,))


@task(name="run_crawl", retries=0)
def run_crawl_task(config: CrawlConfig) -> int:
    logger = get_run_logger()
    logger.info("Crawling %d seed(s), max depth %d", len(config.seeds), config.max_depth)
    code = SpiderManager(config).run_spider()
    logger.info("Crawl exited with code %d; output at %s", code, config.output.path)
    return code


@flow(name="Spider Crawl")
def crawl_flow(config_dict: dict) -> int:
    """
    Master flow for crawls.
    Receives the crawl configuration as a dict (JSON), validates it and runs the crawl.
    """
    logger = get_run_logger()
    # invalid config fails the flow immediately with pydantic's message
    config = CrawlConfig.model_validate(config_dict)
    logger.info("Valid configuration, writing %s to %s", config.output.format, config.output.path)

    code = run_crawl_task(config)
    if code != EXIT_OK:
        raise CrawlFailed(code)
    return code
