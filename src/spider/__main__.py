"""Command line entry point: ``python -m spider crawl.json``."""

from __future__ import annotations

import argparse
import logging
import signal
import sys

from spider.core.config import load_config
from spider.core.errors import ConfigError
from spider.manager import EXIT_SEED_FAILED, SpiderManager


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spider", description="Crawl a site and extract structured records."
    )
    parser.add_argument("config", help="path to the JSON crawl configuration")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--flow", action="store_true", help="run the crawl as a Prefect flow"
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s",
    )
    logger = logging.getLogger("spider")

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        logger.error("%s", exc)
        return EXIT_SEED_FAILED

    if args.flow:
        from spider.flows.crawl_flow import CrawlFailed, crawl_flow

        try:
            return crawl_flow(config.model_dump())
        except CrawlFailed as exc:
            logger.error("%s", exc)
            return exc.exit_code

    manager = SpiderManager(config)

    def _terminate(signum, frame):
        logger.warning("Received signal %d, stopping crawl", signum)
        manager.shutdown()

    signal.signal(signal.SIGTERM, _terminate)
    return manager.run_spider()


if __name__ == "__main__":
    sys.exit(main())
