"""Core scraping primitives exported for reuse by the extractors and the scheduler.

This package contains small, well-tested building blocks: Fetcher, Backoff,
HostRateLimiter, Detector, Parser and Normalizer.
"""

from .detector import ResourceType, detect_resource_type, is_parseable_html
from .fetcher import Backoff, Fetcher, parse_retry_after
from .normalizer import dedup_key, natural_key, normalize_url
from .parser import LinkFilter, extract_links_from_html, select_links
from .throttle import HostRateLimiter

__all__ = [
    "Fetcher",
    "Backoff",
    "parse_retry_after",
    "HostRateLimiter",
    "detect_resource_type",
    "is_parseable_html",
    "ResourceType",
    "extract_links_from_html",
    "select_links",
    "LinkFilter",
    "normalize_url",
    "dedup_key",
    "natural_key",
]
