"""HTML parsing helpers: link extraction and filtering.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag


class LinkFilter:
    """Decide which discovered URLs may be handed to the frontier.

    With allow patterns, a URL passes if any regex matches it. Without them,
    only URLs on one of ``hosts`` (normally the seed hosts) pass.
    """

    def __init__(self, patterns: Optional[Sequence[str]] = None, hosts: Iterable[str] = ()):
        self.patterns = [re.compile(p) for p in patterns or []]
        self.hosts = {h.lower() for h in hosts}

    @classmethod
    def for_seeds(cls, seeds: Iterable[str], patterns: Optional[Sequence[str]] = None):
        return cls(patterns, hosts=(urlparse(s).netloc for s in seeds))

    def allows(self, url: str) -> bool:
        try:
            p = urlparse(url)
        except ValueError:
            return False
        if p.scheme not in ("http", "https"):
            return False
        if self.patterns:
            return any(rx.search(url) for rx in self.patterns)
        return p.netloc.lower() in self.hosts


def resolve_link(base_url: str, raw: str) -> Optional[str]:
    href = raw.strip()
    if not href or href.startswith(("#", "javascript:", "mailto:", "tel:")):
        return None
    try:
        full, _, _ = urljoin(base_url, href).partition("#")
        # .port validates the port range
        urlparse(full).port
    except ValueError:
        return None
    return full


def select_links(
    scope: Tag, selector: Optional[str], attr: str, base_url: str
) -> List[str]:
    """Absolute URLs from ``attr`` of every node matching ``selector`` in ``scope``."""
    nodes = scope.select(selector) if selector else [scope]
    found: List[str] = []
    for node in nodes:
        raw = node.get(attr)
        if isinstance(raw, list):
            raw = " ".join(raw)
        if not raw:
            continue
        full = resolve_link(base_url, str(raw))
        if full:
            found.append(full)
    return found


def unique(urls: Iterable[str]) -> List[str]:
    # dedupe preserving order
    seen = set()
    uniq: List[str] = []
    for u in urls:
        if u not in seen:
            seen.add(u)
            uniq.append(u)
    return uniq


def extract_links_from_html(
    html: str | bytes,
    base_url: str,
    link_filter: Optional[LinkFilter] = None,
    selector: str = "a[href]",
) -> List[str]:
    """Extract links from HTML and return absolute URLs in document order.

    - Resolves relative hrefs against ``base_url`` and drops fragments.
    - Keeps only URLs accepted by ``link_filter`` when one is given.
    """
    soup = BeautifulSoup(html, "html.parser")
    links = select_links(soup, selector, "href", base_url)
    if link_filter is not None:
        links = [u for u in links if link_filter.allows(u)]
    return unique(links)
