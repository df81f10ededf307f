import threading

import pytest

from spider.core.config import CrawlConfig
from spider.core.errors import ClientError
from spider.core.models import FetchResult
from spider.core.scraping.normalizer import normalize_url

LIST_PAGE_1 = """
<html>
  <body>
    <a class="next" href="/list?page=2&sort=asc">next</a>
    <ul>
      <li class="item"><a class="title" href="/item/1">Algebra I</a><span class="price">$12.50</span></li>
      <li class="item"><a class="title" href="/item/2">Geometry</a><span class="price">$9</span></li>
    </ul>
    <a class="next" href="/list?sort=asc&page=2">next</a>
  </body>
</html>
"""

LIST_PAGE_2 = """
<html>
  <body>
    <ul>
      <li class="item"><a class="title" href="/item/3">Calculus</a><span class="price">$30</span></li>
    </ul>
    <a class="next" href="/list?page=3">next</a>
  </body>
</html>
"""

BROKEN_PAGE = """
<html><body><ul><li class="item"><span class="price">$1</span></li></ul></body></html>
"""


def html_result(url: str, html: str, content_type: str = "text/html; charset=utf-8") -> FetchResult:
    return FetchResult(
        url=url,
        final_url=url,
        status_code=200,
        body=html.encode("utf-8"),
        content_type=content_type,
    )


class FakeFetcher:
    """Serves canned pages keyed by normalized URL; anything else is a 404."""

    def __init__(self, pages):
        self.pages = {normalize_url(u): html for u, html in pages.items()}
        self.calls = []
        self._lock = threading.Lock()
        self.closed = False

    def fetch(self, url, method="GET"):
        with self._lock:
            self.calls.append(url)
        html = self.pages.get(normalize_url(url))
        if html is None:
            raise ClientError(url, 404, attempts=1)
        return html_result(url, html)

    def close(self):
        self.closed = True


@pytest.fixture
def listing_config(tmp_path):
    def make(**overrides):
        data = {
            "seeds": ["https://site/list?page=1"],
            "maxDepth": 1,
            "recordSelector": "li.item",
            "selectors": {
                "title": {"selector": "a.title", "required": True},
                "price": {"selector": "span.price", "transform": "number"},
            },
            "linkSelectors": [{"selector": "a.next"}],
            "concurrency": 3,
            "output": {"path": str(tmp_path / "out.csv"), "format": "csv", "bufferSize": 2},
        }
        data.update(overrides)
        return CrawlConfig.model_validate(data)

    return make


@pytest.fixture
def site_pages():
    return {
        "https://site/list?page=1": LIST_PAGE_1,
        "https://site/list?page=2&sort=asc": LIST_PAGE_2,
    }
