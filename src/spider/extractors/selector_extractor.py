from __future__ import annotations

from typing import List, Mapping, Optional, Sequence

from bs4 import BeautifulSoup
from bs4.element import Tag

from spider.core.config import CrawlConfig, LinkRule, SelectionRule
from spider.core.errors import ExtractionError
from spider.core.models import ExtractedRecord, Extraction, FetchResult
from spider.core.scraping.detector import is_parseable_html
from spider.core.scraping.parser import LinkFilter, select_links, unique
from spider.extractors.rules import apply_rule


class SelectorExtractor:
    """Turn a fetched page into records and outbound links.

    Fields are read with the configured selection rules, either once for the
    whole page or once per node matching ``record_selector`` (a listing page
    with one record per item). A required field that matches nothing fails
    the whole page, so a page contributes all of its records or none.

    Extraction depends only on the bytes and URL of the `FetchResult`.
    """

    def __init__(
        self,
        selectors: Mapping[str, SelectionRule],
        link_rules: Sequence[LinkRule] = (),
        record_selector: Optional[str] = None,
        link_filter: Optional[LinkFilter] = None,
    ) -> None:
        self.selectors = dict(selectors)
        self.link_rules = list(link_rules)
        self.record_selector = record_selector
        self.link_filter = link_filter

    @classmethod
    def from_config(cls, config: CrawlConfig) -> "SelectorExtractor":
        return cls(
            selectors=config.selectors,
            link_rules=config.link_selectors,
            record_selector=config.record_selector,
            link_filter=LinkFilter.for_seeds(config.seeds, config.allow),
        )

    @property
    def field_names(self) -> List[str]:
        return list(self.selectors)

    def _links(self, scope: Tag, base_url: str) -> List[str]:
        found: List[str] = []
        for rule in self.link_rules:
            found.extend(select_links(scope, rule.selector, rule.attr or "href", base_url))
        if self.link_filter is not None:
            found = [u for u in found if self.link_filter.allows(u)]
        return unique(found)

    def _record(self, scope: Tag, result: FetchResult, links) -> ExtractedRecord:
        base = result.final_url
        fields = {}
        for name, rule in self.selectors.items():
            value = apply_rule(scope, rule, base)
            if value is None and rule.required:
                raise ExtractionError(
                    result.url, f"required field '{name}' matched nothing", field=name
                )
            fields[name] = value
        return ExtractedRecord(source_url=base, fields=fields, discovered_links=tuple(links))

    def extract(self, result: FetchResult) -> Extraction:
        if not is_parseable_html(result.final_url, result.content_type):
            raise ExtractionError(
                result.url, f"not an HTML page (Content-Type: {result.content_type or 'unknown'})"
            )
        soup = BeautifulSoup(result.body, "html.parser", from_encoding=result.charset)
        page_links = self._links(soup, result.final_url)

        records: List[ExtractedRecord] = []
        if self.selectors:
            if self.record_selector:
                for scope in soup.select(self.record_selector):
                    records.append(
                        self._record(scope, result, self._links(scope, result.final_url))
                    )
            else:
                records.append(self._record(soup, result, page_links))

        return Extraction(
            source_url=result.url, records=tuple(records), links=tuple(page_links)
        )
