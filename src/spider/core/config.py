from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from spider.core.errors import ConfigError

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m)?\s*$")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, None: 1.0}


def parse_duration(value) -> float:
    """Accept seconds as a number or a string such as ``"250ms"``, ``"2s"``, ``"1m"``."""
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        m = _DURATION_RE.match(str(value))
        if not m:
            raise ValueError(f"invalid duration: {value!r}")
        seconds = float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
    if seconds < 0:
        raise ValueError("duration must not be negative")
    return seconds


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )


class RetryPolicy(_Model):
    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = 0.5
    max_delay: float = 30.0

    @field_validator("base_delay", "max_delay", mode="before")
    def _durations(cls, v):
        return parse_duration(v)

    @model_validator(mode="after")
    def _cap_not_below_base(self):
        if self.max_delay < self.base_delay:
            raise ValueError("maxDelay must be >= baseDelay")
        return self


class SelectionRule(_Model):
    """How one field (or one family of links) is read from a page.

    ``kind`` selects the extraction: the node text, one attribute, or the
    inner HTML. ``pattern`` and ``transform`` post-process the raw value.
    """

    selector: Optional[str] = None
    kind: Literal["text", "attr", "html"] = "text"
    attr: Optional[str] = None
    pattern: Optional[str] = None
    transform: Optional[
        Literal["strip", "lower", "upper", "int", "float", "number", "absolute_url"]
    ] = None
    required: bool = False

    @field_validator("pattern")
    def _pattern_compiles(cls, v):
        if v is not None:
            re.compile(v)
        return v

    @model_validator(mode="after")
    def _attr_kind_needs_attr(self):
        if self.kind == "attr" and not self.attr:
            raise ValueError("rule of kind 'attr' needs an 'attr' name")
        return self


class LinkRule(SelectionRule):
    kind: Literal["text", "attr", "html"] = "attr"
    attr: Optional[str] = "href"


class OutputConfig(_Model):
    path: str = "output.csv"
    format: Literal["csv", "jsonl"] = "csv"
    buffer_size: int = Field(default=100, ge=1)


class CrawlConfig(_Model):
    """Everything a crawl run needs.

    Keys are accepted in camelCase (``maxDepth``) or snake_case (``max_depth``).
    """

    seeds: List[str] = Field(min_length=1)
    max_depth: int = Field(default=2, ge=0)
    selectors: Dict[str, SelectionRule] = Field(default_factory=dict)
    link_selectors: List[LinkRule] = Field(default_factory=list)
    record_selector: Optional[str] = None
    natural_key: List[str] = Field(default_factory=list)
    allow: List[str] = Field(default_factory=list)

    concurrency: int = Field(default=4, ge=1)
    per_host_rate_limit: float = 0.0
    max_rate_limit_wait: float = 60.0
    timeout: float = 15.0
    max_redirects: int = Field(default=5, ge=0)
    order: Literal["bfs", "dfs"] = "bfs"
    user_agent: Optional[str] = None

    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    output: OutputConfig = Field(default_factory=OutputConfig)
    failure_log: Optional[str] = None
    stats_fields: List[str] = Field(default_factory=list)

    @field_validator("per_host_rate_limit", "max_rate_limit_wait", "timeout", mode="before")
    def _durations(cls, v):
        return parse_duration(v)

    @field_validator("seeds")
    def seeds_must_be_http(cls, v):
        for url in v:
            p = urlparse(url)
            if p.scheme not in ("http", "https") or not p.netloc:
                raise ValueError(f"seed is not an absolute http(s) URL: {url}")
        return v

    @field_validator("allow")
    def allow_patterns_compile(cls, v):
        for pattern in v:
            re.compile(pattern)
        return v

    @model_validator(mode="after")
    def keys_reference_fields(self):
        unknown = [f for f in self.natural_key + self.stats_fields if f not in self.selectors]
        if unknown:
            raise ValueError(f"unknown field(s) referenced: {', '.join(unknown)}")
        return self

    @property
    def field_names(self) -> List[str]:
        """Output columns, in selector declaration order."""
        return list(self.selectors)


def load_config(path: str | Path) -> CrawlConfig:
    """Read and validate a JSON crawl configuration file."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read config {path}: {exc}") from exc
    try:
        return CrawlConfig.model_validate_json(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid config {path}:\n{exc}") from exc
