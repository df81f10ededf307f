"""Evaluate a `SelectionRule` against a parsed HTML scope.

One dispatch table keyed by ``rule.kind`` reads the raw value, then the
optional regex and transform are applied. Anything that does not produce a
value returns ``None``; the caller decides whether that is an error.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Callable, Dict, Optional
from urllib.parse import urljoin

from bs4.element import Tag

from spider.core.config import SelectionRule
from spider.core.models import FieldValue

_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)*")


def _read_text(node: Tag, rule: SelectionRule) -> Optional[str]:
    return node.get_text(" ", strip=True)


def _read_attr(node: Tag, rule: SelectionRule) -> Optional[str]:
    value = node.get(rule.attr)
    if isinstance(value, list):
        # multi-valued attributes such as class
        return " ".join(value)
    return value


def _read_html(node: Tag, rule: SelectionRule) -> Optional[str]:
    return node.decode_contents().strip()


_READERS: Dict[str, Callable[[Tag, SelectionRule], Optional[str]]] = {
    "text": _read_text,
    "attr": _read_attr,
    "html": _read_html,
}


def _to_number(value: str) -> FieldValue:
    m = _NUMBER_RE.search(value)
    if not m:
        raise ValueError(f"no number in {value!r}")
    digits = m.group(0).replace(",", "")
    return float(digits) if "." in digits else int(digits)


_TRANSFORMS: Dict[str, Callable[[str, str], FieldValue]] = {
    "strip": lambda v, base: v.strip(),
    "lower": lambda v, base: v.strip().lower(),
    "upper": lambda v, base: v.strip().upper(),
    "int": lambda v, base: int(v.strip()),
    "float": lambda v, base: float(v.strip()),
    "number": lambda v, base: _to_number(v),
    "absolute_url": lambda v, base: urljoin(base, v.strip()),
}


@lru_cache(maxsize=256)
def _compiled(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def apply_rule(scope: Tag, rule: SelectionRule, base_url: str) -> FieldValue:
    node = scope.select_one(rule.selector) if rule.selector else scope
    if node is None:
        return None

    raw = _READERS[rule.kind](node, rule)
    if raw is None:
        return None
    raw = raw.strip()

    if rule.pattern:
        m = _compiled(rule.pattern).search(raw)
        if not m:
            return None
        raw = m.group(1) if m.groups() else m.group(0)

    if not raw:
        return None
    if rule.transform is None:
        return raw
    try:
        return _TRANSFORMS[rule.transform](raw, base_url)
    except ValueError:
        return None
