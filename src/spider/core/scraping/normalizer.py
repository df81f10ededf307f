"""URL normalizer utilities.

Turns URLs into the dedup keys used by the frontier, and field values into
natural keys used to drop repeated records.
"""

from __future__ import annotations

from typing import Iterable, Mapping
from urllib.parse import ParseResult, parse_qsl, urlencode, urlparse, urlunparse

DEFAULT_REMOVE_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "fbclid",
}

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(
    url: str, remove_params: Iterable[str] | None = None, strip_fragment: bool = True
) -> str:
    """Return a normalized URL.

    Scheme and host are lower-cased, default ports dropped, an empty path
    becomes ``/``, tracking params are removed and the remaining query pairs
    are sorted so that parameter order does not produce distinct URLs.
    """
    remove = set(DEFAULT_REMOVE_PARAMS if remove_params is None else remove_params)
    p: ParseResult = urlparse(url.strip())
    scheme = p.scheme.lower()
    host = (p.hostname or "").lower()
    netloc = host
    if p.port is not None and p.port != _DEFAULT_PORTS.get(scheme):
        netloc = f"{host}:{p.port}"
    if p.username:
        userinfo = p.username + (f":{p.password}" if p.password else "")
        netloc = f"{userinfo}@{netloc}"
    q = sorted(
        (k, v) for k, v in parse_qsl(p.query, keep_blank_values=True) if k not in remove
    )
    query = urlencode(q, doseq=True)
    fragment = "" if strip_fragment else p.fragment
    cleaned = urlunparse(
        (scheme, netloc, p.path or "/", p.params or "", query or "", fragment or "")
    )
    return cleaned


def dedup_key(url: str) -> str:
    return normalize_url(url)


def natural_key(fields: Mapping[str, object], names: Iterable[str]) -> str | None:
    """Join the named field values into one key; ``None`` if any is missing."""
    parts = []
    for name in names:
        value = fields.get(name)
        if value is None or value == "":
            return None
        parts.append(str(value))
    return "|".join(parts) if parts else None
