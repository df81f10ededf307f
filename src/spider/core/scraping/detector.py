"""Detect resource type from URL and response headers.

The extractor only parses HTML; anything recognised as another type is
rejected before parsing.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional
from urllib.parse import urlparse


class ResourceType(str, Enum):
    HTML = "html"
    PDF = "pdf"
    CSV = "csv"
    XLSX = "xlsx"
    JSON = "json"
    ZIP = "zip"
    IMAGE = "image"
    UNKNOWN = "unknown"


_EXTENSIONS = {
    ".html": ResourceType.HTML,
    ".htm": ResourceType.HTML,
    ".pdf": ResourceType.PDF,
    ".csv": ResourceType.CSV,
    ".xls": ResourceType.XLSX,
    ".xlsx": ResourceType.XLSX,
    ".json": ResourceType.JSON,
    ".zip": ResourceType.ZIP,
    ".png": ResourceType.IMAGE,
    ".jpg": ResourceType.IMAGE,
    ".jpeg": ResourceType.IMAGE,
    ".gif": ResourceType.IMAGE,
}


def _type_from_url(url: str) -> ResourceType:
    path = urlparse(url).path.lower()
    for ext, kind in _EXTENSIONS.items():
        if path.endswith(ext):
            return kind
    return ResourceType.UNKNOWN


def detect_resource_type(url: str, content_type: Optional[str] = None) -> ResourceType:
    """Detect resource type by Content-Type header, falling back to the URL extension."""
    if content_type:
        c = content_type.lower()
        if "text/html" in c or "application/xhtml" in c:
            return ResourceType.HTML
        if "application/pdf" in c:
            return ResourceType.PDF
        if "text/csv" in c or "application/csv" in c:
            return ResourceType.CSV
        if "application/json" in c:
            return ResourceType.JSON
        if "zip" in c:
            return ResourceType.ZIP
        if "spreadsheet" in c or "excel" in c:
            return ResourceType.XLSX
        if c.startswith("image/"):
            return ResourceType.IMAGE

    return _type_from_url(url)


def is_parseable_html(url: str, content_type: Optional[str] = None) -> bool:
    return detect_resource_type(url, content_type) in (ResourceType.HTML, ResourceType.UNKNOWN)
