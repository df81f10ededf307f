from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple, Union

FieldValue = Union[str, int, float, None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskState(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    ENQUEUING = "enqueuing"
    EMITTING = "emitting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class CrawlTask:
    """A URL admitted to the frontier. Created once, processed once."""

    url: str
    depth: int
    key: str
    parent_url: Optional[str] = None
    discovered_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class FetchResult:
    url: str
    final_url: str
    status_code: int
    body: bytes
    content_type: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    fetched_at: datetime = field(default_factory=_utcnow)
    attempts: int = 1

    @property
    def charset(self) -> Optional[str]:
        for part in self.content_type.split(";")[1:]:
            name, _, value = part.strip().partition("=")
            if name.lower() == "charset" and value:
                return value.strip("\"'")
        return None


@dataclass(frozen=True)
class ExtractedRecord:
    source_url: str
    fields: Dict[str, FieldValue]
    discovered_links: Tuple[str, ...] = ()

    def row(self, columns) -> Dict[str, FieldValue]:
        return {c: self.fields.get(c) for c in columns}


@dataclass(frozen=True)
class Extraction:
    """Everything read from one page: its records and its outbound links."""

    source_url: str
    records: Tuple[ExtractedRecord, ...] = ()
    links: Tuple[str, ...] = ()
