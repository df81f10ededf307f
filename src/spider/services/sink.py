"""Buffered, ordered record output.

The sink is the only place records are serialized. Rows are appended to the
buffer under a lock, so the order in the file is the order of `emit` calls.
When the buffer reaches ``buffer_size`` the emitting worker writes the batch
itself before returning, which bounds unflushed records to ``buffer_size``.
After a failed write the sink refuses further records and `close` drops
whatever was still buffered.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Sequence

from spider.core.errors import SinkWriteError
from spider.core.interfaces import RecordEncoder
from spider.core.models import ExtractedRecord, FieldValue

logger = logging.getLogger(__name__)


class RecordSink:
    def __init__(
        self,
        path: str | Path,
        columns: Sequence[str],
        encoder: RecordEncoder,
        buffer_size: int = 100,
    ) -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")
        self.path = Path(path)
        self.columns = list(columns)
        self.encoder = encoder
        self.buffer_size = buffer_size
        self.written = 0
        self.max_buffered = 0
        self._buffer: List[Dict[str, FieldValue]] = []
        self._lock = threading.Lock()
        self._fh = None
        self._closed = False
        self._failed = False

    def open(self) -> "RecordSink":
        with self._lock:
            if self._fh is not None:
                return self
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._fh = open(self.path, "w", encoding="utf-8", newline="")
                self._write(self.encoder.header(self.columns))
            except OSError as exc:
                raise SinkWriteError(f"cannot open output {self.path}: {exc}") from exc
        logger.info("Writing records to %s", self.path)
        return self

    def __enter__(self) -> "RecordSink":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def buffered(self) -> int:
        with self._lock:
            return len(self._buffer)

    def emit(self, record: ExtractedRecord) -> None:
        with self._lock:
            if self._closed or self._fh is None:
                raise SinkWriteError(f"sink for {self.path} is not open")
            if self._failed:
                raise SinkWriteError(f"an earlier write to {self.path} failed")
            self._buffer.append(record.row(self.columns))
            self.max_buffered = max(self.max_buffered, len(self._buffer))
            if len(self._buffer) >= self.buffer_size:
                self._flush_locked()

    def flush(self) -> None:
        with self._lock:
            if self._failed:
                raise SinkWriteError(f"an earlier write to {self.path} failed")
            if self._fh is not None:
                self._flush_locked()

    def close(self) -> None:
        """Write everything still buffered and close the file. Safe to call twice."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._fh is None:
                return
            if self._failed and self._buffer:
                logger.warning(
                    "Discarding %d unwritten record(s) for %s", len(self._buffer), self.path
                )
                self._buffer.clear()
            try:
                self._flush_locked()
            finally:
                fh, self._fh = self._fh, None
                try:
                    fh.close()
                except OSError as exc:
                    raise SinkWriteError(f"cannot close output {self.path}: {exc}") from exc
        logger.info("Closed %s (%d records written)", self.path, self.written)

    def _write(self, text: str) -> None:
        if not text:
            return
        self._fh.write(text)
        self._fh.flush()
        os.fsync(self._fh.fileno())

    def _flush_locked(self) -> None:
        if not self._buffer:
            return
        batch = len(self._buffer)
        try:
            self._write(self.encoder.encode(self._buffer, self.columns))
        except (OSError, ValueError) as exc:
            # the batch may be partly written; never retry it
            self._failed = True
            raise SinkWriteError(f"failed writing {batch} record(s) to {self.path}: {exc}") from exc
        self.written += batch
        self._buffer.clear()
        logger.debug("Flushed %d record(s) to %s", batch, self.path)


def open_sink(
    path: str | Path, columns: Sequence[str], encoder: RecordEncoder, buffer_size: int = 100
) -> RecordSink:
    return RecordSink(path, columns, encoder, buffer_size).open()
