from __future__ import annotations

from typing import Dict, List, Sequence, Type

import pandas as pd

from spider.core.interfaces import RecordEncoder
from spider.core.models import FieldValue


def _frame(rows: List[Dict[str, FieldValue]], columns: Sequence[str]) -> pd.DataFrame:
    # object dtype keeps ints as ints and None as None instead of NaN floats
    return pd.DataFrame(rows, columns=list(columns), dtype=object)


class CsvEncoder(RecordEncoder):
    """UTF-8 CSV with a single header row in column declaration order."""

    suffix = ".csv"

    def header(self, columns: Sequence[str]) -> str:
        return _frame([], columns).to_csv(index=False, lineterminator="\n")

    def encode(self, rows: List[Dict[str, FieldValue]], columns: Sequence[str]) -> str:
        if not rows:
            return ""
        return _frame(rows, columns).to_csv(index=False, header=False, lineterminator="\n")


class JsonLinesEncoder(RecordEncoder):
    """One JSON object per line, keys = field names."""

    suffix = ".jsonl"

    def encode(self, rows: List[Dict[str, FieldValue]], columns: Sequence[str]) -> str:
        if not rows:
            return ""
        text = _frame(rows, columns).to_json(orient="records", lines=True, force_ascii=False)
        return text if text.endswith("\n") else text + "\n"


_ENCODERS: Dict[str, Type[RecordEncoder]] = {
    "csv": CsvEncoder,
    "jsonl": JsonLinesEncoder,
}


def get_encoder(fmt: str) -> RecordEncoder:
    encoder_class = _ENCODERS.get(fmt)
    if not encoder_class:
        raise ValueError(f"Output format '{fmt}' is not supported.")
    return encoder_class()
