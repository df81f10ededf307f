from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

from spider.core.models import FieldValue


class RecordEncoder(ABC):
    """
    Contract every output format follows.

    The sink only knows how to buffer rows and write text; an encoder turns
    a batch of rows into that text, so a new format never touches the sink.
    """

    suffix: str = ""

    def header(self, columns: Sequence[str]) -> str:
        """Text written once when the output is opened. Empty by default."""
        return ""

    @abstractmethod
    def encode(self, rows: List[Dict[str, FieldValue]], columns: Sequence[str]) -> str:
        """
        Encode ``rows`` (already restricted to ``columns``, in that order).
        An empty batch encodes to an empty string.
        """
        raise NotImplementedError()
