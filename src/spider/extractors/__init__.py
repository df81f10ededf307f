"""Record extractors.

`get_extractor` maps an extractor name to its class so the manager does not
need to know which extractors exist.
"""

from typing import Type

from .rules import apply_rule
from .selector_extractor import SelectorExtractor

_REGISTRY: dict[str, Type[SelectorExtractor]] = {
    "selector": SelectorExtractor,
}


def get_extractor(name: str = "selector") -> Type[SelectorExtractor]:
    extractor_class = _REGISTRY.get(name)
    if not extractor_class:
        raise ValueError(f"Extractor '{name}' is not registered.")
    return extractor_class


__all__ = ["SelectorExtractor", "apply_rule", "get_extractor"]
