"""Readable hierarchical paths for reference sources.

``Catalog.Items.Form.ItemForm.Form`` becomes ``Catalog.Items / Form.ItemForm``:
the owning object stays up front, the nested part follows the separator.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from .symbols import Symbol

logger = logging.getLogger(__name__)

SEPARATOR = " / "


def is_collection_feature(feature: Optional[str]) -> bool:
    """Containment features that hold many children (``attributes``, ``Content``)."""
    if not feature:
        return False
    return feature.endswith("s") or feature == "Content"


def singularize(feature: str) -> str:
    """``attributes`` -> ``Attribute``, ``categories`` -> ``Category``."""
    if not feature:
        return feature
    word = feature[0].upper() + feature[1:]
    if word.endswith("ies"):
        return word[:-3] + "y"
    if word.endswith("ses"):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def format_fqn(path: str) -> str:
    """Split a dotted path into ``Owner.Name / Nested.Part``.

    Paths of four segments or fewer are returned as they are; a trailing
    segment that repeats the one two places before it is dropped.
    """
    if path.startswith("/"):
        path = path[1:]
    parts = path.split(".")
    if len(parts) <= 4:
        return path
    head, rest = parts[:2], parts[2:]
    if parts[-1] == parts[-3]:
        rest = rest[:-1]
    return ".".join(head) + SEPARATOR + ".".join(rest)


class PathFormatter:
    """Build the display path of a reference source from its container chain."""

    def path_for(self, symbol: Symbol) -> str:
        try:
            if symbol.is_top_level:
                return format_fqn(symbol.fqn)
            return format_fqn(".".join(self._chain(symbol)))
        except Exception as exc:
            logger.debug("Cannot build path for %r: %s", symbol, exc)
            return symbol.kind or "Unknown"

    def _chain(self, symbol: Symbol) -> List[str]:
        parts: List[str] = []
        visited: Set[object] = set()
        node: Optional[Symbol] = symbol
        while node is not None and node.key not in visited:
            visited.add(node.key)
            if node.is_top_level:
                parts.append(node.fqn)
                break
            feature = node.containment_feature
            if is_collection_feature(feature):
                parts.append(node.name)
                parts.append(singularize(feature))
            else:
                parts.append(node.name)
            node = node.container
        parts.reverse()
        return parts
