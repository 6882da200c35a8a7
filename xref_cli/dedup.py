"""Per-query duplicate and self-reference filter for collected references."""

from __future__ import annotations

from typing import Iterable, List, Optional, Set

from .models import Reference


def dedup_key(ref: Reference) -> str:
    discriminator = ref.line if ref.is_textual else ref.feature
    return f"{ref.category}:{ref.source_path}:{discriminator}"


class Deduplicator:
    """Drops repeated records and records that point back at the target itself.

    One instance serves one query; reusing it across queries would hide
    records the second query has never seen.
    """

    def __init__(self, target_fqn: str) -> None:
        self.target_fqn = target_fqn
        self._seen: Set[str] = set()

    def is_self_reference(self, ref: Reference) -> bool:
        path = ref.source_path or ""
        if path.startswith("/"):
            path = path[1:]
        path = path.replace(" / ", ".")
        return path == self.target_fqn or path.startswith(self.target_fqn + ".")

    def accept(self, ref: Reference, pending: Optional[Set[str]] = None) -> bool:
        """Record *ref* and tell whether it is new and not a self-reference.

        With *pending*, the key is held there until :meth:`commit`, so a pass
        that fails halfway leaves no trace in the query's state.
        """
        if self.is_self_reference(ref):
            return False
        key = dedup_key(ref)
        if key in self._seen or (pending is not None and key in pending):
            return False
        (self._seen if pending is None else pending).add(key)
        return True

    def commit(self, pending: Set[str]) -> None:
        self._seen.update(pending)

    def apply(self, refs: Iterable[Reference]) -> List[Reference]:
        """Filter *refs* with a fresh key set; applying it twice changes nothing."""
        seen: Set[str] = set()
        kept: List[Reference] = []
        for ref in refs:
            if self.is_self_reference(ref):
                continue
            key = dedup_key(ref)
            if key in seen:
                continue
            seen.add(key)
            kept.append(ref)
        return kept
