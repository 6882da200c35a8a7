"""Collect incoming references to a resolved symbol.

Five passes, in order:

1. direct back-edges of the target
2. back-edges of every type the target produces (``CatalogRef.Items``)
3. back-edges of every predefined instance
4. back-edges of every field (attributes, dimensions, resources, ...)
5. textual occurrences in the BSL corpus

Passes 1-4 share one read transaction on the symbol store. Each pass keeps at
most ``overcollect_factor * limit`` records; the report trims per category
later, so the extra headroom keeps small categories from being starved by a
large one.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterator, List, Optional, Set

from .config import QuerySettings
from .corpus import CorpusIndex
from .dedup import Deduplicator
from .errors import TransactionFailure
from .metadata_types import category_for_kind
from .models import Feature, Reference
from .paths import PathFormatter
from .positions import PositionResolver
from .storage import SymbolStore
from .symbols import HasFields, HasPredefinedInstances, ProducesTypes, Symbol

logger = logging.getLogger(__name__)

PREDEFINED_CATEGORY = "Predefined items"
FIELD_CATEGORY = "Field references"
UNKNOWN_MODULE = "Unknown module"


def extract_module_path(path: Optional[str], marker: str = "/src/") -> str:
    """Module path relative to the corpus root.

    Falls back to the last three path segments when *marker* is absent.
    """
    if path is None:
        return UNKNOWN_MODULE
    index = path.rfind(marker)
    if index >= 0:
        return path[index + len(marker):]
    parts = path.split("/")
    if len(parts) >= 3:
        return "/".join(parts[-3:])
    return path


class ReferenceCollector:
    """Gather the references to one target for one query."""

    def __init__(
        self,
        store: SymbolStore,
        corpus: Optional[CorpusIndex],
        settings: QuerySettings,
        target: Symbol,
        limit: int,
    ) -> None:
        self.store = store
        self.corpus = corpus
        self.settings = settings
        self.target = target
        self.ceiling = max(1, settings.overcollect_factor * limit)
        self.dedup = Deduplicator(target.fqn)
        self.paths = PathFormatter()
        self.references: List[Reference] = []

    def collect(self) -> List[Reference]:
        """Run all passes and return the accepted references in discovery order.

        Raises:
            TransactionFailure: the store transaction could not be held.
        """
        with self.store.read_transaction():
            self._run_pass("direct", self._direct_references)
            self._run_pass("produced types", self._produced_type_references)
            self._run_pass("predefined items", self._predefined_references)
            self._run_pass("fields", self._field_references)
        if self.corpus is not None:
            self._run_pass("corpus", self._corpus_references)
        return self.references

    def _run_pass(self, name: str, produce: Callable[[], Iterator[Reference]]) -> None:
        accepted: List[Reference] = []
        keys: Set[str] = set()
        try:
            for ref in produce():
                if not self.dedup.accept(ref, keys):
                    continue
                accepted.append(ref)
                if len(accepted) >= self.ceiling:
                    logger.debug("Pass '%s' stopped at %s records", name, self.ceiling)
                    break
        except TransactionFailure:
            raise
        except Exception as exc:
            logger.warning("Reference pass '%s' for %s failed: %s", name, self.target.fqn, exc)
            return
        self.dedup.commit(keys)
        self.references.extend(accepted)

    # ------------------------------------------------------------------
    # Graph passes
    # ------------------------------------------------------------------

    def _skipped(self, source: Symbol, feature: Feature) -> bool:
        return self.store.is_transient_feature(feature) or self.store.belongs_to_internal_namespace(source)

    def _direct_references(self) -> Iterator[Reference]:
        for source, feature in self.store.back_references(self.target):
            if self._skipped(source, feature):
                continue
            yield Reference.graph(category_for_kind(source.kind), self.paths.path_for(source), feature.name)

    def _produced_type_references(self) -> Iterator[Reference]:
        if not isinstance(self.target, ProducesTypes):
            return
        for produced in self.target.produced_types:
            for source, feature in self.store.back_references(produced):
                if self._skipped(source, feature):
                    continue
                yield Reference.graph(
                    category_for_kind(source.kind),
                    self.paths.path_for(source),
                    f"Type: {feature.name}",
                )

    def _predefined_references(self) -> Iterator[Reference]:
        if not isinstance(self.target, HasPredefinedInstances):
            return
        for item in self.target.predefined_instances:
            for source, feature in self.store.back_references(item):
                if self._skipped(source, feature):
                    continue
                yield Reference.graph(PREDEFINED_CATEGORY, self.paths.path_for(source), item.name)

    def _field_references(self) -> Iterator[Reference]:
        if not isinstance(self.target, HasFields):
            return
        for field in self.target.fields:
            for source, feature in self.store.back_references(field):
                if source == self.target or self._skipped(source, feature):
                    continue
                yield Reference.graph(FIELD_CATEGORY, self.paths.path_for(source), field.name)

    # ------------------------------------------------------------------
    # Corpus pass
    # ------------------------------------------------------------------

    def _corpus_references(self) -> Iterator[Reference]:
        targets = [self.target]
        if isinstance(self.target, ProducesTypes):
            targets.extend(self.target.produced_types)
        resolver = PositionResolver(self.corpus)
        category = self.settings.corpus_modules_category
        marker = self.settings.corpus_root_marker
        for occurrence in self.corpus.find_occurrences(targets):
            yield Reference.textual(
                category,
                extract_module_path(occurrence.module_path, marker),
                resolver.resolve(occurrence),
            )
