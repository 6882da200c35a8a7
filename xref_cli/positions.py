"""Map corpus occurrences to 1-based source lines."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

from .bsl_parser import BslModule, method_ordinal
from .corpus import CorpusIndex
from .models import CorpusOccurrence

logger = logging.getLogger(__name__)


class PositionResolver:
    """Resolve an occurrence to its line; 0 means unknown.

    Parsed modules are cached for the lifetime of the resolver, which is a
    single query.
    """

    def __init__(self, corpus: CorpusIndex) -> None:
        self.corpus = corpus
        self._modules: Dict[str, BslModule] = {}

    def resolve(self, occurrence: CorpusOccurrence) -> int:
        try:
            module = self._module(occurrence.module_path)
            address = occurrence.fragment_or_offset
            if isinstance(address, int):
                return module.line_of(address)
            return module.line_of(module.resolve_fragment(address))
        except Exception as exc:
            logger.warning(
                "Cannot resolve line for %s#%s: %s",
                occurrence.module_path, occurrence.fragment_or_offset, exc,
            )
            return self._fallback(occurrence)

    def _fallback(self, occurrence: CorpusOccurrence) -> int:
        address = occurrence.fragment_or_offset
        if isinstance(address, str):
            ordinal = method_ordinal(address)
            if ordinal is not None:
                logger.debug("Occurrence lies in method #%s of %s", ordinal, occurrence.module_path)
        return 0

    def _module(self, module_path: str) -> BslModule:
        module = self._modules.get(module_path)
        if module is None:
            module = self.corpus.parse_file(self.corpus.absolute_path(Path(module_path)))
            self._modules[module_path] = module
        return module
