"""Find the callers of a procedure or function declared in a BSL module."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

from .collector import extract_module_path
from .config import QuerySettings
from .corpus import CorpusIndex
from .errors import MethodNotFound
from .metadata_types import parse_module_path
from .models import CallerGroup, CallGraphReport, CallSite
from .positions import PositionResolver
from .symbols import MethodSymbol

logger = logging.getLogger(__name__)


class CallGraphFinder:
    """Call hierarchy (callers only) of one method."""

    def __init__(self, corpus: CorpusIndex, settings: QuerySettings) -> None:
        self.corpus = corpus
        self.settings = settings

    def find_callers(self, module_path: str, method_name: str, limit: int) -> CallGraphReport:
        """
        Raises:
            ModuleNotFound: no module at *module_path*.
            MethodNotFound: the module does not declare *method_name*.
        """
        module = self.corpus.load_module(module_path)
        method = module.method_named(method_name)
        if method is None:
            raise MethodNotFound(method_name, module_path, [m.name for m in module.methods])

        target = MethodSymbol(
            method.name,
            module.path,
            module_info=parse_module_path(self.corpus.relative_path(Path(module.path))),
            signature=method.signature,
        )
        sites = self._call_sites(target, limit)

        by_module: Dict[str, List[int]] = {}
        for site in sites:
            by_module.setdefault(site.module_path, []).append(site.line)
        groups = [CallerGroup(path, sorted(lines)) for path, lines in sorted(by_module.items())]

        logger.debug("Found %s call sites of %s in %s modules", len(sites), method.name, len(groups))
        return CallGraphReport(
            module_path=module_path,
            method_name=method.name,
            method_signature=method.signature,
            caller_count=len(sites),
            limit_reached=len(sites) >= limit,
            groups=groups,
        )

    def _call_sites(self, target: MethodSymbol, limit: int) -> List[CallSite]:
        resolver = PositionResolver(self.corpus)
        marker = self.settings.corpus_root_marker
        sites: List[CallSite] = []
        for occurrence in self.corpus.find_occurrences([target]):
            if len(sites) >= limit:
                break
            sites.append(CallSite(
                extract_module_path(occurrence.module_path, marker),
                resolver.resolve(occurrence),
            ))
        return sites
