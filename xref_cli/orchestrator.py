"""Query boundary: clamps limits, runs the engine, turns errors into payloads."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .call_graph import CallGraphFinder
from .collector import ReferenceCollector
from .config import QuerySettings
from .corpus import CorpusIndex
from .errors import CorpusUnavailable, StoreUnavailable, XrefError
from .models import CallGraphReport, ReferenceReport
from .report import ReferenceReportBuilder
from .storage import SymbolStore

logger = logging.getLogger(__name__)


@dataclass
class QueryError:
    """Structured failure returned instead of a report."""

    kind: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: XrefError) -> "QueryError":
        payload = exc.to_dict()
        kind = payload.pop("kind")
        message = payload.pop("message")
        return cls(kind=kind, message=message, details=payload)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": {"kind": self.kind, "message": self.message, **self.details}}

    def render_markdown(self) -> str:
        lines = [f"Error: {self.message}"]
        available: List[str] = self.details.get("availableMethods") or []
        if available:
            lines.extend(["", "**Available methods:**"])
            lines.extend(f"- {name}" for name in available)
        return "\n".join(lines) + "\n"


def clamp(limit: Optional[int], default: int, maximum: int) -> int:
    if limit is None:
        limit = default
    return max(1, min(int(limit), maximum))


class QueryOrchestrator:
    """Runs reference and caller queries against one project.

    Store and corpus are injected; either may be ``None`` when it could not
    be opened, in which case the queries that need it report an error.
    """

    def __init__(
        self,
        store: Optional[SymbolStore],
        corpus: Optional[CorpusIndex],
        settings: Optional[QuerySettings] = None,
        corpus_problem: Optional[str] = None,
    ) -> None:
        self.store = store
        self.corpus = corpus
        self.settings = settings or QuerySettings()
        self.corpus_problem = corpus_problem

    @classmethod
    def for_project(
        cls,
        project_dir: Path,
        source_path: Optional[Path],
        settings: Optional[QuerySettings] = None,
    ) -> "QueryOrchestrator":
        settings = settings or QuerySettings()
        try:
            store: Optional[SymbolStore] = SymbolStore(project_dir, settings=settings)
        except StoreUnavailable as exc:
            logger.warning("%s", exc)
            store = None

        corpus: Optional[CorpusIndex] = None
        problem: Optional[str] = None
        if source_path is None:
            problem = "No BSL source directory registered for this project"
        else:
            try:
                corpus = CorpusIndex(source_path)
            except CorpusUnavailable as exc:
                problem = str(exc)
        return cls(store, corpus, settings, corpus_problem=problem)

    def close(self) -> None:
        if self.store is not None:
            self.store.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_references(self, target_fqn: str, limit: Optional[int] = None) -> Union[ReferenceReport, QueryError]:
        limit = clamp(limit, self.settings.default_limit, self.settings.max_reference_limit)
        try:
            if self.store is None:
                raise StoreUnavailable("Symbol graph is not loaded")
            target = self.store.resolve(target_fqn)
            collector = ReferenceCollector(self.store, self.corpus, self.settings, target, limit)
            references = collector.collect()
        except XrefError as exc:
            logger.info("Reference query for %s failed: %s", target_fqn, exc)
            return QueryError.from_exception(exc)
        except Exception as exc:
            logger.exception("Reference query for %s crashed", target_fqn)
            return QueryError("InternalError", str(exc))

        warnings = []
        if self.corpus is None:
            warnings.append(self.corpus_problem or "BSL corpus unavailable; code references were not searched")
        return ReferenceReportBuilder(limit).build(target.fqn, references, warnings)

    def find_callers(
        self,
        module_path: str,
        method_name: str,
        limit: Optional[int] = None,
    ) -> Union[CallGraphReport, QueryError]:
        limit = clamp(limit, self.settings.default_limit, self.settings.max_caller_limit)
        try:
            if self.corpus is None:
                raise CorpusUnavailable(self.corpus_problem or "BSL corpus unavailable")
            return CallGraphFinder(self.corpus, self.settings).find_callers(module_path, method_name, limit)
        except XrefError as exc:
            logger.info("Caller query for %s in %s failed: %s", method_name, module_path, exc)
            return QueryError.from_exception(exc)
        except Exception as exc:
            logger.exception("Caller query for %s in %s crashed", method_name, module_path)
            return QueryError("InternalError", str(exc))
