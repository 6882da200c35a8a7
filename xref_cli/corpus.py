"""Read-only access to the BSL module corpus of a project (``<root>/src``).

The corpus answers one question for the reference engine: where in the code
is a symbol mentioned? Each symbol variant has its own textual identities,
matched case-insensitively against the comment- and string-masked source.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Pattern, Set

from .bsl_parser import BslModule, BslModuleParser
from .config import SUPPORTED_EXTENSIONS
from .errors import CorpusUnavailable, ModuleNotFound
from .metadata_types import lookup_type, type_for_kind
from .models import CorpusOccurrence, ModuleRole
from .symbols import MdObject, MethodSymbol, ProducedType, Symbol

logger = logging.getLogger(__name__)

SOURCE_DIR = "src"

_ID_START = r"(?<![\w.])"
_ID_END = r"(?!\w)"
_DOT = r"\s*\.\s*"


@dataclass(frozen=True)
class Identity:
    """One textual form of a symbol; ``module`` restricts it to a single file."""

    pattern: Pattern[str]
    module: Optional[Path] = None


def identities_for(symbol: Symbol) -> List[Identity]:
    """Textual identities under which *symbol* appears in BSL code."""
    if isinstance(symbol, MethodSymbol):
        return _method_identities(symbol)
    if isinstance(symbol, ProducedType):
        parts = [re.escape(part) for part in symbol.name.split(".") if part]
        if not parts:
            return []
        return [Identity(_compile(_ID_START + _DOT.join(parts) + _ID_END))]
    if isinstance(symbol, MdObject):
        name = re.escape(symbol.name)
        if symbol.kind == "CommonModule":
            return [Identity(_compile(_ID_START + name + r"\s*\."))]
        mt = type_for_kind(symbol.kind)
        if mt is None:
            return []
        return [Identity(_compile(_ID_START + re.escape(mt.plural) + _DOT + name + _ID_END))]
    return []


def _method_identities(method: MethodSymbol) -> List[Identity]:
    name = re.escape(method.name)
    call = r"\s*\("
    found: List[Identity] = []
    info = method.module_info
    if info is not None:
        owner = re.escape(info.owner_name)
        if info.owner_type == "CommonModule" and info.module_role is ModuleRole.MODULE:
            found.append(Identity(_compile(_ID_START + owner + _DOT + name + call)))
        elif info.module_role is ModuleRole.MANAGER_MODULE:
            mt = lookup_type(info.owner_type)
            if mt is not None:
                plural = re.escape(mt.plural)
                found.append(Identity(_compile(_ID_START + plural + _DOT + owner + _DOT + name + call)))
    found.append(Identity(_compile(_ID_START + name + call), module=Path(method.module_path)))
    return found


def _compile(expr: str) -> Pattern[str]:
    return re.compile(expr, re.IGNORECASE)


# ===================================================================
# Occurrence scan
# ===================================================================

class OccurrenceScan:
    """Lazy, restartable stream of :class:`CorpusOccurrence`.

    Every ``iter()`` starts a fresh scan over the modules in sorted path
    order; nothing is read before the first item is requested.
    """

    def __init__(self, corpus: "CorpusIndex", identities: List[Identity]) -> None:
        self.corpus = corpus
        self.identities = identities

    def __iter__(self) -> Iterator[CorpusOccurrence]:
        if not self.identities:
            return
        global_ids = [ident for ident in self.identities if ident.module is None]
        for path in self.corpus.module_files():
            local_ids = [
                ident for ident in self.identities
                if ident.module is not None and self.corpus.same_module(ident.module, path)
            ]
            if not global_ids and not local_ids:
                continue
            try:
                module = self.corpus.parse_file(path)
            except ModuleNotFound as exc:
                logger.warning("Skipping unreadable module %s: %s", path, exc)
                continue
            yield from self._scan_module(module, path, global_ids + local_ids)

    def _scan_module(
        self,
        module: BslModule,
        path: Path,
        identities: List[Identity],
    ) -> Iterator[CorpusOccurrence]:
        offsets: Set[int] = set()
        for ident in identities:
            for match in ident.pattern.finditer(module.bare_text):
                offset = match.start()
                if not module.is_declaration(offset):
                    offsets.add(offset)
        module_path = path.as_posix()
        for offset in sorted(offsets):
            fragment = module.fragment_for(offset)
            yield CorpusOccurrence(module_path, fragment if fragment is not None else offset)


# ===================================================================
# Corpus index
# ===================================================================

class CorpusIndex:
    """BSL modules below ``<project_root>/src``.

    Raises:
        CorpusUnavailable: the project has no ``src`` directory.
    """

    def __init__(self, project_root: Path) -> None:
        self.project_root = Path(project_root).expanduser().resolve()
        self.src_root = self.project_root / SOURCE_DIR
        if not self.src_root.is_dir():
            raise CorpusUnavailable(f"No BSL sources under {self.src_root}")
        self.parser = BslModuleParser()

    def module_files(self) -> List[Path]:
        return sorted(
            path for path in self.src_root.rglob("*")
            if path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS
        )

    def relative_path(self, path: Path) -> str:
        return Path(path).relative_to(self.src_root).as_posix()

    def same_module(self, left: Path, right: Path) -> bool:
        return self.absolute_path(left) == self.absolute_path(right)

    def absolute_path(self, module_path: Path) -> Path:
        path = Path(module_path)
        if not path.is_absolute():
            path = self.src_root / path
        return path.resolve()

    def find_occurrences(self, targets: Iterable[Symbol]) -> OccurrenceScan:
        identities: List[Identity] = []
        for target in targets:
            identities.extend(identities_for(target))
        return OccurrenceScan(self, identities)

    def load_module(self, module_path: str) -> BslModule:
        """Parse the module at *module_path* (relative to ``src`` or absolute).

        Raises:
            ModuleNotFound: no such module inside the corpus.
        """
        path = self.absolute_path(Path(module_path))
        try:
            path.relative_to(self.src_root)
        except ValueError:
            raise ModuleNotFound(module_path) from None
        if not path.is_file():
            raise ModuleNotFound(module_path)
        return self.parse_file(path, display_path=module_path)

    def parse_file(self, path: Path, display_path: Optional[str] = None) -> BslModule:
        try:
            text = path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Cannot read %s: %s", path, exc)
            raise ModuleNotFound(display_path or str(path)) from exc
        return self.parser.parse(text, path.as_posix())
