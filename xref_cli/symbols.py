"""Graph node variants and the capabilities they expose to the engine.

Each concrete variant declares what it can do by inheriting the matching
capability base class; the engine asks ``isinstance(node, HasFields)``
instead of probing for methods at runtime.

Nodes are materialized lazily by :class:`~xref_cli.storage.SymbolStore` and
keep only a weak reference back to it, so a dropped store never stays alive
through the symbols a report still holds.
"""

from __future__ import annotations

import weakref
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, List, Optional, Tuple

if TYPE_CHECKING:
    from .models import ModulePathInfo
    from .storage import SymbolStore

PRODUCED_TYPES_FEATURE = "producedTypes"
PREDEFINED_FEATURE = "predefined"
FIELD_FEATURES: Tuple[str, ...] = (
    "attributes",
    "dimensions",
    "resources",
    "tabularSections",
    "addressingAttributes",
    "accountingFlags",
    "extDimensionAccountingFlags",
)


# ===================================================================
# Capabilities
# ===================================================================

class Named(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        ...


class Containable(ABC):
    @property
    @abstractmethod
    def container(self) -> Optional["Symbol"]:
        ...

    @property
    @abstractmethod
    def containment_feature(self) -> Optional[str]:
        ...


class ProducesTypes(ABC):
    @property
    @abstractmethod
    def produced_types(self) -> List["Symbol"]:
        ...


class HasPredefinedInstances(ABC):
    @property
    @abstractmethod
    def predefined_instances(self) -> List["Symbol"]:
        ...


class HasFields(ABC):
    @property
    @abstractmethod
    def fields(self) -> List["Symbol"]:
        ...


# ===================================================================
# Variants
# ===================================================================

class Symbol(Named, Containable):
    """A node of the metadata graph."""

    def __init__(
        self,
        symbol_id: Optional[int],
        kind: str,
        name: str,
        fqn: str,
        is_top_level: bool = False,
        namespace: str = "mdclass",
        container_id: Optional[int] = None,
        containment_feature: Optional[str] = None,
    ) -> None:
        self.symbol_id = symbol_id
        self.kind = kind
        self.fqn = fqn
        self.is_top_level = is_top_level
        self.namespace = namespace
        self.container_id = container_id
        self._name = name
        self._containment_feature = containment_feature
        self._store_ref: Optional["weakref.ReferenceType[SymbolStore]"] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def containment_feature(self) -> Optional[str]:
        return self._containment_feature

    @property
    def container(self) -> Optional["Symbol"]:
        store = self._store()
        if store is None or self.container_id is None:
            return None
        return store.get(self.container_id)

    @property
    def key(self) -> Any:
        return self.symbol_id if self.symbol_id is not None else self.fqn

    def bind(self, store: "SymbolStore") -> "Symbol":
        self._store_ref = weakref.ref(store)
        return self

    def _store(self) -> Optional["SymbolStore"]:
        return self._store_ref() if self._store_ref is not None else None

    def _children(self, *features: str) -> List["Symbol"]:
        store = self._store()
        if store is None or self.symbol_id is None:
            return []
        return store.children(self.symbol_id, features)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Symbol):
            return NotImplemented
        return type(self) is type(other) and self.key == other.key

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.key))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.fqn!r}, kind={self.kind!r})"


class MdObject(Symbol, ProducesTypes, HasPredefinedInstances, HasFields):
    """Top-level metadata object: catalog, document, common module, ..."""

    @property
    def produced_types(self) -> List[Symbol]:
        return self._children(PRODUCED_TYPES_FEATURE)

    @property
    def predefined_instances(self) -> List[Symbol]:
        return self._children(PREDEFINED_FEATURE)

    @property
    def fields(self) -> List[Symbol]:
        return self._children(*FIELD_FEATURES)


class MdNode(Symbol):
    """Any other contained node: attribute, form, command, form content."""


class ProducedType(MdNode):
    """A type derived from its owner, named like ``CatalogRef.Items``."""


class PredefinedItem(MdNode):
    """A named singleton instance declared on its owner."""


class MethodSymbol(Symbol):
    """A procedure or function declared in a BSL module.

    Not part of the graph snapshot; the call-graph finder builds it from the
    parsed module.
    """

    def __init__(
        self,
        name: str,
        module_path: str,
        module_info: Optional["ModulePathInfo"] = None,
        signature: str = "",
    ) -> None:
        super().__init__(None, "Method", name, f"{module_path}:{name}")
        self.module_path = module_path
        self.module_info = module_info
        self.signature = signature


def variant_for(is_top_level: bool, containment_feature: Optional[str], has_metadata_type: bool) -> type:
    """Pick the node variant for a stored row."""
    if is_top_level and has_metadata_type:
        return MdObject
    if containment_feature == PRODUCED_TYPES_FEATURE:
        return ProducedType
    if containment_feature == PREDEFINED_FEATURE:
        return PredefinedItem
    return MdNode
