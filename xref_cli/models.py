"""Transient records built per query by the collector, resolver and reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


@dataclass(frozen=True)
class Feature:
    name: str
    transient: bool = False


@dataclass
class Reference:
    category: str
    source_path: str
    feature: Optional[str] = None
    line: int = 0
    is_textual: bool = False

    @classmethod
    def graph(cls, category: str, source_path: str, feature: Optional[str]) -> "Reference":
        return cls(category=category, source_path=source_path, feature=feature)

    @classmethod
    def textual(cls, category: str, source_path: str, line: int) -> "Reference":
        return cls(category=category, source_path=source_path, line=line, is_textual=True)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"sourcePath": self.source_path, "isTextual": self.is_textual}
        if self.is_textual:
            payload["line"] = self.line
        elif self.feature:
            payload["feature"] = self.feature
        return payload


@dataclass(frozen=True)
class CorpusOccurrence:
    module_path: str
    fragment_or_offset: Union[str, int]


class ModuleRole(str, Enum):
    MODULE = "Module"
    OBJECT_MODULE = "ObjectModule"
    MANAGER_MODULE = "ManagerModule"
    RECORDSET_MODULE = "RecordSetModule"
    VALUE_MANAGER_MODULE = "ValueManagerModule"
    COMMAND_MODULE = "CommandModule"
    FORM_MODULE = "FormModule"


@dataclass(frozen=True)
class ModulePathInfo:
    owner_fqn: str
    module_role: ModuleRole
    form_name: Optional[str] = None

    @property
    def owner_type(self) -> str:
        return self.owner_fqn.split(".", 1)[0]

    @property
    def owner_name(self) -> str:
        return self.owner_fqn.split(".", 1)[1]


@dataclass(frozen=True)
class CallSite:
    module_path: str
    line: int


@dataclass
class CategoryBucket:
    category: str
    items: List[Reference]
    total: int
    limit: int

    @property
    def truncated(self) -> bool:
        return self.total > len(self.items)

    @property
    def label(self) -> str:
        if self.truncated:
            return f"{self.category} (showing first {self.limit} of {self.total})"
        return self.category

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "items": [ref.to_dict() for ref in self.items]}


@dataclass
class ReferenceReport:
    target_fqn: str
    total_count: int
    categories: List[CategoryBucket] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "totalCount": self.total_count,
            "categories": [bucket.to_dict() for bucket in self.categories],
        }
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        return payload


@dataclass
class CallerGroup:
    module_path: str
    lines: List[int]

    def to_dict(self) -> Dict[str, Any]:
        return {"modulePath": self.module_path, "lines": list(self.lines)}


@dataclass
class CallGraphReport:
    module_path: str
    method_name: str
    method_signature: str
    caller_count: int
    limit_reached: bool
    groups: List[CallerGroup] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "methodSignature": self.method_signature,
            "callerCount": self.caller_count,
            "limitReached": self.limit_reached,
            "groups": [group.to_dict() for group in self.groups],
        }
