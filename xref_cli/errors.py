"""
Query errors

Every failure a query can report to its caller. The orchestrator turns these
into structured payloads; nothing below it is allowed to crash a query.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class XrefError(Exception):
    """Base exception for the reference engine."""

    kind = "XrefError"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": str(self)}


class SymbolNotFound(XrefError):
    """FQN is malformed, has an unknown type prefix, or names nothing."""

    kind = "SymbolNotFound"

    def __init__(self, fqn: str, reason: str = ""):
        self.fqn = fqn
        self.reason = reason
        msg = f"Object not found: {fqn}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["fqn"] = self.fqn
        return payload


class StoreUnavailable(XrefError):
    """The symbol graph snapshot cannot be opened."""

    kind = "StoreUnavailable"


class CorpusUnavailable(XrefError):
    """The BSL module corpus cannot be read."""

    kind = "CorpusUnavailable"


class TransactionFailure(XrefError):
    """The read-only transaction could not be started or completed."""

    kind = "TransactionFailure"


class ModuleNotFound(XrefError):
    """No BSL module at the requested path."""

    kind = "ModuleNotFound"

    def __init__(self, module_path: str):
        self.module_path = module_path
        super().__init__(f"Module not found: {module_path}")

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["modulePath"] = self.module_path
        return payload


class MethodNotFound(XrefError):
    """The module does not declare the requested method."""

    kind = "MethodNotFound"

    def __init__(self, method_name: str, module_path: str, available: Optional[List[str]] = None):
        self.method_name = method_name
        self.module_path = module_path
        self.available = list(available or [])
        super().__init__(f"Method '{method_name}' not found in {module_path}")

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["modulePath"] = self.module_path
        payload["availableMethods"] = self.available
        return payload
