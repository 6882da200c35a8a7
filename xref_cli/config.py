"""Configuration paths and query settings for local xref projects."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple

BASE_DIR = Path(os.environ.get("XREF_HOME", str(Path.home() / ".xref"))).expanduser()
MEMORY_DIR = BASE_DIR / "memory"
STATE_FILE = BASE_DIR / "state.json"
SUPPORTED_EXTENSIONS = {".bsl"}

DEFAULT_LIMIT = 100
MAX_REFERENCE_LIMIT = 500
MAX_CALLER_LIMIT = 1000
OVERCOLLECT_FACTOR = 10
CORPUS_ROOT_MARKER = "/src/"
CORPUS_LABEL = "BSL"
INTERNAL_NAMESPACES: Tuple[str, ...] = ("dbview",)
TRANSACTION_TIMEOUT = 30.0

@dataclass
class QuerySettings:
    """Per-query tunables, injected into the orchestrator."""

    default_limit: int = DEFAULT_LIMIT
    max_reference_limit: int = MAX_REFERENCE_LIMIT
    max_caller_limit: int = MAX_CALLER_LIMIT
    overcollect_factor: int = OVERCOLLECT_FACTOR
    corpus_root_marker: str = CORPUS_ROOT_MARKER
    corpus_label: str = CORPUS_LABEL
    internal_namespaces: Tuple[str, ...] = field(default_factory=lambda: INTERNAL_NAMESPACES)
    transaction_timeout: float = TRANSACTION_TIMEOUT

    @classmethod
    def from_mapping(cls, payload: Dict[str, Any]) -> "QuerySettings":
        settings = cls()
        for key, value in payload.items():
            if not hasattr(settings, key):
                continue
            if key == "internal_namespaces":
                value = tuple(value)
            setattr(settings, key, value)
        return settings

    @property
    def corpus_modules_category(self) -> str:
        return f"{self.corpus_label} modules"


def load_settings() -> QuerySettings:
    """Build settings from defaults plus the ``[query]`` overrides in config.toml."""
    from .config_manager import load_query_config

    return QuerySettings.from_mapping(load_query_config())


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    MEMORY_DIR.mkdir(parents=True, exist_ok=True)
    BASE_DIR.mkdir(parents=True, exist_ok=True)
