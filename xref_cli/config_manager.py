"""Configuration manager for xref using TOML files."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict

import toml

from .config import BASE_DIR

logger = logging.getLogger(__name__)

CONFIG_FILE = BASE_DIR / "config.toml"

# Keys accepted in the [query] section and how to coerce CLI strings into them
QUERY_KEYS: Dict[str, Callable[[str], Any]] = {
    "default_limit": int,
    "max_reference_limit": int,
    "max_caller_limit": int,
    "overcollect_factor": int,
    "corpus_root_marker": str,
    "corpus_label": str,
    "internal_namespaces": lambda raw: [part.strip() for part in raw.split(",") if part.strip()],
    "transaction_timeout": float,
}


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", CONFIG_FILE, exc)
        return {}


def _save_full_config(config: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.warning("Cannot write config %s: %s", CONFIG_FILE, exc)
        return False


def load_query_config() -> Dict[str, Any]:
    """Load query overrides from the ``[query]`` section.

    Unknown keys are dropped so a stale config file cannot break startup.
    """
    section = load_full_config().get("query", {})
    return {key: value for key, value in section.items() if key in QUERY_KEYS}


def save_query_value(key: str, raw_value: str) -> Any:
    """Coerce and persist a single ``[query]`` value.

    Raises:
        KeyError: if *key* is not a known query setting.
        ValueError: if *raw_value* cannot be coerced.
    """
    if key not in QUERY_KEYS:
        raise KeyError(key)
    value = QUERY_KEYS[key](raw_value)
    config = load_full_config()
    config.setdefault("query", {})[key] = value
    _save_full_config(config)
    return value


def clear_query_config() -> bool:
    """Remove the ``[query]`` section, resetting every setting to its default."""
    config = load_full_config()
    config.pop("query", None)
    return _save_full_config(config)
