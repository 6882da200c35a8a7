"""Persistence layer for loaded projects and their metadata symbol graphs.

Architecture:
- **ProjectManager** keeps one directory per project under ``MEMORY_DIR`` and
  remembers which project is current.
- **SymbolStore** holds the metadata graph snapshot of one project in SQLite
  (``graph.db``): symbols with their containment links, plus the typed
  cross-reference edges between them.

Queries only ever read the store, inside :meth:`SymbolStore.read_transaction`.
The single write path is :meth:`SymbolStore.import_snapshot`.
"""

from __future__ import annotations

import json
import logging
import shutil
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .config import MEMORY_DIR, STATE_FILE, QuerySettings, ensure_base_dirs
from .errors import StoreUnavailable, SymbolNotFound, TransactionFailure
from .metadata_types import lookup_type, type_for_kind
from .models import Feature
from .paths import is_collection_feature, singularize
from .symbols import PRODUCED_TYPES_FEATURE, Symbol, variant_for

logger = logging.getLogger(__name__)

DB_NAME = "graph.db"
META_NAME = "project.json"


# ===================================================================
# ProjectManager  (manages directories / current project)
# ===================================================================

class ProjectManager:
    """Manage project directories and the current project pointer."""

    def __init__(self) -> None:
        ensure_base_dirs()

    def list_projects(self) -> List[str]:
        if not MEMORY_DIR.exists():
            return []
        return sorted(p.name for p in MEMORY_DIR.iterdir() if p.is_dir())

    def project_dir(self, project_name: str) -> Path:
        return MEMORY_DIR / project_name

    def create_or_get_project(self, project_name: str) -> Path:
        path = self.project_dir(project_name)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def project_metadata(self, project_name: str) -> Dict[str, Any]:
        """``project.json`` of a project, or ``{}`` when missing or unreadable."""
        meta_path = self.project_dir(project_name) / META_NAME
        if not meta_path.exists():
            return {}
        try:
            return json.loads(meta_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Project metadata %s is not valid JSON", meta_path)
            return {}

    def set_current_project(self, project_name: Optional[str]) -> None:
        ensure_base_dirs()
        STATE_FILE.write_text(
            json.dumps({"current_project": project_name}, indent=2),
            encoding="utf-8",
        )

    def get_current_project(self) -> Optional[str]:
        if not STATE_FILE.exists():
            return None
        try:
            payload = json.loads(STATE_FILE.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("State file %s is not valid JSON", STATE_FILE)
            return None
        return payload.get("current_project")

    def unload_project(self) -> None:
        self.set_current_project(None)

    def delete_project(self, project_name: str) -> bool:
        path = self.project_dir(project_name)
        if not path.exists():
            return False
        shutil.rmtree(path)
        if self.get_current_project() == project_name:
            self.unload_project()
        return True


# ===================================================================
# SymbolStore  (SQLite snapshot of the metadata graph)
# ===================================================================

class SymbolStore:
    """Read-mostly SQLite snapshot of a project's metadata graph.

    Symbols are materialized on lookup into the variant classes of
    :mod:`xref_cli.symbols` and bound back to this store through a weak
    reference, so ``symbol.container`` and ``symbol.fields`` resolve lazily.

    Args:
        project_dir: Directory holding ``graph.db`` and ``project.json``.
        settings: Query settings; supplies the busy timeout and the internal
            namespace markers.
        create: Create an empty database when none exists. Without it a
            missing database raises :class:`StoreUnavailable`.
    """

    def __init__(
        self,
        project_dir: Path,
        settings: Optional[QuerySettings] = None,
        create: bool = False,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.db_path = self.project_dir / DB_NAME
        self.meta_path = self.project_dir / META_NAME
        self.settings = settings or QuerySettings()
        self._cache: Dict[int, Symbol] = {}

        if not create and not self.db_path.exists():
            raise StoreUnavailable(f"No symbol graph at {self.db_path}")
        if create:
            self.project_dir.mkdir(parents=True, exist_ok=True)

        try:
            self.conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.settings.transaction_timeout,
                isolation_level=None,
            )
            self.conn.row_factory = sqlite3.Row
            if create:
                self._init_schema()
            else:
                self.conn.execute("SELECT 1 FROM symbols LIMIT 1").fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Cannot open symbol graph {self.db_path}: {exc}") from exc

    def close(self) -> None:
        self.conn.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.execute("PRAGMA journal_mode=WAL")
        cur.execute("""
            CREATE TABLE IF NOT EXISTS symbols (
                symbol_id           INTEGER PRIMARY KEY,
                ref                 TEXT NOT NULL UNIQUE,
                kind                TEXT NOT NULL,
                name                TEXT NOT NULL,
                fqn                 TEXT NOT NULL,
                collection          TEXT,
                is_top              INTEGER NOT NULL DEFAULT 0,
                container_id        INTEGER,
                containment_feature TEXT,
                namespace           TEXT NOT NULL DEFAULT 'mdclass'
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS edges (
                source_id INTEGER NOT NULL,
                target_id INTEGER NOT NULL,
                feature   TEXT NOT NULL,
                transient INTEGER NOT NULL DEFAULT 0
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_edges_target ON edges(target_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_symbols_collection ON symbols(collection)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_symbols_container ON symbols(container_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_symbols_fqn ON symbols(fqn COLLATE NOCASE)")

    # ------------------------------------------------------------------
    # Clear / metadata
    # ------------------------------------------------------------------

    def clear(self) -> None:
        with self.conn:
            self.conn.execute("BEGIN")
            self.conn.execute("DELETE FROM edges")
            self.conn.execute("DELETE FROM symbols")
        self._cache.clear()

    def set_metadata(self, payload: Dict[str, Any]) -> None:
        self.meta_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def stats(self) -> Dict[str, int]:
        symbols = self.conn.execute("SELECT COUNT(*) FROM symbols").fetchone()[0]
        top = self.conn.execute("SELECT COUNT(*) FROM symbols WHERE is_top = 1").fetchone()[0]
        edges = self.conn.execute("SELECT COUNT(*) FROM edges").fetchone()[0]
        return {"symbols": symbols, "objects": top, "edges": edges}

    # ------------------------------------------------------------------
    # Snapshot import
    # ------------------------------------------------------------------

    def import_snapshot(self, payload: Dict[str, Any]) -> Dict[str, int]:
        """Replace the stored graph with *payload*.

        The payload is the JSON export of a metadata graph::

            {"symbols": [{"id", "kind", "name", "fqn"?, "top"?,
                          "container"?, "feature"?, "namespace"?}, ...],
             "edges":   [{"source", "target", "feature", "transient"?}, ...]}

        A symbol without ``fqn`` gets one built from its container chain.
        Edges naming unknown symbols are skipped.

        Returns:
            Counts of stored symbols and edges.
        """
        entries = payload.get("symbols", [])
        by_ref: Dict[str, Dict[str, Any]] = {}
        for entry in entries:
            ref = str(entry["id"])
            if ref in by_ref:
                raise ValueError(f"Duplicate symbol id in snapshot: {ref}")
            by_ref[ref] = entry

        ids = {ref: index for index, ref in enumerate(by_ref, start=1)}
        fqns: Dict[str, str] = {}
        symbol_rows = []
        for ref, entry in by_ref.items():
            kind = entry["kind"]
            container = entry.get("container")
            container = str(container) if container is not None else None
            is_top = bool(entry.get("top", container is None and type_for_kind(kind) is not None))
            mt = type_for_kind(kind) if is_top else None
            symbol_rows.append((
                ids[ref],
                ref,
                kind,
                entry["name"],
                self._snapshot_fqn(ref, by_ref, fqns, ()),
                mt.collection_key if mt else None,
                1 if is_top else 0,
                ids.get(container) if container else None,
                entry.get("feature"),
                entry.get("namespace") or "mdclass",
            ))

        edge_rows = []
        for edge in payload.get("edges", []):
            source = ids.get(str(edge.get("source")))
            target = ids.get(str(edge.get("target")))
            if source is None or target is None:
                logger.warning(
                    "Skipping edge %s -> %s: unknown symbol", edge.get("source"), edge.get("target"),
                )
                continue
            edge_rows.append((source, target, edge["feature"], 1 if edge.get("transient") else 0))

        with self.conn:
            self.conn.execute("BEGIN")
            self.conn.execute("DELETE FROM edges")
            self.conn.execute("DELETE FROM symbols")
            self.conn.executemany(
                """
                INSERT INTO symbols (
                    symbol_id, ref, kind, name, fqn, collection, is_top,
                    container_id, containment_feature, namespace
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                symbol_rows,
            )
            self.conn.executemany(
                "INSERT INTO edges (source_id, target_id, feature, transient) VALUES (?, ?, ?, ?)",
                edge_rows,
            )
        self._cache.clear()
        logger.info("Imported %s symbols and %s edges", len(symbol_rows), len(edge_rows))
        return {"symbols": len(symbol_rows), "edges": len(edge_rows)}

    def _snapshot_fqn(
        self,
        ref: str,
        by_ref: Dict[str, Dict[str, Any]],
        fqns: Dict[str, str],
        trail: Tuple[str, ...],
    ) -> str:
        if ref in fqns:
            return fqns[ref]
        entry = by_ref[ref]
        name = entry["name"]
        container = entry.get("container")
        container = str(container) if container is not None else None
        feature = entry.get("feature")

        if entry.get("fqn"):
            fqn = entry["fqn"]
        elif container is None or container not in by_ref or container in trail:
            mt = type_for_kind(entry["kind"])
            fqn = f"{mt.singular}.{name}" if mt else name
        elif feature == PRODUCED_TYPES_FEATURE:
            fqn = name
        else:
            parent = self._snapshot_fqn(container, by_ref, fqns, trail + (ref,))
            if feature and is_collection_feature(feature):
                fqn = f"{parent}.{singularize(feature)}.{name}"
            else:
                fqn = f"{parent}.{name}"
        fqns[ref] = fqn
        return fqn

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def read_transaction(self) -> Iterator["SymbolStore"]:
        """Hold one read-only transaction for the duration of the block."""
        try:
            self.conn.execute("PRAGMA query_only = 1")
            self.conn.execute("BEGIN")
        except sqlite3.Error as exc:
            raise TransactionFailure(f"Cannot start read transaction: {exc}") from exc

        completed = False
        try:
            yield self
            completed = True
        finally:
            try:
                self.conn.execute("COMMIT" if completed else "ROLLBACK")
                self.conn.execute("PRAGMA query_only = 0")
            except sqlite3.Error as exc:
                if completed:
                    raise TransactionFailure(f"Cannot finish read transaction: {exc}") from exc
                logger.warning("Rollback of read transaction failed: %s", exc)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve(self, fqn: str) -> Symbol:
        """Find the symbol named by *fqn*, e.g. ``Catalog.Items`` or
        ``Catalog.Items.Attribute.Code``.

        Raises:
            SymbolNotFound: malformed FQN, unknown type prefix, or no match.
        """
        parts = [part.strip() for part in (fqn or "").split(".")]
        if len(parts) < 2 or not all(parts):
            found = self._by_fqn(fqn.strip()) if fqn and fqn.strip() else None
            if found is None:
                raise SymbolNotFound(fqn, "expected Type.Name")
            return found

        mt = lookup_type(parts[0])
        if mt is None:
            # produced types such as CatalogRef.Items are stored under their own name
            found = self._by_fqn(".".join(parts))
            if found is None:
                raise SymbolNotFound(fqn, f"unknown metadata type '{parts[0]}'")
            return found

        owner = None
        wanted = parts[1].lower()
        rows = self.conn.execute(
            "SELECT * FROM symbols WHERE collection = ? AND is_top = 1 ORDER BY symbol_id",
            (mt.collection_key,),
        )
        for row in rows:
            if row["name"].lower() == wanted:
                owner = self._materialize(row)
                break
        if owner is None:
            raise SymbolNotFound(fqn)

        rest = parts[2:]
        if not rest:
            return owner
        current = owner
        for sub_type, sub_name in zip(rest[::2], rest[1::2]):
            current = self._find_child(current, sub_type, sub_name)
            if current is None:
                break
        if current is not None and len(rest) % 2 == 0:
            return current

        # Last attempt: exact FQN below the owner, ignoring case
        found = self._by_fqn(".".join([owner.fqn] + rest))
        if found is None:
            raise SymbolNotFound(fqn)
        return found

    def _by_fqn(self, fqn: str) -> Optional[Symbol]:
        row = self.conn.execute(
            "SELECT * FROM symbols WHERE fqn = ? COLLATE NOCASE ORDER BY symbol_id LIMIT 1",
            (fqn,),
        ).fetchone()
        return self._materialize(row) if row is not None else None

    def _find_child(self, parent: Symbol, sub_type: str, sub_name: str) -> Optional[Symbol]:
        sub_type = sub_type.lower()
        sub_name = sub_name.lower()
        for child in self.children(parent.symbol_id, ()):
            if child.name.lower() != sub_name:
                continue
            feature = child.containment_feature or ""
            if singularize(feature).lower() == sub_type or child.kind.lower().endswith(sub_type):
                return child
        return None

    def get(self, symbol_id: int) -> Optional[Symbol]:
        if symbol_id in self._cache:
            return self._cache[symbol_id]
        row = self.conn.execute(
            "SELECT * FROM symbols WHERE symbol_id = ?", (symbol_id,),
        ).fetchone()
        return self._materialize(row) if row is not None else None

    def children(self, symbol_id: int, features: Sequence[str]) -> List[Symbol]:
        """Contained symbols of *symbol_id*, optionally restricted to *features*."""
        if features:
            placeholders = ",".join("?" * len(features))
            rows = self.conn.execute(
                f"""
                SELECT * FROM symbols
                WHERE container_id = ? AND containment_feature IN ({placeholders})
                ORDER BY symbol_id
                """,
                (symbol_id, *features),
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM symbols WHERE container_id = ? ORDER BY symbol_id",
                (symbol_id,),
            ).fetchall()
        return [self._materialize(row) for row in rows]

    def back_references(self, symbol: Symbol) -> List[Tuple[Symbol, Feature]]:
        """Every edge pointing at *symbol*, as ``(source, feature)`` in snapshot order."""
        if symbol.symbol_id is None:
            return []
        rows = self.conn.execute(
            """
            SELECT s.*, e.feature AS edge_feature, e.transient AS edge_transient
            FROM edges e JOIN symbols s ON s.symbol_id = e.source_id
            WHERE e.target_id = ?
            ORDER BY e.rowid
            """,
            (symbol.symbol_id,),
        ).fetchall()
        return [
            (self._materialize(row), Feature(row["edge_feature"], bool(row["edge_transient"])))
            for row in rows
        ]

    def is_transient_feature(self, feature: Feature) -> bool:
        return feature.transient

    def belongs_to_internal_namespace(self, symbol: Symbol) -> bool:
        namespace = (symbol.namespace or "").lower()
        return any(marker.lower() in namespace for marker in self.settings.internal_namespaces)

    def _materialize(self, row: sqlite3.Row) -> Symbol:
        symbol_id = row["symbol_id"]
        cached = self._cache.get(symbol_id)
        if cached is not None:
            return cached
        is_top = bool(row["is_top"])
        cls = variant_for(is_top, row["containment_feature"], row["collection"] is not None)
        symbol = cls(
            symbol_id,
            row["kind"],
            row["name"],
            row["fqn"],
            is_top_level=is_top,
            namespace=row["namespace"],
            container_id=row["container_id"],
            containment_feature=row["containment_feature"],
        ).bind(self)
        self._cache[symbol_id] = symbol
        return symbol


def snapshot_metadata(source_path: Path, snapshot: Path) -> Dict[str, Any]:
    """``project.json`` payload written when a project is loaded."""
    return {
        "source_path": str(source_path),
        "snapshot": str(snapshot),
        "loaded_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
    }
