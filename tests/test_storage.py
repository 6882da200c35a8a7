"""Tests for storage layer (ProjectManager and SymbolStore)."""

import json
from pathlib import Path

import pytest

from xref_cli.config import QuerySettings
from xref_cli.errors import StoreUnavailable, SymbolNotFound, TransactionFailure
from xref_cli.storage import ProjectManager, SymbolStore
from xref_cli.symbols import HasFields, MdNode, MdObject, PredefinedItem, ProducedType


class TestProjectManager:
    """Tests for ProjectManager."""

    def test_create_project(self, temp_project_manager: ProjectManager):
        """Test creating a new project."""
        pm = temp_project_manager
        project_dir = pm.create_or_get_project("TestProject")

        assert project_dir.exists()
        assert project_dir.is_dir()
        assert "TestProject" in pm.list_projects()

    def test_list_projects(self, temp_project_manager: ProjectManager):
        """Test listing projects."""
        pm = temp_project_manager

        # Initially empty
        assert pm.list_projects() == []

        pm.create_or_get_project("Project2")
        pm.create_or_get_project("Project1")

        assert pm.list_projects() == ["Project1", "Project2"]

    def test_set_and_get_current_project(self, temp_project_manager: ProjectManager):
        """Test setting and getting current project."""
        pm = temp_project_manager
        pm.create_or_get_project("MyProject")

        pm.set_current_project("MyProject")

        assert pm.get_current_project() == "MyProject"

    def test_unload_project(self, temp_project_manager: ProjectManager):
        """Test unloading current project."""
        pm = temp_project_manager
        pm.create_or_get_project("MyProject")
        pm.set_current_project("MyProject")

        pm.unload_project()
        assert pm.get_current_project() is None

    def test_delete_current_project_unloads_it(self, temp_project_manager: ProjectManager):
        """Deleting the current project also clears the pointer."""
        pm = temp_project_manager
        pm.create_or_get_project("ToDelete")
        pm.set_current_project("ToDelete")

        assert pm.delete_project("ToDelete") is True
        assert "ToDelete" not in pm.list_projects()
        assert pm.get_current_project() is None

    def test_delete_nonexistent_project(self, temp_project_manager: ProjectManager):
        """Test deleting a project that doesn't exist."""
        assert temp_project_manager.delete_project("DoesNotExist") is False

    def test_project_metadata(self, temp_project_manager: ProjectManager):
        """project.json is read back; a broken file reads as empty."""
        pm = temp_project_manager
        project_dir = pm.create_or_get_project("Meta")
        (project_dir / "project.json").write_text(json.dumps({"source_path": "/x"}), encoding="utf-8")
        assert pm.project_metadata("Meta") == {"source_path": "/x"}

        (project_dir / "project.json").write_text("{broken", encoding="utf-8")
        assert pm.project_metadata("Meta") == {}


class TestSymbolStoreOpen:
    """Opening and importing snapshots."""

    def test_missing_database_is_unavailable(self, temp_dir: Path):
        """Without create=True a missing graph.db raises StoreUnavailable."""
        with pytest.raises(StoreUnavailable):
            SymbolStore(temp_dir / "nothing-here")

    def test_corrupt_database_is_unavailable(self, temp_dir: Path):
        """A file that is not a symbol graph raises StoreUnavailable."""
        project_dir = temp_dir / "corrupt"
        project_dir.mkdir()
        (project_dir / "graph.db").write_bytes(b"definitely not sqlite" * 100)
        with pytest.raises(StoreUnavailable):
            SymbolStore(project_dir)

    def test_import_counts(self, sample_store: SymbolStore):
        """Every symbol and edge of the snapshot is stored."""
        stats = sample_store.stats()
        assert stats["symbols"] == 13
        assert stats["edges"] == 8

    def test_import_skips_edges_to_unknown_symbols(self, temp_dir: Path):
        """Dangling edges are dropped, not stored."""
        store = SymbolStore(temp_dir / "p", create=True)
        counts = store.import_snapshot({
            "symbols": [{"id": "a", "kind": "Catalog", "name": "A"}],
            "edges": [{"source": "a", "target": "missing", "feature": "x"}],
        })
        assert counts == {"symbols": 1, "edges": 0}
        store.close()

    def test_duplicate_ids_rejected(self, temp_dir: Path):
        """Two symbols with one id make the snapshot invalid."""
        store = SymbolStore(temp_dir / "p", create=True)
        with pytest.raises(ValueError):
            store.import_snapshot({"symbols": [
                {"id": "a", "kind": "Catalog", "name": "A"},
                {"id": "a", "kind": "Catalog", "name": "B"},
            ]})
        store.close()

    def test_reopen_existing(self, sample_store: SymbolStore):
        """A second store on the same directory sees the imported graph."""
        other = SymbolStore(sample_store.project_dir)
        assert other.resolve("Catalog.Items").name == "Items"
        other.close()

    def test_clear(self, sample_store: SymbolStore):
        """clear() removes every symbol."""
        sample_store.clear()
        assert sample_store.stats()["symbols"] == 0
        with pytest.raises(SymbolNotFound):
            sample_store.resolve("Catalog.Items")


class TestResolve:
    """FQN resolution."""

    @pytest.mark.parametrize("fqn", ["Catalog.Items", "catalog.items", "Catalogs.Items", "CATALOG.ITEMS"])
    def test_top_level_any_case(self, sample_store: SymbolStore, fqn: str):
        """Type and name match ignoring case; plural type names are accepted."""
        symbol = sample_store.resolve(fqn)
        assert isinstance(symbol, MdObject)
        assert symbol.fqn == "Catalog.Items"

    def test_round_trip(self, sample_store: SymbolStore):
        """resolve(s.fqn) returns s for every stored symbol."""
        for fqn in [
            "CommonModule.Utils",
            "Document.Order",
            "Catalog.Items.Attribute.Code",
            "Document.Order.Form.OrderForm",
            "InformationRegister.Prices.Dimension.Item",
        ]:
            assert sample_store.resolve(fqn).fqn == fqn

        count = sample_store.stats()["symbols"]
        for symbol_id in range(1, count + 1):
            symbol = sample_store.get(symbol_id)
            assert sample_store.resolve(symbol.fqn) == symbol, symbol.fqn

    def test_produced_type_and_predefined_item_round_trip(self, sample_store: SymbolStore):
        items = sample_store.resolve("Catalog.Items")
        produced = items.produced_types[0]
        predefined = items.predefined_instances[0]

        assert sample_store.resolve(produced.fqn) == produced
        assert isinstance(sample_store.resolve("catalogref.items"), ProducedType)
        assert sample_store.resolve(predefined.fqn) == predefined

    def test_nested_by_kind_suffix(self, sample_store: SymbolStore):
        """A sub-type may also be named by the child's kind suffix."""
        symbol = sample_store.resolve("Catalog.Items.PredefinedItem.Main")
        assert isinstance(symbol, PredefinedItem)
        assert symbol.name == "Main"

    def test_nested_exact_fqn_fallback(self, sample_store: SymbolStore):
        """Odd remainders fall back to a case-insensitive FQN lookup."""
        symbol = sample_store.resolve("document.order.form.orderform.form")
        assert isinstance(symbol, MdNode)
        assert symbol.fqn == "Document.Order.Form.OrderForm.Form"

    @pytest.mark.parametrize("fqn", ["Foo.Bar", "Catalog", "", "Catalog.Missing", "Catalog.Items.Attribute.Missing"])
    def test_not_found(self, sample_store: SymbolStore, fqn: str):
        """Malformed, unknown-type and unmatched FQNs raise SymbolNotFound."""
        with pytest.raises(SymbolNotFound):
            sample_store.resolve(fqn)

    def test_unknown_type_message(self, sample_store: SymbolStore):
        with pytest.raises(SymbolNotFound) as excinfo:
            sample_store.resolve("Foo.Bar")
        assert "Object not found: Foo.Bar" in str(excinfo.value)
        assert excinfo.value.to_dict()["kind"] == "SymbolNotFound"


class TestGraphAccess:
    """Lazy materialization and back-references."""

    def test_capabilities(self, sample_store: SymbolStore):
        """Top-level objects expose produced types, predefined items and fields."""
        items = sample_store.resolve("Catalog.Items")
        assert isinstance(items, HasFields)
        assert [s.name for s in items.produced_types] == ["CatalogRef.Items"]
        assert isinstance(items.produced_types[0], ProducedType)
        assert [s.name for s in items.predefined_instances] == ["Main"]
        assert [s.name for s in items.fields] == ["Code"]

    def test_container_is_lazy(self, sample_store: SymbolStore):
        """container resolves through the store."""
        code = sample_store.resolve("Catalog.Items.Attribute.Code")
        assert code.container == sample_store.resolve("Catalog.Items")
        assert code.containment_feature == "attributes"

    def test_back_references_in_snapshot_order(self, sample_store: SymbolStore):
        """Edges come back in the order they were imported."""
        items = sample_store.resolve("Catalog.Items")
        refs = sample_store.back_references(items)
        assert [(source.name, feature.name) for source, feature in refs] == [
            ("Sales", "content"),
            ("Items", "source"),
            ("Order", "basedOn"),
            ("Code", "owner"),
        ]
        assert [feature.transient for _, feature in refs] == [False, False, True, False]

    def test_filters(self, sample_store: SymbolStore):
        """Transient features and dbview symbols are recognized."""
        items = sample_store.resolve("Catalog.Items")
        refs = sample_store.back_references(items)
        internal = [source for source, _ in refs if sample_store.belongs_to_internal_namespace(source)]
        transient = [feature for _, feature in refs if sample_store.is_transient_feature(feature)]
        assert [s.namespace for s in internal] == ["dbview"]
        assert [f.name for f in transient] == ["basedOn"]

    def test_internal_namespaces_configurable(self, temp_dir: Path, sample_snapshot):
        """Only configured markers count as internal."""
        store = SymbolStore(temp_dir / "p", settings=QuerySettings(internal_namespaces=("other",)), create=True)
        store.import_snapshot(sample_snapshot)
        items = store.resolve("Catalog.Items")
        assert not any(store.belongs_to_internal_namespace(s) for s, _ in store.back_references(items))
        store.close()


class TestReadTransaction:
    """Read-only transaction handling."""

    def test_reads_inside_transaction(self, sample_store: SymbolStore):
        with sample_store.read_transaction() as store:
            assert store.resolve("Document.Order").name == "Order"
        assert not sample_store.conn.in_transaction

    def test_writes_rejected_inside_transaction(self, sample_store: SymbolStore):
        """The transaction is query-only."""
        import sqlite3

        with pytest.raises(sqlite3.Error):
            with sample_store.read_transaction():
                sample_store.conn.execute("DELETE FROM edges")
        assert sample_store.stats()["edges"] == 8

    def test_nested_begin_fails(self, sample_store: SymbolStore):
        """A transaction that cannot start raises TransactionFailure."""
        with sample_store.read_transaction():
            with pytest.raises(TransactionFailure):
                with sample_store.read_transaction():
                    pass
