"""Pytest configuration and fixtures for xref tests."""

import json
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Generator

import pytest

from xref_cli.config import QuerySettings
from xref_cli.corpus import CorpusIndex
from xref_cli.storage import ProjectManager, SymbolStore


UTILS_MODULE = """#Region Public

// Total of all rows.
&AtServer
Function CalcSum(Val Rows, Precision = 2) Export
\tTotal = 0;
\tFor Each Row In Rows Do
\t\tTotal = Total + Row.Amount;
\tEndDo;
\tReturn Round(Total, Precision);
EndFunction

Procedure Log(Text) Export
\tValue = CalcSum(New Array);
\tMessage(Text);
EndProcedure

#EndRegion
"""

ORDER_OBJECT_MODULE = """Procedure BeforeWrite(Cancel)
\tItem = Catalogs.Items.FindByCode("001");
\tRef = Undefined; // CatalogRef.Items
\tIf Item.IsEmpty() Then
\t\tCancel = True;
\tEndIf;
EndProcedure

Function QueryText()
\tReturn "SELECT * FROM Catalogs.Items";
EndFunction
"""

ITEMS_MANAGER_MODULE = """Function Default() Export
\tReturn Catalogs.Items.EmptyRef();
EndFunction
"""


def _other_module() -> str:
    # the Utils call sits on line 42
    lines = ["Procedure Run(Rows) Export"]
    lines += [f"\t// step {n}" for n in range(2, 42)]
    lines += ["\tResult = Utils.CalcSum(Rows);", "EndProcedure", ""]
    return "\n".join(lines)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def temp_project_manager(temp_dir: Path, monkeypatch) -> ProjectManager:
    """Create a ProjectManager with temporary storage."""
    base_dir = temp_dir / "home"
    memory_dir = base_dir / "memory"
    state_file = base_dir / "state.json"

    # Patch both config AND storage modules (storage imports at module load)
    monkeypatch.setattr("xref_cli.config.BASE_DIR", base_dir)
    monkeypatch.setattr("xref_cli.config.MEMORY_DIR", memory_dir)
    monkeypatch.setattr("xref_cli.config.STATE_FILE", state_file)
    monkeypatch.setattr("xref_cli.storage.MEMORY_DIR", memory_dir)
    monkeypatch.setattr("xref_cli.storage.STATE_FILE", state_file)
    monkeypatch.setattr("xref_cli.config_manager.CONFIG_FILE", base_dir / "config.toml")

    return ProjectManager()


@pytest.fixture
def sample_snapshot() -> Dict[str, Any]:
    """A small metadata graph: a catalog with its produced type, field and
    predefined item, a document with a form, a register, a subsystem and
    a common module."""
    return {
        "symbols": [
            {"id": "cm-utils", "kind": "CommonModule", "name": "Utils"},
            {"id": "doc-order", "kind": "Document", "name": "Order"},
            {"id": "cat-items", "kind": "Catalog", "name": "Items"},
            {"id": "cat-items-ref", "kind": "CatalogRef", "name": "CatalogRef.Items",
             "container": "cat-items", "feature": "producedTypes"},
            {"id": "cat-items-code", "kind": "CatalogAttribute", "name": "Code",
             "container": "cat-items", "feature": "attributes"},
            {"id": "cat-items-main", "kind": "CatalogPredefinedItem", "name": "Main",
             "container": "cat-items", "feature": "predefined"},
            {"id": "doc-order-customer", "kind": "DocumentAttribute", "name": "Customer",
             "container": "doc-order", "feature": "attributes"},
            {"id": "doc-order-form", "kind": "DocumentForm", "name": "OrderForm",
             "container": "doc-order", "feature": "forms"},
            {"id": "doc-order-form-content", "kind": "Form", "name": "Form",
             "container": "doc-order-form", "feature": "form"},
            {"id": "dbview-items", "kind": "DbViewTable", "name": "Items", "namespace": "dbview"},
            {"id": "subsystem-sales", "kind": "Subsystem", "name": "Sales"},
            {"id": "reg-prices", "kind": "InformationRegister", "name": "Prices"},
            {"id": "reg-prices-item", "kind": "InformationRegisterDimension", "name": "Item",
             "container": "reg-prices", "feature": "dimensions"},
        ],
        "edges": [
            {"source": "doc-order", "target": "cm-utils", "feature": "Handler"},
            {"source": "doc-order-customer", "target": "cat-items-ref", "feature": "type"},
            {"source": "subsystem-sales", "target": "cat-items", "feature": "content"},
            {"source": "dbview-items", "target": "cat-items", "feature": "source"},
            {"source": "doc-order", "target": "cat-items", "feature": "basedOn", "transient": True},
            {"source": "cat-items-code", "target": "cat-items", "feature": "owner"},
            {"source": "doc-order-form-content", "target": "cat-items-main", "feature": "defaultValue"},
            {"source": "reg-prices-item", "target": "cat-items-code", "feature": "type"},
        ],
    }


@pytest.fixture
def sample_source(temp_dir: Path) -> Path:
    """Project root with a ``src/`` tree of BSL modules."""
    root = temp_dir / "config"
    modules = {
        "CommonModules/Utils/Module.bsl": UTILS_MODULE,
        "CommonModules/Other/Module.bsl": _other_module(),
        "Documents/Order/Ext/ObjectModule.bsl": ORDER_OBJECT_MODULE,
        "Catalogs/Items/Ext/ManagerModule.bsl": ITEMS_MANAGER_MODULE,
    }
    for rel, text in modules.items():
        path = root / "src" / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


@pytest.fixture
def snapshot_file(temp_dir: Path, sample_snapshot: Dict[str, Any]) -> Path:
    path = temp_dir / "demo.json"
    path.write_text(json.dumps(sample_snapshot), encoding="utf-8")
    return path


@pytest.fixture
def settings() -> QuerySettings:
    return QuerySettings()


@pytest.fixture
def sample_store(temp_dir: Path, sample_snapshot: Dict[str, Any], settings: QuerySettings) -> Generator[SymbolStore, None, None]:
    """SymbolStore with the sample snapshot imported."""
    store = SymbolStore(temp_dir / "project", settings=settings, create=True)
    store.import_snapshot(sample_snapshot)
    yield store
    store.close()


@pytest.fixture
def sample_corpus(sample_source: Path) -> CorpusIndex:
    return CorpusIndex(sample_source)
