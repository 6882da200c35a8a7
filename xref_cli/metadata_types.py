"""Static tables for 1C metadata types: FQN prefixes, source folders, categories."""

from __future__ import annotations

from typing import Dict, List, NamedTuple, Optional, Tuple

from .models import ModulePathInfo, ModuleRole


class MetadataType(NamedTuple):
    singular: str       # FQN prefix, e.g. "Catalog"
    plural: str         # source folder and manager name, e.g. "Catalogs"

    @property
    def collection_key(self) -> str:
        return self.plural.lower()


METADATA_TYPES: List[MetadataType] = [
    MetadataType("Catalog", "Catalogs"),
    MetadataType("Document", "Documents"),
    MetadataType("DocumentJournal", "DocumentJournals"),
    MetadataType("CommonModule", "CommonModules"),
    MetadataType("InformationRegister", "InformationRegisters"),
    MetadataType("AccumulationRegister", "AccumulationRegisters"),
    MetadataType("AccountingRegister", "AccountingRegisters"),
    MetadataType("CalculationRegister", "CalculationRegisters"),
    MetadataType("Report", "Reports"),
    MetadataType("DataProcessor", "DataProcessors"),
    MetadataType("Enum", "Enums"),
    MetadataType("Constant", "Constants"),
    MetadataType("ExchangePlan", "ExchangePlans"),
    MetadataType("BusinessProcess", "BusinessProcesses"),
    MetadataType("Task", "Tasks"),
    MetadataType("ChartOfCharacteristicTypes", "ChartsOfCharacteristicTypes"),
    MetadataType("ChartOfAccounts", "ChartsOfAccounts"),
    MetadataType("ChartOfCalculationTypes", "ChartsOfCalculationTypes"),
    MetadataType("Sequence", "Sequences"),
    MetadataType("Role", "Roles"),
    MetadataType("Subsystem", "Subsystems"),
    MetadataType("CommonAttribute", "CommonAttributes"),
    MetadataType("EventSubscription", "EventSubscriptions"),
    MetadataType("ScheduledJob", "ScheduledJobs"),
    MetadataType("CommonForm", "CommonForms"),
    MetadataType("CommonCommand", "CommonCommands"),
    MetadataType("CommandGroup", "CommandGroups"),
    MetadataType("CommonTemplate", "CommonTemplates"),
    MetadataType("SessionParameter", "SessionParameters"),
    MetadataType("FunctionalOptionsParameter", "FunctionalOptionsParameters"),
    MetadataType("FunctionalOption", "FunctionalOptions"),
    MetadataType("CommonPicture", "CommonPictures"),
    MetadataType("StyleItem", "StyleItems"),
    MetadataType("DefinedType", "DefinedTypes"),
    MetadataType("WebService", "WebServices"),
    MetadataType("HTTPService", "HTTPServices"),
]

# singular and plural spellings, lowercased -> type
_BY_NAME: Dict[str, MetadataType] = {}
for _mt in METADATA_TYPES:
    _BY_NAME[_mt.singular.lower()] = _mt
    _BY_NAME[_mt.plural.lower()] = _mt

_BY_SINGULAR: Dict[str, MetadataType] = {mt.singular: mt for mt in METADATA_TYPES}

# Ordered: first substring match on the node kind wins
_CATEGORY_RULES: Tuple[Tuple[str, str], ...] = (
    ("Subsystem", "Subsystems"),
    ("Role", "Roles"),
    ("CommonModule", "Common modules"),
    ("CommonAttribute", "Common attributes"),
    ("EventSubscription", "Event subscriptions"),
    ("ScheduledJob", "Scheduled jobs"),
    ("Form", "Forms"),
    ("Document", "Documents"),
    ("Catalog", "Catalogs"),
    ("Register", "Registers"),
    ("Report", "Reports"),
    ("DataProcessor", "Data processors"),
    ("Command", "Commands"),
    ("TypeDescription", "Type descriptions"),
    ("FunctionalOption", "Functional options"),
    ("Template", "Templates"),
)

_EXT_MODULES: Dict[str, ModuleRole] = {
    "objectmodule.bsl": ModuleRole.OBJECT_MODULE,
    "managermodule.bsl": ModuleRole.MANAGER_MODULE,
    "recordsetmodule.bsl": ModuleRole.RECORDSET_MODULE,
    "valuemanagermodule.bsl": ModuleRole.VALUE_MANAGER_MODULE,
    "commandmodule.bsl": ModuleRole.COMMAND_MODULE,
}


def lookup_type(name: str) -> Optional[MetadataType]:
    """Map a type segment (any case, singular or plural) to its metadata type."""
    if not name:
        return None
    return _BY_NAME.get(name.lower())


def type_for_kind(kind: str) -> Optional[MetadataType]:
    return _BY_SINGULAR.get(kind)


def category_for_kind(kind: Optional[str]) -> str:
    """Readable report category for the node kind of a reference source."""
    if not kind:
        return "Other"
    for needle, category in _CATEGORY_RULES:
        if needle in kind:
            return category
    return kind


def parse_module_path(module_path: str) -> Optional[ModulePathInfo]:
    """Split a module path relative to ``src/`` into owner FQN and module role.

    ``Documents/SalesOrder/Ext/ObjectModule.bsl`` gives
    ``Document.SalesOrder`` / ObjectModule; returns ``None`` when the first
    folder is not a known metadata type.
    """
    if not module_path:
        return None
    parts = [p for p in module_path.replace("\\", "/").split("/") if p]
    if len(parts) < 2:
        return None
    mt = lookup_type(parts[0])
    if mt is None or parts[0].lower() != mt.plural.lower():
        return None

    owner_fqn = f"{mt.singular}.{parts[1]}"
    role = _module_role(parts)
    form_name = None
    if role is ModuleRole.FORM_MODULE:
        # CommonForms/<Name>/Ext/Form/Module.bsl has no Forms/ segment
        form_name = parts[3] if len(parts) > 3 and parts[2].lower() == "forms" else parts[1]
    return ModulePathInfo(owner_fqn=owner_fqn, module_role=role, form_name=form_name)


def _module_role(parts: List[str]) -> ModuleRole:
    if len(parts) == 3 and parts[2].lower() == "module.bsl":
        return ModuleRole.MODULE
    if len(parts) >= 3 and parts[2].lower() == "forms":
        return ModuleRole.FORM_MODULE
    if len(parts) >= 4 and parts[2].lower() == "ext":
        role = _EXT_MODULES.get(parts[3].lower())
        if role is not None:
            return role
        if parts[3].lower() == "form":
            return ModuleRole.FORM_MODULE
    return ModuleRole.MODULE

