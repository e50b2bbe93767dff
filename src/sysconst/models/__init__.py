"""Document models for sysconst."""

from .document import (
    BREAKING_OPS,
    ID_PATTERN,
    SPEC_TAG,
    Change,
    ChangeOp,
    ContractClause,
    ContractLevel,
    Document,
    Generation,
    HistoryEntry,
    Hook,
    HookLocation,
    Migration,
    MigrationKind,
    Node,
    NodeKind,
    Pipeline,
    Project,
    Zone,
    ZoneMode,
)

__all__ = [
    "BREAKING_OPS",
    "ID_PATTERN",
    "SPEC_TAG",
    "Change",
    "ChangeOp",
    "ContractClause",
    "ContractLevel",
    "Document",
    "Generation",
    "HistoryEntry",
    "Hook",
    "HookLocation",
    "Migration",
    "MigrationKind",
    "Node",
    "NodeKind",
    "Pipeline",
    "Project",
    "Zone",
    "ZoneMode",
]
