"""Typed models for a parsed System Constitution document.

The models are immutable and deliberately lenient on scalar payloads: shape
problems are reported as findings by the validation phases, so the model only
has to be buildable once phase 1 has accepted the raw mapping.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

SPEC_TAG = "sysconst/v1"
ID_PATTERN = r"^[a-z][a-z0-9_.-]*$"


class NodeKind(str, Enum):
    """Closed set of node kinds."""
    SYSTEM = "System"
    MODULE = "Module"
    ENTITY = "Entity"
    ENUM = "Enum"
    VALUE = "Value"
    INTERFACE = "Interface"
    COMMAND = "Command"
    EVENT = "Event"
    QUERY = "Query"
    PROCESS = "Process"
    STEP = "Step"
    POLICY = "Policy"
    SCENARIO = "Scenario"
    CONTRACT = "Contract"


class ContractLevel(str, Enum):
    """Enforcement level of a contract clause."""
    HARD = "hard"
    SOFT = "soft"


class ZoneMode(str, Enum):
    """Regeneration policy of a generation zone."""
    OVERWRITE = "overwrite"
    ANCHORED = "anchored"
    PRESERVE = "preserve"
    SPEC_CONTROLLED = "spec-controlled"


class ChangeOp(str, Enum):
    """Operations recorded in a history entry."""
    ADD_FIELD = "add-field"
    REMOVE_FIELD = "remove-field"
    RENAME_FIELD = "rename-field"
    TYPE_CHANGE = "type-change"
    ADD_NODE = "add-node"
    REMOVE_NODE = "remove-node"
    RENAME_NODE = "rename-node"


class MigrationKind(str, Enum):
    """Kinds of migration."""
    DATA = "data"
    SCHEMA = "schema"
    PROCESS = "process"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")


class ContractClause(_Frozen):
    """Contract clause attached to a node.

    Expressions are kept as opaque values; they are never evaluated.
    """
    type: Any = None
    invariant: Any = None
    temporal: Any = None
    rule: Any = None
    level: Any = None

    @property
    def effective_level(self) -> str:
        """Declared level, ``hard`` when absent."""
        return self.level if self.level is not None else ContractLevel.HARD.value


class Node(_Frozen):
    """A typed, uniquely identified unit of the specification graph."""
    kind: NodeKind
    id: str
    spec: dict[str, Any]
    meta: Any = None
    children: list[Any] | None = None
    contracts: list[ContractClause] | None = None


class Versioning(_Frozen):
    """Project versioning state."""
    strategy: Any = None
    current: str


class Project(_Frozen):
    """Project identity."""
    id: str
    name: Any = None
    versioning: Versioning


class Structure(_Frozen):
    """Structure section; ``root`` is a ``NodeRef(<id>)`` string."""
    root: str


class Domain(_Frozen):
    """Domain section holding the node arena."""
    nodes: list[Node]


class Change(_Frozen):
    """One change operation in a history entry."""
    op: Any = None
    target: Any = None
    field: Any = None
    type: Any = None
    required: Any = None
    from_: Any = Field(alias="from", default=None)
    to: Any = None

    @property
    def requires_migration(self) -> bool:
        """True for operations that break existing data."""
        if self.op in BREAKING_OPS:
            return True
        return self.op == ChangeOp.ADD_FIELD.value and self.required is True


BREAKING_OPS = frozenset({
    ChangeOp.REMOVE_FIELD.value,
    ChangeOp.RENAME_FIELD.value,
    ChangeOp.TYPE_CHANGE.value,
    ChangeOp.REMOVE_NODE.value,
    ChangeOp.RENAME_NODE.value,
})


class Migration(_Frozen):
    """Data, schema or process transformation accompanying a change."""
    id: Any = None
    kind: Any = None
    steps: Any = None
    validate_: Any = Field(alias="validate", default=None)


class HistoryEntry(_Frozen):
    """One version in the history chain."""
    version: str
    based_on: str | None = Field(alias="basedOn", default=None)
    changes: list[Change] = Field(default_factory=list)
    migrations: list[Migration] = Field(default_factory=list)
    notes: Any = None

    @field_validator("changes", "migrations", mode="before")
    @classmethod
    def empty_when_null(cls, v):
        # An empty YAML key (``changes:``) parses to null
        return [] if v is None else v


class Zone(_Frozen):
    """Region of generated output and its regeneration policy."""
    path: Any = None
    mode: Any = None


class HookLocation(_Frozen):
    """Anchors delimiting a hook inside a generated file."""
    file: Any = None
    anchor_start: Any = Field(alias="anchorStart", default=None)
    anchor_end: Any = Field(alias="anchorEnd", default=None)


class Hook(_Frozen):
    """User-owned region inside generated output."""
    id: Any = None
    location: HookLocation | None = None
    contract: Any = None


class Pipeline(_Frozen):
    """Build/test/migrate command."""
    cmd: Any = None


class Generation(_Frozen):
    """Generation settings."""
    zones: list[Zone] | None = None
    hooks: list[Hook] | None = None
    pipelines: dict[str, Pipeline | None] | None = None


class ScenarioSuite(_Frozen):
    """Test references."""
    scenarios: list[str] | None = None


class Document(_Frozen):
    """Root of a System Constitution."""
    spec_version: str = Field(alias="spec")
    project: Project
    structure: Structure
    domain: Domain
    generation: Generation | None = None
    history: list[HistoryEntry] | None = None
    tests: ScenarioSuite | None = None

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "Document":
        """Build the typed document from a parsed mapping.

        Raises:
            pydantic.ValidationError: If the mapping does not fit the model
        """
        return cls.model_validate(raw)

    @property
    def nodes(self) -> list[Node]:
        return self.domain.nodes
