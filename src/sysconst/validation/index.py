"""Node index: id lookup and per-kind id sets over the node arena."""

import re
from dataclasses import dataclass, field
from typing import Any

from ..models import Node, NodeKind

NODEREF_PATTERN = re.compile(r"^NodeRef\(([a-z][a-z0-9_.-]*)\)$")


def parse_node_ref(value: Any) -> str | None:
    """Return the id inside ``NodeRef(<id>)``, or None if malformed."""
    if not isinstance(value, str):
        return None
    match = NODEREF_PATTERN.match(value)
    return match.group(1) if match else None


def ref_target(value: Any) -> str | None:
    """Id named by a reference that may be either a bare id or a NodeRef."""
    if not isinstance(value, str) or not value:
        return None
    return parse_node_ref(value) or value


@dataclass
class NodeIndex:
    """Lookup structures derived from the node list for a single run.

    ``positions`` maps an id to its position in ``nodes``. Duplicate ids are
    tolerated: the last occurrence wins.
    """
    nodes: list[Node]
    positions: dict[str, int] = field(default_factory=dict)
    ids_by_kind: dict[NodeKind, set[str]] = field(default_factory=dict)

    @classmethod
    def build(cls, nodes: list[Node]) -> "NodeIndex":
        index = cls(nodes, ids_by_kind={kind: set() for kind in NodeKind})
        for position, node in enumerate(nodes):
            previous = index.positions.get(node.id)
            if previous is not None:
                index.ids_by_kind[nodes[previous].kind].discard(node.id)
            index.positions[node.id] = position
            index.ids_by_kind[node.kind].add(node.id)
        return index

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.positions

    def get(self, node_id: str) -> Node | None:
        position = self.positions.get(node_id)
        return None if position is None else self.nodes[position]

    def position(self, node_id: str) -> int | None:
        return self.positions.get(node_id)

    def resolve(self, ref: Any) -> Node | None:
        """Resolve a ``NodeRef(<id>)`` string to its node."""
        node_id = parse_node_ref(ref)
        return None if node_id is None else self.get(node_id)

    def ids_of(self, kind: NodeKind) -> set[str]:
        return self.ids_by_kind.get(kind, set())

    def has_kind(self, node_id: str, *kinds: NodeKind) -> bool:
        node = self.get(node_id)
        return node is not None and node.kind in kinds

    @property
    def entities(self) -> set[str]:
        return self.ids_of(NodeKind.ENTITY)

    @property
    def enums(self) -> set[str]:
        return self.ids_of(NodeKind.ENUM)

    @property
    def commands(self) -> set[str]:
        return self.ids_of(NodeKind.COMMAND)

    @property
    def events(self) -> set[str]:
        return self.ids_of(NodeKind.EVENT)

    @property
    def steps(self) -> set[str]:
        return self.ids_of(NodeKind.STEP)
