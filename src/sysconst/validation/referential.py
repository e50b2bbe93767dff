"""Phase 2: referential validation.

Resolves every NodeRef against the node index and detects cycles in the
children relation.
"""

import logging

from ..models import Document, NodeKind
from .framework import DocumentPhase, ErrorCode, ValidationIssue
from .index import NodeIndex, parse_node_ref

logger = logging.getLogger(__name__)


class ReferentialPhase(DocumentPhase):
    """Root, children and scenario references; circular children."""

    @property
    def number(self) -> int:
        return 2

    @property
    def name(self) -> str:
        return "referential"

    def validate(self, document: Document, index: NodeIndex) -> list[ValidationIssue]:
        errors: list[ValidationIssue] = []
        errors.extend(self._check_root(document, index))
        errors.extend(self._check_children(document, index))
        errors.extend(self._check_scenario_refs(document, index))
        errors.extend(self._detect_cycles(document, index))
        return errors

    def _check_root(self, document: Document, index: NodeIndex) -> list[ValidationIssue]:
        root_ref = document.structure.root
        root_id = parse_node_ref(root_ref)

        if root_id is None:
            return [self.issue(
                ErrorCode.UNRESOLVED_ROOT,
                f"Invalid root reference format: {root_ref}",
                "structure.root",
                suggestion="Use format: NodeRef(system.xxx)",
            )]

        root = index.get(root_id)
        if root is None:
            return [self.issue(ErrorCode.UNRESOLVED_ROOT, f"Root node not found: {root_id}", "structure.root")]
        if root.kind != NodeKind.SYSTEM:
            return [self.issue(
                ErrorCode.INVALID_ROOT_KIND,
                f"Root node must be System, got: {root.kind.value}",
                "structure.root",
            )]
        return []

    def _check_children(self, document: Document, index: NodeIndex) -> list[ValidationIssue]:
        errors = []
        for position, node in enumerate(document.nodes):
            for child_index, child in enumerate(node.children or []):
                location = f"domain.nodes[{position}].children[{child_index}]"
                child_id = parse_node_ref(child)
                if child_id is None:
                    errors.append(self.issue(
                        ErrorCode.UNRESOLVED_NODEREF,
                        f"Invalid NodeRef format: {child}",
                        location,
                        suggestion="Use format: NodeRef(node.id)",
                    ))
                elif child_id not in index:
                    errors.append(self.issue(
                        ErrorCode.UNRESOLVED_NODEREF,
                        f"NodeRef does not resolve: {child}",
                        location,
                    ))
        return errors

    def _check_scenario_refs(self, document: Document, index: NodeIndex) -> list[ValidationIssue]:
        if document.tests is None:
            return []

        errors = []
        for position, ref in enumerate(document.tests.scenarios or []):
            location = f"tests.scenarios[{position}]"
            ref_id = parse_node_ref(ref)
            if ref_id is None:
                errors.append(self.issue(
                    ErrorCode.UNRESOLVED_NODEREF,
                    f"Invalid scenario reference format: {ref}",
                    location,
                    suggestion="Use format: NodeRef(scenario.id)",
                ))
            elif ref_id not in index:
                errors.append(self.issue(
                    ErrorCode.UNRESOLVED_NODEREF,
                    f"Scenario reference does not resolve: {ref}",
                    location,
                ))
        return errors

    def _detect_cycles(self, document: Document, index: NodeIndex) -> list[ValidationIssue]:
        """Report one error per back edge in the children graph.

        Iterative DFS: every node is expanded once, so the cost is
        O(nodes + edges) and deep chains cannot exhaust the interpreter stack.
        """
        errors = []
        visited: set[str] = set()
        on_stack: set[str] = set()

        for start in document.nodes:
            if start.id in visited:
                continue

            # Frames are (node id, iterator over (child position, child id)).
            path: list[str] = [start.id]
            stack = [(start.id, self._resolved_children(start.id, index))]
            visited.add(start.id)
            on_stack.add(start.id)

            while stack:
                node_id, children = stack[-1]
                advanced = False

                for child_index, child_id in children:
                    if child_id in on_stack:
                        cycle = path[path.index(child_id):] + [child_id]
                        errors.append(self.issue(
                            ErrorCode.CIRCULAR_CHILDREN,
                            f"Circular reference detected: {' -> '.join(cycle)}",
                            f"domain.nodes[{index.position(node_id)}].children[{child_index}]",
                            context={"cycle": cycle},
                        ))
                    elif child_id not in visited:
                        visited.add(child_id)
                        on_stack.add(child_id)
                        path.append(child_id)
                        stack.append((child_id, self._resolved_children(child_id, index)))
                        advanced = True
                        break

                if not advanced:
                    stack.pop()
                    on_stack.discard(path.pop())

        logger.debug(f"Cycle detection visited {len(visited)} node(s), found {len(errors)} cycle(s)")
        return errors

    @staticmethod
    def _resolved_children(node_id: str, index: NodeIndex):
        node = index.get(node_id)
        for child_index, child in enumerate(node.children or []):
            child_id = parse_node_ref(child)
            if child_id is not None and child_id in index:
                yield child_index, child_id
