"""Phase 3: semantic validation.

Each node kind has its own checker; the dispatch table must cover every
member of NodeKind, otherwise this module fails to import.
"""

import logging
import re
from collections.abc import Callable
from typing import Any

from ..models import ContractClause, ContractLevel, Document, Node, NodeKind
from .framework import DocumentPhase, ErrorCode, ValidationIssue
from .index import NodeIndex, parse_node_ref, ref_target

logger = logging.getLogger(__name__)

REF_TYPE = re.compile(r"^ref\(([^()\s]+)\)$")
ENUM_TYPE = re.compile(r"^enum\(([A-Za-z][A-Za-z0-9_.-]*)\)$")
CLAUSE_KEYS = ("type", "invariant", "temporal", "rule")
CONTRACT_LEVELS = tuple(level.value for level in ContractLevel)


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


class SemanticPhase(DocumentPhase):
    """Kind-specific contracts, type references and effects."""

    @property
    def number(self) -> int:
        return 3

    @property
    def name(self) -> str:
        return "semantic"

    def validate(self, document: Document, index: NodeIndex) -> list[ValidationIssue]:
        errors: list[ValidationIssue] = []
        for position, node in enumerate(document.nodes):
            location = f"domain.nodes[{position}]"
            errors.extend(KIND_CHECKERS[node.kind](self, node, location, index))
            for clause_index, clause in enumerate(node.contracts or []):
                errors.extend(self.check_clause(clause, f"{location}.contracts[{clause_index}]"))
        return errors

    # Shared helpers

    def require_list(self, node: Node, key: str, code: ErrorCode, location: str) -> list[ValidationIssue]:
        if not isinstance(node.spec.get(key), list):
            return [self.issue(code, f"{node.kind.value} must have '{key}' array in spec", f"{location}.spec")]
        return []

    def require_present(self, node: Node, key: str, code: ErrorCode, location: str) -> list[ValidationIssue]:
        if node.spec.get(key) is None:
            return [self.issue(code, f"{node.kind.value} must have '{key}' in spec", f"{location}.spec")]
        return []

    def check_fields(self, node: Node, code: ErrorCode, location: str, index: NodeIndex) -> list[ValidationIssue]:
        """Field map shared by Entity and Value: every field declares a type."""
        fields = node.spec.get("fields")
        if not isinstance(fields, dict):
            return [self.issue(code, f"{node.kind.value} must have 'fields' in spec", f"{location}.spec")]

        errors = []
        for field_name, field_def in fields.items():
            field_location = f"{location}.spec.fields.{field_name}"
            if not isinstance(field_def, dict):
                errors.append(self.issue(
                    ErrorCode.FIELD_MISSING_TYPE,
                    f"Field '{field_name}' must be an object",
                    field_location,
                ))
                continue
            if field_def.get("type") is None:
                errors.append(self.issue(
                    ErrorCode.FIELD_MISSING_TYPE,
                    f"Field '{field_name}' missing 'type'",
                    field_location,
                ))
                continue
            errors.extend(self.check_field_type(field_name, field_def["type"], f"{field_location}.type", index))
        return errors

    def check_field_type(self, field_name: str, type_ref: Any, location: str,
                         index: NodeIndex) -> list[ValidationIssue]:
        if not _is_non_empty_string(type_ref):
            return [self.issue(
                ErrorCode.INVALID_FIELD_TYPE,
                f"Field '{field_name}' type must be a non-empty string",
                location,
            )]

        if type_ref.startswith("ref("):
            match = REF_TYPE.match(type_ref)
            if match is None:
                return [self.issue(
                    ErrorCode.INVALID_FIELD_TYPE,
                    f"Malformed reference type: {type_ref}",
                    location,
                    suggestion="Use format: ref(entity.id)",
                )]
            if match.group(1) not in index.entities:
                return [self.issue(
                    ErrorCode.UNRESOLVED_REF_TYPE,
                    f"Referenced entity not found: {match.group(1)}",
                    location,
                )]
        elif type_ref.startswith("enum(") and ENUM_TYPE.match(type_ref) is None:
            # Enum names are not mapped to node ids; only the shape is checked.
            return [self.issue(
                ErrorCode.INVALID_FIELD_TYPE,
                f"Malformed enum type: {type_ref}",
                location,
                suggestion="Use format: enum(EnumName)",
            )]
        return []

    def check_clause(self, clause: ContractClause, location: str) -> list[ValidationIssue]:
        """Contract clause: needs a kind of assertion; expressions are not evaluated."""
        errors = []
        if all(getattr(clause, key) in (None, "") for key in CLAUSE_KEYS):
            errors.append(self.issue(
                ErrorCode.INVALID_CONTRACT,
                "Contract must have type, invariant, temporal, or rule",
                location,
            ))
        if clause.invariant is not None and not _is_non_empty_string(clause.invariant):
            errors.append(self.issue(
                ErrorCode.INVALID_INVARIANT,
                "Contract 'invariant' must be a non-empty expression string",
                f"{location}.invariant",
            ))
        if clause.temporal is not None and not _is_non_empty_string(clause.temporal):
            errors.append(self.issue(
                ErrorCode.INVALID_TEMPORAL,
                "Contract 'temporal' must be a non-empty expression string",
                f"{location}.temporal",
            ))
        if clause.effective_level not in CONTRACT_LEVELS:
            errors.append(self.issue(
                ErrorCode.INVALID_CONTRACT,
                f"Invalid contract level: {clause.level}",
                f"{location}.level",
                suggestion="Valid levels: 'hard', 'soft'",
            ))
        return errors


def _check_system(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    return phase.require_list(node, "goals", ErrorCode.SYSTEM_MISSING_GOALS, location)


def _check_module(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    return []


def _check_entity(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    return phase.check_fields(node, ErrorCode.ENTITY_MISSING_FIELDS, location, index)


def _check_value(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    return phase.check_fields(node, ErrorCode.VALUE_MISSING_FIELDS, location, index)


def _check_enum(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    return phase.require_list(node, "values", ErrorCode.ENUM_MISSING_VALUES, location)


def _check_interface(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    if not _is_non_empty_string(node.spec.get("style")):
        return [phase.issue(
            ErrorCode.INTERFACE_MISSING_STYLE,
            "Interface must have 'style' string in spec",
            f"{location}.spec",
            suggestion="Use style: openapi or style: graphql",
        )]
    return []


def _check_command(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    errors = phase.require_present(node, "input", ErrorCode.COMMAND_MISSING_INPUT, location)

    effects = node.spec.get("effects")
    if not isinstance(effects, dict):
        return errors

    emits = effects.get("emits")
    for position, event_ref in enumerate(emits if isinstance(emits, list) else []):
        if ref_target(event_ref) not in index.events:
            errors.append(phase.issue(
                ErrorCode.UNRESOLVED_EFFECT_EVENT,
                f"Emitted event not found: {event_ref}",
                f"{location}.spec.effects.emits[{position}]",
            ))

    modifies = effects.get("modifies")
    for position, entity_ref in enumerate(modifies if isinstance(modifies, list) else []):
        if ref_target(entity_ref) not in index.entities:
            errors.append(phase.issue(
                ErrorCode.UNRESOLVED_EFFECT_ENTITY,
                f"Modified entity not found: {entity_ref}",
                f"{location}.spec.effects.modifies[{position}]",
            ))
    return errors


def _check_event(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    return phase.require_present(node, "payload", ErrorCode.EVENT_MISSING_PAYLOAD, location)


def _check_query(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    return [
        *phase.require_present(node, "input", ErrorCode.QUERY_MISSING_INPUT, location),
        *phase.require_present(node, "output", ErrorCode.QUERY_MISSING_OUTPUT, location),
    ]


def _check_process(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    errors = []
    trigger = node.spec.get("trigger")

    if not trigger:
        errors.append(phase.issue(
            ErrorCode.PROCESS_MISSING_TRIGGER,
            "Process must have 'trigger' in spec",
            f"{location}.spec",
        ))
    else:
        trigger_id = ref_target(trigger)
        if trigger_id is None or not index.has_kind(trigger_id, NodeKind.COMMAND, NodeKind.EVENT):
            errors.append(phase.issue(
                ErrorCode.INVALID_PROCESS_TRIGGER,
                f"Process trigger not found: {trigger}",
                f"{location}.spec.trigger",
                suggestion="Trigger must be the id of a Command or Event",
            ))

    # Unresolved children are reported by the referential phase.
    for position, child in enumerate(node.children or []):
        child_id = parse_node_ref(child)
        child_node = index.get(child_id) if child_id else None
        if child_node is not None and child_node.kind != NodeKind.STEP:
            errors.append(phase.issue(
                ErrorCode.INVALID_PROCESS_CHILDREN,
                f"Process children must be Steps, got: {child_node.kind.value}",
                f"{location}.children[{position}]",
            ))
    return errors


def _check_step(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    if not _is_non_empty_string(node.spec.get("action")):
        return [phase.issue(
            ErrorCode.STEP_MISSING_ACTION,
            "Step must have 'action' string in spec",
            f"{location}.spec",
        )]
    return []


def _check_policy(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    return phase.require_list(node, "rules", ErrorCode.POLICY_MISSING_RULES, location)


def _check_scenario(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    return [
        *phase.require_list(node, "given", ErrorCode.SCENARIO_MISSING_GIVEN, location),
        *phase.require_list(node, "when", ErrorCode.SCENARIO_MISSING_WHEN, location),
        *phase.require_list(node, "then", ErrorCode.SCENARIO_MISSING_THEN, location),
    ]


def _check_contract(phase: SemanticPhase, node: Node, location: str, index: NodeIndex) -> list[ValidationIssue]:
    return phase.check_clause(ContractClause.model_validate(node.spec), f"{location}.spec")


KindChecker = Callable[[SemanticPhase, Node, str, NodeIndex], list[ValidationIssue]]

KIND_CHECKERS: dict[NodeKind, KindChecker] = {
    NodeKind.SYSTEM: _check_system,
    NodeKind.MODULE: _check_module,
    NodeKind.ENTITY: _check_entity,
    NodeKind.ENUM: _check_enum,
    NodeKind.VALUE: _check_value,
    NodeKind.INTERFACE: _check_interface,
    NodeKind.COMMAND: _check_command,
    NodeKind.EVENT: _check_event,
    NodeKind.QUERY: _check_query,
    NodeKind.PROCESS: _check_process,
    NodeKind.STEP: _check_step,
    NodeKind.POLICY: _check_policy,
    NodeKind.SCENARIO: _check_scenario,
    NodeKind.CONTRACT: _check_contract,
}

_unchecked = set(NodeKind) - set(KIND_CHECKERS)
if _unchecked:
    raise RuntimeError(f"No semantic checker for node kinds: {sorted(kind.value for kind in _unchecked)}")
