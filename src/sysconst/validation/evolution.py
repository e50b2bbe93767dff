"""Phase 4: evolution validation.

Checks the history chain and that breaking changes ship with migrations.
Migration ``validate`` assertions are checked for shape only, never run.
"""

import logging
import re

from ..models import Change, ChangeOp, Document, HistoryEntry, Migration, MigrationKind
from .framework import DocumentPhase, ErrorCode, ValidationIssue
from .index import NodeIndex

logger = logging.getLogger(__name__)

SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)
VALID_OPS = [op.value for op in ChangeOp]
VALID_MIGRATION_KINDS = [kind.value for kind in MigrationKind]


def covering_migration(change: Change, migrations: list[Migration]) -> Migration | None:
    """Migration that covers a change in the same history entry.

    A migration whose id mentions the change target or field is preferred;
    otherwise any declared migration counts.
    """
    keys = [key for key in (change.target, change.field) if isinstance(key, str) and key]
    for migration in migrations:
        if isinstance(migration.id, str) and any(key in migration.id for key in keys):
            return migration
    return migrations[0] if migrations else None


class EvolutionPhase(DocumentPhase):
    """History chain, version consistency and migration coverage."""

    @property
    def number(self) -> int:
        return 4

    @property
    def name(self) -> str:
        return "evolution"

    def validate(self, document: Document, index: NodeIndex) -> list[ValidationIssue]:
        history = document.history
        if not history:
            logger.debug("No history declared, skipping evolution checks")
            return []

        errors: list[ValidationIssue] = []
        errors.extend(self._check_chain(history, document.project.versioning.current))
        for position, entry in enumerate(history):
            location = f"history[{position}]"
            errors.extend(self._check_changes(entry, location))
            for migration_index, migration in enumerate(entry.migrations):
                errors.extend(self._check_migration(migration, f"{location}.migrations[{migration_index}]"))
        return errors

    def _check_chain(self, history: list[HistoryEntry], current: str) -> list[ValidationIssue]:
        errors = []

        if history[0].based_on is not None:
            errors.append(self.issue(
                ErrorCode.INVALID_HISTORY_START,
                f"First history entry must have basedOn: null, got: {history[0].based_on}",
                "history[0].basedOn",
            ))

        for position, entry in enumerate(history):
            if not SEMVER_PATTERN.match(entry.version):
                errors.append(self.issue(
                    ErrorCode.INVALID_VERSION_FORMAT,
                    f"Invalid version format: {entry.version}",
                    f"history[{position}].version",
                    suggestion="Use semantic versioning: MAJOR.MINOR.PATCH",
                ))
            if position == 0:
                continue

            previous = history[position - 1]
            if entry.based_on != previous.version:
                errors.append(self.issue(
                    ErrorCode.BROKEN_HISTORY_CHAIN,
                    f"History chain broken: {entry.version} basedOn {entry.based_on}, expected {previous.version}",
                    f"history[{position}].basedOn",
                    context={"version": entry.version, "basedOn": entry.based_on, "expected": previous.version},
                ))

        last_version = history[-1].version
        if current != last_version:
            errors.append(self.issue(
                ErrorCode.VERSION_MISMATCH,
                f"Current version {current} doesn't match last history version {last_version}",
                "project.versioning.current",
            ))
        return errors

    def _check_changes(self, entry: HistoryEntry, location: str) -> list[ValidationIssue]:
        errors = []
        for position, change in enumerate(entry.changes):
            change_location = f"{location}.changes[{position}]"

            if change.op not in VALID_OPS or not isinstance(change.target, str) or not change.target:
                errors.append(self.issue(
                    ErrorCode.INVALID_CHANGE,
                    f"Change needs a known 'op' and a 'target', got op={change.op!r} target={change.target!r}",
                    change_location,
                    suggestion=f"Valid ops: {', '.join(VALID_OPS)}",
                ))
                continue

            if not change.requires_migration:
                continue

            migration = covering_migration(change, entry.migrations)
            if migration is not None:
                logger.debug(f"{change.op} on {change.target} covered by migration {migration.id}")
                continue

            if change.op == ChangeOp.ADD_FIELD.value:
                message = f"Adding required field '{change.field}' to '{change.target}' requires migration"
                suggestion = "Add a migration to backfill existing data"
            else:
                message = f"Breaking change '{change.op}' on '{change.target}' requires migration"
                suggestion = "Add a migration with steps to handle this change"
            errors.append(self.issue(
                ErrorCode.MISSING_MIGRATION,
                message,
                change_location,
                suggestion=suggestion,
                context={"op": change.op, "target": change.target, "field": change.field},
            ))
        return errors

    def _check_migration(self, migration: Migration, location: str) -> list[ValidationIssue]:
        errors = []

        if not migration.id:
            errors.append(self.issue(ErrorCode.MIGRATION_MISSING_ID, "Migration missing 'id'", location))

        if not migration.kind:
            errors.append(self.issue(ErrorCode.MIGRATION_MISSING_KIND, "Migration missing 'kind'", location))
        elif migration.kind not in VALID_MIGRATION_KINDS:
            errors.append(self.issue(
                ErrorCode.INVALID_MIGRATION_KIND,
                f"Invalid migration kind: {migration.kind}",
                f"{location}.kind",
                suggestion="Valid kinds: 'data', 'schema', 'process'",
            ))

        if not isinstance(migration.steps, list) or not migration.steps:
            errors.append(self.issue(
                ErrorCode.MIGRATION_MISSING_STEPS,
                "Migration must declare a non-empty 'steps' array",
                location,
            ))

        assertions = migration.validate_
        if assertions is not None:
            if not isinstance(assertions, list):
                errors.append(self.issue(
                    ErrorCode.INVALID_MIGRATION,
                    "Migration 'validate' must be an array of {assert: expression}",
                    f"{location}.validate",
                ))
            else:
                for position, assertion in enumerate(assertions):
                    expression = assertion.get("assert") if isinstance(assertion, dict) else None
                    if not isinstance(expression, str) or not expression.strip():
                        errors.append(self.issue(
                            ErrorCode.INVALID_MIGRATION,
                            "Migration assertion must have a non-empty 'assert' expression",
                            f"{location}.validate[{position}]",
                        ))
        return errors
