"""Core validation framework for System Constitution documents.

Findings, results and the phase pipeline. Each phase returns its complete list
of findings; the pipeline is the only place that decides whether a later phase
may run.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import ValidationError as ModelValidationError

from ..loader import DocumentParseError, load_document, parse_document
from ..models import Document
from .index import NodeIndex

logger = logging.getLogger(__name__)

ALL_PHASES = (1, 2, 3, 4, 5, 6)
LAST_PHASE = 6


class ErrorLevel(str, Enum):
    """Finding level: hard blocks the document, soft is advisory."""
    HARD = "hard"
    SOFT = "soft"


class ErrorCode(str, Enum):
    """One code per validation rule."""
    # Phase 1 - structural
    STRUCTURAL_ERROR = "STRUCTURAL_ERROR"
    MISSING_SPEC_VERSION = "MISSING_SPEC_VERSION"
    INVALID_SPEC_VERSION = "INVALID_SPEC_VERSION"
    MISSING_PROJECT = "MISSING_PROJECT"
    MISSING_PROJECT_ID = "MISSING_PROJECT_ID"
    MISSING_VERSIONING = "MISSING_VERSIONING"
    MISSING_VERSIONING_STRATEGY = "MISSING_VERSIONING_STRATEGY"
    MISSING_CURRENT_VERSION = "MISSING_CURRENT_VERSION"
    MISSING_STRUCTURE = "MISSING_STRUCTURE"
    MISSING_STRUCTURE_ROOT = "MISSING_STRUCTURE_ROOT"
    MISSING_DOMAIN = "MISSING_DOMAIN"
    MISSING_DOMAIN_NODES = "MISSING_DOMAIN_NODES"
    INVALID_NODE = "INVALID_NODE"
    MISSING_NODE_KIND = "MISSING_NODE_KIND"
    INVALID_NODE_KIND = "INVALID_NODE_KIND"
    MISSING_NODE_ID = "MISSING_NODE_ID"
    INVALID_NODE_ID = "INVALID_NODE_ID"
    DUPLICATE_NODE_ID = "DUPLICATE_NODE_ID"
    MISSING_NODE_SPEC = "MISSING_NODE_SPEC"

    # Phase 2 - referential
    UNRESOLVED_ROOT = "UNRESOLVED_ROOT"
    INVALID_ROOT_KIND = "INVALID_ROOT_KIND"
    UNRESOLVED_NODEREF = "UNRESOLVED_NODEREF"
    CIRCULAR_CHILDREN = "CIRCULAR_CHILDREN"

    # Phase 3 - semantic
    SYSTEM_MISSING_GOALS = "SYSTEM_MISSING_GOALS"
    ENTITY_MISSING_FIELDS = "ENTITY_MISSING_FIELDS"
    VALUE_MISSING_FIELDS = "VALUE_MISSING_FIELDS"
    FIELD_MISSING_TYPE = "FIELD_MISSING_TYPE"
    INVALID_FIELD_TYPE = "INVALID_FIELD_TYPE"
    UNRESOLVED_REF_TYPE = "UNRESOLVED_REF_TYPE"
    ENUM_MISSING_VALUES = "ENUM_MISSING_VALUES"
    INTERFACE_MISSING_STYLE = "INTERFACE_MISSING_STYLE"
    COMMAND_MISSING_INPUT = "COMMAND_MISSING_INPUT"
    UNRESOLVED_EFFECT_EVENT = "UNRESOLVED_EFFECT_EVENT"
    UNRESOLVED_EFFECT_ENTITY = "UNRESOLVED_EFFECT_ENTITY"
    EVENT_MISSING_PAYLOAD = "EVENT_MISSING_PAYLOAD"
    QUERY_MISSING_INPUT = "QUERY_MISSING_INPUT"
    QUERY_MISSING_OUTPUT = "QUERY_MISSING_OUTPUT"
    PROCESS_MISSING_TRIGGER = "PROCESS_MISSING_TRIGGER"
    INVALID_PROCESS_TRIGGER = "INVALID_PROCESS_TRIGGER"
    INVALID_PROCESS_CHILDREN = "INVALID_PROCESS_CHILDREN"
    STEP_MISSING_ACTION = "STEP_MISSING_ACTION"
    POLICY_MISSING_RULES = "POLICY_MISSING_RULES"
    SCENARIO_MISSING_GIVEN = "SCENARIO_MISSING_GIVEN"
    SCENARIO_MISSING_WHEN = "SCENARIO_MISSING_WHEN"
    SCENARIO_MISSING_THEN = "SCENARIO_MISSING_THEN"
    INVALID_CONTRACT = "INVALID_CONTRACT"
    INVALID_INVARIANT = "INVALID_INVARIANT"
    INVALID_TEMPORAL = "INVALID_TEMPORAL"

    # Phase 4 - evolution
    INVALID_HISTORY_START = "INVALID_HISTORY_START"
    BROKEN_HISTORY_CHAIN = "BROKEN_HISTORY_CHAIN"
    VERSION_MISMATCH = "VERSION_MISMATCH"
    INVALID_VERSION_FORMAT = "INVALID_VERSION_FORMAT"
    INVALID_CHANGE = "INVALID_CHANGE"
    MISSING_MIGRATION = "MISSING_MIGRATION"
    MIGRATION_MISSING_ID = "MIGRATION_MISSING_ID"
    MIGRATION_MISSING_KIND = "MIGRATION_MISSING_KIND"
    INVALID_MIGRATION_KIND = "INVALID_MIGRATION_KIND"
    MIGRATION_MISSING_STEPS = "MIGRATION_MISSING_STEPS"
    INVALID_MIGRATION = "INVALID_MIGRATION"

    # Phase 5 - generation safety
    GENERATION_ERROR = "GENERATION_ERROR"
    INVALID_ZONE_MODE = "INVALID_ZONE_MODE"
    OVERLAPPING_ZONES = "OVERLAPPING_ZONES"
    DUPLICATE_HOOK_ID = "DUPLICATE_HOOK_ID"
    INVALID_HOOK_ANCHORS = "INVALID_HOOK_ANCHORS"
    HOOK_IN_OVERWRITE = "HOOK_IN_OVERWRITE"

    # Phase 6 - verifiability
    MISSING_BUILD_PIPELINE = "MISSING_BUILD_PIPELINE"
    MISSING_TEST_PIPELINE = "MISSING_TEST_PIPELINE"
    MISSING_MIGRATE_PIPELINE = "MISSING_MIGRATE_PIPELINE"
    EMPTY_PIPELINE_CMD = "EMPTY_PIPELINE_CMD"
    LOW_SCENARIO_COVERAGE = "LOW_SCENARIO_COVERAGE"
    SCENARIO_INVALID_COMMAND = "SCENARIO_INVALID_COMMAND"


@dataclass(frozen=True)
class ValidationIssue:
    """A single finding produced by a validation phase."""
    code: ErrorCode
    phase: int
    level: ErrorLevel
    message: str
    location: str = ""
    suggestion: str | None = None
    context: dict[str, Any] | None = None

    @property
    def is_hard(self) -> bool:
        return self.level == ErrorLevel.HARD

    def __str__(self) -> str:
        location = f" at {self.location}" if self.location else ""
        return f"[{self.level.value.upper()}] {self.code.value}: {self.message}{location}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "code": self.code.value,
            "phase": self.phase,
            "level": self.level.value,
            "message": self.message,
            "location": self.location,
            "suggestion": self.suggestion,
            "context": self.context,
        }


@dataclass
class ValidationResult:
    """Aggregated outcome of a validation run."""
    ok: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    phase: int = 1

    @property
    def exit_code(self) -> int:
        """Exit code for CI: 0 = ok, 1 = not ok."""
        return 0 if self.ok else 1

    @property
    def findings(self) -> list[ValidationIssue]:
        return [*self.errors, *self.warnings]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "ok": self.ok,
            "phase": self.phase,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }


def has_hard_errors(findings: Iterable[ValidationIssue]) -> bool:
    return any(issue.is_hard for issue in findings)


def build_result(findings: list[ValidationIssue], phase: int, strict: bool) -> ValidationResult:
    """Split findings into errors and warnings and compute the verdict.

    In strict mode every finding counts as an error and ``warnings`` is empty.
    """
    if strict:
        return ValidationResult(ok=not findings, errors=list(findings), warnings=[], phase=phase)

    hard = [issue for issue in findings if issue.is_hard]
    soft = [issue for issue in findings if not issue.is_hard]
    return ValidationResult(ok=not hard, errors=hard, warnings=soft, phase=phase)


def normalize_phases(phases: Iterable[int] | None) -> tuple[int, ...]:
    """Sorted, de-duplicated phase selection.

    Raises:
        ValueError: On an unknown phase number or an empty selection
    """
    if phases is None:
        return ALL_PHASES

    selected = sorted(set(phases))
    unknown = [p for p in selected if p not in ALL_PHASES]
    if unknown:
        raise ValueError(f"Invalid phase: {unknown[0]}. Must be one of: {', '.join(map(str, ALL_PHASES))}")
    if not selected:
        raise ValueError("At least one phase must be selected")
    return tuple(selected)


def format_model_location(loc: tuple[Any, ...]) -> str:
    """Render a pydantic error location as a document path (``a.b[0].c``)."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


class PhaseChecker(ABC):
    """Base class for validation phases."""

    @property
    @abstractmethod
    def number(self) -> int:
        """Phase number (1-6)."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Phase name for logging."""
        pass

    def issue(
        self,
        code: ErrorCode,
        message: str,
        location: str = "",
        *,
        level: ErrorLevel = ErrorLevel.HARD,
        suggestion: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> ValidationIssue:
        """Create a finding attributed to this phase."""
        return ValidationIssue(code, self.number, level, message, location, suggestion, context)


class DocumentPhase(PhaseChecker):
    """A phase that runs on the typed document and its node index."""

    @abstractmethod
    def validate(self, document: Document, index: NodeIndex) -> list[ValidationIssue]:
        """Return every finding of this phase.

        Args:
            document: Immutable typed document
            index: Node index built for this run
        """
        pass


class ValidationPipeline:
    """Runs the validation phases in order and aggregates their findings."""

    def __init__(self, phases: Iterable[int] | None = None, strict: bool = False):
        self.phases = normalize_phases(phases)
        self.strict = strict

        from .structural import StructuralPhase
        self.structural = StructuralPhase()
        self.document_phases: dict[int, DocumentPhase] = {}
        self.create_default_phases()

    def create_default_phases(self) -> None:
        """Register phases 2-6."""
        from .evolution import EvolutionPhase
        from .generation_safety import GenerationSafetyPhase
        from .referential import ReferentialPhase
        from .semantic import SemanticPhase
        from .verifiability import VerifiabilityPhase

        for phase in (
            ReferentialPhase(),
            SemanticPhase(),
            EvolutionPhase(),
            GenerationSafetyPhase(),
            VerifiabilityPhase(),
        ):
            self.document_phases[phase.number] = phase

    def validate(self, raw: Any) -> ValidationResult:
        """Validate a parsed (untyped) document.

        Args:
            raw: Value returned by the parser, normally a mapping

        Returns:
            ValidationResult with verdict, errors, warnings and last phase attempted
        """
        findings: list[ValidationIssue] = []
        current = self.phases[0]

        logger.info(f"Starting validation of phases {', '.join(map(str, self.phases))}"
                    f"{' (strict)' if self.strict else ''}")

        if 1 in self.phases:
            current = 1
            findings.extend(self.structural.validate(raw))
            if has_hard_errors(findings):
                logger.info("Stopping after phase 1: structural errors present")
                return self._finish(findings, current)

        later = [p for p in self.phases if p > 1]
        if not later:
            return self._finish(findings, current)

        try:
            document = Document.from_raw(raw)
        except ModelValidationError as e:
            logger.info(f"Document model could not be built: {e.error_count()} problem(s)")
            findings.extend(
                self.structural.issue(
                    ErrorCode.STRUCTURAL_ERROR,
                    f"Invalid document shape: {error['msg']}",
                    format_model_location(error["loc"]),
                )
                for error in e.errors()
            )
            return self._finish(findings, 1)

        index = NodeIndex.build(document.nodes)

        for number in later:
            current = number
            phase = self.document_phases[number]
            logger.debug(f"Running phase {number}: {phase.name}")
            phase_findings = phase.validate(document, index)
            logger.debug(f"Phase {number} produced {len(phase_findings)} finding(s)")
            findings.extend(phase_findings)

            if number < LAST_PHASE and has_hard_errors(findings):
                logger.info(f"Stopping after phase {number}: hard errors present")
                break

        return self._finish(findings, current)

    def validate_text(self, text: str, fmt: str | None = None) -> ValidationResult:
        """Parse and validate source text.

        A parse failure becomes a single hard phase-1 error with no location.
        """
        try:
            raw = parse_document(text, fmt)
        except DocumentParseError as e:
            logger.info(f"Parse failure: {e}")
            return self._finish([self.structural.issue(ErrorCode.STRUCTURAL_ERROR, str(e))], 1)
        return self.validate(raw)

    def validate_file(self, path: str | Path) -> ValidationResult:
        """Load and validate a document file.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        try:
            raw = load_document(path)
        except DocumentParseError as e:
            return self._finish([self.structural.issue(ErrorCode.STRUCTURAL_ERROR, str(e))], 1)
        return self.validate(raw)

    def _finish(self, findings: list[ValidationIssue], phase: int) -> ValidationResult:
        result = build_result(findings, phase, self.strict)
        logger.info(f"Validation finished at phase {phase}: "
                    f"{'ok' if result.ok else 'not ok'} "
                    f"({len(result.errors)} error(s), {len(result.warnings)} warning(s))")
        return result


def validate(raw: Any, phases: Iterable[int] | None = None, strict: bool = False) -> ValidationResult:
    """Validate a parsed document with the given phase selection."""
    return ValidationPipeline(phases, strict).validate(raw)


def validate_text(text: str, phases: Iterable[int] | None = None, strict: bool = False,
                  fmt: str | None = None) -> ValidationResult:
    """Parse YAML/JSON text and validate it."""
    return ValidationPipeline(phases, strict).validate_text(text, fmt)


def validate_file(path: str | Path, phases: Iterable[int] | None = None,
                  strict: bool = False) -> ValidationResult:
    """Load a YAML/JSON file and validate it."""
    return ValidationPipeline(phases, strict).validate_file(path)


def validate_phase(raw: Any, phase: int) -> list[ValidationIssue]:
    """Run a single phase and return its raw findings, without gating.

    Raises:
        ValueError: On an unknown phase number, or when the document cannot
            be typed for a phase above 1
    """
    pipeline = ValidationPipeline([phase])
    if phase == 1:
        return pipeline.structural.validate(raw)

    try:
        document = Document.from_raw(raw)
    except ModelValidationError as e:
        raise ValueError(f"Document cannot be typed for phase {phase}: {e}") from e
    return pipeline.document_phases[phase].validate(document, NodeIndex.build(document.nodes))
