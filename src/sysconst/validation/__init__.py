"""Six-phase validation of System Constitution documents.

Phases run in order (structural, referential, semantic, evolution,
generation safety, verifiability) and the pipeline stops after any of the
first five reports a hard error.
"""

from .evolution import EvolutionPhase
from .framework import (
    ALL_PHASES,
    DocumentPhase,
    ErrorCode,
    ErrorLevel,
    PhaseChecker,
    ValidationIssue,
    ValidationPipeline,
    ValidationResult,
    validate,
    validate_file,
    validate_phase,
    validate_text,
)
from .generation_safety import GenerationSafetyPhase
from .index import NodeIndex, parse_node_ref
from .referential import ReferentialPhase
from .semantic import SemanticPhase
from .structural import StructuralPhase
from .verifiability import VerifiabilityPhase

__all__ = [
    "ALL_PHASES",
    "DocumentPhase",
    "ErrorCode",
    "ErrorLevel",
    "PhaseChecker",
    "ValidationIssue",
    "ValidationPipeline",
    "ValidationResult",
    "validate",
    "validate_file",
    "validate_phase",
    "validate_text",
    "NodeIndex",
    "parse_node_ref",
    "StructuralPhase",
    "ReferentialPhase",
    "SemanticPhase",
    "EvolutionPhase",
    "GenerationSafetyPhase",
    "VerifiabilityPhase",
]
