"""sysconst - Validator for System Constitution documents.

sysconst checks declarative system specifications in six ordered phases
(structural, referential, semantic, evolution, generation safety and
verifiability) and reports every finding with a code, level and location.
"""

__version__ = "0.1.0"
__description__ = "Validator for System Constitution documents"

from sysconst.config import SysconstConfig
from sysconst.validation import ValidationIssue, ValidationResult, validate, validate_file, validate_text

__all__ = [
    "__version__",
    "__description__",
    "SysconstConfig",
    "ValidationIssue",
    "ValidationResult",
    "validate",
    "validate_file",
    "validate_text",
]
