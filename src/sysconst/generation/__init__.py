"""Generation helpers for sysconst."""

from .loop import (
    GenerationResult,
    build_error_feedback_prompt,
    command_generator,
    extract_yaml,
    generate_with_validation,
)

__all__ = [
    "GenerationResult",
    "build_error_feedback_prompt",
    "command_generator",
    "extract_yaml",
    "generate_with_validation",
]
