"""Retry-with-feedback loop around an external document generator.

The generator is any callable taking a prompt and returning text, for example
an external command wrapped by ``command_generator``. Every attempt is
validated with the full pipeline; hard errors are fed back into the next
prompt until a document passes or the attempt budget runs out.
"""

import logging
import re
import shlex
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..loader import parse_document
from ..models import SPEC_TAG
from ..validation import ValidationIssue, validate_text

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:yaml|yml)?\s*\n(.*?)\n```", re.DOTALL)
_SPEC_START = re.compile(r"(spec:\s*" + re.escape(SPEC_TAG) + r".*)", re.DOTALL)


@dataclass
class GenerationResult:
    """Outcome of the generation loop."""
    success: bool
    document: Any = None
    text: str | None = None
    attempts: int = 0
    errors: list[ValidationIssue] = field(default_factory=list)


def extract_yaml(content: str) -> str:
    """Pull the document out of a generator response.

    Prefers a fenced yaml block, then text starting at the spec tag, then the
    whole response.
    """
    match = _FENCED_BLOCK.search(content)
    if match:
        return match.group(1).strip()

    match = _SPEC_START.search(content)
    if match:
        return match.group(1).strip()

    return content.strip()


def command_generator(command: str) -> Callable[[str], str]:
    """Wrap an external command as a generator.

    The prompt is written to the command's stdin and its stdout is the
    response.

    Raises:
        ValueError: If the command is empty
    """
    args = shlex.split(command)
    if not args:
        raise ValueError("Generator command must not be empty")

    def generate(prompt: str) -> str:
        logger.debug(f"Running generator command: {args[0]}")
        result = subprocess.run(args, input=prompt, capture_output=True, text=True)
        if result.returncode != 0:
            raise RuntimeError(
                f"Generator command exited with code {result.returncode}: {result.stderr.strip()}"
            )
        return result.stdout

    return generate


def build_error_feedback_prompt(prompt: str, errors: list[ValidationIssue]) -> str:
    """Append the previous attempt's errors to the original prompt."""
    lines = [
        "",
        "",
        "---",
        "",
        "VALIDATION ERRORS FROM PREVIOUS ATTEMPT:",
        "",
        "The previous generation failed validation. Fix these errors:",
        "",
    ]
    for error in errors:
        lines.append(f"- [{error.code.value}] {error.message}")
        lines.append(f"  Location: {error.location}")
        if error.suggestion:
            lines.append(f"  Fix: {error.suggestion}")
        lines.append("")

    lines.append("Generate a corrected specification that passes all validation phases.")
    return prompt + "\n".join(lines)


def generate_with_validation(
    generate: Callable[[str], str],
    prompt: str,
    max_attempts: int = 3,
    on_attempt: Callable[[int, int], None] | None = None,
) -> GenerationResult:
    """Generate a document, validating and retrying with feedback.

    Args:
        generate: Callable returning generator output for a prompt
        prompt: Original user prompt
        max_attempts: Maximum number of generator calls (>= 1)
        on_attempt: Optional progress callback ``(attempt, max_attempts)``

    Returns:
        GenerationResult; on failure ``errors`` holds the last attempt's errors

    Raises:
        ValueError: If max_attempts < 1
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    current_prompt = prompt
    errors: list[ValidationIssue] = []

    for attempt in range(1, max_attempts + 1):
        if on_attempt is not None:
            on_attempt(attempt, max_attempts)

        text = extract_yaml(generate(current_prompt))
        result = validate_text(text, fmt="yaml")

        if result.ok:
            logger.info(f"Generated document passed validation on attempt {attempt}")
            return GenerationResult(True, parse_document(text, "yaml"), text, attempt)

        errors = result.errors
        logger.info(f"Attempt {attempt}/{max_attempts} failed with {len(errors)} error(s)")
        current_prompt = build_error_feedback_prompt(prompt, errors)

    return GenerationResult(False, attempts=max_attempts, errors=errors)
