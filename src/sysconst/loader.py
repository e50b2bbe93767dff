"""Parsing of System Constitution source text (YAML or JSON)."""

import json
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class DocumentParseError(ValueError):
    """Source text could not be parsed into a document value."""


def detect_format(text: str, path: str | Path | None = None) -> str:
    """Guess the source format: ``json`` or ``yaml``."""
    if path is not None and Path(path).suffix.lower() == ".json":
        return "json"
    if text.lstrip().startswith("{"):
        return "json"
    return "yaml"


def parse_document(text: str, fmt: str | None = None) -> Any:
    """Parse source text into a plain value (normally a mapping).

    Args:
        text: YAML or JSON source
        fmt: ``json`` or ``yaml``; detected from the text when omitted

    Returns:
        The parsed value. Shape is not checked here.

    Raises:
        DocumentParseError: If the text is not valid YAML/JSON
    """
    fmt = fmt or detect_format(text)

    if fmt == "json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise DocumentParseError(f"Failed to parse JSON: {e}") from e

    if fmt != "yaml":
        raise ValueError(f"Unsupported format '{fmt}'. Must be one of: json, yaml")

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DocumentParseError(f"Failed to parse YAML: {e}") from e


def load_document(path: str | Path) -> Any:
    """Read and parse a document file.

    Raises:
        FileNotFoundError: If the file does not exist
        DocumentParseError: If the content cannot be parsed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    logger.debug(f"Loading document from {path}")
    text = path.read_text(encoding="utf-8")
    return parse_document(text, detect_format(text, path))


def dump_document(raw: Any) -> str:
    """Serialise a raw document back to YAML, keeping key order."""
    return yaml.safe_dump(raw, sort_keys=False, allow_unicode=True, default_flow_style=False)
