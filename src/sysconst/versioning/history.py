"""Version history tooling.

Reads the history chain and appends new entries. Documents are never edited
in place: appending returns a new raw document, which is then re-validated
by the full pipeline (phase 4 checks the extended chain).
"""

import copy
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..models import HistoryEntry
from ..validation import validate

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)(?:[-+].*)?$")


class BumpType(str, Enum):
    """Semver component to increment."""
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


@dataclass
class BumpResult:
    """Outcome of appending a history entry."""
    success: bool
    previous_version: str
    new_version: str
    document: dict[str, Any] | None = None
    errors: list[str] = field(default_factory=list)


def get_history(raw: Any) -> list[HistoryEntry]:
    """History entries of a raw document; empty when absent or unreadable."""
    entries = raw.get("history") if isinstance(raw, dict) else None
    if not isinstance(entries, list):
        return []
    return [HistoryEntry.model_validate(entry) for entry in entries if isinstance(entry, dict)]


def current_version(raw: Any) -> str | None:
    """``project.versioning.current`` of a raw document, if declared."""
    if not isinstance(raw, dict):
        return None
    project = raw.get("project")
    versioning = project.get("versioning") if isinstance(project, dict) else None
    current = versioning.get("current") if isinstance(versioning, dict) else None
    return current if isinstance(current, str) and current else None


def next_version(version: str, bump: BumpType | str) -> str:
    """Increment a semver string; a pre-release/build suffix is dropped.

    Raises:
        ValueError: If the version is not semver or the bump type is unknown
    """
    bump = BumpType(bump)
    match = _VERSION_RE.match(version)
    if match is None:
        raise ValueError(f"Invalid version format: {version}")

    major, minor, patch = (int(part) for part in match.groups())
    if bump == BumpType.MAJOR:
        return f"{major + 1}.0.0"
    if bump == BumpType.MINOR:
        return f"{major}.{minor + 1}.0"
    return f"{major}.{minor}.{patch + 1}"


def parse_change_entry(text: str) -> dict[str, str]:
    """Parse ``op:target[:field[:type]]`` into a change mapping."""
    parts = text.split(":")
    change = {"op": parts[0] or "unknown", "target": parts[1] if len(parts) > 1 else ""}
    if len(parts) > 2 and parts[2]:
        change["field"] = parts[2]
    if len(parts) > 3 and parts[3]:
        change["type"] = parts[3]
    return change


def append_history_entry(
    raw: dict[str, Any],
    bump: BumpType | str,
    notes: str,
    changes: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Return a copy of ``raw`` with a bumped version and a new history entry.

    Raises:
        ValueError: If the document has no current version or it is not semver
    """
    previous = current_version(raw)
    if previous is None:
        raise ValueError("Cannot find current version: project.versioning.current is missing")

    new_version = next_version(previous, bump)
    updated = copy.deepcopy(raw)
    updated["project"]["versioning"]["current"] = new_version

    history = updated.get("history")
    if not isinstance(history, list):
        history = []
        updated["history"] = history
    history.append({
        "version": new_version,
        "basedOn": previous,
        "changes": list(changes or []),
        "migrations": [],
        "notes": notes,
    })
    return updated


def bump_version(
    raw: dict[str, Any],
    bump: BumpType | str,
    notes: str,
    changes: list[dict[str, Any]] | None = None,
) -> BumpResult:
    """Append a history entry and re-validate the resulting document."""
    previous = current_version(raw) or "0.0.0"
    try:
        updated = append_history_entry(raw, bump, notes, changes)
    except ValueError as e:
        return BumpResult(False, previous, previous, errors=[str(e)])

    new_version = updated["project"]["versioning"]["current"]
    logger.info(f"Bumping version {previous} -> {new_version}")

    result = validate(updated)
    if not result.ok:
        return BumpResult(
            False,
            previous,
            new_version,
            errors=[f"[{issue.code.value}] {issue.message}" for issue in result.errors],
        )
    return BumpResult(True, previous, new_version, document=updated)
