"""Version history tooling for sysconst."""

from .history import (
    BumpResult,
    BumpType,
    append_history_entry,
    bump_version,
    current_version,
    get_history,
    next_version,
    parse_change_entry,
)

__all__ = [
    "BumpResult",
    "BumpType",
    "append_history_entry",
    "bump_version",
    "current_version",
    "get_history",
    "next_version",
    "parse_change_entry",
]
