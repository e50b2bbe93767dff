"""Phase 5: generation safety.

Zone declarations and hook placement. Zone overlap is detected by exact
path equality only: ``apps/**`` and ``apps/api/**`` are not reported.
"""

import logging
import re
from collections.abc import Hashable

from ..models import Document, Hook, Zone, ZoneMode
from .framework import DocumentPhase, ErrorCode, ValidationIssue
from .index import NodeIndex

logger = logging.getLogger(__name__)

VALID_MODES = [mode.value for mode in ZoneMode]


def glob_to_regex(pattern: str) -> re.Pattern:
    """Translate a path glob: ``**`` matches anything, ``*`` anything but ``/``."""
    pattern = pattern.replace("\\", "/")
    parts = []
    position = 0
    while position < len(pattern):
        if pattern.startswith("**", position):
            parts.append(".*")
            position += 2
        elif pattern[position] == "*":
            parts.append("[^/]*")
            position += 1
        else:
            parts.append(re.escape(pattern[position]))
            position += 1
    return re.compile("^" + "".join(parts) + "$")


def matches_glob(path: str, pattern: str) -> bool:
    return glob_to_regex(pattern).match(path.replace("\\", "/")) is not None


class GenerationSafetyPhase(DocumentPhase):
    """Zones are well formed and distinct; hooks stay out of overwrite zones."""

    @property
    def number(self) -> int:
        return 5

    @property
    def name(self) -> str:
        return "generation-safety"

    def validate(self, document: Document, index: NodeIndex) -> list[ValidationIssue]:
        generation = document.generation
        if generation is None:
            return []

        zones = generation.zones or []
        errors = self._check_zones(zones)
        errors.extend(self._check_hooks(generation.hooks or [], zones))
        return errors

    def _check_zones(self, zones: list[Zone]) -> list[ValidationIssue]:
        errors = []
        seen_paths: set[str] = set()

        for position, zone in enumerate(zones):
            location = f"generation.zones[{position}]"

            if not zone.path:
                errors.append(self.issue(ErrorCode.GENERATION_ERROR, "Zone missing 'path'", location))

            if not zone.mode:
                errors.append(self.issue(ErrorCode.GENERATION_ERROR, "Zone missing 'mode'", location))
            elif zone.mode not in VALID_MODES:
                errors.append(self.issue(
                    ErrorCode.INVALID_ZONE_MODE,
                    f"Invalid zone mode: {zone.mode}",
                    f"{location}.mode",
                    suggestion=f"Valid modes: {', '.join(VALID_MODES)}",
                ))

            if isinstance(zone.path, str) and zone.path:
                if zone.path in seen_paths:
                    errors.append(self.issue(
                        ErrorCode.OVERLAPPING_ZONES,
                        f"Duplicate zone path: {zone.path}",
                        location,
                    ))
                seen_paths.add(zone.path)
        return errors

    def _check_hooks(self, hooks: list[Hook], zones: list[Zone]) -> list[ValidationIssue]:
        errors = []
        seen_ids: set[Hashable] = set()
        overwrite_zones = [
            zone.path for zone in zones
            if zone.mode == ZoneMode.OVERWRITE.value and isinstance(zone.path, str) and zone.path
        ]

        for position, hook in enumerate(hooks):
            location = f"generation.hooks[{position}]"

            if not hook.id:
                errors.append(self.issue(ErrorCode.GENERATION_ERROR, "Hook missing 'id'", location))
            elif isinstance(hook.id, Hashable):
                if hook.id in seen_ids:
                    errors.append(self.issue(ErrorCode.DUPLICATE_HOOK_ID, f"Duplicate hook ID: {hook.id}", location))
                seen_ids.add(hook.id)

            if hook.location is None:
                errors.append(self.issue(ErrorCode.GENERATION_ERROR, "Hook missing 'location'", location))
                continue

            hook_file = hook.location.file
            if not isinstance(hook_file, str) or not hook_file:
                errors.append(self.issue(
                    ErrorCode.GENERATION_ERROR,
                    "Hook location missing 'file'",
                    f"{location}.location",
                ))

            start, end = hook.location.anchor_start, hook.location.anchor_end
            if not start or not end:
                errors.append(self.issue(
                    ErrorCode.INVALID_HOOK_ANCHORS,
                    "Hook location missing 'anchorStart' or 'anchorEnd'",
                    f"{location}.location",
                ))
            elif start == end:
                errors.append(self.issue(
                    ErrorCode.INVALID_HOOK_ANCHORS,
                    "Hook anchorStart and anchorEnd must be different",
                    f"{location}.location",
                ))

            if isinstance(hook_file, str) and hook_file:
                zone_path = next((path for path in overwrite_zones if matches_glob(hook_file, path)), None)
                if zone_path is not None:
                    errors.append(self.issue(
                        ErrorCode.HOOK_IN_OVERWRITE,
                        f"Hook '{hook.id}' is in overwrite zone: {zone_path}",
                        f"{location}.location.file",
                        suggestion="Move hook to an anchored zone",
                        context={"zone": zone_path, "file": hook_file},
                    ))
        return errors
