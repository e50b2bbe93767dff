"""Phase 1: structural validation of the raw, untyped document.

Collects every shape violation in one pass, in document order. Later phases
only run when this phase reports nothing hard.
"""

import logging
import re
from typing import Any

from ..models import ID_PATTERN, SPEC_TAG, NodeKind
from .framework import ErrorCode, PhaseChecker, ValidationIssue

logger = logging.getLogger(__name__)

VALID_KINDS = [kind.value for kind in NodeKind]
_ID_RE = re.compile(ID_PATTERN)


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _is_list_of_mappings(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, dict) for item in value)


class StructuralPhase(PhaseChecker):
    """Required fields, node identity and container shapes."""

    @property
    def number(self) -> int:
        return 1

    @property
    def name(self) -> str:
        return "structural"

    def validate(self, raw: Any) -> list[ValidationIssue]:
        errors: list[ValidationIssue] = []

        if not isinstance(raw, dict):
            errors.append(self.issue(ErrorCode.STRUCTURAL_ERROR, "Spec must be an object"))
            return errors

        self._check_spec_tag(raw, errors)
        self._check_project(raw, errors)
        self._check_structure(raw, errors)
        self._check_domain(raw, errors)
        self._check_history(raw, errors)
        self._check_generation(raw, errors)
        self._check_tests(raw, errors)

        logger.debug(f"Structural phase found {len(errors)} problem(s)")
        return errors

    def _check_spec_tag(self, raw: dict, errors: list[ValidationIssue]) -> None:
        if "spec" not in raw:
            errors.append(self.issue(
                ErrorCode.MISSING_SPEC_VERSION,
                "Missing 'spec' field",
                suggestion=f"Add 'spec: {SPEC_TAG}' at the root",
            ))
        elif raw["spec"] != SPEC_TAG:
            errors.append(self.issue(
                ErrorCode.INVALID_SPEC_VERSION,
                f"Invalid spec version: {raw['spec']}",
                "spec",
                suggestion=f"Use 'spec: {SPEC_TAG}'",
            ))

    def _check_project(self, raw: dict, errors: list[ValidationIssue]) -> None:
        if "project" not in raw:
            errors.append(self.issue(ErrorCode.MISSING_PROJECT, "Missing 'project' field"))
            return

        project = raw["project"]
        if not isinstance(project, dict):
            errors.append(self.issue(ErrorCode.STRUCTURAL_ERROR, "'project' must be an object", "project"))
            return

        if _is_blank(project.get("id")):
            errors.append(self.issue(ErrorCode.MISSING_PROJECT_ID, "Missing 'project.id'", "project"))

        versioning = project.get("versioning")
        if not versioning:
            errors.append(self.issue(ErrorCode.MISSING_VERSIONING, "Missing 'project.versioning'", "project"))
            return
        if not isinstance(versioning, dict):
            errors.append(self.issue(
                ErrorCode.STRUCTURAL_ERROR,
                "'project.versioning' must be an object",
                "project.versioning",
            ))
            return

        if not versioning.get("strategy"):
            errors.append(self.issue(
                ErrorCode.MISSING_VERSIONING_STRATEGY,
                "Missing 'project.versioning.strategy'",
                "project.versioning",
                suggestion="Add 'strategy: semver'",
            ))
        if _is_blank(versioning.get("current")):
            errors.append(self.issue(
                ErrorCode.MISSING_CURRENT_VERSION,
                "Missing 'project.versioning.current' (must be a version string)",
                "project.versioning",
                suggestion='Quote the version, e.g. current: "1.0.0"',
            ))

    def _check_structure(self, raw: dict, errors: list[ValidationIssue]) -> None:
        if "structure" not in raw:
            errors.append(self.issue(ErrorCode.MISSING_STRUCTURE, "Missing 'structure' field"))
            return

        structure = raw["structure"]
        if not isinstance(structure, dict) or _is_blank(structure.get("root")):
            errors.append(self.issue(ErrorCode.MISSING_STRUCTURE_ROOT, "Missing 'structure.root'", "structure"))

    def _check_domain(self, raw: dict, errors: list[ValidationIssue]) -> None:
        if "domain" not in raw:
            errors.append(self.issue(ErrorCode.MISSING_DOMAIN, "Missing 'domain' field"))
            return

        domain = raw["domain"]
        nodes = domain.get("nodes") if isinstance(domain, dict) else None
        if not isinstance(nodes, list):
            errors.append(self.issue(ErrorCode.MISSING_DOMAIN_NODES, "Missing or invalid 'domain.nodes'", "domain"))
            return

        seen_ids: set[str] = set()
        for index, node in enumerate(nodes):
            self._check_node(node, f"domain.nodes[{index}]", seen_ids, errors)

    def _check_node(self, node: Any, location: str, seen_ids: set[str], errors: list[ValidationIssue]) -> None:
        if not isinstance(node, dict):
            errors.append(self.issue(ErrorCode.INVALID_NODE, "Node must be an object", location))
            return

        if "kind" not in node:
            errors.append(self.issue(ErrorCode.MISSING_NODE_KIND, "Node missing 'kind'", location))
        elif node["kind"] not in VALID_KINDS:
            errors.append(self.issue(
                ErrorCode.INVALID_NODE_KIND,
                f"Invalid node kind: {node['kind']}",
                f"{location}.kind",
                suggestion=f"Valid kinds: {', '.join(VALID_KINDS)}",
            ))

        if "id" not in node:
            errors.append(self.issue(ErrorCode.MISSING_NODE_ID, "Node missing 'id'", location))
        else:
            node_id = node["id"]
            if not isinstance(node_id, str) or not _ID_RE.match(node_id):
                errors.append(self.issue(
                    ErrorCode.INVALID_NODE_ID,
                    f"Invalid node ID format: {node_id}",
                    f"{location}.id",
                    suggestion=f"ID must match pattern: {ID_PATTERN}",
                ))
            elif node_id in seen_ids:
                errors.append(self.issue(
                    ErrorCode.DUPLICATE_NODE_ID,
                    f"Duplicate node ID: {node_id}",
                    f"{location}.id",
                ))
            else:
                seen_ids.add(node_id)

        if "spec" not in node:
            errors.append(self.issue(ErrorCode.MISSING_NODE_SPEC, "Node missing 'spec'", location))
        elif not isinstance(node["spec"], dict):
            errors.append(self.issue(ErrorCode.MISSING_NODE_SPEC, "'spec' must be an object", f"{location}.spec"))
        else:
            for key in node["spec"]:
                if not isinstance(key, str):
                    errors.append(self.issue(
                        ErrorCode.STRUCTURAL_ERROR,
                        f"'spec' keys must be strings, got: {key!r}",
                        f"{location}.spec",
                        suggestion=f"Quote the key, e.g. '{key}':",
                    ))

        if node.get("children") is not None and not isinstance(node["children"], list):
            errors.append(self.issue(
                ErrorCode.STRUCTURAL_ERROR,
                "'children' must be an array",
                f"{location}.children",
            ))

        if node.get("contracts") is not None and not _is_list_of_mappings(node["contracts"]):
            errors.append(self.issue(
                ErrorCode.STRUCTURAL_ERROR,
                "'contracts' must be an array of objects",
                f"{location}.contracts",
            ))

    def _check_history(self, raw: dict, errors: list[ValidationIssue]) -> None:
        history = raw.get("history")
        if history is None:
            return
        if not isinstance(history, list):
            errors.append(self.issue(ErrorCode.STRUCTURAL_ERROR, "'history' must be an array", "history"))
            return

        for index, entry in enumerate(history):
            location = f"history[{index}]"
            if not isinstance(entry, dict):
                errors.append(self.issue(ErrorCode.STRUCTURAL_ERROR, "History entry must be an object", location))
                continue

            if _is_blank(entry.get("version")):
                errors.append(self.issue(
                    ErrorCode.STRUCTURAL_ERROR,
                    "History entry 'version' must be a version string",
                    f"{location}.version",
                    suggestion='Quote the version, e.g. version: "1.0.0"',
                ))
            based_on = entry.get("basedOn")
            if based_on is not None and not isinstance(based_on, str):
                errors.append(self.issue(
                    ErrorCode.STRUCTURAL_ERROR,
                    "History entry 'basedOn' must be a version string or null",
                    f"{location}.basedOn",
                ))
            for key in ("changes", "migrations"):
                if entry.get(key) is not None and not _is_list_of_mappings(entry[key]):
                    errors.append(self.issue(
                        ErrorCode.STRUCTURAL_ERROR,
                        f"'{key}' must be an array of objects",
                        f"{location}.{key}",
                    ))

    def _check_generation(self, raw: dict, errors: list[ValidationIssue]) -> None:
        generation = raw.get("generation")
        if generation is None:
            return
        if not isinstance(generation, dict):
            errors.append(self.issue(ErrorCode.STRUCTURAL_ERROR, "'generation' must be an object", "generation"))
            return

        for key in ("zones", "hooks"):
            if generation.get(key) is not None and not _is_list_of_mappings(generation[key]):
                errors.append(self.issue(
                    ErrorCode.STRUCTURAL_ERROR,
                    f"'generation.{key}' must be an array of objects",
                    f"generation.{key}",
                ))

        hooks = generation.get("hooks")
        for index, hook in enumerate(hooks if isinstance(hooks, list) else []):
            if isinstance(hook, dict) and hook.get("location") is not None and not isinstance(hook["location"], dict):
                errors.append(self.issue(
                    ErrorCode.STRUCTURAL_ERROR,
                    "Hook 'location' must be an object",
                    f"generation.hooks[{index}].location",
                ))

        pipelines = generation.get("pipelines")
        if pipelines is None:
            return
        if not isinstance(pipelines, dict):
            errors.append(self.issue(
                ErrorCode.STRUCTURAL_ERROR,
                "'generation.pipelines' must be an object",
                "generation.pipelines",
            ))
            return
        for name, pipeline in pipelines.items():
            if pipeline is not None and not isinstance(pipeline, dict):
                errors.append(self.issue(
                    ErrorCode.STRUCTURAL_ERROR,
                    f"Pipeline '{name}' must be an object with a 'cmd'",
                    f"generation.pipelines.{name}",
                ))

    def _check_tests(self, raw: dict, errors: list[ValidationIssue]) -> None:
        tests = raw.get("tests")
        if tests is None:
            return
        if not isinstance(tests, dict):
            errors.append(self.issue(ErrorCode.STRUCTURAL_ERROR, "'tests' must be an object", "tests"))
            return

        scenarios = tests.get("scenarios")
        if scenarios is not None and not (
            isinstance(scenarios, list) and all(isinstance(ref, str) for ref in scenarios)
        ):
            errors.append(self.issue(
                ErrorCode.STRUCTURAL_ERROR,
                "'tests.scenarios' must be an array of NodeRef strings",
                "tests.scenarios",
            ))
