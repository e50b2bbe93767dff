"""Phase 6: verifiability.

Pipelines are hard requirements when declared; scenario coverage is advisory.
"""

import logging
from typing import Any

from ..models import Document, NodeKind
from .framework import DocumentPhase, ErrorCode, ErrorLevel, ValidationIssue
from .index import NodeIndex, ref_target

logger = logging.getLogger(__name__)

REQUIRED_PIPELINES = {
    "build": ErrorCode.MISSING_BUILD_PIPELINE,
    "test": ErrorCode.MISSING_TEST_PIPELINE,
    "migrate": ErrorCode.MISSING_MIGRATE_PIPELINE,
}


def scenario_commands(when: Any) -> list[str]:
    """Command ids named by a scenario's ``when`` actions.

    Accepts ``command: {id: cmd.x}`` and the short form ``command: cmd.x``.
    """
    commands = []
    for action in when if isinstance(when, list) else []:
        command = action.get("command") if isinstance(action, dict) else None
        if isinstance(command, dict):
            command = command.get("id")
        command_id = ref_target(command)
        if command_id is not None:
            commands.append(command_id)
    return commands


class VerifiabilityPhase(DocumentPhase):
    """Build/test/migrate pipelines and scenario coverage of commands."""

    @property
    def number(self) -> int:
        return 6

    @property
    def name(self) -> str:
        return "verifiability"

    def validate(self, document: Document, index: NodeIndex) -> list[ValidationIssue]:
        errors = self._check_pipelines(document)
        errors.extend(self._check_coverage(document, index))
        return errors

    def _check_pipelines(self, document: Document) -> list[ValidationIssue]:
        if document.generation is None or document.generation.pipelines is None:
            return []

        errors = []
        pipelines = document.generation.pipelines
        for name, missing_code in REQUIRED_PIPELINES.items():
            pipeline = pipelines.get(name)
            if pipeline is None:
                errors.append(self.issue(
                    missing_code,
                    f"Missing required '{name}' pipeline",
                    "generation.pipelines",
                ))
            elif not isinstance(pipeline.cmd, str) or not pipeline.cmd.strip():
                errors.append(self.issue(
                    ErrorCode.EMPTY_PIPELINE_CMD,
                    f"'{name}' pipeline has empty command",
                    f"generation.pipelines.{name}.cmd",
                ))
        return errors

    def _check_coverage(self, document: Document, index: NodeIndex) -> list[ValidationIssue]:
        warnings = []
        covered: set[str] = set()

        for position, node in enumerate(document.nodes):
            if node.kind != NodeKind.SCENARIO:
                continue
            for command_id in scenario_commands(node.spec.get("when")):
                covered.add(command_id)
                if command_id not in index.commands:
                    warnings.append(self.issue(
                        ErrorCode.SCENARIO_INVALID_COMMAND,
                        f"Scenario '{node.id}' runs unknown command '{command_id}'",
                        f"domain.nodes[{position}].spec.when",
                        level=ErrorLevel.SOFT,
                    ))

        for position, node in enumerate(document.nodes):
            if node.kind == NodeKind.COMMAND and node.id not in covered:
                warnings.append(self.issue(
                    ErrorCode.LOW_SCENARIO_COVERAGE,
                    f"Command '{node.id}' has no test scenarios",
                    f"domain.nodes[{position}]",
                    level=ErrorLevel.SOFT,
                    suggestion=f"Add a Scenario that tests {node.id}",
                ))

        logger.debug(f"Scenario coverage: {len(covered & index.commands)}/{len(index.commands)} command(s)")
        return warnings
