"""Tests for phase 1 structural validation."""

import pytest

from sysconst.validation import ErrorCode, StructuralPhase


@pytest.fixture
def phase():
    return StructuralPhase()


def codes(issues):
    return [issue.code for issue in issues]


class TestTopLevel:
    """Root sections and project metadata."""

    def test_minimal_document_is_clean(self, phase, minimal_document):
        assert phase.validate(minimal_document) == []

    def test_non_mapping(self, phase):
        assert codes(phase.validate(["not", "a", "mapping"])) == [ErrorCode.STRUCTURAL_ERROR]
        assert codes(phase.validate(None)) == [ErrorCode.STRUCTURAL_ERROR]

    def test_empty_mapping_reports_every_missing_section(self, phase):
        assert codes(phase.validate({})) == [
            ErrorCode.MISSING_SPEC_VERSION,
            ErrorCode.MISSING_PROJECT,
            ErrorCode.MISSING_STRUCTURE,
            ErrorCode.MISSING_DOMAIN,
        ]

    def test_wrong_spec_tag(self, phase, minimal_document):
        minimal_document["spec"] = "sysconst/v2"

        issues = phase.validate(minimal_document)

        assert codes(issues) == [ErrorCode.INVALID_SPEC_VERSION]
        assert issues[0].location == "spec"

    def test_project_fields(self, phase, minimal_document):
        minimal_document["project"] = {"id": "", "versioning": {"current": 1.0}}

        assert codes(phase.validate(minimal_document)) == [
            ErrorCode.MISSING_PROJECT_ID,
            ErrorCode.MISSING_VERSIONING_STRATEGY,
            ErrorCode.MISSING_CURRENT_VERSION,
        ]

    def test_missing_versioning(self, phase, minimal_document):
        del minimal_document["project"]["versioning"]
        assert codes(phase.validate(minimal_document)) == [ErrorCode.MISSING_VERSIONING]

    def test_missing_structure_root(self, phase, minimal_document):
        minimal_document["structure"] = {}
        assert codes(phase.validate(minimal_document)) == [ErrorCode.MISSING_STRUCTURE_ROOT]

    def test_domain_nodes_not_a_list(self, phase, minimal_document):
        minimal_document["domain"] = {"nodes": {"kind": "System"}}
        assert codes(phase.validate(minimal_document)) == [ErrorCode.MISSING_DOMAIN_NODES]


class TestNodes:
    """Per-node identity and shape checks."""

    def test_node_must_be_mapping(self, phase, make_document):
        issues = phase.validate(make_document("entity.a"))

        assert codes(issues) == [ErrorCode.INVALID_NODE]
        assert issues[0].location == "domain.nodes[1]"

    def test_missing_kind_id_and_spec(self, phase, make_document):
        assert codes(phase.validate(make_document({}))) == [
            ErrorCode.MISSING_NODE_KIND,
            ErrorCode.MISSING_NODE_ID,
            ErrorCode.MISSING_NODE_SPEC,
        ]

    def test_invalid_kind(self, phase, make_document):
        issues = phase.validate(make_document({"kind": "Widget", "id": "widget.a", "spec": {}}))

        assert codes(issues) == [ErrorCode.INVALID_NODE_KIND]
        assert issues[0].location == "domain.nodes[1].kind"

    @pytest.mark.parametrize("node_id", ["Entity.A", "1entity", "entity a", "", 42])
    def test_invalid_id(self, phase, make_document, node_id):
        issues = phase.validate(make_document({"kind": "Entity", "id": node_id, "spec": {}}))
        assert codes(issues) == [ErrorCode.INVALID_NODE_ID]

    @pytest.mark.parametrize("node_id", ["a", "entity.user", "cmd.create-user", "step_1.b"])
    def test_valid_id(self, phase, make_document, node_id):
        assert phase.validate(make_document({"kind": "Entity", "id": node_id, "spec": {}})) == []

    def test_spec_must_be_mapping(self, phase, make_document):
        issues = phase.validate(make_document({"kind": "Entity", "id": "entity.a", "spec": []}))

        assert codes(issues) == [ErrorCode.MISSING_NODE_SPEC]
        assert issues[0].location == "domain.nodes[1].spec"

    def test_spec_keys_must_be_strings(self, phase, make_document):
        issues = phase.validate(make_document({"kind": "Entity", "id": "entity.a", "spec": {1: "x", "fields": {}}}))

        assert codes(issues) == [ErrorCode.STRUCTURAL_ERROR]
        assert issues[0].location == "domain.nodes[1].spec"
        assert "1" in issues[0].message

    def test_children_and_contracts_shape(self, phase, make_document):
        node = {"kind": "Entity", "id": "entity.a", "spec": {}, "children": "NodeRef(x)", "contracts": ["x"]}

        issues = phase.validate(make_document(node))

        assert codes(issues) == [ErrorCode.STRUCTURAL_ERROR, ErrorCode.STRUCTURAL_ERROR]
        assert [i.location for i in issues] == ["domain.nodes[1].children", "domain.nodes[1].contracts"]


class TestDuplicateIds:
    """One error per duplicate occurrence, first occurrence wins."""

    def test_one_error_per_duplicate_occurrence(self, phase, make_document):
        node = {"kind": "Entity", "id": "entity.a", "spec": {}}
        other = {"kind": "Entity", "id": "entity.b", "spec": {}}

        issues = phase.validate(make_document(node, other, node, node, other))

        assert codes(issues) == [ErrorCode.DUPLICATE_NODE_ID] * 3
        assert [i.location for i in issues] == [
            "domain.nodes[3].id",
            "domain.nodes[4].id",
            "domain.nodes[5].id",
        ]

    def test_duplicate_of_root(self, phase, make_document):
        issues = phase.validate(make_document({"kind": "Module", "id": "system.root", "spec": {}}))
        assert codes(issues) == [ErrorCode.DUPLICATE_NODE_ID]


class TestOptionalSections:
    """Shape checks that keep the typed model buildable."""

    def test_history_shape(self, phase, minimal_document):
        minimal_document["history"] = [
            {"version": 1.0, "basedOn": None},
            {"version": "1.1.0", "basedOn": 1, "changes": "remove everything"},
            "2.0.0",
        ]

        issues = phase.validate(minimal_document)

        assert codes(issues) == [ErrorCode.STRUCTURAL_ERROR] * 4
        assert [i.location for i in issues] == [
            "history[0].version",
            "history[1].basedOn",
            "history[1].changes",
            "history[2]",
        ]

    def test_history_must_be_list(self, phase, minimal_document):
        minimal_document["history"] = {"version": "1.0.0"}
        assert codes(phase.validate(minimal_document)) == [ErrorCode.STRUCTURAL_ERROR]

    def test_generation_shape(self, phase, minimal_document):
        minimal_document["generation"] = {
            "zones": "apps/**",
            "hooks": [{"id": "h", "location": "src/app.py"}],
            "pipelines": {"build": "make", "test": None},
        }

        issues = phase.validate(minimal_document)

        assert [i.location for i in issues] == [
            "generation.zones",
            "generation.hooks[0].location",
            "generation.pipelines.build",
        ]

    def test_tests_scenarios_shape(self, phase, minimal_document):
        minimal_document["tests"] = {"scenarios": [{"id": "scn.a"}]}

        issues = phase.validate(minimal_document)

        assert codes(issues) == [ErrorCode.STRUCTURAL_ERROR]
        assert issues[0].location == "tests.scenarios"
