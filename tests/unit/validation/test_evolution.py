"""Tests for phase 4 evolution validation."""

import pytest
import yaml

from sysconst.models import Change, Document, Migration
from sysconst.validation import ErrorCode, ErrorLevel, EvolutionPhase, NodeIndex, validate, validate_text
from sysconst.validation.evolution import covering_migration


@pytest.fixture
def phase():
    return EvolutionPhase()


@pytest.fixture
def run(phase, minimal_document):
    def _run(history, current=None):
        minimal_document["history"] = history
        if current is not None:
            minimal_document["project"]["versioning"]["current"] = current
        document = Document.from_raw(minimal_document)
        return phase.validate(document, NodeIndex.build(document.nodes))
    return _run


def codes(issues):
    return [issue.code for issue in issues]


def entry(version, based_on, changes=None, migrations=None):
    return {"version": version, "basedOn": based_on, "changes": changes or [], "migrations": migrations or []}


MIGRATION = {"id": "mig.drop-y", "kind": "data", "steps": ["drop column y"]}


class TestHistoryChain:
    """basedOn links, start entry and current version."""

    def test_no_history_is_noop(self, phase, minimal_document):
        document = Document.from_raw(minimal_document)
        assert phase.validate(document, NodeIndex.build(document.nodes)) == []

    def test_valid_chain(self, run):
        history = [entry("1.0.0", None), entry("1.1.0", "1.0.0"), entry("2.0.0-rc.1", "1.1.0")]
        assert run(history, current="2.0.0-rc.1") == []

    def test_first_entry_must_have_no_base(self, run):
        issues = run([entry("1.0.0", "0.9.0")])

        assert codes(issues) == [ErrorCode.INVALID_HISTORY_START]
        assert issues[0].location == "history[0].basedOn"

    def test_broken_chain_names_both_versions(self, run):
        issues = run([entry("1.0.0", None), entry("1.1.0", "1.0.0"), entry("1.2.0", "1.0.0")], current="1.2.0")

        assert codes(issues) == [ErrorCode.BROKEN_HISTORY_CHAIN]
        assert "1.2.0" in issues[0].message
        assert "1.1.0" in issues[0].message
        assert issues[0].context == {"version": "1.2.0", "basedOn": "1.0.0", "expected": "1.1.0"}

    def test_current_must_match_last_version(self, run):
        issues = run([entry("1.0.0", None), entry("1.1.0", "1.0.0")], current="1.0.0")

        assert codes(issues) == [ErrorCode.VERSION_MISMATCH]
        assert issues[0].location == "project.versioning.current"

    def test_empty_changes_and_migrations_keys(self, minimal_document):
        text = yaml.safe_dump(minimal_document, sort_keys=False)
        text += 'history:\n  - version: "1.0.0"\n    basedOn: null\n    changes:\n    migrations:\n'

        result = validate_text(text, fmt="yaml")

        assert result.ok, [str(issue) for issue in result.errors]
        assert result.errors == []

    @pytest.mark.parametrize("version", ["1.0", "v1.0.0", "01.0.0", "latest"])
    def test_invalid_version_format(self, run, version):
        assert codes(run([entry(version, None)], current=version)) == [ErrorCode.INVALID_VERSION_FORMAT]


class TestMigrations:
    """Breaking changes require migrations."""

    def test_remove_field_without_migration(self, run):
        history = [
            {"version": "1.0.0", "basedOn": None},
            {"version": "1.1.0", "basedOn": "1.0.0",
             "changes": [{"op": "remove-field", "target": "entity.x", "field": "y"}], "migrations": []},
        ]

        issues = run(history, current="1.1.0")

        assert codes(issues) == [ErrorCode.MISSING_MIGRATION]
        assert issues[0].level == ErrorLevel.HARD
        assert issues[0].location == "history[1].changes[0]"
        assert "remove-field" in issues[0].message
        assert "entity.x" in issues[0].message

    def test_missing_migration_through_pipeline(self, minimal_document):
        minimal_document["project"]["versioning"]["current"] = "1.1.0"
        minimal_document["history"] = [
            {"version": "1.0.0", "basedOn": None},
            {"version": "1.1.0", "basedOn": "1.0.0",
             "changes": [{"op": "remove-field", "target": "entity.x", "field": "y"}], "migrations": []},
        ]

        result = validate(minimal_document)

        assert result.phase == 4
        assert codes(result.errors) == [ErrorCode.MISSING_MIGRATION]

    def test_migration_covers_breaking_change(self, run):
        history = [
            entry("1.0.0", None),
            entry("1.1.0", "1.0.0", changes=[{"op": "remove-field", "target": "entity.x", "field": "y"}],
                  migrations=[MIGRATION]),
        ]
        assert run(history, current="1.1.0") == []

    @pytest.mark.parametrize("change", [
        {"op": "rename-field", "target": "entity.x", "from": "a", "to": "b"},
        {"op": "type-change", "target": "entity.x", "field": "a", "type": "int"},
        {"op": "remove-node", "target": "entity.x"},
        {"op": "rename-node", "target": "entity.x", "to": "entity.z"},
        {"op": "add-field", "target": "entity.x", "field": "z", "type": "string", "required": True},
    ])
    def test_breaking_ops(self, run, change):
        history = [entry("1.0.0", None), entry("1.1.0", "1.0.0", changes=[change])]
        assert codes(run(history, current="1.1.0")) == [ErrorCode.MISSING_MIGRATION]

    @pytest.mark.parametrize("change", [
        {"op": "add-field", "target": "entity.x", "field": "z", "type": "string"},
        {"op": "add-field", "target": "entity.x", "field": "z", "type": "string", "required": False},
        {"op": "add-node", "target": "entity.new"},
    ])
    def test_non_breaking_ops(self, run, change):
        history = [entry("1.0.0", None), entry("1.1.0", "1.0.0", changes=[change])]
        assert run(history, current="1.1.0") == []

    def test_invalid_change(self, run):
        history = [entry("1.0.0", None, changes=[{"op": "drop-table", "target": "x"}, {"op": "add-node"}])]

        issues = run(history)

        assert codes(issues) == [ErrorCode.INVALID_CHANGE, ErrorCode.INVALID_CHANGE]
        assert [i.location for i in issues] == ["history[0].changes[0]", "history[0].changes[1]"]

    def test_migration_shape(self, run):
        history = [entry("1.0.0", None, migrations=[
            {},
            {"id": "mig.a", "kind": "magic", "steps": []},
            {"id": "mig.b", "kind": "schema", "steps": ["alter"], "validate": [{"assert": ""}, {"check": "x"}]},
            {"id": "mig.c", "kind": "process", "steps": ["rerun"], "validate": "count > 0"},
        ])]

        issues = run(history)

        assert codes(issues) == [
            ErrorCode.MIGRATION_MISSING_ID,
            ErrorCode.MIGRATION_MISSING_KIND,
            ErrorCode.MIGRATION_MISSING_STEPS,
            ErrorCode.INVALID_MIGRATION_KIND,
            ErrorCode.MIGRATION_MISSING_STEPS,
            ErrorCode.INVALID_MIGRATION,
            ErrorCode.INVALID_MIGRATION,
            ErrorCode.INVALID_MIGRATION,
        ]


class TestCoveringMigration:
    """Selection of the migration that covers a change."""

    def test_prefers_migration_naming_the_target(self):
        change = Change(op="remove-field", target="entity.order", field="notes")
        migrations = [Migration(id="mig.cleanup"), Migration(id="mig.order-notes")]

        assert covering_migration(change, migrations).id == "mig.order-notes"

    def test_falls_back_to_any_migration(self):
        change = Change(op="remove-node", target="entity.order")
        assert covering_migration(change, [Migration(id="mig.cleanup")]).id == "mig.cleanup"

    def test_none_without_migrations(self):
        assert covering_migration(Change(op="remove-node", target="entity.order"), []) is None
