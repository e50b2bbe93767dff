"""Tests for version history tooling."""

import copy

import pytest

from sysconst.versioning import (
    BumpType,
    append_history_entry,
    bump_version,
    current_version,
    get_history,
    next_version,
    parse_change_entry,
)


@pytest.fixture
def versioned_document(minimal_document):
    minimal_document["history"] = [{"version": "1.0.0", "basedOn": None, "changes": [], "migrations": []}]
    return minimal_document


class TestNextVersion:
    """Semver increments."""

    @pytest.mark.parametrize("version,bump,expected", [
        ("1.2.3", "patch", "1.2.4"),
        ("1.2.3", "minor", "1.3.0"),
        ("1.2.3", "major", "2.0.0"),
        ("0.9.9", BumpType.MINOR, "0.10.0"),
        ("2.0.0-rc.1", "patch", "2.0.1"),
    ])
    def test_increment(self, version, bump, expected):
        assert next_version(version, bump) == expected

    def test_invalid_version(self):
        with pytest.raises(ValueError, match="Invalid version format"):
            next_version("1.0", "patch")

    def test_invalid_bump_type(self):
        with pytest.raises(ValueError):
            next_version("1.0.0", "huge")


class TestReadHistory:
    """Reading the history chain."""

    def test_get_history(self, versioned_document):
        entries = get_history(versioned_document)

        assert len(entries) == 1
        assert entries[0].version == "1.0.0"
        assert entries[0].based_on is None

    def test_absent_history(self, minimal_document):
        assert get_history(minimal_document) == []
        assert get_history("not a document") == []

    def test_current_version(self, minimal_document):
        assert current_version(minimal_document) == "1.0.0"
        assert current_version({"project": {}}) is None


def test_parse_change_entry():
    assert parse_change_entry("remove-field:entity.user:nickname") == {
        "op": "remove-field", "target": "entity.user", "field": "nickname",
    }
    assert parse_change_entry("add-field:entity.user:email:string") == {
        "op": "add-field", "target": "entity.user", "field": "email", "type": "string",
    }
    assert parse_change_entry("add-node") == {"op": "add-node", "target": ""}


class TestAppendHistoryEntry:
    """Appending entries never mutates the input."""

    def test_append(self, versioned_document):
        snapshot = copy.deepcopy(versioned_document)

        updated = append_history_entry(versioned_document, "minor", "Add email")

        assert versioned_document == snapshot
        assert updated["project"]["versioning"]["current"] == "1.1.0"
        assert updated["history"][-1] == {
            "version": "1.1.0",
            "basedOn": "1.0.0",
            "changes": [],
            "migrations": [],
            "notes": "Add email",
        }

    def test_append_without_history(self, minimal_document):
        updated = append_history_entry(minimal_document, "patch", "First")

        assert "history" not in minimal_document
        assert [entry["version"] for entry in updated["history"]] == ["1.0.1"]

    def test_missing_current_version(self):
        with pytest.raises(ValueError, match="Cannot find current version"):
            append_history_entry({"project": {}}, "patch", "x")


class TestBumpVersion:
    """Bump and re-validate."""

    def test_successful_bump(self, versioned_document):
        result = bump_version(versioned_document, "minor", "Add node", [{"op": "add-node", "target": "entity.new"}])

        assert result.success
        assert result.previous_version == "1.0.0"
        assert result.new_version == "1.1.0"
        assert result.document["history"][-1]["changes"] == [{"op": "add-node", "target": "entity.new"}]
        assert result.errors == []

    def test_breaking_change_without_migration_fails(self, versioned_document):
        change = parse_change_entry("remove-field:entity.user:nickname")

        result = bump_version(versioned_document, "major", "Drop nickname", [change])

        assert not result.success
        assert result.new_version == "2.0.0"
        assert result.document is None
        assert any("MISSING_MIGRATION" in error for error in result.errors)

    def test_bump_on_document_without_history_starts_a_broken_chain(self, minimal_document):
        result = bump_version(minimal_document, "patch", "First entry")

        assert not result.success
        assert any("INVALID_HISTORY_START" in error for error in result.errors)

    def test_invalid_current_version(self, minimal_document):
        minimal_document["project"]["versioning"]["current"] = "one"

        result = bump_version(minimal_document, "patch", "x")

        assert not result.success
        assert result.new_version == "one"
        assert result.errors == ["Invalid version format: one"]
