"""Shared fixtures for sysconst tests."""

import copy

import pytest


def _minimal_document() -> dict:
    return {
        "spec": "sysconst/v1",
        "project": {
            "id": "my.app",
            "name": "My App",
            "versioning": {"strategy": "semver", "current": "1.0.0"},
        },
        "structure": {"root": "NodeRef(system.root)"},
        "domain": {
            "nodes": [
                {"kind": "System", "id": "system.root", "spec": {"goals": ["demo"]}},
            ]
        },
    }


@pytest.fixture
def minimal_document():
    """Smallest document that passes all six phases."""
    return _minimal_document()


@pytest.fixture
def make_document():
    """Factory: minimal document plus extra nodes and top-level sections."""
    def _make(*nodes, **sections):
        document = _minimal_document()
        document["domain"]["nodes"].extend(copy.deepcopy(list(nodes)))
        document.update(copy.deepcopy(sections))
        return document
    return _make
