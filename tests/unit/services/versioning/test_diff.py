"""Tests for structural payload diffs."""

from ratebook.services.versioning.diff import diff_payloads


def test_identical_documents():
    """Equal documents produce no changes."""
    doc = {"a": 1, "b": [1, {"c": "x"}]}
    assert diff_payloads(doc, dict(doc)) == []


def test_nested_paths():
    """Nested keys use dots, list positions use brackets."""
    left = {"steps": [{"order": 0, "value": "0.50"}], "name": "BOP"}
    right = {"steps": [{"order": 0, "value": "0.55"}, {"order": 1}], "owner": "pm"}

    changes = {(c.path, c.change) for c in diff_payloads(left, right)}

    assert changes == {
        ("steps[0].value", "changed"),
        ("steps[1]", "added"),
        ("name", "removed"),
        ("owner", "added"),
    }


def test_type_change_is_a_change():
    """1 and 1.0 compare equal but differ in type."""
    [change] = diff_payloads({"limit": 1}, {"limit": 1.0})
    assert change.path == "limit"


def test_root_change():
    """Scalars at the root are reported at '<root>'."""
    [change] = diff_payloads("a", "b")
    assert change.path == "<root>"
