"""Tests for the dotted path codec."""
import pytest

from formstate.path_codec import flatten, format_path, get_in, is_path_prefix, parse_path, set_in, unflatten


@pytest.mark.parametrize("name, segments", [
    ("a", ("a",)),
    ("a.b.c", ("a", "b", "c")),
    ("items[0].sku", ("items", 0, "sku")),
    ("grid[1][2]", ("grid", 1, 2)),
])
def test_parse_path(name, segments):
    """Test that names split into key and index segments."""
    assert parse_path(name) == segments
    assert format_path(segments) == name


@pytest.mark.parametrize("prefix, name, expected", [
    ("a", "a.b", True),
    ("a", "a[0]", True),
    ("a.b", "a.b.c", True),
    ("a", "ab", False),
    ("a", "a", False),
    ("a.b", "a", False),
])
def test_is_path_prefix(prefix, name, expected):
    """Test that only whole segments count as a prefix."""
    assert is_path_prefix(prefix, name) is expected


def test_set_in_creates_dicts_and_lists():
    """Test that set_in builds intermediate containers from the segment kinds."""
    data = {}
    set_in(data, "a.b", 1)
    set_in(data, "items[1].sku", "x")

    assert data == {"a": {"b": 1}, "items": [None, {"sku": "x"}]}


def test_set_in_replaces_scalar_intermediate():
    """Test that a scalar in the way of a deeper path is replaced."""
    data = {"a": 5}
    set_in(data, "a.b", 1)
    assert data == {"a": {"b": 1}}


def test_get_in_missing_returns_default():
    """Test that missing segments never raise."""
    data = {"a": {"b": [10, 20]}}

    assert get_in(data, "a.b[1]") == 20
    assert get_in(data, "a.b[5]") is None
    assert get_in(data, "a.c", default="nope") == "nope"
    assert get_in(data, "a.b.c") is None


def test_unflatten_sibling_names():
    """Test that sibling dotted names share their parent mapping."""
    assert unflatten({"a.b": 1, "a.c": 2}) == {"a": {"b": 1, "c": 2}}


class TestFlatten:
    """Tests for flatten()."""

    def test_stops_at_leaf_paths(self):
        """Test that a leaf holding a dict is kept whole."""
        nested = {"a": {"b": {"x": 1}, "c": 2}}
        leaves = {"a.b", "a.c"}

        flat = flatten(nested, lambda name, _node: name in leaves)

        assert flat == {"a.b": {"x": 1}, "a.c": 2}

    def test_accepts_already_flat_keys(self):
        """Test that a flat dotted key matches directly."""
        flat = flatten({"a.b": 1}, lambda name, _node: name == "a.b")
        assert flat == {"a.b": 1}

    def test_walks_lists(self):
        """Test that list items are addressed by index."""
        flat = flatten({"items": [{"sku": "x"}]}, lambda name, _node: name == "items[0].sku")
        assert flat == {"items[0].sku": "x"}

    def test_reports_unmatched_scalars(self):
        """Test that scalars outside any leaf path go to on_unmatched."""
        unmatched = []
        flat = flatten(
            {"a": {"b": 1}, "z": 3},
            lambda name, _node: name == "a.b",
            on_unmatched=lambda name, node: unmatched.append((name, node)),
        )

        assert flat == {"a.b": 1}
        assert unmatched == [("z", 3)]
