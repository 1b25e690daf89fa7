"""Tests for FieldsStore reads, writes and name handling."""
import logging

from formstate import FieldError, FieldState, FieldsStore
from formstate.field_model import UNSET

from conftest import register_meta


class TestNames:
    """Tests for registered/visible name handling."""

    def test_valid_names_exclude_hidden(self, store):
        register_meta(store, "a")
        register_meta(store, "secret", hidden=True)

        assert store.get_all_fields_name() == ["a", "secret"]
        assert store.get_valid_fields_name() == ["a"]

    def test_partial_name_expands(self, store):
        """Test that a partial name expands to every registered sub-field."""
        register_meta(store, "a.b")
        register_meta(store, "a.c")
        register_meta(store, "ab")

        assert store.get_valid_fields_full_name("a") == ["a.b", "a.c"]
        assert store.get_valid_fields_full_name(["a.b", "ab"]) == ["a.b", "ab"]

    def test_prefix_collision_detected(self, store):
        """Test that a name containing or contained by another is rejected."""
        register_meta(store, "a.b")

        assert store.is_valid_nested_field_name("a.c")
        assert store.is_valid_nested_field_name("ab")
        assert not store.is_valid_nested_field_name("a")
        assert not store.is_valid_nested_field_name("a.b.c")

    def test_flatten_registered_fields_warns(self, store, caplog):
        """Test that unregistered names are dropped with a warning."""
        register_meta(store, "a.b")

        with caplog.at_level(logging.WARNING):
            flat = store.flatten_registered_fields({"a": {"b": 1}, "x": 2})

        assert flat == {"a.b": 1}
        assert "'x'" in caplog.text


class TestValues:
    """Tests for value reads."""

    def test_nested_values_from_flat_names(self, store):
        register_meta(store, "a.b")
        register_meta(store, "a.c")
        store.set_fields({"a.b": {"value": 1}, "a.c": {"value": 2}})

        assert store.get_fields_value() == {"a": {"b": 1, "c": 2}}
        assert store.get_field_value("a") == {"b": 1, "c": 2}
        assert store.get_fields_value(["a"]) == {"a": {"b": 1, "c": 2}}

    def test_array_names(self, store):
        register_meta(store, "items[0]")
        register_meta(store, "items[1]")
        store.set_fields({"items[0]": {"value": "x"}, "items[1]": {"value": "y"}})

        assert store.get_fields_value() == {"items": ["x", "y"]}

    def test_array_partial_name(self, store):
        """Test that a partial name over indexed fields reads as a list."""
        register_meta(store, "items[0]")
        register_meta(store, "items[1].sku")
        store.set_fields({"items[0]": {"value": "x"}, "items[1].sku": {"value": "y"}})

        assert store.get_field_value("items") == ["x", {"sku": "y"}]
        assert store.get_fields_value(["items"]) == {"items": ["x", {"sku": "y"}]}
        assert store.get_field_error("items") == [None, {"sku": None}]

    def test_initial_value_fallback(self, store):
        """Test that a field with no value of its own reads its initial value."""
        register_meta(store, "a", initial_value="init")
        register_meta(store, "b")

        assert store.get_field_value("a") == "init"
        assert store.get_field_value("b") is None

    def test_unknown_names_never_raise(self, store):
        """Test that reading unregistered names returns None or skips them."""
        register_meta(store, "a")

        assert store.get_field_value("nope") is None
        assert store.get_fields_value(["a", "nope"]) == {"a": None}

    def test_hidden_excluded_from_full_reads(self, store):
        register_meta(store, "a")
        register_meta(store, "secret", hidden=True)
        store.set_fields({"a": {"value": 1}, "secret": {"value": 2}})

        assert store.get_fields_value() == {"a": 1}
        assert store.get_field_value("secret") == 2

    def test_get_all_values_is_flat(self, store):
        register_meta(store, "a.b")
        register_meta(store, "secret", hidden=True)
        store.set_fields({"a.b": {"value": 1}})

        assert store.get_all_values() == {"a.b": 1, "secret": None}

    def test_value_prop_value(self, store):
        meta = register_meta(store, "agree", value_prop_name="checked", initial_value=False)
        assert store.get_field_value_prop_value(meta) == {"checked": False}

        custom = register_meta(store, "n", get_value_props=lambda v: {"text": str(v)}, initial_value=3)
        assert store.get_field_value_prop_value(custom) == {"text": "3"}


class TestWrites:
    """Tests for set_fields(), reset_fields() and initial values."""

    def test_set_fields_replaces_per_name(self, store):
        """Test that a write replaces the stored state rather than merging it."""
        register_meta(store, "a")
        store.set_fields({"a": {"value": 1, "dirty": True}})
        store.set_fields({"a": {"value": 2}})

        assert store.get_field("a") == FieldState(name="a", value=2)

    def test_normalize_applied_on_commit(self, store):
        seen = []

        def upper(value, previous, all_values):
            seen.append((value, previous, dict(all_values)))
            return value.upper() if isinstance(value, str) else value

        register_meta(store, "code", normalize=upper)
        register_meta(store, "other")
        store.set_fields({"code": {"value": "ab"}})
        store.set_fields({"code": {"value": "cd"}, "other": {"value": 1}})

        assert store.get_field_value("code") == "CD"
        assert seen[-1] == ("cd", "AB", {"code": "cd", "other": 1})

    def test_get_field_returns_copy(self, store):
        register_meta(store, "a")
        store.set_fields({"a": {"value": 1}})

        copy = store.get_field("a")
        copy.value = 99

        assert store.get_field_value("a") == 1

    def test_reset_fields_payload(self, store):
        """Test that reset only targets fields with stored state."""
        register_meta(store, "a", initial_value="init")
        register_meta(store, "b")
        store.set_fields({"a": {"value": "changed", "dirty": True}})

        assert store.reset_fields() == {"a": {"value": "init"}}
        assert store.reset_fields("b") == {}

    def test_set_fields_initial_value(self, store):
        register_meta(store, "a.b")
        store.set_fields_initial_value({"a": {"b": 5}, "zzz": 1})

        assert store.get_field_meta("a.b").initial_value == 5
        assert store.get_field_value("a.b") == 5

    def test_clear_field(self, store):
        register_meta(store, "a")
        store.set_fields({"a": {"value": 1}})
        store.clear_field("a")

        assert "a" not in store
        assert store.get_field("a").value is UNSET

    def test_initial_fields_nested(self):
        """Test that externally supplied state may be nested."""
        store = FieldsStore({"a": {"b": {"value": 1}}, "c": FieldState(value=2)})
        assert store.fields == {
            "a.b": FieldState(name="a.b", value=1),
            "c": FieldState(name="c", value=2),
        }

    def test_update_fields_replaces_all(self, store):
        store.set_fields({"a": {"value": 1}})
        store.update_fields({"b": {"value": 2}})
        assert list(store.fields) == ["b"]


class TestErrorsAndFlags:
    """Tests for error and flag readers."""

    def test_errors_nested(self, store):
        register_meta(store, "a.b")
        register_meta(store, "a.c")
        store.set_fields({"a.b": {"value": "", "errors": [FieldError("a.b", "a.b is required")]}})

        assert store.get_field_error("a.b") == ["a.b is required"]
        assert store.get_fields_error() == {"a": {"b": ["a.b is required"], "c": None}}
        assert store.get_field_error("a") == {"b": ["a.b is required"], "c": None}

    def test_validating_and_touched(self, store):
        register_meta(store, "a")
        register_meta(store, "b")
        store.set_fields({"a": {"value": 1, "validating": True}, "b": {"value": 1, "touched": True}})

        assert store.is_field_validating("a")
        assert not store.is_field_validating("b")
        assert store.is_fields_validating()
        assert not store.is_fields_validating(["b"])
        assert store.is_fields_touched(["b"])
        assert not store.is_field_touched("nope")

    def test_nested_all_fields(self, store):
        register_meta(store, "a.b")
        store.set_fields({"a.b": {"value": 1}})
        assert store.get_nested_all_fields() == {"a": {"b": FieldState(name="a.b", value=1)}}
