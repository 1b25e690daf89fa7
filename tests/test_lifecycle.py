"""Tests for field registration, mount/unmount and cleared-field recovery."""
import logging

import pytest

from formstate import FieldError, FieldNameError, Form, FormConfig, FormUsageError


class TestRegistration:
    """Tests for register() / Form.get_field_props()."""

    def test_empty_name_rejected(self, form):
        with pytest.raises(FieldNameError):
            form.get_field_props("")

    def test_props_shape(self, form):
        """Test that props carry the value, the ref and one handler per trigger."""
        props = form.get_field_props("a", initial_value="x")

        assert props["value"] == "x"
        assert callable(props["ref"])
        assert callable(props["on_change"])

    def test_separate_validate_trigger(self, form):
        props = form.get_field_props("a", rules=[{"required": True}], validate_trigger="on_blur")
        assert {"on_blur", "on_change"} <= set(props)

    def test_handler_identity_stable(self, form):
        """Test that re-registering returns the very same handler objects."""
        first = form.get_field_props("a", rules=[{"required": True}])
        second = form.get_field_props("a", rules=[{"required": True}])

        assert first["on_change"] is second["on_change"]
        assert first["ref"] is second["ref"]

    def test_handler_rebound_when_target_changes(self, form):
        """Test that a trigger moving from collect to validate gets a new handler."""
        collect_only = form.get_field_props("a")
        validating = form.get_field_props("a", rules=[{"required": True}])

        assert collect_only["on_change"] is not validating["on_change"]

    def test_prefix_collision_warns(self, form, caplog):
        form.get_field_props("a.b")
        with caplog.at_level(logging.WARNING):
            form.get_field_props("a")
        assert "cannot be part of another" in caplog.text

    def test_exclusive_warns(self, form, caplog):
        with caplog.at_level(logging.WARNING):
            form.get_field_props("a", exclusive=True)
        assert "exclusive" in caplog.text

    def test_config_passthrough_props(self):
        form = Form(FormConfig(field_name_prop="name", field_meta_prop="meta", field_data_prop="data"))
        props = form.get_field_props("a", initial_value=1)

        assert props["name"] == "a"
        assert props["meta"].initial_value == 1
        assert props["data"].name == "a"

    def test_value_prop_name(self, form):
        props = form.get_field_props("agree", value_prop_name="checked", initial_value=True)
        assert props["checked"] is True
        assert "value" not in props


class TestMountUnmount:
    """Tests for attach_instance() and the cleared-field cache."""

    def test_instance_recorded(self, form):
        props = form.get_field_props("a")
        widget = object()
        props["ref"](widget)
        assert form.get_field_instance("a") is widget

    def test_detach_then_reattach_restores_state(self, form):
        """Test that unmount followed by remount restores value, dirty and errors exactly."""
        props = form.get_field_props("a.b", rules=[{"required": True}])
        widget = object()
        props["ref"](widget)
        errors = [FieldError("a.b", "bad")]
        form.set_fields({"a.b": {"value": "v", "dirty": True, "errors": errors}})

        props["ref"](None)
        assert form.get_fields_value() == {}
        assert form.get_field_instance("a.b") is None

        props["ref"](widget)
        state = form.fields_store.get_field("a.b")
        assert (state.value, state.dirty, state.errors) == ("v", True, errors)
        assert form.fields_store.get_field_meta("a.b").rules == [{"required": True}]
        assert form.get_fields_value() == {"a": {"b": "v"}}

    def test_detach_without_reattach_removes_field(self, form):
        props = form.get_field_props("a", initial_value="init")
        props["ref"](object())
        form.set_fields_value({"a": "changed"})

        props["ref"](None)

        assert "a" not in form.fields_store
        assert form.get_fields_value() == {}
        # A later registration starts fresh
        form.get_field_props("a")
        assert not form.lifecycle.has_cleared("a")
        assert form.get_field_value("a") is None

    def test_detach_unregistered_keeps_snapshot(self, form):
        """Test that a second detach does not overwrite the pending snapshot."""
        props = form.get_field_props("a")
        props["ref"](object())
        form.set_fields_value({"a": 1})

        props["ref"](None)
        props["ref"](None)
        props["ref"](object())

        assert form.get_field_value("a") == 1

    def test_adapter_ref_called(self, form):
        seen = []
        decorate = form.get_field_decorator("a")
        decorate({}, ref=seen.append)
        widget = object()

        form.lifecycle.attach_instance("a", widget)

        assert seen == [widget]

    def test_string_ref_rejected(self, form):
        decorate = form.get_field_decorator("a")
        decorate({}, ref="input")
        with pytest.raises(FormUsageError):
            form.lifecycle.attach_instance("a", object())

    def test_reset_fields_drops_cleared_cache(self, form):
        """Test that resetting the whole form forgets every cleared snapshot."""
        for name in ("a", "b"):
            props = form.get_field_props(name)
            props["ref"](object())
            props["ref"](None)
        assert form.lifecycle.has_cleared("a") and form.lifecycle.has_cleared("b")

        form.reset_fields()

        assert not form.lifecycle.has_cleared("a")
        assert not form.lifecycle.has_cleared("b")

    def test_reset_named_drops_only_those(self, form):
        for name in ("a", "b"):
            props = form.get_field_props(name)
            props["ref"](object())
            props["ref"](None)

        form.reset_fields(["a"])

        assert not form.lifecycle.has_cleared("a")
        assert form.lifecycle.has_cleared("b")
