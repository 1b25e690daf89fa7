"""
Form: the adapter-facing API over one FieldsStore.

Form wires the three collaborators together and is what a UI binding holds:

- FieldsStore: values, state and metadata
- FieldLifecycleManager: registration, mount/unmount, handler identity
- ValidationCoordinator: validation runs and reconciliation

Every write that should be visible to the adapter goes through
Form.set_fields(), which fires ``on_fields_change`` and the update
subscribers. The store itself never notifies.

Example::

    form = Form(FormConfig(on_values_change=print))
    props = form.get_field_props('user.email', rules=[{'required': True}])
    props['ref'](widget)              # adapter mounts the field
    props['on_change']('a@b.c')       # adapter forwards a change
    outcome = await form.validate_fields()
"""
import asyncio
from dataclasses import replace
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from formstate.config import FormConfig
from formstate.field_model import (
    FieldState,
    get_value_from_event,
    has_rules,
    rules_for_action,
)
from formstate.fields_store import FieldsStore, Names
from formstate.lifecycle import FieldLifecycleManager
from formstate.path_codec import set_in, unflatten
from formstate.rule_validator import RuleValidator, ValidateOptions
from formstate.validation import ErrorsCallback, ValidationCoordinator, ValidationOutcome

logger = logging.getLogger(__name__)


class Form:
    """State engine for one form instance."""

    def __init__(
        self,
        config: Optional[FormConfig] = None,
        rule_validator: Optional[RuleValidator] = None,
        fields: Optional[Mapping[str, Any]] = None,
    ):
        """
        Args:
            config: Form configuration.
            rule_validator: Rule validator collaborator (AsyncRuleValidator by default).
            fields: Initial field state, e.g. the result of a map_props_to_fields hook.
        """
        self.config = config if config is not None else FormConfig()
        self.fields_store = FieldsStore(fields)
        self.lifecycle = FieldLifecycleManager(
            self.fields_store,
            collect=self.on_collect,
            collect_validate=self.on_collect_validate,
            config=self.config,
        )
        self.validator = ValidationCoordinator(
            self.fields_store,
            rule_validator=rule_validator,
            commit=self.set_fields,
            validate_messages=self.config.validate_messages,
        )
        self._on_update_callbacks: List[Callable[[], None]] = []

    # === Update Subscription ===

    def on_update(self, callback: Callable[[], None]) -> None:
        """Subscribe to committed state changes (the adapter re-renders here)."""
        if callback not in self._on_update_callbacks:
            self._on_update_callbacks.append(callback)

    def off_update(self, callback: Callable[[], None]) -> None:
        if callback in self._on_update_callbacks:
            self._on_update_callbacks.remove(callback)

    def _notify_update(self) -> None:
        """Fire update callbacks (best-effort)."""
        for callback in list(self._on_update_callbacks):
            try:
                callback()
            except Exception as e:
                logger.warning(f"Error in update callback: {e}")

    # === Registration ===

    def get_field_props(self, name: str, option: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Dict[str, Any]:
        """Register ``name`` and return the props the adapter applies to its element.

        Options may be passed as a mapping, as keywords, or both (keywords win).
        """
        merged = dict(option or {})
        merged.update(kwargs)
        return self.lifecycle.register(name, merged)

    register_field = get_field_props

    def get_field_decorator(
        self,
        name: str,
        option: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> Callable[..., Dict[str, Any]]:
        """Register ``name`` and return a function decorating an element's props.

        The returned function takes the element's own props (and its ref) and
        returns them merged with the field props, the field's value winning.
        """
        props = self.get_field_props(name, option, **kwargs)

        def decorate(original_props: Optional[Mapping[str, Any]] = None, ref: Any = None) -> Dict[str, Any]:
            original = dict(original_props or {})
            meta = self.fields_store.get_field_meta(name)
            value_prop = meta.value_prop_name
            if value_prop in original:
                logger.warning(
                    f"`get_field_decorator` will override `{value_prop}`, so don't set "
                    f"`{value_prop}` directly; use `set_fields_value` to set it"
                )
            default_prop = f'default_{value_prop}'
            if default_prop in original:
                logger.warning(
                    f"`{default_prop}` is invalid for `get_field_decorator` will set "
                    f"`{value_prop}`; use option `initial_value` instead"
                )
            meta = replace(meta, original_props=original, ref=ref)
            self.fields_store.set_field_meta(name, meta)
            return {**original, **props, **self.fields_store.get_field_value_prop_value(meta)}

        return decorate

    def get_field_instance(self, name: str) -> Any:
        return self.lifecycle.get_field_instance(name)

    # === Collection (trigger handlers) ===

    def _collect_common(self, name: str, action: str, args: tuple) -> FieldState:
        store = self.fields_store
        meta = store.get_field_meta(name)
        user_handler = meta.extra.get(action) or meta.original_props.get(action)
        if callable(user_handler):
            user_handler(*args)

        extract = meta.get_value_from_event or get_value_from_event
        value = extract(*args)

        on_values_change = self.config.on_values_change
        if on_values_change is not None and value != store.get_field_value(name):
            all_values = store.get_all_values()
            all_values[name] = value
            on_values_change(set_in({}, name, value), unflatten(all_values))

        return replace(store.get_field(name), value=value, touched=True)

    def on_collect(self, name: str, action: str, *args: Any) -> None:
        """Handler for a value-only trigger: store the value, mark dirty if ruled."""
        field_state = self._collect_common(name, action, args)
        meta = self.fields_store.get_field_meta(name)
        self.set_fields({name: replace(field_state, dirty=has_rules(meta.validate))})

    def on_collect_validate(self, name: str, action: str, *args: Any) -> Optional['asyncio.Future[ValidationOutcome]']:
        """Handler for a validate trigger: store the value and validate it.

        Returns the validation future, or None when no rule fires on ``action``.
        """
        field_state = self._collect_common(name, action, args)
        meta = self.fields_store.get_field_meta(name)
        if not rules_for_action(meta, action):
            self.set_fields({name: replace(field_state, dirty=has_rules(meta.validate))})
            return None
        return self.validator.validate_fields_internal(
            [replace(field_state, dirty=True)],
            action=action,
            options=ValidateOptions(first_fields=bool(meta.validate_first)),
        )

    # === Writes ===

    def set_fields(self, maybe_nested_fields: Mapping[str, Any], callback: Optional[Callable[[], None]] = None) -> None:
        """Commit field state for registered names and notify the adapter."""
        store = self.fields_store
        fields = store.flatten_registered_fields(maybe_nested_fields)
        store.set_fields(fields)
        on_fields_change = self.config.on_fields_change
        if on_fields_change is not None:
            on_fields_change(store.get_nested_fields_state(fields), store.get_nested_all_fields())
        self._notify_update()
        if callback is not None:
            callback()

    def set_fields_value(self, changed_values: Mapping[str, Any], callback: Optional[Callable[[], None]] = None) -> None:
        """Set values of registered fields from a nested (or flat) mapping.

        Unregistered names are dropped with a warning.
        """
        store = self.fields_store
        values = store.flatten_registered_fields(changed_values)
        self.set_fields({name: {'value': value} for name, value in values.items()}, callback)
        on_values_change = self.config.on_values_change
        if on_values_change is not None:
            on_values_change(dict(changed_values), unflatten(store.get_all_values()))

    def set_fields_initial_value(self, initial_values: Mapping[str, Any]) -> None:
        self.fields_store.set_fields_initial_value(initial_values)

    def update_fields(self, fields: Mapping[str, Any]) -> None:
        """Replace all field state, e.g. from a map_props_to_fields hook."""
        self.fields_store.update_fields(fields)
        self._notify_update()

    def reset_fields(self, names: Optional[Names] = None) -> None:
        """Reset fields to their initial values and drop their cleared snapshots."""
        new_fields = self.fields_store.reset_fields(names)
        if new_fields:
            self.set_fields(new_fields)
        if names is None:
            self.lifecycle.drop_cleared()
        else:
            self.lifecycle.drop_cleared([names] if isinstance(names, str) else names)

    # === Validation ===

    def validate_fields(
        self,
        names: Optional[Names] = None,
        options: Union[None, ValidateOptions, Mapping[str, Any]] = None,
        callback: Optional[ErrorsCallback] = None,
    ) -> Optional['asyncio.Future[ValidationOutcome]']:
        """See ValidationCoordinator.validate_fields()."""
        return self.validator.validate_fields(names, options, callback)

    # === Reads ===

    def get_field_value(self, name: str) -> Any:
        return self.fields_store.get_field_value(name)

    def get_fields_value(self, names: Optional[Names] = None) -> Dict[str, Any]:
        return self.fields_store.get_fields_value(names)

    def get_field_error(self, name: str) -> Any:
        return self.fields_store.get_field_error(name)

    def get_fields_error(self, names: Optional[Names] = None) -> Dict[str, Any]:
        return self.fields_store.get_fields_error(names)

    def is_field_validating(self, name: str) -> bool:
        return self.fields_store.is_field_validating(name)

    def is_fields_validating(self, names: Optional[Names] = None) -> bool:
        return self.fields_store.is_fields_validating(names)

    def is_field_touched(self, name: str) -> bool:
        return self.fields_store.is_field_touched(name)

    def is_fields_touched(self, names: Optional[Names] = None) -> bool:
        return self.fields_store.is_fields_touched(names)
