"""
FieldsStore: flat storage for field state and field metadata.

Both maps are keyed by dotted field name (``"address.city"``). Nested views
are reconstructed on read through path_codec; nothing nested is stored.

The store is pure data. It never runs validation, never calls the adapter,
and never notifies anyone. Form decides when a write is observable.

Thread safety: Not thread-safe (all operations expected on the event loop thread).
"""
from dataclasses import replace
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from formstate.field_model import (
    UNSET,
    FieldMeta,
    FieldState,
    get_error_strs,
)
from formstate.path_codec import flatten, is_path_prefix, set_in

logger = logging.getLogger(__name__)

FieldPayload = Union[FieldState, Mapping[str, Any]]
Names = Union[str, Iterable[str]]


def _as_name_list(names: Names) -> List[str]:
    if isinstance(names, str):
        return [names]
    return list(names)


class FieldsStore:
    """Owner of the name → FieldState and name → FieldMeta maps.

    Core Attributes:
    - fields: Live per-field state, one entry per field that received state
    - fields_meta: Registration metadata, one entry per registered field

    Everything else is derived:
    - registered names → fields_meta keys
    - visible names → registered names whose meta is not hidden
    - nested values/errors → dotted names expanded through path_codec
    """

    def __init__(self, fields: Optional[Mapping[str, Any]] = None):
        """
        Args:
            fields: Initial field state, flat or nested, as produced by a
                ``map_props_to_fields`` style hook. Leaves are FieldState
                instances or mappings carrying FieldState attributes.
        """
        self.fields: Dict[str, FieldState] = self._flatten_field_payloads(fields or {})
        self.fields_meta: Dict[str, FieldMeta] = {}

    # ========== FIELD STATE ==========

    @staticmethod
    def _flatten_field_payloads(fields: Mapping[str, Any]) -> Dict[str, FieldState]:
        """Flatten a possibly nested mapping whose leaves are field payloads."""
        def is_field_payload(_name: str, node: Any) -> bool:
            if isinstance(node, FieldState):
                return True
            return isinstance(node, Mapping) and ('value' in node or 'errors' in node)

        def reject(name: str, node: Any) -> None:
            logger.warning(f"Ignoring field payload {name!r}: expected FieldState or mapping, got {node!r}")

        flat = flatten(fields, is_field_payload, on_unmatched=reject)
        return {name: FieldState.from_payload(name, payload) for name, payload in flat.items()}

    def update_fields(self, fields: Mapping[str, Any]) -> None:
        """Replace the whole field map from externally supplied state."""
        self.fields = self._flatten_field_payloads(fields)

    def set_fields(self, fields: Mapping[str, FieldPayload]) -> None:
        """Write field state, last write wins per name.

        Each entry replaces the stored FieldState for its name. After merging,
        every registered field with a ``normalize`` hook has its value passed
        through ``normalize(value, previous_value, all_values)``.

        Does not create metadata.
        """
        now_fields = dict(self.fields)
        for name, payload in fields.items():
            now_fields[name] = FieldState.from_payload(name, payload)

        now_values = {
            name: self._get_value_from_fields(name, now_fields)
            for name in self.fields_meta
        }
        for name, value in now_values.items():
            meta = self.fields_meta[name]
            if meta.normalize is None:
                continue
            previous = self._get_value_from_fields(name, self.fields)
            normalized = meta.normalize(value, previous, now_values)
            if normalized is not value:
                base = now_fields.get(name) or FieldState(name=name)
                now_fields[name] = replace(base, value=normalized)

        self.fields = now_fields

    def get_field(self, name: str) -> FieldState:
        """Copy of the stored state for ``name`` (an empty state if none)."""
        stored = self.fields.get(name)
        if stored is None:
            return FieldState(name=name)
        return replace(stored, name=name)

    def clear_field(self, name: str) -> None:
        """Forget a field entirely. Callers that want recovery snapshot first."""
        self.fields.pop(name, None)
        self.fields_meta.pop(name, None)

    def reset_fields(self, names: Optional[Names] = None) -> Dict[str, Dict[str, Any]]:
        """Compute the payload that resets fields to their initial values.

        Nothing is written; apply the result with set_fields(). Partial names
        expand to their registered sub-fields. Names with no stored state are
        skipped because they already read as their initial value.

        Returns:
            ``{name: {"value": initial_value}}``.
        """
        if names is None:
            target = self.get_all_fields_name()
        else:
            target = self.get_valid_fields_full_name(names, include_hidden=True)
        payload: Dict[str, Dict[str, Any]] = {}
        for name in target:
            if name not in self.fields:
                continue
            payload[name] = {'value': self.fields_meta[name].initial_value}
        return payload

    # ========== METADATA ==========

    def get_field_meta(self, name: str) -> FieldMeta:
        """Read-or-create metadata for ``name``."""
        meta = self.fields_meta.get(name)
        if meta is None:
            meta = FieldMeta(name=name)
            self.fields_meta[name] = meta
        return meta

    def set_field_meta(self, name: str, meta: FieldMeta) -> None:
        self.fields_meta[name] = meta

    def has_field_meta(self, name: str) -> bool:
        return name in self.fields_meta

    def set_fields_initial_value(self, initial_values: Mapping[str, Any]) -> None:
        """Set ``initial_value`` on registered fields from a nested mapping."""
        for name, value in self.flatten_registered_fields(initial_values).items():
            self.fields_meta[name] = replace(self.fields_meta[name], initial_value=value)

    # ========== NAMES ==========

    def get_all_fields_name(self) -> List[str]:
        return list(self.fields_meta)

    def get_valid_fields_name(self) -> List[str]:
        """Registered names that are not hidden."""
        return [name for name, meta in self.fields_meta.items() if not meta.hidden]

    def get_valid_fields_full_name(self, names: Names, include_hidden: bool = False) -> List[str]:
        """Expand partial names to the registered names they contain.

        Example:
            With ``a.b`` and ``a.c`` registered, ``["a"]`` expands to
            ``["a.b", "a.c"]``.
        """
        partials = _as_name_list(names)
        candidates = self.get_all_fields_name() if include_hidden else self.get_valid_fields_name()
        return [
            full_name for full_name in candidates
            if any(full_name == partial or is_path_prefix(partial, full_name) for partial in partials)
        ]

    def is_valid_nested_field_name(self, name: str) -> bool:
        """True if registering ``name`` keeps registered names prefix-free."""
        return all(
            not is_path_prefix(existing, name) and not is_path_prefix(name, existing)
            for existing in self.fields_meta
        )

    def flatten_registered_fields(self, nested: Mapping[str, Any]) -> Dict[str, Any]:
        """Keep only the entries of ``nested`` whose path names a registered field.

        Accepts nested (``{"a": {"b": 1}}``) and flat (``{"a.b": 1}``) shapes.
        """
        registered = set(self.fields_meta)

        def is_registered(name: str, _node: Any) -> bool:
            return name in registered

        def warn(name: str, _node: Any) -> None:
            logger.warning(
                f"Cannot set field {name!r} before a field with that name is registered"
            )

        return flatten(nested, is_registered, on_unmatched=warn)

    # ========== VALUES ==========

    def _get_value_from_fields(self, name: str, fields: Mapping[str, FieldState]) -> Any:
        stored = fields.get(name)
        if stored is not None and stored.has_value:
            return stored.value
        meta = self.fields_meta.get(name)
        return meta.initial_value if meta is not None else UNSET

    def _get_nested_field(self, name: str, getter: Callable[[str], Any]) -> Any:
        """Read one name, expanding it into a nested mapping if it is a partial name."""
        full_names = self.get_valid_fields_full_name(name)
        if not full_names or full_names == [name]:
            return getter(name)
        # `items` over `items[0]`, `items[1]` reads as a list
        is_array_value = full_names[0][len(name):len(name) + 1] == '['
        result: Any = [] if is_array_value else {}
        offset = len(name) if is_array_value else len(name) + 1
        for full_name in full_names:
            set_in(result, full_name[offset:], getter(full_name))
        return result

    def _get_nested_fields(self, names: Optional[Names], getter: Callable[[str], Any]) -> Dict[str, Any]:
        if names is None:
            target = self.get_valid_fields_name()
        else:
            target = [
                name for name in _as_name_list(names)
                if name in self.fields_meta or self.get_valid_fields_full_name(name)
            ]
        result: Dict[str, Any] = {}
        for name in target:
            set_in(result, name, self._get_nested_field(name, getter))
        return result

    def _read_value(self, name: str) -> Any:
        value = self._get_value_from_fields(name, self.fields)
        return None if value is UNSET else value

    def get_field_value(self, name: str) -> Any:
        """Current value of ``name``, falling back to its initial value. Never raises."""
        return self._get_nested_field(name, self._read_value)

    def get_fields_value(self, names: Optional[Names] = None) -> Dict[str, Any]:
        """Nested value mapping for all visible fields, or for ``names``.

        Names that match no registered field are skipped.
        """
        return self._get_nested_fields(names, self._read_value)

    def get_all_values(self) -> Dict[str, Any]:
        """Flat ``{name: value}`` for every registered field."""
        return {name: self._read_value(name) for name in self.fields_meta}

    def get_field_value_prop_value(self, meta: FieldMeta) -> Dict[str, Any]:
        """Props exposing the field's value to the adapter."""
        value = self._read_value(meta.name)
        if meta.get_value_props is not None:
            return meta.get_value_props(value)
        return {meta.value_prop_name: value}

    # ========== ERRORS / FLAGS ==========

    def get_field_error(self, name: str) -> Any:
        """Error messages of ``name`` (nested mapping for a partial name)."""
        return self._get_nested_field(name, lambda n: get_error_strs(self.get_field(n).errors))

    def get_fields_error(self, names: Optional[Names] = None) -> Dict[str, Any]:
        return self._get_nested_fields(names, lambda n: get_error_strs(self.get_field(n).errors))

    def is_field_validating(self, name: str) -> bool:
        return self.get_field(name).validating

    def is_fields_validating(self, names: Optional[Names] = None) -> bool:
        target = self.get_valid_fields_name() if names is None else _as_name_list(names)
        return any(self.is_field_validating(name) for name in target)

    def is_field_touched(self, name: str) -> bool:
        return self.get_field(name).touched

    def is_fields_touched(self, names: Optional[Names] = None) -> bool:
        target = self.get_valid_fields_name() if names is None else _as_name_list(names)
        return any(self.is_field_touched(name) for name in target)

    def get_nested_all_fields(self) -> Dict[str, Any]:
        """Nested mapping of FieldState for every stored field."""
        result: Dict[str, Any] = {}
        for name in self.fields:
            set_in(result, name, self.get_field(name))
        return result

    def get_nested_fields_state(self, names: Iterable[str]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for name in names:
            set_in(result, name, self.get_field(name))
        return result

    def __contains__(self, name: str) -> bool:
        return name in self.fields_meta

    def __repr__(self) -> str:
        return f"FieldsStore(fields={len(self.fields)}, registered={len(self.fields_meta)})"
