"""
Form-level configuration.

A FormConfig is passed once when a Form is built; it carries the adapter
prop names and the change hooks the UI binding wants to hear about.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

# Trigger bound to every field that does not name one
DEFAULT_TRIGGER = 'on_change'
DEFAULT_VALUE_PROP = 'value'


@dataclass
class FormConfig:
    """Options for a Form instance.

    Attributes:
        validate_messages: Message template overrides handed to the rule validator.
        on_fields_change: Called with (changed_fields, all_fields), both nested
            mappings of FieldState, whenever set_fields() commits.
        on_values_change: Called with (changed_values, all_values) when a
            collected or programmatically set value differs from the stored one.
        field_name_prop: If set, register() adds ``{field_name_prop: name}`` to props.
        field_meta_prop: If set, register() adds the merged FieldMeta under this prop.
        field_data_prop: If set, register() adds the current FieldState under this prop.
        default_trigger: Trigger used for value collection when a field names none.
        default_value_prop: Prop name the value is exposed under.
    """
    validate_messages: Optional[Dict[str, Any]] = None
    on_fields_change: Optional[Callable[[Dict[str, Any], Dict[str, Any]], None]] = None
    on_values_change: Optional[Callable[[Dict[str, Any], Dict[str, Any]], None]] = None
    field_name_prop: Optional[str] = None
    field_meta_prop: Optional[str] = None
    field_data_prop: Optional[str] = None
    default_trigger: str = DEFAULT_TRIGGER
    default_value_prop: str = DEFAULT_VALUE_PROP
