"""
Form-state engine: field registration, nested values and async validation.

This package tracks the value, validation status and metadata of a dynamically
registered set of named fields, runs asynchronous validation rules against
them, and reconciles concurrent validation results against the latest value.

Quick Start:
    >>> from formstate import Form
    >>>
    >>> form = Form()
    >>> props = form.get_field_props('address.city', rules=[{'required': True}])
    >>> props['ref'](widget)          # adapter mounted the field
    >>> props['on_change']('Paris')   # adapter forwarded a change
    >>>
    >>> outcome = await form.validate_fields()
    >>> outcome.errors is None
    True
    >>> form.get_fields_value()
    {'address': {'city': 'Paris'}}

Architecture:
    Fields are stored flat under dotted names and expanded to nested
    mappings on read.

    Write path:
        adapter handler → Form.on_collect[_validate] → Form.set_fields → FieldsStore

    Validation path:
        Form.validate_fields → ValidationCoordinator → RuleValidator (awaited)
        → reconcile against FieldsStore → callback(errors_or_none, values)

Modules:
    - path_codec: dotted name ↔ nested structure conversion
    - field_model: FieldState, FieldMeta, rule normalization, metadata merge
    - fields_store: flat owner of field state and metadata
    - rule_validator: rule validator interface and default implementation
    - validation: validation runs, stale-result detection, error aggregation
    - lifecycle: registration, mount/unmount, cleared-field recovery
    - form: adapter-facing facade
    - config: form configuration
    - errors: exceptions for unrecoverable misuse
"""

# Configuration
from formstate.config import FormConfig, DEFAULT_TRIGGER, DEFAULT_VALUE_PROP

# Errors
from formstate.errors import FormStateError, FieldNameError, FormUsageError

# Data model
from formstate.field_model import (
    UNSET,
    FieldError,
    FieldState,
    FieldMeta,
    ValidateRule,
    ClearedField,
    merge_field_meta,
    normalize_validate_rules,
    get_validate_triggers,
    has_rules,
)

# Path codec
from formstate.path_codec import parse_path, is_path_prefix, get_in, set_in, flatten, unflatten

# Store
from formstate.fields_store import FieldsStore

# Validation
from formstate.rule_validator import RuleValidator, AsyncRuleValidator, ValidateOptions
from formstate.validation import ValidationCoordinator, ValidationOutcome

# Lifecycle
from formstate.lifecycle import FieldLifecycleManager

# Facade
from formstate.form import Form

__all__ = [
    # Configuration
    'FormConfig',
    'DEFAULT_TRIGGER',
    'DEFAULT_VALUE_PROP',
    # Errors
    'FormStateError',
    'FieldNameError',
    'FormUsageError',
    # Data model
    'UNSET',
    'FieldError',
    'FieldState',
    'FieldMeta',
    'ValidateRule',
    'ClearedField',
    'merge_field_meta',
    'normalize_validate_rules',
    'get_validate_triggers',
    'has_rules',
    # Path codec
    'parse_path',
    'is_path_prefix',
    'get_in',
    'set_in',
    'flatten',
    'unflatten',
    # Store
    'FieldsStore',
    # Validation
    'RuleValidator',
    'AsyncRuleValidator',
    'ValidateOptions',
    'ValidationCoordinator',
    'ValidationOutcome',
    # Lifecycle
    'FieldLifecycleManager',
    # Facade
    'Form',
]

__version__ = '1.0.0'
__description__ = 'Form-state engine with nested fields and async validation'
