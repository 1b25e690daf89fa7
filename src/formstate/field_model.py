"""
Data containers for per-field state and metadata.

FieldState holds what changes while the user edits (value, dirty, errors).
FieldMeta holds what the adapter declared at registration (rules, triggers,
initial value). Both are keyed by the field's dotted name in FieldsStore.

Design Philosophy:
- Plain dataclasses, no back-references to the store
- Metadata is rebuilt by merge_field_meta() on every registration
- UNSET marks "no value" so that None stays a legal field value
"""
from dataclasses import dataclass, field, fields as dataclass_fields, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from formstate.config import DEFAULT_TRIGGER, DEFAULT_VALUE_PROP


class _Unset:
    """Sentinel type for a field that has no value of its own."""
    _instance: Optional['_Unset'] = None

    def __new__(cls) -> '_Unset':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'UNSET'

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> '_Unset':
        return self

    def __deepcopy__(self, memo: Dict) -> '_Unset':
        return self


UNSET = _Unset()


@dataclass
class FieldError:
    """One rule failure for one field.

    ``field`` is the dotted field name, ``rule`` the rule mapping that failed
    (None for synthetic errors such as expiry).
    """
    field: str
    message: str
    rule: Optional[Mapping[str, Any]] = None

    def __str__(self) -> str:
        return self.message


@dataclass
class FieldState:
    """Mutable per-field state.

    Attributes:
        name: Dotted field name.
        value: Current value, UNSET if the field never received one.
        dirty: None until the field is edited or validated, True once edited,
            False after a completed validation. Only False makes a field clean.
        validating: A validation run holding this field is in flight.
        touched: The user has interacted with the field.
        errors: Errors from the last completed validation, or None.
    """
    name: str = ''
    value: Any = UNSET
    dirty: Optional[bool] = None
    validating: bool = False
    touched: bool = False
    errors: Optional[List[FieldError]] = None

    @property
    def has_value(self) -> bool:
        return self.value is not UNSET

    @classmethod
    def from_payload(cls, name: str, payload: Union['FieldState', Mapping[str, Any]]) -> 'FieldState':
        """Build a FieldState from a FieldState or a mapping of its attributes."""
        if isinstance(payload, FieldState):
            return replace(payload, name=name)
        known = {f.name for f in dataclass_fields(cls)}
        unknown = set(payload) - known
        if unknown:
            raise TypeError(f"Unknown FieldState attributes for {name!r}: {sorted(unknown)}")
        data = dict(payload)
        data['name'] = name
        return cls(**data)


@dataclass
class ValidateRule:
    """Rules that fire together on a set of triggers."""
    rules: List[Mapping[str, Any]]
    trigger: List[str] = field(default_factory=list)


@dataclass
class FieldMeta:
    """Registration-time description of a field.

    Attributes:
        name: Dotted field name.
        validate: Normalized rule groups, rebuilt on every registration.
        rules: Raw ``rules`` option from the last registration.
        trigger: Trigger that collects the value.
        validate_trigger: Trigger(s) that run ``rules``; defaults to ``trigger``.
        value_prop_name: Adapter prop carrying the value.
        initial_value: Value used while the field has none of its own.
        get_value_from_event: Extracts the value from the trigger's arguments.
        get_value_props: Builds the value props from a value, overriding value_prop_name.
        normalize: Called as normalize(value, previous_value, all_values) on commit.
        validate_first: Stop this field's rules at the first failure.
        hidden: Excluded from full-form reads and validation.
        original_props: Props the adapter's element carried before decoration.
        ref: Callable the adapter wants called with the mounted instance.
        extra: Option keys with no dedicated attribute, passed through untouched.
    """
    name: str = ''
    validate: List[ValidateRule] = field(default_factory=list)
    rules: Optional[List[Mapping[str, Any]]] = None
    trigger: Optional[str] = DEFAULT_TRIGGER
    validate_trigger: Optional[Union[str, List[str]]] = None
    value_prop_name: str = DEFAULT_VALUE_PROP
    initial_value: Any = UNSET
    get_value_from_event: Optional[Callable[..., Any]] = None
    get_value_props: Optional[Callable[[Any], Dict[str, Any]]] = None
    normalize: Optional[Callable[[Any, Any, Dict[str, Any]], Any]] = None
    validate_first: bool = False
    hidden: bool = False
    original_props: Dict[str, Any] = field(default_factory=dict)
    ref: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ClearedField:
    """State and metadata of an unmounted field, kept for remount recovery."""
    field: FieldState
    meta: FieldMeta


# Option keys that map straight onto FieldMeta attributes
_META_OPTION_KEYS = frozenset(
    f.name for f in dataclass_fields(FieldMeta)
) - {'name', 'validate', 'extra'}


def _as_trigger_list(trigger: Optional[Union[str, Sequence[str]]]) -> List[str]:
    if not trigger:
        return []
    if isinstance(trigger, str):
        return [trigger]
    return list(trigger)


def normalize_validate_rules(
    validate: Sequence[Union[ValidateRule, Mapping[str, Any]]],
    rules: Optional[List[Mapping[str, Any]]],
    validate_trigger: Optional[Union[str, Sequence[str]]],
) -> List[ValidateRule]:
    """Combine the ``validate`` groups and the shorthand ``rules`` option.

    Each group's trigger is coerced to a list. ``rules`` becomes one more group
    firing on ``validate_trigger``.
    """
    normalized: List[ValidateRule] = []
    for item in validate:
        if isinstance(item, ValidateRule):
            normalized.append(ValidateRule(rules=list(item.rules), trigger=_as_trigger_list(item.trigger)))
        else:
            normalized.append(ValidateRule(
                rules=list(item.get('rules') or []),
                trigger=_as_trigger_list(item.get('trigger')),
            ))
    if rules is not None:
        normalized.append(ValidateRule(rules=list(rules), trigger=_as_trigger_list(validate_trigger)))
    return normalized


def get_validate_triggers(validate: Sequence[ValidateRule]) -> List[str]:
    """Distinct triggers across rule groups, in declaration order."""
    triggers: List[str] = []
    for item in validate:
        for trigger in item.trigger:
            if trigger not in triggers:
                triggers.append(trigger)
    return triggers


def has_rules(validate: Optional[Sequence[ValidateRule]]) -> bool:
    return bool(validate) and any(item.rules for item in validate)


def rules_for_action(meta: FieldMeta, action: Optional[str]) -> List[Mapping[str, Any]]:
    """Flatten the rules of every group firing on ``action`` (all groups if None)."""
    collected: List[Mapping[str, Any]] = []
    for item in meta.validate:
        if action is None or action in item.trigger:
            collected.extend(item.rules)
    return collected


def merge_field_meta(
    existing: FieldMeta,
    name: str,
    option: Mapping[str, Any],
    default_trigger: str = DEFAULT_TRIGGER,
    default_value_prop: str = DEFAULT_VALUE_PROP,
) -> FieldMeta:
    """Merge a registration option into the field's existing metadata.

    Override rules, applied per key:
    - ``trigger`` and ``value_prop_name`` fall back to the form defaults when
      the option omits them.
    - ``validate`` is rebuilt from the option's ``validate``/``rules``/
      ``validate_trigger`` and replaces the old list; rules are never merged
      across registrations.
    - ``initial_value`` is replaced only when the option declares one.
    - Every other recognized key the option supplies wins; omitted keys keep
      their existing value.
    - Unrecognized keys are collected into ``extra`` (later registration wins).

    Args:
        existing: Current metadata (not modified).
        name: Dotted field name.
        option: Registration option mapping.
        default_trigger: Form-level default trigger.
        default_value_prop: Form-level default value prop name.

    Returns:
        A new FieldMeta.
    """
    trigger = option.get('trigger', default_trigger)
    validate_trigger = option.get('validate_trigger', trigger)
    rules = option.get('rules')

    updates: Dict[str, Any] = {
        'name': name,
        'trigger': trigger,
        'validate_trigger': validate_trigger,
        'value_prop_name': option.get('value_prop_name', default_value_prop),
        'rules': rules,
        'validate': normalize_validate_rules(option.get('validate', []), rules, validate_trigger),
    }
    for key in _META_OPTION_KEYS - set(updates):
        if key in option:
            updates[key] = option[key]

    extra = dict(existing.extra)
    for key, value in option.items():
        if key not in _META_OPTION_KEYS and key not in ('validate', 'name'):
            extra[key] = value
    updates['extra'] = extra

    return replace(existing, **updates)


def get_value_from_event(*args: Any) -> Any:
    """Default value extraction for trigger arguments.

    An event-like first argument (one with a ``target``) yields
    ``target.checked`` for checkboxes and ``target.value`` otherwise; any other
    first argument is the value itself.
    """
    if not args:
        return None
    event = args[0]
    target = getattr(event, 'target', None)
    if target is None:
        return event
    if getattr(target, 'type', None) == 'checkbox':
        return getattr(target, 'checked', None)
    return getattr(target, 'value', None)


def get_error_strs(errors: Optional[Sequence[Any]]) -> Optional[List[str]]:
    """Reduce FieldError records to their messages."""
    if errors is None:
        return None
    return [e.message if isinstance(e, FieldError) else str(e) for e in errors]
