"""
Rule validator collaborator.

ValidationCoordinator does not evaluate rules itself. It hands one batch of
``{name: [rule, ...]}`` and ``{name: value}`` to a RuleValidator and awaits a
flat list of FieldError records.

AsyncRuleValidator is the default implementation. It understands a small rule
vocabulary; anything richer belongs in a ``validator`` callable or in a
different RuleValidator passed to the Form.

Rule keys understood by AsyncRuleValidator:

* ``required``: value must not be empty (None, "", [], {})
* ``whitespace``: with ``required``, a string of only whitespace is empty
* ``type``: one of :data:`TYPE_CHECKS`
* ``len`` / ``min`` / ``max``: length for strings and arrays, magnitude for numbers
* ``enum``: value must be one of the listed values
* ``pattern``: string must match (``re.search``) a pattern string or compiled regex
* ``transform``: callable applied to the value before any check
* ``validator``: callable ``(rule, value)`` returning None/True (pass), False
  (fail with the rule message), a message string, or a list of messages;
  may be a coroutine function
* ``message``: replaces the generated message for this rule

Example::

    validator = AsyncRuleValidator()
    errors = await validator.validate(
        {"email": [{"required": True}, {"type": "email"}]},
        {"email": ""},
        ValidateOptions(),
    )
    assert errors[0].message == "email is required"
"""
import asyncio
import copy
from dataclasses import dataclass
import inspect
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

from formstate.field_model import UNSET, FieldError

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
_URL_RE = re.compile(r'^(?:[a-z][a-z0-9+.-]*:)?//[^\s/?#]+[^\s]*$', re.IGNORECASE)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


TYPE_CHECKS: Dict[str, Callable[[Any], bool]] = {
    'string': lambda v: isinstance(v, str),
    'number': _is_number,
    'integer': lambda v: _is_number(v) and float(v).is_integer(),
    'float': lambda v: _is_number(v) and not float(v).is_integer(),
    'boolean': lambda v: isinstance(v, bool),
    'array': lambda v: isinstance(v, (list, tuple)),
    'object': lambda v: isinstance(v, Mapping),
    'method': callable,
    'regexp': lambda v: isinstance(v, re.Pattern),
    'email': lambda v: isinstance(v, str) and bool(_EMAIL_RE.match(v)),
    'url': lambda v: isinstance(v, str) and bool(_URL_RE.match(v)),
    'any': lambda v: True,
}

DEFAULT_MESSAGES: Dict[str, Any] = {
    'default': 'Validation error on field {field}',
    'required': '{field} is required',
    'whitespace': '{field} cannot be empty',
    'enum': '{field} must be one of {enum}',
    'types': '{field} is not a valid {type}',
    'pattern': '{field} value {value} does not match pattern {pattern}',
    'string': {
        'len': '{field} must be exactly {len} characters',
        'min': '{field} must be at least {min} characters',
        'max': '{field} cannot be longer than {max} characters',
    },
    'number': {
        'len': '{field} must equal {len}',
        'min': '{field} cannot be less than {min}',
        'max': '{field} cannot be greater than {max}',
    },
    'array': {
        'len': '{field} must be exactly {len} in length',
        'min': '{field} cannot be less than {min} in length',
        'max': '{field} cannot be greater than {max} in length',
    },
}

ValidatorResult = Union[None, bool, str, Sequence[Union[str, FieldError]]]


@dataclass
class ValidateOptions:
    """Options for one validation run.

    Attributes:
        force: Validate fields even when they are clean (dirty is False).
        first: Validate fields in order and stop at the first one that
            produces errors; later fields are not evaluated.
        first_fields: Stop a field at its first failing rule. True applies to
            every field; a list names the fields it applies to. None leaves
            the choice to each field's ``validate_first`` metadata.
    """
    force: bool = False
    first: bool = False
    first_fields: Union[None, bool, List[str]] = None

    def stops_at_first_rule(self, name: str) -> bool:
        if self.first_fields is None:
            return False
        if isinstance(self.first_fields, bool):
            return self.first_fields
        return name in self.first_fields


class RuleValidator:
    """Interface the coordinator validates through.

    Subclasses implement validate(); messages() may be left as a no-op by
    validators that generate no templated text.
    """

    def messages(self, templates: Mapping[str, Any]) -> None:
        """Override message templates for subsequent validate() calls."""

    async def validate(
        self,
        rules: Mapping[str, Sequence[Mapping[str, Any]]],
        values: Mapping[str, Any],
        options: ValidateOptions,
    ) -> List[FieldError]:
        raise NotImplementedError


def _merge_messages(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge_messages(merged[key], value)
        else:
            merged[key] = value
    return merged


def _is_empty(value: Any, whitespace: bool = False) -> bool:
    if value is None or value is UNSET:
        return True
    if isinstance(value, str):
        return value == '' or (whitespace and not value.strip())
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


class AsyncRuleValidator(RuleValidator):
    """Default rule validator.

    Fields are checked concurrently, or in order when ``first`` is set; rules
    within a field always run in order.
    """

    def __init__(self, messages: Optional[Mapping[str, Any]] = None):
        self._messages: Dict[str, Any] = copy.deepcopy(DEFAULT_MESSAGES)
        if messages:
            self.messages(messages)

    def messages(self, templates: Mapping[str, Any]) -> None:
        self._messages = _merge_messages(self._messages, templates)

    async def validate(
        self,
        rules: Mapping[str, Sequence[Mapping[str, Any]]],
        values: Mapping[str, Any],
        options: ValidateOptions,
    ) -> List[FieldError]:
        names = [name for name, field_rules in rules.items() if field_rules]
        if options.first:
            for name in names:
                field_errors = await self._validate_field(
                    name, rules[name], values.get(name), options.stops_at_first_rule(name)
                )
                if field_errors:
                    return field_errors
            return []

        results = await asyncio.gather(*(
            self._validate_field(name, rules[name], values.get(name), options.stops_at_first_rule(name))
            for name in names
        ))
        return [error for field_errors in results for error in field_errors]

    async def _validate_field(
        self,
        name: str,
        field_rules: Sequence[Mapping[str, Any]],
        value: Any,
        stop_at_first: bool,
    ) -> List[FieldError]:
        errors: List[FieldError] = []
        for rule in field_rules:
            rule_errors = await self._check_rule(name, rule, value)
            errors.extend(rule_errors)
            if rule_errors and stop_at_first:
                break
        return errors

    async def _check_rule(self, name: str, rule: Mapping[str, Any], value: Any) -> List[FieldError]:
        """Evaluate one rule; a rule that raises fails with the exception message."""
        try:
            return await self._evaluate_rule(name, rule, value)
        except Exception as e:
            logger.warning(f"Rule {rule!r} on field {name!r} raised: {e}")
            return [FieldError(field=name, message=str(e) or f'{name} could not be validated', rule=rule)]

    async def _evaluate_rule(self, name: str, rule: Mapping[str, Any], value: Any) -> List[FieldError]:
        transform = rule.get('transform')
        if transform is not None:
            value = transform(value)

        if 'validator' in rule:
            return await self._run_custom_validator(name, rule, value)

        if _is_empty(value, whitespace=bool(rule.get('whitespace'))):
            if rule.get('required'):
                key = 'whitespace' if isinstance(value, str) and value else 'required'
                return [self._error(name, rule, key, value)]
            # Optional empty values skip every other check
            return []

        rule_type = rule.get('type')
        if rule_type is not None:
            check = TYPE_CHECKS.get(rule_type)
            if check is None:
                logger.warning(f"Unknown rule type {rule_type!r} on field {name!r}; treating as 'any'")
            elif not check(value):
                return [self._error(name, rule, 'types', value)]

        message = self._check_range(name, rule, value)
        if message is not None:
            return [message]

        if 'enum' in rule and value not in rule['enum']:
            return [self._error(name, rule, 'enum', value)]

        pattern = rule.get('pattern')
        if pattern is not None and isinstance(value, str):
            compiled = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern)
            if not compiled.search(value):
                return [self._error(name, rule, 'pattern', value)]

        return []

    def _check_range(self, name: str, rule: Mapping[str, Any], value: Any) -> Optional[FieldError]:
        if not any(key in rule for key in ('len', 'min', 'max')):
            return None
        if _is_number(value):
            kind, measure = 'number', value
        elif isinstance(value, str):
            kind, measure = 'string', len(value)
        elif isinstance(value, (list, tuple)):
            kind, measure = 'array', len(value)
        else:
            return None

        if 'len' in rule:
            if measure != rule['len']:
                return self._error(name, rule, (kind, 'len'), value)
            return None
        if 'min' in rule and measure < rule['min']:
            return self._error(name, rule, (kind, 'min'), value)
        if 'max' in rule and measure > rule['max']:
            return self._error(name, rule, (kind, 'max'), value)
        return None

    async def _run_custom_validator(self, name: str, rule: Mapping[str, Any], value: Any) -> List[FieldError]:
        validator: Callable[[Mapping[str, Any], Any], Union[ValidatorResult, Awaitable[ValidatorResult]]] = rule['validator']
        try:
            result = validator(rule, value)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.debug(f"Custom validator for {name!r} raised: {e}")
            return [FieldError(field=name, message=str(e) or self._default_message(name, rule), rule=rule)]

        if result is None or result is True:
            return []
        if result is False:
            return [FieldError(field=name, message=self._default_message(name, rule), rule=rule)]
        if isinstance(result, str):
            return [FieldError(field=name, message=result, rule=rule)]
        errors = []
        for item in result:
            if isinstance(item, FieldError):
                errors.append(item)
            else:
                errors.append(FieldError(field=name, message=str(item), rule=rule))
        return errors

    def _default_message(self, name: str, rule: Mapping[str, Any]) -> str:
        if rule.get('message'):
            return rule['message']
        return self._messages['default'].format(field=name)

    def _error(self, name: str, rule: Mapping[str, Any], key: Union[str, tuple], value: Any) -> FieldError:
        if rule.get('message'):
            return FieldError(field=name, message=rule['message'], rule=rule)
        if isinstance(key, tuple):
            template = self._messages[key[0]][key[1]]
        else:
            template = self._messages[key]
        params = {
            'field': name,
            'value': value,
            'type': rule.get('type'),
            'enum': ', '.join(str(v) for v in rule.get('enum', ())),
            'pattern': getattr(rule.get('pattern'), 'pattern', rule.get('pattern')),
            'len': rule.get('len'),
            'min': rule.get('min'),
            'max': rule.get('max'),
        }
        return FieldError(field=name, message=template.format(**params), rule=rule)
