"""Pytest configuration and shared fixtures."""
import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pytest

from formstate import FieldError, FieldsStore, Form, FormConfig, RuleValidator, ValidateOptions
from formstate.field_model import FieldMeta, merge_field_meta


class GatedValidator(RuleValidator):
    """Rule validator that holds every call until release() is called.

    Lets a test change field values while a validation run is in flight.
    ``fail`` maps field names to the message reported for them.
    """

    def __init__(self, fail: Optional[Dict[str, str]] = None):
        self.fail = dict(fail or {})
        self.calls: List[Dict[str, Any]] = []
        self.templates: List[Mapping[str, Any]] = []
        self._gate: Optional[asyncio.Event] = None

    def _event(self) -> asyncio.Event:
        if self._gate is None:
            self._gate = asyncio.Event()
        return self._gate

    def release(self) -> None:
        self._event().set()

    def messages(self, templates: Mapping[str, Any]) -> None:
        self.templates.append(templates)

    async def validate(
        self,
        rules: Mapping[str, Sequence[Mapping[str, Any]]],
        values: Mapping[str, Any],
        options: ValidateOptions,
    ) -> List[FieldError]:
        self.calls.append({'rules': dict(rules), 'values': dict(values), 'options': options})
        await self._event().wait()
        return [
            FieldError(field=name, message=self.fail[name])
            for name in rules
            if name in self.fail
        ]


class ImmediateValidator(GatedValidator):
    """GatedValidator that never waits."""

    def _event(self) -> asyncio.Event:
        event = super()._event()
        event.set()
        return event


def register_meta(store: FieldsStore, name: str, **option: Any) -> FieldMeta:
    """Register ``name`` on a bare store the way the lifecycle manager does."""
    meta = merge_field_meta(store.get_field_meta(name), name, option)
    store.set_field_meta(name, meta)
    return meta


@pytest.fixture
def store():
    """Provide an empty FieldsStore."""
    return FieldsStore()


@pytest.fixture
def form():
    """Provide a Form with the default rule validator."""
    return Form()


@pytest.fixture
def recording_form():
    """Provide a Form whose change hooks record their arguments."""
    events: Dict[str, List[Any]] = {'fields': [], 'values': []}
    config = FormConfig(
        on_fields_change=lambda changed, all_fields: events['fields'].append((changed, all_fields)),
        on_values_change=lambda changed, all_values: events['values'].append((changed, all_values)),
    )
    built = Form(config)
    built.events = events
    return built


class RaisingValidator(RuleValidator):
    """Rule validator whose every call fails with ``error``."""

    def __init__(self, error: Exception):
        self.error = error

    async def validate(self, rules, values, options):
        raise self.error
