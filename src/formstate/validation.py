"""
ValidationCoordinator: batch validation runs against a FieldsStore.

A run moves through fixed checkpoints:

1. Selection    - target names narrowed to fields carrying rules
2. Eligibility  - fields validated since their last edit skipped unless forced;
                  their errors are kept
3. Snapshot     - values captured, fields marked validating/dirty, committed
4. Evaluation   - one awaited call to the RuleValidator for the whole batch
5. Reconcile    - fields whose value moved since the snapshot are expired,
                  the rest get their errors committed
6. Aggregate    - skipped + fresh + expired errors as one nested mapping

Steps 1-3 run synchronously inside validate_fields(); steps 5-6 run
synchronously after the validator's await returns. Both checkpoints are
therefore atomic with respect to every other run on the same event loop, and
no locking is involved. The coordinator holds no per-run state on self.
"""
import asyncio
from dataclasses import dataclass, replace
import itertools
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from formstate.errors import FormUsageError
from formstate.field_model import FieldError, FieldState, has_rules, rules_for_action
from formstate.fields_store import FieldsStore, Names
from formstate.path_codec import get_in, set_in
from formstate.rule_validator import AsyncRuleValidator, RuleValidator, ValidateOptions

logger = logging.getLogger(__name__)

ErrorsCallback = Callable[[Optional[Dict[str, Any]], Dict[str, Any]], None]
CommitFn = Callable[[Mapping[str, FieldState]], None]


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of one run, as also passed to its callback.

    Attributes:
        errors: Nested ``{..: {"errors": [FieldError, ...]}}`` mapping, None if
            no field has errors. Expired fields carry ``"expired": True``.
        values: Nested values of the run's target fields at completion.
    """
    errors: Optional[Dict[str, Any]]
    values: Dict[str, Any]

    @property
    def has_expired(self) -> bool:
        return bool(self.expired_fields())

    def expired_fields(self) -> List[str]:
        """Dotted names whose result was discarded because the value moved."""
        found: List[str] = []

        def walk(node: Any, prefix: str) -> None:
            if not isinstance(node, dict):
                return
            if 'errors' in node:
                if node.get('expired'):
                    found.append(prefix)
                return
            for key, child in node.items():
                walk(child, f'{prefix}.{key}' if prefix else str(key))

        walk(self.errors or {}, '')
        return found


def expired_error(name: str) -> FieldError:
    """Synthetic error reported for a field whose value changed mid-flight."""
    return FieldError(field=name, message=f'{name} need to revalidate')


def _coerce_options(options: Union[None, ValidateOptions, Mapping[str, Any]]) -> ValidateOptions:
    if options is None:
        return ValidateOptions()
    if isinstance(options, ValidateOptions):
        return replace(options)
    return ValidateOptions(**options)


def _values_match(current: Any, snapshot: Any) -> bool:
    return current is snapshot or current == snapshot


class ValidationCoordinator:
    """Runs validation batches and reconciles them against the store.

    Writes go through ``commit`` so the owner can make them observable
    (Form routes them through its own set_fields to fire change hooks).
    """

    def __init__(
        self,
        store: FieldsStore,
        rule_validator: Optional[RuleValidator] = None,
        commit: Optional[CommitFn] = None,
        validate_messages: Optional[Mapping[str, Any]] = None,
    ):
        """
        Args:
            store: Store the coordinator reads and writes.
            rule_validator: Collaborator evaluating rules (AsyncRuleValidator by default).
            commit: Function applying a ``{name: FieldState}`` batch; defaults to
                ``store.set_fields``.
            validate_messages: Message templates handed to the rule validator.
        """
        self._store = store
        self._rule_validator = rule_validator if rule_validator is not None else AsyncRuleValidator()
        self._commit = commit if commit is not None else store.set_fields
        # Run ids in log lines, numbered per coordinator
        self._run_ids = itertools.count(1)
        if validate_messages:
            self._rule_validator.messages(validate_messages)

    @property
    def rule_validator(self) -> RuleValidator:
        return self._rule_validator

    def validate_fields(
        self,
        names: Optional[Names] = None,
        options: Union[None, ValidateOptions, Mapping[str, Any]] = None,
        callback: Optional[ErrorsCallback] = None,
    ) -> Optional['asyncio.Future[ValidationOutcome]']:
        """Validate the named fields, or every visible field carrying rules.

        Partial names expand to their registered sub-fields. Unless the options
        set ``first_fields``, fields whose metadata has ``validate_first`` stop
        at their first failing rule.

        Args:
            names: Field names or partial names; None for the whole form.
            options: ValidateOptions or a mapping of its attributes.
            callback: Called as ``callback(errors_or_none, values)`` on completion.

        Returns:
            Future resolving to a ValidationOutcome. When nothing needs
            validating the callback has already run and the future is done;
            outside an event loop None is returned in that case.
        """
        opts = _coerce_options(options)
        store = self._store
        if names is None:
            field_names = [
                name for name in store.get_valid_fields_name()
                if has_rules(store.get_field_meta(name).validate)
            ]
        else:
            field_names = store.get_valid_fields_full_name(names)

        fields = [
            replace(store.get_field(name), value=store.get_field_value(name))
            for name in field_names
            if has_rules(store.get_field_meta(name).validate)
        ]
        if not fields:
            return self._complete_now(None, field_names, callback)

        if opts.first_fields is None:
            opts.first_fields = [
                name for name in field_names
                if store.get_field_meta(name).validate_first
            ]
        return self.validate_fields_internal(fields, field_names=field_names, options=opts, callback=callback)

    def validate_fields_internal(
        self,
        fields: Iterable[FieldState],
        field_names: Optional[List[str]] = None,
        action: Optional[str] = None,
        options: Union[None, ValidateOptions, Mapping[str, Any]] = None,
        callback: Optional[ErrorsCallback] = None,
    ) -> Optional['asyncio.Future[ValidationOutcome]']:
        """Run one validation batch over explicit field states.

        Trigger handlers call this with the freshly collected FieldState and
        the firing ``action``; only rule groups bound to that action run.

        Args:
            fields: FieldState per candidate field, values already filled in.
            field_names: Names whose values are reported on completion (all
                visible fields when None).
            action: Firing trigger, or None to run every rule.
            options: ValidateOptions or a mapping of its attributes.
            callback: Called as ``callback(errors_or_none, values)`` on completion.

        Returns:
            See validate_fields().
        """
        opts = _coerce_options(options)
        store = self._store

        already_errors: Dict[str, Any] = {}
        all_rules: Dict[str, List[Mapping[str, Any]]] = {}
        all_values: Dict[str, Any] = {}
        all_fields: Dict[str, FieldState] = {}

        # === Selection + Eligibility ===
        for field_state in fields:
            name = field_state.name
            if not opts.force and field_state.dirty is False:
                if field_state.errors:
                    set_in(already_errors, name, {'errors': field_state.errors})
                continue
            rules = rules_for_action(store.get_field_meta(name), action)
            if not rules:
                continue
            all_rules[name] = rules
            all_values[name] = field_state.value
            all_fields[name] = replace(field_state, errors=None, validating=True, dirty=True)

        if not all_fields:
            return self._complete_now(already_errors or None, field_names, callback)

        loop = self._running_loop()
        if loop is None:
            raise FormUsageError("Validation needs a running asyncio event loop")

        # === Snapshot ===
        self._commit(all_fields)
        # Re-read: normalize hooks may have rewritten the committed values
        for name in all_values:
            all_values[name] = store.get_field_value(name)

        run_id = next(self._run_ids)
        logger.debug(f"Validation run {run_id} started: fields={list(all_rules)} action={action!r}")
        return loop.create_task(
            self._run(run_id, all_rules, all_values, already_errors, field_names, opts, callback)
        )

    async def _run(
        self,
        run_id: int,
        all_rules: Dict[str, List[Mapping[str, Any]]],
        all_values: Dict[str, Any],
        already_errors: Dict[str, Any],
        field_names: Optional[List[str]],
        options: ValidateOptions,
        callback: Optional[ErrorsCallback],
    ) -> ValidationOutcome:
        try:
            errors = await self._rule_validator.validate(all_rules, all_values, options)
        except Exception as e:
            # Reconciliation must still run so no field stays validating
            logger.error(f"Validation run {run_id}: rule validator raised: {e!r}")
            errors = [
                FieldError(field=name, message=str(e) or f'{name} could not be validated')
                for name in all_rules
            ]

        # === Aggregate fresh errors ===
        errors_group: Dict[str, Any] = already_errors
        for error in errors:
            node = get_in(errors_group, error.field)
            if not isinstance(node, dict) or 'errors' not in node:
                node = {'errors': []}
                set_in(errors_group, error.field, node)
            node['errors'].append(error)

        # === Reconcile ===
        store = self._store
        expired: List[str] = []
        now_all_fields: Dict[str, FieldState] = {}
        for name in all_rules:
            if not store.has_field_meta(name):
                # Unmounted mid-flight; its cleared snapshot must not be overwritten
                expired.append(name)
                continue
            current = store.get_field_value(name)
            if not _values_match(current, all_values[name]):
                expired.append(name)
                continue
            node = get_in(errors_group, name)
            now_all_fields[name] = replace(
                store.get_field(name),
                value=all_values[name],
                errors=node['errors'] if isinstance(node, dict) else None,
                validating=False,
                dirty=False,
            )
        if now_all_fields:
            self._commit(now_all_fields)

        for name in expired:
            set_in(errors_group, name, {'expired': True, 'errors': [expired_error(name)]})
        if expired:
            logger.debug(f"Validation run {run_id}: expired results for {expired}")

        outcome = ValidationOutcome(
            errors=errors_group or None,
            values=store.get_fields_value(field_names),
        )
        logger.debug(
            f"Validation run {run_id} finished: committed={list(now_all_fields)} "
            f"errors={'yes' if outcome.errors else 'no'}"
        )
        if callback is not None:
            callback(outcome.errors, outcome.values)
        return outcome

    def _complete_now(
        self,
        errors: Optional[Dict[str, Any]],
        field_names: Optional[List[str]],
        callback: Optional[ErrorsCallback],
    ) -> Optional['asyncio.Future[ValidationOutcome]']:
        """Finish a run with nothing to evaluate, calling back synchronously."""
        outcome = ValidationOutcome(errors=errors, values=self._store.get_fields_value(field_names))
        if callback is not None:
            callback(outcome.errors, outcome.values)
        loop = self._running_loop()
        if loop is None:
            return None
        future = loop.create_future()
        future.set_result(outcome)
        return future

    @staticmethod
    def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None
