"""
FieldLifecycleManager: binds adapter-side field instances to field names.

Lifecycle:
- register() runs on every render of a field and returns the props the
  adapter applies (value, trigger handlers, ref)
- attach_instance(name, instance) runs when the adapter mounts the field
- attach_instance(name, None) runs when it unmounts; state and metadata move
  to the cleared-field cache instead of being dropped

The cleared-field cache lets a field survive an unmount immediately followed
by a remount (the adapter swapping the element that renders it). A cache
entry is consumed by the next attach, dropped by the next register, and
dropped by Form.reset_fields().
"""
import functools
import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from formstate.config import FormConfig
from formstate.errors import FieldNameError, FormUsageError
from formstate.field_model import ClearedField, get_validate_triggers, merge_field_meta
from formstate.fields_store import FieldsStore

logger = logging.getLogger(__name__)

# Handlers receive (name, action, *trigger_args)
CollectFn = Callable[..., Any]


class FieldLifecycleManager:
    """Registration, mount/unmount and handler caching for one form.

    Thread safety: Not thread-safe (all operations expected on the event loop thread).
    """

    def __init__(
        self,
        store: FieldsStore,
        collect: CollectFn,
        collect_validate: CollectFn,
        config: Optional[FormConfig] = None,
    ):
        """
        Args:
            store: Store receiving metadata and state.
            collect: Handler target for value-only triggers.
            collect_validate: Handler target for validate triggers.
            config: Form configuration (prop names, default trigger).
        """
        self._store = store
        self._collect = collect
        self._collect_validate = collect_validate
        self._config = config if config is not None else FormConfig()

        self.instances: Dict[str, Any] = {}
        # name -> action -> (target fn, bound handler)
        self._cached_bind: Dict[str, Dict[str, Tuple[Callable[..., Any], Callable[..., Any]]]] = {}
        self._cleared_field_meta_cache: Dict[str, ClearedField] = {}

    # ========== HANDLER CACHE ==========

    def get_cache_bind(self, name: str, action: str, fn: Callable[..., Any]) -> Callable[..., Any]:
        """Return ``fn`` bound to (name, action), the same object on every call.

        Adapters compare handler identity to detect prop changes. The binding
        is rebuilt only when the target function for the pair changes.
        """
        cache = self._cached_bind.setdefault(name, {})
        cached = cache.get(action)
        if cached is None or cached[0] != fn:
            cached = (fn, functools.partial(fn, name, action))
            cache[action] = cached
        return cached[1]

    # ========== REGISTRATION ==========

    def register(self, name: str, option: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Register or refresh a field and build its adapter props.

        Args:
            name: Dotted field name.
            option: Registration option (rules, trigger, validate_trigger,
                initial_value, value_prop_name, validate_first, ...).

        Returns:
            Props for the adapter: the value prop, ``ref``, one handler per
            trigger, and the configured name/meta/data passthrough props.

        Raises:
            FieldNameError: If ``name`` is empty.
        """
        if not name:
            raise FieldNameError("Must call register() with a valid field name")
        option = dict(option or {})
        store = self._store
        config = self._config

        if not store.is_valid_nested_field_name(name):
            logger.warning(f"One field name cannot be part of another, e.g. `a` and `a.b` (registering {name!r})")
        if 'exclusive' in option:
            logger.warning("`exclusive` field option has been removed and is ignored")

        if self._cleared_field_meta_cache.pop(name, None) is not None:
            logger.debug(f"Dropped cleared state of {name!r} on re-registration")

        meta = merge_field_meta(
            store.get_field_meta(name), name, option,
            default_trigger=config.default_trigger,
            default_value_prop=config.default_value_prop,
        )
        store.set_field_meta(name, meta)

        input_props: Dict[str, Any] = {
            'ref': self.get_cache_bind(name, f'{name}__ref', self._save_ref),
        }
        if config.field_name_prop:
            input_props[config.field_name_prop] = name

        validate_triggers = get_validate_triggers(meta.validate)
        for action in validate_triggers:
            input_props[action] = self.get_cache_bind(name, action, self._collect_validate)
        # The value must be collected even when no rule fires on the trigger
        if meta.trigger and meta.trigger not in validate_triggers:
            input_props[meta.trigger] = self.get_cache_bind(name, meta.trigger, self._collect)

        input_props.update(store.get_field_value_prop_value(meta))
        if config.field_meta_prop:
            input_props[config.field_meta_prop] = meta
        if config.field_data_prop:
            input_props[config.field_data_prop] = store.get_field(name)

        logger.debug(f"Registered field {name!r}: triggers={validate_triggers} trigger={meta.trigger!r}")
        return input_props

    # ========== MOUNT / UNMOUNT ==========

    def _save_ref(self, name: str, _action: str, instance: Any) -> None:
        self.attach_instance(name, instance)

    def attach_instance(self, name: str, instance: Any) -> None:
        """Record the mounted instance for ``name``, or detach it when None.

        Detaching snapshots the field's state and metadata into the cleared
        cache, then purges the store entries, the instance and the cached
        handlers, all in one synchronous step. Attaching restores a pending
        snapshot first, then forwards the instance to the adapter's own ref.

        Raises:
            FormUsageError: If the adapter's ref is a string.
        """
        store = self._store
        if instance is None:
            if store.has_field_meta(name):
                self._cleared_field_meta_cache[name] = ClearedField(
                    field=store.get_field(name),
                    meta=store.get_field_meta(name),
                )
                logger.debug(f"Cleared field {name!r} (state kept for recovery)")
            store.clear_field(name)
            self.instances.pop(name, None)
            self._cached_bind.pop(name, None)
            return

        self.recover_cleared_field(name)
        if store.has_field_meta(name):
            ref = store.get_field_meta(name).ref
            if ref is not None:
                if isinstance(ref, str):
                    raise FormUsageError(f"can not set ref string for {name}")
                ref(instance)
        self.instances[name] = instance

    def get_field_instance(self, name: str) -> Any:
        return self.instances.get(name)

    # ========== CLEARED FIELD CACHE ==========

    def recover_cleared_field(self, name: str) -> bool:
        """Restore a cleared field's state and metadata. Returns True if restored."""
        cleared = self._cleared_field_meta_cache.pop(name, None)
        if cleared is None:
            return False
        self._store.set_fields({name: cleared.field})
        self._store.set_field_meta(name, cleared.meta)
        logger.debug(f"Recovered cleared field {name!r}")
        return True

    def has_cleared(self, name: str) -> bool:
        return name in self._cleared_field_meta_cache

    def drop_cleared(self, names: Optional[Iterable[str]] = None) -> None:
        """Forget cleared snapshots for ``names``, or all of them."""
        if names is None:
            self._cleared_field_meta_cache.clear()
            return
        for name in names:
            self._cleared_field_meta_cache.pop(name, None)
