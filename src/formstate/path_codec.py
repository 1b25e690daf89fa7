"""
Dotted path codec for nested field names.

Field names are addressed externally as strings (``"address.city"``,
``"items[0].sku"``) and stored flat. This module converts between that flat
addressing and nested dict/list structures.

Paths are parsed once and memoized as tuples of segments: ``str`` for mapping
keys, ``int`` for list indices.
"""
from functools import lru_cache
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

Segment = Union[str, int]

_SEGMENT_RE = re.compile(r'([^.\[\]]+)|\[(\d+)\]')


@lru_cache(maxsize=1024)
def parse_path(name: str) -> Tuple[Segment, ...]:
    """Split a dotted name into its segments.

    Example:
        >>> parse_path("a.b[0].c")
        ('a', 'b', 0, 'c')
    """
    segments: List[Segment] = []
    for match in _SEGMENT_RE.finditer(name):
        key, index = match.groups()
        segments.append(int(index) if index is not None else key)
    return tuple(segments)


def format_path(segments: Tuple[Segment, ...]) -> str:
    """Inverse of parse_path()."""
    parts: List[str] = []
    for segment in segments:
        if isinstance(segment, int):
            parts.append(f'[{segment}]')
        elif parts:
            parts.append(f'.{segment}')
        else:
            parts.append(segment)
    return ''.join(parts)


def is_path_prefix(prefix: str, name: str) -> bool:
    """True if ``prefix`` addresses a container of ``name``.

    ``a`` is a prefix of ``a.b`` and ``a[0]``, but not of ``ab``.
    """
    return (
        len(name) > len(prefix)
        and name.startswith(prefix)
        and name[len(prefix)] in '.['
    )


def get_in(data: Any, name: str, default: Any = None) -> Any:
    """Read the value at a dotted path, returning ``default`` if any segment is missing."""
    current = data
    for segment in parse_path(name):
        if isinstance(segment, int):
            if not isinstance(current, list) or segment >= len(current):
                return default
            current = current[segment]
        else:
            if not isinstance(current, Mapping) or segment not in current:
                return default
            current = current[segment]
    return current


def set_in(data: Any, name: str, value: Any) -> Any:
    """Write ``value`` at a dotted path, creating intermediate containers.

    Integer segments create lists (padded with None), everything else creates
    dicts. Non-container intermediates are replaced. Returns ``data`` for chaining.
    """
    segments = parse_path(name)
    current = data
    for i, segment in enumerate(segments):
        is_last = i == len(segments) - 1
        if is_last:
            _assign(current, segment, value)
            break
        next_segment = segments[i + 1]
        child = _read(current, segment)
        if isinstance(next_segment, int):
            if not isinstance(child, list):
                child = []
                _assign(current, segment, child)
        elif not isinstance(child, dict):
            child = {}
            _assign(current, segment, child)
        current = child
    return data


def _read(container: Any, segment: Segment) -> Any:
    if isinstance(segment, int):
        return container[segment] if segment < len(container) else None
    return container.get(segment)


def _assign(container: Any, segment: Segment, value: Any) -> None:
    if isinstance(segment, int):
        while len(container) <= segment:
            container.append(None)
    container[segment] = value


def unflatten(flat: Mapping[str, Any]) -> Dict[str, Any]:
    """Build a nested structure from ``{dotted_name: value}``.

    Example:
        >>> unflatten({"a.b": 1, "a.c": 2})
        {'a': {'b': 1, 'c': 2}}
    """
    nested: Dict[str, Any] = {}
    for name, value in flat.items():
        set_in(nested, name, value)
    return nested


def flatten(
    nested: Any,
    is_leaf: Callable[[str, Any], bool],
    on_unmatched: Optional[Callable[[str, Any], None]] = None,
) -> Dict[str, Any]:
    """Walk a nested structure and collect the values of leaf paths.

    Descent stops at the first path for which ``is_leaf`` returns True, so a
    leaf holding a dict is recorded whole rather than split further.

    Args:
        nested: Nested dict/list structure.
        is_leaf: Called with (dotted_name, value).
        on_unmatched: Called with (dotted_name, value) for scalars reached
            without passing through a leaf path.

    Returns:
        Flat ``{dotted_name: value}`` for every leaf path found.
    """
    flat: Dict[str, Any] = {}

    def visit(node: Any, path: Tuple[Segment, ...]) -> None:
        name = format_path(path) if path else ''
        if path and is_leaf(name, node):
            flat[name] = node
            return
        if isinstance(node, Mapping):
            for key, value in node.items():
                visit(value, path + (key,))
        elif isinstance(node, list):
            for index, value in enumerate(node):
                visit(value, path + (index,))
        elif path and on_unmatched is not None:
            on_unmatched(name, node)

    visit(nested, ())
    return flat
