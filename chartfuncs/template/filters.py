"""
Key/value filtering over collections of unknown shape.

Values passed in from a template may be lists of dicts, lists of objects or a
single dict. introspect() classifies a value into a Shape, and the match rule
is dispatched on that shape:

- MAP: the value under `key` must be deep-equal to the predicate value.
- RECORD: the attribute named `key` is compared to the predicate value by
  string representation only, so an int attribute 42 matches "42".
"""

import enum
import weakref
from collections.abc import Mapping, Sequence
from typing import Any, List

from .errors import FilterPanic, TypeMismatch

_MISSING = object()


class Shape(enum.Enum):
    """Kinds of value the filter distinguishes."""

    SEQUENCE = "sequence"
    MAP = "map"
    RECORD = "record"
    SCALAR = "scalar"


def resolve(value: Any) -> Any:
    """Follow a weak reference to the object it points at."""
    if isinstance(value, weakref.ref):
        return value()
    return value


def introspect(value: Any) -> Shape:
    value = resolve(value)
    if isinstance(value, Mapping):
        return Shape.MAP
    if value is None or isinstance(value, (str, bytes, bytearray, bool, int, float, complex)):
        return Shape.SCALAR
    if isinstance(value, Sequence):
        return Shape.SEQUENCE
    return Shape.RECORD


def deep_equal(a: Any, b: Any) -> bool:
    """Compare two values recursively, requiring identical types throughout."""
    if type(a) is not type(b):
        return False
    if isinstance(a, Mapping):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)):
        return len(a) == len(b) and all(deep_equal(x, y) for x, y in zip(a, b))
    return a == b


def _match_map(item: Mapping, key: str, value: Any) -> bool:
    for candidate in item:
        if str(candidate) == key:
            return deep_equal(item[candidate], value)
    return False


def _match_record(item: Any, key: str, value: Any) -> bool:
    # Only public attributes are fields
    if key.startswith("_"):
        return False
    field = getattr(item, key, _MISSING)
    if field is _MISSING:
        return False
    return str(field) == str(value)


def matches(item: Any, key: str, value: Any) -> bool:
    """Return True if item has a field or key `key` equal to `value`."""
    item = resolve(item)
    shape = introspect(item)
    if shape is Shape.MAP:
        return _match_map(item, key, value)
    if shape is Shape.RECORD:
        return _match_record(item, key, value)
    return False


def must_filter(key: Any, value: Any, collection: Any) -> List[Any]:
    """
    Filter a collection by a key/value pair.

    Items may be dicts (matched by key) or objects (matched by attribute). A
    single dict is treated as one candidate, yielding a one-item list on
    match and an empty list otherwise.

    Raises:
        TypeMismatch: if key is not a string, or collection is neither a
            sequence nor a mapping.
    """
    if not isinstance(key, str):
        raise TypeMismatch(f"filter key must be a string, got {type(key).__name__}")

    shape = introspect(collection)
    if shape is Shape.SEQUENCE:
        return [item for item in resolve(collection) if matches(item, key, value)]
    if shape is Shape.MAP:
        collection = resolve(collection)
        return [collection] if matches(collection, key, value) else []
    raise TypeMismatch(f"cannot filter on type {type(resolve(collection)).__name__}")


def filter_items(key: Any, value: Any, collection: Any) -> List[Any]:
    """Like must_filter, but abort with FilterPanic instead of reporting an error."""
    try:
        return must_filter(key, value, collection)
    except TypeMismatch as exc:
        raise FilterPanic(str(exc)) from exc
