"""Value semantics of the query language: types, ordering, arithmetic, indexing."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Any, Iterator

from ..core.errors import EvalError, EvalErrorKind
from ..core.values import FrozenMap

_TYPE_RANK = {
    "null": 0,
    "boolean": 1,
    "number": 3,
    "string": 4,
    "array": 5,
    "object": 6,
}


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_array(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def is_object(value: Any) -> bool:
    return isinstance(value, Mapping)


def type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if is_array(value):
        return "array"
    if is_object(value):
        return "object"
    raise TypeError(f"not a query value: {type(value).__name__}")


def is_truthy(value: Any) -> bool:
    return value is not None and value is not False


def normalize_number(value: int | float) -> int | float:
    """Collapse integral floats to ``int`` so ``4 / 2`` renders as ``2``."""
    if isinstance(value, float) and value.is_integer() and abs(value) < 2**63:
        return int(value)
    return value


def order_key(value: Any) -> tuple:
    """Sort key implementing the total order of query values.

    null < false < true < numbers < strings < arrays < objects; arrays compare
    element-wise, objects compare their sorted key lists first, then values.
    """
    kind = type_name(value)
    if kind == "boolean":
        return (1, int(value))
    if kind == "null":
        return (0,)
    if kind in ("number", "string"):
        return (_TYPE_RANK[kind], value)
    if kind == "array":
        return (5, tuple(order_key(v) for v in value))
    keys = sorted(value)
    return (6, tuple(keys), tuple(order_key(value[k]) for k in keys))


def compare(a: Any, b: Any) -> int:
    ka, kb = order_key(a), order_key(b)
    return (ka > kb) - (ka < kb)


def equals(a: Any, b: Any) -> bool:
    return order_key(a) == order_key(b)


def _jsonable(value: Any) -> Any:
    if isinstance(value, float):
        if math.isnan(value):
            return None
        return normalize_number(value)
    if is_object(value):
        return {k: _jsonable(v) for k, v in value.items()}
    if is_array(value):
        return [_jsonable(v) for v in value]
    return value


def dumps(value: Any) -> str:
    """Compact JSON text for a value, keeping mapping order."""
    return json.dumps(_jsonable(value), separators=(",", ":"), ensure_ascii=False)


def tostring(value: Any) -> str:
    return value if isinstance(value, str) else dumps(value)


def _describe(value: Any) -> str:
    text = dumps(value)
    if len(text) > 40:
        text = text[:37] + "..."
    return f"{type_name(value)} ({text})"


def type_error(message: str, pos: int | None = None) -> EvalError:
    return EvalError(EvalErrorKind.TYPE_MISMATCH, message, position=pos)


def runtime_error(message: str, pos: int | None = None) -> EvalError:
    return EvalError(EvalErrorKind.RUNTIME_FAILURE, message, position=pos)


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


def add(a: Any, b: Any, pos: int | None = None) -> Any:
    if a is None:
        return b
    if b is None:
        return a
    if is_number(a) and is_number(b):
        return normalize_number(a + b)
    if isinstance(a, str) and isinstance(b, str):
        return a + b
    if is_array(a) and is_array(b):
        return tuple(a) + tuple(b)
    if is_object(a) and is_object(b):
        return FrozenMap({**a, **b})
    raise type_error(f"{_describe(a)} and {_describe(b)} cannot be added", pos)


def subtract(a: Any, b: Any, pos: int | None = None) -> Any:
    if is_number(a) and is_number(b):
        return normalize_number(a - b)
    if is_array(a) and is_array(b):
        return tuple(x for x in a if not any(equals(x, y) for y in b))
    raise type_error(f"{_describe(a)} and {_describe(b)} cannot be subtracted", pos)


def _deep_merge(a: Mapping, b: Mapping) -> FrozenMap:
    merged = dict(a)
    for key, value in b.items():
        if key in merged and is_object(merged[key]) and is_object(value):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return FrozenMap(merged)


def multiply(a: Any, b: Any, pos: int | None = None) -> Any:
    if is_number(a) and is_number(b):
        return normalize_number(a * b)
    if isinstance(a, str) and is_number(b):
        a, b = b, a
    if is_number(a) and isinstance(b, str):
        return None if a <= 0 else b * max(1, int(a))
    if is_object(a) and is_object(b):
        return _deep_merge(a, b)
    raise type_error(f"{_describe(a)} and {_describe(b)} cannot be multiplied", pos)


def divide(a: Any, b: Any, pos: int | None = None) -> Any:
    if is_number(a) and is_number(b):
        if b == 0:
            raise runtime_error(
                f"{_describe(a)} and {_describe(b)} cannot be divided because the divisor is zero",
                pos,
            )
        return normalize_number(a / b)
    if isinstance(a, str) and isinstance(b, str):
        return split_string(a, b)
    raise type_error(f"{_describe(a)} and {_describe(b)} cannot be divided", pos)


def modulo(a: Any, b: Any, pos: int | None = None) -> Any:
    if is_number(a) and is_number(b):
        left, right = int(a), int(b)
        if right == 0:
            raise runtime_error(
                f"{_describe(a)} and {_describe(b)} cannot be divided because the divisor is zero",
                pos,
            )
        # Truncated division, as in C.
        return int(math.fmod(left, right))
    raise type_error(f"{_describe(a)} and {_describe(b)} cannot be divided", pos)


def split_string(text: str, separator: str) -> tuple[str, ...]:
    if text == "":
        return ()
    if separator == "":
        return tuple(text)
    return tuple(text.split(separator))


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------


def index(target: Any, key: Any, pos: int | None = None) -> Any:
    if target is None and (key is None or isinstance(key, str) or is_number(key)):
        return None
    if is_object(target) and isinstance(key, str):
        return target.get(key)
    if is_array(target) and is_number(key):
        i = math.floor(key)
        if i < 0:
            i += len(target)
        return target[i] if 0 <= i < len(target) else None
    if is_object(key) and (target is None or is_array(target) or isinstance(target, str)):
        start, end = key.get("start"), key.get("end")
        return slice_value(target, start, end, pos)
    if isinstance(key, str):
        raise type_error(f"Cannot index {type_name(target)} with \"{key}\"", pos)
    raise type_error(f"Cannot index {type_name(target)} with {type_name(key)}", pos)


def _slice_bound(bound: Any, length: int, default: int, pos: int | None) -> int:
    if bound is None:
        return default
    if not is_number(bound):
        raise type_error("Start and end indices of an array slice must be numbers", pos)
    i = math.floor(bound)
    if i < 0:
        i += length
    return min(max(i, 0), length)


def slice_value(target: Any, start: Any, end: Any, pos: int | None = None) -> Any:
    if target is None:
        return None
    if not (is_array(target) or isinstance(target, str)):
        raise type_error(f"Cannot index {type_name(target)} with object", pos)
    length = len(target)
    lo = _slice_bound(start, length, 0, pos)
    hi = _slice_bound(end, length, length, pos)
    if hi < lo:
        hi = lo
    result = target[lo:hi]
    return result if isinstance(result, str) else tuple(result)


def iterate(target: Any, pos: int | None = None) -> Iterator[Any]:
    if is_array(target):
        return iter(target)
    if is_object(target):
        return iter(target.values())
    raise type_error(f"Cannot iterate over {_describe(target)}", pos)


def length(value: Any, pos: int | None = None) -> int | float:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise type_error(f"{_describe(value)} has no length", pos)
    if is_number(value):
        return abs(value)
    return len(value)


def contains(a: Any, b: Any, pos: int | None = None) -> bool:
    if is_object(a) and is_object(b):
        return all(k in a and contains(a[k], v, pos) for k, v in b.items())
    if is_array(a) and is_array(b):
        return all(any(contains(x, y, pos) for x in a) for y in b)
    if isinstance(a, str) and isinstance(b, str):
        return b in a
    if type_name(a) == type_name(b):
        return equals(a, b)
    raise type_error(
        f"{_describe(a)} and {_describe(b)} cannot have their containment checked", pos
    )
