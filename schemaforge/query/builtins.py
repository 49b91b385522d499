"""Builtin functions of the query language.

Native builtins are Python generators registered by ``(name, arity)``; they
receive the input value, the caller's environment, the unevaluated argument
nodes and the call-site offset. The rest of the library is written in the
query language itself (:data:`DEFINITIONS`) and compiled once on first use.
"""

from __future__ import annotations

import json
import logging
import math
import re
from functools import lru_cache
from itertools import groupby, product
from typing import Any, Callable, Iterator

from ..core.errors import EvalError, EvalErrorKind
from ..core.values import FrozenMap, freeze
from . import ops
from .nodes import Env, Scope, bind_definitions

logger = logging.getLogger(__name__)

Builtin = Callable[[Any, Env, tuple, int], Iterator[Any]]

NATIVE: dict[tuple[str, int], Builtin] = {}


def builtin(name: str, arity: int = 0) -> Callable[[Builtin], Builtin]:
    """Register a generator taking the raw argument nodes."""

    def decorate(fn: Builtin) -> Builtin:
        NATIVE[(name, arity)] = fn
        return fn

    return decorate


def function(name: str, arity: int = 0) -> Callable:
    """Register a plain function of the input and its evaluated arguments.

    Arguments producing several outputs call the function once per
    combination, like ``$param`` arguments of user definitions.
    """

    def decorate(fn: Callable[..., Any]) -> Callable[..., Any]:
        def run(value, env, args, pos):
            if not args:
                yield fn(value, pos=pos)
                return
            streams = [list(arg.evaluate(value, env)) for arg in args]
            for combo in product(*streams):
                yield fn(value, *combo, pos=pos)

        NATIVE[(name, arity)] = run
        return fn

    return decorate


def _require(check: Callable[[Any], bool], what: str, value: Any, name: str, pos) -> None:
    if not check(value):
        raise ops.type_error(f"{name} input must be {what}, not {ops.type_name(value)}", pos)


def _require_string(value: Any, name: str, pos) -> None:
    _require(lambda v: isinstance(v, str), "a string", value, name, pos)


def _require_array(value: Any, name: str, pos) -> None:
    _require(ops.is_array, "an array", value, name, pos)


def _require_number(value: Any, name: str, pos) -> None:
    _require(ops.is_number, "a number", value, name, pos)


# ---------------------------------------------------------------------------
# Core
# ---------------------------------------------------------------------------


@builtin("empty")
def _empty(value, env, args, pos):
    return iter(())


@builtin("error")
def _error0(value, env, args, pos):
    raise _user_error(value, pos)
    yield


@builtin("error", 1)
def _error1(value, env, args, pos):
    for message in args[0].evaluate(value, env):
        raise _user_error(message, pos)
    yield from ()


def _user_error(payload: Any, pos) -> EvalError:
    if isinstance(payload, str):
        message = payload
    elif payload is None:
        message = "null (null) not a string"
    else:
        message = f"{ops.dumps(payload)} (not a string)"
    return EvalError(EvalErrorKind.RUNTIME_FAILURE, message, position=pos, payload=payload)


@function("not")
def _not(value, pos=None):
    return not ops.is_truthy(value)


@function("type")
def _type(value, pos=None):
    return ops.type_name(value)


@function("length")
def _length(value, pos=None):
    return ops.length(value, pos)


@function("utf8bytelength")
def _utf8bytelength(value, pos=None):
    _require_string(value, "utf8bytelength", pos)
    return len(value.encode("utf-8"))


@function("keys")
def _keys(value, pos=None):
    if ops.is_object(value):
        return tuple(sorted(value))
    if ops.is_array(value):
        return tuple(range(len(value)))
    raise ops.type_error(f"{ops.type_name(value)} has no keys", pos)


@function("keys_unsorted")
def _keys_unsorted(value, pos=None):
    if ops.is_object(value):
        return tuple(value)
    return _keys(value, pos=pos)


@function("has", 1)
def _has(value, key, pos=None):
    if ops.is_object(value) and isinstance(key, str):
        return key in value
    if ops.is_array(value) and ops.is_number(key):
        return 0 <= key < len(value)
    raise ops.type_error(
        f"Cannot check whether {ops.type_name(value)} has a {ops.type_name(key)} key", pos
    )


@function("contains", 1)
def _contains(value, other, pos=None):
    return ops.contains(value, other, pos)


@function("add")
def _add(value, pos=None):
    result = None
    for item in ops.iterate(value, pos) if value is not None else ():
        result = ops.add(result, item, pos)
    return result


@builtin("range", 1)
def _range1(value, env, args, pos):
    for upto in args[0].evaluate(value, env):
        yield from _range(0, upto, 1, pos)


@builtin("range", 2)
def _range2(value, env, args, pos):
    for start in args[0].evaluate(value, env):
        for upto in args[1].evaluate(value, env):
            yield from _range(start, upto, 1, pos)


@builtin("range", 3)
def _range3(value, env, args, pos):
    for start in args[0].evaluate(value, env):
        for upto in args[1].evaluate(value, env):
            for step in args[2].evaluate(value, env):
                yield from _range(start, upto, step, pos)


def _range(start, upto, step, pos):
    for bound in (start, upto, step):
        if not ops.is_number(bound):
            raise ops.type_error("Range bounds must be numeric", pos)
    if step == 0:
        return
    current = start
    while (step > 0 and current < upto) or (step < 0 and current > upto):
        yield ops.normalize_number(current)
        current += step


@function("tostring")
def _tostring(value, pos=None):
    return ops.tostring(value)


@function("tonumber")
def _tonumber(value, pos=None):
    if ops.is_number(value):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text) if re.fullmatch(r"[+-]?\d+", text) else ops.normalize_number(float(text))
        except ValueError:
            pass
        raise ops.runtime_error(f"Cannot parse {ops.dumps(value)} as a number", pos)
    raise ops.type_error(f"{ops.type_name(value)} cannot be parsed as a number", pos)


@function("tojson")
def _tojson(value, pos=None):
    return ops.dumps(value)


@function("fromjson")
def _fromjson(value, pos=None):
    _require_string(value, "fromjson", pos)
    try:
        return freeze(json.loads(value))
    except json.JSONDecodeError as e:
        raise ops.runtime_error(f"{value!r} is not valid JSON: {e.msg}", pos) from e


@builtin("debug")
def _debug(value, env, args, pos):
    logger.debug(f"DEBUG: {ops.dumps(value)}")
    yield value


@builtin("map_values", 1)
def _map_values(value, env, args, pos):
    f = args[0]
    if ops.is_object(value):
        result = {}
        for key, item in value.items():
            for out in f.evaluate(item, env):
                result[key] = out
                break
        yield FrozenMap(result)
    elif ops.is_array(value):
        items = []
        for item in value:
            for out in f.evaluate(item, env):
                items.append(out)
                break
        yield tuple(items)
    else:
        raise ops.type_error(f"Cannot iterate over {ops.type_name(value)}", pos)


# ---------------------------------------------------------------------------
# Math
# ---------------------------------------------------------------------------


def _math(name: str, fn: Callable[[float], float]) -> None:
    def run(value, pos=None):
        _require_number(value, name, pos)
        try:
            return ops.normalize_number(fn(value))
        except (ValueError, OverflowError) as e:
            raise ops.runtime_error(f"{name}: {e}", pos) from e

    function(name)(run)


def _round(x: float) -> float:
    return math.copysign(math.floor(abs(x) + 0.5), x)


for _name, _fn in {
    "floor": math.floor,
    "ceil": math.ceil,
    "round": _round,
    "trunc": math.trunc,
    "fabs": math.fabs,
    "sqrt": math.sqrt,
    "log": math.log,
    "log2": math.log2,
    "log10": math.log10,
    "exp": math.exp,
    "exp2": lambda x: 2.0**x,
    "exp10": lambda x: 10.0**x,
}.items():
    _math(_name, _fn)


@function("pow", 2)
def _pow(value, base, exponent, pos=None):
    _require_number(base, "pow", pos)
    _require_number(exponent, "pow", pos)
    try:
        return ops.normalize_number(math.pow(base, exponent))
    except (ValueError, OverflowError) as e:
        raise ops.runtime_error(f"pow: {e}", pos) from e


@function("infinite")
def _infinite(value, pos=None):
    return math.inf


@function("nan")
def _nan(value, pos=None):
    return math.nan


@function("isinfinite")
def _isinfinite(value, pos=None):
    _require_number(value, "isinfinite", pos)
    return math.isinf(value)


@function("isnan")
def _isnan(value, pos=None):
    _require_number(value, "isnan", pos)
    return isinstance(value, float) and math.isnan(value)


@function("isnormal")
def _isnormal(value, pos=None):
    _require_number(value, "isnormal", pos)
    return value != 0 and math.isfinite(value)


# ---------------------------------------------------------------------------
# Arrays
# ---------------------------------------------------------------------------


@function("sort")
def _sort(value, pos=None):
    _require_array(value, "sort", pos)
    return tuple(sorted(value, key=ops.order_key))


def _keyed(name, value, env, f, pos) -> list[tuple[tuple, Any]]:
    _require_array(value, name, pos)
    return [(ops.order_key(tuple(f.evaluate(item, env))), item) for item in value]


@builtin("sort_by", 1)
def _sort_by(value, env, args, pos):
    keyed = _keyed("sort_by", value, env, args[0], pos)
    yield tuple(item for _, item in sorted(keyed, key=lambda pair: pair[0]))


@builtin("group_by", 1)
def _group_by(value, env, args, pos):
    keyed = sorted(_keyed("group_by", value, env, args[0], pos), key=lambda pair: pair[0])
    yield tuple(
        tuple(item for _, item in group) for _, group in groupby(keyed, key=lambda p: p[0])
    )


@builtin("unique_by", 1)
def _unique_by(value, env, args, pos):
    keyed = sorted(_keyed("unique_by", value, env, args[0], pos), key=lambda pair: pair[0])
    yield tuple(next(group)[1] for _, group in groupby(keyed, key=lambda p: p[0]))


@function("unique")
def _unique(value, pos=None):
    _require_array(value, "unique", pos)
    ordered = sorted(value, key=ops.order_key)
    return tuple(next(group) for _, group in groupby(ordered, key=ops.order_key))


@builtin("min_by", 1)
def _min_by(value, env, args, pos):
    keyed = _keyed("min_by", value, env, args[0], pos)
    yield min(keyed, key=lambda pair: pair[0])[1] if keyed else None


@builtin("max_by", 1)
def _max_by(value, env, args, pos):
    keyed = _keyed("max_by", value, env, args[0], pos)
    best = None
    for key, item in keyed:
        if best is None or key >= best[0]:
            best = (key, item)
    yield best[1] if best else None


@function("min")
def _min(value, pos=None):
    _require_array(value, "min", pos)
    return min(value, key=ops.order_key) if value else None


@function("max")
def _max(value, pos=None):
    _require_array(value, "max", pos)
    return sorted(value, key=ops.order_key)[-1] if value else None


@function("reverse")
def _reverse(value, pos=None):
    if value is None:
        return ()
    if isinstance(value, str):
        return value[::-1]
    _require_array(value, "reverse", pos)
    return tuple(reversed(value))


@function("flatten")
def _flatten0(value, pos=None):
    return _flatten(value, 1e9, pos)


@function("flatten", 1)
def _flatten1(value, depth, pos=None):
    return _flatten(value, depth, pos)


def _flatten(value, depth, pos):
    _require_array(value, "flatten", pos)
    _require_number(depth, "flatten depth", pos)
    if depth < 0:
        raise ops.runtime_error("flatten depth must not be negative", pos)
    result: list[Any] = []
    for item in value:
        if ops.is_array(item) and depth > 0:
            result.extend(_flatten(item, depth - 1, pos))
        else:
            result.append(item)
    return tuple(result)


@function("transpose")
def _transpose(value, pos=None):
    _require_array(value, "transpose", pos)
    for row in value:
        _require_array(row, "transpose", pos)
    width = max((len(row) for row in value), default=0)
    return tuple(
        tuple(row[i] if i < len(row) else None for row in value) for i in range(width)
    )


@function("to_entries")
def _to_entries(value, pos=None):
    _require(ops.is_object, "an object", value, "to_entries", pos)
    return tuple(FrozenMap(key=k, value=v) for k, v in value.items())


_ENTRY_KEYS = ("key", "k", "name", "Name", "K", "Key")
_ENTRY_VALUES = ("value", "v", "Value", "V")


@function("from_entries")
def _from_entries(value, pos=None):
    _require_array(value, "from_entries", pos)
    result = {}
    for entry in value:
        if not ops.is_object(entry):
            raise ops.type_error(f"Cannot use {ops.type_name(entry)} as an entry", pos)
        key = next((entry[k] for k in _ENTRY_KEYS if entry.get(k) is not None), None)
        item = next((entry[k] for k in _ENTRY_VALUES if k in entry), None)
        if isinstance(key, bool) or ops.is_number(key):
            key = ops.tostring(key)
        if not isinstance(key, str):
            raise ops.type_error(f"Cannot use {ops.type_name(key)} as object key", pos)
        result[key] = item
    return FrozenMap(result)


@function("indices", 1)
def _indices(value, target, pos=None):
    if value is None:
        return None
    if isinstance(value, str) and isinstance(target, str):
        if not target:
            return None
        return tuple(i for i in range(len(value)) if value.startswith(target, i))
    if ops.is_array(value) and ops.is_array(target):
        n = len(target)
        if not n:
            return None
        return tuple(
            i for i in range(len(value) - n + 1)
            if all(ops.equals(value[i + j], target[j]) for j in range(n))
        )
    if ops.is_array(value):
        return tuple(i for i, item in enumerate(value) if ops.equals(item, target))
    raise ops.type_error(
        f"Cannot determine indices of {ops.type_name(target)} in {ops.type_name(value)}", pos
    )


@function("index", 1)
def _index(value, target, pos=None):
    found = _indices(value, target, pos=pos)
    return found[0] if found else None


@function("rindex", 1)
def _rindex(value, target, pos=None):
    found = _indices(value, target, pos=pos)
    return found[-1] if found else None


@function("getpath", 1)
def _getpath(value, path, pos=None):
    _require(ops.is_array, "an array", path, "getpath path", pos)
    current = value
    for key in path:
        if current is None:
            return None
        current = ops.index(current, key, pos)
    return current


@builtin("paths")
def _paths_stream(value, env, args, pos):
    yield from _walk_paths(value, ())


def _walk_paths(value, prefix):
    if ops.is_object(value):
        children = value.items()
    elif ops.is_array(value):
        children = enumerate(value)
    else:
        return
    for key, child in children:
        path = prefix + (key,)
        yield path
        yield from _walk_paths(child, path)


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------


@builtin("limit", 2)
def _limit(value, env, args, pos):
    for n in args[0].evaluate(value, env):
        _require_number(n, "limit count", pos)
        if n <= 0:
            continue
        count = 0
        for out in args[1].evaluate(value, env):
            yield out
            count += 1
            if count >= n:
                break


@builtin("first", 1)
def _first(value, env, args, pos):
    for out in args[0].evaluate(value, env):
        yield out
        return


@builtin("last", 1)
def _last(value, env, args, pos):
    missing = object()
    last = missing
    for last in args[0].evaluate(value, env):
        pass
    if last is not missing:
        yield last


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------

_ASCII_LOWER = str.maketrans("ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz")
_ASCII_UPPER = str.maketrans("abcdefghijklmnopqrstuvwxyz", "ABCDEFGHIJKLMNOPQRSTUVWXYZ")


@function("ascii_downcase")
def _ascii_downcase(value, pos=None):
    _require_string(value, "ascii_downcase", pos)
    return value.translate(_ASCII_LOWER)


@function("ascii_upcase")
def _ascii_upcase(value, pos=None):
    _require_string(value, "ascii_upcase", pos)
    return value.translate(_ASCII_UPPER)


@function("ltrimstr", 1)
def _ltrimstr(value, prefix, pos=None):
    if isinstance(value, str) and isinstance(prefix, str) and value.startswith(prefix):
        return value[len(prefix):]
    return value


@function("rtrimstr", 1)
def _rtrimstr(value, suffix, pos=None):
    if isinstance(value, str) and isinstance(suffix, str) and suffix and value.endswith(suffix):
        return value[: -len(suffix)]
    return value


@function("trim")
def _trim(value, pos=None):
    _require_string(value, "trim", pos)
    return value.strip()


@function("ltrim")
def _ltrim(value, pos=None):
    _require_string(value, "ltrim", pos)
    return value.lstrip()


@function("rtrim")
def _rtrim(value, pos=None):
    _require_string(value, "rtrim", pos)
    return value.rstrip()


@function("startswith", 1)
def _startswith(value, prefix, pos=None):
    if not (isinstance(value, str) and isinstance(prefix, str)):
        raise ops.type_error("startswith() requires string inputs", pos)
    return value.startswith(prefix)


@function("endswith", 1)
def _endswith(value, suffix, pos=None):
    if not (isinstance(value, str) and isinstance(suffix, str)):
        raise ops.type_error("endswith() requires string inputs", pos)
    return value.endswith(suffix)


@function("split", 1)
def _split(value, separator, pos=None):
    if not (isinstance(value, str) and isinstance(separator, str)):
        raise ops.type_error("split input and separator must be strings", pos)
    return ops.split_string(value, separator)


@function("join", 1)
def _join(value, separator, pos=None):
    _require_array(value, "join", pos)
    if not isinstance(separator, str):
        raise ops.type_error("join separator must be a string", pos)
    parts = []
    for item in value:
        if item is None:
            parts.append("")
        elif isinstance(item, (bool, str)) or ops.is_number(item):
            parts.append(ops.tostring(item))
        else:
            raise ops.type_error(f"Cannot join with {ops.type_name(item)}", pos)
    return separator.join(parts)


@function("explode")
def _explode(value, pos=None):
    _require_string(value, "explode", pos)
    return tuple(ord(ch) for ch in value)


@function("implode")
def _implode(value, pos=None):
    _require_array(value, "implode", pos)
    for code in value:
        if not ops.is_number(code):
            raise ops.type_error(
                f"implode input must be an array of codepoints, not {ops.type_name(code)}", pos
            )
        if not 0 <= code <= 0x10FFFF:
            raise ops.runtime_error(f"invalid codepoint: {code}", pos)
    return "".join(chr(int(code)) for code in value)


# ---------------------------------------------------------------------------
# Regular expressions
# ---------------------------------------------------------------------------

_FLAG_BITS = {"i": re.IGNORECASE, "x": re.VERBOSE, "s": re.DOTALL}
# Oniguruma named groups, as written in jq programs.
_NAMED_GROUP = re.compile(r"\(\?<(?=[A-Za-z_])")


@lru_cache(maxsize=256)
def _compile_regex(pattern: str, flags: str) -> re.Pattern:
    bits = 0
    for flag in flags:
        if flag in _FLAG_BITS:
            bits |= _FLAG_BITS[flag]
        elif flag not in "gnpl":
            raise ValueError(f"{flag} is not a valid modifier string")
    return re.compile(_NAMED_GROUP.sub("(?P<", pattern), bits)


def _regex(value, pattern, flags, name, pos) -> tuple[re.Pattern, bool, bool]:
    _require_string(value, name, pos)
    if not isinstance(pattern, str):
        raise ops.type_error(f"{ops.type_name(pattern)} cannot be matched, as it is not a string", pos)
    if flags is None:
        flags = ""
    if not isinstance(flags, str):
        raise ops.type_error(f"{ops.type_name(flags)} is not a string", pos)
    try:
        compiled = _compile_regex(pattern, flags)
    except (re.error, ValueError) as e:
        raise ops.runtime_error(f"{pattern} (at offset {getattr(e, 'pos', 0)}) is not a valid regex: {e}", pos) from e
    return compiled, "g" in flags, "n" in flags


def _matches(value, pattern, flags, name, pos, force_global=False) -> Iterator[re.Match]:
    compiled, global_, skip_empty = _regex(value, pattern, flags, name, pos)
    if global_ or force_global:
        for match in compiled.finditer(value):
            if skip_empty and match.end() == match.start():
                continue
            yield match
        return
    match = compiled.search(value)
    if match is not None and not (skip_empty and match.end() == match.start()):
        yield match


def _match_object(match: re.Match) -> FrozenMap:
    names = {index: name for name, index in match.re.groupindex.items()}
    captures = []
    for group in range(1, (match.re.groups or 0) + 1):
        text = match.group(group)
        captures.append(
            FrozenMap(
                offset=match.start(group) if text is not None else -1,
                length=len(text) if text is not None else 0,
                string=text,
                name=names.get(group),
            )
        )
    return FrozenMap(
        offset=match.start(),
        length=match.end() - match.start(),
        string=match.group(0),
        captures=tuple(captures),
    )


def _capture_object(match: re.Match) -> FrozenMap:
    return FrozenMap((name, match.group(name)) for name in match.re.groupindex)


def _regex_builtin(name: str, arity: int, fn: Callable) -> None:
    @builtin(name, arity)
    def run(value, env, args, pos):
        streams = [list(arg.evaluate(value, env)) for arg in args]
        for combo in product(*streams):
            pattern = combo[0]
            flags = combo[1] if len(combo) > 1 else None
            yield from fn(value, pattern, flags, pos)


def _test(value, pattern, flags, pos):
    yield any(True for _ in _matches(value, pattern, flags, "test", pos))


def _match(value, pattern, flags, pos):
    for match in _matches(value, pattern, flags, "match", pos):
        yield _match_object(match)


def _capture(value, pattern, flags, pos):
    for match in _matches(value, pattern, flags, "capture", pos):
        yield _capture_object(match)


def _scan(value, pattern, flags, pos):
    for match in _matches(value, pattern, flags, "scan", pos, force_global=True):
        if match.re.groups:
            yield tuple(match.groups())
        else:
            yield match.group(0)


def _split_regex(value, pattern, flags, pos):
    pieces = []
    last = 0
    for match in _matches(value, pattern, flags, "split", pos, force_global=True):
        pieces.append(value[last:match.start()])
        last = match.end()
    pieces.append(value[last:])
    yield tuple(pieces)


for _name, _fn in {"test": _test, "match": _match, "capture": _capture, "scan": _scan}.items():
    _regex_builtin(_name, 1, _fn)
    _regex_builtin(_name, 2, _fn)
_regex_builtin("split", 2, _split_regex)


def _substitute(value, env, pattern, replacement, flags, pos) -> str:
    pieces = []
    last = 0
    for match in _matches(value, pattern, flags, "sub", pos):
        pieces.append(value[last:match.start()])
        text = next(iter(replacement.evaluate(_capture_object(match), env)), None)
        if not isinstance(text, str):
            raise ops.type_error(
                f"sub replacement must produce a string, not {ops.type_name(text)}", pos
            )
        pieces.append(text)
        last = match.end()
    pieces.append(value[last:])
    return "".join(pieces)


def _sub_builtin(name: str, arity: int, default_flags: str) -> None:
    @builtin(name, arity)
    def run(value, env, args, pos):
        patterns = list(args[0].evaluate(value, env))
        flag_values = list(args[2].evaluate(value, env)) if arity == 3 else [""]
        for pattern in patterns:
            for flags in flag_values:
                flags = (flags or "") + default_flags
                yield _substitute(value, env, pattern, args[1], flags, pos)


_sub_builtin("sub", 2, "")
_sub_builtin("sub", 3, "")
_sub_builtin("gsub", 2, "g")
_sub_builtin("gsub", 3, "g")


# ---------------------------------------------------------------------------
# Definitions written in the query language
# ---------------------------------------------------------------------------

DEFINITIONS = r"""
def map(f): [.[] | f];
def select(f): if f then . else empty end;
def recurse(f): def r: ., (f | r); r;
def recurse(f; cond): def r: ., (f | select(cond) | r); r;
def recurse: recurse(.[]?);
def values: select(. != null);
def nulls: select(. == null);
def booleans: select(type == "boolean");
def numbers: select(type == "number");
def strings: select(type == "string");
def arrays: select(type == "array");
def objects: select(type == "object");
def iterables: select(type | . == "array" or . == "object");
def scalars: select(type | . != "array" and . != "object");
def finites: select(isinfinite or isnan | not);
def normals: select(isnormal);
def abs: if type == "number" and . < 0 then -. else . end;
def toarray: if type == "array" then . else [.] end;
def with_entries(f): to_entries | map(f) | from_entries;
def add(f): reduce f as $x (null; . + $x);
def in(xs): . as $x | xs | has($x);
def inside(xs): . as $x | xs | contains($x);
def first: .[0];
def last: .[-1];
def nth($n): .[$n];
def nth($n; f): if $n < 0 then error("Out of bounds negative array index") else last(limit($n + 1; f)) end;
def isempty(g): first((g | false), true);
def any(g; cond): isempty(first(g | cond or empty)) | not;
def all(g; cond): isempty(first(g | cond and empty));
def any(cond): any(.[]; cond);
def all(cond): all(.[]; cond);
def any: any(.);
def all: all(.);
def IN(s): any(s == .; .);
def IN(src; s): any(src == s; .);
def until(cond; update): def _until: if cond then . else (update | _until) end; _until;
def while(cond; update): def _while: if cond then ., (update | _while) else empty end; _while;
def repeat(f): def _repeat: ., (f | _repeat); _repeat;
def walk(f): def w: if type == "object" then map_values(w) elif type == "array" then map(w) else . end | f; w;
def paths(node_filter): . as $dot | paths | select(. as $p | $dot | getpath($p) | node_filter);
def leaf_paths: paths(scalars);
def splits($re): split($re; null) | .[];
def splits($re; flags): split($re; flags) | .[];
def ascii: [.] | implode;
def combinations: if length == 0 then [] else .[0][] as $x | (.[1:] | combinations) as $w | [$x] + $w end;
def combinations(n): . as $dot | [range(n)] | map($dot) | combinations;
def debug(msg): (msg | debug | empty), .;
"""


@lru_cache(maxsize=None)
def root_env() -> Env:
    """Environment holding every builtin; shared by all compiled queries."""
    from .parser import parse

    native = Env(funcs=dict(NATIVE))
    program = parse(DEFINITIONS + " .")
    program.check(Scope(funcs=NATIVE))
    return bind_definitions(program.defs, native)


@lru_cache(maxsize=None)
def root_scope() -> Scope:
    """Compile-time view of :func:`root_env`."""
    env = root_env()
    funcs = set(NATIVE)
    funcs.update(env.funcs)
    return Scope(funcs=funcs)


def builtin_names() -> list[str]:
    """Sorted ``name/arity`` list of every builtin, as listed by ``schemaforge builtins``."""
    return sorted(f"{name}/{arity}" for name, arity in root_scope().funcs)
