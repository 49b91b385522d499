"""Immutable resolved values shared by the query evaluator and the renderer."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, NoReturn

import yaml


class FrozenMap(dict):
    """Insertion-ordered mapping that refuses in-place mutation.

    Subclassing ``dict`` keeps the value usable everywhere a plain mapping is
    expected (Jinja2 attribute lookup, ``json.dumps``) while making the
    shared schema safe to read from many worker threads.
    """

    __slots__ = ()

    def _readonly(self, *args: Any, **kwargs: Any) -> NoReturn:
        raise TypeError("resolved values are immutable")

    __setitem__ = _readonly
    __delitem__ = _readonly
    __ior__ = _readonly
    clear = _readonly
    pop = _readonly
    popitem = _readonly
    setdefault = _readonly
    update = _readonly

    def __hash__(self) -> int:  # type: ignore[override]
        return hash(frozenset(self.items()))

    def __repr__(self) -> str:
        return f"FrozenMap({dict.__repr__(self)})"

    def __copy__(self) -> FrozenMap:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> FrozenMap:
        return self

    def __reduce__(self):
        return (FrozenMap, (dict(self),))


def freeze(value: Any) -> Any:
    """Return a deep-frozen copy of JSON/YAML-like data.

    Mappings become :class:`FrozenMap` (keys coerced to ``str``), lists and
    tuples become tuples. Scalars are returned unchanged. Values that are
    already frozen mappings are returned as-is.
    """
    if isinstance(value, FrozenMap):
        return value
    if isinstance(value, Mapping):
        return FrozenMap((str(k), freeze(v)) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    raise TypeError(f"unsupported value type: {type(value).__name__}")


def thaw(value: Any) -> Any:
    """Return a mutable ``dict``/``list`` copy of a frozen value."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(v) for v in value]
    return value


class DataLoader(yaml.SafeLoader):
    """Safe YAML loader restricted to the JSON data model.

    Unquoted dates and timestamps stay strings instead of becoming
    ``datetime`` objects.
    """


DataLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_yaml(text: str) -> Any:
    return yaml.load(text, Loader=DataLoader)
