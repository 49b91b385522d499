"""Filters and globals registered on the template environment.

Query filters::

    {{ schema | jq('.groups | length') }}
    {% for g in schema | jq_all('.groups[] | select(.id | startswith($p))', p='http') %}
    {{ jq_first(item, '.brief') }}

Text filters cover case conversion (``snake_case``, ``pascal_case`` ...),
markdown conversion (``markdown``, ``markdown_to_text``) and comment
formatting (``comment('javadoc', indent=4)``).
"""

from __future__ import annotations

import functools
import logging
import re
from collections.abc import Mapping
from typing import Any, Callable

from jinja2 import Environment

from ..core.config import ForgeConfig
from ..core.errors import ForgeError
from ..core.values import freeze
from ..query import evaluate
from ..text import case, markdown

logger = logging.getLogger(__name__)


class FilterError(ForgeError):
    """A text filter received arguments it cannot handle."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(f"{name}: {message}")
        self.name = name


def _guard(name: str, fn: Callable[..., Any]) -> Callable[..., Any]:
    """Report bad filter input as :class:`FilterError` naming the filter."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except (TypeError, ValueError, KeyError, AttributeError, re.error) as e:
            raise FilterError(name, str(e)) from e

    return wrapper


def _text(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    return value


class QueryFilters:
    """``jq`` filter family bound to the run's global parameters."""

    def __init__(self, params: Mapping[str, Any]) -> None:
        self.params = freeze(dict(params))

    def _run(self, name: str, value: Any, expression: str, variables: dict[str, Any]):
        try:
            return evaluate(expression, value, {"params": self.params, **variables})
        except TypeError as e:
            raise FilterError(name, f"cannot query this value: {e}") from e

    def jq(self, value: Any, expression: str, **variables: Any) -> Any:
        """The only result when there is exactly one, else the list of results."""
        results = list(self._run("jq", value, expression, variables))
        if len(results) == 1:
            return results[0]
        return results

    def jq_all(self, value: Any, expression: str, **variables: Any) -> list[Any]:
        return list(self._run("jq_all", value, expression, variables))

    def jq_first(self, value: Any, expression: str, **variables: Any) -> Any:
        for result in self._run("jq_first", value, expression, variables):
            return result
        return None


def split_id(value: str) -> list[str]:
    """Split a dotted identifier: ``http.request.method`` -> ``['http', 'request', 'method']``."""
    return _text(value).split(".")


def regex_replace(value: str, pattern: str, replacement: str) -> str:
    return re.sub(pattern, replacement, _text(value))


def flatten(value: Any) -> list[Any]:
    """Flatten one level of nesting."""
    result: list[Any] = []
    for item in value:
        if isinstance(item, (list, tuple)):
            result.extend(item)
        else:
            result.append(item)
    return result


def is_last(sequence: Any, index: int) -> bool:
    """True when ``index`` is the last position of ``sequence``."""
    return index == len(sequence) - 1


def _case_filter(converter: Callable[[str], str]) -> Callable[[Any], str]:
    def apply(value: Any) -> str:
        return converter(_text(value))

    return apply


def register(env: Environment, config: ForgeConfig, params: Mapping[str, Any]) -> None:
    """Install every filter and global on ``env``."""
    queries = QueryFilters(params)
    for name in ("jq", "jq_all", "jq_first"):
        fn = getattr(queries, name)
        env.filters[name] = fn
        env.globals[name] = fn

    for style, converter in case.CONVERTERS.items():
        env.filters[style.value] = _guard(style.value, _case_filter(converter))

    acronyms = tuple(config.acronyms)
    env.filters["acronym"] = _guard("acronym", lambda v: case.acronym(_text(v), acronyms))

    def markdown_filter(value: str, target: str | None = None) -> str:
        return markdown.convert(_text(value), target or config.target_format)

    env.filters["markdown"] = _guard("markdown", markdown_filter)
    env.filters["markdown_to_html"] = _guard("markdown_to_html", lambda v: markdown.to_html(_text(v)))
    env.filters["markdown_to_text"] = _guard("markdown_to_text", lambda v: markdown.to_text(_text(v)))
    env.filters["comment"] = _guard(
        "comment",
        lambda v, style="slash", indent=0: markdown.comment(_text(v), style, indent),
    )

    text_maps = config.text_maps

    def map_text(value: Any, map_name: str, default: Any = None) -> Any:
        if map_name not in text_maps:
            raise KeyError(f"unknown text map {map_name!r}")
        mapping = text_maps[map_name]
        key = str(value)
        if key in mapping:
            return mapping[key]
        return value if default is None else default

    env.filters["map_text"] = _guard("map_text", map_text)
    env.filters["split_id"] = _guard("split_id", split_id)
    env.filters["regex_replace"] = _guard("regex_replace", regex_replace)
    env.filters["flatten"] = _guard("flatten", flatten)
    env.globals["is_last"] = is_last

    logger.debug(f"Registered {len(env.filters)} filters")
