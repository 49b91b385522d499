"""JQ-style query evaluator over resolved schema values.

Usage::

    from schemaforge.query import evaluate

    for name in evaluate(".groups[] | select(.type == \\"span\\") | .id", schema):
        ...

Queries are compiled once (parse plus name resolution) and cached, so a
syntax error or an unknown function is reported before any value is
produced. Evaluation is lazy: results are pulled one at a time from a
:class:`QueryStream`, and a runtime failure surfaces from the ``next()``
call that hit it.
"""

from __future__ import annotations

from functools import lru_cache
from itertools import islice
from typing import Any, Iterator, Mapping

from ..core.errors import EvalError, EvalErrorKind
from ..core.values import freeze
from .builtins import builtin_names, root_env, root_scope
from .nodes import Env, Node
from .parser import parse

__all__ = [
    "Query",
    "QueryStream",
    "builtin_names",
    "compile_query",
    "evaluate",
]

_MISSING = object()


class QueryStream:
    """Pull-based iterator over the outputs of one query evaluation.

    Errors carry the query text. After an error the stream is exhausted.
    """

    def __init__(self, expression: str, outputs: Iterator[Any]) -> None:
        self.expression = expression
        self._outputs = outputs
        self._done = False

    def __iter__(self) -> QueryStream:
        return self

    def __next__(self) -> Any:
        if self._done:
            raise StopIteration
        try:
            return next(self._outputs)
        except StopIteration:
            self._done = True
            raise
        except EvalError as e:
            self._done = True
            if e.expression is None:
                e.expression = self.expression
            raise
        except RecursionError as e:
            self._done = True
            raise EvalError(
                EvalErrorKind.RUNTIME_FAILURE,
                "recursion limit exceeded",
                expression=self.expression,
            ) from e
        except Exception as e:
            self._done = True
            raise EvalError(
                EvalErrorKind.RUNTIME_FAILURE,
                f"{type(e).__name__}: {e}",
                expression=self.expression,
            ) from e


class Query:
    """A compiled query, safe to share between threads."""

    def __init__(self, expression: str, root: Node, variables: frozenset[str]) -> None:
        self.expression = expression
        self.root = root
        self.variables = variables

    def __repr__(self) -> str:
        return f"Query({self.expression!r})"

    def run(self, input: Any, variables: Mapping[str, Any] | None = None) -> QueryStream:
        variables = dict(variables or {})
        missing = self.variables - variables.keys()
        if missing:
            raise EvalError(
                EvalErrorKind.PARSE_ERROR,
                f"no value bound for {', '.join('$' + m for m in sorted(missing))}",
                expression=self.expression,
            )
        env = Env(root_env(), {name: freeze(value) for name, value in variables.items()})
        return QueryStream(self.expression, self.root.evaluate(freeze(input), env))

    def all(self, input: Any, variables: Mapping[str, Any] | None = None) -> list[Any]:
        return list(self.run(input, variables))

    def take(
        self, n: int, input: Any, variables: Mapping[str, Any] | None = None
    ) -> list[Any]:
        """Return at most ``n`` outputs without evaluating past them."""
        return list(islice(self.run(input, variables), max(n, 0)))

    def first(
        self,
        input: Any,
        variables: Mapping[str, Any] | None = None,
        default: Any = _MISSING,
    ) -> Any:
        """Return the first output; ``default`` (or an error) when there is none."""
        for value in self.run(input, variables):
            return value
        if default is _MISSING:
            raise EvalError(
                EvalErrorKind.RUNTIME_FAILURE,
                "query produced no output",
                expression=self.expression,
            )
        return default


@lru_cache(maxsize=1024)
def compile_query(expression: str, variables: tuple[str, ...] = ()) -> Query:
    """Parse ``expression`` and resolve its names.

    Args:
        expression: Query text
        variables: Names of the ``$variables`` that will be bound when it runs

    Raises:
        EvalError: ``PARSE_ERROR`` for malformed queries and unbound
            variables, ``UNDEFINED_FUNCTION`` for unknown function names
    """
    try:
        root = parse(expression)
        root.check(root_scope().child(vars=variables))
    except EvalError as e:
        e.expression = expression
        raise
    except RecursionError as e:
        raise EvalError(
            EvalErrorKind.PARSE_ERROR, "query is nested too deeply", expression=expression
        ) from e
    return Query(expression, root, frozenset(variables))


def evaluate(
    expression: str,
    input: Any,
    variables: Mapping[str, Any] | None = None,
) -> QueryStream:
    """Compile (cached) and run a query against ``input``.

    Compilation errors are raised immediately; evaluation errors are raised
    while iterating the returned stream.
    """
    names = tuple(sorted(variables or {}))
    return compile_query(expression, names).run(input, variables)
