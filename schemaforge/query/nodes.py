"""Syntax tree of compiled queries and its lazy evaluation.

Every node exposes ``evaluate(value, env)``, a generator producing the node's
output stream for one input value, and ``check(scope)``, the compile-time pass
that resolves function names and variables before anything runs.
"""

from __future__ import annotations

from itertools import product
from typing import Any, Callable, Iterator

from ..core.errors import EvalError, EvalErrorKind
from ..core.values import FrozenMap
from . import ops
from .formats import FORMATS, apply_format

Stream = Iterator[Any]


# ---------------------------------------------------------------------------
# Scopes and environments
# ---------------------------------------------------------------------------


class Scope:
    """Names visible at compile time."""

    __slots__ = ("funcs", "vars", "parent")

    def __init__(self, funcs=(), vars=(), parent: Scope | None = None) -> None:
        self.funcs = frozenset(funcs)
        self.vars = frozenset(vars)
        self.parent = parent

    def child(self, funcs=(), vars=()) -> Scope:
        return Scope(funcs, vars, self)

    def has_func(self, key: tuple[str, int]) -> bool:
        scope: Scope | None = self
        while scope is not None:
            if key in scope.funcs:
                return True
            scope = scope.parent
        return False

    def arities(self, name: str) -> list[int]:
        found: set[int] = set()
        scope: Scope | None = self
        while scope is not None:
            found.update(arity for fname, arity in scope.funcs if fname == name)
            scope = scope.parent
        return sorted(found)

    def has_var(self, name: str) -> bool:
        scope: Scope | None = self
        while scope is not None:
            if name in scope.vars:
                return True
            scope = scope.parent
        return False


class Env:
    """Runtime bindings: variables and callable functions, chained to a parent."""

    __slots__ = ("vars", "funcs", "parent")

    def __init__(
        self,
        parent: Env | None = None,
        vars: dict[str, Any] | None = None,
        funcs: dict[tuple[str, int], Callable] | None = None,
    ) -> None:
        self.parent = parent
        self.vars = vars or {}
        self.funcs = funcs if funcs is not None else {}

    def bind(self, name: str, value: Any) -> Env:
        return Env(self, {name: value})

    def var(self, name: str, pos: int) -> Any:
        env: Env | None = self
        while env is not None:
            if name in env.vars:
                return env.vars[name]
            env = env.parent
        raise EvalError(EvalErrorKind.PARSE_ERROR, f"${name} is not defined", position=pos)

    def func(self, key: tuple[str, int], pos: int) -> Callable:
        env: Env | None = self
        while env is not None:
            fn = env.funcs.get(key)
            if fn is not None:
                return fn
            env = env.parent
        raise EvalError(
            EvalErrorKind.UNDEFINED_FUNCTION, f"{key[0]}/{key[1]} is not defined", position=pos
        )


class Closure:
    """A filter argument bound to the environment of its call site."""

    __slots__ = ("node", "env")

    def __init__(self, node: Node, env: Env) -> None:
        self.node = node
        self.env = env

    def __call__(self, value: Any, env: Env, args: tuple, pos: int) -> Stream:
        return self.node.evaluate(value, self.env)


class UserFunction:
    """A ``def`` bound to the environment it was defined in."""

    __slots__ = ("definition", "env")

    def __init__(self, definition: FuncDef, env: Env) -> None:
        self.definition = definition
        self.env = env

    def __call__(self, value: Any, env: Env, args: tuple, pos: int) -> Stream:
        definition = self.definition
        funcs = {
            (param.lstrip("$"), 0): Closure(arg, env)
            for param, arg in zip(definition.params, args)
        }
        call_env = Env(self.env, funcs=funcs)
        value_params = [
            (param[1:], arg) for param, arg in zip(definition.params, args)
            if param.startswith("$")
        ]
        if not value_params:
            yield from definition.body.evaluate(value, call_env)
            return
        streams = [list(arg.evaluate(value, env)) for _, arg in value_params]
        for combo in product(*streams):
            bound = Env(call_env, {name: v for (name, _), v in zip(value_params, combo)})
            yield from definition.body.evaluate(value, bound)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class Node:
    __slots__ = ("pos",)

    def evaluate(self, value: Any, env: Env) -> Stream:
        raise NotImplementedError

    def check(self, scope: Scope) -> None:
        for child in self.children():
            child.check(scope)

    def children(self) -> tuple[Node, ...]:
        return ()


class Identity(Node):
    def __init__(self, pos: int) -> None:
        self.pos = pos

    def evaluate(self, value, env):
        yield value


class RecurseAll(Node):
    """``..``: the input and every value nested inside it, depth first."""

    def __init__(self, pos: int) -> None:
        self.pos = pos

    def evaluate(self, value, env):
        stack = [value]
        while stack:
            current = stack.pop()
            yield current
            if ops.is_array(current):
                stack.extend(reversed(current))
            elif ops.is_object(current):
                stack.extend(reversed(list(current.values())))


class Literal(Node):
    __slots__ = ("value",)

    def __init__(self, value: Any, pos: int) -> None:
        self.value = value
        self.pos = pos

    def evaluate(self, value, env):
        yield self.value


class StringInterp(Node):
    """String literal with ``\\(...)`` segments, optionally under a ``@format``."""

    __slots__ = ("parts", "fmt")

    def __init__(self, parts: list, fmt: str | None, pos: int) -> None:
        self.parts = parts
        self.fmt = fmt
        self.pos = pos

    def children(self):
        return tuple(p for p in self.parts if isinstance(p, Node))

    def check(self, scope):
        if self.fmt is not None:
            _check_format(self.fmt, self.pos)
        super().check(scope)

    def evaluate(self, value, env):
        yield from self._combine(0, [], value, env)

    def _combine(self, i, acc, value, env):
        if i == len(self.parts):
            yield "".join(acc)
            return
        part = self.parts[i]
        if not isinstance(part, Node):
            yield from self._combine(i + 1, acc + [part], value, env)
            return
        for out in part.evaluate(value, env):
            text = apply_format(self.fmt or "text", out, self.pos)
            yield from self._combine(i + 1, acc + [text], value, env)


class Format(Node):
    """``@name`` applied to the input."""

    __slots__ = ("name",)

    def __init__(self, name: str, pos: int) -> None:
        self.name = name
        self.pos = pos

    def check(self, scope):
        _check_format(self.name, self.pos)

    def evaluate(self, value, env):
        yield apply_format(self.name, value, self.pos)


def _check_format(name: str, pos: int) -> None:
    if name not in FORMATS:
        raise EvalError(EvalErrorKind.UNDEFINED_FUNCTION, f"@{name} is not a valid format", position=pos)


class Index(Node):
    """``target[key]`` / ``target.key``; the key is evaluated against the input."""

    __slots__ = ("target", "key")

    def __init__(self, target: Node, key: Node, pos: int) -> None:
        self.target = target
        self.key = key
        self.pos = pos

    def children(self):
        return (self.target, self.key)

    def evaluate(self, value, env):
        for target in self.target.evaluate(value, env):
            for key in self.key.evaluate(value, env):
                yield ops.index(target, key, self.pos)


class Slice(Node):
    __slots__ = ("target", "start", "end")

    def __init__(self, target: Node, start: Node | None, end: Node | None, pos: int) -> None:
        self.target = target
        self.start = start
        self.end = end
        self.pos = pos

    def children(self):
        return tuple(n for n in (self.target, self.start, self.end) if n is not None)

    def evaluate(self, value, env):
        for target in self.target.evaluate(value, env):
            starts = self.start.evaluate(value, env) if self.start else (None,)
            for start in starts:
                ends = self.end.evaluate(value, env) if self.end else (None,)
                for end in ends:
                    yield ops.slice_value(target, start, end, self.pos)


class Iterate(Node):
    __slots__ = ("target",)

    def __init__(self, target: Node, pos: int) -> None:
        self.target = target
        self.pos = pos

    def children(self):
        return (self.target,)

    def evaluate(self, value, env):
        for target in self.target.evaluate(value, env):
            yield from ops.iterate(target, self.pos)


class Try(Node):
    """``try body catch handler`` and the ``?`` suffix (no handler).

    Only errors raised while producing the body's own outputs are caught;
    errors raised downstream by consumers of those outputs propagate.
    """

    __slots__ = ("body", "handler")

    def __init__(self, body: Node, handler: Node | None, pos: int) -> None:
        self.body = body
        self.handler = handler
        self.pos = pos

    def children(self):
        return tuple(n for n in (self.body, self.handler) if n is not None)

    def evaluate(self, value, env):
        outputs = iter(self.body.evaluate(value, env))
        while True:
            try:
                out = next(outputs)
            except StopIteration:
                return
            except EvalError as e:
                if e.kind is EvalErrorKind.PARSE_ERROR:
                    raise
                if self.handler is not None:
                    yield from self.handler.evaluate(e.payload, env)
                return
            yield out


class ArrayCons(Node):
    __slots__ = ("body",)

    def __init__(self, body: Node | None, pos: int) -> None:
        self.body = body
        self.pos = pos

    def children(self):
        return (self.body,) if self.body is not None else ()

    def evaluate(self, value, env):
        if self.body is None:
            yield ()
            return
        yield tuple(self.body.evaluate(value, env))


class ObjectCons(Node):
    __slots__ = ("entries",)

    def __init__(self, entries: list[tuple[Node, Node]], pos: int) -> None:
        self.entries = entries
        self.pos = pos

    def children(self):
        return tuple(n for entry in self.entries for n in entry)

    def evaluate(self, value, env):
        yield from self._build(0, {}, value, env)

    def _build(self, i, acc, value, env):
        if i == len(self.entries):
            yield FrozenMap(acc)
            return
        key_node, value_node = self.entries[i]
        for key in key_node.evaluate(value, env):
            if not isinstance(key, str):
                raise ops.type_error(
                    f"Object keys must be strings, not {ops.type_name(key)}", key_node.pos
                )
            for item in value_node.evaluate(value, env):
                yield from self._build(i + 1, {**acc, key: item}, value, env)


class Pipe(Node):
    __slots__ = ("left", "right")

    def __init__(self, left: Node, right: Node, pos: int) -> None:
        self.left = left
        self.right = right
        self.pos = pos

    def children(self):
        return (self.left, self.right)

    def evaluate(self, value, env):
        right = self.right
        for out in self.left.evaluate(value, env):
            yield from right.evaluate(out, env)


class Comma(Node):
    __slots__ = ("left", "right")

    def __init__(self, left: Node, right: Node, pos: int) -> None:
        self.left = left
        self.right = right
        self.pos = pos

    def children(self):
        return (self.left, self.right)

    def evaluate(self, value, env):
        yield from self.left.evaluate(value, env)
        yield from self.right.evaluate(value, env)


class Negate(Node):
    __slots__ = ("operand",)

    def __init__(self, operand: Node, pos: int) -> None:
        self.operand = operand
        self.pos = pos

    def children(self):
        return (self.operand,)

    def evaluate(self, value, env):
        for out in self.operand.evaluate(value, env):
            if not ops.is_number(out):
                raise ops.type_error(f"{ops.type_name(out)} cannot be negated", self.pos)
            yield -out


_COMPARATORS = {
    "==": lambda a, b: ops.equals(a, b),
    "!=": lambda a, b: not ops.equals(a, b),
    "<": lambda a, b: ops.compare(a, b) < 0,
    "<=": lambda a, b: ops.compare(a, b) <= 0,
    ">": lambda a, b: ops.compare(a, b) > 0,
    ">=": lambda a, b: ops.compare(a, b) >= 0,
}

_ARITHMETIC = {
    "+": ops.add,
    "-": ops.subtract,
    "*": ops.multiply,
    "/": ops.divide,
    "%": ops.modulo,
}


class BinOp(Node):
    """Arithmetic and comparison; the right operand is the outer loop, as in jq."""

    __slots__ = ("op", "left", "right")

    def __init__(self, op: str, left: Node, right: Node, pos: int) -> None:
        self.op = op
        self.left = left
        self.right = right
        self.pos = pos

    def children(self):
        return (self.left, self.right)

    def evaluate(self, value, env):
        if self.op in _COMPARATORS:
            fn = _COMPARATORS[self.op]
            for b in self.right.evaluate(value, env):
                for a in self.left.evaluate(value, env):
                    yield fn(a, b)
            return
        fn = _ARITHMETIC[self.op]
        for b in self.right.evaluate(value, env):
            for a in self.left.evaluate(value, env):
                yield fn(a, b, self.pos)


class And(Node):
    __slots__ = ("left", "right")

    def __init__(self, left: Node, right: Node, pos: int) -> None:
        self.left = left
        self.right = right
        self.pos = pos

    def children(self):
        return (self.left, self.right)

    def evaluate(self, value, env):
        for a in self.left.evaluate(value, env):
            if not ops.is_truthy(a):
                yield False
                continue
            for b in self.right.evaluate(value, env):
                yield ops.is_truthy(b)


class Or(Node):
    __slots__ = ("left", "right")

    def __init__(self, left: Node, right: Node, pos: int) -> None:
        self.left = left
        self.right = right
        self.pos = pos

    def children(self):
        return (self.left, self.right)

    def evaluate(self, value, env):
        for a in self.left.evaluate(value, env):
            if ops.is_truthy(a):
                yield True
                continue
            for b in self.right.evaluate(value, env):
                yield ops.is_truthy(b)


class Alternative(Node):
    """``a // b``: truthy outputs of ``a`` (errors ignored), else ``b``."""

    __slots__ = ("left", "right")

    def __init__(self, left: Node, right: Node, pos: int) -> None:
        self.left = left
        self.right = right
        self.pos = pos

    def children(self):
        return (self.left, self.right)

    def evaluate(self, value, env):
        found = False
        outputs = iter(self.left.evaluate(value, env))
        while True:
            try:
                out = next(outputs)
            except StopIteration:
                break
            except EvalError as e:
                if e.kind is EvalErrorKind.PARSE_ERROR:
                    raise
                break
            if ops.is_truthy(out):
                found = True
                yield out
        if not found:
            yield from self.right.evaluate(value, env)


class If(Node):
    __slots__ = ("cond", "then", "otherwise")

    def __init__(self, cond: Node, then: Node, otherwise: Node | None, pos: int) -> None:
        self.cond = cond
        self.then = then
        self.otherwise = otherwise
        self.pos = pos

    def children(self):
        return tuple(n for n in (self.cond, self.then, self.otherwise) if n is not None)

    def evaluate(self, value, env):
        for cond in self.cond.evaluate(value, env):
            if ops.is_truthy(cond):
                yield from self.then.evaluate(value, env)
            elif self.otherwise is not None:
                yield from self.otherwise.evaluate(value, env)
            else:
                yield value


class VarRef(Node):
    __slots__ = ("name",)

    def __init__(self, name: str, pos: int) -> None:
        self.name = name
        self.pos = pos

    def check(self, scope):
        if not scope.has_var(self.name):
            raise EvalError(
                EvalErrorKind.PARSE_ERROR, f"${self.name} is not defined", position=self.pos
            )

    def evaluate(self, value, env):
        yield env.var(self.name, self.pos)


class Bind(Node):
    """``source as $name | body``."""

    __slots__ = ("source", "name", "body")

    def __init__(self, source: Node, name: str, body: Node, pos: int) -> None:
        self.source = source
        self.name = name
        self.body = body
        self.pos = pos

    def check(self, scope):
        self.source.check(scope)
        self.body.check(scope.child(vars=(self.name,)))

    def evaluate(self, value, env):
        for bound in self.source.evaluate(value, env):
            yield from self.body.evaluate(value, env.bind(self.name, bound))


class Reduce(Node):
    __slots__ = ("source", "name", "init", "update")

    def __init__(self, source: Node, name: str, init: Node, update: Node, pos: int) -> None:
        self.source = source
        self.name = name
        self.init = init
        self.update = update
        self.pos = pos

    def check(self, scope):
        self.source.check(scope)
        self.init.check(scope)
        self.update.check(scope.child(vars=(self.name,)))

    def evaluate(self, value, env):
        for acc in self.init.evaluate(value, env):
            for item in self.source.evaluate(value, env):
                last = None
                for last in self.update.evaluate(acc, env.bind(self.name, item)):
                    pass
                acc = last
            yield acc


class Foreach(Node):
    __slots__ = ("source", "name", "init", "update", "extract")

    def __init__(
        self,
        source: Node,
        name: str,
        init: Node,
        update: Node,
        extract: Node | None,
        pos: int,
    ) -> None:
        self.source = source
        self.name = name
        self.init = init
        self.update = update
        self.extract = extract
        self.pos = pos

    def check(self, scope):
        self.source.check(scope)
        self.init.check(scope)
        inner = scope.child(vars=(self.name,))
        self.update.check(inner)
        if self.extract is not None:
            self.extract.check(inner)

    def evaluate(self, value, env):
        for acc in self.init.evaluate(value, env):
            for item in self.source.evaluate(value, env):
                bound = env.bind(self.name, item)
                for state in self.update.evaluate(acc, bound):
                    acc = state
                    if self.extract is None:
                        yield state
                    else:
                        yield from self.extract.evaluate(state, bound)


class FuncCall(Node):
    __slots__ = ("name", "args")

    def __init__(self, name: str, args: list[Node], pos: int) -> None:
        self.name = name
        self.args = tuple(args)
        self.pos = pos

    def children(self):
        return self.args

    def check(self, scope):
        key = (self.name, len(self.args))
        if not scope.has_func(key):
            known = scope.arities(self.name)
            hint = f" (defined with arity {', '.join(map(str, known))})" if known else ""
            raise EvalError(
                EvalErrorKind.UNDEFINED_FUNCTION,
                f"{self.name}/{len(self.args)} is not defined{hint}",
                position=self.pos,
            )
        super().check(scope)

    def evaluate(self, value, env):
        fn = env.func((self.name, len(self.args)), self.pos)
        yield from fn(value, env, self.args, self.pos)


class FuncDef:
    """``def name(params): body;`` where ``$name`` params bind values."""

    __slots__ = ("name", "params", "body", "pos")

    def __init__(self, name: str, params: list[str], body: Node, pos: int) -> None:
        self.name = name
        self.params = tuple(params)
        self.body = body
        self.pos = pos

    @property
    def key(self) -> tuple[str, int]:
        return (self.name, len(self.params))

    def check(self, scope: Scope) -> None:
        funcs = {(p.lstrip("$"), 0) for p in self.params}
        vars = {p[1:] for p in self.params if p.startswith("$")}
        self.body.check(scope.child(funcs=funcs | {self.key}, vars=vars))


class FuncDefs(Node):
    __slots__ = ("defs", "body")

    def __init__(self, defs: list[FuncDef], body: Node, pos: int) -> None:
        self.defs = defs
        self.body = body
        self.pos = pos

    def check(self, scope):
        inner = scope.child(funcs={d.key for d in self.defs})
        for definition in self.defs:
            definition.check(inner)
        self.body.check(inner)

    def evaluate(self, value, env):
        return self.body.evaluate(value, bind_definitions(self.defs, env))


def bind_definitions(defs: list[FuncDef], env: Env) -> Env:
    """Return a child environment where ``defs`` can call each other recursively."""
    inner = Env(env)
    for definition in defs:
        inner.funcs[definition.key] = UserFunction(definition, inner)
    return inner
