"""Recursive-descent parser producing :mod:`schemaforge.query.nodes` trees.

Operator precedence, loosest first::

    |            (right associative; also ``def``, ``as $x |``)
    ,
    //           (right associative)
    or
    and
    == != < <= > >=   (non associative)
    + -
    * / %
    unary -
    postfix: .name  ."str"  [..]  ?
"""

from __future__ import annotations

from typing import Any

from ..core.errors import EvalError, EvalErrorKind
from . import nodes
from .lexer import KEYWORDS, Interpolation, Token, tokenize

_COMPARISON = ("==", "!=", "<", "<=", ">", ">=")
_ASSIGNMENT = ("=", "|=", "+=", "-=", "*=", "/=", "%=", "//=")


class Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.i = 0

    # -- token helpers -----------------------------------------------------

    @property
    def current(self) -> Token:
        return self.tokens[self.i]

    def peek(self, ahead: int = 1) -> Token:
        return self.tokens[min(self.i + ahead, len(self.tokens) - 1)]

    def advance(self) -> Token:
        token = self.tokens[self.i]
        if token.type != "EOF":
            self.i += 1
        return token

    def at_op(self, *ops: str) -> bool:
        return self.current.type == "OP" and self.current.value in ops

    def at_keyword(self, *words: str) -> bool:
        return self.current.type == "IDENT" and self.current.value in words

    def expect_op(self, op: str) -> Token:
        if not self.at_op(op):
            raise self.error(f"expected '{op}'")
        return self.advance()

    def expect_keyword(self, word: str) -> Token:
        if not self.at_keyword(word):
            raise self.error(f"expected '{word}'")
        return self.advance()

    def error(self, message: str, token: Token | None = None) -> EvalError:
        token = token or self.current
        found = "end of query" if token.type == "EOF" else repr(_token_text(token))
        return EvalError(
            EvalErrorKind.PARSE_ERROR, f"{message}, found {found}", position=token.pos
        )

    # -- grammar -----------------------------------------------------------

    def parse(self) -> nodes.Node:
        node = self.parse_pipe()
        if self.current.type != "EOF":
            raise self.error("unexpected token")
        return node

    def parse_pipe(self) -> nodes.Node:
        if self.at_keyword("def"):
            pos = self.current.pos
            defs = []
            while self.at_keyword("def"):
                defs.append(self.parse_def())
            return nodes.FuncDefs(defs, self.parse_pipe(), pos)

        left = self.parse_comma()
        if self.at_op("|"):
            pos = self.advance().pos
            return nodes.Pipe(left, self.parse_pipe(), pos)
        return left

    def parse_def(self) -> nodes.FuncDef:
        pos = self.expect_keyword("def").pos
        name_token = self.advance()
        if name_token.type != "IDENT" or name_token.value in KEYWORDS:
            raise self.error("expected a function name", name_token)

        params: list[str] = []
        if self.at_op("("):
            self.advance()
            while True:
                token = self.advance()
                if token.type == "IDENT" and token.value not in KEYWORDS:
                    params.append(token.value)
                elif token.type == "VAR":
                    params.append("$" + token.value)
                else:
                    raise self.error("expected a parameter name", token)
                if self.at_op(";"):
                    self.advance()
                    continue
                self.expect_op(")")
                break

        self.expect_op(":")
        body = self.parse_pipe()
        self.expect_op(";")
        return nodes.FuncDef(name_token.value, params, body, pos)

    def parse_comma(self) -> nodes.Node:
        left = self.parse_alternative()
        while self.at_op(","):
            pos = self.advance().pos
            left = nodes.Comma(left, self.parse_alternative(), pos)
        return left

    def parse_alternative(self) -> nodes.Node:
        left = self.parse_or()
        if self.at_op(*_ASSIGNMENT):
            raise self.error("assignment operators are not supported")
        if self.at_op("?//"):
            raise self.error("destructuring alternatives are not supported")
        if self.at_op("//"):
            pos = self.advance().pos
            return nodes.Alternative(left, self.parse_alternative(), pos)
        return left

    def parse_or(self) -> nodes.Node:
        left = self.parse_and()
        while self.at_keyword("or"):
            pos = self.advance().pos
            left = nodes.Or(left, self.parse_and(), pos)
        return left

    def parse_and(self) -> nodes.Node:
        left = self.parse_comparison()
        while self.at_keyword("and"):
            pos = self.advance().pos
            left = nodes.And(left, self.parse_comparison(), pos)
        return left

    def parse_comparison(self) -> nodes.Node:
        left = self.parse_additive()
        if self.at_op(*_COMPARISON):
            token = self.advance()
            left = nodes.BinOp(token.value, left, self.parse_additive(), token.pos)
            if self.at_op(*_COMPARISON):
                raise self.error("comparison operators cannot be chained")
        return left

    def parse_additive(self) -> nodes.Node:
        left = self.parse_multiplicative()
        while self.at_op("+", "-"):
            token = self.advance()
            left = nodes.BinOp(token.value, left, self.parse_multiplicative(), token.pos)
        return left

    def parse_multiplicative(self) -> nodes.Node:
        left = self.parse_unary()
        while self.at_op("*", "/", "%"):
            token = self.advance()
            left = nodes.BinOp(token.value, left, self.parse_unary(), token.pos)
        return left

    def parse_unary(self) -> nodes.Node:
        if self.at_op("-"):
            pos = self.advance().pos
            return nodes.Negate(self.parse_unary(), pos)
        return self.parse_postfix()

    def parse_postfix(self, allow_bind: bool = True) -> nodes.Node:
        term = self.parse_term()
        while True:
            token = self.current
            if token.type == "FIELD":
                self.advance()
                term = nodes.Index(term, nodes.Literal(token.value, token.pos), token.pos)
            elif self.at_op(".") and self.peek().type == "STR":
                self.advance()
                term = nodes.Index(term, self.parse_string(self.advance(), None), token.pos)
            elif self.at_op(".") and self.peek().type == "OP" and self.peek().value == "[":
                self.advance()
                term = self.parse_bracket_suffix(term)
            elif self.at_op("["):
                term = self.parse_bracket_suffix(term)
            elif self.at_op("?"):
                self.advance()
                term = nodes.Try(term, None, token.pos)
            else:
                break

        if allow_bind and self.at_keyword("as"):
            pos = self.advance().pos
            var = self.advance()
            if var.type != "VAR":
                if var.type == "OP" and var.value in ("[", "{"):
                    raise self.error("destructuring patterns are not supported", var)
                raise self.error("expected a $variable after 'as'", var)
            self.expect_op("|")
            return nodes.Bind(term, var.value, self.parse_pipe(), pos)
        return term

    def parse_bracket_suffix(self, term: nodes.Node) -> nodes.Node:
        pos = self.expect_op("[").pos
        if self.at_op("]"):
            self.advance()
            return nodes.Iterate(term, pos)
        if self.at_op(":"):
            self.advance()
            end = self.parse_pipe()
            self.expect_op("]")
            return nodes.Slice(term, None, end, pos)
        key = self.parse_pipe()
        if self.at_op(":"):
            self.advance()
            end = None if self.at_op("]") else self.parse_pipe()
            self.expect_op("]")
            return nodes.Slice(term, key, end, pos)
        self.expect_op("]")
        return nodes.Index(term, key, pos)

    def parse_term(self) -> nodes.Node:
        token = self.current
        pos = token.pos

        if token.type == "NUM":
            self.advance()
            return nodes.Literal(token.value, pos)
        if token.type == "STR":
            self.advance()
            return self.parse_string(token, None)
        if token.type == "FORMAT":
            self.advance()
            if self.current.type == "STR":
                return self.parse_string(self.advance(), token.value)
            return nodes.Format(token.value, pos)
        if token.type == "FIELD":
            self.advance()
            return nodes.Index(nodes.Identity(pos), nodes.Literal(token.value, pos), pos)
        if token.type == "VAR":
            self.advance()
            return nodes.VarRef(token.value, pos)

        if token.type == "OP":
            if token.value == ".":
                self.advance()
                if self.current.type == "STR":
                    key = self.parse_string(self.advance(), None)
                    return nodes.Index(nodes.Identity(pos), key, pos)
                return nodes.Identity(pos)
            if token.value == "..":
                self.advance()
                return nodes.RecurseAll(pos)
            if token.value == "(":
                self.advance()
                inner = self.parse_pipe()
                self.expect_op(")")
                return inner
            if token.value == "[":
                self.advance()
                if self.at_op("]"):
                    self.advance()
                    return nodes.ArrayCons(None, pos)
                body = self.parse_pipe()
                self.expect_op("]")
                return nodes.ArrayCons(body, pos)
            if token.value == "{":
                return self.parse_object()
            if token.value == "-":
                self.advance()
                return nodes.Negate(self.parse_postfix(allow_bind=False), pos)

        if token.type == "IDENT":
            word = token.value
            if word == "true":
                self.advance()
                return nodes.Literal(True, pos)
            if word == "false":
                self.advance()
                return nodes.Literal(False, pos)
            if word == "null":
                self.advance()
                return nodes.Literal(None, pos)
            if word == "if":
                return self.parse_if()
            if word == "try":
                self.advance()
                body = self.parse_postfix(allow_bind=False)
                handler = None
                if self.at_keyword("catch"):
                    self.advance()
                    handler = self.parse_postfix(allow_bind=False)
                return nodes.Try(body, handler, pos)
            if word in ("reduce", "foreach"):
                return self.parse_fold(word)
            if word == "def":
                return self.parse_pipe()
            if word not in KEYWORDS:
                return self.parse_call()

        raise self.error("unexpected token")

    def parse_call(self) -> nodes.Node:
        token = self.advance()
        args: list[nodes.Node] = []
        if self.at_op("("):
            self.advance()
            args.append(self.parse_pipe())
            while self.at_op(";"):
                self.advance()
                args.append(self.parse_pipe())
            self.expect_op(")")
        return nodes.FuncCall(token.value, args, token.pos)

    def parse_if(self) -> nodes.Node:
        # An ``elif`` opens a nested conditional that shares the outer ``end``.
        pos = self.advance().pos
        cond = self.parse_pipe()
        self.expect_keyword("then")
        then = self.parse_pipe()
        if self.at_keyword("elif"):
            return nodes.If(cond, then, self.parse_if(), pos)
        otherwise = None
        if self.at_keyword("else"):
            self.advance()
            otherwise = self.parse_pipe()
        self.expect_keyword("end")
        return nodes.If(cond, then, otherwise, pos)

    def parse_fold(self, word: str) -> nodes.Node:
        pos = self.advance().pos
        source = self.parse_postfix(allow_bind=False)
        self.expect_keyword("as")
        var = self.advance()
        if var.type != "VAR":
            raise self.error("expected a $variable after 'as'", var)
        self.expect_op("(")
        init = self.parse_pipe()
        self.expect_op(";")
        update = self.parse_pipe()
        if word == "reduce":
            self.expect_op(")")
            return nodes.Reduce(source, var.value, init, update, pos)
        extract = None
        if self.at_op(";"):
            self.advance()
            extract = self.parse_pipe()
        self.expect_op(")")
        return nodes.Foreach(source, var.value, init, update, extract, pos)

    def parse_object(self) -> nodes.Node:
        pos = self.expect_op("{").pos
        entries: list[tuple[nodes.Node, nodes.Node]] = []
        while not self.at_op("}"):
            entries.append(self.parse_object_entry())
            if not self.at_op(","):
                break
            self.advance()
        self.expect_op("}")
        return nodes.ObjectCons(entries, pos)

    def parse_object_entry(self) -> tuple[nodes.Node, nodes.Node]:
        token = self.current
        pos = token.pos

        if token.type == "VAR":
            self.advance()
            return nodes.Literal(token.value, pos), nodes.VarRef(token.value, pos)
        if token.type == "IDENT":
            self.advance()
            key: nodes.Node = nodes.Literal(token.value, pos)
        elif token.type == "NUM":
            raise self.error("object keys must be strings")
        elif token.type == "STR":
            self.advance()
            key = self.parse_string(token, None)
        elif token.type == "FORMAT" and self.peek().type == "STR":
            self.advance()
            key = self.parse_string(self.advance(), token.value)
        elif self.at_op("("):
            self.advance()
            key = self.parse_pipe()
            self.expect_op(")")
            self.expect_op(":")
            return key, self.parse_object_value()
        else:
            raise self.error("expected an object key")

        if not self.at_op(":"):
            return key, nodes.Index(nodes.Identity(pos), key, pos)
        self.advance()
        return key, self.parse_object_value()

    def parse_object_value(self) -> nodes.Node:
        left = self.parse_alternative()
        while self.at_op("|"):
            pos = self.advance().pos
            left = nodes.Pipe(left, self.parse_alternative(), pos)
        return left

    def parse_string(self, token: Token, fmt: str | None) -> nodes.Node:
        parts: list[Any] = []
        for part in token.value:
            if isinstance(part, Interpolation):
                parts.append(parse_tokens(tokenize(part.source, part.pos)))
            else:
                parts.append(part)
        if all(isinstance(part, str) for part in parts):
            return nodes.Literal("".join(parts), token.pos)
        return nodes.StringInterp(parts, fmt, token.pos)


def _token_text(token: Token) -> str:
    if token.type == "FIELD":
        return "." + token.value
    if token.type == "VAR":
        return "$" + token.value
    if token.type == "FORMAT":
        return "@" + token.value
    if token.type == "STR":
        return '"..."'
    return str(token.value)


def parse_tokens(tokens: list[Token]) -> nodes.Node:
    return Parser(tokens).parse()


def parse(expression: str) -> nodes.Node:
    """Parse a query into a syntax tree (names are not resolved yet)."""
    return parse_tokens(tokenize(expression))
