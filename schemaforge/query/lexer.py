"""Tokenizer for the query language."""

from __future__ import annotations

import re
from typing import Any, NamedTuple

from ..core.errors import EvalError, EvalErrorKind

KEYWORDS = frozenset(
    {
        "def",
        "if",
        "then",
        "elif",
        "else",
        "end",
        "as",
        "reduce",
        "foreach",
        "try",
        "catch",
        "and",
        "or",
        "true",
        "false",
        "null",
    }
)

# Longest operators first.
_OPERATORS = (
    "?//",
    "//=",
    "|=",
    "+=",
    "-=",
    "*=",
    "/=",
    "%=",
    "==",
    "!=",
    "<=",
    ">=",
    "//",
    "|",
    ",",
    "+",
    "-",
    "*",
    "/",
    "%",
    "=",
    "<",
    ">",
    "(",
    ")",
    "[",
    "]",
    "{",
    "}",
    ":",
    ";",
    "?",
)

_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}


class Token(NamedTuple):
    type: str
    value: Any
    pos: int


class Interpolation(NamedTuple):
    """Source of a ``\\(...)`` segment inside a string literal."""

    source: str
    pos: int


def _error(message: str, pos: int) -> EvalError:
    return EvalError(EvalErrorKind.PARSE_ERROR, message, position=pos)


def tokenize(source: str, offset: int = 0) -> list[Token]:
    """Split a query into tokens.

    Token types: ``NUM``, ``STR`` (value is a list of literal ``str`` parts
    and :class:`Interpolation` segments), ``IDENT``, ``FIELD`` (``.name``),
    ``VAR`` (``$name``), ``FORMAT`` (``@name``), ``OP`` and ``EOF``.
    Positions are offsets into the full expression (``offset`` shifts them
    for interpolated sub-expressions).
    """
    tokens: list[Token] = []
    i = 0
    n = len(source)

    while i < n:
        ch = source[i]
        pos = offset + i

        if ch.isspace():
            i += 1
            continue
        if ch == "#":
            while i < n and source[i] != "\n":
                i += 1
            continue

        if ch == ".":
            nxt = source[i + 1] if i + 1 < n else ""
            if nxt == ".":
                tokens.append(Token("OP", "..", pos))
                i += 2
                continue
            if nxt.isdigit():
                match = _NUMBER.match(source, i)
                tokens.append(Token("NUM", _to_number(match.group()), pos))
                i = match.end()
                continue
            match = _IDENT.match(source, i + 1)
            if match:
                tokens.append(Token("FIELD", match.group(), pos))
                i = match.end()
                continue
            tokens.append(Token("OP", ".", pos))
            i += 1
            continue

        if ch.isdigit():
            match = _NUMBER.match(source, i)
            tokens.append(Token("NUM", _to_number(match.group()), pos))
            i = match.end()
            continue

        if ch == '"':
            parts, i = _read_string(source, i, offset)
            tokens.append(Token("STR", parts, pos))
            continue

        if ch in "$@":
            match = _IDENT.match(source, i + 1)
            if not match:
                raise _error(f"expected a name after {ch!r}", pos)
            tokens.append(Token("VAR" if ch == "$" else "FORMAT", match.group(), pos))
            i = match.end()
            continue

        match = _IDENT.match(source, i)
        if match:
            tokens.append(Token("IDENT", match.group(), pos))
            i = match.end()
            continue

        for op in _OPERATORS:
            if source.startswith(op, i):
                tokens.append(Token("OP", op, pos))
                i += len(op)
                break
        else:
            raise _error(f"unexpected character {ch!r}", pos)

    tokens.append(Token("EOF", None, offset + n))
    return tokens


def _to_number(text: str) -> int | float:
    if re.fullmatch(r"\d+", text):
        return int(text)
    value = float(text)
    return int(value) if value.is_integer() and "e" not in text.lower() else value


def _read_string(source: str, start: int, offset: int) -> tuple[list[Any], int]:
    """Read a string literal starting at the opening quote.

    Returns the list of parts and the index just past the closing quote.
    """
    parts: list[Any] = []
    buf: list[str] = []
    i = start + 1
    n = len(source)

    while i < n:
        ch = source[i]
        if ch == '"':
            if buf or not parts:
                parts.append("".join(buf))
            return parts, i + 1
        if ch != "\\":
            buf.append(ch)
            i += 1
            continue

        if i + 1 >= n:
            break
        esc = source[i + 1]
        if esc in _ESCAPES:
            buf.append(_ESCAPES[esc])
            i += 2
        elif esc == "u":
            code, i = _read_unicode_escape(source, i, offset)
            buf.append(code)
        elif esc == "(":
            close = _find_group_end(source, i + 2, offset)
            if buf:
                parts.append("".join(buf))
                buf = []
            parts.append(Interpolation(source[i + 2 : close], offset + i + 2))
            i = close + 1
        else:
            raise _error(f"invalid escape '\\{esc}'", offset + i)

    raise _error("unterminated string literal", offset + start)


def _read_unicode_escape(source: str, i: int, offset: int) -> tuple[str, int]:
    digits = source[i + 2 : i + 6]
    if not re.fullmatch(r"[0-9a-fA-F]{4}", digits):
        raise _error("invalid \\u escape", offset + i)
    code = int(digits, 16)
    i += 6
    # Combine UTF-16 surrogate pairs.
    if 0xD800 <= code < 0xDC00 and source.startswith("\\u", i):
        low_digits = source[i + 2 : i + 6]
        if re.fullmatch(r"[0-9a-fA-F]{4}", low_digits):
            low = int(low_digits, 16)
            if 0xDC00 <= low < 0xE000:
                code = 0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00)
                i += 6
    return chr(code), i


def _find_group_end(source: str, i: int, offset: int) -> int:
    """Return the index of the ``)`` closing a group whose body starts at ``i``."""
    depth = 1
    n = len(source)
    while i < n:
        ch = source[i]
        if ch == '"':
            _, i = _read_string(source, i, offset)
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise _error("unterminated string interpolation", offset + i)
