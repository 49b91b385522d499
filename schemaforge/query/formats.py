"""``@format`` string conversions."""

from __future__ import annotations

import base64
import binascii
import html
from typing import Any, Callable
from urllib.parse import quote

from . import ops


def _csv_field(value: Any, pos: int | None) -> str:
    if isinstance(value, str):
        return '"' + value.replace('"', '""') + '"'
    if ops.is_array(value) or ops.is_object(value):
        raise ops.type_error(f"{ops.type_name(value)} is not valid in a csv row", pos)
    return "" if value is None else ops.tostring(value)


def _tsv_field(value: Any, pos: int | None) -> str:
    if isinstance(value, str):
        return (
            value.replace("\\", "\\\\")
            .replace("\t", "\\t")
            .replace("\r", "\\r")
            .replace("\n", "\\n")
        )
    if ops.is_array(value) or ops.is_object(value):
        raise ops.type_error(f"{ops.type_name(value)} is not valid in a tsv row", pos)
    return "" if value is None else ops.tostring(value)


def _sh_word(value: Any, pos: int | None) -> str:
    if isinstance(value, str):
        return "'" + value.replace("'", "'\\''") + "'"
    if ops.is_array(value) or ops.is_object(value):
        raise ops.type_error(f"{ops.type_name(value)} can not be escaped for shell", pos)
    return ops.tostring(value)


def _require_array(name: str, value: Any, pos: int | None) -> None:
    if not ops.is_array(value):
        raise ops.type_error(f"{ops.type_name(value)} cannot be {name}-formatted, only an array can be", pos)


def _csv(value: Any, pos: int | None) -> str:
    _require_array("csv", value, pos)
    return ",".join(_csv_field(v, pos) for v in value)


def _tsv(value: Any, pos: int | None) -> str:
    _require_array("tsv", value, pos)
    return "\t".join(_tsv_field(v, pos) for v in value)


def _sh(value: Any, pos: int | None) -> str:
    if ops.is_array(value):
        return " ".join(_sh_word(v, pos) for v in value)
    return _sh_word(value, pos)


def _base64d(value: Any, pos: int | None) -> str:
    text = ops.tostring(value)
    try:
        padded = text + "=" * (-len(text) % 4)
        return base64.b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as e:
        raise ops.runtime_error(f"{ops.dumps(text)} is not valid base64 data", pos) from e


FORMATS: dict[str, Callable[[Any, int | None], str]] = {
    "text": lambda v, pos: ops.tostring(v),
    "json": lambda v, pos: ops.dumps(v),
    "html": lambda v, pos: html.escape(ops.tostring(v), quote=True).replace("&#x27;", "&#39;"),
    "uri": lambda v, pos: quote(ops.tostring(v), safe="-_.~"),
    "csv": _csv,
    "tsv": _tsv,
    "sh": _sh,
    "base64": lambda v, pos: base64.b64encode(ops.tostring(v).encode("utf-8")).decode("ascii"),
    "base64d": _base64d,
}


def apply_format(name: str, value: Any, pos: int | None = None) -> str:
    try:
        fn = FORMATS[name]
    except KeyError:
        raise ops.runtime_error(f"{name} is not a valid format", pos) from None
    return fn(value, pos)
