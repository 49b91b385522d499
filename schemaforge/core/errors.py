"""Exception types raised by the generation engine."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ForgeError(Exception):
    """Base class for all schemaforge errors."""


class ConfigError(ForgeError):
    """Raised when the generator configuration cannot be loaded or validated."""


class DiscoveryError(ForgeError):
    """Raised when the template root cannot be walked at all."""


class DirectiveError(ForgeError):
    """Raised when a template's fan-out directive is malformed."""


class InvalidPathError(ForgeError):
    """Raised when a computed output path is empty or escapes the output root."""


class EvalErrorKind(str, Enum):
    PARSE_ERROR = "parse_error"
    TYPE_MISMATCH = "type_mismatch"
    UNDEFINED_FUNCTION = "undefined_function"
    RUNTIME_FAILURE = "runtime_failure"


class EvalError(ForgeError):
    """A query failed to compile or to evaluate.

    ``position`` is the 0-based character offset inside ``expression`` of the
    construct that failed. ``payload`` is the value a ``catch`` handler
    receives (the message for built-in errors, the argument of ``error/1``).
    """

    def __init__(
        self,
        kind: EvalErrorKind,
        message: str,
        *,
        expression: str | None = None,
        position: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.expression = expression
        self.position = position
        self.payload = message if payload is None else payload

    def __str__(self) -> str:
        text = f"{self.kind.value}: {self.message}"
        if self.expression is not None:
            where = f" at offset {self.position}" if self.position is not None else ""
            text += f" (in query {self.expression!r}{where})"
        return text


class RenderErrorKind(str, Enum):
    SYNTAX_ERROR = "syntax_error"
    UNDEFINED_VARIABLE = "undefined_variable"
    FILTER_ERROR = "filter_error"
    MACRO_ERROR = "macro_error"
    RUNTIME_ERROR = "runtime_error"


class RenderError(ForgeError):
    """A template failed to load or to render.

    ``stack`` lists the template frames active when the error was raised,
    outermost first, formatted as ``file:line``. It shows the chain of
    nested macro invocations leading to the failure.
    """

    def __init__(
        self,
        kind: RenderErrorKind,
        message: str,
        *,
        template_path: str,
        line: int | None = None,
        column: int | None = None,
        stack: tuple[str, ...] = (),
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.template_path = template_path
        self.line = line
        self.column = column
        self.stack = stack
        self.cause = cause

    def __str__(self) -> str:
        location = self.template_path
        if self.line is not None:
            location += f":{self.line}"
            if self.column is not None:
                location += f":{self.column}"
        return f"{self.kind.value} in {location}: {self.message}"
