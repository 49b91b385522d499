"""Collection of per-template and per-item failures."""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable

from ..core.errors import (
    DirectiveError,
    EvalError,
    InvalidPathError,
    RenderError,
    RenderErrorKind,
)
from ..core.models import Diagnostic, DiagnosticCode, Severity

logger = logging.getLogger(__name__)


def cause_chain(exc: BaseException) -> tuple[str, ...]:
    """Messages of the exceptions ``exc`` was raised from, nearest first."""
    causes = []
    seen = {id(exc)}
    current = exc.__cause__ or exc.__context__
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        causes.append(f"{type(current).__name__}: {current}")
        current = current.__cause__ or current.__context__
    return tuple(causes)


def diagnostic_from_exception(
    exc: BaseException,
    template: str | None = None,
    ordinal: int | None = None,
    path: str | None = None,
) -> Diagnostic:
    """Build the diagnostic describing ``exc``."""
    fields: dict[str, Any] = {
        "template": template,
        "ordinal": ordinal,
        "path": path,
        "causes": cause_chain(exc),
    }

    if isinstance(exc, EvalError):
        return Diagnostic(
            code=DiagnosticCode.QUERY_ERROR,
            message=exc.message,
            kind=exc.kind.name,
            expression=exc.expression,
            position=exc.position,
            **fields,
        )

    if isinstance(exc, RenderError):
        expression = position = None
        if exc.kind is RenderErrorKind.FILTER_ERROR and isinstance(exc.cause, EvalError):
            expression = exc.cause.expression
            position = exc.cause.position
        return Diagnostic(
            code=DiagnosticCode.RENDER_ERROR,
            message=exc.message,
            kind=exc.kind.name,
            expression=expression,
            position=position,
            line=exc.line,
            column=exc.column,
            stack=exc.stack,
            **{**fields, "template": template or exc.template_path},
        )

    if isinstance(exc, InvalidPathError):
        return Diagnostic(code=DiagnosticCode.INVALID_PATH, message=str(exc), **fields)

    if isinstance(exc, DirectiveError):
        return Diagnostic(code=DiagnosticCode.DIRECTIVE_ERROR, message=str(exc), **fields)

    if isinstance(exc, OSError):
        message = exc.strerror or str(exc)
        if exc.filename:
            message = f"{message}: {exc.filename}"
        return Diagnostic(code=DiagnosticCode.IO_ERROR, message=message, **fields)

    if isinstance(exc, UnicodeError):
        return Diagnostic(
            code=DiagnosticCode.IO_ERROR,
            message=f"output is not encodable as UTF-8: {exc}",
            **fields,
        )

    return Diagnostic(
        code=DiagnosticCode.RENDER_ERROR,
        message=f"{type(exc).__name__}: {exc}",
        **fields,
    )


class Diagnostics:
    """Thread-safe accumulator for a run's errors and warnings."""

    def __init__(self, entries: Iterable[Diagnostic] = ()) -> None:
        self._lock = threading.Lock()
        self._entries: list[Diagnostic] = list(entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self):
        return iter(self.snapshot())

    def snapshot(self) -> list[Diagnostic]:
        with self._lock:
            return list(self._entries)

    def add(self, diagnostic: Diagnostic) -> Diagnostic:
        with self._lock:
            self._entries.append(diagnostic)
        if diagnostic.severity is Severity.ERROR:
            logger.debug(f"Recorded {diagnostic.code.value} for {diagnostic.template}")
        return diagnostic

    def extend(self, diagnostics: Iterable[Diagnostic]) -> None:
        for diagnostic in diagnostics:
            self.add(diagnostic)

    def add_exception(
        self,
        template: str | None,
        ordinal: int | None,
        exc: BaseException,
        path: str | None = None,
    ) -> Diagnostic:
        return self.add(diagnostic_from_exception(exc, template, ordinal, path))

    def has_fatal(self) -> bool:
        with self._lock:
            return any(d.severity is Severity.ERROR for d in self._entries)

    def sorted_errors(self) -> list[Diagnostic]:
        return sorted(
            (d for d in self.snapshot() if d.severity is Severity.ERROR),
            key=Diagnostic.sort_key,
        )

    def sorted_warnings(self) -> list[Diagnostic]:
        return sorted(
            (d for d in self.snapshot() if d.severity is Severity.WARNING),
            key=Diagnostic.sort_key,
        )

    def render_text(self) -> str:
        return "\n".join(d.render_text() for d in self.sorted_errors() + self.sorted_warnings())


def aggregate(entries: Iterable[Diagnostic | Diagnostics]) -> Diagnostics:
    """Merge diagnostics and collectors into a single collector."""
    merged = Diagnostics()
    for entry in entries:
        if isinstance(entry, Diagnostics):
            merged.extend(entry.snapshot())
        else:
            merged.add(entry)
    return merged
