"""Template rendering engine."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from types import TracebackType
from typing import Any

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    Template,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
)

from ..core.config import ForgeConfig
from ..core.errors import EvalError, RenderError, RenderErrorKind
from . import filters

logger = logging.getLogger(__name__)


class TemplateEngine:
    """Jinja2 environment rooted at the template directory.

    One engine is shared by every worker of a run; Jinja2 environments and
    compiled templates are safe to render concurrently.
    """

    def __init__(self, config: ForgeConfig, params: Mapping[str, Any] | None = None) -> None:
        self.template_root = Path(config.template_root)
        whitespace = config.whitespace_control
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_root)),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=whitespace.trim_blocks,
            lstrip_blocks=whitespace.lstrip_blocks,
            keep_trailing_newline=whitespace.keep_trailing_newline,
            extensions=["jinja2.ext.loopcontrols"],
        )
        self.params = dict(config.global_parameters if params is None else params)
        filters.register(self.env, config, self.params)

    def load(self, name: str) -> Template:
        """Load and compile a template by its template-root-relative path.

        Args:
            name: POSIX path relative to the template root

        Returns:
            Compiled Jinja2 template
        """
        try:
            return self.env.get_template(name)
        except Exception as e:
            raise self.translate(e, name) from e

    def compile(self, source: str, name: str) -> Template:
        """Compile an in-memory template (e.g. an output-path template) under ``name``."""
        try:
            code = self.env.compile(source, name=name, filename=name)
        except Exception as e:
            raise self.translate(e, name) from e
        return self.env.template_class.from_code(
            self.env, code, self.env.make_globals(None), None
        )

    def render(self, template: Template, context: Mapping[str, Any], name: str | None = None) -> str:
        """Render a compiled template.

        Raises:
            RenderError: With the failing line and the active template frames
        """
        name = name or template.name or "<template>"
        try:
            return template.render(context)
        except Exception as e:
            raise self.translate(e, name) from e

    def render_source(self, source: str, context: Mapping[str, Any], name: str) -> str:
        return self.render(self.compile(source, name), context, name)

    def render_file(self, name: str, context: Mapping[str, Any]) -> str:
        return self.render(self.load(name), context, name)

    # -- error translation -------------------------------------------------

    def translate(self, exc: BaseException, name: str) -> RenderError:
        """Map an exception raised while loading or rendering ``name``."""
        if isinstance(exc, RenderError):
            return exc

        if isinstance(exc, TemplateSyntaxError):
            path = self._relative(exc.filename) if exc.filename else (exc.name or name)
            return RenderError(
                RenderErrorKind.SYNTAX_ERROR,
                exc.message or str(exc),
                template_path=path,
                line=exc.lineno,
                cause=exc,
            )

        stack = self._template_stack(exc.__traceback__)
        path, line = name, None
        if stack:
            path, _, line_text = stack[-1].rpartition(":")
            line = int(line_text)

        if isinstance(exc, UndefinedError):
            kind = RenderErrorKind.UNDEFINED_VARIABLE
        elif isinstance(exc, (EvalError, filters.FilterError)):
            kind = RenderErrorKind.FILTER_ERROR
        elif isinstance(exc, TypeError) and str(exc).startswith("macro "):
            kind = RenderErrorKind.MACRO_ERROR
        elif isinstance(exc, TemplateNotFound):
            kind = RenderErrorKind.RUNTIME_ERROR
            return RenderError(
                kind,
                f"template not found: {exc.name}",
                template_path=path,
                line=line,
                stack=stack,
                cause=exc,
            )
        else:
            kind = RenderErrorKind.RUNTIME_ERROR

        return RenderError(
            kind,
            str(exc) or type(exc).__name__,
            template_path=path,
            line=line,
            stack=stack,
            cause=exc,
        )

    def _template_stack(self, tb: TracebackType | None) -> tuple[str, ...]:
        """``file:line`` for every template frame of a rewritten traceback, outermost first."""
        frames = []
        while tb is not None:
            if "__jinja_exception__" in tb.tb_frame.f_globals:
                filename = self._relative(tb.tb_frame.f_code.co_filename)
                frames.append(f"{filename}:{tb.tb_lineno}")
            tb = tb.tb_next
        return tuple(frames)

    def _relative(self, filename: str) -> str:
        try:
            return Path(filename).resolve().relative_to(self.template_root.resolve()).as_posix()
        except ValueError:
            return filename
