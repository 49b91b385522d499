"""Expansion of template descriptors into planned outputs.

A single-output template plans one output. A fan-out template evaluates its
selector query against the schema and plans one output per selected item,
rendering the ``file_name`` template with that item's context to obtain the
output path.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Sequence

from ..core.errors import EvalError, InvalidPathError, RenderError
from ..core.models import Diagnostic, DiagnosticCode, FanOut, Severity, TemplateDescriptor
from ..core.values import FrozenMap
from ..query import evaluate
from ..rendering.engine import TemplateEngine
from .diagnostics import diagnostic_from_exception
from .discovery import strip_template_suffix

logger = logging.getLogger(__name__)

SCHEMA_NAME = "schema"
PARAMS_NAME = "params"
TEMPLATE_NAME = "template"
ITEM_NAME = "item"
ORDINAL_NAME = "ordinal"

RESERVED_NAMES = frozenset({SCHEMA_NAME, PARAMS_NAME, TEMPLATE_NAME, ITEM_NAME, ORDINAL_NAME})

_NO_ITEM = object()
_DRIVE = re.compile(r"^[A-Za-z]:")


@dataclass(frozen=True)
class PlannedOutput:
    """One render to perform: template, item ordinal, output path and context."""

    template: str
    ordinal: int | None
    path: str
    context: Mapping[str, Any] = field(repr=False, compare=False)


@dataclass
class Expansion:
    outputs: list[PlannedOutput] = field(default_factory=list)
    errors: list[Diagnostic] = field(default_factory=list)
    warnings: list[Diagnostic] = field(default_factory=list)


def build_context(
    schema: Any,
    params: Mapping[str, Any],
    template_path: str,
    item: Any = _NO_ITEM,
    ordinal: int | None = None,
) -> dict[str, Any]:
    """Assemble a fresh render context.

    Global parameters come first, then the keys of a mapping item (which
    shadow globals), then the reserved names, which always win.
    """
    context: dict[str, Any] = dict(params)
    if item is not _NO_ITEM and isinstance(item, Mapping):
        context.update(item)
    context[SCHEMA_NAME] = schema
    context[PARAMS_NAME] = params
    context[TEMPLATE_NAME] = FrozenMap(path=template_path)
    if item is not _NO_ITEM:
        context[ITEM_NAME] = item
        context[ORDINAL_NAME] = ordinal
    return context


def shadowed_names(item: Any, params: Mapping[str, Any]) -> set[str]:
    """Global parameter names hidden by the keys of ``item``."""
    if not isinstance(item, Mapping):
        return set()
    return {key for key in item if key in params and key not in RESERVED_NAMES}


def normalize_output_path(raw: str) -> str:
    """Validate a computed output path and return it in canonical POSIX form.

    Raises:
        InvalidPathError: Empty, absolute, or escaping the output root
    """
    text = raw.strip().replace("\\", "/")
    if not text:
        raise InvalidPathError("computed output path is empty")
    if text.startswith("/") or _DRIVE.match(text):
        raise InvalidPathError(f"output path {text!r} must be relative")
    parts: list[str] = []
    for segment in text.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not parts:
                raise InvalidPathError(f"output path {text!r} escapes the output root")
            parts.pop()
        else:
            parts.append(segment)
    if not parts:
        raise InvalidPathError(f"output path {text!r} does not name a file")
    return "/".join(parts)


def _path_template_name(descriptor: TemplateDescriptor) -> str:
    return f"{descriptor.path}#file_name"


def expand(
    descriptor: TemplateDescriptor,
    schema: Any,
    params: Mapping[str, Any],
    engine: TemplateEngine,
) -> Expansion:
    """Plan the outputs of one template.

    Template syntax errors and selector failures fail the whole template;
    output-path failures only drop the affected item.
    """
    result = Expansion()
    name = descriptor.path

    try:
        engine.load(name)
        path_template = (
            engine.compile(descriptor.mode.file_name, _path_template_name(descriptor))
            if descriptor.mode.file_name
            else None
        )
    except RenderError as e:
        result.errors.append(diagnostic_from_exception(e, template=name))
        return result

    if not isinstance(descriptor.mode, FanOut):
        context = build_context(schema, params, name)
        try:
            if path_template is None:
                path = normalize_output_path(strip_template_suffix(name))
            else:
                raw = engine.render(path_template, context, _path_template_name(descriptor))
                path = normalize_output_path(raw)
        except (RenderError, InvalidPathError) as e:
            result.errors.append(diagnostic_from_exception(e, template=name))
            return result
        result.outputs.append(PlannedOutput(name, None, path, context))
        return result

    selector = descriptor.mode.selector
    try:
        items = list(evaluate(selector, schema, {PARAMS_NAME: params}))
    except EvalError as e:
        result.errors.append(diagnostic_from_exception(e, template=name))
        return result
    logger.debug(f"{name}: selector {selector!r} yielded {len(items)} item(s)")

    shadowed: set[str] = set()
    for ordinal, item in enumerate(items):
        shadowed |= shadowed_names(item, params)
        context = build_context(schema, params, name, item, ordinal)
        try:
            raw = engine.render(path_template, context, _path_template_name(descriptor))
            path = normalize_output_path(raw)
        except (RenderError, InvalidPathError) as e:
            result.errors.append(diagnostic_from_exception(e, template=name, ordinal=ordinal))
            continue
        result.outputs.append(PlannedOutput(name, ordinal, path, context))

    if shadowed:
        names = ", ".join(sorted(shadowed))
        result.warnings.append(
            Diagnostic(
                code=DiagnosticCode.BINDING_SHADOWED,
                severity=Severity.WARNING,
                template=name,
                message=f"item keys shadow global parameters: {names}",
            )
        )
    return result


def _claimant(output: PlannedOutput) -> str:
    return output.template if output.ordinal is None else f"{output.template}#{output.ordinal}"


def _claim_order(output: PlannedOutput) -> tuple[str, int]:
    return (output.template, -1 if output.ordinal is None else output.ordinal)


def find_path_conflicts(planned: Sequence[PlannedOutput]) -> list[Diagnostic]:
    """Report output paths that cannot all be written.

    One ``PATH_CONFLICT`` per path claimed by more than one planned output,
    and one per path that another planned output needs as a directory.
    """
    claims: dict[str, list[PlannedOutput]] = {}
    for output in planned:
        claims.setdefault(output.path, []).append(output)

    conflicts = []
    for path, claimants in claims.items():
        if len(claimants) < 2:
            continue
        claimants = sorted(claimants, key=_claim_order)
        names = tuple(_claimant(o) for o in claimants)
        conflicts.append(
            Diagnostic(
                code=DiagnosticCode.PATH_CONFLICT,
                template=claimants[0].template,
                ordinal=claimants[0].ordinal,
                path=path,
                claimants=names,
                message=(
                    f"output path {path!r} is claimed by {len(claimants)} outputs: "
                    f"{', '.join(names)}"
                ),
            )
        )

    nested: dict[str, list[PlannedOutput]] = {}
    for path in claims:
        parts = path.split("/")
        for depth in range(1, len(parts)):
            parent = "/".join(parts[:depth])
            if parent in claims:
                nested.setdefault(parent, []).extend(claims[path])
    for parent, children in nested.items():
        files = sorted(claims[parent], key=_claim_order)
        children = sorted(children, key=_claim_order)
        names = tuple(_claimant(o) for o in files + children)
        conflicts.append(
            Diagnostic(
                code=DiagnosticCode.PATH_CONFLICT,
                template=files[0].template,
                ordinal=files[0].ordinal,
                path=parent,
                claimants=names,
                message=(
                    f"output path {parent!r} ({', '.join(_claimant(o) for o in files)}) "
                    f"is also a directory of {', '.join(_claimant(o) for o in children)}"
                ),
            )
        )
    return conflicts
