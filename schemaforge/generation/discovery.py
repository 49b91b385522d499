"""Template discovery: walk the template root and read fan-out directives."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Sequence

import yaml
from pydantic import ValidationError

from ..core.config import CONFIG_FILE_NAME, TemplateDirective, TemplateRule
from ..core.errors import DirectiveError, DiscoveryError
from ..core.models import Diagnostic, DiagnosticCode, FanOut, OutputMode, SingleOutput, TemplateDescriptor

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIXES = (".j2", ".jinja", ".jinja2")

# {#- forge:
# fan_out: '.groups[]'
# file_name: '{{ id }}.md'
# -#}
_HEADER = re.compile(r"\A\{#-?[ \t]*forge:[ \t]*\r?\n(?P<body>.*?)-?#\}", re.DOTALL)


@dataclass
class Discovery:
    """Templates found under a root, plus the files that had to be skipped."""

    templates: list[TemplateDescriptor] = field(default_factory=list)
    errors: list[Diagnostic] = field(default_factory=list)


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> re.Pattern:
    """Translate a glob into a regex over POSIX relative paths.

    ``*`` and ``?`` stay within one path segment, ``**`` spans segments and
    ``**/`` also matches zero segments. ``[...]`` classes pass through.
    """
    out = []
    i, n = 0, len(pattern)
    while i < n:
        ch = pattern[i]
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif ch == "*":
            out.append("[^/]*")
            i += 1
        elif ch == "?":
            out.append("[^/]")
            i += 1
        elif ch == "[":
            end = pattern.find("]", i + 2)
            if end == -1:
                out.append(re.escape(ch))
                i += 1
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end + 1
        else:
            out.append(re.escape(ch))
            i += 1
    return re.compile("".join(out) + r"\Z")


def matches(path: str, pattern: str) -> bool:
    """Match a relative POSIX path; patterns without ``/`` match the file name."""
    target = path if "/" in pattern else path.rsplit("/", 1)[-1]
    return glob_to_regex(pattern).match(target) is not None


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    return any(matches(path, pattern) for pattern in patterns)


def strip_template_suffix(path: str) -> str:
    """Drop the template's own suffix: ``docs/index.md.j2`` -> ``docs/index.md``."""
    for suffix in TEMPLATE_SUFFIXES:
        if path.endswith(suffix) and len(path) > len(suffix):
            return path[: -len(suffix)]
    return path


def parse_header(text: str) -> TemplateDirective | None:
    """Read the ``forge:`` header block at the top of a template, if any.

    Raises:
        DirectiveError: When the block is not a valid directive mapping
    """
    match = _HEADER.match(text)
    if match is None:
        return None
    try:
        data = yaml.safe_load(match.group("body"))
    except yaml.YAMLError as e:
        raise DirectiveError(f"invalid YAML in forge header: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise DirectiveError(f"forge header must be a mapping, got {type(data).__name__}")
    try:
        return TemplateDirective.model_validate(data)
    except ValidationError as e:
        raise DirectiveError(f"invalid forge header: {_validation_summary(e)}") from e


def _validation_summary(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in item['loc']) or '<root>'}: {item['msg']}"
        for item in error.errors()
    )


def output_mode(directive: TemplateDirective | None) -> OutputMode:
    """Turn a directive into the template's output mode."""
    if directive is None:
        return SingleOutput()
    if directive.fan_out is None:
        return SingleOutput(file_name=directive.file_name)
    if not directive.fan_out.strip():
        raise DirectiveError("fan_out must be a non-empty query")
    if not directive.file_name:
        raise DirectiveError("fan_out requires a file_name template")
    return FanOut(selector=directive.fan_out, file_name=directive.file_name)


def _rule_for(path: str, rules: Sequence[TemplateRule]) -> TemplateRule | None:
    for rule in rules:
        if matches(path, rule.pattern):
            return rule
    return None


def describe(
    source: Path,
    path: str,
    rules: Sequence[TemplateRule] = (),
) -> TemplateDescriptor:
    """Build the descriptor of one template file.

    The header block wins over configuration rules.

    Raises:
        DirectiveError: Unreadable file or invalid directive
    """
    try:
        text = source.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise DirectiveError(f"template is not valid UTF-8: {e.reason} at byte {e.start}") from e
    except OSError as e:
        raise DirectiveError(f"cannot read template: {e.strerror or e}") from e

    directive: TemplateDirective | None = parse_header(text)
    if directive is None:
        directive = _rule_for(path, rules)
    return TemplateDescriptor(path=path, source=source, mode=output_mode(directive))


def discover(
    template_root: Path,
    include_patterns: Sequence[str],
    exclude_patterns: Sequence[str] = (),
    rules: Sequence[TemplateRule] = (),
    config_file: str = CONFIG_FILE_NAME,
) -> Discovery:
    """Enumerate the templates under ``template_root``.

    A file is a template when it matches at least one include pattern and no
    exclude pattern. Descriptors are sorted by relative path.

    Args:
        template_root: Directory to walk
        include_patterns: Globs selecting templates
        exclude_patterns: Globs removing files (exclude wins)
        rules: Configured directives, first matching pattern wins
        config_file: Name of the configuration file at the root (never a template)

    Returns:
        Discovered templates and per-file directive errors

    Raises:
        DiscoveryError: When the template root is missing or not a directory
    """
    root = Path(template_root)
    if not root.is_dir():
        raise DiscoveryError(f"Template root not found: {root}")

    result = Discovery()
    try:
        files = sorted(p for p in root.rglob("*") if p.is_file())
    except OSError as e:
        raise DiscoveryError(f"Cannot walk template root {root}: {e}") from e

    for source in files:
        path = source.relative_to(root).as_posix()
        if path == config_file:
            continue
        if not matches_any(path, include_patterns) or matches_any(path, exclude_patterns):
            continue
        try:
            result.templates.append(describe(source.resolve(), path, rules))
        except DirectiveError as e:
            logger.debug(f"Skipping {path}: {e}")
            result.errors.append(
                Diagnostic(code=DiagnosticCode.DIRECTIVE_ERROR, template=path, message=str(e))
            )

    result.templates.sort(key=lambda t: t.path)
    logger.info(
        f"Discovered {len(result.templates)} template(s) in {root}"
        + (f", {len(result.errors)} skipped" if result.errors else "")
    )
    return result
