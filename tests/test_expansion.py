"""Tests for fan-out expansion, render contexts and output paths."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from schemaforge.core.errors import InvalidPathError
from schemaforge.core.models import (
    DiagnosticCode,
    FanOut,
    Severity,
    SingleOutput,
    TemplateDescriptor,
)
from schemaforge.core.values import freeze
from schemaforge.generation.expansion import (
    PlannedOutput,
    build_context,
    expand,
    find_path_conflicts,
    normalize_output_path,
)
from schemaforge.rendering.engine import TemplateEngine


@pytest.fixture
def descriptor(template_root: Path, write_template: Callable[[str, str], Path]):
    """Write a template body and return a descriptor factory for it."""

    def make(path: str, mode: Any = None, body: str = "{{ item }}") -> TemplateDescriptor:
        source = write_template(path, body)
        return TemplateDescriptor(path=path, source=source, mode=mode or SingleOutput())

    return make


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class TestBuildContext:
    def test_single_render_context(self) -> None:
        context = build_context({"s": 1}, {"lang": "go"}, "a.j2")
        assert context["schema"] == {"s": 1}
        assert context["params"] == {"lang": "go"}
        assert context["lang"] == "go"
        assert context["template"]["path"] == "a.j2"
        assert "item" not in context
        assert "ordinal" not in context

    def test_item_keys_shadow_globals(self) -> None:
        context = build_context({}, {"id": "global", "lang": "go"}, "a.j2", {"id": "item"}, 3)
        assert context["id"] == "item"
        assert context["lang"] == "go"
        assert context["ordinal"] == 3
        assert context["item"] == {"id": "item"}

    def test_reserved_names_always_win(self) -> None:
        context = build_context({"real": True}, {}, "a.j2", {"schema": "fake"}, 0)
        assert context["schema"] == {"real": True}

    def test_scalar_item(self) -> None:
        context = build_context({}, {}, "a.j2", "x", 0)
        assert context["item"] == "x"


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


class TestNormalizeOutputPath:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("a.out", "a.out"),
            ("  docs/a.md \n", "docs/a.md"),
            ("docs\\win\\a.md", "docs/win/a.md"),
            ("./docs//a.md", "docs/a.md"),
            ("docs/../a.md", "a.md"),
        ],
    )
    def test_valid(self, raw: str, expected: str) -> None:
        assert normalize_output_path(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "/etc/passwd", "C:/x", "../x", "a/../../x", "."])
    def test_invalid(self, raw: str) -> None:
        with pytest.raises(InvalidPathError):
            normalize_output_path(raw)


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------


class TestExpand:
    def test_single_mirrors_template_path(self, engine: TemplateEngine, descriptor) -> None:
        result = expand(descriptor("docs/index.md.j2"), freeze({}), freeze({}), engine)
        (planned,) = result.outputs
        assert planned.path == "docs/index.md"
        assert planned.ordinal is None
        assert result.errors == []

    def test_single_with_file_name(self, engine: TemplateEngine, descriptor) -> None:
        d = descriptor("main.j2", SingleOutput(file_name="{{ lang }}/main.{{ lang }}"))
        result = expand(d, freeze({}), freeze({"lang": "rs"}), engine)
        assert [p.path for p in result.outputs] == ["rs/main.rs"]

    def test_fan_out_scenario(self, engine: TemplateEngine, descriptor, groups_schema: dict) -> None:
        mode = FanOut(selector=".groups[] | select(.attrs | length > 0)", file_name="{{ id }}.out")
        result = expand(descriptor("groups.j2", mode), freeze(groups_schema), freeze({}), engine)

        (planned,) = result.outputs
        assert planned.path == "a.out"
        assert planned.ordinal == 0
        assert planned.context["item"]["id"] == "a"
        assert result.errors == []

    def test_empty_selector_result(self, engine: TemplateEngine, descriptor) -> None:
        mode = FanOut(selector=".groups[]", file_name="{{ id }}")
        result = expand(descriptor("g.j2", mode), freeze({"groups": []}), freeze({}), engine)
        assert result.outputs == []
        assert result.errors == []

    def test_selector_sees_params(self, engine: TemplateEngine, descriptor) -> None:
        mode = FanOut(selector=".ids[] | select(. != $params.skip)", file_name="{{ item }}.txt")
        result = expand(
            descriptor("g.j2", mode), freeze({"ids": ["a", "b"]}), freeze({"skip": "a"}), engine
        )
        assert [p.path for p in result.outputs] == ["b.txt"]

    def test_selector_error_fails_template(self, engine: TemplateEngine, descriptor) -> None:
        mode = FanOut(selector=".groups[] | unknown_fn", file_name="{{ id }}")
        result = expand(descriptor("g.j2", mode), freeze({"groups": [{}]}), freeze({}), engine)
        assert result.outputs == []
        (error,) = result.errors
        assert error.code is DiagnosticCode.QUERY_ERROR
        assert error.kind == "UNDEFINED_FUNCTION"
        assert error.expression == ".groups[] | unknown_fn"

    def test_syntax_error_fails_template(self, engine: TemplateEngine, descriptor) -> None:
        result = expand(descriptor("bad.j2", body="{% for %}"), freeze({}), freeze({}), engine)
        (error,) = result.errors
        assert error.code is DiagnosticCode.RENDER_ERROR
        assert error.kind == "SYNTAX_ERROR"

    def test_path_error_isolates_item(self, engine: TemplateEngine, descriptor) -> None:
        mode = FanOut(selector=".[]", file_name="{{ name }}.txt")
        schema = freeze([{"name": "a"}, {"other": 1}, {"name": "c"}])
        result = expand(descriptor("g.j2", mode), schema, freeze({}), engine)

        assert [(p.ordinal, p.path) for p in result.outputs] == [(0, "a.txt"), (2, "c.txt")]
        (error,) = result.errors
        assert error.ordinal == 1
        assert error.kind == "UNDEFINED_VARIABLE"

    def test_escaping_path_is_invalid(self, engine: TemplateEngine, descriptor) -> None:
        mode = FanOut(selector=".[]", file_name="{{ item }}")
        result = expand(descriptor("g.j2", mode), freeze(["ok", "../escape", ""]), freeze({}), engine)

        assert [p.path for p in result.outputs] == ["ok"]
        assert [(e.code, e.ordinal) for e in result.errors] == [
            (DiagnosticCode.INVALID_PATH, 1),
            (DiagnosticCode.INVALID_PATH, 2),
        ]

    def test_shadowing_warns_once(self, engine: TemplateEngine, descriptor) -> None:
        mode = FanOut(selector=".[]", file_name="{{ id }}")
        schema = freeze([{"id": "a", "lang": "x"}, {"id": "b", "lang": "y"}])
        result = expand(descriptor("g.j2", mode), schema, freeze({"lang": "go", "id": "p"}), engine)

        assert len(result.outputs) == 2
        (warning,) = result.warnings
        assert warning.code is DiagnosticCode.BINDING_SHADOWED
        assert warning.severity is Severity.WARNING
        assert "id, lang" in warning.message


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class TestPathConflicts:
    def test_no_conflicts(self) -> None:
        planned = [PlannedOutput("a.j2", None, "a", {}), PlannedOutput("b.j2", None, "b", {})]
        assert find_path_conflicts(planned) == []

    def test_same_template_items(self) -> None:
        planned = [
            PlannedOutput("g.j2", 0, "same.txt", {}),
            PlannedOutput("g.j2", 1, "other.txt", {}),
            PlannedOutput("g.j2", 2, "same.txt", {}),
        ]
        (conflict,) = find_path_conflicts(planned)
        assert conflict.code is DiagnosticCode.PATH_CONFLICT
        assert conflict.path == "same.txt"
        assert "g.j2#0" in conflict.message
        assert "g.j2#2" in conflict.message

    def test_across_templates(self) -> None:
        planned = [
            PlannedOutput("b.j2", None, "x", {}),
            PlannedOutput("a.j2", 4, "x", {}),
        ]
        (conflict,) = find_path_conflicts(planned)
        assert conflict.template == "a.j2"
        assert "a.j2#4, b.j2" in conflict.message
        assert conflict.claimants == ("a.j2#4", "b.j2")
        assert conflict.ordinal == 4

    def test_file_used_as_directory(self) -> None:
        planned = [
            PlannedOutput("dir.j2", 0, "a/b.txt", {}),
            PlannedOutput("file.j2", None, "a", {}),
            PlannedOutput("dir.j2", 1, "a/c/d.txt", {}),
            PlannedOutput("other.j2", None, "ab.txt", {}),
        ]
        (conflict,) = find_path_conflicts(planned)
        assert conflict.code is DiagnosticCode.PATH_CONFLICT
        assert conflict.path == "a"
        assert conflict.template == "file.j2"
        assert conflict.claimants == ("file.j2", "dir.j2#0", "dir.j2#1")
        assert "also a directory" in conflict.message
