"""Tests for identifier case conversion and markdown/comment helpers."""

from __future__ import annotations

import pytest

from schemaforge.core.config import TargetFormat
from schemaforge.text import case, markdown


# ---------------------------------------------------------------------------
# Case conversion
# ---------------------------------------------------------------------------


class TestSplitWords:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("http.request.method", ["http", "request", "method"]),
            ("HTTPServerError2", ["HTTP", "Server", "Error2"]),
            ("userName", ["user", "Name"]),
            ("user-name_id", ["user", "name", "id"]),
            ("  spaced  out ", ["spaced", "out"]),
            ("", []),
        ],
    )
    def test_split(self, text: str, expected: list[str]) -> None:
        assert case.split_words(text) == expected


class TestConverters:
    @pytest.mark.parametrize(
        "style, expected",
        [
            ("snake_case", "http_request_method"),
            ("camel_case", "httpRequestMethod"),
            ("pascal_case", "HttpRequestMethod"),
            ("kebab_case", "http-request-method"),
            ("screaming_snake_case", "HTTP_REQUEST_METHOD"),
            ("screaming_kebab_case", "HTTP-REQUEST-METHOD"),
            ("title_case", "Http Request Method"),
            ("lower_case", "http request method"),
            ("upper_case", "HTTP REQUEST METHOD"),
        ],
    )
    def test_convert(self, style: str, expected: str) -> None:
        assert case.convert("http.request.method", style) == expected

    def test_unknown_style(self) -> None:
        with pytest.raises(ValueError):
            case.convert("x", "sponge_case")

    def test_camel_case_of_empty_string(self) -> None:
        assert case.camel_case("") == ""

    @pytest.mark.parametrize("source", ["requestBodySize", "db_system_name", "ServerPort"])
    def test_round_trip(self, source: str) -> None:
        words = [w.lower() for w in case.split_words(source)]
        for style in case.CaseStyle:
            converted = case.convert(source, style)
            assert [w.lower() for w in case.split_words(converted)] == words
            assert case.snake_case(converted) == case.snake_case(source)


class TestAcronym:
    def test_rewrites_known_words(self) -> None:
        assert case.acronym("Http request url", ["HTTP", "URL"]) == "HTTP request URL"

    def test_rewrites_inside_identifiers(self) -> None:
        assert case.acronym("HttpUrlPath", ["HTTP", "URL"]) == "HTTPURLPath"

    def test_no_acronyms(self) -> None:
        assert case.acronym("Http", []) == "Http"


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------


class TestMarkdown:
    def test_to_html(self) -> None:
        assert markdown.to_html("Some *emphasis*.") == "<p>Some <em>emphasis</em>.</p>"

    def test_to_text_strips_markup(self) -> None:
        assert markdown.to_text("Some **bold** and `code`.") == "Some bold and code."

    def test_to_text_keeps_paragraphs_and_lists(self) -> None:
        text = markdown.to_text("First.\n\nSecond:\n\n- one\n- two\n")
        assert text == "First.\n\nSecond:\n\n- one\n- two"

    def test_convert_passthrough(self) -> None:
        assert markdown.convert("*x*", TargetFormat.MARKDOWN) == "*x*"
        assert markdown.convert("*x*", "html") == "<p><em>x</em></p>"
        assert markdown.convert("*x*", "text") == "x"

    def test_convert_rejects_unknown_target(self) -> None:
        with pytest.raises(ValueError):
            markdown.convert("x", "pdf")


class TestComment:
    def test_slash(self) -> None:
        assert markdown.comment("one\ntwo") == "// one\n// two"

    def test_indent_applies_to_following_lines(self) -> None:
        assert markdown.comment("one\ntwo", "hash", indent=4) == "# one\n    # two"

    def test_javadoc_block(self) -> None:
        assert markdown.comment("Brief.", "javadoc") == "/**\n * Brief.\n */"

    def test_c_comment_terminator_is_neutralised(self) -> None:
        result = markdown.comment("a */ b", "c")
        assert "*/ b" not in result
        assert result.endswith(" */")
        assert result.count("*/") == 1

    def test_xml_comment_double_dash_is_neutralised(self) -> None:
        result = markdown.comment("a -- b", "xml")
        assert result == "<!--\n  a - - b\n-->"

    def test_empty_text(self) -> None:
        assert markdown.comment("", "rustdoc") == "///"

    def test_unknown_style(self) -> None:
        with pytest.raises(ValueError):
            markdown.comment("x", "fortran")
