"""Tests for the JQ-style query evaluator."""

from __future__ import annotations

from typing import Any

import pytest

from schemaforge.core.errors import EvalError, EvalErrorKind
from schemaforge.core.values import FrozenMap, freeze, thaw
from schemaforge.query import QueryStream, builtin_names, compile_query, evaluate


def run(expression: str, input: Any = None, **variables: Any) -> list[Any]:
    """Evaluate and return plain Python data."""
    return thaw(list(evaluate(expression, input, variables)))


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


class TestPaths:
    def test_identity(self) -> None:
        assert run(".", {"a": 1}) == [{"a": 1}]

    def test_field_access(self) -> None:
        assert run(".a.b", {"a": {"b": 2}}) == [2]

    def test_quoted_field(self) -> None:
        assert run('."foo-bar"', {"foo-bar": 1}) == [1]

    def test_missing_field_is_null(self) -> None:
        assert run(".missing", {"a": 1}) == [None]

    def test_index_and_negative_index(self) -> None:
        assert run(".[0], .[-1]", [1, 2, 3]) == [1, 3]

    def test_out_of_range_index_is_null(self) -> None:
        assert run(".[10]", [1]) == [None]

    def test_slices(self) -> None:
        assert run(".[1:3]", [0, 1, 2, 3]) == [[1, 2]]
        assert run(".[:-1]", "abcd") == ["abc"]
        assert run(".[2:]", [0, 1, 2, 3]) == [[2, 3]]

    def test_iterate_array_and_object(self) -> None:
        assert run(".[]", [1, 2]) == [1, 2]
        assert run(".[]", {"a": 1, "b": 2}) == [1, 2]

    def test_recurse_all(self) -> None:
        assert run("[.. | numbers]", {"a": [1, {"b": 2}]}) == [[1, 2]]

    def test_optional_suppresses_errors(self) -> None:
        assert run(".[]?", 3) == []
        assert run("[.[] | .a?]", [1, {"a": 2}]) == [[2]]

    def test_index_number_with_string_fails(self) -> None:
        with pytest.raises(EvalError) as exc_info:
            run(".a", 5)
        assert exc_info.value.kind is EvalErrorKind.TYPE_MISMATCH


# ---------------------------------------------------------------------------
# Construction & Operators
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_array_construction(self) -> None:
        assert run("[.[] | . * 2]", [1, 2, 3]) == [[2, 4, 6]]

    def test_object_construction_keys(self) -> None:
        result = run('{a: 1, "b": 2, (.k): 3}', {"k": "c"})
        assert result == [{"a": 1, "b": 2, "c": 3}]

    def test_object_shorthands(self) -> None:
        assert run("{a}", {"a": 5, "b": 6}) == [{"a": 5}]
        assert run("{$x}", None, x=7) == [{"x": 7}]

    def test_object_cartesian_product(self) -> None:
        assert run("{a: (1, 2)}") == [{"a": 1}, {"a": 2}]

    def test_string_interpolation(self) -> None:
        assert run('"id=\\(.id) n=\\(.n)"', {"id": "a", "n": 2}) == ["id=a n=2"]

    def test_results_are_frozen(self) -> None:
        (result,) = evaluate("{a: [1]}", None)
        assert isinstance(result, FrozenMap)
        assert result["a"] == (1,)
        with pytest.raises(TypeError):
            result["b"] = 2


class TestOperators:
    def test_arithmetic(self) -> None:
        assert run("1 + 2 * 3") == [7]
        assert run("(1 + 2) * 3") == [9]
        assert run("10 / 4") == [2.5]
        assert run("4 / 2") == [2]
        assert run("7 % 3") == [1]

    def test_integral_division_stays_int(self) -> None:
        (result,) = run("6 / 3")
        assert isinstance(result, int)

    def test_string_and_collection_arithmetic(self) -> None:
        assert run('"a" + "b"') == ["ab"]
        assert run("[1] + [2]") == [[1, 2]]
        assert run('{a: 1} + {b: 2}') == [{"a": 1, "b": 2}]
        assert run("[1, 2, 3, 2] - [2]") == [[1, 3]]
        assert run('"a,b" / ","') == [["a", "b"]]
        assert run("null + 1") == [1]

    def test_division_by_zero(self) -> None:
        with pytest.raises(EvalError) as exc_info:
            run("1 / 0")
        assert exc_info.value.kind is EvalErrorKind.RUNTIME_FAILURE

    def test_comparisons(self) -> None:
        assert run("1 < 2, 2 <= 1, 1 == 1.0, \"a\" != \"b\"") == [True, False, True, True]

    def test_boolean_operators(self) -> None:
        assert run("true and false, true or false, (null | not)") == [False, True, True]

    def test_alternative(self) -> None:
        assert run('.missing // "default"', {}) == ["default"]
        assert run("(false, null, 1) // 2") == [1]
        assert run("empty // 2") == [2]

    def test_alternative_suppresses_left_errors(self) -> None:
        assert run('(.a | error("x")) // "fallback"', {"a": 1}) == ["fallback"]

    def test_comma_and_pipe(self) -> None:
        assert run(".a, .b | . + 1", {"a": 1, "b": 2}) == [2, 3]

    def test_unary_minus(self) -> None:
        assert run("-.a", {"a": 3}) == [-3]

    def test_total_order(self) -> None:
        result = run('[null, true, false, 1, "a", [], {}] | sort')
        assert result == [[None, False, True, 1, "a", [], {}]]


# ---------------------------------------------------------------------------
# Control Flow
# ---------------------------------------------------------------------------


class TestControlFlow:
    @pytest.mark.parametrize(
        "value, expected",
        [(5, "big"), (1, "small"), (-1, "negative")],
    )
    def test_if_elif_else(self, value: int, expected: str) -> None:
        expression = 'if . > 2 then "big" elif . > 0 then "small" else "negative" end'
        assert run(expression, value) == [expected]

    def test_if_without_else_is_identity(self) -> None:
        assert run('if . > 2 then "big" end', 1) == [1]

    def test_as_binding(self) -> None:
        assert run(".[] as $x | $x * 2", [1, 2]) == [2, 4]

    def test_reduce(self) -> None:
        assert run("reduce .[] as $x (0; . + $x)", [1, 2, 3]) == [6]

    def test_foreach(self) -> None:
        assert run("[foreach .[] as $x (0; . + $x)]", [1, 2, 3]) == [[1, 3, 6]]
        assert run("[foreach .[] as $x (0; . + $x; [$x, .])]", [1, 2]) == [[[1, 1], [2, 3]]]

    def test_try_catch_receives_message(self) -> None:
        assert run('try error("boom") catch .') == ["boom"]

    def test_try_catch_receives_error_value(self) -> None:
        assert run('try error({code: 1}) catch .code') == [1]

    def test_try_stops_at_first_error(self) -> None:
        expression = '[.[] | try (if . == 2 then error("bad") else . end)]'
        assert run(expression, [1, 2, 3]) == [[1, 3]]

    def test_try_without_catch_suppresses(self) -> None:
        assert run('[try error("x")]') == [[]]

    def test_user_function_with_filter_argument(self) -> None:
        assert run("def f(g): g | g; 2 | f(. * 3)") == [18]

    def test_recursive_function(self) -> None:
        expression = "def fac: if . <= 1 then 1 else . * (. - 1 | fac) end; 5 | fac"
        assert run(expression) == [120]

    def test_value_parameter(self) -> None:
        assert run("def add_n($n): . + $n; 1 | add_n(2)") == [3]

    def test_functions_close_over_definition_scope(self) -> None:
        expression = "1 as $x | def f: $x; 2 as $x | f"
        assert run(expression) == [1]

    def test_comments(self) -> None:
        assert run(". + 1 # increment\n", 1) == [2]


# ---------------------------------------------------------------------------
# Builtins
# ---------------------------------------------------------------------------


class TestBuiltins:
    def test_length(self) -> None:
        assert run("length", [1, 2]) == [2]
        assert run("length", "héllo") == [5]
        assert run("length", {"a": 1}) == [1]
        assert run("length", None) == [0]
        assert run("length", -3) == [3]

    def test_keys(self) -> None:
        assert run("keys", {"b": 1, "a": 2}) == [["a", "b"]]
        assert run("keys_unsorted", {"b": 1, "a": 2}) == [["b", "a"]]

    def test_has_and_in(self) -> None:
        assert run('has("a")', {"a": None}) == [True]
        assert run('"a" | in({"a": 1})') == [True]

    def test_map_select(self) -> None:
        assert run("map(select(. > 1))", [1, 2, 3]) == [[2, 3]]

    def test_entries(self) -> None:
        assert run("to_entries", {"a": 1}) == [[{"key": "a", "value": 1}]]
        assert run("from_entries", [{"key": "a", "value": 1}]) == [{"a": 1}]
        expression = "with_entries({key: (.key | ascii_upcase), value})"
        assert run(expression, {"a": 1}) == [{"A": 1}]

    def test_add_any_all(self) -> None:
        assert run("add", [1, 2, 3]) == [6]
        assert run("add", []) == [None]
        assert run("any", [False, True]) == [True]
        assert run("all", [True, False]) == [False]
        assert run("any(. > 2)", [1, 3]) == [True]

    def test_range(self) -> None:
        assert run("[range(3)]") == [[0, 1, 2]]
        assert run("[range(1; 4)]") == [[1, 2, 3]]

    def test_sorting_and_grouping(self) -> None:
        data = [{"t": "x", "v": 1}, {"t": "y", "v": 2}, {"t": "x", "v": 3}]
        assert run("group_by(.t) | map(map(.v))", data) == [[[1, 3], [2]]]
        assert run("sort_by(-.v) | map(.v)", data) == [[3, 2, 1]]
        assert run("unique_by(.t) | map(.v)", data) == [[1, 2]]
        assert run("min_by(.v).v, max_by(.v).v", data) == [1, 3]
        assert run("unique", [3, 1, 3]) == [[1, 3]]

    def test_first_last_limit(self) -> None:
        assert run("first, last", [1, 2, 3]) == [1, 3]
        assert run("first(range(10; 20))") == [10]
        assert run("[limit(2; .[])]", [1, 2, 3]) == [[1, 2]]
        assert run("nth(1)", [1, 2, 3]) == [2]

    def test_limit_over_infinite_generator(self) -> None:
        assert run("[limit(3; repeat(1))]", 1) == [[1, 1, 1]]

    def test_isempty(self) -> None:
        assert run("isempty(empty), isempty(.[])", [1]) == [True, False]

    def test_string_functions(self) -> None:
        assert run('split(".")', "a.b.c") == [["a", "b", "c"]]
        assert run('join("-")', ["a", 1, None]) == ["a-1-"]
        assert run('ltrimstr("http."), rtrimstr(".method")', "http.method") == ["method", "http"]
        assert run('startswith("ht"), endswith("x")', "http") == [True, False]
        assert run("ascii_downcase, ascii_upcase", "AbC") == ["abc", "ABC"]
        assert run("trim, ltrim, rtrim", "  a ") == ["a", "a ", "  a"]
        assert run('index("b"), rindex("b")', "abcb") == [1, 3]

    def test_conversions(self) -> None:
        assert run("tostring", [1]) == ["[1]"]
        assert run("tonumber", "42") == [42]
        assert run("tojson", {"a": [1, "x"]}) == ['{"a":[1,"x"]}']
        assert run("fromjson", '{"a":1}') == [{"a": 1}]
        assert run("[.[] | type]", [None, True, 1, "s", [], {}]) == [
            ["null", "boolean", "number", "string", "array", "object"]
        ]

    def test_regex(self) -> None:
        assert run('test("^h.*p$")', "http") == [True]
        assert run('test("HTTP"; "i")', "http") == [True]
        assert run('sub("b"; "X")', "abcb") == ["aXcb"]
        assert run('gsub("-"; "_")', "a-b-c") == ["a_b_c"]
        assert run('sub("(?<d>[0-9]+)"; "<\\(.d)>")', "foo123") == ["foo<123>"]
        assert run('capture("(?<a>[a-z]+)-(?<b>[0-9]+)")', "xy-12") == [{"a": "xy", "b": "12"}]
        assert run('[scan("[0-9]")]', "a1b2") == [["1", "2"]]

    def test_paths(self) -> None:
        assert run("[paths]", {"a": [1]}) == [[["a"], ["a", 0]]]
        assert run("[leaf_paths]", {"a": [1], "b": {}}) == [[["a", 0]]]
        assert run('getpath(["a", 0])', {"a": [7]}) == [7]

    def test_walk(self) -> None:
        assert run("walk(if type == \"number\" then . + 1 else . end)", {"a": [1, 2]}) == [
            {"a": [2, 3]}
        ]

    def test_math(self) -> None:
        assert run("floor, ceil, fabs", -1.5) == [-2, -1, 1.5]
        assert run("sqrt", 9) == [3]
        assert run("pow(2; 10)") == [1024]

    def test_flatten_and_transpose(self) -> None:
        assert run("flatten", [1, [2, [3]]]) == [[1, 2, 3]]
        assert run("flatten(1)", [1, [2, [3]]]) == [[1, 2, [3]]]
        assert run("transpose", [[1, 2], [3]]) == [[[1, 3], [2, None]]]

    def test_contains_and_inside(self) -> None:
        assert run('contains({a: [1]})', {"a": [1, 2], "b": 3}) == [True]
        assert run('contains("bar")', "foobar") == [True]
        assert run('inside([1, 2, 3])', [1]) == [True]

    def test_builtin_names_include_arity(self) -> None:
        names = builtin_names()
        assert "map/1" in names
        assert "length/0" in names
        assert "sub/3" in names


# ---------------------------------------------------------------------------
# Formats
# ---------------------------------------------------------------------------


class TestFormats:
    @pytest.mark.parametrize(
        "expression, value, expected",
        [
            ("@base64", "hi", "aGk="),
            ("@base64d", "aGk=", "hi"),
            ("@html", "<a href='x'>", "&lt;a href=&#39;x&#39;&gt;"),
            ("@uri", "a b/c", "a%20b%2Fc"),
            ("@csv", [1, "a\"b", None], '1,"a""b",'),
            ("@tsv", ["a\tb", 2], "a\\tb\t2"),
            ("@sh", "it's", "'it'\\''s'"),
            ("@json", {"a": 1}, '{"a":1}'),
            ("@text", [1], "[1]"),
        ],
    )
    def test_format(self, expression: str, value: Any, expected: str) -> None:
        assert run(expression, value) == [expected]

    def test_format_string_applies_to_interpolations(self) -> None:
        assert run('@json "value: \\(.)"', [1, "x"]) == ['value: [1,"x"]']


# ---------------------------------------------------------------------------
# Errors & Laziness
# ---------------------------------------------------------------------------


class TestErrors:
    def test_parse_error_is_raised_before_evaluation(self) -> None:
        with pytest.raises(EvalError) as exc_info:
            evaluate(".[", None)
        assert exc_info.value.kind is EvalErrorKind.PARSE_ERROR
        assert exc_info.value.expression == ".["

    def test_undefined_function_is_raised_before_evaluation(self) -> None:
        with pytest.raises(EvalError) as exc_info:
            evaluate(".groups[] | no_such_function(1)", {"groups": []})
        assert exc_info.value.kind is EvalErrorKind.UNDEFINED_FUNCTION
        assert "no_such_function" in exc_info.value.message
        assert exc_info.value.position == 12

    def test_wrong_arity_is_undefined(self) -> None:
        with pytest.raises(EvalError) as exc_info:
            evaluate("map", [])
        assert exc_info.value.kind is EvalErrorKind.UNDEFINED_FUNCTION

    def test_unbound_variable(self) -> None:
        with pytest.raises(EvalError) as exc_info:
            evaluate("$nope", None)
        assert exc_info.value.kind is EvalErrorKind.PARSE_ERROR

    def test_variables_are_bound(self) -> None:
        assert run("$x + 1", None, x=1) == [2]

    def test_assignment_is_unsupported(self) -> None:
        with pytest.raises(EvalError) as exc_info:
            evaluate(".a = 1", {})
        assert exc_info.value.kind is EvalErrorKind.PARSE_ERROR

    def test_user_error_payload(self) -> None:
        with pytest.raises(EvalError) as exc_info:
            run('error("custom")')
        assert exc_info.value.kind is EvalErrorKind.RUNTIME_FAILURE
        assert exc_info.value.payload == "custom"

    def test_error_message_names_query(self) -> None:
        with pytest.raises(EvalError) as exc_info:
            run(".a | .b", {"a": 1})
        assert exc_info.value.expression == ".a | .b"
        assert ".a | .b" in str(exc_info.value)

    def test_transpose_rejects_non_array_rows(self) -> None:
        with pytest.raises(EvalError) as exc_info:
            run(".rows | transpose", {"rows": [[1], 2]})
        assert exc_info.value.kind is EvalErrorKind.TYPE_MISMATCH
        assert run("try (.rows | transpose) catch \"bad\"", {"rows": [[1], 2]}) == ["bad"]

    @pytest.mark.parametrize("value", [1e20, -1, 0x110000])
    def test_ascii_rejects_invalid_codepoints(self, value: float) -> None:
        with pytest.raises(EvalError) as exc_info:
            run(".n | ascii", {"n": value})
        assert exc_info.value.kind is EvalErrorKind.RUNTIME_FAILURE
        assert exc_info.value.expression == ".n | ascii"

    def test_implode_rejects_non_numbers(self) -> None:
        with pytest.raises(EvalError) as exc_info:
            run("implode", ["a"])
        assert exc_info.value.kind is EvalErrorKind.TYPE_MISMATCH

    def test_unexpected_exceptions_become_runtime_failures(self) -> None:
        def outputs():
            yield 1
            raise ValueError("broken")

        stream = QueryStream(".x", outputs())
        assert next(stream) == 1
        with pytest.raises(EvalError) as exc_info:
            next(stream)
        assert exc_info.value.kind is EvalErrorKind.RUNTIME_FAILURE
        assert exc_info.value.expression == ".x"
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert list(stream) == []


class TestLaziness:
    def test_errors_surface_when_consumed(self) -> None:
        stream = evaluate('.[] | if . == 0 then error("boom") else . end', [1, 0, 2])
        assert next(stream) == 1
        with pytest.raises(EvalError):
            next(stream)
        assert list(stream) == []

    def test_take_stops_before_failing_element(self) -> None:
        query = compile_query(".[] | 10 / .")
        assert query.take(2, [1, 2, 0]) == [10, 5]

    def test_first(self) -> None:
        query = compile_query(".[]")
        assert query.first([3, 4]) == 3
        assert query.first([], default=None) is None
        with pytest.raises(EvalError):
            query.first([])

    def test_compile_is_cached(self) -> None:
        assert compile_query(".a") is compile_query(".a")

    def test_compiled_query_is_reusable(self) -> None:
        query = compile_query(".x")
        assert query.all({"x": 1}) == [1]
        assert query.all({"x": 2}) == [2]

    def test_input_is_not_mutated(self) -> None:
        data = {"a": [1, 2]}
        run("walk(if type == \"number\" then 0 else . end)", data)
        assert data == {"a": [1, 2]}


class TestValues:
    def test_freeze_and_thaw(self) -> None:
        frozen = freeze({"a": [1, {"b": 2}]})
        assert isinstance(frozen, FrozenMap)
        assert frozen["a"][1]["b"] == 2
        assert thaw(frozen) == {"a": [1, {"b": 2}]}

    def test_frozen_map_is_hashable(self) -> None:
        assert hash(freeze({"a": 1})) == hash(freeze({"a": 1}))

    def test_unsupported_type(self) -> None:
        with pytest.raises(TypeError):
            freeze({"a": object()})
