"""Tests for the size-minimizing rewrite."""

import re

import pytest
from microhsm.codegen import generate
from microhsm.minify import (
    _NO_JSON, ConstantPool, alias_globals, function_body_start, insert_after_body_start,
    json_value, minify, pool_json,
)
from microhsm.parser import Parser
from microhsm.preprocess import preprocess
from microhsm.transform import entry_name, transform

UID = "testbuild01"
ENTRY = "function " + entry_name(UID)
QUINE = f"${UID}$SUBSCRIPT$fs$scripts$quine$"


def lowered(source):
    return transform(preprocess(source, UID).program, source, UID).program


def expression(source):
    return Parser("x = " + source).parse().body[0].expression.right


class TestFunctionBody:
    def test_default_parameters_are_skipped(self):
        assert function_body_start("function f(a, b = {}) { }") == 22

    def test_arrow(self):
        assert function_body_start("(a) => { return a }") == 7

    def test_insert(self):
        assert insert_after_body_start("function f(){return 1}", "//c\n") == "function f(){//c\nreturn 1}"

    @pytest.mark.parametrize("code", ["1 + 2", "let x", "{}"])
    def test_not_a_function(self, code):
        with pytest.raises(ValueError):
            function_body_start(code)


class TestJsonValue:
    @pytest.mark.parametrize("source,expected", [
        ('"text"', "text"),
        ("-5", -5),
        ("null", None),
        ("`plain`", "plain"),
        ('[1, "x", null, false]', [1, "x", None, False]),
        ('{a: 1, "b-c": [true], 2: 3}', {"a": 1, "b-c": [True], "2": 3}),
    ])
    def test_json_literals(self, source, expected):
        assert json_value(expression(source)) == expected

    @pytest.mark.parametrize("source", [
        "[]", "{}", "[1, , 2]", "{a}", "{__proto__: 1}", "{[k]: 1}", "{m() {}}",
        "[undefined]", "`a${b}`", "1 / 0", "Infinity",
    ])
    def test_not_json(self, source):
        assert json_value(expression(source)) is _NO_JSON


class TestPool:
    def test_pool_json_escapes_host_text(self):
        assert pool_json("a#b SC$ DB$") == '"a\\u0023b SC\\u0024 DB\\u0024"'

    def test_pool_json_is_compact_ascii(self):
        assert pool_json({"k": ["\u00e9", 1]}) == '{"k":["\\u00e9",1]}'

    def test_primitives_share_slots(self):
        pool = ConstantPool(UID)
        first = pool.add("x")
        assert pool.add("x") == first
        assert pool.add(1).name != pool.add(True).name
        assert first.name == "_JSON_VALUE_0_testbuild01_"
        assert len(pool) == 3

    def test_objects_never_share(self):
        pool = ConstantPool(UID)
        assert pool.add([1]).name != pool.add([1]).name
        assert pool.values == [[1], [1]]


class TestAliasGlobals:
    def test_frequent_global_is_aliased(self):
        program = Parser(f"function _SCRIPT_{UID}_() {{ return [Math.a, Math.b, Math.c, Math.d] }}").parse()
        assert alias_globals(program, UID) == ["Math"]
        code = generate(program, compact=True)
        assert code.startswith(ENTRY + f"(){{let _GLOBAL_Math_{UID}_=Math\n")
        assert f"_GLOBAL_Math_{UID}_.d]" in code

    def test_rare_global_is_not(self):
        program = Parser(f"function _SCRIPT_{UID}_() {{ return [Math.a, Math.b, Math.c] }}").parse()
        assert alias_globals(program, UID) == []

    def test_assigned_global_is_not(self):
        program = Parser(f"function _SCRIPT_{UID}_() {{ total = total + total + total + total }}").parse()
        assert alias_globals(program, UID) == []


class TestMinify:
    def test_small_script_stays_inline(self):
        assert minify(lowered("export default () => 1"), UID, 4) == ENTRY + "(){return 1}"

    def test_forced_inline(self):
        code = minify(lowered('export default () => "a long string value"'), UID, 4, force_quine_cheats=False)
        assert code == ENTRY + '(){return"a long string value"}'

    def test_forced_pool_with_one_string(self):
        code = minify(lowered('export default () => "a long string value"'), UID, 4, force_quine_cheats=True)
        assert code == (ENTRY + "(){\n//\ta long string value\t\nlet a=" + QUINE
                        + "().split`\\t`[1]\nreturn a}")

    def test_forced_pool_with_json(self):
        code = minify(lowered("export default () => ({a: 1})"), UID, 4, force_quine_cheats=True)
        assert code == (ENTRY + '(){\n//\t{"a":1}\t\nlet a=JSON.parse(' + QUINE
                        + "().split`\\t`[1])\nreturn a}")

    def test_pool_wins_on_repeated_strings(self):
        text = "a fairly long debug string"
        code = minify(lowered(f'export default () => [$D("{text}"), $D("{text}"), $D("{text}")]'), UID, 4)
        assert f"//\t{text}\t\n" in code
        assert code.count(text) == 1

    @pytest.mark.parametrize("key", ["__proto__", "'__proto__'"])
    def test_prototype_key_stays_literal(self, key):
        source = f"export default () => ({{{key}: {{greet: 'hello there'}}, label: 'a long label'}})"
        code = minify(lowered(source), UID, 4, force_quine_cheats=True)
        assert re.search(r"[{,]\"?__proto__\"?:", code)
        assert "a long label" in code.split("\n")[1]

    def test_autocomplete_inline(self):
        code = minify(lowered("export default () => 1"), UID, 4, autocomplete='target: "name"')
        assert code == ENTRY + '(){//target: "name"\nreturn 1}'

    def test_autocomplete_with_pool(self):
        code = minify(lowered('export default () => "a long string value"'), UID, 4,
                      force_quine_cheats=True, autocomplete="x: 1")
        assert code.startswith(ENTRY + "(){//x: 1\n\n//\ta long string value\t\n")

    def test_mangle_names(self):
        source = "export default (c, a) => { function helper() { return arguments.length } return helper(a) }"
        assert "helper" in minify(lowered(source), UID, 4)
        assert "helper" not in minify(lowered(source), UID, 4, mangle_names=True)

    def test_prototype_stays_computed(self):
        code = minify(lowered("export default (c, a) => a.prototype"), UID, 4)
        assert code == ENTRY + '(c,a){return a["prototype"]}'
