"""Tests for code generation."""

import math

import pytest
from microhsm.ast_nodes import (
    Identifier, MemberExpression, NumericLiteral, StringLiteral, Property,
    ObjectExpression, ExpressionStatement, Program, FunctionExpression,
    BlockStatement, ReturnStatement,
)
from microhsm.codegen import format_number, format_string, generate, is_identifier_name
from microhsm.parser import parse


def compact(source):
    program, _ = parse(source)
    return generate(program, compact=True)


def pretty(source):
    program, _ = parse(source)
    return generate(program)


class TestFormatNumber:
    @pytest.mark.parametrize("value,expected", [
        (0, "0"),
        (100, "100"),
        (1000, "1e3"),
        (10 ** 12, "1e12"),
        (123456789012345, "0x7048860ddf79"),
        (0.5, ".5"),
        (1.5, "1.5"),
        (0.001, ".001"),
        (0.0001, "1e-4"),
        (1e21, "1e21"),
        (2.0, "2"),
    ])
    def test_shortest_form(self, value, expected):
        assert format_number(value) == expected

    def test_special_values(self):
        assert format_number(math.nan) == "NaN"
        assert format_number(math.inf) == "(1/0)"


class TestFormatString:
    def test_prefers_fewer_escapes(self):
        assert format_string('he said "hi"') == "'he said \"hi\"'"
        assert format_string("it's") == '"it\'s"'

    def test_control_characters(self):
        assert format_string("a\nb\tc") == '"a\\nb\\tc"'
        assert format_string("\x01") == '"\\x01"'
        assert format_string("\0") == '"\\0"'
        assert format_string("\x001") == '"\\x001"'

    def test_line_separators(self):
        assert format_string("\u2028") == '"\\u2028"'

    @pytest.mark.parametrize("value,expected", [
        ("SC$x", '"S\\C$x"'),
        ("DB$", '"D\\B$"'),
        ("__D_S", '"_\\_D_S"'),
        ("#fs.a.b", '"\\#fs.a.b"'),
        ("http://x", '"http:/\\/x"'),
    ])
    def test_host_sequences_are_escaped(self, value, expected):
        assert format_string(value) == expected

    def test_lone_hash_is_left_alone(self):
        assert format_string("# ") == '"# "'


class TestCompactLayout:
    def test_statements_separated_by_newlines(self):
        assert compact("a = 1; b = 2") == "a=1\nb=2"

    @pytest.mark.parametrize("second", ["(b || c)()", "[1].map(f)", "+b", "`t`"])
    def test_semicolon_before_hazard(self, second):
        assert compact("a = 1;" + second).startswith("a=1;")

    def test_keywords_keep_spaces(self):
        assert compact("let x = typeof y") == "let x=typeof y"
        assert compact("function f() { return x }") == "function f(){return x}"

    def test_plus_plus_is_not_merged(self):
        assert compact("a + +b") == "a+ +b"
        assert compact("a - -b") == "a- -b"

    def test_integer_member_access(self):
        assert compact("(1).toString()") == "1..toString()"

    def test_arrow(self):
        assert compact("f(x => x * 2)") == "f(x=>x*2)"
        assert compact("f(() => ({a: 1}))") == "f(()=>({a:1}))"

    def test_if_else(self):
        assert compact("if (a) b(); else c()") == "if(a)b()\nelse c()"

    def test_dangling_else(self):
        assert compact("if (a) { if (b) c() } else d()") == "if(a){if(b)c()}else d()"

    def test_statement_starting_with_function_is_wrapped(self):
        assert compact("(function () {})()") == "(function(){}())"

    def test_object_statement_is_wrapped(self):
        assert compact("({a} = b)") == "({a}=b)"

    def test_new_with_call_callee(self):
        assert compact("new (f())()") == "new(f())()"

    def test_parentheses_follow_precedence(self):
        assert compact("(a + b) * c") == "(a+b)*c"
        assert compact("a + (b * c)") == "a+b*c"
        assert compact("(a, b)") == "a,b"
        assert compact("f((a, b))") == "f((a,b))"

    def test_mixed_nullish_keeps_parentheses(self):
        assert compact("(a || b) ?? c") == "(a||b)??c"

    def test_in_inside_for_init(self):
        assert compact("for (let x = (a in b); x;);") == "for(let x=(a in b);x;);"

    def test_class(self):
        assert compact("class A extends B { static x = 1; get y() { return 2 } }") == \
            "class A extends B{static x=1;get y(){return 2}}"

    def test_switch(self):
        assert compact("switch (a) { case 1: b(); break; default: c() }") == \
            "switch(a){case 1:b()\nbreak\ndefault:c()}"

    def test_template_keeps_raw_text(self):
        assert compact("f(`a\\n${b}`)") == "f(`a\\n${b}`)"


class TestHostSafety:
    def test_prototype_is_always_computed(self):
        assert compact("a.prototype.b = 1") == 'a["prototype"].b=1'
        assert compact("a.__proto__") == 'a["__proto__"]'

    def test_sigil_in_template_is_escaped(self):
        assert compact("f(`#fs.x`)") == "f(`\\#fs.x`)"

    def test_regex_is_left_alone(self):
        assert compact("f(/a/g)") == "f(/a/g)"


class TestPrettyLayout:
    def test_function(self):
        assert pretty("function f(a) { return a }") == "function f(a) {\n  return a;\n}"

    def test_declarations(self):
        assert pretty("let a = 1, b") == "let a = 1, b;"

    def test_object_shorthand(self):
        assert pretty("x = {a, b: c, d() {}}") == "x = {a, b: c, d() {}};"

    def test_shorthand_needs_matching_names(self):
        prop = Property(Identifier("a"), Identifier("b"), shorthand=True)
        node = ExpressionStatement(ObjectExpression([prop]))
        assert generate(Program([node])) == "({a: b});"

    def test_negative_literal(self):
        node = MemberExpression(NumericLiteral(-1), Identifier("x"), False)
        assert generate(node) == "(-1).x"

    def test_expression_node(self):
        function = FunctionExpression(None, [Identifier("c")], BlockStatement([ReturnStatement(StringLiteral("x"))]))
        assert generate(function, compact=True) == 'function(c){return"x"}'


def test_is_identifier_name():
    assert is_identifier_name("abc_$1")
    assert not is_identifier_name("1abc")
    assert not is_identifier_name("a-b")
