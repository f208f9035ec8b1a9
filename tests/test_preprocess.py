"""Tests for sigil preprocessing."""

import pytest
from microhsm.ast_nodes import (
    CallExpression, ExportDefaultDeclaration, Identifier, ImportDeclaration,
    MemberExpression, PrivateName, StringLiteral,
)
from microhsm.errors import GrammarError, SeclevelError
from microhsm.markers import Marker, MarkerKind
from microhsm.options import Seclevel
from microhsm.preprocess import (
    PROXY_POLYFILL, RECORD_TUPLE_POLYFILL, mark_private_names, preprocess,
    read_header, wrap_bare_function,
)
from microhsm.visitor import walk

UID = "testbuild01"


def marker(kind, *args):
    return Marker(kind, args).token(UID)


def entry_body(result):
    """Statements of the default exported function."""
    export = result.program.body[-1]
    assert isinstance(export, ExportDefaultDeclaration)
    return export.declaration.body.body


def returned(source):
    return entry_body(preprocess(source, UID))[0].argument


class TestHeader:
    def test_autocomplete_and_seclevel(self):
        code = '// @autocomplete target: "name"\n// @seclevel MIDSEC\nexport default () => 1'
        assert read_header(code) == ('target: "name"', Seclevel.MIDSEC)

    @pytest.mark.parametrize("name,expected", [
        ("fs", Seclevel.FULLSEC),
        ("high", Seclevel.HIGHSEC),
        ("2s", Seclevel.MIDSEC),
        ("L", Seclevel.LOWSEC),
        ("0", Seclevel.NULLSEC),
    ])
    def test_seclevel_spellings(self, name, expected):
        assert read_header(f"// @seclevel {name}\n") == (None, expected)

    def test_unknown_seclevel(self):
        with pytest.raises(SeclevelError):
            read_header("// @seclevel supersec\n")

    def test_header_stops_at_code(self):
        assert read_header("let a\n// @seclevel ns\n") == (None, None)

    def test_legacy_autocomplete(self):
        code = "function (context, args) { // target: 1\n\treturn 1\n}"
        assert read_header(code) == ("target: 1", None)

    def test_result_carries_header(self):
        result = preprocess("// @seclevel lowsec\nexport default () => 1", UID)
        assert result.seclevel == Seclevel.LOWSEC
        assert result.autocomplete is None


class TestLexicalPass:
    def test_reserved_names_become_markers(self):
        code = mark_private_names("#fs.a.b(); #D(1); #G; #db.f(); #FMCL; #4s.a.b()", UID)
        for name in ("fs", "D", "G", "db", "FMCL", "4s"):
            assert marker(MarkerKind.MAYBE_PRIVATE, name) in code
        assert "#" not in code

    def test_other_private_names_are_untouched(self):
        assert mark_private_names("class A { #count = 1 }", UID) == "class A { #count = 1 }"

    @pytest.mark.parametrize("source", ["let SC$x = 1", "let x = a.DB$y"])
    def test_reserved_identifier_sequences(self, source):
        with pytest.raises(GrammarError, match="reserved sequence"):
            mark_private_names(source, UID)

    def test_wrap_bare_function(self):
        assert wrap_bare_function("// note\nfunction (c, a) {}") == "// note\nexport default function (c, a) {}"
        assert wrap_bare_function("export default function (c, a) {}") == "export default function (c, a) {}"
        assert wrap_bare_function("function main(c, a) {}") == "function main(c, a) {}"


class TestStructuralPass:
    def test_subscript_call(self):
        call = returned("export default () => { return #fs.scripts.trust({a: 1}) }")
        assert isinstance(call, CallExpression)
        assert call.callee == Identifier(marker(MarkerKind.SUBSCRIPT, "fs", "scripts", "trust"))
        assert len(call.arguments) == 1

    def test_bare_function_source(self):
        result = preprocess("function (context, args) {\n\treturn #ls.a.b()\n}", UID)
        call = entry_body(result)[0].argument
        assert call.callee.name == marker(MarkerKind.SUBSCRIPT, "ls", "a", "b")
        assert marker(MarkerKind.SUBSCRIPT, "ls", "a", "b") + "()" in result.code

    def test_quine_becomes_source(self):
        source = "export default () => { return #fs.scripts.quine() }"
        assert returned(source) == StringLiteral(source)

    def test_quine_with_arguments_is_a_subscript(self):
        call = returned("export default () => { return #fs.scripts.quine(1) }")
        assert call.callee.name == marker(MarkerKind.SUBSCRIPT, "fs", "scripts", "quine")

    @pytest.mark.parametrize("source", [
        "export default () => { return #fs.a.b }",
        "export default () => { return #fs.a }",
        "export default () => { return #fs }",
        "export default () => { return #fs.a['b']() }",
        "export default () => { return #fs.Upper.b() }",
    ])
    def test_invalid_subscripts(self, source):
        with pytest.raises(GrammarError, match="#fs"):
            preprocess(source, UID)

    def test_db_call(self):
        call = returned("export default () => { return #db.f({}) }")
        assert call.callee.name == marker(MarkerKind.DB, "f")

    @pytest.mark.parametrize("source", [
        "export default () => { return #db.drop() }",
        "export default () => { return #db.f }",
        "export default () => { return #db }",
    ])
    def test_invalid_db(self, source):
        with pytest.raises(GrammarError, match="#db"):
            preprocess(source, UID)

    @pytest.mark.parametrize("name,kind", [
        ("D", MarkerKind.DEBUG),
        ("FMCL", MarkerKind.FMCL),
        ("G", MarkerKind.GLOBAL),
    ])
    def test_simple_markers(self, name, kind):
        node = returned(f"export default () => {{ return #{name} }}")
        assert node == Identifier(marker(kind))

    def test_global_member(self):
        node = returned("export default () => { return #G.count }")
        assert isinstance(node, MemberExpression)
        assert node.object.name == marker(MarkerKind.GLOBAL)

    def test_class_private_members_survive(self):
        result = preprocess("export default () => { class A { #s = 1; #fs() { return this.#s } } }", UID)
        names = [node.name for node in walk(result.program) if isinstance(node, PrivateName)]
        assert sorted(names) == ["fs", "s", "s"]
        assert "this.#s" in result.code

    def test_private_in_check(self):
        result = preprocess("export default () => { class A { #ls; m(o) { return #ls in o } } }", UID)
        assert "#ls in o" in result.code

    @pytest.mark.parametrize("source", [
        "class A { #G = 1 }",
        "class A { #D() {} }",
        "class A { #FMCL; m() { return this.#FMCL } }",
        "class A { m(o) { return #db in o } }",
        "class A { #s = {}; m() { return this.#s.x } }",
    ])
    def test_private_names_that_read_as_sigils(self, source):
        with pytest.raises(GrammarError):
            preprocess(f"export default () => {{ {source} }}", UID)

    def test_object_key_is_rejected(self):
        with pytest.raises(GrammarError, match="object key"):
            preprocess("export default () => ({#G: 1})", UID)

    def test_lone_function_declaration(self):
        with pytest.raises(GrammarError, match="export default"):
            preprocess("function main(context, args) { return 1 }", UID)


class TestPolyfills:
    def test_proxy(self):
        result = preprocess("export default () => new Proxy({}, {})", UID)
        first = result.program.body[0]
        assert isinstance(first, ImportDeclaration)
        assert first.source.value == PROXY_POLYFILL

    def test_record_and_tuple(self):
        result = preprocess("export default () => [Record({}), Tuple()]", UID)
        first = result.program.body[0]
        assert first.source.value == RECORD_TUPLE_POLYFILL
        assert [specifier.local.name for specifier in first.specifiers] == ["Record", "Tuple"]

    def test_declared_names_need_nothing(self):
        result = preprocess("let Proxy = 1\nexport default () => Proxy", UID)
        assert not any(isinstance(stmt, ImportDeclaration) for stmt in result.program.body)


class TestWarnings:
    def test_parser_diagnostics_are_warnings(self):
        result = preprocess("export default () => {\n  debugger\n  return 010\n}", UID)
        assert [(warning.line, warning.message) for warning in result.warnings][-1] == (3, "legacy octal literal")
        assert result.warnings[0].line == 2
