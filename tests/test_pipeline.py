"""End to end tests of process_script."""

import pytest
from microhsm import (
    BuildOptions, CompileError, ConstReassignmentError, GrammarError, JSSyntaxError,
    Seclevel, SeclevelError, process_script, substitute_identity,
)
from microhsm.billing import billable_length
from microhsm.bundle import BundleError
from microhsm.options import generate_unique_id, parse_seclevel

UID = "testbuild01"


def compile_script(source, **options):
    options.setdefault("unique_id", UID)
    return process_script(source, **options)


class TestProcessScript:
    def test_bare_function(self):
        result = compile_script("function (context, args) {\n\treturn #fs.scripts.trust()\n}")
        assert result.script == "function(){return #fs.scripts.trust()}"
        assert result.seclevel == Seclevel.FULLSEC

    def test_effective_level_in_output(self):
        result = compile_script("export default () => [#fs.a.b(), #hs.c.d()]")
        assert result.script == "function(){return[#hs.a.b(),#hs.c.d()]}"
        assert result.seclevel == Seclevel.HIGHSEC

    def test_stated_level_from_header(self):
        result = compile_script("// @seclevel lowsec\nexport default () => #fs.a.b()")
        assert result.script == "function(){return #ls.a.b()}"

    def test_stated_level_from_options(self):
        result = compile_script("export default () => #fs.a.b()", seclevel="midsec")
        assert result.seclevel == Seclevel.MIDSEC

    def test_pretty_output(self):
        result = compile_script("export default (context, args) => args.x", minify=False)
        assert result.script == "function(context, args) {\n  return args.x;\n}"

    def test_autocomplete(self):
        result = compile_script('// @autocomplete target: "name"\nexport default (c, a) => a.target')
        assert result.script == 'function(c,a){//target: "name"\nreturn a.target}'

    def test_legacy_autocomplete(self):
        result = compile_script("function (c, a) { // target: 1\n\treturn a.target\n}")
        assert result.script.startswith("function(c,a){//target: 1\n")

    def test_pretty_autocomplete(self):
        result = compile_script('// @autocomplete a: 1\nexport default (c, a) => a', minify=False)
        assert result.script.startswith("function(c, a) {\n  //a: 1\n")

    def test_script_name_placeholder(self):
        result = compile_script("export default () => _SCRIPT_NAME", script_user="alice")
        assert result.script == 'function(){return"$SCRIPT_NAME$"}'
        assert substitute_identity(result.script, "tool") == 'function(){return"tool"}'

    def test_known_script_name(self):
        result = compile_script("export default () => _FULL_SCRIPT_NAME", script_user="alice", script_name="tool")
        assert result.script == 'function(){return"alice.tool"}'

    def test_warnings_are_collected(self):
        result = compile_script("export default () => [010, $fs.a.b]")
        messages = [warning.message for warning in result.warnings]
        assert "legacy octal literal" in messages
        assert any("used as a value" in message for message in messages)

    def test_stats(self):
        source = "export default function (context, args) {\n    return 1 + 2\n}"
        result = compile_script(source)
        assert result.stats.output_length == billable_length("function(){return 1+2}")
        assert result.stats.source_length == len("exportdefaultfunction(context,args){return1+2}")
        assert result.stats.saved > 0

    def test_typescript_annotations(self):
        result = compile_script("export default (context: Context, args: {n: number}): number => args.n")
        assert result.script == "function(context,args){return args.n}"

    def test_modules(self):
        modules = {"./util": "export const double = (n) => n * 2"}
        result = compile_script(
            'import { double } from "./util"\nexport default (c, a) => double(a.n)',
            resolve_module=lambda specifier, importer: modules.get(specifier),
        )
        assert result.script == "function(c,a){let b=d=>d*2\nreturn b(a.n)}"

    def test_top_level_const_is_emitted_as_let(self):
        result = compile_script("const double = n => n * 2\nexport default (c, a) => double(a.n)")
        assert result.script == "function(c,a){let b=d=>d*2\nreturn b(a.n)}"

    def test_builds_are_independent(self):
        first = compile_script("let n = 1\nexport default () => n", unique_id="aaaaaaaaaaa")
        second = compile_script("let n = 1\nexport default () => n", unique_id="bbbbbbbbbbb")
        assert first.script == second.script


class TestProcessErrors:
    @pytest.mark.parametrize("source,error", [
        ("export default () => {", JSSyntaxError),
        ("export default () => #fs.a", GrammarError),
        ("export default () => { const a = 1; a = 2 }", ConstReassignmentError),
        ("// @seclevel megasec\nexport default () => 1", SeclevelError),
        ('import x from "./x"\nexport default () => x', BundleError),
    ])
    def test_errors(self, source, error):
        with pytest.raises(error):
            compile_script(source)

    def test_errors_share_a_base(self):
        with pytest.raises(CompileError):
            compile_script("export default () => $db.drop()")

    def test_syntax_error_has_position(self):
        with pytest.raises(JSSyntaxError) as info:
            compile_script("export default () => {\n  return )\n}")
        assert info.value.line == 2


class TestBuildOptions:
    def test_unique_id_is_generated(self):
        uid = generate_unique_id()
        assert len(uid) == 11
        assert BuildOptions().unique_id != BuildOptions().unique_id

    @pytest.mark.parametrize("options", [
        {"unique_id": "short"},
        {"unique_id": "aaaaaaaaaSC"},
        {"script_user": "Alice"},
        {"seclevel": 7},
        {"force_quine_cheats": "yes"},
    ])
    def test_invalid_options(self, options):
        with pytest.raises((ValueError, SeclevelError)):
            BuildOptions(**options)

    def test_seclevel_names(self):
        assert parse_seclevel(" HS ") == Seclevel.HIGHSEC
        assert BuildOptions(seclevel="ns").seclevel == Seclevel.NULLSEC
