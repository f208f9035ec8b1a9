"""Tests for semantic lowering."""

import pytest
from microhsm.ast_nodes import NumericLiteral, VariableDeclaration
from microhsm.codegen import generate
from microhsm.errors import ConstReassignmentError, GrammarError
from microhsm.options import Seclevel
from microhsm.preprocess import preprocess
from microhsm.transform import entry_name, transform
from microhsm.visitor import walk

UID = "testbuild01"
ENTRY = "function " + entry_name(UID)
GLOBAL = f"${UID}$GLOBAL$"
FMCL = f"${UID}$FMCL$"
DEBUG = f"${UID}$DEBUG$"


def lower(source, **kwargs):
    pre = preprocess(source, UID)
    return transform(pre.program, source, UID, **kwargs)


def lowered(source, **kwargs):
    return generate(lower(source, **kwargs).program, compact=True)


class TestConst:
    def test_const_becomes_let(self):
        result = lower("export default () => { const a = 1; return a }")
        assert generate(result.program, compact=True) == ENTRY + "(){let a=1\nreturn a}"
        declaration = result.program.body[0].body.body[0]
        assert isinstance(declaration, VariableDeclaration)
        assert declaration.from_const

    @pytest.mark.parametrize("statement", ["a = 2", "a += 1", "a++", "[a] = [2]"])
    def test_reassignment_is_an_error(self, statement):
        with pytest.raises(ConstReassignmentError) as info:
            lower(f"export default () => {{ const a = 1;\n {statement} }}")
        assert info.value.binding == "a"
        assert info.value.line == 2

    @pytest.mark.parametrize("source", [
        "const double = n => n * 2\nexport default (c, a) => double(a.n)",
        "let n = 0\nconst get = () => n\nexport default () => { n++; return get() }",
        "const table = {a: 1}\nsetup(table)\nexport default () => table.a",
    ])
    def test_global_block_const_becomes_let(self, source):
        program = lower(source).program
        kinds = [node.kind for node in walk(program) if isinstance(node, VariableDeclaration)]
        assert "const" not in kinds
        assert "const" not in generate(program, compact=True)

    def test_shadowing_is_not_reassignment(self):
        assert "a=2" in lowered("const a = 1\nexport default () => { let a; a = 2; return a }")


class TestIdentity:
    def test_known_identity(self):
        code = lowered("export default () => [_SCRIPT_USER, _SCRIPT_NAME, _FULL_SCRIPT_NAME]",
                       script_user="alice", script_name="tool")
        assert code == ENTRY + '(){return["alice","tool","alice.tool"]}'

    def test_unknown_user_reads_context(self):
        code = lowered("export default (context) => _SCRIPT_USER")
        assert code == (ENTRY + '(context){let _SCRIPT_USER_testbuild01_=context.this_script.split(".")[0]\n'
                        "return _SCRIPT_USER_testbuild01_}")

    def test_context_parameter_is_added(self):
        code = lowered("export default () => _FULL_SCRIPT_NAME")
        assert code == (ENTRY + "(_CONTEXT_testbuild01_){let _FULL_SCRIPT_NAME_testbuild01_="
                        "_CONTEXT_testbuild01_.this_script\nreturn _FULL_SCRIPT_NAME_testbuild01_}")

    def test_unknown_name_leaves_placeholder(self):
        code = lowered("export default () => _FULL_SCRIPT_NAME", script_user="alice")
        assert f'"alice.${UID}$SCRIPT_NAME$"' in code

    def test_build_constants(self):
        source = "export default () => [_START, _TIMEOUT, _SOURCE, _BUILD_DATE]"
        result = lower(source)
        code = generate(result.program, compact=True)
        assert code.startswith(ENTRY + "(){return[_ST,_TO,")
        assert '"export default () => [_START, _TIMEOUT, _SOURCE, _BUILD_DATE]"' in code
        assert any(isinstance(node, NumericLiteral) and node.value > 0 for node in walk(result.program))

    def test_local_bindings_are_not_replaced(self):
        code = lowered("export default () => { let _START = 1; return _START }")
        assert code == ENTRY + "(){let _START=1\nreturn _START}"


class TestFunctionPrototype:
    def test_single_use_is_inline(self):
        assert lowered("export default () => Function.prototype") == ENTRY + '(){return Map["__proto__"]}'

    def test_repeated_use_is_cached(self):
        code = lowered("export default () => [Function.prototype, Function.prototype]")
        assert code == (ENTRY + '(){let _FUNCTION_PROTOTYPE_testbuild01_=Map["__proto__"]\n'
                        "return[_FUNCTION_PROTOTYPE_testbuild01_,_FUNCTION_PROTOTYPE_testbuild01_]}")

    def test_shadowed_short_name_is_skipped(self):
        code = lowered("let Map = f()\nexport default () => [Map, Function.prototype]")
        assert 'Set["__proto__"]' in code

    @pytest.mark.parametrize("source", [
        "export default () => Function('return 1')",
        "export default () => Function.call",
        "export default () => new Function()",
    ])
    def test_other_uses_are_rejected(self, source):
        with pytest.raises(GrammarError, match="Function"):
            lower(source)


class TestSubscripts:
    def test_direct_call(self):
        result = lower("export default () => $hs.a.b({x: 1})")
        assert f"${UID}$SUBSCRIPT$hs$a$b$({{x:1}})" in generate(result.program, compact=True)
        assert result.seclevel == Seclevel.HIGHSEC

    def test_lowest_tier_wins(self):
        result = lower("export default () => [#fs.a.b(), #ls.c.d(), $ms.e.f(), $s.g.h()]")
        assert result.seclevel == Seclevel.LOWSEC

    def test_generic_namespace_demands_nothing(self):
        assert lower("export default () => $s.a.b()").seclevel == Seclevel.FULLSEC

    def test_reference_gets_wrapper(self):
        result = lower("export default () => [$fs.a.b, $fs.a.b]")
        code = generate(result.program, compact=True)
        assert code.count(f"let _SUBSCRIPT_a_b_testbuild01_=a=>${UID}$SUBSCRIPT$fs$a$b$(a)") == 1
        assert "return[_SUBSCRIPT_a_b_testbuild01_,_SUBSCRIPT_a_b_testbuild01_]" in code
        assert len(result.warnings) == 1
        assert "used as a value" in result.warnings[0].message

    def test_quine(self):
        source = "export default () => $fs.scripts.quine()"
        assert lowered(source) == ENTRY + '(){return"export default () => $fs.scripts.quine()"}'

    @pytest.mark.parametrize("source", [
        "export default () => $fs.a",
        "export default () => $fs",
        "export default () => $fs.a['b']()",
        "export default () => $fs.a.B()",
        "export default () => $fs.a.b`x`",
    ])
    def test_invalid_use(self, source):
        with pytest.raises(GrammarError, match=r"\$fs"):
            lower(source)

    def test_stated_level_is_a_ceiling(self):
        result = lower("export default () => $ms.a.b()", seclevel=Seclevel.FULLSEC)
        assert result.seclevel == Seclevel.MIDSEC
        assert "lowered to midsec" in result.warnings[0].message

    def test_stated_level_below_detected(self):
        result = lower("export default () => $fs.a.b()", seclevel=Seclevel.LOWSEC)
        assert result.seclevel == Seclevel.LOWSEC
        assert result.warnings == []

    def test_seclevel_constant(self):
        code = lowered("export default () => [$ls.a.b(), _SECLEVEL]")
        assert code.endswith("(),1]}")


class TestDatabase:
    def test_direct_call(self):
        assert f"return ${UID}$DB$f$({{}})" in lowered("export default () => $db.f({})")

    def test_reference_gets_wrapper(self):
        code = lowered("export default () => [$db.i]")
        assert f"let _DB_i_testbuild01_=(...a)=>${UID}$DB$i$(...a)" in code

    @pytest.mark.parametrize("source", [
        "export default () => $db.drop()",
        "export default () => $db['f']()",
        "export default () => $db",
    ])
    def test_invalid_use(self, source):
        with pytest.raises(GrammarError, match=r"\$db"):
            lower(source)


class TestIntrinsics:
    def test_debug_call(self):
        assert lowered("export default () => { $D(1) }") == ENTRY + "(){" + DEBUG + "(1)}"

    def test_debug_reference(self):
        code = lowered("export default () => [1].map($D)")
        assert f"let _DEBUG_testbuild01_=a=>{DEBUG}(a)" in code
        assert "map(_DEBUG_testbuild01_)" in code

    def test_debug_member_is_rejected(self):
        with pytest.raises(GrammarError):
            lower("export default () => $D.call(null, 1)")

    def test_global_and_fmcl(self):
        assert lowered("export default () => { $G.x = $FMCL }") == ENTRY + "(){" + GLOBAL + ".x=" + FMCL + "}"

    def test_global_is_cached_after_three_uses(self):
        code = lowered("export default () => $G.a + $G.b + $G.c + $G.d")
        assert f"let _G_testbuild01_={GLOBAL}\n" in code
        assert "return _G_testbuild01_.a+_G_testbuild01_.b+_G_testbuild01_.c+_G_testbuild01_.d" in code

    def test_object_shims(self):
        code = lowered("export default (c, a) => [Object.hasOwn(a, 'x'), Object.getPrototypeOf(a)]")
        assert "let _HAS_OWN_testbuild01_=Map.call.bind(Map.hasOwnProperty)" in code
        assert 'let _GET_PROTOTYPE_OF_testbuild01_=Map.call.bind(Map.__lookupGetter__("__proto__"))' in code
        assert '_HAS_OWN_testbuild01_(a,"x")' in code

    def test_other_object_methods_are_left_alone(self):
        assert "Object.keys(a)" in lowered("export default (c, a) => Object.keys(a)")


class TestConsole:
    def test_statement(self):
        assert lowered("export default () => { console.log(1) }") == ENTRY + "(){" + DEBUG + "(1)}"

    def test_several_arguments(self):
        assert DEBUG + "([1,2])" in lowered("export default () => { console.warn(1, 2) }")

    def test_value_is_discarded(self):
        assert lowered("export default () => console.log(1)") == ENTRY + "(){return void " + DEBUG + "(1)}"

    def test_reference_is_rejected(self):
        with pytest.raises(GrammarError, match="console"):
            lower("export default () => { let log = console.log }")


class TestEntryPoint:
    def test_named_default_function(self):
        code = lowered("export default function main(c) { return helper() }\nfunction helper() { return 1 }")
        assert code == ENTRY + "(){let helper=()=>{return 1}\nreturn helper()}"

    def test_default_by_export_list(self):
        code = lowered("function main(c, a) { return a }\nexport { main as default }")
        assert code == ENTRY + "(c,a){return a}"

    def test_default_expression_is_called(self):
        code = lowered("export default make()")
        assert code == ENTRY + "(context,args){return make()(context,args)}"

    def test_class_default_is_rejected(self):
        with pytest.raises(GrammarError, match="class"):
            lower("export default class {}")

    def test_named_exports_without_default(self):
        code = lowered("export const a = 1\nexport let b = 2\nexport function f() { return a }")
        assert code.startswith(ENTRY + "(){")
        assert f"if(!{FMCL}){{" in code
        assert "get b(){return _G_testbuild01_.b}" in code
        assert "a:_G_testbuild01_.a" in code
        assert code.endswith(",f}}")

    def test_exports_constant(self):
        code = lowered("export const a = 1\nexport function f() { return _EXPORTS }")
        assert 'return["a","f"]' in code


class TestGlobalBlock:
    def test_unused_pure_globals_are_dropped(self):
        assert lowered("let unused = 5\nexport default () => 1") == ENTRY + "(){return 1}"

    def test_side_effects_run_once(self):
        assert lowered("setup()\nexport default () => 1") == ENTRY + "(){if(!" + FMCL + "){setup()}return 1}"

    def test_state_is_promoted(self):
        code = lowered("let cache = {}\nexport default () => cache")
        assert code == ENTRY + "(){if(!" + FMCL + "){" + GLOBAL + ".cache={}}return " + GLOBAL + ".cache}"

    def test_shadowed_globals_are_renamed(self):
        code = lowered("let a = f()\nlet b = () => a\nexport default () => { let a = 2; return [a, b()] }")
        assert ".a_1=f()" in code
        assert "let a=2" in code


class TestThis:
    def test_object_method_uses_binding(self):
        code = lowered("export default () => { let o = {n: 1, read() { return this.n }}; return o.read() }")
        assert "read(){return o.n}" in code

    def test_anonymous_literal_gets_binding(self):
        code = lowered("export default () => [function () { return this }][0]()")
        assert "let _THIS_1_testbuild01_\n" in code
        assert "(_THIS_1_testbuild01_=[function(){return _THIS_1_testbuild01_}])[0]()" in code

    def test_free_function_expression_is_rejected(self):
        with pytest.raises(GrammarError, match="this"):
            lower("export default () => { let f = function () { return this }; return f }")

    @pytest.mark.parametrize("source", [
        "export default () => this",
        "export default function (c) { return this }",
    ])
    def test_top_level_this_is_undefined(self, source):
        assert lowered(source).endswith("{return undefined}")

    def test_nested_function_declarations_become_arrows(self):
        code = lowered("export default () => { return f(); function f() { return 1 } }")
        assert code == ENTRY + "(){let f=()=>{return 1}\nreturn f()}"

    def test_class_fields_move_into_constructor(self):
        code = lowered(
            "export default () => { class A { y = 2; x = this.y * 2; read() { return this.x } } return A }"
        )
        assert "class A extends Object{" in code
        assert ("constructor(){let _THIS_testbuild01_=super()\n_THIS_testbuild01_.y=2\n"
                "_THIS_testbuild01_.x=_THIS_testbuild01_.y*2}") in code
        assert "read(){let _THIS_testbuild01_=super.valueOf()\nreturn _THIS_testbuild01_.x}" in code

    def test_static_this_is_the_class(self):
        code = lowered("export default () => { class A { static n = 1; static m() { return this.n } } return A }")
        assert "static m(){return A.n}" in code

    def test_this_in_default_parameter(self):
        code = lowered("export default () => { class A { m(a = this.x) { return a } } return A }")
        assert "m(..._ARGS_testbuild01_){let _THIS_testbuild01_=super.valueOf()\n" in code
        assert "=_ARGS_testbuild01_\nreturn a}" in code


class TestBigInt:
    def test_bigint_literals(self):
        code = lowered("export default () => [10n, 12345678901234567890n]")
        assert code == ENTRY + '(){return[BigInt(10),BigInt("12345678901234567890")]}'


def test_unused_trailing_parameters_are_dropped():
    assert lowered("export default (context, args) => context.caller") == ENTRY + "(context){return context.caller}"
