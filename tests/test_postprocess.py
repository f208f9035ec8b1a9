"""Tests for sigil postprocessing."""

import pytest
from microhsm.codegen import generate
from microhsm.errors import InternalConsistencyError
from microhsm.markers import Marker, MarkerKind
from microhsm.options import Seclevel
from microhsm.parser import Parser
from microhsm.postprocess import (
    SCRIPT_NAME_PLACEHOLDER, check_consistency, expand_markers, postprocess,
    strip_entry_name, substitute_identity,
)
from microhsm.preprocess import preprocess
from microhsm.transform import entry_name

UID = "testbuild01"


def marker(kind, *args):
    return Marker(kind, args).token(UID)


class TestStripEntryName:
    def test_named_function(self):
        assert strip_entry_name("function _SCRIPT_testbuild01_(c,a){}") == "function(c,a){}"

    def test_async_function(self):
        assert strip_entry_name("async function _SCRIPT_testbuild01_(){}") == "async function(){}"

    def test_only_the_first_function(self):
        assert strip_entry_name("function f(){function g(){}}") == "function(){function g(){}}"


class TestExpandMarkers:
    def test_subscript_uses_effective_level(self):
        code = marker(MarkerKind.SUBSCRIPT, "fs", "scripts", "trust") + "()"
        assert expand_markers(code, UID, Seclevel.HIGHSEC) == "#hs.scripts.trust()"
        assert expand_markers(code, UID, Seclevel.NULLSEC) == "#ns.scripts.trust()"

    @pytest.mark.parametrize("kind,args,expected", [
        (MarkerKind.DEBUG, (), "#D"),
        (MarkerKind.GLOBAL, (), "#G"),
        (MarkerKind.FMCL, (), "#FMCL"),
        (MarkerKind.DB, ("f",), "#db.f"),
        (MarkerKind.SCRIPT_NAME, (), SCRIPT_NAME_PLACEHOLDER),
    ])
    def test_simple_markers(self, kind, args, expected):
        assert expand_markers("x=" + marker(kind, *args) + ";", UID, Seclevel.FULLSEC) == f"x={expected};"

    def test_several_markers(self):
        code = f"{marker(MarkerKind.GLOBAL)}.a={marker(MarkerKind.DB, 'i')}({marker(MarkerKind.FMCL)})"
        assert expand_markers(code, UID, Seclevel.LOWSEC) == "#G.a=#db.i(#FMCL)"

    def test_other_build_ids_are_ignored(self):
        code = Marker(MarkerKind.DEBUG).token("otherbuild") + "(1)"
        assert expand_markers(code, UID, Seclevel.FULLSEC) == code

    def test_leftover_private_name_marker(self):
        with pytest.raises(InternalConsistencyError):
            expand_markers(marker(MarkerKind.MAYBE_PRIVATE, "G"), UID, Seclevel.FULLSEC)


class TestConsistency:
    def test_clean_code(self):
        check_consistency("function(){return " + marker(MarkerKind.GLOBAL) + ".x}", UID)

    def test_unknown_kind(self):
        with pytest.raises(InternalConsistencyError, match="malformed marker"):
            check_consistency(f"x=${UID}$NONSENSE$", UID)

    def test_wrong_arity(self):
        with pytest.raises(InternalConsistencyError, match="malformed marker"):
            check_consistency(f"x=${UID}$DB$", UID)

    def test_reserved_sequence(self):
        with pytest.raises(InternalConsistencyError, match="reserved sequence"):
            check_consistency("x.SC$a", UID)

    def test_raw_sigil(self):
        with pytest.raises(InternalConsistencyError, match="#fs."):
            check_consistency("x=#fs.a.b()", UID)

    def test_escaped_sigil_in_string(self):
        check_consistency('x="\\#fs.a.b"', UID)

    def test_sigil_in_line_comment(self):
        check_consistency("function(){//#fs.a.b\nreturn 1}", UID)


class TestPostprocess:
    def test_full_pass(self):
        code = "function _SCRIPT_testbuild01_(){return " + marker(MarkerKind.SUBSCRIPT, "ls", "a", "b") + "()}"
        assert postprocess(code, UID, Seclevel.LOWSEC) == "function(){return #ls.a.b()}"

    def test_inconsistent_code_is_rejected(self):
        with pytest.raises(InternalConsistencyError):
            postprocess("function _SCRIPT_testbuild01_(){return #G}", UID, Seclevel.FULLSEC)


class TestSigilFreeRoundTrip:
    @pytest.mark.parametrize("body", [
        "return args.x + 1",
        "let s = 'a#b c'\nreturn [s, context.caller]",
        "for (let i = 0; i < 3; i++) {\n  args.n += i\n}\nreturn args.n",
        "class Point {\n  constructor(x) { this.x = x }\n}\nreturn new Point(1).x",
    ])
    @pytest.mark.parametrize("seclevel", [Seclevel.NULLSEC, Seclevel.FULLSEC])
    def test_only_the_signature_changes(self, body, seclevel):
        source = f"export default function (context, args) {{\n{body}\n}}"
        code = preprocess(source, UID).code
        assert code == generate(Parser(source).parse())

        head = "export default function"
        named = f"function {entry_name(UID)}" + code[len(head):]
        assert postprocess(named, UID, seclevel) == "function" + code[len(head):]


class TestSubstituteIdentity:
    def test_placeholder_is_filled(self):
        script = 'function(){return "alice.' + SCRIPT_NAME_PLACEHOLDER + '"}'
        assert substitute_identity(script, "tool") == 'function(){return "alice.tool"}'

    @pytest.mark.parametrize("name", ["Tool", "a.b", "", "x" * 26])
    def test_invalid_name(self, name):
        with pytest.raises(ValueError):
            substitute_identity("function(){}", name)
