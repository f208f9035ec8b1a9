"""Tests for build options, security levels and marker tokens."""

import pytest
from microhsm.errors import SeclevelError
from microhsm.markers import Marker, MarkerKind, find_markers, marker_prefix
from microhsm.options import (
    UNIQUE_ID_LENGTH, BuildOptions, Seclevel, generate_unique_id, parse_seclevel,
)

UID = "abcdefghijk"


class TestSeclevel:
    @pytest.mark.parametrize("name,expected", [
        ("fullsec", Seclevel.FULLSEC),
        ("FS", Seclevel.FULLSEC),
        (" high ", Seclevel.HIGHSEC),
        ("2s", Seclevel.MIDSEC),
        ("l", Seclevel.LOWSEC),
        ("0", Seclevel.NULLSEC),
        ("nullsec", Seclevel.NULLSEC),
    ])
    def test_parse(self, name, expected):
        assert parse_seclevel(name) is expected

    def test_unknown(self):
        with pytest.raises(SeclevelError):
            parse_seclevel("supersec")

    def test_ordering(self):
        assert Seclevel.NULLSEC < Seclevel.LOWSEC < Seclevel.FULLSEC


class TestUniqueId:
    def test_shape(self):
        uid = generate_unique_id()
        assert len(uid) == UNIQUE_ID_LENGTH
        assert uid.isalnum() and uid == uid.lower()

    def test_ids_differ(self):
        assert len({generate_unique_id() for _ in range(20)}) == 20


class TestBuildOptions:
    def test_defaults(self):
        options = BuildOptions()
        assert len(options.unique_id) == UNIQUE_ID_LENGTH
        assert options.minify
        assert not options.mangle_names
        assert options.seclevel is None

    def test_seclevel_names_are_accepted(self):
        assert BuildOptions(seclevel="midsec").seclevel is Seclevel.MIDSEC
        assert BuildOptions(seclevel=3).seclevel is Seclevel.HIGHSEC

    @pytest.mark.parametrize("kwargs", [
        {"unique_id": "short"},
        {"unique_id": "has-a-dash!"},
        {"script_user": "Not Valid"},
        {"script_name": "x" * 30},
        {"seclevel": 7},
        {"force_quine_cheats": "yes"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            BuildOptions(**kwargs)

    def test_unique_id_spelling_a_reserved_sequence(self):
        with pytest.raises(ValueError):
            BuildOptions(unique_id="xxxxxxxxxSC")


class TestMarkers:
    def test_token_and_parse(self):
        marker = Marker(MarkerKind.SUBSCRIPT, ("fs", "scripts", "trust"))
        token = marker.token(UID)
        assert token == "$abcdefghijk$SUBSCRIPT$fs$scripts$trust$"
        assert Marker.parse(token, UID) == marker

    def test_parse_rejects_other_builds(self):
        token = Marker(MarkerKind.DEBUG).token(UID)
        assert Marker.parse(token, "kjihgfedcba") is None

    def test_wrong_arity(self):
        with pytest.raises(ValueError):
            Marker(MarkerKind.DB, ())
        assert Marker.parse(marker_prefix(UID) + "DB$", UID) is None

    def test_find_markers(self):
        text = "a=" + Marker(MarkerKind.GLOBAL).token(UID) + ".x+" + Marker(MarkerKind.DB, ("f",)).token(UID)
        found = [(text[start:end], marker.kind) for start, end, marker in find_markers(text, UID)]
        assert [kind for _, kind in found] == [MarkerKind.GLOBAL, MarkerKind.DB]
        assert found[1][0].endswith("$DB$f$")
