"""Tests for the character billing model."""

import pytest
from microhsm.billing import WHITESPACE, billable_length, compression_stats, strip_unbilled

SAMPLES = [
    "function (context, args) {\n  return args.n + 1 // next\n}",
    "let a = [1, 2]\n\tif (a) { #D(a) }\r\n",
    'x = "two  words" // "quoted"',
    "/* kept */ y\u3000=\u00a0z",
]


class TestBillableLength:
    @pytest.mark.parametrize("text,expected", [
        ("", 0),
        ("abc", 3),
        ("a b\tc\n", 3),
        ("a // comment\nb", 2),
        ("// only a comment", 0),
        ("a\u00a0b\u3000c\ufeff", 3),
        ("a\u2028b", 2),
    ])
    def test_lengths(self, text, expected):
        assert billable_length(text) == expected

    def test_comment_marker_inside_string_still_counts_as_comment(self):
        # billing is purely textual
        assert billable_length('"http://x"') == 6

    def test_block_comments_are_billed(self):
        assert billable_length("/*x*/") == 5

    def test_strip_unbilled(self):
        assert strip_unbilled("function (c) { // hi\n  return 1\n}") == "function(c){return1}"


class TestBillingProperties:
    @pytest.mark.parametrize("text", SAMPLES)
    def test_idempotent(self, text):
        assert billable_length(strip_unbilled(text)) == billable_length(text)

    @pytest.mark.parametrize("text", SAMPLES)
    @pytest.mark.parametrize("comment", ["//", "// a note", "  // indented #fs.a.b()"])
    def test_comment_lines_are_free(self, text, comment):
        lines = text.split("\n")
        for index in range(len(lines) + 1):
            commented = "\n".join(lines[:index] + [comment] + lines[index:])
            assert billable_length(commented) == billable_length(text)

    @pytest.mark.parametrize("text", SAMPLES)
    @pytest.mark.parametrize("whitespace", [ch for ch in WHITESPACE if ch != "\n"])
    def test_whitespace_is_interchangeable(self, text, whitespace):
        assert billable_length(text.replace(" ", whitespace)) == billable_length(text)


class TestCompressionStats:
    def test_ratio_and_saved(self):
        stats = compression_stats("let   value = 1 // note", "v=1")
        assert stats.source_length == 10
        assert stats.output_length == 3
        assert stats.saved == 7
        assert stats.ratio == pytest.approx(0.3)

    def test_empty_source(self):
        assert compression_stats("", "").ratio == 1.0
