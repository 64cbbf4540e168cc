"""
Unit tests for Read codes and code/rubric pairs.

Tests parsing, the hierarchy relations and the ordering that descendant
queries rely on.
"""

import itertools

import pytest

from eadapt.errors import InvalidCodeError, ParseError
from eadapt.read2.code import CodeRubric, ReadCode, show_descriptions

SAMPLE = ["B6...", "B60..", "B600.", "B601.", "B61..", "B627.", "B6270", "G20..", "a1...", "2469."]


class TestParse:
    """Test construction from text and bytes."""

    def test_five_characters_round_trip(self):
        """A valid five character code prints as itself."""
        for value in SAMPLE:
            assert str(ReadCode.parse(value)) == value

    def test_synonym_suffix_is_dropped(self):
        """Seven character input keeps the first five characters."""
        assert ReadCode.parse("B627.11") == ReadCode.parse("B627.")

    def test_bytes_input(self):
        """ASCII bytes parse like text."""
        assert ReadCode.parse(b"G20..") == ReadCode.parse("G20..")

    def test_invalid_length(self):
        """Lengths other than 5 and 7 are rejected."""
        for value in ["", "B6", "B627", "B627.1", "B627.111"]:
            with pytest.raises(InvalidCodeError):
                ReadCode.parse(value)

    def test_invalid_characters(self):
        """Only [A-Za-z0-9.] are allowed."""
        for value in ["B6 ..", "B6-..", "B6é..", "B627.x1"]:
            with pytest.raises(InvalidCodeError):
                ReadCode.parse(value)

    def test_invalid_code_is_parse_error(self):
        """InvalidCodeError is a ParseError and a ValueError."""
        with pytest.raises(ParseError):
            ReadCode.parse("nope")
        with pytest.raises(ValueError):
            ReadCode.parse("nope")

    def test_try_parse(self):
        assert ReadCode.try_parse("B627.") == ReadCode.parse("B627.")
        assert ReadCode.try_parse("bad") is None
        assert ReadCode.try_parse(None) is None

    def test_parse_code_passthrough(self):
        code = ReadCode.parse("B627.")
        assert ReadCode.parse(code) is code


class TestHierarchy:
    """Test the parent/child relations."""

    def test_has_children(self):
        assert ReadCode.parse("B627.").has_children()
        assert not ReadCode.parse("B6270").has_children()

    def test_child_of(self):
        parent = ReadCode.parse("B6...")
        assert ReadCode.parse("B627.").is_child_of(parent)
        assert ReadCode.parse("B6270").is_child_of(parent)
        assert not ReadCode.parse("G20..").is_child_of(parent)

    def test_never_own_child(self):
        """A code is not its own child."""
        for value in SAMPLE:
            code = ReadCode.parse(value)
            assert not code.is_child_of(code)

    def test_parent_child_symmetry(self):
        """a.is_child_of(b) == b.is_parent_of(a) for all pairs."""
        codes = [ReadCode.parse(v) for v in SAMPLE]
        for a, b in itertools.product(codes, repeat=2):
            assert a.is_child_of(b) == b.is_parent_of(a)


class TestOrdering:
    """Test the total order over codes."""

    def test_dot_sorts_first(self):
        assert ReadCode.parse("B6...") < ReadCode.parse("B60..")
        assert ReadCode.parse("B627.") < ReadCode.parse("B6270")

    def test_total_order(self):
        """Exactly one of <, ==, > holds."""
        codes = [ReadCode.parse(v) for v in SAMPLE]
        for a, b in itertools.product(codes, repeat=2):
            assert [a < b, a == b, a > b].count(True) == 1

    def test_parents_sort_before_children(self):
        codes = [ReadCode.parse(v) for v in SAMPLE]
        for a, b in itertools.product(codes, repeat=2):
            if a.is_parent_of(b):
                assert a < b

    def test_descendants_are_contiguous(self):
        """Nothing between a parent and its descendant is outside the parent."""
        codes = sorted(ReadCode.parse(v) for v in SAMPLE)
        for i, parent in enumerate(codes):
            for j in range(i + 1, len(codes)):
                if parent.is_parent_of(codes[j]):
                    for between in codes[i + 1:j]:
                        assert parent.is_parent_of(between)


class TestCodeRubric:
    """Test code/rubric pairs."""

    def test_order_by_code_then_rubric(self):
        a = CodeRubric(ReadCode.parse("B627."), "b")
        b = CodeRubric(ReadCode.parse("B627."), "a")
        c = CodeRubric(ReadCode.parse("B6..."), "z")
        assert sorted([a, b, c]) == [c, b, a]

    def test_show_descriptions(self):
        assert show_descriptions({"b", "a"}) == '"a", "b"'
