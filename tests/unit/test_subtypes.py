"""
Unit tests for lymphoma subtypes and subtype classification.
"""

import itertools
from datetime import date
import pickle

import pandas as pd
import pytest

from eadapt.errors import ParseError
from eadapt.read2.code import CodeRubric, ReadCode
from eadapt.records import Events
from eadapt.subtypes import (
    HODGKIN,
    NH_UNSPECIFIED,
    UNSPECIFIED,
    CodeSubtypeMap,
    LymphomaSubtype,
    NonHodgkinSubtype,
)

from conftest import make_event

FOLLICULAR = LymphomaSubtype.non_hodgkin(NonHodgkinSubtype.FOLLICULAR)
DLBCL = LymphomaSubtype.non_hodgkin(NonHodgkinSubtype.DLBCL)
ALL_SUBTYPES = [UNSPECIFIED, HODGKIN] + [
    LymphomaSubtype.non_hodgkin(sub) for sub in NonHodgkinSubtype
]


class TestLymphomaSubtype:
    """Test parsing, ordering and the subtype relation."""

    def test_parse(self):
        assert LymphomaSubtype.parse("lymphoma") == UNSPECIFIED
        assert LymphomaSubtype.parse(" hodgkin ") == HODGKIN
        assert LymphomaSubtype.parse("nonhodgkin") == NH_UNSPECIFIED
        assert LymphomaSubtype.parse("follicular") == FOLLICULAR
        assert LymphomaSubtype.parse("alk_neg").label == (
            "Anaplastic large-cell lymphoma, ALK negative"
        )

    def test_parse_unknown(self):
        with pytest.raises(ParseError, match="didn't recognise lymphoma subtype"):
            LymphomaSubtype.parse("leukaemia")
        with pytest.raises(ParseError):
            LymphomaSubtype.parse("unspecified")

    def test_every_subtype_parses_from_its_code(self):
        for subtype in ALL_SUBTYPES:
            if subtype != NH_UNSPECIFIED:
                assert LymphomaSubtype.parse(subtype.code) == subtype

    def test_order(self):
        assert UNSPECIFIED < HODGKIN < NH_UNSPECIFIED < FOLLICULAR < DLBCL
        assert sorted(reversed(ALL_SUBTYPES)) == ALL_SUBTYPES

    def test_subtype_relation(self):
        assert HODGKIN.is_subtype_of(UNSPECIFIED)
        assert NH_UNSPECIFIED.is_subtype_of(UNSPECIFIED)
        assert FOLLICULAR.is_subtype_of(NH_UNSPECIFIED)
        assert not HODGKIN.is_subtype_of(NH_UNSPECIFIED)
        assert not FOLLICULAR.is_subtype_of(DLBCL)

    def test_subtype_relation_is_strict(self):
        """Irreflexive and antisymmetric."""
        for a, b in itertools.product(ALL_SUBTYPES, repeat=2):
            if a == b:
                assert not a.is_subtype_of(b)
            elif a.is_subtype_of(b):
                assert not b.is_subtype_of(a)

    def test_hashable_and_picklable(self):
        assert len(set(ALL_SUBTYPES)) == len(ALL_SUBTYPES)
        assert pickle.loads(pickle.dumps(FOLLICULAR)) == FOLLICULAR

    def test_immutable(self):
        with pytest.raises(AttributeError):
            HODGKIN._kind = 2


def subtype_events():
    return Events(
        [
            make_event(1, date(2010, 1, 1), "B6...", "Lymphoma"),
            make_event(2, date(2010, 1, 1), "B6...", "Lymphoma"),
            make_event(2, date(2011, 1, 1), "B60..", "Hodgkin's disease"),
            make_event(3, date(2012, 1, 1), "B627.", "NHL"),
            make_event(3, date(2013, 1, 1), "B6270", "Follicular"),
            make_event(4, date(2014, 1, 1), "B627.", "NHL"),
            make_event(5, date(2014, 1, 1), "B60..", "Hodgkin's disease"),
            make_event(5, date(2015, 1, 1), "B6270", "Follicular"),
            make_event(6, date(2015, 1, 1), "G20..", "Hypertension"),
        ]
    )


@pytest.fixture
def classify_map():
    return CodeSubtypeMap(
        {
            CodeRubric(ReadCode.parse("B6..."), "Lymphoma"): UNSPECIFIED,
            CodeRubric(ReadCode.parse("B60.."), "Hodgkin's disease"): HODGKIN,
            CodeRubric(ReadCode.parse("B627."), "NHL"): NH_UNSPECIFIED,
            CodeRubric(ReadCode.parse("B6270"), "Follicular"): FOLLICULAR,
        }
    )


class TestClassify:
    """Test allocation of patients to subtypes."""

    def test_most_specific_per_branch(self, classify_map):
        buckets = classify_map.classify(subtype_events())
        assert buckets == {
            UNSPECIFIED: {1},
            HODGKIN: {2, 5},
            NH_UNSPECIFIED: {4},
            FOLLICULAR: {3, 5},
        }

    def test_sorted_with_fixed_buckets(self, classify_map):
        buckets = classify_map.classify(Events())
        assert list(buckets) == [UNSPECIFIED, NH_UNSPECIFIED]
        assert all(not ids for ids in buckets.values())

    def test_union_within_mapped_patients(self, classify_map):
        events = subtype_events()
        mapped = {e.patient_id for e in events if classify_map.get(e.code_rubric())}
        buckets = classify_map.classify(events)
        assert set().union(*buckets.values()) <= mapped
        for subtype, ids in buckets.items():
            if subtype != UNSPECIFIED:
                assert not ids & buckets[UNSPECIFIED]

    def test_rubric_must_match(self, classify_map):
        events = Events([make_event(1, date(2010, 1, 1), "B60..", "other")])
        assert HODGKIN not in classify_map.classify(events)

    def test_find_multiple(self, classify_map):
        buckets = classify_map.classify(subtype_events())
        overlaps = CodeSubtypeMap.find_multiple(buckets)
        assert overlaps == {(HODGKIN, FOLLICULAR): {5}}
        for (a, b), ids in overlaps.items():
            assert a < b
            assert ids <= buckets[a] and ids <= buckets[b]


class TestCodeSubtypeMapFiles:
    """Test persistence and the workbook import."""

    def test_round_trip(self, classify_map, temp_dir):
        path = temp_dir / "code_subtype_map.bin"
        classify_map.save(path)
        loaded = CodeSubtypeMap.load(path)
        assert list(loaded.items()) == list(classify_map.items())

    def test_saved_rows(self, classify_map, temp_dir):
        path = temp_dir / "code_subtype_map.bin"
        classify_map.save(path)
        with open(path, "rb") as fh:
            rows = pickle.load(fh)
        assert ("B627.", "NHL", "unspecified") in rows

    def test_from_excel(self, temp_dir):
        path = temp_dir / "code_subtype_mapping.xlsx"
        df = pd.DataFrame(
            {
                "read": ["B60..", "B6270 "],
                "rubric": ["Hodgkin's disease", "Follicular"],
                "label": ["hodgkin", " follicular"],
            }
        )
        df.to_excel(path, sheet_name="code_subtype_mapping", index=False)
        mapping = CodeSubtypeMap.from_excel(path)
        assert mapping.get(CodeRubric(ReadCode.parse("B6270"), "Follicular")) == FOLLICULAR
        assert len(mapping) == 2

    def test_from_excel_trims_rubric(self, temp_dir):
        """Padded workbook rubrics match the trimmed event rubrics."""
        path = temp_dir / "code_subtype_mapping.xlsx"
        pd.DataFrame(
            {"read": ["B60.."], "rubric": ["  Hodgkin's disease "], "label": ["hodgkin"]}
        ).to_excel(path, sheet_name="code_subtype_mapping", index=False)
        mapping = CodeSubtypeMap.from_excel(path)
        assert mapping.get(CodeRubric(ReadCode.parse("B60.."), "Hodgkin's disease")) == HODGKIN

    def test_from_excel_bad_label(self, temp_dir):
        path = temp_dir / "code_subtype_mapping.xlsx"
        pd.DataFrame({"read": ["B60.."], "rubric": ["x"], "label": ["nope"]}).to_excel(
            path, sheet_name="code_subtype_mapping", index=False
        )
        with pytest.raises(ParseError, match="importing subtypes"):
            CodeSubtypeMap.from_excel(path)
