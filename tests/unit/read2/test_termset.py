"""
Unit tests for term sets and their meta.json documents.
"""

import json
from datetime import datetime, timezone

import pytest

from eadapt.errors import AlreadyExistsError, FilterSyntaxError, LexError, SchemaError
from eadapt.read2 import TermSet, User
from eadapt.read2.termset.termset import META_FILE

SAMPLE_DESCRIPTIONS = [
    "Hodgkin's disease",
    "Non-Hodgkin's lymphoma",
    "Lymphomatoid papulosis",
    "Essential hypertension",
    "Malignant essential hypertension",
    "lymphomas",
]


def behaviour(term_set):
    return [term_set.is_match(d) for d in SAMPLE_DESCRIPTIONS]


def meta_document(**overrides):
    doc = {
        "includeTerms": ["lymphoma*"],
        "excludeTerms": ["lymphomatoid papulosis"],
        "terminology": "Readv2",
        "name": "lymphoma",
        "description": None,
        "version": "v20160401",
        "createdBy": {"name": "A", "email": "a@example.org"},
        "createdOn": "2022-01-10T12:00:00Z",
        "lastUpdated": "2022-02-01T09:30:00.123Z",
    }
    doc.update(overrides)
    return doc


class TestMatching:
    """Test include/exclude semantics."""

    def test_include_and_exclude(self):
        ts = TermSet(include_terms=["hypertension"], exclude_terms=["malignant"])
        assert ts.is_match("Essential hypertension")
        assert not ts.is_match("Malignant essential hypertension")
        assert not ts.is_match("Lymphoma")

    def test_no_includes_matches_nothing(self):
        ts = TermSet(exclude_terms=["malignant"])
        assert not ts.is_match("Essential hypertension")

    def test_multi_any_include_no_exclude(self):
        """Any description may include; one excluded description rules the code out."""
        ts = TermSet(include_terms=["lymphoma"], exclude_terms=["papulosis"])
        assert ts.is_match_multi(["NHL", "Non-Hodgkin's lymphoma"])
        assert not ts.is_match_multi(["Non-Hodgkin's lymphoma", "Lymphomatoid papulosis"])
        assert not ts.is_match_multi([])

    def test_is_match_inc_or_ex(self):
        ts = TermSet(include_terms=["lymphoma"], exclude_terms=["papulosis"])
        assert ts.is_match_inc_or_ex("Lymphomatoid papulosis")
        assert ts.is_match_inc_or_ex("lymphoma")
        assert not ts.is_match_inc_or_ex("Hodgkin's disease")

    def test_filter(self, thesaurus):
        ts = TermSet(include_terms=["hypertension"])
        assert [str(c) for c, _ in ts.filter(thesaurus.iter())] == ["G20..", "G200."]

    def test_bad_term_fails_construction(self):
        with pytest.raises(LexError):
            TermSet(include_terms=['"unterminated'])


class TestEditing:
    """Test adding and removing terms."""

    def test_add_include_recompiles(self):
        ts = TermSet(include_terms=["hypertension"])
        assert not ts.is_match("Hodgkin's disease")
        ts.add_include("hodgkin*")
        assert ts.is_match("Hodgkin's disease")
        assert ts.include_terms == ("hypertension", "hodgkin*")

    def test_add_then_remove_is_identity(self):
        ts = TermSet(include_terms=["lymphoma*"], exclude_terms=["papulosis"])
        before = behaviour(ts)
        for term in ["hypertension", "hodgkin*", "lymphoma*"]:
            ts.add_include(term)
            ts.remove_include(term)
            assert behaviour(ts) == before
            ts.add_exclude(term)
            ts.remove_exclude(term)
            assert behaviour(ts) == before

    def test_remove_absent_term_is_noop(self):
        ts = TermSet(include_terms=["lymphoma"])
        stamp = ts.last_updated
        ts.remove_include("missing")
        ts.remove_exclude("missing")
        assert ts.include_terms == ("lymphoma",)
        assert ts.last_updated == stamp

    def test_remove_drops_only_last_copy(self):
        ts = TermSet(include_terms=["lymphoma*", "hodgkin*"])
        ts.add_include("lymphoma*")
        ts.remove_include("lymphoma*")
        assert ts.include_terms == ("lymphoma*", "hodgkin*")
        assert ts.is_match("Non-Hodgkin's lymphoma")
        ts.remove_include("lymphoma*")
        assert ts.include_terms == ("hodgkin*",)

    def test_failed_add_keeps_old_state(self):
        ts = TermSet(include_terms=["lymphoma"])
        with pytest.raises(FilterSyntaxError):
            ts.add_include("   ")
        with pytest.raises(LexError):
            ts.add_exclude('"oops')
        assert ts.include_terms == ("lymphoma",)
        assert ts.exclude_terms == ()
        assert ts.is_match("lymphoma")

    def test_edit_touches_last_updated(self):
        old = datetime(2020, 1, 1, tzinfo=timezone.utc)
        ts = TermSet(include_terms=["lymphoma"], created_on=old, last_updated=old)
        ts.add_exclude("papulosis")
        assert ts.last_updated > old
        assert ts.created_on == old

    def test_copy_is_independent(self):
        ts = TermSet(include_terms=["lymphoma"])
        clone = ts.copy()
        clone.add_include("hodgkin*")
        assert not ts.is_match("Hodgkin's disease")
        assert clone.is_match("Hodgkin's disease")


class TestDocument:
    """Test the meta.json document."""

    def test_from_dict(self):
        ts = TermSet.from_dict(meta_document())
        assert ts.name == "lymphoma"
        assert ts.description is None
        assert ts.created_by == User("A", "a@example.org")
        assert ts.created_on == datetime(2022, 1, 10, 12, tzinfo=timezone.utc)
        assert ts.is_match("Non-Hodgkin's lymphoma")
        assert not ts.is_match("Lymphomatoid papulosis")

    def test_to_dict_field_names(self):
        doc = TermSet.from_dict(meta_document()).to_dict()
        assert list(doc) == [
            "includeTerms",
            "excludeTerms",
            "terminology",
            "name",
            "description",
            "version",
            "createdBy",
            "createdOn",
            "lastUpdated",
        ]
        assert doc["createdOn"] == "2022-01-10T12:00:00Z"
        assert doc["lastUpdated"] == "2022-02-01T09:30:00.123000Z"

    def test_naive_timestamp_is_utc(self):
        ts = TermSet.from_dict(meta_document(createdOn="2022-01-10T12:00:00"))
        assert ts.created_on.tzinfo == timezone.utc

    def test_optional_fields(self):
        doc = meta_document()
        for key in ("name", "description", "createdBy"):
            del doc[key]
        ts = TermSet.from_dict(doc)
        assert ts.name is None
        assert ts.created_by is None

    def test_missing_field(self):
        doc = meta_document()
        del doc["version"]
        with pytest.raises(SchemaError, match="missing field `version`") as info:
            TermSet.from_dict(doc)
        assert info.value.field == "version"

    def test_unknown_field(self):
        with pytest.raises(SchemaError, match="unknown field `colour`"):
            TermSet.from_dict(meta_document(colour="blue"))

    def test_wrong_types(self):
        with pytest.raises(SchemaError):
            TermSet.from_dict(meta_document(includeTerms="lymphoma"))
        with pytest.raises(SchemaError):
            TermSet.from_dict(meta_document(createdOn="yesterday"))
        with pytest.raises(SchemaError):
            TermSet.from_dict(meta_document(createdBy={"name": "A"}))
        with pytest.raises(SchemaError):
            TermSet.from_dict(meta_document(terminology="SNOMED"))

    def test_user_unknown_field(self):
        with pytest.raises(SchemaError, match="unknown field"):
            User.from_dict({"name": "A", "email": "a@b", "phone": "1"})


class TestFiles:
    """Test saving and loading term set directories."""

    def test_round_trip(self, temp_dir, lymphoma_term_set):
        lymphoma_term_set.add_exclude("lymphomatoid papulosis")
        lymphoma_term_set.save(temp_dir / "lymphoma")
        loaded = TermSet.load(temp_dir / "lymphoma")
        assert loaded.to_dict() == lymphoma_term_set.to_dict()
        assert behaviour(loaded) == behaviour(lymphoma_term_set)

    def test_save_refuses_overwrite(self, temp_dir, lymphoma_term_set):
        lymphoma_term_set.save(temp_dir / "lymphoma")
        with pytest.raises(AlreadyExistsError, match="file already exists"):
            lymphoma_term_set.save(temp_dir / "lymphoma")
        lymphoma_term_set.save(temp_dir / "lymphoma", overwrite=True)

    def test_duplicate_field(self, temp_dir):
        (temp_dir / META_FILE).write_text(
            '{"includeTerms": [], "includeTerms": [], "excludeTerms": []}'
        )
        with pytest.raises(SchemaError, match="duplicate field `includeTerms`"):
            TermSet.load(temp_dir)

    def test_load_error_names_file(self, temp_dir):
        doc = meta_document()
        del doc["createdOn"]
        (temp_dir / META_FILE).write_text(json.dumps(doc))
        with pytest.raises(SchemaError, match="loading termset") as info:
            TermSet.load(temp_dir)
        assert str(temp_dir / META_FILE) in str(info.value)

    def test_invalid_json(self, temp_dir):
        (temp_dir / META_FILE).write_text("{not json")
        with pytest.raises(SchemaError, match="invalid JSON"):
            TermSet.load(temp_dir)

    def test_missing_directory(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            TermSet.load(temp_dir / "nope")
