"""
Shared pytest fixtures and configuration for eadapt tests

This module provides a small thesaurus, term sets, events and patients that
can be used across all test modules.
"""

import tempfile
from datetime import date
from pathlib import Path

import pytest

from eadapt.read2 import ReadCode, TermSet, Thesaurus, User
from eadapt.records import Event, Events, Imd, Patient, Patients, Sex
from eadapt.subtypes import HODGKIN, NH_UNSPECIFIED, CodeSubtypeMap, LymphomaSubtype
from eadapt.read2.code import CodeRubric


def code(value):
    return ReadCode.parse(value)


# ============================================================================
# Temporary File Fixtures
# ============================================================================


@pytest.fixture
def temp_dir():
    """Temporary directory for test outputs"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def data_config(temp_dir):
    """Config rooted at an empty temporary data directory"""
    for sub in ("sir_data", "output", "termsets", "camb_codesets", "read_db"):
        (temp_dir / sub).mkdir()
    return {"data_root": str(temp_dir)}


# ============================================================================
# Terminology Fixtures
# ============================================================================


THESAURUS_CODES = {
    "B6...": ["Malignant neoplasm of lymphatic and haemopoietic tissue"],
    "B60..": ["Hodgkin's disease"],
    "B600.": ["Hodgkin's paragranuloma"],
    "B601.": ["Lymphocyte predominance"],
    "B627.": ["Non-Hodgkin's lymphoma", "NHL"],
    "B6270": ["Follicular non-Hodgkin's lymphoma"],
    "M1628": ["Lymphomatoid papulosis"],
    "G20..": ["Essential hypertension"],
    "G200.": ["Malignant essential hypertension"],
    "246..": ["O/E - blood pressure reading"],
    "2469.": ["O/E - Systolic BP reading"],
    "44J3.": ["Serum creatinine"],
}


@pytest.fixture
def thesaurus():
    """Small thesaurus covering lymphoma, hypertension and BP codes"""
    return Thesaurus({code(k): v for k, v in THESAURUS_CODES.items()})


@pytest.fixture
def hodgkin_thesaurus():
    """Two Hodgkin codes"""
    return Thesaurus(
        {
            code("X1234"): ["Hodgkin lymphoma"],
            code("X1235"): ["Hodgkin lymphoma, unspecified"],
        }
    )


@pytest.fixture
def user():
    return User("Test User", "test@example.org")


@pytest.fixture
def lymphoma_term_set(user):
    """Term set matching every lymphoma code of the small thesaurus"""
    return TermSet(
        name="lymphoma",
        description="Lymphoma diagnoses",
        include_terms=["lymphoma*", "hodgkin*"],
        exclude_terms=[],
        created_by=user,
    )


@pytest.fixture
def lymphoma_codes(lymphoma_term_set, thesaurus):
    return lymphoma_term_set.match_thesaurus(thesaurus)


# ============================================================================
# Record Fixtures
# ============================================================================


def make_event(patient_id, when, read_code, rubric="", value=None):
    return Event(
        patient_id=patient_id,
        date=when,
        read_code=code(read_code),
        rubric=rubric,
        code_value=value,
    )


@pytest.fixture
def events():
    """Events for five patients

    1. non-Hodgkin then follicular lymphoma, hypertension and BP readings
    2. Hodgkin's disease
    3. lymphomatoid papulosis only
    4. hypertension only
    5. lymphoma with a "suspected" rubric only
    """
    return Events(
        [
            make_event(1, date(2010, 3, 1), "B627.", "Non-Hodgkin's lymphoma"),
            make_event(1, date(2011, 5, 2), "B6270", "Follicular non-Hodgkin's lymphoma"),
            make_event(1, date(2012, 1, 1), "G20..", "Essential hypertension"),
            make_event(1, date(2018, 6, 1), "246..", "BP reading"),
            make_event(1, date(2019, 6, 1), "246..", "BP reading"),
            make_event(2, date(2015, 6, 1), "B60..", "Hodgkin's disease"),
            make_event(3, date(2014, 1, 1), "M1628", "Lymphomatoid papulosis"),
            make_event(4, date(2013, 1, 1), "G20..", "Essential hypertension"),
            make_event(5, date(2016, 1, 1), "B627.", "Haematological malignacy - suspected"),
        ]
    )


def make_patient(patient_id, year_of_birth=1960, sex=Sex.MALE, imd=Imd.D5, ethnicity=None):
    return Patient(
        patient_id=patient_id,
        year_of_birth=year_of_birth,
        sex=sex,
        ethnicity=ethnicity,
        imd=imd,
        charlson=0.0,
    )


@pytest.fixture
def patients():
    return Patients(
        [
            make_patient(1, 1950, Sex.MALE, Imd.D2, "White British"),
            make_patient(2, 1985, Sex.FEMALE, Imd.D9),
            make_patient(3, 1970, Sex.FEMALE, Imd.MISSING),
            make_patient(4, 1945, Sex.MALE, Imd.D1),
            make_patient(5, 1990, Sex.FEMALE, Imd.D10),
        ]
    )


@pytest.fixture
def subtype_map():
    """Code/rubric subtypes for the lymphoma events"""
    return CodeSubtypeMap(
        {
            CodeRubric(code("B627."), "Non-Hodgkin's lymphoma"): NH_UNSPECIFIED,
            CodeRubric(code("B6270"), "Follicular non-Hodgkin's lymphoma"): LymphomaSubtype.parse(
                "follicular"
            ),
            CodeRubric(code("B60.."), "Hodgkin's disease"): HODGKIN,
        }
    )


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "integration: mark test as exercising several modules")
