"""
The record extract: patients, coded events and ADAPT forms.
"""

from .adapt import FLAG_COLUMNS, Adapt, Adapts
from .code_rubrics import CodeRubricCount, CodeRubricCounts
from .events import Event, Events
from .io import load_table, save_table
from .patients import Patient, Patients
from .types import Imd, Sex

__all__ = [
    "Adapt",
    "Adapts",
    "CodeRubricCount",
    "CodeRubricCounts",
    "Event",
    "Events",
    "FLAG_COLUMNS",
    "Imd",
    "Patient",
    "Patients",
    "Sex",
    "load_table",
    "save_table",
]
