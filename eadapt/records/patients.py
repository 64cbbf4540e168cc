"""
The patient table, with lymphoma diagnosis details derived from the events.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Iterator, List, Optional, Union

import pandas as pd

from ..errors import ParseError
from ..ranges import RangeSet, RangeSetCounts
from .io import load_table, optional_string, read_orig_csv, save_table
from .types import Imd, Sex

if TYPE_CHECKING:
    from ..subtypes import CodeSubtypeMap, LymphomaSubtype
    from .events import Events

logger = logging.getLogger(__name__)

PATIENT_COLUMNS = [
    "PatID",
    "YearOfBirth",
    "Sex",
    "Ethnicity",
    "LSOA",
    "GPCode",
    "imdDecile-1-is-most-deprived-10percent",
    "charlson-0-is-healthy",
]


@dataclass(frozen=True)
class Patient:
    """A row of the patient table.

    The diagnosis fields are empty until :meth:`Patients.calc_lymphoma_data`
    fills them: the date is the earliest lymphoma code, the subtype the most
    specific one seen.
    """

    patient_id: int
    year_of_birth: int
    sex: Sex
    ethnicity: Optional[str]
    imd: Imd
    charlson: float
    lymphoma_diagnosis_date: Optional[date] = None
    lymphoma_diagnosis_subtype: Optional["LymphomaSubtype"] = None

    def age_at(self, when: date) -> int:
        return when.year - self.year_of_birth

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "year_of_birth": self.year_of_birth,
            "sex": str(self.sex),
            "ethnicity": self.ethnicity,
            "imd": str(self.imd),
            "charlson": self.charlson,
            "lymphoma_diagnosis_date": self.lymphoma_diagnosis_date,
            "lymphoma_diagnosis_subtype": (
                str(self.lymphoma_diagnosis_subtype) if self.lymphoma_diagnosis_subtype else None
            ),
        }


class Patients:
    """Patients with an id index. Rows are immutable; edits replace them."""

    def __init__(self, patients: Iterable[Patient] = ()):
        self._els: List[Patient] = list(patients)
        self._rebuild_index()

    def _rebuild_index(self) -> None:
        self._idx: Dict[int, int] = {p.patient_id: i for i, p in enumerate(self._els)}

    # ------------------------------------------------------------------
    # Loading and saving
    # ------------------------------------------------------------------

    @classmethod
    def load_orig(
        cls,
        path: Union[str, Path],
        events: "Events",
        subtype_map: "CodeSubtypeMap",
        config: Optional[Dict[str, Any]] = None,
    ) -> "Patients":
        """Load the patient CSV and derive the lymphoma diagnosis fields."""
        df = read_orig_csv(path, PATIENT_COLUMNS, config)
        rows = []
        for line, record in enumerate(df.itertuples(index=False, name=None), start=2):
            try:
                rows.append(_patient_from_row(record))
            except ValueError as exc:
                raise ParseError(f'while loading "{path}", line {line}: {exc}') from exc
        patients = cls(rows)
        patients.calc_lymphoma_data(events, subtype_map)
        logger.info("Loaded %d patients from %s", len(patients), path)
        return patients

    @classmethod
    def load(cls, path: Union[str, Path], config: Optional[Dict[str, Any]] = None) -> "Patients":
        return cls(load_table(path, config))

    def save(self, path: Union[str, Path], config: Optional[Dict[str, Any]] = None) -> Path:
        return save_table(self._els, path, config)

    def calc_lymphoma_data(self, events: "Events", subtype_map: "CodeSubtypeMap") -> None:
        """Fill in the diagnosis date and subtype from the mapped events.

        Events whose code/rubric is not in *subtype_map* are not lymphoma.
        The subtype is only replaced by a strictly more specific one, so for
        incomparable subtypes the first event seen wins.
        """
        found: Dict[int, Patient] = {}
        for event in events:
            subtype = subtype_map.get(event.code_rubric())
            if subtype is None:
                continue
            idx = self._idx.get(event.patient_id)
            if idx is None:
                logger.warning("no patient with ID %s", event.patient_id)
                continue
            patient = found.get(event.patient_id, self._els[idx])

            diagnosed = patient.lymphoma_diagnosis_date
            if diagnosed is None or diagnosed > event.date:
                diagnosed = event.date
            current = patient.lymphoma_diagnosis_subtype
            if current is None or subtype.is_subtype_of(current):
                current = subtype
            found[event.patient_id] = dataclasses.replace(
                patient, lymphoma_diagnosis_date=diagnosed, lymphoma_diagnosis_subtype=current
            )

        if found:
            els = list(self._els)
            for patient_id, patient in found.items():
                els[self._idx[patient_id]] = patient
            self._els = els

    # ------------------------------------------------------------------
    # Collection API
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._els)

    def __iter__(self) -> Iterator[Patient]:
        return iter(self._els)

    def __getitem__(self, idx: int) -> Patient:
        return self._els[idx]

    def copy(self) -> "Patients":
        other = Patients.__new__(Patients)
        other._els = self._els
        other._idx = self._idx
        return other

    def find_by_id(self, patient_id: int) -> Optional[Patient]:
        idx = self._idx.get(patient_id)
        return self._els[idx] if idx is not None else None

    def ids(self) -> List[int]:
        return [p.patient_id for p in self._els]

    def filter(self, predicate: Callable[[Patient], bool]) -> "Patients":
        return Patients(p for p in self._els if predicate(p))

    def retain(self, predicate: Callable[[Patient], bool]) -> None:
        self._els = [p for p in self._els if predicate(p)]
        self._rebuild_index()

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def count_sexes(self) -> Dict[Sex, int]:
        counts = {sex: 0 for sex in sorted(Sex)}
        for patient in self._els:
            counts[patient.sex] += 1
        return counts

    def count_imd(self) -> Dict[Imd, int]:
        counts = {imd: 0 for imd in sorted(Imd)}
        for patient in self._els:
            counts[patient.imd] += 1
        return counts

    def bucket_ages(self, ranges: RangeSet, at: Optional[date] = None) -> RangeSetCounts:
        """Count patients per age range, ages taken at *at* (default today)."""
        at = at or date.today()
        return ranges.bucket_values(p.age_at(at) for p in self._els)

    def table(self) -> pd.DataFrame:
        return pd.DataFrame([p.to_dict() for p in self._els])

    def __repr__(self) -> str:
        return f"Patients({len(self)} patients)"


def _patient_from_row(record) -> Patient:
    pid, yob, sex, ethnicity, _lsoa, _gp_code, imd, charlson = record
    return Patient(
        patient_id=int(pid),
        year_of_birth=int(yob),
        sex=Sex.parse(sex),
        ethnicity=optional_string(ethnicity),
        imd=Imd.parse(imd),
        charlson=float(charlson),
    )
