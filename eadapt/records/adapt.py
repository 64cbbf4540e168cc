"""
ADAPT form data: treatment history recorded at the late effects review.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

import pandas as pd

from ..errors import ParseError
from .io import load_table, read_orig_csv, save_table

logger = logging.getLogger(__name__)

ADAPT_DATE_FORMAT = "%d/%m/%Y %H:%M:%S"

DATE_COLUMNS = {
    "treatmentEndDate": "treatment_end_date",
    "lastReviewDate": "last_review_date",
    "adaptFormCompletedDate": "adapt_form_completed_date",
    "adaptFormSentDate": "adapt_form_sent_date",
}

# CSV column -> attribute, in file order
FLAG_COLUMNS = {
    "chemoDoxorubicin": "chemo_doxorubicin",
    "radiationHeart": "radiation_heart",
    "femaleSub50ChemoDoxorubicinRadiationHeart": "female_sub_50_chemo_doxorubicin_radiation_heart",
    "chemoDoxorubicinRadiationHeart": "chemo_doxorubicin_radiation_heart",
    "radiationLungs": "radiation_lungs",
    "chemoBleomycin": "chemo_bleomycin",
    "currentOrExSmoker": "current_or_ex_smoker",
    "femaleSub36RadiationChest": "female_sub_36_radiation_chest",
    "radiationThyroid": "radiation_thyroid",
    "maleChemo": "male_chemo",
    "anyRadiotherapy": "any_radiotherapy",
    "radiationHeadNeck": "radiation_head_neck",
    "radiationGulletStomach": "radiation_gullet_stomach",
    "radiationBowels": "radiation_bowels",
    "chemoVincristineVinblastine": "chemo_vincristine_vinblastine",
    "chemoPrednisoloneDexamethasone": "chemo_prednisolone_dexamethasone",
    "LowEnergyLast12Months": "low_energy_last_12_months",
    "chemoCisplatinCarboplatin": "chemo_cisplatin_carboplatin",
    "radiationAbdomenKidney": "radiation_abdomen_kidney",
    "hodgkinLymphomaStemCellTransplant": "hodgkin_lymphoma_stem_cell_transplant",
}

ADAPT_COLUMNS = ["PatID", "diagnosis", "diagnosisDate", *DATE_COLUMNS, *FLAG_COLUMNS]


@dataclass(frozen=True)
class Adapt:
    """One patient's ADAPT form."""

    patient_id: int
    diagnosis: str
    diagnosis_date: Optional[date]
    treatment_end_date: date
    last_review_date: date
    adapt_form_completed_date: date
    adapt_form_sent_date: date
    # Treatment flags, one per entry of FLAG_COLUMNS
    chemo_doxorubicin: bool = False
    radiation_heart: bool = False
    female_sub_50_chemo_doxorubicin_radiation_heart: bool = False
    chemo_doxorubicin_radiation_heart: bool = False
    radiation_lungs: bool = False
    chemo_bleomycin: bool = False
    current_or_ex_smoker: bool = False
    female_sub_36_radiation_chest: bool = False
    radiation_thyroid: bool = False
    male_chemo: bool = False
    any_radiotherapy: bool = False
    radiation_head_neck: bool = False
    radiation_gullet_stomach: bool = False
    radiation_bowels: bool = False
    chemo_vincristine_vinblastine: bool = False
    chemo_prednisolone_dexamethasone: bool = False
    low_energy_last_12_months: bool = False
    chemo_cisplatin_carboplatin: bool = False
    radiation_abdomen_kidney: bool = False
    hodgkin_lymphoma_stem_cell_transplant: bool = False

    @property
    def flags(self) -> Dict[str, bool]:
        return {attr: getattr(self, attr) for attr in FLAG_COLUMNS.values()}

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "patient_id": self.patient_id,
            "diagnosis": self.diagnosis,
            "diagnosis_date": self.diagnosis_date,
            "treatment_end_date": self.treatment_end_date,
            "last_review_date": self.last_review_date,
            "adapt_form_completed_date": self.adapt_form_completed_date,
            "adapt_form_sent_date": self.adapt_form_sent_date,
        }
        d.update(self.flags)
        return d


class Adapts:
    """ADAPT forms indexed by patient id."""

    def __init__(self, adapts: Iterable[Adapt] = ()):
        self._els: List[Adapt] = list(adapts)
        self._idx: Dict[int, int] = {a.patient_id: i for i, a in enumerate(self._els)}

    @classmethod
    def load_orig(cls, path: Union[str, Path], config: Optional[Dict[str, Any]] = None) -> "Adapts":
        df = read_orig_csv(path, ADAPT_COLUMNS, config)
        rows = []
        for line, record in enumerate(df.to_dict("records"), start=2):
            try:
                rows.append(_adapt_from_record(record))
            except ValueError as exc:
                raise ParseError(f'while loading "{path}", line {line}: {exc}') from exc
        logger.info("Loaded %d ADAPT forms from %s", len(rows), path)
        return cls(rows)

    @classmethod
    def load(cls, path: Union[str, Path], config: Optional[Dict[str, Any]] = None) -> "Adapts":
        return cls(load_table(path, config))

    def save(self, path: Union[str, Path], config: Optional[Dict[str, Any]] = None) -> Path:
        return save_table(self._els, path, config)

    def find_by_id(self, patient_id: int) -> Optional[Adapt]:
        idx = self._idx.get(patient_id)
        return self._els[idx] if idx is not None else None

    def __len__(self) -> int:
        return len(self._els)

    def __iter__(self) -> Iterator[Adapt]:
        return iter(self._els)

    def table(self) -> pd.DataFrame:
        return pd.DataFrame([a.to_dict() for a in self._els])


def parse_adapt_date(text: str) -> date:
    """Parse ``dd/mm/yyyy hh:mm:ss``; the time must be midnight."""
    parsed = datetime.strptime(text, ADAPT_DATE_FORMAT)
    if (parsed.hour, parsed.minute, parsed.second) != (0, 0, 0):
        raise ValueError(f"non-zero time: {parsed.hour}:{parsed.minute}:{parsed.second}")
    return parsed.date()


def parse_flag(text: str) -> bool:
    if text == "0":
        return False
    if text == "1":
        return True
    raise ValueError(f"expected '0' or '1', found {text!r}")


def _adapt_from_record(record: Dict[str, str]) -> Adapt:
    diagnosis_date = record["diagnosisDate"]
    return Adapt(
        patient_id=int(record["PatID"]),
        diagnosis=record["diagnosis"],
        diagnosis_date=parse_adapt_date(diagnosis_date) if diagnosis_date else None,
        **{attr: parse_adapt_date(record[column]) for column, attr in DATE_COLUMNS.items()},
        **{attr: parse_flag(record[column]) for column, attr in FLAG_COLUMNS.items()},
    )
