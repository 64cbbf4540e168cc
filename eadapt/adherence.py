"""
Adherence to late effects monitoring (LEMP) after the ADAPT review.

For each monitoring test, patients whose treatment calls for it are followed
from their ADAPT date to the extract date. We report how often the test was
coded per year and the longest stretch without one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import extract_date as configured_extract_date
from .config import load_config, termset_path
from .read2.codeset import CodeSet
from .records.adapt import Adapt, Adapts
from .records.events import Event, Events
from .records.patients import Patient, Patients

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365.25


@dataclass(frozen=True)
class PatientAdapt:
    patient: Patient
    adapt: Adapt

    @classmethod
    def join(cls, patients: Patients, adapts: Adapts) -> List["PatientAdapt"]:
        """Patients that have an ADAPT form, in patient order."""
        joined = []
        for patient in patients:
            adapt = adapts.find_by_id(patient.patient_id)
            if adapt is not None:
                joined.append(cls(patient, adapt))
        return joined

    @property
    def adapt_date(self) -> date:
        return self.adapt.last_review_date


@dataclass(frozen=True)
class LempTest:
    key: str
    title: str
    # Which treatments make the test necessary
    indicated: Callable[[Adapt], bool]


def _cardiac_risk(a: Adapt) -> bool:
    return (
        a.chemo_doxorubicin
        or a.radiation_heart
        or a.female_sub_50_chemo_doxorubicin_radiation_heart
        or a.chemo_doxorubicin_radiation_heart
    )


def _renal_risk(a: Adapt) -> bool:
    return a.chemo_cisplatin_carboplatin or a.radiation_abdomen_kidney


LEMP_TESTS: List[LempTest] = [
    LempTest("blood_pressure", "BP Stats", lambda a: _cardiac_risk(a) or _renal_risk(a)),
    LempTest("cholesterol", "Cholesterol Stats", _cardiac_risk),
    LempTest(
        "influenza_vaccination",
        "Flu Stats",
        lambda a: a.chemo_bleomycin or a.radiation_lungs,
    ),
    LempTest(
        "breast_cancer_screening",
        "Breast screening Stats",
        lambda a: a.female_sub_36_radiation_chest,
    ),
    LempTest("thyroid_function", "Thyroid function Stats", lambda a: a.radiation_thyroid),
    LempTest("renal_function", "Renal function Stats", _renal_risk),
]


@dataclass
class Stats:
    """Test frequency summary for one monitoring test."""

    num_people: int
    count_no_data: int
    # Tests per year
    rate_mean: float
    rate_sd: float
    rate_25_percentile: float
    rate_50_percentile: float
    rate_75_percentile: float
    # Longest gap between tests, in years
    longest_mean: float
    longest_sd: float
    longest_median: float

    @classmethod
    def empty(cls) -> "Stats":
        nan = float("nan")
        return cls(0, 0, nan, nan, nan, nan, nan, nan, nan, nan)

    def table(self) -> pd.DataFrame:
        rows = [
            ("Total people with prerequisite treatment", str(self.num_people)),
            (
                "Total people with prerequisite treatment who have at least 1 test",
                str(self.num_people - self.count_no_data),
            ),
            ("Mean test rate", f"{self.rate_mean:.1f} per year"),
            ("SD test rate", f"{self.rate_sd:.1f} per year"),
            ("25th percentile test rate", f"{self.rate_25_percentile:.1f} per year"),
            ("50th percentile test rate", f"{self.rate_50_percentile:.1f} per year"),
            ("75th percentile test rate", f"{self.rate_75_percentile:.1f} per year"),
            ("Mean longest gap between tests", f"{self.longest_mean:.1f} years"),
            ("SD longest gap between tests", f"{self.longest_sd:.1f} years"),
            ("Median longest gap between tests", f"{self.longest_median:.1f} years"),
        ]
        return pd.DataFrame(rows, columns=["statistic", "value"])


def percentile_to_rank(proportion: float, n: int) -> int:
    """Zero-based index of the *proportion* percentile in a sorted list of *n*.

    Uses rank ``int(p * (n + 1))``, clamped to ``1..n``.
    """
    if not 0.0 <= proportion <= 1.0:
        raise ValueError(f"proportion must be in [0, 1], got {proportion}")
    if n < 1:
        raise ValueError("percentile of an empty list")
    rank = int(proportion * (n + 1))
    return min(max(rank, 1), n) - 1


def biggest_gap(start: date, end: date, dates: Iterable[date]) -> int:
    """Longest gap in days between consecutive dates, bracketed by *start* and *end*."""
    points = sorted([start, end, *(d for d in dates if start <= d <= end)])
    return max((b - a).days for a, b in zip(points, points[1:]))


def codeset_freq_stats(
    code_set: CodeSet,
    patient_adapts: Iterable[PatientAdapt],
    events: Events,
    end_date: date,
) -> Stats:
    """Frequency of *code_set* events from each patient's ADAPT date to *end_date*."""
    rates: List[float] = []
    longest: List[float] = []
    count_no_data = 0

    for pa in patient_adapts:
        start = pa.adapt_date
        if start >= end_date:
            logger.warning(
                "patient %s: ADAPT date %s is not before %s, skipped",
                pa.patient.patient_id,
                start,
                end_date,
            )
            continue
        tests: Sequence[Event] = [
            e
            for e in events.events_for_patient(pa.patient.patient_id)
            if code_set.contains(e.read_code) and e.date >= start
        ]
        if not tests:
            count_no_data += 1
        span = (end_date - start).days / DAYS_PER_YEAR
        rates.append(len(tests) / span)
        longest.append(biggest_gap(start, end_date, (e.date for e in tests)) / DAYS_PER_YEAR)

    n = len(rates)
    if n == 0:
        return Stats.empty()

    rate_arr = np.sort(np.asarray(rates))
    gap_arr = np.sort(np.asarray(longest))
    return Stats(
        num_people=n,
        count_no_data=count_no_data,
        rate_mean=float(rate_arr.mean()),
        rate_sd=float(rate_arr.std()),
        rate_25_percentile=float(rate_arr[percentile_to_rank(0.25, n)]),
        rate_50_percentile=float(rate_arr[percentile_to_rank(0.5, n)]),
        rate_75_percentile=float(rate_arr[percentile_to_rank(0.75, n)]),
        longest_mean=float(gap_arr.mean()),
        longest_sd=float(gap_arr.std()),
        longest_median=float(gap_arr[percentile_to_rank(0.5, n)]),
    )


class LempData:
    """Patients with ADAPT forms and their events."""

    def __init__(
        self,
        patients: Patients,
        adapts: Adapts,
        events: Events,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.config = load_config(config)
        self.patient_adapts = PatientAdapt.join(patients, adapts)
        self.events = events

    def stats_for(self, test: LempTest, code_set: Optional[CodeSet] = None) -> Stats:
        """Stats for *test*, loading its code set from the term set directory if not given."""
        if code_set is None:
            name = self.config["lemp"][test.key]
            code_set = CodeSet.load(termset_path(name, self.config) / "codes.txt")
        indicated = [pa for pa in self.patient_adapts if test.indicated(pa.adapt)]
        return codeset_freq_stats(
            code_set, indicated, self.events, configured_extract_date(self.config)
        )

    def all_stats(self) -> Dict[str, Stats]:
        return {test.title: self.stats_for(test) for test in LEMP_TESTS}
