"""
Long-term conditions (LTCs) of lymphoma survivors.

Each condition is a rule over a patient's coded events, evaluated at a date.
The rules and code sets follow the CPRD@Cambridge multimorbidity
definitions: a diagnosis code ("medcode") at any time, or a treatment code
("prodcode") recently or repeatedly. Rules are data; :class:`Conditions`
interprets them against a set of compiled code set matchers.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from dateutil.relativedelta import relativedelta
from scipy import stats

from .config import extract_date as configured_extract_date
from .config import resolve_path
from .read2.code import ReadCode
from .read2.codeset import CodeSet, CodeSetMatcher
from .records.events import Event, Events
from .records.patients import Patients

logger = logging.getLogger(__name__)

Matchers = Mapping[str, CodeSetMatcher]


def add_years(d: date, years: int) -> date:
    """Shift *d* by whole years; 29 February becomes 28 February."""
    return d + relativedelta(years=years)


# ------------------------------------------------------------------
# Rules
# ------------------------------------------------------------------


class Rule(ABC):
    """A test over one patient's events at a date."""

    @abstractmethod
    def test(self, matchers: Matchers, events: Sequence[Event], at: date) -> bool:
        """Whether the condition holds at *at*."""

    def codesets(self) -> List[str]:
        """Names of the code sets this rule reads."""
        return []


def _matches(matchers: Matchers, names: Sequence[str], code: ReadCode) -> bool:
    return any(matchers[name].contains(code) for name in names)


@dataclass(frozen=True)
class Presence(Rule):
    """Any code from the sets on or before the date."""

    names: Tuple[str, ...]

    def test(self, matchers: Matchers, events: Sequence[Event], at: date) -> bool:
        return any(e.date <= at and _matches(matchers, self.names, e.read_code) for e in events)

    def codesets(self) -> List[str]:
        return list(self.names)


@dataclass(frozen=True)
class RecentPresence(Rule):
    """Any code from the sets in the *years* up to the date."""

    names: Tuple[str, ...]
    years: int = 1

    def test(self, matchers: Matchers, events: Sequence[Event], at: date) -> bool:
        start = add_years(at, -self.years)
        return any(
            start < e.date <= at and _matches(matchers, self.names, e.read_code) for e in events
        )

    def codesets(self) -> List[str]:
        return list(self.names)


@dataclass(frozen=True)
class CountInWindow(Rule):
    """At least *min_count* codes from the sets in the *years* up to the date."""

    names: Tuple[str, ...]
    min_count: int = 4
    years: int = 1

    def test(self, matchers: Matchers, events: Sequence[Event], at: date) -> bool:
        start = add_years(at, -self.years)
        count = sum(
            1 for e in events if start < e.date <= at and _matches(matchers, self.names, e.read_code)
        )
        return count >= self.min_count

    def codesets(self) -> List[str]:
        return list(self.names)


@dataclass(frozen=True)
class AllOf(Rule):
    rules: Tuple[Rule, ...]

    def test(self, matchers: Matchers, events: Sequence[Event], at: date) -> bool:
        return all(rule.test(matchers, events, at) for rule in self.rules)

    def codesets(self) -> List[str]:
        return [name for rule in self.rules for name in rule.codesets()]


@dataclass(frozen=True)
class AnyOf(Rule):
    rules: Tuple[Rule, ...]

    def test(self, matchers: Matchers, events: Sequence[Event], at: date) -> bool:
        return any(rule.test(matchers, events, at) for rule in self.rules)

    def codesets(self) -> List[str]:
        return [name for rule in self.rules for name in rule.codesets()]


@dataclass(frozen=True)
class Not(Rule):
    rule: Rule

    def test(self, matchers: Matchers, events: Sequence[Event], at: date) -> bool:
        return not self.rule.test(matchers, events, at)

    def codesets(self) -> List[str]:
        return self.rule.codesets()


@dataclass(frozen=True)
class EgfrBelow(Rule):
    """Chronic kidney disease from eGFR results.

    Of the two most recent results up to the date, the higher must be below
    *threshold*. No results means no disease.
    """

    name: str
    threshold: float = 60.0

    def test(self, matchers: Matchers, events: Sequence[Event], at: date) -> bool:
        levels: Dict[date, float] = {}
        for e in events:
            if e.date <= at and matchers[self.name].contains(e.read_code):
                value = parse_egfr(e)
                if value is not None:
                    levels[e.date] = value
        if not levels:
            return False
        latest = [levels[d] for d in sorted(levels, reverse=True)[:2]]
        return max(latest) < self.threshold

    def codesets(self) -> List[str]:
        return [self.name]


@dataclass(frozen=True)
class RecentCancer(Rule):
    """A cancer other than lymphoma/leukaemia first coded in the last *years*."""

    cancer: str
    exclude: str
    years: int = 5

    def test(self, matchers: Matchers, events: Sequence[Event], at: date) -> bool:
        first: Dict[ReadCode, date] = {}
        for e in events:
            if (
                e.date <= at
                and matchers[self.cancer].contains(e.read_code)
                and not matchers[self.exclude].contains(e.read_code)
            ):
                current = first.get(e.read_code)
                if current is None or e.date < current:
                    first[e.read_code] = e.date
        start = add_years(at, -self.years)
        return any(d > start for d in first.values())

    def codesets(self) -> List[str]:
        return [self.cancer, self.exclude]


def parse_egfr(event: Event) -> Optional[float]:
    if event.code_value is None:
        return None
    try:
        value = float(event.code_value)
    except ValueError:
        return None
    return None if math.isnan(value) else value


# ------------------------------------------------------------------
# Condition registry
# ------------------------------------------------------------------


@dataclass(frozen=True)
class Condition:
    key: str
    label: str
    # Population prevalence, from CPRD@Cambridge
    prevalence: float
    rule: Rule


def _presence(*names: str) -> Presence:
    return Presence(tuple(names))


CONDITIONS: List[Condition] = [
    Condition("alc", "Alcohol problems", 0.018, _presence("alc138")),
    Condition("ano", "Anorexia & Bulemia", 0.005, _presence("ano139")),
    Condition(
        "anx_dep",
        "Anxiety & Depression",
        0.103,
        AnyOf((RecentPresence(("anx140", "dep152")), CountInWindow(("anx141", "dep153")))),
    ),
    Condition(
        "ast",
        "Asthma (currently treated)",
        0.042,
        AllOf((_presence("ast142"), RecentPresence(("ast127",)))),
    ),
    Condition("atr", "Atrial fibrillation", 0.03, _presence("atr143")),
    Condition("bli", "Blindness and low vision", 0.01, _presence("bli144")),
    Condition("bro", "Bronchiectasis", 0.004, _presence("bro145")),
    Condition(
        "can",
        "Cancer (not lymphoma) within 5 years",
        0.012,
        RecentCancer("can146", "lymphoma_leukaemia"),
    ),
    Condition("chd", "Coronary heart disease", 0.055, _presence("chd126")),
    Condition("ckd", "Chronic kidney failure", 0.035, EgfrBelow("ckd147")),
    Condition("cld", "Chronic liver disease & viral hepititis", 0.006, _presence("cld148")),
    Condition("con", "Constipation (treated)", 0.022, CountInWindow(("con150",))),
    Condition("cop", "COPD", 0.031, _presence("cop151")),
    Condition("dem", "Dementia", 0.013, _presence("dem131")),
    Condition("dib", "Diabetes", 0.059, _presence("dib128")),
    Condition("div", "Diverticular disease of intestine", 0.067, _presence("div154")),
    Condition(
        "epi", "Epilepsy", 0.005, AllOf((_presence("epi155"), RecentPresence(("epi156",))))
    ),
    Condition("hef", "Heart failure", 0.014, _presence("hef158")),
    Condition("hel", "Hearing loss", 0.111, _presence("hel157")),
    Condition("hyp", "Hypertension", 0.189, _presence("hyp159")),
    Condition("ibd", "Inflammatory bowel disease", 0.01, _presence("ibd160")),
    Condition(
        "ibs",
        "Irritable bowel syndrome",
        0.079,
        AnyOf((_presence("ibs161"), CountInWindow(("ibs162",)))),
    ),
    Condition("lea", "Learning disability", 0.004, _presence("lea163")),
    Condition("mig", "Migraine", 0.004, CountInWindow(("mig164",))),
    Condition("msc", "Multiple sclerosis", 0.003, _presence("msc165")),
    Condition("pep", "Peptic uncer disease", 0.021, _presence("pep135")),
    Condition(
        "pnc",
        "Painful condition",
        0.101,
        AnyOf(
            (
                CountInWindow(("pnc166",)),
                AllOf((CountInWindow(("pnc167",)), Not(_presence("epi155")))),
            )
        ),
    ),
    Condition("prk", "Parkinson's disease", 0.003, _presence("prk169")),
    Condition("pro", "Prostate disorders", 0.057, _presence("pro170")),
    Condition("psm", "Psychoactive substance misuse (not alcohol)", 0.015, _presence("psm173")),
    Condition(
        "pso",
        "Psoriasis or eczema",
        0.007,
        AllOf((_presence("pso171"), CountInWindow(("pso172",)))),
    ),
    Condition("pvd", "Peripheral vascular disease", 0.013, _presence("pvd168")),
    Condition(
        "rhe",
        "Rheumatoid arthritis, other inflammatory polyarthropathies & systematic "
        "connective tissue disorders",
        0.025,
        _presence("rhe174"),
    ),
    Condition(
        "scz",
        "Schizophrenia (and related non-organic psychosis) or bipolar disorder",
        0.003,
        _presence("scz175", "scz176"),
    ),
    Condition("sin", "Chronic sinusitis", 0.029, _presence("sin149")),
    Condition("str", "Stroke and TIA", 0.029, _presence("str130")),
    Condition("thy", "Thyroid disorders", 0.051, _presence("thy179")),
]

CONDITIONS_BY_KEY: Dict[str, Condition] = {c.key: c for c in CONDITIONS}

# Code sets defined as term sets; the rest are CPRD@Cambridge files "<name>_mc.csv"
TERMSET_CODESETS: Dict[str, str] = {
    "anx141": "anxiety_meds",
    "ast127": "asthma_meds",
    "con150": "constipation_meds",
    "dep153": "depression_meds",
    "epi156": "epilepsy_meds",
    "ibs162": "ibs_meds",
    "mig164": "migraine_meds",
    "pnc166": "analgesics_ex_migraine_meds",
    "pnc167": "epilepsy_ex_benzos_meds",
    "pso172": "psoriasis_eczema_meds",
    "scz176": "schizophrenia_meds",
    "lymphoma_leukaemia": "lymphoma_leukaemia",
}


def required_codesets() -> List[str]:
    names = {name for c in CONDITIONS for name in c.rule.codesets()}
    return sorted(names)


class Conditions:
    """Tests for every long-term condition, given the compiled code sets."""

    def __init__(self, matchers: Mapping[str, CodeSetMatcher]):
        missing = [name for name in required_codesets() if name not in matchers]
        if missing:
            raise ValueError(f"missing code sets for long-term conditions: {missing}")
        self._matchers: Dict[str, CodeSetMatcher] = dict(matchers)

    @classmethod
    def load(cls, config: Optional[Dict[str, Any]] = None) -> "Conditions":
        """Load every code set from the configured data directories."""
        camb_dir = resolve_path(config, "camb_codesets_dir")
        termsets_dir = resolve_path(config, "termsets_dir")
        matchers = {}
        for name in required_codesets():
            if name in TERMSET_CODESETS:
                code_set = CodeSet.load(termsets_dir / TERMSET_CODESETS[name] / "codes.txt")
            else:
                code_set = CodeSet.load_camb(camb_dir / f"{name}_mc.csv")
            matchers[name] = code_set.into_matcher()
        logger.info("Loaded %d long-term condition code sets", len(matchers))
        return cls(matchers)

    def matcher(self, name: str) -> CodeSetMatcher:
        return self._matchers[name]

    def test(self, condition: str, events: Sequence[Event], at: date) -> bool:
        """Whether the patient whose *events* these are has *condition* at *at*."""
        return CONDITIONS_BY_KEY[condition].rule.test(self._matchers, events, at)

    def non_lymphoma_cancers(self, events: Iterable[Event]) -> List[Tuple[ReadCode, date]]:
        """Cancer codes that are not lymphoma/leukaemia, for checking the cancer rule."""
        cancer = self._matchers["can146"]
        exclude = self._matchers["lymphoma_leukaemia"]
        return [
            (e.read_code, e.date)
            for e in events
            if cancer.contains(e.read_code) and not exclude.contains(e.read_code)
        ]

    def report(
        self,
        patients: Patients,
        events: Events,
        diagnosis_dates: Mapping[int, date],
        extract_date: Optional[date] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> "ConditionsReport":
        """Count patients with each condition at diagnosis, +5 and +10 years.

        Later checkpoints only count when they are not after the extract
        date. Patients without a diagnosis date are skipped.
        """
        extract_date = extract_date or configured_extract_date(config)
        y5 = add_years(extract_date, -5)
        y10 = add_years(extract_date, -10)
        report = ConditionsReport(
            totals=[
                len(patients),
                sum(1 for d in diagnosis_dates.values() if d < y5),
                sum(1 for d in diagnosis_dates.values() if d < y10),
            ]
        )

        for patient in patients:
            diagnosed = diagnosis_dates.get(patient.patient_id)
            if diagnosed is None:
                continue
            evts = events.events_for_patient(patient.patient_id)
            date5 = add_years(diagnosed, 5)
            date10 = add_years(diagnosed, 10)
            for condition in CONDITIONS:
                row = report.rows[condition.key]
                if condition.rule.test(self._matchers, evts, diagnosed):
                    row.y0 += 1
                if date5 <= extract_date and condition.rule.test(self._matchers, evts, date5):
                    row.y5 += 1
                if date10 <= extract_date and condition.rule.test(self._matchers, evts, date10):
                    row.y10 += 1
        return report


# ------------------------------------------------------------------
# Reporting
# ------------------------------------------------------------------


@dataclass
class ReportRow:
    """Patients with the condition 0, 5 and 10 years after diagnosis."""

    y0: int = 0
    y5: int = 0
    y10: int = 0

    def counts(self) -> List[int]:
        return [self.y0, self.y5, self.y10]


@dataclass
class ConditionsReport:
    totals: List[int]
    rows: Dict[str, ReportRow] = field(
        default_factory=lambda: {c.key: ReportRow() for c in CONDITIONS}
    )

    def iter(self) -> Iterable[Tuple[Condition, ReportRow]]:
        for condition in CONDITIONS:
            yield condition, self.rows[condition.key]

    def table(self) -> pd.DataFrame:
        records = [["Totals", *[str(t) for t in self.totals]]]
        for condition, row in self.iter():
            cells = []
            for count, total in zip(row.counts(), self.totals):
                share = f"{count / total * 100:.1f}%" if total else "-"
                cells.append(f"{count} ({share})")
            records.append([condition.label, *cells])
        return pd.DataFrame(records, columns=["Condition", "0 years", "5 years", "10 years"])

    def test_significance(
        self,
        error: float = 0.05,
        min_count: int = 10,
        bonferroni: bool = True,
    ) -> "SignificanceTable":
        """Two-sided binomial test of each count against population prevalence.

        Args:
            error: Probability of a "significant" result arising at random.
            min_count: Skip conditions with fewer patients at diagnosis.
            bonferroni: Control the family-wise error rate across all tests.
        """
        error = error * 0.5
        tested = [(c, row) for c, row in self.iter() if row.y0 >= min_count]
        if bonferroni and tested:
            total_tests = len(tested) * 3
            logger.info("Count of conditions meeting minimum threshold: %d", len(tested))
            logger.info("Bonferroni factor 1 / %d", total_tests)
            error = error / total_tests
        low, high = error, 1.0 - error

        rows = []
        for condition, row in tested:
            ranges = [
                _null_range(total, condition.prevalence, low, high) for total in self.totals
            ]
            significant = [
                count < lo or count > hi for count, (lo, hi) in zip(row.counts(), ranges)
            ]
            rows.append(SignificanceRow(condition.label, ranges, significant))
        return SignificanceTable(rows)


def _null_range(total: int, prevalence: float, low: float, high: float) -> Tuple[int, int]:
    if total == 0:
        return (0, 0)
    lo = stats.binom.ppf(low, total, prevalence)
    hi = stats.binom.ppf(high, total, prevalence)
    return (int(lo), int(hi))


@dataclass
class SignificanceRow:
    label: str
    # (low, high) count expected under the null hypothesis at 0, 5, 10 years
    null_ranges: List[Tuple[int, int]]
    significant: List[bool]

    def cells(self) -> List[str]:
        return [
            f"[{lo}, {hi}]" + (" significant" if sig else "")
            for (lo, hi), sig in zip(self.null_ranges, self.significant)
        ]


@dataclass
class SignificanceTable:
    rows: List[SignificanceRow]

    def table(self) -> pd.DataFrame:
        return pd.DataFrame(
            [[row.label, *row.cells()] for row in self.rows],
            columns=["Condition", "0 years", "5 years", "10 years"],
        )
