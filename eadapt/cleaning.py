"""
Remove patients whose lymphoma coding turned out to be unreliable.

The codes and free text below were found by inspecting every code/rubric
combination in the extract by hand.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional

from .read2.code import ReadCode
from .read2.codeset import CodeSet
from .read2.termset.termcodeset import TermCodeSet
from .read2.thesaurus import Thesaurus
from .records.adapt import Adapts
from .records.code_rubrics import CodeRubricCounts
from .records.events import Events
from .records.patients import Patients

logger = logging.getLogger(__name__)

CODES_TO_REMOVE: FrozenSet[ReadCode] = frozenset({ReadCode.parse("M1628")})
RUBRICS_TO_REMOVE: FrozenSet[str] = frozenset(
    {
        "Lymphomatoid papulosis",
        "Haematological malignacy - suspected",
        "Cancer Quality Indicators v20.0.00",
        "Cancer Quality Indicators v23.0.00",
    }
)
EXCLUDED_TERM = "lymphomatoid papulosis"

PATIENTS_CLEAN = "patients_clean.bin"
EVENTS_CLEAN = "events_clean.bin"
LYMPHOMA_CLEAN = "lymphoma_clean"


@dataclass
class CleanResult:
    patients: Patients
    events: Events
    lymphoma_termset: TermCodeSet
    # Codes dropped from the lymphoma term set by the extra exclude
    removed_codes: CodeSet
    # (patients, events) after each cleaning step
    counts: Dict[str, tuple] = field(default_factory=dict)

    def save(self, overwrite: bool = False, config: Optional[Dict[str, Any]] = None) -> None:
        self.patients.save(PATIENTS_CLEAN, config)
        self.events.save(EVENTS_CLEAN, config)
        self.lymphoma_termset.save(LYMPHOMA_CLEAN, overwrite, config)

    def summary(self, adapts: Optional[Adapts] = None) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            step: {"patients": p, "events": e} for step, (p, e) in self.counts.items()
        }
        out["codes removed"] = str(self.removed_codes)
        out["patients with ethnicity"] = sum(1 for p in self.patients if p.ethnicity is not None)
        if adapts is not None:
            out["patients with ADAPT info"] = len(adapts)
            out["of which in dataset"] = sum(
                1 for a in adapts if self.patients.find_by_id(a.patient_id) is not None
            )
        return out


def clean_data(
    patients: Patients,
    events: Events,
    thesaurus: Thesaurus,
    lymphoma_termset: TermCodeSet,
) -> CleanResult:
    """Apply the cleaning steps and return the reduced dataset.

    The inputs are left unchanged apart from *lymphoma_termset*, which gains
    the ``lymphomatoid papulosis`` exclude.
    """
    counts = {"before cleaning": (len(patients), len(events))}
    code_rubrics = CodeRubricCounts.from_events(events, thesaurus)

    old_codes = lymphoma_termset.code_set.copy()
    lymphoma_termset.add_exclude(EXCLUDED_TERM)
    removed = old_codes - lymphoma_termset.code_set
    logger.info("Excluding %r removed %d lymphoma codes", EXCLUDED_TERM, len(removed))

    code_set = lymphoma_termset.code_set
    kept = {e.patient_id for e in events if code_set.contains(e.read_code)}
    patients = patients.filter(lambda p: p.patient_id in kept)
    events = events.filter(lambda e: e.patient_id in kept)
    counts["lymphoma code present"] = (len(patients), len(events))

    kept = code_rubrics.filter(
        lambda cr: cr.code_rubric.code not in CODES_TO_REMOVE
    ).all_patient_ids()
    patients = patients.filter(lambda p: p.patient_id in kept)
    events = events.filter(lambda e: e.patient_id in kept)
    counts["removed codes"] = (len(patients), len(events))

    kept = code_rubrics.filter(
        lambda cr: cr.code_rubric.rubric not in RUBRICS_TO_REMOVE
    ).all_patient_ids()
    patients = patients.filter(lambda p: p.patient_id in kept)
    events = events.filter(lambda e: e.patient_id in kept)
    counts["final dataset"] = (len(patients), len(events))

    for step, (n_patients, n_events) in counts.items():
        logger.info("%s: %d patients, %d events", step, n_patients, n_events)
    return CleanResult(patients, events, lymphoma_termset, removed, counts)
