"""
Coded events from the primary care record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union

import pandas as pd

from ..errors import ParseError
from ..read2.code import CodeRubric, ReadCode
from ..read2.codeset import CodeSet
from .io import load_table, optional_string, read_orig_csv, save_table

logger = logging.getLogger(__name__)

EVENT_COLUMNS = ["PatID", "EntryDate", "ReadCode", "Rubric", "CodeValue", "CodeUnits", "Source"]

# Missing entry dates are recorded as this placeholder
PLACEHOLDER_DATE = date(1900, 1, 1)


@dataclass(frozen=True)
class Event:
    """A row of the events table."""

    patient_id: int
    date: date
    read_code: ReadCode
    rubric: str
    code_value: Optional[str] = None
    code_units: Optional[str] = None
    source: str = ""

    def code_rubric(self) -> CodeRubric:
        return CodeRubric(self.read_code, self.rubric)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "date": self.date.isoformat(),
            "read_code": str(self.read_code),
            "rubric": self.rubric,
            "code_value": self.code_value,
            "code_units": self.code_units,
            "source": self.source,
        }


class Events:
    """Events with an index from patient id to that patient's events.

    ``copy()`` shares the underlying list; ``retain`` replaces it, so clones
    never see each other's edits.
    """

    def __init__(self, events: Iterable[Event] = ()):
        self._els: List[Event] = list(events)
        self._rebuild_index()

    def _rebuild_index(self) -> None:
        self._idx: Dict[int, List[int]] = {}
        for i, event in enumerate(self._els):
            self._idx.setdefault(event.patient_id, []).append(i)

    # ------------------------------------------------------------------
    # Loading and saving
    # ------------------------------------------------------------------

    @classmethod
    def load_orig(
        cls, path: Union[str, Path], config: Optional[Dict[str, Any]] = None
    ) -> "Events":
        """Load the events CSV of the original extract.

        Rows whose Read code does not parse are dropped.
        """
        df = read_orig_csv(path, EVENT_COLUMNS, config)
        try:
            dates = pd.to_datetime(df["EntryDate"], format="%Y-%m-%d").dt.date
            ids = df["PatID"].astype(int)
        except ValueError as exc:
            raise ParseError(f'while loading "{path}": {exc}') from exc

        events = []
        dropped = 0
        for pid, entry_date, code, rubric, value, units, source in zip(
            ids, dates, df["ReadCode"], df["Rubric"], df["CodeValue"], df["CodeUnits"], df["Source"]
        ):
            read_code = ReadCode.try_parse(code)
            if read_code is None:
                dropped += 1
                continue
            events.append(
                Event(
                    patient_id=int(pid),
                    date=entry_date,
                    read_code=read_code,
                    rubric=rubric,
                    code_value=optional_string(value),
                    code_units=optional_string(units),
                    source=source,
                )
            )
        if dropped:
            logger.info("Dropped %d events without a valid Read code", dropped)
        logger.info("Loaded %d events from %s", len(events), path)
        return cls(events)

    @classmethod
    def load(cls, path: Union[str, Path], config: Optional[Dict[str, Any]] = None) -> "Events":
        return cls(load_table(path, config))

    def save(self, path: Union[str, Path], config: Optional[Dict[str, Any]] = None) -> Path:
        return save_table(self._els, path, config)

    # ------------------------------------------------------------------
    # Collection API
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._els)

    def __iter__(self) -> Iterator[Event]:
        return iter(self._els)

    def __getitem__(self, idx: int) -> Event:
        return self._els[idx]

    def copy(self) -> "Events":
        other = Events.__new__(Events)
        other._els = self._els
        other._idx = self._idx
        return other

    def events_for_patient(self, patient_id: int) -> List[Event]:
        return [self._els[i] for i in self._idx.get(patient_id, ())]

    def patient_ids(self) -> List[int]:
        return sorted(self._idx)

    def filter(self, predicate: Callable[[Event], bool]) -> "Events":
        return Events(e for e in self._els if predicate(e))

    def retain(self, predicate: Callable[[Event], bool]) -> None:
        self._els = [e for e in self._els if predicate(e)]
        self._rebuild_index()

    def filter_by_codeset(self, code_set: CodeSet) -> "Events":
        """Only the events whose code is in *code_set*."""
        return self.filter(lambda e: code_set.contains(e.read_code))

    def filter_by_patient_id(self, patient_id: int) -> "Events":
        return Events(self.events_for_patient(patient_id))

    def earliest_event_for_patient(self, patient_id: int) -> Optional[date]:
        """Earliest dated event of a patient, ignoring the missing-date placeholder."""
        dates = [
            e.date for e in self.events_for_patient(patient_id) if e.date != PLACEHOLDER_DATE
        ]
        return min(dates) if dates else None

    def table(self) -> pd.DataFrame:
        return pd.DataFrame([e.to_dict() for e in self._els], columns=[
            "patient_id", "date", "read_code", "rubric", "code_value", "code_units", "source",
        ])

    def __repr__(self) -> str:
        return f"Events({len(self)} events, {len(self._idx)} patients)"
