"""
Every code/free-text combination in a set of events, with the patients who
have it. Used to curate the subtype mapping and to clean the dataset.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, FrozenSet, Iterable, Iterator, List, Set, Union

import pandas as pd

from ..read2.code import CodeRubric, ReadCode, show_descriptions
from ..read2.codeset import CodeSet

if TYPE_CHECKING:
    from ..read2.thesaurus import Thesaurus
    from .events import Events


@dataclass(frozen=True)
class CodeRubricCount:
    code_rubric: CodeRubric
    # Thesaurus descriptions of the code
    descriptions: FrozenSet[str]
    patient_ids: FrozenSet[int]


class CodeRubricCounts:
    """Code/rubric pairs in Read order, indexed by code."""

    def __init__(self, entries: Iterable[CodeRubricCount] = ()):
        self._els: List[CodeRubricCount] = list(entries)
        self._code_idx: Dict[ReadCode, List[int]] = {}
        for i, entry in enumerate(self._els):
            self._code_idx.setdefault(entry.code_rubric.code, []).append(i)

    @classmethod
    def from_events(cls, events: "Events", th: "Thesaurus") -> "CodeRubricCounts":
        patients: Dict[CodeRubric, Set[int]] = {}
        for event in events:
            patients.setdefault(event.code_rubric(), set()).add(event.patient_id)
        return cls(
            CodeRubricCount(
                code_rubric=cr,
                descriptions=th.get(cr.code) or frozenset(),
                patient_ids=frozenset(ids),
            )
            for cr, ids in sorted(patients.items())
        )

    def __len__(self) -> int:
        return len(self._els)

    def __iter__(self) -> Iterator[CodeRubricCount]:
        return iter(self._els)

    def all_patient_ids(self) -> Set[int]:
        """Every patient with at least one of the pairs."""
        ids: Set[int] = set()
        for entry in self._els:
            ids |= entry.patient_ids
        return ids

    def filter(self, predicate: Callable[[CodeRubricCount], bool]) -> "CodeRubricCounts":
        return CodeRubricCounts(e for e in self._els if predicate(e))

    def filter_by_codeset(self, code_set: CodeSet) -> "CodeRubricCounts":
        return self.filter(lambda e: code_set.contains(e.code_rubric.code))

    def find_by_code(self, code: Union[ReadCode, str]) -> List[CodeRubricCount]:
        """All pairs with *code*. Raises ``InvalidCodeError`` for a bad code."""
        code = ReadCode.parse(code)
        return [self._els[i] for i in self._code_idx.get(code, ())]

    def table(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                (
                    str(e.code_rubric.code),
                    e.code_rubric.rubric,
                    len(e.patient_ids),
                    show_descriptions(e.descriptions),
                )
                for e in self._els
            ],
            columns=["Read code", "rubric (free text)", "number of patients", "thesaurus"],
        )
