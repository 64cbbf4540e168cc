"""
Lymphoma subtypes and the allocation of patients to them.

Every code/free-text combination seen in the records was manually allocated
to the most appropriate subtype. The subtypes form a small hierarchy::

           lymphoma
          /        \\
      Hodgkin    non-Hodgkin
                      |
               non-Hodgkin subtypes...

Patients are allocated as follows:

1. Hodgkin and each specific non-Hodgkin subtype get every patient with at
   least one code from that subtype.
2. non-Hodgkin (unspecified) gets the patients with a non-Hodgkin code and no
   code from a specific non-Hodgkin subtype.
3. lymphoma (unspecified) gets the patients with a lymphoma code and no more
   specific code.

A patient is counted at most once per branch, at the most specific level
available, but may appear in several branches (e.g. Hodgkin and DLBCL) since
they may genuinely have had both. :meth:`CodeSubtypeMap.find_multiple`
reports those overlaps.
"""

from __future__ import annotations

import functools
import logging
import pickle
from enum import Enum
from itertools import product
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple, Union

import pandas as pd

from .errors import ParseError, with_context
from .read2.code import CodeRubric, ReadCode

if TYPE_CHECKING:
    from .records.events import Events

logger = logging.getLogger(__name__)

PatientIds = Set[int]
SUBTYPE_SHEET = "code_subtype_mapping"


class NonHodgkinSubtype(Enum):
    """Non-Hodgkin subtypes observed in the data.

    Labels follow the WHO classification of non-Hodgkin lymphomas (2016).
    Members are ordered by declaration.
    """

    UNSPECIFIED = ("unspecified", "non-Hodgkin lymphoma (unspecified)")
    SMALL = ("small", "Small lymphocytic lymphoma/chronic lymphocytic leukaemia")
    SPLENIC = ("splenic", "Splenic marginal zone lymphoma")
    LYMPHOPLASMACYTIC = ("lymphoplasmacytic", "Lymphoplasmacytic lymphoma")
    EXTRA_MARGINAL = (
        "extra_marginal",
        "Extranodal marginal zone lymphoma of mucosa-associated lymphoid",
    )
    FOLLICULAR = ("follicular", "Follicular lymphoma")
    MANTLE = ("mantle", "Mantle cell lymphoma")
    DLBCL = ("dlbcl", "Diffuse large B-cell lymphoma (DLBCL)")
    MEDIASTINAL = ("mediastinal", "Primary mediastinal (thymic) large B-cell lymphoma")
    BURKITT = ("burkitt", "Burkitt lymphoma")
    NASAL = ("nasal", "Extranodal NK/T-cell lymphoma, nasal type")
    SUBCUTANEOUS_T = ("subcutaneous_t", "Subcutaneous T-cell lymphoma")
    PERIPHERAL = ("peripheral", "Peripheral T-cell lymphoma")
    ANGIOIMMUNOBLASTIC = ("angioimmunoblastic", "Angioimmunoblastic T-cell lymphoma")
    ALK_POS = ("alk_pos", "Anaplastic large-cell lymphoma, ALK positive")
    ALK_NEG = ("alk_neg", "Anaplastic large-cell lymphoma, ALK negative")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def label(self) -> str:
        return self.value[1]

    @property
    def rank(self) -> int:
        return _NH_ORDER.index(self)

    def __lt__(self, other: "NonHodgkinSubtype") -> bool:
        if not isinstance(other, NonHodgkinSubtype):
            return NotImplemented
        return self.rank < other.rank

    @classmethod
    def parse(cls, text: str) -> "NonHodgkinSubtype":
        if text == "nonhodgkin":
            return cls.UNSPECIFIED
        for member in cls:
            if member is not cls.UNSPECIFIED and member.code == text:
                return member
        raise ParseError(f'unrecognised non-hodgkin subtype "{text}"')


_NH_ORDER: List[NonHodgkinSubtype] = list(NonHodgkinSubtype)


@functools.total_ordering
class LymphomaSubtype:
    """``lymphoma`` (unspecified), ``hodgkin``, or a non-Hodgkin subtype.

    Ordered unspecified < Hodgkin < non-Hodgkin, the latter by subtype.
    Instances are immutable and hashable; use the module constants
    :data:`UNSPECIFIED` and :data:`HODGKIN` or :meth:`non_hodgkin`.
    """

    __slots__ = ("_kind", "_sub")

    _UNSPECIFIED = 0
    _HODGKIN = 1
    _NON_HODGKIN = 2

    def __init__(self, kind: int, sub: Optional[NonHodgkinSubtype] = None):
        if (kind == self._NON_HODGKIN) != (sub is not None):
            raise ValueError("a non-Hodgkin subtype needs exactly one NonHodgkinSubtype")
        object.__setattr__(self, "_kind", kind)
        object.__setattr__(self, "_sub", sub)

    def __setattr__(self, name, value):
        raise AttributeError("LymphomaSubtype is immutable")

    @classmethod
    def non_hodgkin(cls, sub: NonHodgkinSubtype) -> "LymphomaSubtype":
        return cls(cls._NON_HODGKIN, sub)

    @property
    def sub(self) -> Optional[NonHodgkinSubtype]:
        return self._sub

    @property
    def is_non_hodgkin(self) -> bool:
        return self._kind == self._NON_HODGKIN

    @property
    def code(self) -> str:
        if self._kind == self._UNSPECIFIED:
            return "lymphoma"
        if self._kind == self._HODGKIN:
            return "hodgkin"
        return self._sub.code

    @property
    def label(self) -> str:
        if self._kind == self._UNSPECIFIED:
            return "Lymphoma (unspecified)"
        if self._kind == self._HODGKIN:
            return "Hodgkin lymphoma"
        return self._sub.label

    @classmethod
    def parse(cls, text: str) -> "LymphomaSubtype":
        value = text.strip()
        if value == "lymphoma":
            return UNSPECIFIED
        if value == "hodgkin":
            return HODGKIN
        try:
            return cls.non_hodgkin(NonHodgkinSubtype.parse(value))
        except ParseError:
            raise ParseError(f'didn\'t recognise lymphoma subtype "{text}"') from None

    def is_subtype_of(self, other: "LymphomaSubtype") -> bool:
        """Whether ``self`` is strictly more specific than *other*."""
        if other == UNSPECIFIED:
            return self != UNSPECIFIED
        if other == NH_UNSPECIFIED:
            return self.is_non_hodgkin and self != NH_UNSPECIFIED
        return False

    def _key(self) -> Tuple[int, int]:
        return (self._kind, self._sub.rank if self._sub is not None else -1)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LymphomaSubtype):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: "LymphomaSubtype") -> bool:
        if not isinstance(other, LymphomaSubtype):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __reduce__(self):
        return (LymphomaSubtype, (self._kind, self._sub))

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"LymphomaSubtype({self.code!r})"


UNSPECIFIED = LymphomaSubtype(LymphomaSubtype._UNSPECIFIED)
HODGKIN = LymphomaSubtype(LymphomaSubtype._HODGKIN)
NH_UNSPECIFIED = LymphomaSubtype.non_hodgkin(NonHodgkinSubtype.UNSPECIFIED)


class CodeSubtypeMap:
    """Curated mapping from a code/rubric pair to the subtype it denotes."""

    def __init__(self, mapping: Optional[Mapping[CodeRubric, LymphomaSubtype]] = None):
        self._map: Dict[CodeRubric, LymphomaSubtype] = dict(sorted((mapping or {}).items()))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Union[str, Path]) -> None:
        """Pickle as a list of ``(code, rubric, subtype code)`` triples."""
        path = Path(path)
        with with_context(f'saving subtype map to "{path}"'):
            path.parent.mkdir(parents=True, exist_ok=True)
            rows = [(str(cr.code), cr.rubric, subtype.code) for cr, subtype in self.items()]
            with open(path, "wb") as fh:
                pickle.dump(rows, fh, protocol=pickle.HIGHEST_PROTOCOL)
        logger.info("Saved %d code/rubric subtypes to %s", len(self), path)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "CodeSubtypeMap":
        path = Path(path)
        with with_context(f'loading subtype map from "{path}"'):
            with open(path, "rb") as fh:
                rows = pickle.load(fh)
            return cls(
                {
                    CodeRubric(ReadCode.parse(code), rubric): _parse_stored(label)
                    for code, rubric, label in rows
                }
            )

    @classmethod
    def from_excel(cls, path: Union[str, Path], sheet: str = SUBTYPE_SHEET) -> "CodeSubtypeMap":
        """Read the curated workbook: columns read code, rubric, subtype label."""
        path = Path(path)
        with with_context(f'importing subtypes from "{path}"'):
            df = pd.read_excel(path, sheet_name=sheet, dtype=str, keep_default_na=False)
            if df.shape[1] < 3:
                raise ParseError(f"expected 3 columns (read, rubric, label), found {df.shape[1]}")
            mapping = {}
            for code, rubric, label in df.iloc[:, :3].itertuples(index=False):
                key = CodeRubric(ReadCode.parse(code.strip()), rubric.strip())
                mapping[key] = LymphomaSubtype.parse(label)
        logger.info("Imported %d code/rubric subtypes from %s", len(mapping), path)
        return cls(mapping)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, code_rubric: CodeRubric) -> Optional[LymphomaSubtype]:
        return self._map.get(code_rubric)

    def __len__(self) -> int:
        return len(self._map)

    def __iter__(self) -> Iterator[CodeRubric]:
        return iter(self._map)

    def items(self) -> Iterable[Tuple[CodeRubric, LymphomaSubtype]]:
        return self._map.items()

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(self, events: "Events") -> Dict[LymphomaSubtype, PatientIds]:
        """Allocate each patient to the most specific subtype in each branch.

        The non-Hodgkin (unspecified) and lymphoma (unspecified) buckets are
        always present, possibly empty.
        """
        buckets: Dict[LymphomaSubtype, PatientIds] = {}
        for event in events:
            subtype = self._map.get(event.code_rubric())
            if subtype is not None:
                buckets.setdefault(subtype, set()).add(event.patient_id)

        specific_nh: PatientIds = set()
        for subtype, ids in buckets.items():
            if subtype.is_non_hodgkin and subtype != NH_UNSPECIFIED:
                specific_nh |= ids
        buckets[NH_UNSPECIFIED] = buckets.get(NH_UNSPECIFIED, set()) - specific_nh

        more_specific: PatientIds = set()
        for subtype, ids in buckets.items():
            if subtype != UNSPECIFIED:
                more_specific |= ids
        buckets[UNSPECIFIED] = buckets.get(UNSPECIFIED, set()) - more_specific

        return dict(sorted(buckets.items()))

    @staticmethod
    def find_multiple(
        mapping: Mapping[LymphomaSubtype, PatientIds],
    ) -> Dict[Tuple[LymphomaSubtype, LymphomaSubtype], PatientIds]:
        """Patients who belong to more than one subtype, per ordered pair."""
        overlaps = {}
        for (ty1, ids1), (ty2, ids2) in product(mapping.items(), repeat=2):
            if ty1 < ty2:
                shared = set(ids1) & set(ids2)
                if shared:
                    overlaps[(ty1, ty2)] = shared
        return dict(sorted(overlaps.items()))

    def table(self) -> pd.DataFrame:
        rows = [(str(cr.code), cr.rubric, str(subtype)) for cr, subtype in self.items()]
        return pd.DataFrame(rows, columns=["code", "rubric", "subtype"])

    def __repr__(self) -> str:
        return f"CodeSubtypeMap({len(self)} entries)"


def _parse_stored(code: str) -> LymphomaSubtype:
    # Stored codes use "unspecified" for the non-Hodgkin bucket
    if code == NonHodgkinSubtype.UNSPECIFIED.code:
        return NH_UNSPECIFIED
    return LymphomaSubtype.parse(code)
