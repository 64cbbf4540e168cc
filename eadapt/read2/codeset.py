"""
Sets of Read codes, and a matcher built from them for scanning event streams.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Optional, Union

import pandas as pd
from flashtext import KeywordProcessor

from ..errors import AlreadyExistsError, with_context
from .code import ReadCode, show_descriptions

if TYPE_CHECKING:
    from ..records.events import Events
    from .thesaurus import Thesaurus

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class CodeSet:
    """An ordered, deduplicated set of codes.

    Copies share storage until one of them is modified, so handing out a
    ``copy()`` is cheap and edits to it never show through in the original.
    """

    __slots__ = ("_codes", "_shared", "_sorted")

    def __init__(self, codes: Iterable[Union[ReadCode, str]] = ()):
        self._codes = {ReadCode.parse(code) for code in codes}
        self._shared = False
        self._sorted: Optional[List[ReadCode]] = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: PathLike, overwrite: bool = False) -> None:
        """Save to a list of codes, one per line."""
        path = Path(path)
        with with_context(f'error writing codeset to file "{path}"'):
            if path.exists() and not overwrite:
                raise AlreadyExistsError("file already exists")
            with open(path, "w", encoding="utf-8") as fh:
                for code in self:
                    fh.write(f"{code}\n")
        logger.debug("Wrote %d codes to %s", len(self), path)

    @classmethod
    def load(cls, path: PathLike) -> "CodeSet":
        """Load a list of codes, one per line. Blank lines are skipped."""
        path = Path(path)
        with with_context(f'loading codeset from file "{path}"'):
            with open(path, encoding="utf-8") as fh:
                return cls(line.strip() for line in fh if line.strip())

    @classmethod
    def load_camb(cls, path: PathLike) -> "CodeSet":
        """Load a codeset in the CPRD@Cambridge medcode CSV format.

        Only rows whose fourth column is ``readcode`` are kept; the code is
        in the second column.
        """
        path = Path(path)
        with with_context(f'loading codeset from file "{path}"'):
            df = pd.read_csv(path, dtype=str, keep_default_na=False)
            if df.shape[1] < 4:
                raise ValueError(f"expected at least 4 columns, found {df.shape[1]}")
            rows = df[df.iloc[:, 3] == "readcode"]
            return cls(rows.iloc[:, 1])

    # ------------------------------------------------------------------
    # Set API
    # ------------------------------------------------------------------

    def contains(self, code: ReadCode) -> bool:
        return code in self._codes

    def __contains__(self, code: object) -> bool:
        return code in self._codes

    def __len__(self) -> int:
        return len(self._codes)

    def __iter__(self) -> Iterator[ReadCode]:
        if self._sorted is None:
            self._sorted = sorted(self._codes)
        return iter(self._sorted)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CodeSet):
            return self._codes == other._codes
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def insert(self, code: Union[ReadCode, str]) -> None:
        self._make_mut().add(ReadCode.parse(code))

    def remove(self, code: Union[ReadCode, str]) -> None:
        """Remove *code* if present."""
        code = ReadCode.parse(code)
        if code in self._codes:
            self._make_mut().discard(code)

    def copy(self) -> "CodeSet":
        other = CodeSet.__new__(CodeSet)
        other._codes = self._codes
        other._sorted = self._sorted
        other._shared = True
        self._shared = True
        return other

    def __sub__(self, other: "CodeSet") -> "CodeSet":
        """Set minus: codes in ``self`` that are not in *other*."""
        return CodeSet(self._codes - other._codes)

    def into_matcher(self) -> "CodeSetMatcher":
        return CodeSetMatcher(self)

    def table(self, thesaurus: Optional["Thesaurus"] = None) -> pd.DataFrame:
        """Tabulate the codes, with their descriptions when *thesaurus* is given."""
        codes = [str(code) for code in self]
        if thesaurus is None:
            return pd.DataFrame({"code": codes})
        descriptions = [show_descriptions(thesaurus.get(code) or ()) for code in self]
        return pd.DataFrame({"code": codes, "descriptions": descriptions})

    def __str__(self) -> str:
        return "{" + ", ".join(str(code) for code in self) + "}"

    def __repr__(self) -> str:
        return f"CodeSet({self})"

    def _make_mut(self) -> set:
        if self._shared:
            self._codes = set(self._codes)
            self._shared = False
        self._sorted = None
        return self._codes


class CodeSetMatcher:
    """A code set compiled into a flashtext keyword trie.

    Matching a code is a single walk over its five characters. Only whole
    keywords count, so a hit is exact membership: children of a code in the
    set are not matched unless listed themselves.
    """

    def __init__(self, code_set: CodeSet):
        self._code_set = code_set.copy()
        self._processor = KeywordProcessor(case_sensitive=True)
        for code in self._code_set:
            self._processor.add_keyword(code.value)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def code_set(self) -> CodeSet:
        return self._code_set.copy()

    def contains(self, code: ReadCode) -> bool:
        return code.value in self._processor

    def __contains__(self, code: object) -> bool:
        return isinstance(code, ReadCode) and self.contains(code)

    def __len__(self) -> int:
        return len(self._code_set)

    def __iter__(self) -> Iterator[ReadCode]:
        return iter(self._code_set)

    def earliest_code(self, events: "Events") -> Dict[int, date]:
        """First date on which each patient had a code from this set."""
        dates: Dict[int, date] = {}
        for event in events:
            if self.contains(event.read_code):
                current = dates.get(event.patient_id)
                if current is None or event.date < current:
                    dates[event.patient_id] = event.date
        return dates

    def latest_code(self, events: "Events") -> Dict[int, date]:
        """Last date on which each patient had a code from this set."""
        dates: Dict[int, date] = {}
        for event in events:
            if self.contains(event.read_code):
                current = dates.get(event.patient_id)
                if current is None or event.date > current:
                    dates[event.patient_id] = event.date
        return dates
