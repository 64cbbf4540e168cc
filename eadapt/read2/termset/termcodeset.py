"""
A term set materialised against a thesaurus.

The code set is always recomputed in full from the term set after an edit, so
it can never drift from what the term set describes. :meth:`TermCodeSet.check`
audits a saved code set against the current thesaurus.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Iterable, Iterator, Optional, Tuple, Union

import pandas as pd

from ...config import termset_path
from ...errors import AlreadyExistsError, ConsistencyWarning, with_context
from ..code import ReadCode, show_descriptions
from ..codeset import CodeSet
from .termset import TermSet

if TYPE_CHECKING:
    from ..thesaurus import Thesaurus

logger = logging.getLogger(__name__)

CODES_FILE = "codes.txt"
EMPTY_DESCRIPTIONS: FrozenSet[str] = frozenset()


class TermCodeSet:
    """A code set together with the term set that produced it."""

    def __init__(self, code_set: CodeSet, term_set: TermSet, th: "Thesaurus"):
        self.code_set = code_set
        self.term_set = term_set
        self._th = th

    @property
    def thesaurus(self) -> "Thesaurus":
        return self._th

    def add_include(self, term: str) -> None:
        self.term_set.add_include(term)
        self._recompute()

    def add_exclude(self, term: str) -> None:
        self.term_set.add_exclude(term)
        self._recompute()

    def _recompute(self) -> None:
        self.code_set = CodeSet(code for code, _ in self.term_set.filter(self._th.iter()))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(
        self,
        name: Union[str, Path],
        overwrite: bool = False,
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Save under the configured term set directory as *name*."""
        self.save_direct(termset_path(name, config), overwrite)

    def save_direct(self, path: Union[str, Path], overwrite: bool = False) -> None:
        """Save to *path* without resolving it against the term set directory."""
        path = Path(path)
        if path.exists() and not overwrite:
            raise AlreadyExistsError(f'saving termcodeset "{path}": directory already exists')
        self.term_set.save(path, overwrite)
        self.code_set.save(path / CODES_FILE, overwrite)
        logger.info("Saved %d codes to %s", len(self.code_set), path)

    @classmethod
    def load(
        cls,
        name: Union[str, Path],
        th: "Thesaurus",
        config: Optional[Dict[str, Any]] = None,
    ) -> "TermCodeSet":
        return cls.load_direct(termset_path(name, config), th)

    @classmethod
    def load_direct(cls, path: Union[str, Path], th: "Thesaurus") -> "TermCodeSet":
        path = Path(path)
        term_set = TermSet.load(path)
        code_set = CodeSet.load(path / CODES_FILE)
        return cls(code_set, term_set, th)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def iter(self) -> Iterator[Tuple[ReadCode, FrozenSet[str]]]:
        for code in self.code_set:
            yield code, self._th.get(code) or EMPTY_DESCRIPTIONS

    __iter__ = iter

    def __len__(self) -> int:
        return len(self.code_set)

    def contains(self, code: ReadCode) -> bool:
        return self.code_set.contains(code)

    def is_match(self, descriptions: Iterable[str]) -> bool:
        return self.term_set.is_match_multi(descriptions)

    def descendants_not_included_or_excluded(self) -> CodeSet:
        """Descendants of included codes that no include or exclude term mentions.

        Term set authors should consider explicitly excluding these.
        """
        unmatched = set()
        for parent in self.code_set:
            for child, descriptions in self._th.iter_descendants(parent):
                if not any(self.term_set.is_match_inc_or_ex(d) for d in descriptions):
                    unmatched.add(child)
        return CodeSet(unmatched)

    def check(self) -> "CheckReport":
        """Audit the code set against the term set and thesaurus.

        Findings are reported, never raised: a non-empty report emits a
        :class:`ConsistencyWarning`.
        """
        report = CheckReport(self._th)
        for code in self.code_set:
            descriptions = self._th.get(code)
            if descriptions is None:
                report.missing_codes.insert(code)
            elif not self.is_match(descriptions):
                report.extra.insert(code)
        for code, descriptions in self._th.iter():
            if self.is_match(descriptions) and not self.code_set.contains(code):
                report.missing.insert(code)
        report.unmatched_descendants = self.descendants_not_included_or_excluded()

        if not report.is_clean:
            message = (
                f"termset {self.term_set.name!r}: {len(report.extra)} extra, "
                f"{len(report.missing)} missing, {len(report.missing_codes)} not in thesaurus, "
                f"{len(report.unmatched_descendants)} unmatched descendants"
            )
            logger.warning(message)
            warnings.warn(message, ConsistencyWarning, stacklevel=2)
        return report

    def table(self) -> pd.DataFrame:
        rows = [(str(code), show_descriptions(descs)) for code, descs in self.iter()]
        return pd.DataFrame(rows, columns=["code", "descriptions"])

    def __repr__(self) -> str:
        return f"TermCodeSet(name={self.term_set.name!r}, codes={len(self.code_set)})"


@dataclass
class CheckReport:
    """Result of :meth:`TermCodeSet.check`."""

    th: "Thesaurus"
    # In the code set but not matching the term set
    extra: CodeSet = field(default_factory=CodeSet)
    # Matching the term set but not in the code set
    missing: CodeSet = field(default_factory=CodeSet)
    unmatched_descendants: CodeSet = field(default_factory=CodeSet)
    # In the code set but not in the thesaurus
    missing_codes: CodeSet = field(default_factory=CodeSet)

    @property
    def is_clean(self) -> bool:
        return not (self.extra or self.missing or self.unmatched_descendants or self.missing_codes)

    def tables(self) -> Dict[str, pd.DataFrame]:
        """One titled table per finding, for display."""
        return {
            "Missing codes": self.missing.table(self.th),
            "Unexpected codes": self.extra.table(self.th),
            "Codes missing from thesaurus": self.missing_codes.table(),
            "Unmatched descendants": self.unmatched_descendants.table(self.th),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "extra": [str(c) for c in self.extra],
            "missing": [str(c) for c in self.missing],
            "unmatched_descendants": [str(c) for c in self.unmatched_descendants],
            "missing_codes": [str(c) for c in self.missing_codes],
        }
