"""
The Read v2 thesaurus: every known code with its set of descriptions.

Codes are kept in Read order, so the descendants of a code form a contiguous
run directly after it. Descendant queries are a binary search followed by a
scan that stops at the first code outside the subtree.
"""

from __future__ import annotations

import logging
import pickle
from bisect import bisect_right
from concurrent.futures import ThreadPoolExecutor
from itertools import islice
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)

import pandas as pd

from ..config import resolve_path
from ..errors import AlreadyExistsError, ThesaurusLoadError, with_context
from .code import ReadCode
from .codeset import CodeSet

if TYPE_CHECKING:
    from .termset.termcodeset import TermCodeSet
    from .termset.termset import TermSet

logger = logging.getLogger(__name__)

Descriptions = FrozenSet[str]

# Column layout of the Read browser ``drugs.txt``/``nondrugs.txt`` exports
READ_BROWSER_COLUMNS = [
    "term",
    "unknown",
    "description_short",
    "description_med",
    "description_long",
    "synonym",
    "lang",
    "code",
    "unknown2",
]
DESCRIPTION_COLUMNS = ["description_short", "description_med", "description_long"]


class Thesaurus:
    """Read-only map from :class:`ReadCode` to its descriptions.

    One instance is loaded per run and shared; it is never mutated after
    construction, so passing it around does not copy anything.
    """

    def __init__(self, codes: Mapping[ReadCode, Iterable[str]]):
        self._codes: Dict[ReadCode, Descriptions] = {
            code: frozenset(descriptions) for code, descriptions in codes.items()
        }
        self._keys: List[ReadCode] = sorted(self._codes)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def load(
        cls,
        path: Optional[Union[str, Path]] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> "Thesaurus":
        """Load the precomputed snapshot written by :meth:`save`.

        Raises:
            ThesaurusLoadError: The snapshot is missing or corrupt. The
                thesaurus is a prerequisite of every analysis, so callers are
                expected to let this end the run.
        """
        path = Path(path) if path is not None else resolve_path(config, "thesaurus_path")
        logger.info("Loading thesaurus from %s", path)
        try:
            with open(path, "rb") as fh:
                data = pickle.load(fh)
        except (
            OSError,
            pickle.UnpicklingError,
            EOFError,
            AttributeError,
            ImportError,
            IndexError,
            KeyError,
            TypeError,
            ValueError,
        ) as exc:
            raise ThesaurusLoadError(f'loading thesaurus from "{path}": {exc}') from exc
        if not isinstance(data, dict):
            raise ThesaurusLoadError(
                f'loading thesaurus from "{path}": expected a code map, found {type(data).__name__}'
            )
        try:
            return cls({ReadCode.parse(code): _descriptions(descs) for code, descs in data.items()})
        except (TypeError, ValueError) as exc:
            raise ThesaurusLoadError(f'loading thesaurus from "{path}": {exc}') from exc

    def save(self, path: Union[str, Path], overwrite: bool = False) -> None:
        """Write a snapshot that :meth:`load` can read back."""
        path = Path(path)
        with with_context(f'saving thesaurus to "{path}"'):
            if path.exists() and not overwrite:
                raise AlreadyExistsError("file already exists")
            path.parent.mkdir(parents=True, exist_ok=True)
            data = {code.value: sorted(descs) for code, descs in self.iter()}
            with open(path, "wb") as fh:
                pickle.dump(data, fh, protocol=pickle.HIGHEST_PROTOCOL)
        logger.info("Saved %d thesaurus codes to %s", len(self), path)

    @classmethod
    def import_read_browser(
        cls,
        drugs_path: Union[str, Path],
        nondrugs_path: Union[str, Path],
    ) -> "Thesaurus":
        """Build a thesaurus from the Read browser text exports.

        Args:
            drugs_path: ``|``-delimited drug codes.
            nondrugs_path: ``,``-delimited non-drug codes.

        Returns:
            A thesaurus holding every non-empty description of every code.
        """
        codes: Dict[ReadCode, set] = {}
        for path, sep in ((drugs_path, "|"), (nondrugs_path, ",")):
            with with_context(f'importing Read browser file "{path}"'):
                df = _read_browser_table(Path(path), sep)
                for row in df.itertuples(index=False):
                    code = ReadCode.parse(row.code)
                    entry = codes.setdefault(code, set())
                    for column in DESCRIPTION_COLUMNS:
                        text = getattr(row, column)
                        if text:
                            entry.add(text)
            logger.info("Imported %s, %d codes so far", path, len(codes))
        return cls(codes)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, code: ReadCode) -> Optional[Descriptions]:
        return self._codes.get(code)

    def __contains__(self, code: object) -> bool:
        return code in self._codes

    def __len__(self) -> int:
        return len(self._keys)

    def iter(self) -> Iterator[Tuple[ReadCode, Descriptions]]:
        """``(code, descriptions)`` pairs in Read order."""
        for code in self._keys:
            yield code, self._codes[code]

    __iter__ = iter

    def iter_descendants(self, parent: ReadCode) -> Iterator[Tuple[ReadCode, Descriptions]]:
        """Every code below *parent*, excluding *parent* itself."""
        start = bisect_right(self._keys, parent)
        for code in islice(self._keys, start, None):
            if not parent.is_parent_of(code):
                break
            yield code, self._codes[code]

    # ------------------------------------------------------------------
    # Term set matching
    # ------------------------------------------------------------------

    def filter(self, term_set: "TermSet") -> "TermCodeSet":
        """All codes whose descriptions satisfy *term_set*."""
        from .termset.termcodeset import TermCodeSet

        code_set = CodeSet(code for code, _ in term_set.filter(self.iter()))
        return TermCodeSet(code_set, term_set, self)

    def parallel_filter(self, term_set: "TermSet", workers: Optional[int] = None) -> "TermCodeSet":
        """Same result as :meth:`filter`, matching chunks of codes on a thread pool."""
        from .termset.termcodeset import TermCodeSet

        workers = workers or 4
        chunk = max(1, -(-len(self._keys) // workers))
        chunks = [self._keys[i:i + chunk] for i in range(0, len(self._keys), chunk)]

        def match_chunk(keys: List[ReadCode]) -> set:
            return {code for code in keys if term_set.is_match_multi(self._codes[code])}

        matched: set = set()
        with ThreadPoolExecutor(max_workers=workers) as pool:
            for part in pool.map(match_chunk, chunks):
                matched |= part
        return TermCodeSet(CodeSet(matched), term_set, self)

    def table(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "code": [str(code) for code in self._keys],
                "descriptions": [sorted(self._codes[code]) for code in self._keys],
            }
        )

    def __repr__(self) -> str:
        return f"Thesaurus({len(self)} codes)"


def _read_browser_table(path: Path, sep: str) -> pd.DataFrame:
    df = pd.read_csv(
        path,
        sep=sep,
        header=None,
        names=READ_BROWSER_COLUMNS,
        dtype=str,
        keep_default_na=False,
    )
    unexpected = set(df["lang"].str.strip().str.upper()) - {"EN"}
    if unexpected:
        raise ValueError(f"unexpected language values {sorted(unexpected)}")
    return df.apply(lambda column: column.str.strip())


def _descriptions(value: Any) -> Descriptions:
    if isinstance(value, (str, bytes)):
        raise TypeError(f"expected a list of descriptions, found {type(value).__name__}")
    descriptions = frozenset(value)
    if not all(isinstance(d, str) for d in descriptions):
        raise TypeError("descriptions must be strings")
    return descriptions
