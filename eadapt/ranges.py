"""
Half-open ranges for bucketing values such as ages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Optional, Tuple


@dataclass(frozen=True)
class Range:
    """``[lo, hi)``, or ``[lo, inf)`` when *hi* is ``None``."""

    lo: Any
    hi: Optional[Any] = None

    def __post_init__(self) -> None:
        if self.hi is not None and self.lo >= self.hi:
            raise ValueError("ranges must go from low to high")

    def contains(self, value: Any) -> bool:
        if self.hi is None:
            return value >= self.lo
        return self.lo <= value < self.hi

    __contains__ = contains

    def __str__(self) -> str:
        if self.hi is None:
            return f"{self.lo}+"
        return f"{self.lo} - {self.hi}"


class RangeSet:
    """An ordered list of ranges. Ranges may overlap."""

    def __init__(self, ranges: Iterable[Range] = ()):
        self._ranges: List[Range] = list(ranges)

    def push(self, r: Range) -> None:
        self._ranges.append(r)

    def __iter__(self) -> Iterator[Range]:
        return iter(self._ranges)

    def __len__(self) -> int:
        return len(self._ranges)

    def bucket_values(self, values: Iterable[Any]) -> "RangeSetCounts":
        """Count values per range; a value is counted in every range containing it."""
        counts = [0] * len(self._ranges)
        for value in values:
            for i, r in enumerate(self._ranges):
                if r.contains(value):
                    counts[i] += 1
        return RangeSetCounts(list(self._ranges), counts)

    def bucket_values_with_missing(self, values: Iterable[Optional[Any]]) -> "RangeSetCounts":
        """Like :meth:`bucket_values`, with a trailing bucket counting ``None``."""
        counts = [0] * (len(self._ranges) + 1)
        for value in values:
            if value is None:
                counts[-1] += 1
                continue
            for i, r in enumerate(self._ranges):
                if r.contains(value):
                    counts[i] += 1
        return RangeSetCounts(list(self._ranges) + [None], counts)


@dataclass
class RangeSetCounts:
    """Bucket sizes per range; a ``None`` range is the missing-data bucket."""

    ranges: List[Optional[Range]]
    counts: List[int]

    def __iter__(self) -> Iterator[Tuple[Optional[Range], int]]:
        return iter(zip(self.ranges, self.counts))

    def for_display(self) -> List[Tuple[str, int]]:
        return [(str(r) if r is not None else "missing data", n) for r, n in self]
