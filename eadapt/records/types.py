"""
Small categorical fields of the patient table.
"""

from __future__ import annotations

from enum import Enum
from typing import Union

from ..errors import ParseError


class Sex(Enum):
    """Recorded as ``M`` or ``F``; no other value occurs in the data."""

    MALE = "M"
    FEMALE = "F"

    @classmethod
    def parse(cls, text: str) -> "Sex":
        value = text.strip().upper()
        for member in cls:
            if member.value == value:
                return member
        raise ParseError(f"unknown sex {text!r}, expected M or F")

    @property
    def rank(self) -> int:
        return 0 if self is Sex.MALE else 1

    def __lt__(self, other: "Sex") -> bool:
        if not isinstance(other, Sex):
            return NotImplemented
        return self.rank < other.rank

    def __str__(self) -> str:
        return "Male" if self is Sex.MALE else "Female"


class Imd(Enum):
    """Index of multiple deprivation decile; 1 is the most deprived 10%."""

    MISSING = 0
    D1 = 1
    D2 = 2
    D3 = 3
    D4 = 4
    D5 = 5
    D6 = 6
    D7 = 7
    D8 = 8
    D9 = 9
    D10 = 10

    @classmethod
    def parse(cls, text: Union[str, float, int, None]) -> "Imd":
        """``null`` and empty values are missing; otherwise a whole number 1-10."""
        if text is None:
            return cls.MISSING
        value = str(text).strip()
        if value == "" or value.lower() == "null":
            return cls.MISSING
        try:
            number = float(value)
        except ValueError:
            raise ParseError(f"invalid IMD decile {text!r}") from None
        if number != number or number != int(number) or not 1 <= number <= 10:
            raise ParseError(f"invalid IMD decile {text!r}")
        return cls(int(number))

    def __lt__(self, other: "Imd") -> bool:
        if not isinstance(other, Imd):
            return NotImplemented
        return self.value < other.value

    @property
    def label(self) -> str:
        if self is Imd.MISSING:
            return "missing"
        return f"{(self.value - 1) * 10}% - {self.value * 10}%"

    def __str__(self) -> str:
        return self.label
