"""
Read v2 codes.

The codes themselves expose the hierarchy: ``2X...`` is a parent of ``2X3..``
and of ``2XFAD``. A ``.`` stands for "any descendant", so a code with a ``.``
in fifth position has children.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Union

from ..errors import InvalidCodeError

if TYPE_CHECKING:
    from ..records.events import Event

CODE_LEN = 5
SYNONYM_LEN = 7


def _is_read_char(ch: str) -> bool:
    return ch == "." or (ch.isascii() and ch.isalnum())


@dataclass(frozen=True, order=True)
class ReadCode:
    """A five character Read v2 code.

    Ordering is position by position with ``.`` before every other character,
    so a parent sorts immediately before all of its descendants. For the
    ASCII alphabet ``[A-Za-z0-9.]`` that is plain string ordering, which the
    generated comparison methods rely on.

    Seven character input (a code plus a two digit synonym suffix) is
    accepted and truncated.
    """

    value: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _validate(self.value))

    @classmethod
    def parse(cls, value: Union[str, bytes, "ReadCode"]) -> "ReadCode":
        """Parse *value*, raising :class:`InvalidCodeError` if it isn't a code."""
        if isinstance(value, ReadCode):
            return value
        if isinstance(value, bytes):
            try:
                value = value.decode("ascii")
            except UnicodeDecodeError as exc:
                raise InvalidCodeError("Read codes contain characters [a-zA-Z0-9.]") from exc
        return cls(value)

    @classmethod
    def try_parse(cls, value: Union[str, bytes, None]) -> Optional["ReadCode"]:
        """Like :meth:`parse` but returns ``None`` for invalid input."""
        if value is None:
            return None
        try:
            return cls.parse(value)
        except InvalidCodeError:
            return None

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    def has_children(self) -> bool:
        return self.value[4] == "."

    def is_child_of(self, parent: "ReadCode") -> bool:
        if self == parent:
            return False
        return all(p == "." or c == p for c, p in zip(self.value, parent.value))

    def is_parent_of(self, child: "ReadCode") -> bool:
        return child.is_child_of(self)

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"ReadCode({self.value!r})"


def _validate(value: str) -> str:
    if not isinstance(value, str):
        raise InvalidCodeError(f"expected a Read code string, found {type(value).__name__}")
    if len(value) == CODE_LEN:
        if not all(_is_read_char(ch) for ch in value):
            raise InvalidCodeError(f"read codes contain characters [a-zA-Z0-9.], found {value!r}")
        return value
    if len(value) == SYNONYM_LEN:
        if not all(_is_read_char(ch) for ch in value[:CODE_LEN]):
            raise InvalidCodeError(f"Read codes contain characters [a-zA-Z0-9.], found {value!r}")
        if not all(ch in "0123456789" for ch in value[CODE_LEN:]):
            raise InvalidCodeError(f"Read code synonyms contain only numbers, found {value!r}")
        return value[:CODE_LEN]
    raise InvalidCodeError(
        f"expected a 5 or 7 characters long ascii string, found {len(value)}"
    )


@dataclass(frozen=True, order=True)
class CodeRubric:
    """A code and the free text entered alongside it."""

    code: ReadCode
    rubric: str

    @classmethod
    def from_event(cls, event: "Event") -> "CodeRubric":
        return cls(event.read_code, event.rubric)

    def __str__(self) -> str:
        return f"{self.code} {self.rubric!r}"


def show_descriptions(descriptions) -> str:
    """Render a description set as ``"a", "b"`` in sorted order."""
    return ", ".join(f'"{desc}"' for desc in sorted(descriptions))
