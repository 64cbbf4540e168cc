"""
Exception types raised across the package.

Parse, schema and IO errors abort the operation that hit them. Consistency
findings are advisory: they are reported through :class:`ConsistencyWarning`
and never raised.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional, Tuple


class EadaptError(Exception):
    """Base class for errors raised by this package."""


class ParseError(EadaptError, ValueError):
    """Malformed input text (a code, a filter expression, a field value)."""


class InvalidCodeError(ParseError):
    """A string that is not a valid Read v2 code."""


class LexError(ParseError):
    """A term filter expression containing characters the lexer rejects."""

    def __init__(self, message: str, span: Tuple[int, int]):
        super().__init__(message)
        self.span = span


class FilterSyntaxError(ParseError):
    """A term filter expression that lexes but does not parse."""


class SchemaError(EadaptError, ValueError):
    """A persisted document with unknown, missing, duplicate or mistyped fields."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class AlreadyExistsError(EadaptError, FileExistsError):
    """Refusing to replace an existing artifact without ``overwrite``."""


class ThesaurusLoadError(EadaptError, OSError):
    """The thesaurus snapshot is missing or unreadable."""


class ConsistencyWarning(UserWarning):
    """A term-code set out of step with its term set or thesaurus."""


@contextmanager
def with_context(message: str) -> Iterator[None]:
    """Prefix errors raised inside the block with *message*.

    The re-raised error keeps the class of the original, so callers can
    still catch e.g. ``SchemaError`` or ``FileNotFoundError``.
    """
    try:
        yield
    except EadaptError as exc:
        raise _rebuild(exc, f"{message}: {exc}") from exc
    except OSError as exc:
        if exc.errno is None:
            raise type(exc)(f"{message}: {exc}") from exc
        raise type(exc)(exc.errno, f"{message}: {exc.strerror}", exc.filename) from exc


def _rebuild(exc: EadaptError, text: str) -> EadaptError:
    if isinstance(exc, LexError):
        return LexError(text, exc.span)
    if isinstance(exc, SchemaError):
        return SchemaError(text, field=exc.field)
    return type(exc)(text)
