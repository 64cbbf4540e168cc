"""
Term filters: parsing search phrases and compiling them to regexes.

The search rules follow doi:10.1371/journal.pone.0212291:

- matching is case insensitive
- the text is split on whitespace; quotes keep a phrase together
- every word must be present, in any order
- a word matches whole words only (``foo`` matches ``foo`` but not ``foobar``)
- ``*`` stands for zero or more characters and allows partial words
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Union

from ...errors import FilterSyntaxError, with_context
from .lexer import TokenKind, tokenize


class Asterisk:
    """Wildcard marker inside a :class:`Term`."""

    def __repr__(self) -> str:
        return "Asterisk"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Asterisk)

    def __hash__(self) -> int:
        return hash(Asterisk)


ASTERISK = Asterisk()

TermPart = Union[str, Asterisk]


@dataclass
class Term:
    """One whitespace-delimited word: literal segments and wildcards."""

    parts: List[TermPart] = field(default_factory=list)

    def push_literal(self, literal: str) -> "Term":
        self.parts.append(literal)
        return self

    def push_asterisk(self) -> "Term":
        self.parts.append(ASTERISK)
        return self

    def to_regex(self) -> str:
        """Regex source for this term.

        A leading ``*`` drops the word boundary at the start; a trailing one
        drops it at the end; an inner one becomes ``\\S*``.
        """
        parts = list(self.parts)
        out = []
        if parts and isinstance(parts[0], Asterisk):
            parts = parts[1:]
        else:
            out.append(r"\b")
        for idx, part in enumerate(parts):
            is_last = idx == len(parts) - 1
            if isinstance(part, Asterisk):
                if not is_last:
                    out.append(r"\S*")
            else:
                out.append(re.escape(part))
                if is_last:
                    out.append(r"\b")
        return "".join(out)


@dataclass
class TermFilter:
    """A parsed filter expression: all of its terms must match."""

    terms: List[Term] = field(default_factory=list)

    def push(self, term: Term) -> "TermFilter":
        self.terms.append(term)
        return self

    @classmethod
    def parse(cls, text: str) -> "TermFilter":
        with with_context("error parsing termset filter"):
            return _parse(text)

    def codegen(self) -> "Filter":
        return Filter([re.compile(term.to_regex(), re.IGNORECASE) for term in self.terms])


class Filter:
    """A set of regexes that must all match."""

    def __init__(self, patterns: List[re.Pattern]):
        self._patterns = patterns

    def is_match(self, text: str) -> bool:
        return all(pattern.search(text) for pattern in self._patterns)

    def patterns(self) -> List[str]:
        return [pattern.pattern for pattern in self._patterns]

    def __repr__(self) -> str:
        return f"Filter({self.patterns()!r})"


class FilterSet:
    """Compiled filters for a list of term strings; any one may match."""

    def __init__(self, filters: List[Filter]):
        self._filters = filters

    @classmethod
    def from_terms(cls, terms: Iterable[str]) -> "FilterSet":
        return cls([TermFilter.parse(term).codegen() for term in terms])

    def is_match(self, text: str) -> bool:
        return any(f.is_match(text) for f in self._filters)

    @property
    def filters(self) -> List[Filter]:
        return list(self._filters)

    def __len__(self) -> int:
        return len(self._filters)


def _parse(text: str) -> TermFilter:
    term_filter = TermFilter()
    current = Term()
    for token in tokenize(text):
        if token.kind is TokenKind.WHITESPACE:
            if current.parts:
                term_filter.push(current)
                current = Term()
        elif token.kind is TokenKind.ASTERISK:
            current.push_asterisk()
        else:
            current.push_literal(token.value)
    if current.parts:
        term_filter.push(current)
    if not term_filter.terms:
        raise FilterSyntaxError("expected at least one term")
    return term_filter

