"""
Term sets: search terms for a clinical concept and the codes they select.
"""

from .filters import Filter, FilterSet, Term, TermFilter
from .lexer import Token, TokenKind, tokenize
from .termcodeset import CheckReport, TermCodeSet
from .termset import TermSet, User

__all__ = [
    "CheckReport",
    "Filter",
    "FilterSet",
    "Term",
    "TermCodeSet",
    "TermFilter",
    "TermSet",
    "Token",
    "TokenKind",
    "User",
    "tokenize",
]
