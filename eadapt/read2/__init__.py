"""
Read v2 terminology: codes, code sets, the thesaurus and term sets.
"""

from .code import CodeRubric, ReadCode, show_descriptions
from .codeset import CodeSet, CodeSetMatcher
from .termset import CheckReport, FilterSet, TermCodeSet, TermSet, User
from .thesaurus import Thesaurus

__all__ = [
    "CheckReport",
    "CodeRubric",
    "CodeSet",
    "CodeSetMatcher",
    "FilterSet",
    "ReadCode",
    "TermCodeSet",
    "TermSet",
    "Thesaurus",
    "User",
    "show_descriptions",
]
