"""
eADAPT needs analysis

Late effects of lymphoma treatment in primary care records: Read v2 term
sets, the study cohort, long-term conditions and monitoring adherence.
"""

from .config import DEFAULT_CONFIG, load_config
from .errors import (
    AlreadyExistsError,
    ConsistencyWarning,
    EadaptError,
    FilterSyntaxError,
    InvalidCodeError,
    LexError,
    ParseError,
    SchemaError,
    ThesaurusLoadError,
)
from .read2 import CodeSet, ReadCode, TermCodeSet, TermSet, Thesaurus
from .subtypes import CodeSubtypeMap, LymphomaSubtype, NonHodgkinSubtype

__version__ = "0.1.0"

__all__ = [
    "AlreadyExistsError",
    "CodeSet",
    "CodeSubtypeMap",
    "ConsistencyWarning",
    "DEFAULT_CONFIG",
    "EadaptError",
    "FilterSyntaxError",
    "InvalidCodeError",
    "LexError",
    "LymphomaSubtype",
    "NonHodgkinSubtype",
    "ParseError",
    "ReadCode",
    "SchemaError",
    "TermCodeSet",
    "TermSet",
    "Thesaurus",
    "ThesaurusLoadError",
    "load_config",
    "__version__",
]
