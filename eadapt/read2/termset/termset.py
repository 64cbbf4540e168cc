"""
Term sets: versioned include/exclude search terms for a clinical concept.

The on-disk layout matches the ``meta.json`` used by getset.ga so that term
sets can be shared with other tools; the field names must not change.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
    Union,
)

import dateutil.parser

from ...errors import AlreadyExistsError, SchemaError, with_context
from ..code import ReadCode
from .filters import FilterSet

if TYPE_CHECKING:
    from ..thesaurus import Thesaurus
    from .termcodeset import TermCodeSet

logger = logging.getLogger(__name__)

TERMINOLOGY_READV2 = "Readv2"
DEFAULT_VERSION = "v20160401"
META_FILE = "meta.json"

FIELDS = (
    "includeTerms",
    "excludeTerms",
    "terminology",
    "name",
    "description",
    "version",
    "createdBy",
    "createdOn",
    "lastUpdated",
)
REQUIRED_FIELDS = (
    "includeTerms",
    "excludeTerms",
    "terminology",
    "version",
    "createdOn",
    "lastUpdated",
)


@dataclass(frozen=True)
class User:
    """The author of a term set."""

    name: str
    email: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "email": self.email}

    @classmethod
    def from_dict(cls, data: Any) -> "User":
        if not isinstance(data, dict):
            raise SchemaError("createdBy: expected an object", field="createdBy")
        unknown = set(data) - {"name", "email"}
        if unknown:
            raise SchemaError(f"createdBy: unknown field `{sorted(unknown)[0]}`", field="createdBy")
        for key in ("name", "email"):
            if not isinstance(data.get(key), str):
                raise SchemaError(f"createdBy: missing or invalid `{key}`", field="createdBy")
        return cls(name=data["name"], email=data["email"])


class TermSet:
    """Include and exclude terms plus their compiled filters.

    A description matches when it matches at least one include filter and no
    exclude filter. The compiled filters are derived state: every edit
    rebuilds them from the full term list, and loading always recompiles.
    """

    def __init__(
        self,
        name: Optional[str] = None,
        description: Optional[str] = None,
        include_terms: Iterable[str] = (),
        exclude_terms: Iterable[str] = (),
        created_by: Optional[User] = None,
        *,
        terminology: str = TERMINOLOGY_READV2,
        version: str = DEFAULT_VERSION,
        created_on: Optional[datetime] = None,
        last_updated: Optional[datetime] = None,
    ):
        now = datetime.now(timezone.utc)
        self._include_terms: List[str] = list(include_terms)
        self._exclude_terms: List[str] = list(exclude_terms)
        self._includes = FilterSet.from_terms(self._include_terms)
        self._excludes = FilterSet.from_terms(self._exclude_terms)
        self.terminology = terminology
        self.name = name
        self.description = description
        self.version = version
        self.created_by = created_by
        self.created_on = created_on or now
        self.last_updated = last_updated or now

    # ------------------------------------------------------------------
    # Terms
    # ------------------------------------------------------------------

    @property
    def include_terms(self) -> Tuple[str, ...]:
        return tuple(self._include_terms)

    @property
    def exclude_terms(self) -> Tuple[str, ...]:
        return tuple(self._exclude_terms)

    @property
    def include_filter(self) -> FilterSet:
        return self._includes

    @property
    def exclude_filter(self) -> FilterSet:
        return self._excludes

    def add_include(self, term: str) -> None:
        """Add an include term; the term is not kept if it fails to compile."""
        terms = self._include_terms + [term]
        self._includes = FilterSet.from_terms(terms)
        self._include_terms = terms
        self._touch()

    def remove_include(self, term: str) -> None:
        """Remove the last include equal to *term*. Absent terms are ignored."""
        terms = _without_last(self._include_terms, term)
        if terms is not None:
            self._includes = FilterSet.from_terms(terms)
            self._include_terms = terms
            self._touch()

    def add_exclude(self, term: str) -> None:
        """Add an exclude term; the term is not kept if it fails to compile."""
        terms = self._exclude_terms + [term]
        self._excludes = FilterSet.from_terms(terms)
        self._exclude_terms = terms
        self._touch()

    def remove_exclude(self, term: str) -> None:
        """Remove the last exclude equal to *term*. Absent terms are ignored."""
        terms = _without_last(self._exclude_terms, term)
        if terms is not None:
            self._excludes = FilterSet.from_terms(terms)
            self._exclude_terms = terms
            self._touch()

    def _touch(self) -> None:
        self.last_updated = datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def is_match(self, description: str) -> bool:
        return self._includes.is_match(description) and not self._excludes.is_match(description)

    def is_match_multi(self, descriptions: Iterable[str]) -> bool:
        """Whether a code with these descriptions belongs to the set.

        True if any description matches an include and none matches an
        exclude.
        """
        include = False
        for desc in descriptions:
            if self._excludes.is_match(desc):
                return False
            if not include and self._includes.is_match(desc):
                include = True
        return include

    def is_match_inc_or_ex(self, description: str) -> bool:
        """Whether any include or exclude term matches the description."""
        return self._includes.is_match(description) or self._excludes.is_match(description)

    def filter(
        self, codes_descriptions: Iterable[Tuple[ReadCode, Iterable[str]]]
    ) -> Iterator[Tuple[ReadCode, Iterable[str]]]:
        """Keep only the ``(code, descriptions)`` pairs that match."""
        return (pair for pair in codes_descriptions if self.is_match_multi(pair[1]))

    def match_thesaurus(self, th: "Thesaurus") -> "TermCodeSet":
        return th.filter(self.copy())

    def copy(self) -> "TermSet":
        other = TermSet.__new__(TermSet)
        other.__dict__.update(self.__dict__)
        other._include_terms = list(self._include_terms)
        other._exclude_terms = list(self._exclude_terms)
        return other

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """The ``meta.json`` document."""
        return {
            "includeTerms": list(self._include_terms),
            "excludeTerms": list(self._exclude_terms),
            "terminology": self.terminology,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "createdBy": self.created_by.to_dict() if self.created_by else None,
            "createdOn": _format_timestamp(self.created_on),
            "lastUpdated": _format_timestamp(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "TermSet":
        if not isinstance(data, dict):
            raise SchemaError("expected struct TermSet")
        for key in data:
            if key not in FIELDS:
                raise SchemaError(
                    f"unknown field `{key}`, expected one of {', '.join(FIELDS)}", field=key
                )
        for key in REQUIRED_FIELDS:
            if key not in data:
                raise SchemaError(f"missing field `{key}`", field=key)

        include_terms = _string_list(data, "includeTerms")
        exclude_terms = _string_list(data, "excludeTerms")
        if data["terminology"] != TERMINOLOGY_READV2:
            raise SchemaError(
                f"unknown terminology {data['terminology']!r}, expected `{TERMINOLOGY_READV2}`",
                field="terminology",
            )
        created_by = data.get("createdBy")
        return cls(
            name=_optional_string(data, "name"),
            description=_optional_string(data, "description"),
            include_terms=include_terms,
            exclude_terms=exclude_terms,
            created_by=User.from_dict(created_by) if created_by is not None else None,
            terminology=data["terminology"],
            version=_string(data, "version"),
            created_on=_parse_timestamp(data, "createdOn"),
            last_updated=_parse_timestamp(data, "lastUpdated"),
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "TermSet":
        """Load ``meta.json`` from the term set directory *path*."""
        meta = Path(path) / META_FILE
        with with_context(f'loading termset "{meta}"'):
            with open(meta, encoding="utf-8") as fh:
                try:
                    data = json.load(fh, object_pairs_hook=_reject_duplicates)
                except json.JSONDecodeError as exc:
                    raise SchemaError(f"invalid JSON: {exc}") from exc
            return cls.from_dict(data)

    def save(self, path: Union[str, Path], overwrite: bool = False) -> None:
        """Write ``meta.json`` into the directory *path*, creating it."""
        directory = Path(path)
        meta = directory / META_FILE
        with with_context(f'saving termset "{meta}"'):
            directory.mkdir(parents=True, exist_ok=True)
            if meta.exists() and not overwrite:
                raise AlreadyExistsError("file already exists")
            with open(meta, "w", encoding="utf-8") as fh:
                json.dump(self.to_dict(), fh, indent=2)
        logger.debug("Saved termset %s to %s", self.name, meta)

    def __repr__(self) -> str:
        return (
            f"TermSet(name={self.name!r}, includes={self._include_terms!r}, "
            f"excludes={self._exclude_terms!r})"
        )


def _without_last(terms: List[str], term: str) -> Optional[List[str]]:
    """*terms* minus the last occurrence of *term*, or ``None`` if absent."""
    for idx in range(len(terms) - 1, -1, -1):
        if terms[idx] == term:
            remaining = list(terms)
            del remaining[idx]
            return remaining
    return None


def _reject_duplicates(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in pairs:
        if key in out:
            raise SchemaError(f"duplicate field `{key}`", field=key)
        out[key] = value
    return out


def _string(data: Dict[str, Any], key: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise SchemaError(f"`{key}`: expected a string", field=key)
    return value


def _optional_string(data: Dict[str, Any], key: str) -> Optional[str]:
    if data.get(key) is None:
        return None
    return _string(data, key)


def _string_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data[key]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise SchemaError(f"`{key}`: expected a list of strings", field=key)
    return value


def _parse_timestamp(data: Dict[str, Any], key: str) -> datetime:
    value = _string(data, key)
    try:
        parsed = dateutil.parser.isoparse(value)
    except ValueError as exc:
        raise SchemaError(f"`{key}`: invalid timestamp {value!r}", field=key) from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
